import pytest

from campaignkeeper.backend.combatants import add_combatant, remove_combatant, update_combatant
from campaignkeeper.backend.errors import EncounterError, ErrorCode
from campaignkeeper.backend.models import CombatantKind, Encounter, EncounterStatus, OperationContext


def test_add_combatant_starts_at_full_hp_and_appends_to_order(encounter: Encounter, ctx: OperationContext) -> None:
    first = add_combatant(encounter, ctx, name="  Goblin  ", kind="monster", max_hp=7)
    second = add_combatant(encounter, ctx, name="Aria", kind=CombatantKind.PC, max_hp=12, temp_hp=3)

    assert first.name == "Goblin"
    assert first.kind is CombatantKind.MONSTER
    assert (first.hp, first.max_hp, first.temp_hp) == (7, 7, 0)
    assert first.initiative_score is None
    assert [first.turn_order, second.turn_order] == [0, 1]
    assert second.temp_hp == 3
    assert [event.action for event in encounter.events] == ["combatant.add", "combatant.add"]


@pytest.mark.parametrize(
    ("kwargs", "field"),
    [
        ({"name": "   "}, "name"),
        ({"name": "Orc", "max_hp": -1}, "max_hp"),
        ({"name": "Orc", "temp_hp": True}, "temp_hp"),
        ({"name": "Orc", "kind": "DRAGON"}, "kind"),
    ],
)
def test_add_combatant_rejects_invalid_input(
    encounter: Encounter, ctx: OperationContext, kwargs: dict, field: str
) -> None:
    with pytest.raises(EncounterError) as exc_info:
        add_combatant(encounter, ctx, **kwargs)

    assert exc_info.value.code is ErrorCode.VALIDATION
    assert field in exc_info.value.fields
    assert encounter.combatants == []
    assert len(encounter.events) == 0


def test_update_combatant_changes_only_descriptive_fields(duel: Encounter, ctx: OperationContext) -> None:
    target = duel.active_combatants()[1]

    updated = update_combatant(duel, ctx, target.id, {"name": "Boss", "temp_hp": 4, "notes": "angry"})

    assert updated.name == "Boss"
    assert updated.temp_hp == 4
    assert updated.notes == "angry"
    assert updated.hp == 8
    assert duel.events.of_action("combatant.update")[-1].payload["changes"] == ("name", "notes", "temp_hp")


def test_update_combatant_rejects_hp_and_empty_changes(duel: Encounter, ctx: OperationContext) -> None:
    target_id = duel.active_combatants()[0].id

    with pytest.raises(EncounterError) as unknown:
        update_combatant(duel, ctx, target_id, {"hp": 1})
    with pytest.raises(EncounterError) as empty:
        update_combatant(duel, ctx, target_id, {})

    assert unknown.value.code is ErrorCode.VALIDATION
    assert empty.value.code is ErrorCode.VALIDATION


def test_update_unknown_combatant_is_not_found(duel: Encounter, ctx: OperationContext) -> None:
    with pytest.raises(EncounterError) as exc_info:
        update_combatant(duel, ctx, "missing", {"name": "X"})

    assert exc_info.value.code is ErrorCode.NOT_FOUND


def test_remove_inactive_combatant_compacts_order_and_keeps_pointer(
    encounter: Encounter, ctx: OperationContext
) -> None:
    a = add_combatant(encounter, ctx, name="A", max_hp=5)
    b = add_combatant(encounter, ctx, name="B", max_hp=5)
    c = add_combatant(encounter, ctx, name="C", max_hp=5)

    turn = remove_combatant(encounter, ctx, b.id)

    assert b.is_removed
    assert [combatant.id for combatant in encounter.active_combatants()] == [a.id, c.id]
    assert [a.turn_order, c.turn_order] == [0, 1]
    assert turn.active_combatant_id is None
    assert encounter.find_combatant(b.id) is None
    assert encounter.find_combatant(b.id, include_removed=True) is b


def test_remove_active_combatant_moves_pointer_to_next(duel: Encounter, ctx: OperationContext) -> None:
    a, b = duel.active_combatants()

    turn = remove_combatant(duel, ctx, a.id)

    assert turn.active_combatant_id == b.id
    assert turn.current_round == 1
    assert [event.action for event in duel.events][-2:] == ["combatant.remove", "turn.advance"]


def test_remove_last_active_combatant_in_order_wraps_round(duel: Encounter, ctx: OperationContext) -> None:
    a, b = duel.active_combatants()
    duel.active_combatant_id = b.id

    turn = remove_combatant(duel, ctx, b.id)

    assert turn.active_combatant_id == a.id
    assert turn.current_round == 2


def test_remove_only_combatant_clears_pointer(encounter: Encounter, ctx: OperationContext) -> None:
    solo = add_combatant(encounter, ctx, name="Solo", max_hp=4)
    encounter.status = EncounterStatus.ACTIVE
    encounter.active_combatant_id = solo.id

    turn = remove_combatant(encounter, ctx, solo.id)

    assert turn.active_combatant_id is None
    assert encounter.active_combatants() == []


def test_removed_combatant_cannot_be_removed_again(duel: Encounter, ctx: OperationContext) -> None:
    target = duel.active_combatants()[1]
    remove_combatant(duel, ctx, target.id)

    with pytest.raises(EncounterError) as exc_info:
        remove_combatant(duel, ctx, target.id)

    assert exc_info.value.code is ErrorCode.NOT_FOUND


def test_completed_encounter_rejects_roster_changes(duel: Encounter, ctx: OperationContext) -> None:
    duel.status = EncounterStatus.COMPLETED

    with pytest.raises(EncounterError) as exc_info:
        add_combatant(duel, ctx, name="Late", max_hp=3)

    assert exc_info.value.code is ErrorCode.CONFLICT
