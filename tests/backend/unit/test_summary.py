from campaignkeeper.backend.combatants import add_combatant, remove_combatant
from campaignkeeper.backend.events import NOTE
from campaignkeeper.backend.initiative import advance_turn
from campaignkeeper.backend.models import Encounter, EncounterStatus, OperationContext
from campaignkeeper.backend.summary import build_runtime_board, build_summary
from campaignkeeper.backend.vitality import apply_damage, apply_heal


def test_summary_totals_damage_healing_and_defeats(duel: Encounter, ctx: OperationContext) -> None:
    a, b = duel.active_combatants()
    apply_damage(duel, ctx, a.id, 5)
    apply_damage(duel, ctx, b.id, 8)
    apply_heal(duel, ctx, a.id, 2)
    advance_turn(duel, ctx)
    advance_turn(duel, ctx)

    report = build_summary(duel)

    assert report.encounter_id == duel.id
    assert report.rounds == 2
    assert report.total_damage == 13
    assert report.total_healing == 2
    assert report.defeated_combatants == 1
    assert report.total_events == len(duel.events)


def test_summary_counts_raw_amounts_not_effective_change(duel: Encounter, ctx: OperationContext) -> None:
    a, _ = duel.active_combatants()
    apply_heal(duel, ctx, a.id, 25)

    assert build_summary(duel).total_healing == 25


def test_summary_ignores_payloads_without_integer_amount(duel: Encounter, ctx: OperationContext) -> None:
    duel.events.append(ctx, "hp.damage", "Imported damage", {"amount": "many"})
    duel.events.append(ctx, NOTE, "Dragon roars", {"amount": 99})

    assert build_summary(duel).total_damage == 0


def test_summary_is_read_only_and_repeatable(duel: Encounter, ctx: OperationContext) -> None:
    a, _ = duel.active_combatants()
    apply_damage(duel, ctx, a.id, 3)
    events_before = len(duel.events)

    first = build_summary(duel)
    second = build_summary(duel)

    assert first == second
    assert len(duel.events) == events_before
    assert first.to_dict()["totalDamage"] == 3


def test_defeated_count_includes_removed_combatants(duel: Encounter, ctx: OperationContext) -> None:
    _, b = duel.active_combatants()
    apply_damage(duel, ctx, b.id, 8)
    remove_combatant(duel, ctx, b.id)

    assert build_summary(duel).defeated_combatants == 1


def test_board_for_empty_draft_warns_twice(encounter: Encounter) -> None:
    board = build_runtime_board(encounter)

    assert board.initiative_lane == []
    assert board.warnings == ["No combatants added yet.", "Encounter is not currently active."]
    assert board.round == 0
    assert board.active_combatant_id is None


def test_board_lists_active_lane_in_turn_order(duel: Encounter, ctx: OperationContext) -> None:
    a, b = duel.active_combatants()
    extra = add_combatant(duel, ctx, name="Reinforcement", max_hp=3)
    remove_combatant(duel, ctx, extra.id)
    apply_damage(duel, ctx, b.id, 8)

    board = build_runtime_board(duel)

    assert board.warnings == []
    assert [item.combatant_id for item in board.initiative_lane] == [a.id, b.id]
    assert [item.is_active for item in board.initiative_lane] == [True, False]
    assert board.initiative_lane[1].is_defeated
    assert board.initiative_lane[0].initiative == 15
    assert board.to_dict()["initiativeLane"][0]["kind"] == "PC"


def test_board_warns_when_encounter_completed(duel: Encounter) -> None:
    duel.status = EncounterStatus.COMPLETED

    assert build_runtime_board(duel).warnings == ["Encounter is not currently active."]
