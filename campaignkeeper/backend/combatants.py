"""Participants of one encounter: add, edit and soft-remove."""

from __future__ import annotations

from typing import Any, Mapping

from campaignkeeper.backend import events
from campaignkeeper.backend.conditions import clear_conditions_for
from campaignkeeper.backend.errors import validation
from campaignkeeper.backend.initiative import TurnState, step_to_next
from campaignkeeper.backend.models import Combatant, CombatantKind, Encounter, OperationContext
from campaignkeeper.backend.state import clean_name, non_negative_int, optional_text

MAX_NOTES_LENGTH = 5000
UPDATABLE_FIELDS = ("name", "kind", "notes", "initiative_tiebreak", "temp_hp")


def _kind(raw: object) -> CombatantKind:
    try:
        return CombatantKind(raw.upper() if isinstance(raw, str) else raw)
    except ValueError:
        allowed = ", ".join(kind.value for kind in CombatantKind)
        raise validation(f"Unknown combatant kind {raw!r}.", kind=f"One of {allowed}.") from None


def _tiebreak(raw: object) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise validation("initiative_tiebreak must be an integer.", initiative_tiebreak="Expected an integer.")
    return raw


def compact_turn_order(encounter: Encounter) -> None:
    """Renumber active combatants 0..n-1 keeping their relative order."""
    for rank, combatant in enumerate(encounter.active_combatants()):
        combatant.turn_order = rank


def add_combatant(
    encounter: Encounter,
    ctx: OperationContext,
    name: str,
    kind: str | CombatantKind = CombatantKind.MONSTER,
    max_hp: int = 0,
    temp_hp: int = 0,
    initiative_tiebreak: int = 0,
    notes: str | None = None,
) -> Combatant:
    encounter.require_mutable()
    clean = clean_name(name)
    max_hp = non_negative_int(max_hp, "max_hp")
    active = encounter.active_combatants()
    combatant = Combatant(
        id=ctx.next_id(),
        encounter_id=encounter.id,
        name=clean,
        kind=_kind(kind),
        max_hp=max_hp,
        hp=max_hp,
        temp_hp=non_negative_int(temp_hp, "temp_hp"),
        initiative_score=None,
        initiative_tiebreak=_tiebreak(initiative_tiebreak),
        turn_order=(active[-1].turn_order + 1) if active else 0,
        is_removed=False,
        notes=optional_text(notes, "notes", MAX_NOTES_LENGTH),
        created_at=ctx.now(),
    )
    encounter.combatants.append(combatant)
    encounter.events.append(
        ctx,
        events.COMBATANT_ADD,
        f"Added combatant {combatant.name}",
        {
            "combatantId": combatant.id,
            "name": combatant.name,
            "kind": combatant.kind.value,
            "maxHp": combatant.max_hp,
            "turnOrder": combatant.turn_order,
        },
    )
    return combatant


def update_combatant(
    encounter: Encounter,
    ctx: OperationContext,
    combatant_id: str,
    changes: Mapping[str, Any],
) -> Combatant:
    """Edit descriptive fields; hit points and rank only move through their own operations."""
    encounter.require_mutable()
    combatant = encounter.require_combatant(combatant_id)
    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise validation(f"Unsupported combatant fields: {', '.join(unknown)}.")
    if not changes:
        raise validation("At least one field is required.")

    name = clean_name(changes["name"]) if "name" in changes else combatant.name
    kind = _kind(changes["kind"]) if "kind" in changes else combatant.kind
    notes = optional_text(changes["notes"], "notes", MAX_NOTES_LENGTH) if "notes" in changes else combatant.notes
    tiebreak = (
        _tiebreak(changes["initiative_tiebreak"]) if "initiative_tiebreak" in changes else combatant.initiative_tiebreak
    )
    temp_hp = non_negative_int(changes["temp_hp"], "temp_hp") if "temp_hp" in changes else combatant.temp_hp

    combatant.name = name
    combatant.kind = kind
    combatant.notes = notes
    combatant.initiative_tiebreak = tiebreak
    combatant.temp_hp = temp_hp

    encounter.events.append(
        ctx,
        events.COMBATANT_UPDATE,
        f"Updated combatant {combatant.name}",
        {"combatantId": combatant.id, "changes": sorted(changes), "tempHp": combatant.temp_hp},
    )
    return combatant


def remove_combatant(encounter: Encounter, ctx: OperationContext, combatant_id: str) -> TurnState:
    """Soft-remove a combatant, drop its conditions and keep the turn pointer on a live combatant."""
    encounter.require_mutable()
    combatant = encounter.require_combatant(combatant_id)
    order_before = encounter.active_combatants()
    was_active = encounter.active_combatant_id == combatant.id

    combatant.is_removed = True
    compact_turn_order(encounter)
    encounter.events.append(
        ctx,
        events.COMBATANT_REMOVE,
        f"Removed combatant {combatant.name}",
        {"combatantId": combatant.id, "wasActive": was_active},
    )
    clear_conditions_for(encounter, ctx, combatant.id)

    if was_active:
        if len(order_before) > 1:
            return step_to_next(encounter, ctx, order_before)
        encounter.active_combatant_id = None
    return TurnState(encounter.active_combatant_id, encounter.current_round)

