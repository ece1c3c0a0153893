"""Initiative order, turn pointer and round counter."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from campaignkeeper.backend import events
from campaignkeeper.backend.conditions import expire_conditions
from campaignkeeper.backend.errors import conflict, not_found, validation
from campaignkeeper.backend.models import Combatant, CombatantKind, Encounter, EncounterStatus, OperationContext

ROLL_MODES = ("random", "manual")
ROLL_SCOPES = ("all", "unset", "non_pc")


@dataclass(frozen=True)
class TurnState:
    active_combatant_id: str | None
    current_round: int

    def to_dict(self) -> dict[str, Any]:
        return {"activeCombatantId": self.active_combatant_id, "currentRound": self.current_round}


def initiative_sort_key(combatant: Combatant) -> tuple[bool, int, int, str]:
    score = combatant.initiative_score
    return (score is None, -(score or 0), -combatant.initiative_tiebreak, combatant.id)


def _order_payload(order: Sequence[Combatant]) -> list[dict[str, Any]]:
    return [
        {
            "combatantId": combatant.id,
            "initiativeScore": combatant.initiative_score,
            "initiativeTiebreak": combatant.initiative_tiebreak,
            "turnOrder": combatant.turn_order,
        }
        for combatant in order
    ]


def _index_of(order: Sequence[Combatant], combatant_id: str | None) -> int:
    for index, combatant in enumerate(order):
        if combatant.id == combatant_id:
            return index
    return -1


def _rolled_targets(active: list[Combatant], scope: str) -> list[Combatant]:
    if scope == "unset":
        return [combatant for combatant in active if combatant.initiative_score is None]
    if scope == "non_pc":
        return [combatant for combatant in active if combatant.kind is not CombatantKind.PC]
    return list(active)


def _manual_scores(active: list[Combatant], scores: Mapping[str, Any] | None) -> dict[str, int]:
    if not scores:
        raise validation("Manual initiative requires scores.", scores="Required for manual mode.")
    active_ids = {combatant.id for combatant in active}
    unknown = sorted(str(combatant_id) for combatant_id in scores if combatant_id not in active_ids)
    if unknown:
        raise validation(f"Unknown combatants in scores: {', '.join(unknown)}.", scores="Unknown combatant id.")
    parsed: dict[str, int] = {}
    for combatant_id, score in scores.items():
        if isinstance(score, bool) or not isinstance(score, int):
            raise validation("Initiative scores must be integers.", scores=f"Invalid score for {combatant_id}.")
        parsed[combatant_id] = score
    return parsed


def roll_initiative(
    encounter: Encounter,
    ctx: OperationContext,
    mode: str = "random",
    scores: Mapping[str, Any] | None = None,
    scope: str = "all",
) -> list[Combatant]:
    """Score, sort and rank the active combatants, then start round one."""
    if mode not in ROLL_MODES:
        raise validation(f"Unknown initiative mode {mode!r}.", mode=f"One of {', '.join(ROLL_MODES)}.")
    if scope not in ROLL_SCOPES:
        raise validation(f"Unknown initiative scope {scope!r}.", scope=f"One of {', '.join(ROLL_SCOPES)}.")
    encounter.require_mutable()
    active = encounter.active_combatants()
    if not active:
        raise validation("Cannot roll initiative without active combatants.")

    if mode == "manual":
        manual = _manual_scores(active, scores)
        for combatant in active:
            if combatant.id in manual:
                combatant.initiative_score = manual[combatant.id]
        affected = len(manual)
    else:
        targets = _rolled_targets(active, scope)
        for combatant in targets:
            combatant.initiative_score = ctx.rng.randint(1, ctx.initiative_die) + combatant.initiative_tiebreak
        affected = len(targets)

    order = sorted(active, key=initiative_sort_key)
    for rank, combatant in enumerate(order):
        combatant.turn_order = rank
    encounter.current_round = 1
    encounter.active_combatant_id = order[0].id
    encounter.status = EncounterStatus.ACTIVE

    encounter.events.append(
        ctx,
        events.INITIATIVE_ROLL,
        "Rolled initiative for encounter",
        {
            "mode": mode,
            "scope": scope if mode == "random" else None,
            "affected": affected,
            "order": _order_payload(order),
            "activeCombatantId": encounter.active_combatant_id,
            "round": encounter.current_round,
        },
    )
    return order


def reorder_initiative(encounter: Encounter, ctx: OperationContext, ordered_ids: Sequence[str]) -> list[Combatant]:
    encounter.require_mutable()
    active = encounter.active_combatants()
    by_id = {combatant.id: combatant for combatant in active}
    ids = list(ordered_ids) if isinstance(ordered_ids, (list, tuple)) else []
    if not ids or len(ids) != len(by_id) or len(set(ids)) != len(ids) or set(ids) != set(by_id):
        raise validation(
            "Combatant order must include all active combatants exactly once.",
            combatant_order="Must be a permutation of the active combatant ids.",
        )

    order = [by_id[combatant_id] for combatant_id in ids]
    for rank, combatant in enumerate(order):
        combatant.turn_order = rank

    encounter.events.append(
        ctx,
        events.INITIATIVE_REORDER,
        "Reordered initiative manually",
        {"order": _order_payload(order), "activeCombatantId": encounter.active_combatant_id},
    )
    return order


def step_to_next(encounter: Encounter, ctx: OperationContext, order: Sequence[Combatant]) -> TurnState:
    """Move the pointer one slot forward within ``order``.

    ``order`` may still contain the combatant being removed; it is never the
    target because there are at least two entries whenever this is called
    for a removal.
    """
    previous_id = encounter.active_combatant_id
    index = _index_of(order, previous_id)
    if index < 0:
        next_index, wrapped = 0, False
    else:
        next_index = (index + 1) % len(order)
        wrapped = next_index == 0

    if wrapped:
        encounter.current_round += 1
    encounter.active_combatant_id = order[next_index].id

    encounter.events.append(
        ctx,
        events.TURN_ADVANCE,
        f"Advanced turn to {order[next_index].name}",
        {
            "previousCombatantId": previous_id,
            "nextCombatantId": encounter.active_combatant_id,
            "round": encounter.current_round,
            "newRound": wrapped,
        },
    )
    if wrapped:
        expire_conditions(encounter, ctx)
    return TurnState(encounter.active_combatant_id, encounter.current_round)


def _require_turn_order(encounter: Encounter) -> list[Combatant]:
    if encounter.status is not EncounterStatus.ACTIVE:
        raise conflict("Encounter is not active.")
    order = encounter.active_combatants()
    if not order:
        raise conflict("Cannot move turn without combatants.")
    return order


def advance_turn(encounter: Encounter, ctx: OperationContext) -> TurnState:
    order = _require_turn_order(encounter)
    return step_to_next(encounter, ctx, order)


def rewind_turn(encounter: Encounter, ctx: OperationContext) -> TurnState:
    order = _require_turn_order(encounter)
    previous_id = encounter.active_combatant_id
    index = _index_of(order, previous_id)
    if index < 0:
        target_index = len(order) - 1
    elif index == 0:
        target_index = len(order) - 1
        encounter.current_round = max(1, encounter.current_round - 1)
    else:
        target_index = index - 1

    encounter.active_combatant_id = order[target_index].id
    encounter.events.append(
        ctx,
        events.TURN_REWIND,
        f"Rewound turn to {order[target_index].name}",
        {
            "previousCombatantId": previous_id,
            "nextCombatantId": encounter.active_combatant_id,
            "round": encounter.current_round,
        },
    )
    return TurnState(encounter.active_combatant_id, encounter.current_round)


def set_active_turn(encounter: Encounter, ctx: OperationContext, combatant_id: str) -> TurnState:
    if encounter.status is not EncounterStatus.ACTIVE:
        raise conflict("Encounter is not active.")
    combatant = encounter.find_combatant(combatant_id)
    if combatant is None:
        raise not_found("Combatant not found.")

    previous_id = encounter.active_combatant_id
    encounter.active_combatant_id = combatant.id
    encounter.events.append(
        ctx,
        events.TURN_SET,
        f"Set active turn to {combatant.name}",
        {"previousCombatantId": previous_id, "combatantId": combatant.id, "round": encounter.current_round},
    )
    return TurnState(encounter.active_combatant_id, encounter.current_round)
