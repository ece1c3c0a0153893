"""Timed status conditions attached to combatants."""

from __future__ import annotations

from typing import Any, Mapping

from campaignkeeper.backend import events
from campaignkeeper.backend.errors import not_found, validation
from campaignkeeper.backend.models import Condition, Encounter, OperationContext
from campaignkeeper.backend.state import clean_name, non_negative_int, optional_text

MAX_LABEL_LENGTH = 120
UPDATABLE_FIELDS = ("label", "duration_rounds", "source", "notes")


def _expires_at(applied_at_round: int, duration_rounds: int | None) -> int | None:
    if duration_rounds is None:
        return None
    return applied_at_round + duration_rounds


def _duration(raw: object) -> int | None:
    if raw is None:
        return None
    return non_negative_int(raw, "duration_rounds")


def _require_condition(encounter: Encounter, combatant_id: str, condition_id: str) -> Condition:
    if encounter.find_combatant(combatant_id) is None:
        raise not_found("Combatant not found.")
    for condition in encounter.conditions:
        if condition.id == condition_id and condition.combatant_id == combatant_id:
            return condition
    raise not_found("Condition not found.")


def add_condition(
    encounter: Encounter,
    ctx: OperationContext,
    combatant_id: str,
    label: str,
    duration_rounds: int | None = None,
    source: str | None = None,
    notes: str | None = None,
) -> Condition:
    encounter.require_mutable()
    combatant = encounter.require_combatant(combatant_id)
    clean_label = clean_name(label, "label", MAX_LABEL_LENGTH)
    duration = _duration(duration_rounds)
    condition = Condition(
        id=ctx.next_id(),
        combatant_id=combatant.id,
        label=clean_label,
        duration_rounds=duration,
        applied_at_round=encounter.current_round,
        expires_at_round=_expires_at(encounter.current_round, duration),
        source=optional_text(source, "source", MAX_LABEL_LENGTH),
        notes=optional_text(notes, "notes", 2000),
        created_at=ctx.now(),
    )
    encounter.conditions.append(condition)
    encounter.events.append(
        ctx,
        events.CONDITION_ADD,
        f"Added condition {condition.label} to {combatant.name}",
        {
            "combatantId": combatant.id,
            "conditionId": condition.id,
            "label": condition.label,
            "durationRounds": condition.duration_rounds,
            "expiresAtRound": condition.expires_at_round,
        },
    )
    return condition


def update_condition(
    encounter: Encounter,
    ctx: OperationContext,
    combatant_id: str,
    condition_id: str,
    changes: Mapping[str, Any],
) -> Condition:
    encounter.require_mutable()
    condition = _require_condition(encounter, combatant_id, condition_id)
    unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise validation(f"Unsupported condition fields: {', '.join(unknown)}.")
    if not changes:
        raise validation("At least one field is required.")

    label = clean_name(changes["label"], "label", MAX_LABEL_LENGTH) if "label" in changes else condition.label
    duration = _duration(changes["duration_rounds"]) if "duration_rounds" in changes else condition.duration_rounds
    source = optional_text(changes["source"], "source", MAX_LABEL_LENGTH) if "source" in changes else condition.source
    notes = optional_text(changes["notes"], "notes", 2000) if "notes" in changes else condition.notes

    condition.label = label
    condition.duration_rounds = duration
    condition.expires_at_round = _expires_at(condition.applied_at_round, duration)
    condition.source = source
    condition.notes = notes

    encounter.events.append(
        ctx,
        events.CONDITION_UPDATE,
        f"Updated condition {condition.label}",
        {
            "combatantId": combatant_id,
            "conditionId": condition.id,
            "changes": sorted(changes),
            "durationRounds": condition.duration_rounds,
            "expiresAtRound": condition.expires_at_round,
        },
    )
    return condition


def remove_condition(encounter: Encounter, ctx: OperationContext, combatant_id: str, condition_id: str) -> Condition:
    encounter.require_mutable()
    condition = _require_condition(encounter, combatant_id, condition_id)
    encounter.conditions = [existing for existing in encounter.conditions if existing.id != condition.id]
    encounter.events.append(
        ctx,
        events.CONDITION_REMOVE,
        f"Removed condition {condition.label}",
        {"combatantId": combatant_id, "conditionId": condition.id, "label": condition.label},
    )
    return condition


def clear_conditions_for(encounter: Encounter, ctx: OperationContext, combatant_id: str) -> list[Condition]:
    """Drop every condition of one combatant, used when it leaves the encounter."""
    cleared = sorted(encounter.conditions_for(combatant_id), key=lambda condition: condition.id)
    cleared_ids = {condition.id for condition in cleared}
    encounter.conditions = [condition for condition in encounter.conditions if condition.id not in cleared_ids]
    for condition in cleared:
        encounter.events.append(
            ctx,
            events.CONDITION_REMOVE,
            f"Removed condition {condition.label}",
            {
                "combatantId": combatant_id,
                "conditionId": condition.id,
                "label": condition.label,
                "cause": "combatant.remove",
            },
        )
    return cleared


def expire_conditions(encounter: Encounter, ctx: OperationContext) -> list[Condition]:
    """Drop conditions whose expiry round has been reached, logging each one."""
    expired = sorted(
        (
            condition
            for condition in encounter.conditions
            if condition.expires_at_round is not None
            and condition.expires_at_round <= encounter.current_round
        ),
        key=lambda condition: condition.id,
    )
    if not expired:
        return []

    expired_ids = {condition.id for condition in expired}
    encounter.conditions = [condition for condition in encounter.conditions if condition.id not in expired_ids]
    for condition in expired:
        encounter.events.append(
            ctx,
            events.CONDITION_EXPIRE,
            f"Condition {condition.label} expired",
            {
                "combatantId": condition.combatant_id,
                "conditionId": condition.id,
                "label": condition.label,
                "expiresAtRound": condition.expires_at_round,
                "round": encounter.current_round,
            },
        )
    return expired
