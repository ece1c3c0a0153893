"""Read-side aggregations over an encounter: summary report and runtime board."""

from __future__ import annotations

from typing import Any, Mapping

from campaignkeeper.backend import events
from campaignkeeper.backend.models import (
    Encounter,
    EncounterStatus,
    EncounterSummaryReport,
    InitiativeLaneItem,
    RuntimeBoard,
)


def _amount(payload: Mapping[str, Any]) -> int:
    amount = payload.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, int):
        return 0
    return amount


def build_summary(encounter: Encounter) -> EncounterSummaryReport:
    total_damage = 0
    total_healing = 0
    for event in encounter.events:
        if event.action == events.HP_DAMAGE:
            total_damage += _amount(event.payload)
        elif event.action == events.HP_HEAL:
            total_healing += _amount(event.payload)

    return EncounterSummaryReport(
        encounter_id=encounter.id,
        rounds=encounter.current_round,
        total_events=len(encounter.events),
        total_damage=total_damage,
        total_healing=total_healing,
        defeated_combatants=sum(1 for combatant in encounter.combatants if combatant.is_defeated),
    )


def build_runtime_board(encounter: Encounter) -> RuntimeBoard:
    lane = [
        InitiativeLaneItem(
            combatant_id=combatant.id,
            name=combatant.name,
            kind=combatant.kind,
            initiative=combatant.initiative_score,
            turn_order=combatant.turn_order,
            is_active=combatant.id == encounter.active_combatant_id,
            is_defeated=combatant.is_defeated,
        )
        for combatant in encounter.active_combatants()
    ]

    warnings: list[str] = []
    if not lane:
        warnings.append("No combatants added yet.")
    if encounter.status is not EncounterStatus.ACTIVE:
        warnings.append("Encounter is not currently active.")

    return RuntimeBoard(
        encounter_id=encounter.id,
        round=encounter.current_round,
        active_combatant_id=encounter.active_combatant_id,
        initiative_lane=lane,
        warnings=warnings,
    )
