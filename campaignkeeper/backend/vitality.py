"""Hit point and temporary hit point accounting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from campaignkeeper.backend import events
from campaignkeeper.backend.models import Combatant, Encounter, EncounterStatus, OperationContext
from campaignkeeper.backend.state import non_negative_int


@dataclass(frozen=True)
class DamageSplit:
    absorbed: int
    remainder: int
    hp: int
    temp_hp: int


def split_damage(hp: int, temp_hp: int, amount: int) -> DamageSplit:
    """Temp hp soaks damage first; whatever is left comes off hp, floored at 0."""
    absorbed = min(amount, temp_hp)
    remainder = amount - absorbed
    return DamageSplit(
        absorbed=absorbed,
        remainder=remainder,
        hp=max(0, hp - remainder),
        temp_hp=temp_hp - absorbed,
    )


def _meta(meta: Mapping[str, Any] | None) -> dict[str, Any]:
    return dict(meta) if meta else {}


def _target(encounter: Encounter, combatant_id: str, amount: object) -> tuple[Combatant, int]:
    checked = non_negative_int(amount, "amount")
    encounter.require_status(EncounterStatus.ACTIVE)
    return encounter.require_combatant(combatant_id), checked


def apply_damage(
    encounter: Encounter,
    ctx: OperationContext,
    combatant_id: str,
    amount: int,
    meta: Mapping[str, Any] | None = None,
) -> Combatant:
    combatant, amount = _target(encounter, combatant_id, amount)
    split = split_damage(combatant.hp, combatant.temp_hp, amount)
    combatant.hp = split.hp
    combatant.temp_hp = split.temp_hp

    encounter.events.append(
        ctx,
        events.HP_DAMAGE,
        f"Applied {amount} damage to {combatant.name}",
        {
            "combatantId": combatant.id,
            "amount": amount,
            "absorbed": split.absorbed,
            "remainder": split.remainder,
            "hp": combatant.hp,
            "tempHp": combatant.temp_hp,
            "defeated": combatant.is_defeated,
            "meta": _meta(meta),
        },
    )
    return combatant


def apply_heal(
    encounter: Encounter,
    ctx: OperationContext,
    combatant_id: str,
    amount: int,
    meta: Mapping[str, Any] | None = None,
) -> Combatant:
    combatant, amount = _target(encounter, combatant_id, amount)
    before = combatant.hp
    combatant.hp = min(combatant.max_hp, combatant.hp + amount)

    encounter.events.append(
        ctx,
        events.HP_HEAL,
        f"Applied {amount} healing to {combatant.name}",
        {
            "combatantId": combatant.id,
            "amount": amount,
            "restored": combatant.hp - before,
            "hp": combatant.hp,
            "tempHp": combatant.temp_hp,
            "defeated": combatant.is_defeated,
            "meta": _meta(meta),
        },
    )
    return combatant
