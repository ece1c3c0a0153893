"""Domain models for the encounter aggregate and its persistence contracts."""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping

from campaignkeeper.backend.errors import conflict, not_found
from campaignkeeper.backend.events import EncounterEvent, EventLog


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


class EncounterStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class CombatantKind(str, Enum):
    PC = "PC"
    NPC = "NPC"
    MONSTER = "MONSTER"


@dataclass(frozen=True)
class OperationContext:
    """Per-operation collaborators handed to the runtime components."""

    actor_id: str | None = None
    id_factory: Callable[[], str] = new_id
    clock: Callable[[], str] = utc_now_iso
    rng: random.Random = field(default_factory=random.Random)
    initiative_die: int = 20

    def next_id(self) -> str:
        return self.id_factory()

    def now(self) -> str:
        return self.clock()


@dataclass
class Combatant:
    id: str
    encounter_id: str
    name: str
    kind: CombatantKind
    max_hp: int
    hp: int
    temp_hp: int = 0
    initiative_score: int | None = None
    initiative_tiebreak: int = 0
    turn_order: int = 0
    is_removed: bool = False
    notes: str | None = None
    created_at: str = ""

    @property
    def is_defeated(self) -> bool:
        return self.hp == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "encounterId": self.encounter_id,
            "name": self.name,
            "kind": self.kind.value,
            "maxHp": self.max_hp,
            "hp": self.hp,
            "tempHp": self.temp_hp,
            "initiativeScore": self.initiative_score,
            "initiativeTiebreak": self.initiative_tiebreak,
            "turnOrder": self.turn_order,
            "isDefeated": self.is_defeated,
            "isRemoved": self.is_removed,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Combatant":
        return cls(
            id=str(data["id"]),
            encounter_id=str(data["encounterId"]),
            name=str(data["name"]),
            kind=CombatantKind(data["kind"]),
            max_hp=int(data["maxHp"]),
            hp=int(data["hp"]),
            temp_hp=int(data.get("tempHp", 0)),
            initiative_score=data.get("initiativeScore"),
            initiative_tiebreak=int(data.get("initiativeTiebreak", 0)),
            turn_order=int(data.get("turnOrder", 0)),
            is_removed=bool(data.get("isRemoved", False)),
            notes=data.get("notes"),
            created_at=str(data.get("createdAt", "")),
        )


@dataclass
class Condition:
    id: str
    combatant_id: str
    label: str
    duration_rounds: int | None
    applied_at_round: int
    expires_at_round: int | None
    source: str | None = None
    notes: str | None = None
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "combatantId": self.combatant_id,
            "label": self.label,
            "durationRounds": self.duration_rounds,
            "appliedAtRound": self.applied_at_round,
            "expiresAtRound": self.expires_at_round,
            "source": self.source,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        return cls(
            id=str(data["id"]),
            combatant_id=str(data["combatantId"]),
            label=str(data["label"]),
            duration_rounds=data.get("durationRounds"),
            applied_at_round=int(data["appliedAtRound"]),
            expires_at_round=data.get("expiresAtRound"),
            source=data.get("source"),
            notes=data.get("notes"),
            created_at=str(data.get("createdAt", "")),
        )


@dataclass
class Encounter:
    """Root aggregate: owns its combatants, their conditions and the event log."""

    id: str
    campaign_id: str
    name: str
    status: EncounterStatus = EncounterStatus.DRAFT
    current_round: int = 0
    active_combatant_id: str | None = None
    combatants: list[Combatant] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)
    log: EventLog | None = None
    version: int = 1
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if self.log is None:
            self.log = EventLog(self.id)

    @property
    def events(self) -> EventLog:
        if self.log is None:
            raise RuntimeError(f"Encounter {self.id} has no event log")
        return self.log

    def active_combatants(self) -> list[Combatant]:
        """Non-removed combatants in turn order."""
        active = [combatant for combatant in self.combatants if not combatant.is_removed]
        return sorted(active, key=lambda combatant: (combatant.turn_order, combatant.id))

    def find_combatant(self, combatant_id: str, include_removed: bool = False) -> Combatant | None:
        for combatant in self.combatants:
            if combatant.id == combatant_id and (include_removed or not combatant.is_removed):
                return combatant
        return None

    def require_combatant(self, combatant_id: str) -> Combatant:
        combatant = self.find_combatant(combatant_id)
        if combatant is None:
            raise not_found("Combatant not found.")
        return combatant

    def conditions_for(self, combatant_id: str) -> list[Condition]:
        return [condition for condition in self.conditions if condition.combatant_id == combatant_id]

    def require_status(self, *allowed: EncounterStatus) -> None:
        if self.status not in allowed:
            expected = " or ".join(status.value for status in allowed)
            raise conflict(f"Encounter is {self.status.value}; operation requires {expected}.")

    def require_mutable(self) -> None:
        self.require_status(EncounterStatus.DRAFT, EncounterStatus.ACTIVE)

    def to_dict(self, include_events: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "campaignId": self.campaign_id,
            "name": self.name,
            "status": self.status.value,
            "currentRound": self.current_round,
            "activeCombatantId": self.active_combatant_id,
            "version": self.version,
            "combatants": [combatant.to_dict() for combatant in self.combatants],
            "conditions": [condition.to_dict() for condition in self.conditions],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if include_events:
            data["events"] = self.events.to_list()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], events: list[EncounterEvent] | None = None) -> "Encounter":
        encounter_id = str(data["id"])
        if events is None:
            events = [EncounterEvent.from_dict(raw) for raw in data.get("events", [])]
        return cls(
            id=encounter_id,
            campaign_id=str(data["campaignId"]),
            name=str(data["name"]),
            status=EncounterStatus(data.get("status", EncounterStatus.DRAFT.value)),
            current_round=int(data.get("currentRound", 0)),
            active_combatant_id=data.get("activeCombatantId"),
            combatants=[Combatant.from_dict(raw) for raw in data.get("combatants", [])],
            conditions=[Condition.from_dict(raw) for raw in data.get("conditions", [])],
            log=EventLog(encounter_id, events),
            version=int(data.get("version", 1)),
            created_at=str(data.get("createdAt", "")),
            updated_at=str(data.get("updatedAt", "")),
        )


@dataclass(frozen=True)
class CreatedCampaign:
    campaign_id: str
    gm_token: str
    player_token: str


@dataclass(frozen=True)
class EncounterSummaryReport:
    encounter_id: str
    rounds: int
    total_events: int
    total_damage: int
    total_healing: int
    defeated_combatants: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "encounterId": self.encounter_id,
            "rounds": self.rounds,
            "totalEvents": self.total_events,
            "totalDamage": self.total_damage,
            "totalHealing": self.total_healing,
            "defeatedCombatants": self.defeated_combatants,
        }


@dataclass(frozen=True)
class InitiativeLaneItem:
    combatant_id: str
    name: str
    kind: CombatantKind
    initiative: int | None
    turn_order: int
    is_active: bool
    is_defeated: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "combatantId": self.combatant_id,
            "name": self.name,
            "kind": self.kind.value,
            "initiative": self.initiative,
            "turnOrder": self.turn_order,
            "isActive": self.is_active,
            "isDefeated": self.is_defeated,
        }


@dataclass(frozen=True)
class RuntimeBoard:
    encounter_id: str
    round: int
    active_combatant_id: str | None
    initiative_lane: list[InitiativeLaneItem]
    warnings: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "encounterId": self.encounter_id,
            "round": self.round,
            "activeCombatantId": self.active_combatant_id,
            "initiativeLane": [item.to_dict() for item in self.initiative_lane],
            "warnings": list(self.warnings),
        }
