"""Append-only encounter event log."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Iterator, Mapping

if TYPE_CHECKING:
    from campaignkeeper.backend.models import OperationContext

EVENT_SCHEMA_VERSION = 1

COMBATANT_ADD = "combatant.add"
COMBATANT_UPDATE = "combatant.update"
COMBATANT_REMOVE = "combatant.remove"
HP_DAMAGE = "hp.damage"
HP_HEAL = "hp.heal"
CONDITION_ADD = "condition.add"
CONDITION_UPDATE = "condition.update"
CONDITION_REMOVE = "condition.remove"
CONDITION_EXPIRE = "condition.expire"
INITIATIVE_ROLL = "initiative.roll"
INITIATIVE_REORDER = "initiative.reorder"
TURN_ADVANCE = "turn.advance"
TURN_REWIND = "turn.rewind"
TURN_SET = "turn.set"
NOTE = "note"
ENCOUNTER_COMPLETE = "encounter.complete"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class EncounterEvent:
    id: str
    encounter_id: str
    sequence: int
    action: str
    summary: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    actor_id: str | None = None
    created_at: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "payload", _freeze(self.payload))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "encounterId": self.encounter_id,
            "sequence": self.sequence,
            "action": self.action,
            "summary": self.summary,
            "payload": _thaw(self.payload),
            "actorId": self.actor_id,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncounterEvent":
        return cls(
            id=str(data["id"]),
            encounter_id=str(data["encounterId"]),
            sequence=int(data["sequence"]),
            action=str(data["action"]),
            summary=str(data.get("summary", "")),
            payload=dict(data.get("payload") or {}),
            actor_id=data.get("actorId"),
            created_at=str(data.get("createdAt", "")),
        )


class EventLog:
    """Ordered event sequence of one encounter.

    Events loaded from the store are *persisted*; events appended during the
    current operation stay *pending* until the store writes them together with
    the aggregate and calls ``mark_persisted``. Sequence numbers continue from
    the last event, so the insertion order is the ordering key.
    """

    def __init__(self, encounter_id: str, events: Iterable[EncounterEvent] = ()) -> None:
        self.encounter_id = encounter_id
        self._events: list[EncounterEvent] = sorted(events, key=lambda event: event.sequence)
        self._persisted_count = len(self._events)

    def __iter__(self) -> Iterator[EncounterEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def last_sequence(self) -> int:
        return self._events[-1].sequence if self._events else 0

    def append(
        self,
        ctx: "OperationContext",
        action: str,
        summary: str,
        payload: Mapping[str, Any] | None = None,
    ) -> EncounterEvent:
        event = EncounterEvent(
            id=ctx.next_id(),
            encounter_id=self.encounter_id,
            sequence=self.last_sequence + 1,
            action=action,
            summary=summary,
            payload={"schemaVersion": EVENT_SCHEMA_VERSION, "action": action, **dict(payload or {})},
            actor_id=ctx.actor_id,
            created_at=ctx.now(),
        )
        self._events.append(event)
        return event

    def pending(self) -> list[EncounterEvent]:
        return list(self._events[self._persisted_count :])

    def mark_persisted(self) -> None:
        self._persisted_count = len(self._events)

    def of_action(self, action: str) -> list[EncounterEvent]:
        return [event for event in self._events if event.action == action]

    def to_list(self) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self._events]
