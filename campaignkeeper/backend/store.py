"""Persistence interfaces and implementations for encounter aggregates."""

from __future__ import annotations

import copy
import json
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from campaignkeeper.backend.errors import ConcurrencyConflict
from campaignkeeper.backend.events import EncounterEvent
from campaignkeeper.backend.log import get_logger
from campaignkeeper.backend.models import Encounter

logger = get_logger(__name__)


class EncounterRepository(Protocol):
    def create_encounter(self, encounter: Encounter) -> Encounter:
        """Persist a freshly built aggregate and any events it already carries."""

    def load(self, encounter_id: str) -> Encounter | None:
        """Return an independent copy of the stored aggregate, or None."""

    def save(self, encounter: Encounter, expected_version: int) -> Encounter:
        """Atomically write the aggregate and its pending events.

        Raises ConcurrencyConflict when the stored version is no longer
        ``expected_version``.
        """


@dataclass
class InMemoryEncounterStore:
    def __post_init__(self) -> None:
        self._encounters: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create_encounter(self, encounter: Encounter) -> Encounter:
        with self._lock:
            if encounter.id in self._encounters:
                raise ValueError(f"Encounter {encounter.id} already exists")
            self._encounters[encounter.id] = {
                "version": encounter.version,
                "state": encounter.to_dict(include_events=False),
                "events": [event.to_dict() for event in encounter.events],
            }
        encounter.events.mark_persisted()
        return encounter

    def load(self, encounter_id: str) -> Encounter | None:
        with self._lock:
            record = self._encounters.get(encounter_id)
            if record is None:
                return None
            state = copy.deepcopy(record["state"])
            raw_events = copy.deepcopy(record["events"])
        return Encounter.from_dict(state, events=[EncounterEvent.from_dict(raw) for raw in raw_events])

    def save(self, encounter: Encounter, expected_version: int) -> Encounter:
        pending = encounter.events.pending()
        with self._lock:
            record = self._encounters.get(encounter.id)
            if record is None or record["version"] != expected_version:
                raise ConcurrencyConflict(encounter.id, expected_version)
            stored_sequences = {raw["sequence"] for raw in record["events"]}
            if any(event.sequence in stored_sequences for event in pending):
                raise ConcurrencyConflict(encounter.id, expected_version)

            encounter.version = expected_version + 1
            record["version"] = encounter.version
            record["state"] = encounter.to_dict(include_events=False)
            record["events"].extend(event.to_dict() for event in pending)

        encounter.events.mark_persisted()
        logger.debug("encounter.saved", encounter_id=encounter.id, version=encounter.version, events=len(pending))
        return encounter


def _event_row(event: EncounterEvent) -> tuple[Any, ...]:
    return (
        event.id,
        event.encounter_id,
        event.sequence,
        event.action,
        event.summary,
        json.dumps(event.to_dict()["payload"]),
        event.actor_id,
        event.created_at,
    )


def _as_iso(value: Any) -> str:
    return value.isoformat() if isinstance(value, datetime) else str(value)


@dataclass
class PostgresEncounterStore:
    database_url: str

    def _connect(self) -> Any:
        import psycopg

        return psycopg.connect(self.database_url)

    def _insert_events(self, cur: Any, events: list[EncounterEvent]) -> None:
        for event in events:
            cur.execute(
                """
                INSERT INTO encounter_events
                    (id, encounter_id, sequence, action, summary, payload, actor_id, created_at)
                VALUES (%s, %s, %s, %s, %s, %s::jsonb, %s, %s)
                """,
                _event_row(event),
            )

    def _insert_snapshot(self, cur: Any, encounter: Encounter, now: datetime) -> None:
        cur.execute(
            """
            INSERT INTO encounter_snapshots (id, encounter_id, version, created_at, state_json)
            VALUES (%s, %s, %s, %s, %s::jsonb)
            """,
            (
                str(uuid.uuid4()),
                encounter.id,
                encounter.version,
                now,
                json.dumps(encounter.to_dict(include_events=False)),
            ),
        )

    def create_encounter(self, encounter: Encounter) -> Encounter:
        now = datetime.now(timezone.utc)
        pending = encounter.events.pending()
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO encounters (id, campaign_id, name, status, current_version, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        encounter.id,
                        encounter.campaign_id,
                        encounter.name,
                        encounter.status.value,
                        encounter.version,
                        now,
                        now,
                    ),
                )
                self._insert_snapshot(cur, encounter, now)
                self._insert_events(cur, pending)
            conn.commit()
        encounter.events.mark_persisted()
        return encounter

    def load(self, encounter_id: str) -> Encounter | None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT e.current_version, s.state_json
                    FROM encounters e
                    JOIN encounter_snapshots s
                      ON s.encounter_id = e.id AND s.version = e.current_version
                    WHERE e.id = %s
                    """,
                    (encounter_id,),
                )
                row = cur.fetchone()
                if row is None:
                    return None
                cur.execute(
                    """
                    SELECT id, encounter_id, sequence, action, summary, payload, actor_id, created_at
                    FROM encounter_events
                    WHERE encounter_id = %s
                    ORDER BY sequence
                    """,
                    (encounter_id,),
                )
                event_rows = cur.fetchall()

        version, state_json = row
        state = state_json if isinstance(state_json, dict) else json.loads(state_json)
        state["version"] = int(version)
        events = [
            EncounterEvent(
                id=str(event_id),
                encounter_id=str(owner_id),
                sequence=int(sequence),
                action=action,
                summary=summary,
                payload=payload if isinstance(payload, dict) else json.loads(payload or "{}"),
                actor_id=actor_id,
                created_at=_as_iso(created_at),
            )
            for event_id, owner_id, sequence, action, summary, payload, actor_id, created_at in event_rows
        ]
        return Encounter.from_dict(state, events=events)

    def save(self, encounter: Encounter, expected_version: int) -> Encounter:
        now = datetime.now(timezone.utc)
        pending = encounter.events.pending()
        next_version = expected_version + 1
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE encounters
                    SET current_version = %s, name = %s, status = %s, updated_at = %s
                    WHERE id = %s AND current_version = %s
                    """,
                    (
                        next_version,
                        encounter.name,
                        encounter.status.value,
                        encounter.updated_at,
                        encounter.id,
                        expected_version,
                    ),
                )
                if cur.rowcount != 1:
                    conn.rollback()
                    raise ConcurrencyConflict(encounter.id, expected_version)
                encounter.version = next_version
                self._insert_snapshot(cur, encounter, now)
                self._insert_events(cur, pending)
            conn.commit()

        encounter.events.mark_persisted()
        logger.debug("encounter.saved", encounter_id=encounter.id, version=encounter.version, events=len(pending))
        return encounter


def create_store(database_url: str | None) -> EncounterRepository:
    if database_url:
        return PostgresEncounterStore(database_url=database_url)
    return InMemoryEncounterStore()
