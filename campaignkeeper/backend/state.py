"""Builders for fresh encounter aggregates."""

from __future__ import annotations

from campaignkeeper.backend.errors import validation
from campaignkeeper.backend.events import EventLog
from campaignkeeper.backend.models import Encounter, EncounterStatus, utc_now_iso

MAX_NAME_LENGTH = 200


def clean_name(raw: object, field_name: str = "name", max_length: int = MAX_NAME_LENGTH) -> str:
    name = raw.strip() if isinstance(raw, str) else ""
    if not name:
        raise validation(f"{field_name.capitalize()} must not be empty.", **{field_name: "Required."})
    if len(name) > max_length:
        raise validation(
            f"{field_name.capitalize()} is too long.",
            **{field_name: f"At most {max_length} characters."},
        )
    return name


def non_negative_int(raw: object, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise validation(f"{field_name} must be an integer.", **{field_name: "Expected an integer."})
    if raw < 0:
        raise validation(f"{field_name} must not be negative.", **{field_name: "Must be >= 0."})
    return raw


def optional_text(raw: object, field_name: str, max_length: int) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise validation(f"{field_name} must be a string.", **{field_name: "Expected a string."})
    if len(raw) > max_length:
        raise validation(f"{field_name} is too long.", **{field_name: f"At most {max_length} characters."})
    return raw


def build_encounter(encounter_id: str, campaign_id: str, name: str, now: str | None = None) -> Encounter:
    """Return a DRAFT encounter with no combatants, round 0 and an empty log."""
    timestamp = now or utc_now_iso()
    return Encounter(
        id=encounter_id,
        campaign_id=campaign_id,
        name=clean_name(name),
        status=EncounterStatus.DRAFT,
        current_round=0,
        active_combatant_id=None,
        combatants=[],
        conditions=[],
        log=EventLog(encounter_id),
        version=1,
        created_at=timestamp,
        updated_at=timestamp,
    )
