import pytest

from campaignkeeper.backend.events import EncounterEvent, EventLog
from campaignkeeper.backend.models import OperationContext


def test_append_assigns_increasing_sequences_and_stamps_actor(ctx: OperationContext) -> None:
    log = EventLog("enc-1")

    first = log.append(ctx, "note", "First")
    second = log.append(ctx, "hp.damage", "Second", {"amount": 3})

    assert [first.sequence, second.sequence] == [1, 2]
    assert second.payload["amount"] == 3
    assert second.payload["action"] == "hp.damage"
    assert second.payload["schemaVersion"] == 1
    assert second.actor_id == "GM"
    assert second.encounter_id == "enc-1"


def test_loaded_events_are_persisted_and_new_ones_pending(ctx: OperationContext) -> None:
    stored = [
        EncounterEvent(id="e-2", encounter_id="enc-1", sequence=2, action="note", summary="b"),
        EncounterEvent(id="e-1", encounter_id="enc-1", sequence=1, action="note", summary="a"),
    ]
    log = EventLog("enc-1", stored)

    assert [event.sequence for event in log] == [1, 2]
    assert log.pending() == []

    appended = log.append(ctx, "note", "c")

    assert appended.sequence == 3
    assert log.pending() == [appended]

    log.mark_persisted()

    assert log.pending() == []
    assert len(log) == 3


def test_event_payload_is_read_only(ctx: OperationContext) -> None:
    event = EventLog("enc-1").append(ctx, "note", "text", {"amount": 1})

    with pytest.raises(TypeError):
        event.payload["amount"] = 2  # type: ignore[index]


def test_event_dict_round_trip_keeps_fields(ctx: OperationContext) -> None:
    event = EventLog("enc-1").append(ctx, "hp.heal", "Healed", {"amount": 4, "meta": {"note": "potion"}})

    restored = EncounterEvent.from_dict(event.to_dict())

    assert restored.to_dict() == event.to_dict()
    assert restored.payload["meta"] == {"note": "potion"}


def test_of_action_filters_in_insertion_order(ctx: OperationContext) -> None:
    log = EventLog("enc-1")
    log.append(ctx, "hp.damage", "a", {"amount": 1})
    log.append(ctx, "note", "b")
    log.append(ctx, "hp.damage", "c", {"amount": 2})

    assert [event.summary for event in log.of_action("hp.damage")] == ["a", "c"]


def test_nested_payload_is_frozen_and_detached_from_caller(ctx: OperationContext) -> None:
    meta = {"tags": ["fire"], "source": {"name": "Dragon"}}
    event = EventLog("enc-1").append(ctx, "hp.damage", "Breath", {"amount": 9, "meta": meta})
    meta["tags"].append("cold")

    with pytest.raises(TypeError):
        event.payload["meta"]["source"]["name"] = "Lich"
    with pytest.raises(AttributeError):
        event.payload["meta"]["tags"].append("acid")
    assert event.payload["meta"]["tags"] == ("fire",)

    serialized = event.to_dict()["payload"]["meta"]
    assert serialized == {"tags": ["fire"], "source": {"name": "Dragon"}}
    assert isinstance(serialized["tags"], list)
    assert isinstance(serialized["source"], dict)
