import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi.testclient import TestClient

from campaignkeeper.backend.access import InMemoryCampaignAccess
from campaignkeeper.backend.api import _unwrap, create_app
from campaignkeeper.backend.config import BackendSettings
from campaignkeeper.backend.errors import ErrorCode, ServiceResult
from campaignkeeper.backend.store import InMemoryEncounterStore


def _client() -> TestClient:
    settings = BackendSettings(server_salt="test-salt", database_url=None, host="127.0.0.1", port=8000)
    app = create_app(
        store=InMemoryEncounterStore(),
        access=InMemoryCampaignAccess(server_salt="test-salt"),
        settings=settings,
    )
    return TestClient(app)


def _campaign_with_encounter(client: TestClient) -> tuple[dict, str]:
    campaign = client.post("/api/campaigns").json()
    encounter = client.post(
        f"/api/campaigns/{campaign['campaignId']}/encounters",
        json={"token": campaign["gmToken"], "name": "Session 1"},
    ).json()
    return campaign, encounter["id"]


def test_post_campaign_returns_id_and_distinct_tokens() -> None:
    client = _client()

    response = client.post("/api/campaigns")

    assert response.status_code == 200
    data = response.json()
    assert data["campaignId"]
    assert data["gmToken"]
    assert data["playerToken"]
    assert data["gmToken"] != data["playerToken"]


def test_get_encounter_returns_full_state_for_player_token() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)

    response = client.get(f"/api/encounters/{encounter_id}", params={"token": campaign["playerToken"]})

    assert response.status_code == 200
    state = response.json()
    assert state["id"] == encounter_id
    assert state["name"] == "Session 1"
    assert state["status"] == "DRAFT"
    assert state["currentRound"] == 0
    assert state["events"] == []


def test_combat_flow_over_http() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)
    gm = campaign["gmToken"]
    base = f"/api/encounters/{encounter_id}"

    a = client.post(f"{base}/combatants", json={"token": gm, "name": "A", "kind": "PC", "maxHp": 10}).json()
    b = client.post(f"{base}/combatants", json={"token": gm, "name": "B", "maxHp": 8}).json()
    assert b["kind"] == "MONSTER"

    rolled = client.post(
        f"{base}/initiative/roll",
        json={"token": gm, "mode": "manual", "scores": {a["id"]: 15, b["id"]: 10}},
    )
    assert rolled.status_code == 200
    assert [entry["id"] for entry in rolled.json()] == [a["id"], b["id"]]

    damaged = client.post(f"{base}/combatants/{b['id']}/damage", json={"token": gm, "amount": 8})
    assert damaged.json()["isDefeated"] is True

    condition = client.post(
        f"{base}/combatants/{a['id']}/conditions",
        json={"token": gm, "label": "Blessed", "durationRounds": 3},
    ).json()
    assert condition["expiresAtRound"] == 4

    patched = client.patch(
        f"{base}/combatants/{a['id']}/conditions/{condition['id']}",
        json={"token": gm, "durationRounds": 1},
    )
    assert patched.json()["expiresAtRound"] == 2

    client.post(f"{base}/turn/advance", json={"token": gm})
    turn = client.post(f"{base}/turn/advance", json={"token": gm}).json()
    assert turn == {"activeCombatantId": a["id"], "currentRound": 2}

    selected = client.post(f"{base}/turn/set-active", json={"token": gm, "combatantId": b["id"]})
    assert selected.json() == {"activeCombatantId": b["id"]}

    summary = client.get(f"{base}/summary", params={"token": campaign["playerToken"]}).json()
    assert summary["totalDamage"] == 8
    assert summary["rounds"] == 2
    assert summary["defeatedCombatants"] == 1

    board = client.get(f"{base}/board", params={"token": campaign["playerToken"]}).json()
    assert [item["combatantId"] for item in board["initiativeLane"]] == [a["id"], b["id"]]
    assert board["warnings"] == []

    removed = client.delete(f"{base}/combatants/{b['id']}", params={"token": gm})
    assert removed.json() == {"success": True, "activeCombatantId": a["id"], "currentRound": 3}

    events = client.get(f"{base}/events", params={"token": gm}).json()
    assert [event["sequence"] for event in events] == list(range(1, len(events) + 1))
    assert "condition.expire" in [event["action"] for event in events]

    completed = client.post(f"{base}/complete", json={"token": gm})
    assert completed.json()["status"] == "COMPLETED"


def test_player_token_cannot_write() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)

    response = client.post(
        f"/api/encounters/{encounter_id}/combatants",
        json={"token": campaign["playerToken"], "name": "Sneaky", "maxHp": 3},
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "FORBIDDEN"


def test_unknown_encounter_is_404() -> None:
    client = _client()
    campaign, _ = _campaign_with_encounter(client)

    response = client.get("/api/encounters/missing", params={"token": campaign["gmToken"]})

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


def test_turn_advance_before_initiative_is_409() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)

    response = client.post(f"/api/encounters/{encounter_id}/turn/advance", json={"token": campaign["gmToken"]})

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "CONFLICT"


def test_domain_validation_is_400_with_fields() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)

    response = client.post(
        f"/api/encounters/{encounter_id}/combatants",
        json={"token": campaign["gmToken"], "name": "Orc", "maxHp": -4},
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION"
    assert "max_hp" in detail["fields"]


def test_malformed_body_is_400() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)

    response = client.post(
        f"/api/encounters/{encounter_id}/initiative/reorder",
        json={"token": campaign["gmToken"]},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION"


def test_note_event_is_recorded() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)

    response = client.post(
        f"/api/encounters/{encounter_id}/events/note",
        json={"token": campaign["gmToken"], "summary": "Bridge collapses", "payload": {"dc": 15}},
    )

    assert response.status_code == 200
    event = response.json()
    assert event["action"] == "note"
    assert event["sequence"] == 1
    assert event["payload"]["note"] == {"dc": 15}


def test_unwrap_maps_failures_to_http_errors() -> None:
    assert _unwrap(ServiceResult.success({"id": "enc-1"})) == {"id": "enc-1"}

    with pytest.raises(fastapi.HTTPException) as exc_info:
        _unwrap(ServiceResult.failure(ErrorCode.CONFLICT, "Encounter is not active."))

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == {"code": "CONFLICT", "message": "Encounter is not active."}


@pytest.mark.parametrize("amount", ["3", 3.0, True])
def test_hp_amount_must_be_a_json_integer(amount: object) -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)
    base = f"/api/encounters/{encounter_id}"
    gm = campaign["gmToken"]
    orc = client.post(f"{base}/combatants", json={"token": gm, "name": "Orc", "maxHp": 8}).json()

    response = client.post(f"{base}/combatants/{orc['id']}/damage", json={"token": gm, "amount": amount})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION"
    state = client.get(base, params={"token": gm}).json()
    assert state["combatants"][0]["hp"] == 8


def test_manual_scores_must_be_json_integers() -> None:
    client = _client()
    campaign, encounter_id = _campaign_with_encounter(client)
    base = f"/api/encounters/{encounter_id}"
    gm = campaign["gmToken"]
    orc = client.post(f"{base}/combatants", json={"token": gm, "name": "Orc", "maxHp": 8}).json()

    response = client.post(
        f"{base}/initiative/roll",
        json={"token": gm, "mode": "manual", "scores": {orc["id"]: "12"}},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION"
