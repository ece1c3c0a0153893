"""FastAPI endpoints for the encounter combat runtime."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, StrictInt
from pydantic.alias_generators import to_camel

from .access import CampaignAccessStore, create_access, generate_token
from .config import BackendSettings, load_settings
from .errors import ErrorCode, ServiceResult
from .log import bind_request_context, clear_request_context, configure_logging, get_logger
from .runtime import EncounterRuntime
from .store import EncounterRepository, create_store

T = TypeVar("T")

logger = get_logger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TokenEnvelope(CamelModel):
    token: str = Field(min_length=1)


class CreateCampaignResponse(CamelModel):
    campaign_id: str
    gm_token: str
    player_token: str


class CreateEncounterRequest(TokenEnvelope):
    name: str = Field(max_length=200)


class CombatantCreateRequest(TokenEnvelope):
    name: str = Field(max_length=200)
    kind: str = "MONSTER"
    max_hp: StrictInt
    temp_hp: StrictInt = 0
    initiative_tiebreak: StrictInt = 0
    notes: str | None = None


class CombatantUpdateRequest(TokenEnvelope):
    name: str | None = None
    kind: str | None = None
    notes: str | None = None
    initiative_tiebreak: StrictInt | None = None
    temp_hp: StrictInt | None = None


class HpChangeRequest(TokenEnvelope):
    amount: StrictInt
    meta: dict[str, Any] | None = None


class ConditionCreateRequest(TokenEnvelope):
    label: str
    duration_rounds: StrictInt | None = None
    source: str | None = None
    notes: str | None = None


class ConditionUpdateRequest(TokenEnvelope):
    label: str | None = None
    duration_rounds: StrictInt | None = None
    source: str | None = None
    notes: str | None = None


class InitiativeRollRequest(TokenEnvelope):
    mode: str = "random"
    scope: str = "all"
    scores: dict[str, StrictInt] | None = None


class InitiativeReorderRequest(TokenEnvelope):
    combatant_order: list[str]


class SetActiveTurnRequest(TokenEnvelope):
    combatant_id: str = Field(min_length=1)


class NoteEventRequest(TokenEnvelope):
    summary: str
    payload: dict[str, Any] | None = None


def _changes(payload: TokenEnvelope) -> dict[str, Any]:
    return payload.model_dump(exclude_unset=True, exclude={"token"})


def _unwrap(result: ServiceResult[T]) -> T:
    if result.error is not None:
        raise HTTPException(status_code=result.error.status_code, detail=result.error.to_dict())
    return result.data  # type: ignore[return-value]


def create_app(
    store: EncounterRepository | None = None,
    access: CampaignAccessStore | None = None,
    settings: BackendSettings | None = None,
    runtime: EncounterRuntime | None = None,
) -> FastAPI:
    local_settings = settings if settings is not None else load_settings()
    configure_logging(local_settings.log_level, local_settings.log_json)

    app = FastAPI(title="Campaign Keeper Encounter API", version="0.3.0")
    campaign_access = access if access is not None else create_access(local_settings.database_url, local_settings.server_salt)
    encounter_store = store if store is not None else create_store(local_settings.database_url)
    encounter_runtime = (
        runtime if runtime is not None else EncounterRuntime(encounter_store, campaign_access, settings=local_settings)
    )
    app.state.runtime = encounter_runtime

    def get_runtime() -> EncounterRuntime:
        return encounter_runtime

    def get_access() -> CampaignAccessStore:
        return campaign_access

    @app.middleware("http")
    async def request_context(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        bind_request_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_request_context()

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = {".".join(str(part) for part in error["loc"][1:]): error["msg"] for error in exc.errors()}
        detail = {"code": ErrorCode.VALIDATION.value, "message": "Request validation failed.", "fields": fields}
        return JSONResponse(status_code=400, content={"detail": detail})

    @app.post("/api/campaigns", response_model=CreateCampaignResponse)
    def create_campaign(local_access: CampaignAccessStore = Depends(get_access)) -> CreateCampaignResponse:
        created = local_access.create_campaign(gm_token=generate_token(), player_token=generate_token())
        logger.info("campaign.created", campaign_id=created.campaign_id)
        return CreateCampaignResponse(
            campaign_id=created.campaign_id,
            gm_token=created.gm_token,
            player_token=created.player_token,
        )

    @app.post("/api/campaigns/{campaign_id}/encounters")
    def create_encounter(
        campaign_id: str,
        payload: CreateEncounterRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        encounter = _unwrap(local_runtime.create_encounter(campaign_id, payload.token, payload.name))
        return encounter.to_dict()

    @app.get("/api/encounters/{encounter_id}")
    def get_encounter(
        encounter_id: str,
        token: str = Query(min_length=1),
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        return _unwrap(local_runtime.get_encounter(encounter_id, token)).to_dict()

    @app.post("/api/encounters/{encounter_id}/complete")
    def complete_encounter(
        encounter_id: str,
        payload: TokenEnvelope,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        return _unwrap(local_runtime.complete_encounter(encounter_id, payload.token)).to_dict(include_events=False)

    @app.post("/api/encounters/{encounter_id}/combatants")
    def create_combatant(
        encounter_id: str,
        payload: CombatantCreateRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        combatant = _unwrap(
            local_runtime.create_combatant(
                encounter_id,
                payload.token,
                name=payload.name,
                kind=payload.kind,
                max_hp=payload.max_hp,
                temp_hp=payload.temp_hp,
                initiative_tiebreak=payload.initiative_tiebreak,
                notes=payload.notes,
            )
        )
        return combatant.to_dict()

    @app.patch("/api/encounters/{encounter_id}/combatants/{combatant_id}")
    def update_combatant(
        encounter_id: str,
        combatant_id: str,
        payload: CombatantUpdateRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.update_combatant(encounter_id, payload.token, combatant_id, _changes(payload))
        return _unwrap(result).to_dict()

    @app.delete("/api/encounters/{encounter_id}/combatants/{combatant_id}")
    def delete_combatant(
        encounter_id: str,
        combatant_id: str,
        token: str = Query(min_length=1),
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        turn = _unwrap(local_runtime.delete_combatant(encounter_id, token, combatant_id))
        return {"success": True, **turn.to_dict()}

    @app.post("/api/encounters/{encounter_id}/combatants/{combatant_id}/damage")
    def apply_damage(
        encounter_id: str,
        combatant_id: str,
        payload: HpChangeRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.apply_damage(encounter_id, payload.token, combatant_id, payload.amount, payload.meta)
        return _unwrap(result).to_dict()

    @app.post("/api/encounters/{encounter_id}/combatants/{combatant_id}/heal")
    def apply_heal(
        encounter_id: str,
        combatant_id: str,
        payload: HpChangeRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.apply_heal(encounter_id, payload.token, combatant_id, payload.amount, payload.meta)
        return _unwrap(result).to_dict()

    @app.post("/api/encounters/{encounter_id}/combatants/{combatant_id}/conditions")
    def create_condition(
        encounter_id: str,
        combatant_id: str,
        payload: ConditionCreateRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.create_condition(
            encounter_id,
            payload.token,
            combatant_id,
            payload.label,
            payload.duration_rounds,
            source=payload.source,
            notes=payload.notes,
        )
        return _unwrap(result).to_dict()

    @app.patch("/api/encounters/{encounter_id}/combatants/{combatant_id}/conditions/{condition_id}")
    def update_condition(
        encounter_id: str,
        combatant_id: str,
        condition_id: str,
        payload: ConditionUpdateRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.update_condition(
            encounter_id, payload.token, combatant_id, condition_id, _changes(payload)
        )
        return _unwrap(result).to_dict()

    @app.delete("/api/encounters/{encounter_id}/combatants/{combatant_id}/conditions/{condition_id}")
    def delete_condition(
        encounter_id: str,
        combatant_id: str,
        condition_id: str,
        token: str = Query(min_length=1),
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.delete_condition(encounter_id, token, combatant_id, condition_id)
        return _unwrap(result).to_dict()

    @app.post("/api/encounters/{encounter_id}/initiative/roll")
    def roll_initiative(
        encounter_id: str,
        payload: InitiativeRollRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> list[dict[str, Any]]:
        result = local_runtime.roll_initiative(
            encounter_id, payload.token, mode=payload.mode, scores=payload.scores, scope=payload.scope
        )
        return [combatant.to_dict() for combatant in _unwrap(result)]

    @app.post("/api/encounters/{encounter_id}/initiative/reorder")
    def reorder_initiative(
        encounter_id: str,
        payload: InitiativeReorderRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> list[dict[str, Any]]:
        result = local_runtime.reorder_initiative(encounter_id, payload.token, payload.combatant_order)
        return [combatant.to_dict() for combatant in _unwrap(result)]

    @app.post("/api/encounters/{encounter_id}/turn/advance")
    def advance_turn(
        encounter_id: str,
        payload: TokenEnvelope,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        return _unwrap(local_runtime.advance_turn(encounter_id, payload.token)).to_dict()

    @app.post("/api/encounters/{encounter_id}/turn/rewind")
    def rewind_turn(
        encounter_id: str,
        payload: TokenEnvelope,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        return _unwrap(local_runtime.rewind_turn(encounter_id, payload.token)).to_dict()

    @app.post("/api/encounters/{encounter_id}/turn/set-active")
    def set_active_turn(
        encounter_id: str,
        payload: SetActiveTurnRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        turn = _unwrap(local_runtime.set_active_turn(encounter_id, payload.token, payload.combatant_id))
        return {"activeCombatantId": turn.active_combatant_id}

    @app.get("/api/encounters/{encounter_id}/summary")
    def get_summary(
        encounter_id: str,
        token: str = Query(min_length=1),
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        return _unwrap(local_runtime.get_summary(encounter_id, token)).to_dict()

    @app.get("/api/encounters/{encounter_id}/board")
    def get_runtime_board(
        encounter_id: str,
        token: str = Query(min_length=1),
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        return _unwrap(local_runtime.get_runtime_board(encounter_id, token)).to_dict()

    @app.get("/api/encounters/{encounter_id}/events")
    def list_events(
        encounter_id: str,
        token: str = Query(min_length=1),
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> list[dict[str, Any]]:
        return [event.to_dict() for event in _unwrap(local_runtime.list_events(encounter_id, token))]

    @app.post("/api/encounters/{encounter_id}/events/note")
    def create_note_event(
        encounter_id: str,
        payload: NoteEventRequest,
        local_runtime: EncounterRuntime = Depends(get_runtime),
    ) -> dict[str, Any]:
        result = local_runtime.create_note_event(encounter_id, payload.token, payload.summary, payload.payload)
        return _unwrap(result).to_dict()

    return app


app = create_app()
