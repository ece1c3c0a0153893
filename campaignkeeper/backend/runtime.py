"""Encounter runtime facade.

Every operation runs one load -> mutate -> save cycle against a single
encounter. Permission checks go through the injected resolver, persistence
through the injected repository; a lost optimistic-version race surfaces as a
CONFLICT result and is never retried here.
"""

from __future__ import annotations

import random
from typing import Any, Callable, Mapping, Sequence, TypeVar

from campaignkeeper.backend import combatants, conditions, events, initiative, vitality
from campaignkeeper.backend.access import CONTENT_READ, CONTENT_WRITE, AccessDecision, PermissionResolver
from campaignkeeper.backend.config import BackendSettings
from campaignkeeper.backend.errors import (
    ConcurrencyConflict,
    EncounterError,
    ErrorCode,
    ServiceResult,
    validation,
)
from campaignkeeper.backend.events import EncounterEvent
from campaignkeeper.backend.initiative import TurnState
from campaignkeeper.backend.log import get_logger
from campaignkeeper.backend.models import (
    Combatant,
    Condition,
    Encounter,
    EncounterStatus,
    EncounterSummaryReport,
    OperationContext,
    RuntimeBoard,
    new_id,
    utc_now_iso,
)
from campaignkeeper.backend.state import build_encounter, clean_name
from campaignkeeper.backend.store import EncounterRepository
from campaignkeeper.backend.summary import build_runtime_board, build_summary

T = TypeVar("T")

MAX_NOTE_LENGTH = 500

logger = get_logger(__name__)


class EncounterRuntime:
    def __init__(
        self,
        repository: EncounterRepository,
        permissions: PermissionResolver,
        settings: BackendSettings | None = None,
        rng: random.Random | None = None,
        id_factory: Callable[[], str] = new_id,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._repository = repository
        self._permissions = permissions
        self._initiative_die = settings.initiative_die if settings is not None else 20
        self._rng = rng if rng is not None else random.Random()
        self._id_factory = id_factory
        self._clock = clock

    def _context(self, decision: AccessDecision) -> OperationContext:
        return OperationContext(
            actor_id=decision.role,
            id_factory=self._id_factory,
            clock=self._clock,
            rng=self._rng,
            initiative_die=self._initiative_die,
        )

    def _load(self, encounter_id: str, token: str, permission: str) -> tuple[Encounter, AccessDecision] | ServiceResult[Any]:
        encounter = self._repository.load(encounter_id)
        if encounter is None:
            return ServiceResult.failure(ErrorCode.NOT_FOUND, "Encounter not found.")
        decision = self._permissions.resolve(encounter.campaign_id, token, permission)
        if not decision.allowed:
            logger.info("runtime.forbidden", encounter_id=encounter_id, permission=permission)
            return ServiceResult.failure(ErrorCode.FORBIDDEN, f"Missing permission {decision.permission}.")
        return encounter, decision

    def _read(self, encounter_id: str, token: str, reader: Callable[[Encounter], T]) -> ServiceResult[T]:
        loaded = self._load(encounter_id, token, CONTENT_READ)
        if isinstance(loaded, ServiceResult):
            return loaded
        encounter, _ = loaded
        return ServiceResult.success(reader(encounter))

    def _mutate(
        self,
        encounter_id: str,
        token: str,
        operation: str,
        mutation: Callable[[Encounter, OperationContext], T],
    ) -> ServiceResult[T]:
        loaded = self._load(encounter_id, token, CONTENT_WRITE)
        if isinstance(loaded, ServiceResult):
            return loaded
        encounter, decision = loaded
        expected_version = encounter.version
        ctx = self._context(decision)

        try:
            data = mutation(encounter, ctx)
        except EncounterError as error:
            logger.info(
                "runtime.rejected",
                operation=operation,
                encounter_id=encounter_id,
                code=error.code.value,
                reason=error.message,
            )
            return ServiceResult.from_error(error)

        encounter.updated_at = ctx.now()
        try:
            self._repository.save(encounter, expected_version)
        except ConcurrencyConflict as error:
            logger.warning("encounter.conflict", operation=operation, encounter_id=encounter_id, version=expected_version)
            return ServiceResult.failure(ErrorCode.CONFLICT, str(error))

        logger.info(
            "encounter.mutated",
            operation=operation,
            encounter_id=encounter_id,
            version=encounter.version,
            round=encounter.current_round,
        )
        return ServiceResult.success(data)

    # Encounter lifecycle

    def create_encounter(self, campaign_id: str, token: str, name: str) -> ServiceResult[Encounter]:
        decision = self._permissions.resolve(campaign_id, token, CONTENT_WRITE)
        if not decision.allowed:
            return ServiceResult.failure(ErrorCode.FORBIDDEN, f"Missing permission {decision.permission}.")
        try:
            encounter = build_encounter(self._id_factory(), campaign_id, name, now=self._clock())
        except EncounterError as error:
            return ServiceResult.from_error(error)
        created = self._repository.create_encounter(encounter)
        logger.info("encounter.created", encounter_id=created.id, campaign_id=campaign_id)
        return ServiceResult.success(created)

    def get_encounter(self, encounter_id: str, token: str) -> ServiceResult[Encounter]:
        return self._read(encounter_id, token, lambda encounter: encounter)

    def complete_encounter(self, encounter_id: str, token: str) -> ServiceResult[Encounter]:
        def mutation(encounter: Encounter, ctx: OperationContext) -> Encounter:
            encounter.require_status(EncounterStatus.ACTIVE)
            encounter.status = EncounterStatus.COMPLETED
            encounter.events.append(
                ctx,
                events.ENCOUNTER_COMPLETE,
                f"Completed encounter {encounter.name}",
                {"round": encounter.current_round},
            )
            return encounter

        return self._mutate(encounter_id, token, "complete_encounter", mutation)

    # Combatant store

    def create_combatant(
        self,
        encounter_id: str,
        token: str,
        name: str,
        kind: str,
        max_hp: int,
        temp_hp: int = 0,
        initiative_tiebreak: int = 0,
        notes: str | None = None,
    ) -> ServiceResult[Combatant]:
        return self._mutate(
            encounter_id,
            token,
            "create_combatant",
            lambda encounter, ctx: combatants.add_combatant(
                encounter,
                ctx,
                name=name,
                kind=kind,
                max_hp=max_hp,
                temp_hp=temp_hp,
                initiative_tiebreak=initiative_tiebreak,
                notes=notes,
            ),
        )

    def update_combatant(
        self, encounter_id: str, token: str, combatant_id: str, changes: Mapping[str, Any]
    ) -> ServiceResult[Combatant]:
        return self._mutate(
            encounter_id,
            token,
            "update_combatant",
            lambda encounter, ctx: combatants.update_combatant(encounter, ctx, combatant_id, changes),
        )

    def delete_combatant(self, encounter_id: str, token: str, combatant_id: str) -> ServiceResult[TurnState]:
        return self._mutate(
            encounter_id,
            token,
            "delete_combatant",
            lambda encounter, ctx: combatants.remove_combatant(encounter, ctx, combatant_id),
        )

    # Vitality ledger

    def apply_damage(
        self,
        encounter_id: str,
        token: str,
        combatant_id: str,
        amount: int,
        meta: Mapping[str, Any] | None = None,
    ) -> ServiceResult[Combatant]:
        return self._mutate(
            encounter_id,
            token,
            "apply_damage",
            lambda encounter, ctx: vitality.apply_damage(encounter, ctx, combatant_id, amount, meta),
        )

    def apply_heal(
        self,
        encounter_id: str,
        token: str,
        combatant_id: str,
        amount: int,
        meta: Mapping[str, Any] | None = None,
    ) -> ServiceResult[Combatant]:
        return self._mutate(
            encounter_id,
            token,
            "apply_heal",
            lambda encounter, ctx: vitality.apply_heal(encounter, ctx, combatant_id, amount, meta),
        )

    # Condition tracker

    def create_condition(
        self,
        encounter_id: str,
        token: str,
        combatant_id: str,
        label: str,
        duration_rounds: int | None = None,
        source: str | None = None,
        notes: str | None = None,
    ) -> ServiceResult[Condition]:
        return self._mutate(
            encounter_id,
            token,
            "create_condition",
            lambda encounter, ctx: conditions.add_condition(
                encounter, ctx, combatant_id, label, duration_rounds, source=source, notes=notes
            ),
        )

    def update_condition(
        self,
        encounter_id: str,
        token: str,
        combatant_id: str,
        condition_id: str,
        changes: Mapping[str, Any],
    ) -> ServiceResult[Condition]:
        return self._mutate(
            encounter_id,
            token,
            "update_condition",
            lambda encounter, ctx: conditions.update_condition(encounter, ctx, combatant_id, condition_id, changes),
        )

    def delete_condition(
        self, encounter_id: str, token: str, combatant_id: str, condition_id: str
    ) -> ServiceResult[Condition]:
        return self._mutate(
            encounter_id,
            token,
            "delete_condition",
            lambda encounter, ctx: conditions.remove_condition(encounter, ctx, combatant_id, condition_id),
        )

    # Initiative sequencer

    def roll_initiative(
        self,
        encounter_id: str,
        token: str,
        mode: str = "random",
        scores: Mapping[str, Any] | None = None,
        scope: str = "all",
    ) -> ServiceResult[list[Combatant]]:
        return self._mutate(
            encounter_id,
            token,
            "roll_initiative",
            lambda encounter, ctx: initiative.roll_initiative(encounter, ctx, mode, scores=scores, scope=scope),
        )

    def reorder_initiative(
        self, encounter_id: str, token: str, ordered_ids: Sequence[str]
    ) -> ServiceResult[list[Combatant]]:
        return self._mutate(
            encounter_id,
            token,
            "reorder_initiative",
            lambda encounter, ctx: initiative.reorder_initiative(encounter, ctx, ordered_ids),
        )

    def advance_turn(self, encounter_id: str, token: str) -> ServiceResult[TurnState]:
        return self._mutate(encounter_id, token, "advance_turn", initiative.advance_turn)

    def rewind_turn(self, encounter_id: str, token: str) -> ServiceResult[TurnState]:
        return self._mutate(encounter_id, token, "rewind_turn", initiative.rewind_turn)

    def set_active_turn(self, encounter_id: str, token: str, combatant_id: str) -> ServiceResult[TurnState]:
        return self._mutate(
            encounter_id,
            token,
            "set_active_turn",
            lambda encounter, ctx: initiative.set_active_turn(encounter, ctx, combatant_id),
        )

    # Event log and read side

    def create_note_event(
        self,
        encounter_id: str,
        token: str,
        summary: str,
        payload: Mapping[str, Any] | None = None,
    ) -> ServiceResult[EncounterEvent]:
        def mutation(encounter: Encounter, ctx: OperationContext) -> EncounterEvent:
            text = clean_name(summary, "summary", MAX_NOTE_LENGTH)
            if payload is not None and not isinstance(payload, Mapping):
                raise validation("Note payload must be an object.", payload="Expected an object.")
            return encounter.events.append(ctx, events.NOTE, text, {"note": dict(payload or {})})

        return self._mutate(encounter_id, token, "create_note_event", mutation)

    def list_events(self, encounter_id: str, token: str) -> ServiceResult[list[EncounterEvent]]:
        return self._read(encounter_id, token, lambda encounter: list(encounter.events))

    def get_summary(self, encounter_id: str, token: str) -> ServiceResult[EncounterSummaryReport]:
        return self._read(encounter_id, token, build_summary)

    def get_runtime_board(self, encounter_id: str, token: str) -> ServiceResult[RuntimeBoard]:
        return self._read(encounter_id, token, build_runtime_board)
