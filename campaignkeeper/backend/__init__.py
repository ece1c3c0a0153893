"""Backend package for the campaign keeper encounter runtime."""

from .access import InMemoryCampaignAccess, PostgresCampaignAccess, create_access, generate_token, hash_token
from .config import BackendSettings, load_settings
from .errors import ErrorCode, ServiceResult
from .models import Combatant, CombatantKind, Condition, Encounter, EncounterStatus
from .runtime import EncounterRuntime
from .state import build_encounter
from .store import EncounterRepository, InMemoryEncounterStore, PostgresEncounterStore, create_store

__all__ = [
    "BackendSettings",
    "build_encounter",
    "Combatant",
    "CombatantKind",
    "Condition",
    "create_access",
    "create_store",
    "Encounter",
    "EncounterRepository",
    "EncounterRuntime",
    "EncounterStatus",
    "ErrorCode",
    "generate_token",
    "hash_token",
    "InMemoryCampaignAccess",
    "InMemoryEncounterStore",
    "load_settings",
    "PostgresCampaignAccess",
    "PostgresEncounterStore",
    "ServiceResult",
]
