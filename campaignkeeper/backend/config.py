"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

ENV_PREFIX = "CAMPAIGNKEEPER_"


@dataclass(frozen=True)
class BackendSettings:
    server_salt: str
    database_url: str | None
    host: str
    port: int
    log_level: str = "INFO"
    log_json: bool = False
    initiative_die: int = 20


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _parse_bool(raw: str | None) -> bool:
    return (raw or "").strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> BackendSettings:
    port_raw = _env("PORT", "8000")
    die_raw = _env("INITIATIVE_DIE", "20")
    initiative_die = int(die_raw)
    if initiative_die < 1:
        raise ValueError(f"{ENV_PREFIX}INITIATIVE_DIE must be positive, got {initiative_die}")
    return BackendSettings(
        server_salt=_env("SERVER_SALT", "dev-salt"),
        database_url=_env("DATABASE_URL") or None,
        host=_env("HOST", "127.0.0.1"),
        port=int(port_raw),
        log_level=(_env("LOG_LEVEL", "INFO") or "INFO").upper(),
        log_json=_parse_bool(_env("LOG_JSON")),
        initiative_die=initiative_die,
    )
