"""Apply SQL schema for local PostgreSQL setup."""

from __future__ import annotations

from pathlib import Path

from campaignkeeper.backend.config import load_settings
from campaignkeeper.backend.log import configure_logging, get_logger

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")

logger = get_logger(__name__)


def read_schema() -> str:
    return SCHEMA_PATH.read_text(encoding="utf-8")


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_json)
    if not settings.database_url:
        raise RuntimeError("CAMPAIGNKEEPER_DATABASE_URL is required for migration")

    import psycopg

    with psycopg.connect(settings.database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(read_schema())
        conn.commit()
    logger.info("schema.applied", path=str(SCHEMA_PATH))


if __name__ == "__main__":
    main()
