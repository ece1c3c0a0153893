"""Run the encounter API under uvicorn with environment settings."""

from __future__ import annotations

from campaignkeeper.backend.config import load_settings


def main() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "campaignkeeper.backend.api:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
