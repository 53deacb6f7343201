from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from backend.app.metrics.workforce import VOLUNTARY_EXIT_RATIO


logger = logging.getLogger(__name__)

_DOTENV_LOADED = False


def load_env(dotenv_path: Optional[str] = None) -> None:
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return
    # Load from provided path or default search
    load_dotenv(dotenv_path, override=False)
    _DOTENV_LOADED = True


def get_db_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user = os.getenv("DB_USER", os.getenv("USER", "client"))
    password = os.getenv("DB_PASSWORD")
    host = os.getenv("DB_HOST", "localhost")
    port = os.getenv("DB_PORT", "5432")
    name = os.getenv("DB_NAME", "hr_snapshots")
    auth = f"{user}:{password}@" if password else f"{user}@"
    return f"postgresql://{auth}{host}:{port}/{name}"


@dataclass(frozen=True)
class EngineSettings:
    batch_size: int = 500
    max_concurrency: int = 4
    retry_attempts: int = 3
    retry_initial_s: float = 0.5
    retry_max_s: float = 8.0
    retry_jitter_s: float = 0.5
    voluntary_exit_ratio: float = VOLUNTARY_EXIT_RATIO
    sector: str = "service"


SECTORS = ("industrie", "service", "commerce", "tech")


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s=%r, using %s", name, raw, default)
        return default


def get_engine_settings() -> EngineSettings:
    defaults = EngineSettings()
    sector = os.getenv("BENCHMARK_SECTOR", defaults.sector).strip().lower()
    if sector not in SECTORS:
        logger.warning("Unknown BENCHMARK_SECTOR=%r, using %s", sector, defaults.sector)
        sector = defaults.sector
    return EngineSettings(
        batch_size=max(1, _env_number("IMPORT_BATCH_SIZE", defaults.batch_size, int)),
        max_concurrency=max(1, _env_number("IMPORT_MAX_CONCURRENCY", defaults.max_concurrency, int)),
        retry_attempts=max(1, _env_number("SNAPSHOT_RETRY_ATTEMPTS", defaults.retry_attempts, int)),
        retry_initial_s=_env_number("SNAPSHOT_RETRY_INITIAL_S", defaults.retry_initial_s, float),
        retry_max_s=_env_number("SNAPSHOT_RETRY_MAX_S", defaults.retry_max_s, float),
        retry_jitter_s=_env_number("SNAPSHOT_RETRY_JITTER_S", defaults.retry_jitter_s, float),
        voluntary_exit_ratio=_env_number("VOLUNTARY_EXIT_RATIO", defaults.voluntary_exit_ratio, float),
        sector=sector,
    )
