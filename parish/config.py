"""Runtime settings for the parish office screens.

Every value can be overridden through an environment variable:

    PARISH_STORAGE_PATH      JSON file standing in for browser local storage
    PARISH_SEED_PATH         initial secretary payments
    PARISH_REPORT_URL        expense report endpoint
    PARISH_PROCESSING_DELAY  seconds a donation "processes" before it is stored
    PARISH_HTTP_TIMEOUT      seconds to wait for the expense report endpoint
    PARISH_LOG_LEVEL         logging level name (INFO, DEBUG, ...)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from parish.domain import ConfigError

DEFAULT_REPORT_URL = "https://parishofdivinemercy.com/backend/report.php"


@dataclass(frozen=True)
class Settings:
    storage_path: Path = Path("data/parish_storage.json")
    seed_path: Path = Path("data/seed.json")
    report_url: str = DEFAULT_REPORT_URL
    processing_delay: float = 0.7
    http_timeout: float = 30.0
    log_level: str = "INFO"


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    defaults = Settings()
    log_level = (env.get("PARISH_LOG_LEVEL") or defaults.log_level).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"PARISH_LOG_LEVEL is not a logging level: {log_level!r}")
    return Settings(
        storage_path=Path(env.get("PARISH_STORAGE_PATH") or defaults.storage_path),
        seed_path=Path(env.get("PARISH_SEED_PATH") or defaults.seed_path),
        report_url=env.get("PARISH_REPORT_URL") or defaults.report_url,
        processing_delay=_float(env, "PARISH_PROCESSING_DELAY", defaults.processing_delay),
        http_timeout=_float(env, "PARISH_HTTP_TIMEOUT", defaults.http_timeout),
        log_level=log_level,
    )


def setup_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )
