from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from shared.contracts.enums import NotificationBackend


ROOT_DIR = Path(__file__).resolve().parents[1]
ENV_FILES = (ROOT_DIR / "config.env", ROOT_DIR / ".env")

DEFAULT_DROP_THRESHOLD_SECONDS = 30
DEFAULT_NEAR_IMMEDIATE_THRESHOLD_SECONDS = 10


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./medtrack.db"
    reminder_timezone: str = "UTC"
    drop_threshold_seconds: int = DEFAULT_DROP_THRESHOLD_SECONDS
    near_immediate_threshold_seconds: int = DEFAULT_NEAR_IMMEDIATE_THRESHOLD_SECONDS
    notification_backend: NotificationBackend = NotificationBackend.MEMORY
    log_level: str = "INFO"
    extraction_service_url: str | None = None
    extraction_timeout_seconds: float = 30.0


def load_env() -> None:
    for env_path in ENV_FILES:
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=False)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    value = int(raw)
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


def load_settings() -> Settings:
    load_env()
    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        reminder_timezone=os.getenv("REMINDER_TIMEZONE", Settings.reminder_timezone),
        drop_threshold_seconds=_int_env("REMINDER_DROP_THRESHOLD_SECONDS", DEFAULT_DROP_THRESHOLD_SECONDS),
        near_immediate_threshold_seconds=_int_env(
            "NEAR_IMMEDIATE_THRESHOLD_SECONDS", DEFAULT_NEAR_IMMEDIATE_THRESHOLD_SECONDS
        ),
        notification_backend=NotificationBackend(
            os.getenv("NOTIFICATION_BACKEND", NotificationBackend.MEMORY.value).strip().lower()
        ),
        log_level=os.getenv("LOG_LEVEL", Settings.log_level).upper(),
        extraction_service_url=os.getenv("EXTRACTION_SERVICE_URL") or None,
        extraction_timeout_seconds=float(os.getenv("EXTRACTION_TIMEOUT_SECONDS", "30")),
    )
