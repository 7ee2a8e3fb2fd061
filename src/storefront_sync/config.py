# src/storefront_sync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

- One Settings object for the whole app.
- No secrets required at import time: a missing API key only matters once a try-on is started.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "STOREFRONT"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_optional(name: str) -> str | None:
    v = os.getenv(name)
    if v is None or v.strip() == "":
        return None
    return v.strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    downloads_dir: Path

    # ---- Storefront backend ----
    api_url: str
    user_id: str

    # ---- Try-on service ----
    tryon_base_url: str
    tryon_api_key: str | None
    tryon_check_interval: float
    tryon_submit_timeout: float
    tryon_status_timeout: float
    tryon_overall_timeout: float
    tryon_max_retries: int
    tryon_retry_delay: float

    # ---- Chat ----
    chat_poll_interval: float
    chat_refetch_after_send: float
    chat_call_timeout: float
    chat_reconcile_window: float
    conversations_poll_interval: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "storefront-sync").strip() or "storefront-sync"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/storefront"))
        downloads_dir = _env_path(_k("DOWNLOADS_DIR"), data_dir / "downloads")

        api_url = _env(_k("API_URL"), "http://localhost:5000/api").strip()
        user_id = _env(_k("USER_ID"), "").strip()

        tryon_base_url = _env(_k("TRYON_BASE_URL"), "https://api.fashn.ai/v1").strip()
        tryon_api_key = _env_optional(_k("TRYON_API_KEY"))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            downloads_dir=downloads_dir,
            api_url=api_url,
            user_id=user_id,
            tryon_base_url=tryon_base_url,
            tryon_api_key=tryon_api_key,
            tryon_check_interval=_env_float(_k("TRYON_CHECK_INTERVAL_SECONDS"), 0.5),
            tryon_submit_timeout=_env_float(_k("TRYON_SUBMIT_TIMEOUT_SECONDS"), 30.0),
            tryon_status_timeout=_env_float(_k("TRYON_STATUS_TIMEOUT_SECONDS"), 5.0),
            tryon_overall_timeout=_env_float(_k("TRYON_OVERALL_TIMEOUT_SECONDS"), 60.0),
            tryon_max_retries=max(0, _env_int(_k("TRYON_MAX_RETRIES"), 3)),
            tryon_retry_delay=_env_float(_k("TRYON_RETRY_DELAY_SECONDS"), 1.0),
            chat_poll_interval=_env_float(_k("CHAT_POLL_INTERVAL_SECONDS"), 7.0),
            chat_refetch_after_send=_env_float(_k("CHAT_REFETCH_AFTER_SEND_SECONDS"), 1.0),
            chat_call_timeout=_env_float(_k("CHAT_CALL_TIMEOUT_SECONDS"), 10.0),
            chat_reconcile_window=_env_float(_k("CHAT_RECONCILE_WINDOW_SECONDS"), 30.0),
            conversations_poll_interval=_env_float(_k("CONVERSATIONS_POLL_INTERVAL_SECONDS"), 5.0),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
