"""
Application Configuration.

Pydantic Settings model for the parcelops back office.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Literal, Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Record Store (authoritative relational store) ---
    RECORD_STORE_BACKEND: Literal["sqlite", "supabase"] = "sqlite"
    RECORD_STORE_PATH: str = "parcelops_records.db"
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Local Cache (per-device replica) ---
    LOCAL_CACHE_PATH: str = "parcelops_local.db"

    # --- Sync Reconciler ---
    SYNC_INTERVAL_S: float = 60.0
    SYNC_STOP_TIMEOUT_S: float = 10.0

    # --- Workflow ---
    STRICT_STATUS_TRANSITIONS: bool = False
    HEADQUARTERS_BRANCH: str = "Sede Central"
    TRACKING_CODE_PREFIX: str = "SM"
    TRACKING_CODE_MAX_ATTEMPTS: int = 20
    NOTIFICATION_LIMIT: int = 50

    # Applied by the record store to users pushed without a password.
    DEFAULT_USER_PASSWORD: SecretStr = SecretStr("123")

    # --- SMS gateway (Twilio REST API) ---
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: SecretStr = SecretStr("")
    TWILIO_PHONE_NUMBER: str = ""
    TWILIO_API_BASE: str = "https://api.twilio.com/2010-04-01"
    SMS_TIMEOUT_S: float = 10.0

    # --- Logging ---
    LOG_FILE: str = "parcelops.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when optional integrations are unconfigured."""
        _log = logging.getLogger("parcelops.config")

        if self.RECORD_STORE_BACKEND == "supabase" and not self.SUPABASE_URL:
            _log.warning(
                "RECORD_STORE_BACKEND is 'supabase' but SUPABASE_URL is empty. "
                "The app will operate on the local cache only."
            )

        if not self.TWILIO_ACCOUNT_SID:
            _log.warning(
                "TWILIO_ACCOUNT_SID is empty. Warehouse-arrival SMS are disabled."
            )

        return self

    @property
    def sms_configured(self) -> bool:
        """``True`` when every Twilio credential is present."""
        return bool(
            self.TWILIO_ACCOUNT_SID
            and self.TWILIO_AUTH_TOKEN.get_secret_value()
            and self.TWILIO_PHONE_NUMBER
        )

    @property
    def local_cache_path(self) -> Path:
        return Path(self.LOCAL_CACHE_PATH)

    @property
    def record_store_path(self) -> Path:
        return Path(self.RECORD_STORE_PATH)


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    Uses a check-lock-check pattern so the fast path does not take the
    lock once the instance exists.  Prefer constructor injection of
    ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
