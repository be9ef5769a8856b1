"""
core/config.py -- Workdesk settings, read from the environment and an optional .env.

Every environment variable Workdesk understands is a field on Settings; other
modules call get_settings() and never read os.environ themselves. Field names
map to upper-case variables (firebase_project_id -> FIREBASE_PROJECT_ID).

get_settings() is cached, so Settings is built once per process. Tests that
need different values construct Settings(...) directly or clear the cache.

Remote sync:
  An empty FIREBASE_PROJECT_ID disables the remote mirror entirely. The
  directory then lives only in the local store.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
remote/, or storage/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("workdesk.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'workdesk_local.db'}"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class Settings(BaseSettings):
    """Every field has a default, so a bare Settings() works on a fresh checkout."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # Local key/value store. One SQLite file per device.
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    users_collection: str = "app_users"
    # Seed credentials for the first admin on a fresh, unprovisioned team.
    default_admin_password: str = "admin"
    default_admin_display_name: str = "Administrator"

    # ------------------------------------------------------------------
    # Remote document store (Firestore REST)
    # ------------------------------------------------------------------

    firebase_project_id: str = ""
    firebase_api_key: str = ""
    firestore_base_url: str = "https://firestore.googleapis.com/v1"
    remote_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def remote_enabled(self) -> bool:
        return bool(self.firebase_project_id)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Normalize and sanity-check resolved values.

        users_collection is the remote document path segment for every user
        record; an empty value would address the database root.

        The well-known default admin password is accepted (a fresh team must
        be able to log in once) but outside debug mode it is worth a warning.
        """
        self.users_collection = self.users_collection.strip()
        if not self.users_collection:
            raise ValueError("USERS_COLLECTION must not be empty.")
        if "/" in self.users_collection:
            raise ValueError("USERS_COLLECTION must be a single path segment.")

        level = self.log_level.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}, got {self.log_level!r}.")
        self.log_level = level

        if not self.default_admin_password:
            raise ValueError("DEFAULT_ADMIN_PASSWORD must not be empty.")
        if self.default_admin_password == "admin" and not self.debug:
            logger.warning(
                "Using the built-in default admin password. "
                "Change it after first login or set DEFAULT_ADMIN_PASSWORD."
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call."""
    return Settings()
