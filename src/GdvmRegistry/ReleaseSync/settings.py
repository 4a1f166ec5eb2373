# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.settings",
#   "purpose": "Pydantic settings model for the release registry and its process-wide cache",
#   "sections": [
#     {
#       "id": "registrysettings",
#       "name": "RegistrySettings",
#       "anchor": "class-registrysettings",
#       "kind": "class"
#     },
#     {
#       "id": "get-settings",
#       "name": "get_settings",
#       "anchor": "function-get-settings",
#       "kind": "function"
#     },
#     {
#       "id": "reset-settings",
#       "name": "reset_settings",
#       "anchor": "function-reset-settings",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Configuration for the release registry synchronizer.

Settings are read from ``GDVM_REGISTRY_*`` environment variables through
``pydantic-settings``.  Two legacy variables are honoured as well so existing
CI jobs keep working: ``WORKERS`` overrides the worker pool size and
``GITHUB_TOKEN`` authenticates API calls.  A ``.github_token`` file in the
working directory takes precedence over the environment token.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "DEFAULT_REFRESH_WINDOW",
    "DEFAULT_MAX_ATTEMPTS",
    "RegistrySettings",
    "get_settings",
    "reset_settings",
    "warn_if_unauthenticated",
]

DEFAULT_REFRESH_WINDOW = 3
DEFAULT_MAX_ATTEMPTS = 3
TOKEN_FILE_NAME = ".github_token"

_SETTINGS_CACHE: Optional["RegistrySettings"] = None
_SETTINGS_LOCK = threading.Lock()
_TOKEN_WARNING_EMITTED = False


class RegistrySettings(BaseSettings):
    """Runtime settings for one registry synchronization run."""

    model_config = SettingsConfigDict(
        env_prefix="GDVM_REGISTRY_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    owner: str = Field(default="godotengine", description="Upstream repository owner")
    repo: str = Field(default="godot-builds", description="Upstream repository name")
    api_base_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the release listing API",
    )
    registry_dir: Path = Field(
        default=Path("."),
        description="Directory holding the index file and the releases directory",
    )
    index_name: str = Field(default="index.json", description="Index file name")
    releases_dir_name: str = Field(default="releases", description="Record directory name")
    per_page: int = Field(default=100, ge=1, le=100, description="Releases per listing page")
    refresh_window: int = Field(
        default=DEFAULT_REFRESH_WINDOW,
        ge=0,
        description="Number of most recent indexed releases always reprocessed",
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        le=20,
        description="Attempts per network operation before giving up",
    )
    workers: Optional[int] = Field(
        default=None,
        ge=1,
        validation_alias=AliasChoices("GDVM_REGISTRY_WORKERS", "WORKERS", "workers"),
        description="Worker pool size (defaults to the CPU count)",
    )
    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("GDVM_REGISTRY_GITHUB_TOKEN", "GITHUB_TOKEN", "github_token"),
        description="API token sent as an Authorization header",
        repr=False,
    )
    user_agent: str = Field(default="gdvm-indexer", description="User-Agent header value")
    timeout_sec: float = Field(default=60.0, gt=0.0, le=3600.0, description="HTTP timeout")
    log_level: str = Field(default="INFO", description="Logging level name")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSONL logs")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> str:
        """Uppercase and validate the configured log level."""

        level = str(value or "INFO").strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"unsupported log level '{value}'")
        return level

    @field_validator("github_token", mode="before")
    @classmethod
    def blank_token_is_none(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        token = str(value).strip()
        return token or None

    @property
    def index_path(self) -> Path:
        return self.registry_dir / self.index_name

    @property
    def releases_dir(self) -> Path:
        return self.registry_dir / self.releases_dir_name

    @property
    def release_url_prefix(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/releases/tag/"

    @property
    def download_url_prefix(self) -> str:
        return f"https://github.com/{self.owner}/{self.repo}/releases/download/"

    def release_url(self, tag: str) -> str:
        """Return the human-facing release page URL for ``tag``."""

        return f"{self.release_url_prefix}{tag}"

    def releases_api_url(self, *, page: int, per_page: Optional[int] = None) -> str:
        size = per_page or self.per_page
        base = self.api_base_url.rstrip("/")
        return f"{base}/repos/{self.owner}/{self.repo}/releases?per_page={size}&page={page}"

    def resolved_workers(self, override: Optional[int] = None) -> int:
        """Return the worker pool size, preferring ``override`` when given."""

        if override is not None:
            return max(1, override)
        if self.workers is not None:
            return self.workers
        return max(1, os.cpu_count() or 1)

    def resolved_token(self, cwd: Optional[Path] = None) -> Optional[str]:
        """Return the API token, reading ``.github_token`` before the environment."""

        token_file = (cwd or Path.cwd()) / TOKEN_FILE_NAME
        try:
            file_token = token_file.read_text(encoding="utf-8").strip()
        except OSError:
            file_token = ""
        return file_token or self.github_token

    def config_hash(self) -> str:
        """Compute a deterministic hash of the settings for provenance logging."""

        payload = self.model_dump(mode="json", exclude={"github_token"})
        config_str = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(config_str.encode("utf-8")).hexdigest()[:16]


def warn_if_unauthenticated(settings: RegistrySettings, logger: logging.Logger) -> None:
    """Log once per process when API requests will be sent without a token."""

    global _TOKEN_WARNING_EMITTED  # noqa: PLW0603

    if _TOKEN_WARNING_EMITTED or settings.resolved_token():
        return
    logger.warning(
        "no GitHub token found; unauthenticated requests are limited to 60/hour",
        extra={"stage": "config"},
    )
    _TOKEN_WARNING_EMITTED = True


def get_settings() -> RegistrySettings:
    """Return the process-wide settings instance, loading it on first use."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    if _SETTINGS_CACHE is not None:
        return _SETTINGS_CACHE
    with _SETTINGS_LOCK:
        if _SETTINGS_CACHE is None:
            _SETTINGS_CACHE = RegistrySettings()
        return _SETTINGS_CACHE


def reset_settings() -> None:
    """Invalidate the cached settings instance."""

    global _SETTINGS_CACHE  # noqa: PLW0603

    with _SETTINGS_LOCK:
        _SETTINGS_CACHE = None
