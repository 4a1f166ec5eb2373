"""Godot binary release registry synchronization.

The package mirrors upstream Godot releases into a static registry: one
JSON record per release listing a verified sha512 digest and download URL
for every ``platform/architecture`` slot, plus an ``index.json`` naming all
releases newest first.

Example:
    >>> from GdvmRegistry.ReleaseSync import RegistrySettings, update_registry
    >>> summary = update_registry(RegistrySettings(registry_dir=Path("registry")))  # doctest: +SKIP
    >>> summary.ok  # doctest: +SKIP
    True
"""

from __future__ import annotations

__version__ = "1.0.0"

from .errors import (
    ConfigError,
    DownloadFailure,
    RecordError,
    RegistryError,
    ReleaseFatalError,
    UpstreamError,
)
from .pipeline import RunSummary, update_registry
from .settings import RegistrySettings, get_settings
from .validation import ValidationReport, validate_registry

__all__ = [
    "__version__",
    "ConfigError",
    "DownloadFailure",
    "RecordError",
    "RegistryError",
    "ReleaseFatalError",
    "UpstreamError",
    "RegistrySettings",
    "get_settings",
    "RunSummary",
    "update_registry",
    "ValidationReport",
    "validate_registry",
]
