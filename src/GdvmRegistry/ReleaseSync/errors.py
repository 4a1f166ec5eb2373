# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.errors",
#   "purpose": "Define the exception hierarchy used across release selection, processing, and validation",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "network", "name": "Upstream & Download Errors", "anchor": "NET", "kind": "api"},
#     {"id": "release", "name": "Release Errors", "anchor": "REL", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across release selection, processing, and validation.

The sync pipeline spans upstream pagination, asset downloads, digest
reconciliation, and record persistence.  Failures are grouped so the
coordinator can tell apart run-fatal problems (the release listing is
unusable) from failures that only cost a single release, which are reported
and skipped while sibling workers keep going.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "RegistryError",
    "ConfigError",
    "UpstreamError",
    "DownloadFailure",
    "ReleaseFatalError",
    "RecordError",
]


class RegistryError(RuntimeError):
    """Base exception for release registry synchronization failures."""


class ConfigError(RegistryError):
    """Raised when settings or CLI inputs are invalid."""


class UpstreamError(RegistryError):
    """Raised when the upstream release listing cannot be used."""


class DownloadFailure(RegistryError):
    """Raised when an HTTP request for a release asset fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ReleaseFatalError(RegistryError):
    """Raised when processing of exactly one release must be abandoned."""

    def __init__(self, release_id: int, tag: str, cause: BaseException) -> None:
        super().__init__(f"release {tag} ({release_id}) failed: {cause}")
        self.release_id = release_id
        self.tag = tag
        self.cause = cause


class RecordError(RegistryError):
    """Raised when a persisted record or index file has an invalid shape."""
