"""Typed events exchanged between release workers and the coordinator.

Workers never touch shared state.  Everything the coordinator needs to
track progress, render log lines, and collect results travels as one of the
frozen dataclasses below over the coordinator's event queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .models import ProcessedRelease

__all__ = [
    "Status",
    "VERIFICATION_STATUSES",
    "StatusEvent",
    "ReleaseStarted",
    "ReleaseSaved",
    "ReleaseFailed",
    "WorkerExited",
    "WorkerEvent",
]


class Status(str, Enum):
    """Closed set of status labels reported while processing a release."""

    DOWNLOAD = "download"
    RETRY = "retry"
    SAVED = "saved"
    SKIP_UNKNOWN = "skip-unknown"
    SKIP_EXTRA = "skip-extra"
    OK = "ok"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    VERIFIED = "verified"
    SUMS_MISMATCH = "sums-mismatch"
    INCONSISTENT = "inconsistent"
    ERROR = "error"


VERIFICATION_STATUSES = frozenset(
    {
        Status.OK,
        Status.UPDATED,
        Status.UNCHANGED,
        Status.CHANGED,
        Status.VERIFIED,
        Status.SUMS_MISMATCH,
        Status.INCONSISTENT,
    }
)


@dataclass(slots=True, frozen=True)
class StatusEvent:
    """One status line about a release, optionally scoped to a slot and file."""

    status: Status
    tag: str
    slot: Optional[str] = None
    file: Optional[str] = None
    sha512: Optional[str] = None
    note: str = ""


@dataclass(slots=True, frozen=True)
class ReleaseStarted:
    worker: int
    release_id: int
    tag: str


@dataclass(slots=True, frozen=True)
class ReleaseSaved:
    worker: int
    processed: ProcessedRelease

    @property
    def tag(self) -> str:
        return self.processed.selected.tag

    @property
    def path(self) -> Path:
        return self.processed.path


@dataclass(slots=True, frozen=True)
class ReleaseFailed:
    worker: int
    release_id: int
    tag: str
    error: str


@dataclass(slots=True, frozen=True)
class WorkerExited:
    worker: int


WorkerEvent = Union[StatusEvent, ReleaseStarted, ReleaseSaved, ReleaseFailed, WorkerExited]
