# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.distribution",
#   "purpose": "Partition selected releases across a worker pool and coordinate their events",
#   "sections": [
#     {
#       "id": "chunk-releases",
#       "name": "chunk_releases",
#       "anchor": "function-chunk-releases",
#       "kind": "function"
#     },
#     {
#       "id": "progresstracker",
#       "name": "ProgressTracker",
#       "anchor": "class-progresstracker",
#       "kind": "class"
#     },
#     {
#       "id": "workdistributor",
#       "name": "WorkDistributor",
#       "anchor": "class-workdistributor",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Parallel release processing with a single coordinating consumer.

Selected releases are split into contiguous, near-equal chunks, one per
worker.  Each worker processes its chunk sequentially and owns the record
files of those releases exclusively, so no locking is needed.  Workers
report everything through typed events on one queue; the coordinator loop
is the only place aggregate state (completed count, in-flight set, results)
is mutated.  A failing release costs only itself: the worker reports it and
moves on to the next release in its chunk.
"""

from __future__ import annotations

import logging
import math
import queue
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Union

from .errors import RegistryError
from .events import (
    ReleaseFailed,
    ReleaseSaved,
    ReleaseStarted,
    Status,
    StatusEvent,
    WorkerEvent,
    WorkerExited,
)
from .logging_utils import format_status_line, log_with_extra
from .models import ProcessedRelease, SelectedRelease
from .processor import ReleaseProcessor

__all__ = [
    "chunk_releases",
    "ProgressTracker",
    "ReleaseFailure",
    "DistributionResult",
    "WorkDistributor",
]

_ACTIVE_PREVIEW = 3


def chunk_releases(releases: Sequence[SelectedRelease], workers: int) -> List[List[SelectedRelease]]:
    """Split ``releases`` into at most ``workers`` contiguous chunks.

    Examples:
        >>> [len(chunk) for chunk in chunk_releases(list(range(7)), 3)]
        [3, 3, 1]
    """

    if workers < 1:
        raise ValueError("workers must be at least 1")
    total = len(releases)
    if total == 0:
        return []
    size = math.ceil(total / workers)
    return [list(releases[start : start + size]) for start in range(0, total, size)]


@dataclass
class ReleaseFailure:
    release_id: int
    tag: str
    error: str


@dataclass
class ProgressTracker:
    """Aggregate progress owned by the coordinator."""

    total: int
    completed: int = 0
    failed: int = 0
    active: Set[str] = field(default_factory=set)

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 1.0
        return (self.completed + self.failed) / self.total

    def start(self, tag: str) -> None:
        self.active.add(tag)

    def finish(self, tag: str, *, ok: bool) -> None:
        self.active.discard(tag)
        if ok:
            self.completed += 1
        else:
            self.failed += 1

    def describe(self) -> str:
        preview = sorted(self.active)[:_ACTIVE_PREVIEW]
        more = f", …(+{len(self.active) - _ACTIVE_PREVIEW})" if len(self.active) > _ACTIVE_PREVIEW else ""
        active = f"  {{ {', '.join(preview)}{more} }}" if self.active else ""
        done = self.completed + self.failed
        return f"{self.fraction * 100:5.1f}%  {done}/{self.total} done  {len(self.active)} active{active}"


@dataclass
class DistributionResult:
    processed: List[ProcessedRelease] = field(default_factory=list)
    failures: List[ReleaseFailure] = field(default_factory=list)
    workers: int = 0

    @property
    def ok(self) -> bool:
        return not self.failures


def _run_chunk(
    worker_id: int,
    chunk: Sequence[SelectedRelease],
    processor: ReleaseProcessor,
    outbox: "queue.Queue[WorkerEvent]",
) -> None:
    """Worker body: process ``chunk`` in order, reporting through ``outbox``."""

    try:
        for selected in chunk:
            outbox.put(ReleaseStarted(worker=worker_id, release_id=selected.id, tag=selected.tag))
            try:
                processed = processor.process(selected, emit=outbox.put)
            except (RegistryError, OSError) as exc:
                outbox.put(
                    ReleaseFailed(
                        worker=worker_id,
                        release_id=selected.id,
                        tag=selected.tag,
                        error=str(exc),
                    )
                )
                continue
            outbox.put(ReleaseSaved(worker=worker_id, processed=processed))
    finally:
        outbox.put(WorkerExited(worker=worker_id))


class WorkDistributor:
    """Run a :class:`ReleaseProcessor` over releases on a fixed worker pool."""

    def __init__(
        self,
        processor: ReleaseProcessor,
        *,
        workers: int,
        logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.processor = processor
        self.workers = workers
        self.log = logger or logging.getLogger(__name__)

    def _handle(
        self,
        event: WorkerEvent,
        progress: ProgressTracker,
        result: DistributionResult,
    ) -> bool:
        """Apply one event to coordinator state; return ``True`` on worker exit."""

        if isinstance(event, WorkerExited):
            return True
        if isinstance(event, StatusEvent):
            level = logging.WARNING if event.status in {
                Status.ERROR,
                Status.SUMS_MISMATCH,
                Status.INCONSISTENT,
                Status.SKIP_UNKNOWN,
                Status.SKIP_EXTRA,
            } else logging.INFO
            log_with_extra(
                self.log,
                level,
                format_status_line(event),
                {"stage": "process", "release": event.tag, "status": event.status.value},
            )
            return False
        if isinstance(event, ReleaseStarted):
            progress.start(event.tag)
        elif isinstance(event, ReleaseSaved):
            progress.finish(event.tag, ok=True)
            result.processed.append(event.processed)
        elif isinstance(event, ReleaseFailed):
            progress.finish(event.tag, ok=False)
            result.failures.append(ReleaseFailure(event.release_id, event.tag, event.error))
            log_with_extra(
                self.log,
                logging.ERROR,
                "release failed",
                {"stage": "process", "release": event.tag, "error": event.error},
            )
        log_with_extra(
            self.log,
            logging.INFO,
            progress.describe(),
            {"stage": "progress", "completed": progress.completed, "total": progress.total},
        )
        return False

    def run(self, releases: Sequence[SelectedRelease]) -> DistributionResult:
        """Process ``releases`` and wait for every worker before returning."""

        chunks = chunk_releases(releases, self.workers)
        result = DistributionResult(workers=len(chunks))
        if not chunks:
            return result

        order = {item.id: position for position, item in enumerate(releases)}
        progress = ProgressTracker(total=len(releases))
        outbox: "queue.Queue[WorkerEvent]" = queue.Queue()
        log_with_extra(
            self.log,
            logging.INFO,
            "starting workers",
            {"stage": "process", "workers": len(chunks), "chunk_size": len(chunks[0])},
        )

        with ThreadPoolExecutor(max_workers=len(chunks), thread_name_prefix="release-worker") as executor:
            futures = [
                executor.submit(_run_chunk, worker_id, chunk, self.processor, outbox)
                for worker_id, chunk in enumerate(chunks)
            ]
            running = len(futures)
            while running:
                if self._handle(outbox.get(), progress, result):
                    running -= 1
            for future in futures:
                # Surfaces programming errors raised outside per-release handling.
                future.result()

        result.processed.sort(key=lambda item: order[item.selected.id])
        result.failures.sort(key=lambda item: order[item.release_id])
        return result
