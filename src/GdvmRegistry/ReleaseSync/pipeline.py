"""End-to-end registry update: select, process in parallel, reconcile, persist."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .distribution import ReleaseFailure, WorkDistributor
from .logging_utils import generate_correlation_id, log_with_extra, setup_logging
from .models import IndexEntry, ProcessedRelease, SelectedRelease
from .network import get_http_client
from .processor import ReleaseProcessor
from .reconcile import reconcile_index
from .selection import select_releases
from .settings import RegistrySettings, get_settings, warn_if_unauthenticated
from .storage import RecordStore, load_index, write_index
from .upstream import GitHubReleaseSource, ReleaseSource

__all__ = ["RunSummary", "update_registry"]


@dataclass
class RunSummary:
    """Outcome of one :func:`update_registry` call."""

    selected: List[SelectedRelease] = field(default_factory=list)
    processed: List[ProcessedRelease] = field(default_factory=list)
    failures: List[ReleaseFailure] = field(default_factory=list)
    removed_files: List[Path] = field(default_factory=list)
    index: List[IndexEntry] = field(default_factory=list)
    index_written: bool = False
    workers: int = 0
    correlation_id: str = ""

    @property
    def ok(self) -> bool:
        return not self.failures


def update_registry(
    settings: Optional[RegistrySettings] = None,
    *,
    source: Optional[ReleaseSource] = None,
    rebuild: bool = False,
    workers: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
    correlation_id: Optional[str] = None,
) -> RunSummary:
    """Bring the registry at ``settings.registry_dir`` up to date with upstream.

    Args:
        settings: Run configuration; defaults to the process-wide settings.
        source: Release listing to walk; defaults to the GitHub REST API.
        rebuild: Ignore the existing index and reprocess every release.
        workers: Worker pool size overriding the configured value.
        logger: Logger to reuse instead of configuring one.
        correlation_id: Identifier attached to every log entry of the run.

    Returns:
        RunSummary describing what was selected, saved, failed, and removed.

    Raises:
        UpstreamError: If the release listing cannot be fetched.
        RecordError: If the existing index is unreadable.
    """

    active = settings or get_settings()
    log = logger or setup_logging(level=active.log_level, log_dir=active.log_dir)
    correlation = correlation_id or generate_correlation_id()
    adapter = logging.LoggerAdapter(log, extra={"correlation_id": correlation})
    warn_if_unauthenticated(active, log)
    get_http_client(active)

    summary = RunSummary(correlation_id=correlation)
    index_path = active.index_path
    previous: List[IndexEntry] = []
    if rebuild:
        log_with_extra(adapter, logging.INFO, "rebuild requested; ignoring existing index", {"stage": "select"})
    else:
        previous = load_index(index_path)
        log_with_extra(
            adapter,
            logging.INFO,
            "loaded index",
            {"stage": "select", "entries": len(previous), "path": str(index_path)},
        )

    selection = select_releases(
        source or GitHubReleaseSource(active),
        previous,
        rebuild=rebuild,
        refresh_window=active.refresh_window,
        per_page=active.per_page,
    )
    summary.selected = list(selection.releases)
    if not selection.releases:
        log_with_extra(adapter, logging.INFO, "no new releases", {"stage": "select", "pages": selection.pages_read})
        summary.index = previous
        return summary

    log_with_extra(
        adapter,
        logging.INFO,
        "selected releases",
        {
            "stage": "select",
            "count": len(selection.releases),
            "rereleases": len(selection.rereleases),
            "pages": selection.pages_read,
        },
    )

    store = RecordStore(active.releases_dir)
    store.root.mkdir(parents=True, exist_ok=True)
    processor = ReleaseProcessor(
        store,
        release_url=active.release_url,
        max_attempts=active.max_attempts,
    )
    pool_size = active.resolved_workers(workers)
    distributor = WorkDistributor(processor, workers=pool_size, logger=adapter)
    outcome = distributor.run(selection.releases)
    summary.workers = outcome.workers
    summary.processed = outcome.processed
    summary.failures = outcome.failures

    reconciled = reconcile_index(previous, outcome.processed, store=store, rebuild=rebuild)
    summary.removed_files = reconciled.removed_files
    summary.index = reconciled.entries
    write_index(index_path, reconciled.entries)
    summary.index_written = True

    log_with_extra(
        adapter,
        logging.INFO,
        "registry updated",
        {
            "stage": "reconcile",
            "saved": len(outcome.processed),
            "failed": len(outcome.failures),
            "removed": len(reconciled.removed_files),
            "entries": len(reconciled.entries),
        },
    )
    return summary
