"""Incremental release selection.

Upstream lists releases newest first and assigns ids monotonically, so the
walk can stop at the first release that is already indexed and needs no
refresh: every older page is unchanged.  A release is selected when

* a full rebuild was requested;
* its id is not in the index (new release);
* its id is one of the ``refresh_window`` most recent indexed ids, which
  catches assets uploaded after the release was first indexed;
* its tag already appears in the index under another id (re-release).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .models import IndexEntry, SelectedRelease, SelectionReason, UpstreamRelease
from .settings import DEFAULT_REFRESH_WINDOW
from .storage import sort_index
from .upstream import ReleaseSource

__all__ = ["Selection", "classify_release", "select_releases"]

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    """Releases chosen for processing, newest first."""

    releases: List[SelectedRelease] = field(default_factory=list)
    stopped_at: Optional[UpstreamRelease] = None
    pages_read: int = 0

    @property
    def rereleases(self) -> List[SelectedRelease]:
        return [item for item in self.releases if item.is_rerelease]

    def __len__(self) -> int:
        return len(self.releases)


def classify_release(
    release: UpstreamRelease,
    *,
    known_ids: Dict[int, str],
    known_names: Dict[str, int],
    refresh_ids: frozenset,
    rebuild: bool,
) -> Optional[SelectionReason]:
    """Return why ``release`` must be processed, or ``None`` if it is up to date."""

    if rebuild:
        return SelectionReason.REBUILD
    if release.tag_name in known_names and release.id not in known_ids:
        return SelectionReason.RERELEASE
    if release.id not in known_ids:
        return SelectionReason.NEW
    if release.id in refresh_ids:
        return SelectionReason.REFRESH
    return None


def select_releases(
    source: ReleaseSource,
    index: Sequence[IndexEntry],
    *,
    rebuild: bool = False,
    refresh_window: int = DEFAULT_REFRESH_WINDOW,
    per_page: int = 100,
) -> Selection:
    """Walk upstream pages and collect the releases this run must process."""

    entries: Sequence[IndexEntry] = () if rebuild else index
    known_ids = {entry.id: entry.name for entry in entries}
    known_names = {entry.name: entry.id for entry in entries}
    refresh_ids = frozenset(entry.id for entry in sort_index(entries)[: max(0, refresh_window)])

    if refresh_ids:
        logger.info(
            "refreshing most recent releases",
            extra={
                "stage": "select",
                "refresh": [known_ids[release_id] for release_id in sorted(refresh_ids, reverse=True)],
            },
        )

    selection = Selection()
    chosen: Dict[int, SelectedRelease] = {}
    for page in source.iter_pages(per_page):
        selection.pages_read += 1
        for release in page:
            reason = classify_release(
                release,
                known_ids=known_ids,
                known_names=known_names,
                refresh_ids=refresh_ids,
                rebuild=rebuild,
            )
            if reason is None:
                selection.stopped_at = release
                logger.info(
                    "found known release; stopping",
                    extra={
                        "stage": "select",
                        "release": release.tag_name,
                        "release_id": release.id,
                        "page": selection.pages_read,
                    },
                )
                break
            if reason is SelectionReason.RERELEASE:
                logger.info(
                    "found re-release",
                    extra={
                        "stage": "select",
                        "release": release.tag_name,
                        "release_id": release.id,
                        "previous_id": known_names[release.tag_name],
                    },
                )
            chosen.setdefault(release.id, SelectedRelease(release=release, reason=reason))
        if selection.stopped_at is not None:
            break

    selection.releases = sorted(chosen.values(), key=lambda item: item.id, reverse=True)
    return selection
