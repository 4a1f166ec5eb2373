"""Post-barrier merge of processed releases into the durable index.

Only the coordinator calls into this module, and only after every worker
has exited, so the index has a single writer.  Releases that failed this run
never reach the reconciler: their previous index entry (if any) and record
file stay as they were.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence

from .models import IndexEntry, ProcessedRelease
from .storage import RecordStore, sort_index

__all__ = ["ReconcileResult", "reconcile_index"]

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    entries: List[IndexEntry]
    removed_entries: List[IndexEntry] = field(default_factory=list)
    removed_files: List[Path] = field(default_factory=list)


def reconcile_index(
    previous: Sequence[IndexEntry],
    processed: Sequence[ProcessedRelease],
    *,
    store: RecordStore,
    rebuild: bool = False,
) -> ReconcileResult:
    """Return the new index after merging ``processed`` releases.

    In rebuild mode the index is exactly the processed releases.  In
    incremental mode the previous index is the starting point; a re-release
    first evicts the stale entry sharing its name, deleting that entry's
    record file, before its own entry is inserted.
    """

    by_id: Dict[int, IndexEntry] = {}
    id_by_name: Dict[str, int] = {}
    result = ReconcileResult(entries=[])

    if not rebuild:
        for entry in previous:
            by_id[entry.id] = entry
            id_by_name[entry.name] = entry.id

    for item in processed:
        release = item.selected.release
        if item.selected.is_rerelease:
            stale_id = id_by_name.get(release.tag_name)
            if stale_id is not None and stale_id != release.id:
                stale = by_id.pop(stale_id)
                result.removed_entries.append(stale)
                removed = store.remove(stale.id, stale.name)
                if removed is not None:
                    result.removed_files.append(removed)
                logger.info(
                    "removed superseded release",
                    extra={
                        "stage": "reconcile",
                        "release": release.tag_name,
                        "previous_id": stale_id,
                        "release_id": release.id,
                    },
                )
        by_id[release.id] = IndexEntry(id=release.id, name=release.tag_name)
        id_by_name[release.tag_name] = release.id

    result.entries = sort_index(by_id.values())
    return result
