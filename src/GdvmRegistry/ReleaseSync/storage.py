# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.storage",
#   "purpose": "Record store and index persistence with canonical JSON serialization",
#   "sections": [
#     {
#       "id": "sanitize-release-name",
#       "name": "sanitize_release_name",
#       "anchor": "function-sanitize-release-name",
#       "kind": "function"
#     },
#     {
#       "id": "dumps-canonical",
#       "name": "dumps_canonical",
#       "anchor": "function-dumps-canonical",
#       "kind": "function"
#     },
#     {
#       "id": "write-json-atomic",
#       "name": "write_json_atomic",
#       "anchor": "function-write-json-atomic",
#       "kind": "function"
#     },
#     {
#       "id": "recordstore",
#       "name": "RecordStore",
#       "anchor": "class-recordstore",
#       "kind": "class"
#     },
#     {
#       "id": "load-index",
#       "name": "load_index",
#       "anchor": "function-load-index",
#       "kind": "function"
#     },
#     {
#       "id": "write-index",
#       "name": "write_index",
#       "anchor": "function-write-index",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Persistence for release records and the release index.

Both file kinds share one serialization: keys sorted at every level, tab
indentation, non-ASCII kept verbatim, and a trailing newline.  Writes go
through a temporary file in the destination directory followed by
``os.replace`` so a record is never observed half-written.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .errors import RecordError
from .models import BinaryTable, IndexEntry, ReleaseRecord

__all__ = [
    "sanitize_release_name",
    "record_file_name",
    "dumps_canonical",
    "write_json_atomic",
    "RecordStore",
    "load_index",
    "write_index",
    "sort_index",
]

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^\w.-]+", re.ASCII)


def sanitize_release_name(name: str) -> str:
    """Collapse runs of characters outside ``[\\w.-]`` into ``_``."""

    return _UNSAFE_NAME_CHARS.sub("_", name)


def record_file_name(release_id: int, name: str) -> str:
    """Return the record file name for a release."""

    return f"{release_id}_{sanitize_release_name(name)}.json"


def dumps_canonical(payload: object) -> str:
    """Serialize ``payload`` in the registry's canonical JSON form."""

    return json.dumps(payload, indent="\t", sort_keys=True, ensure_ascii=False) + "\n"


def write_json_atomic(path: Path, payload: object) -> Path:
    """Atomically persist ``payload`` as canonical JSON to ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        handle.write(dumps_canonical(payload))
        handle.flush()
        try:
            os.fsync(handle.fileno())
        except OSError:
            pass
        temp_name = handle.name
    try:
        os.replace(temp_name, path)
    except OSError:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return path


def _read_json(path: Path) -> object:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RecordError(f"{path}: invalid JSON ({exc.msg})") from exc


class RecordStore:
    """Directory of ``<id>_<sanitized-name>.json`` release records."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def path_for(self, release_id: int, name: str) -> Path:
        return self.root / record_file_name(release_id, name)

    def exists(self, release_id: int, name: str) -> bool:
        return self.path_for(release_id, name).is_file()

    def load(self, release_id: int, name: str) -> Optional[ReleaseRecord]:
        """Return the stored record, or ``None`` when it does not exist."""

        path = self.path_for(release_id, name)
        try:
            payload = _read_json(path)
        except FileNotFoundError:
            return None
        return ReleaseRecord.from_dict(payload)

    def load_binaries(self, release_id: int, name: str) -> BinaryTable:
        """Return previously resolved binaries, or an empty table.

        A missing record means the release is seen for the first time.  An
        unreadable record is logged and treated the same way; the next write
        replaces it.
        """

        try:
            record = self.load(release_id, name)
        except (RecordError, OSError) as exc:
            logger.warning(
                "ignoring unreadable release record",
                extra={"stage": "process", "release": name, "error": str(exc)},
            )
            return BinaryTable()
        return record.binaries if record is not None else BinaryTable()

    def write(self, record: ReleaseRecord) -> Path:
        return write_json_atomic(self.path_for(record.id, record.name), record.to_dict())

    def remove(self, release_id: int, name: str) -> Optional[Path]:
        """Delete a record file, returning its path if something was removed."""

        path = self.path_for(release_id, name)
        try:
            path.unlink()
        except FileNotFoundError:
            return None
        return path

    def list_record_files(self) -> List[Path]:
        if not self.root.is_dir():
            return []
        return sorted(path for path in self.root.glob("*.json") if path.is_file())


def sort_index(entries: Iterable[IndexEntry]) -> List[IndexEntry]:
    """Return ``entries`` newest first."""

    return sorted(entries, key=lambda entry: entry.id, reverse=True)


def load_index(path: Path) -> List[IndexEntry]:
    """Load the durable index; a missing file is an empty index."""

    try:
        payload = _read_json(path)
    except FileNotFoundError:
        return []
    if not isinstance(payload, list):
        raise RecordError(f"{path}: index must be a JSON array")
    return [IndexEntry.from_dict(item) for item in payload]


def write_index(path: Path, entries: Sequence[IndexEntry]) -> Path:
    """Persist ``entries`` sorted by id descending."""

    return write_json_atomic(path, [entry.to_dict() for entry in sort_index(entries)])
