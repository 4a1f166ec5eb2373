"""Data model shared by the selector, processor, reconciler, and validator.

Records are plain frozen dataclasses.  ``BinaryTable`` is the explicit
two-level ``platform -> architecture -> BinaryRecord`` mapping persisted in
each release record; it always serializes with sorted keys so that record
files are byte-stable across runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from .errors import RecordError

__all__ = [
    "SHA512_PATTERN",
    "Asset",
    "Slot",
    "BinaryRecord",
    "BinaryTable",
    "ReleaseRecord",
    "IndexEntry",
    "UpstreamRelease",
    "SelectionReason",
    "SelectedRelease",
    "ProcessedRelease",
    "is_sha512",
]

SHA512_PATTERN = re.compile(r"^[0-9a-f]{128}$")


def is_sha512(value: object) -> bool:
    """Return ``True`` when ``value`` is a lowercase 128-character hex digest."""

    return isinstance(value, str) and SHA512_PATTERN.match(value) is not None


@dataclass(slots=True, frozen=True)
class Asset:
    """One file attached to an upstream release."""

    name: str
    url: str


@dataclass(slots=True, frozen=True, order=True)
class Slot:
    """``(platform, architecture)`` bucket a canonical binary occupies."""

    platform: str
    arch: str

    @property
    def label(self) -> str:
        return f"{self.platform}/{self.arch}"


@dataclass(slots=True, frozen=True)
class BinaryRecord:
    """Trusted digest and download location for one slot."""

    sha512: str
    urls: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not is_sha512(self.sha512):
            raise RecordError(f"invalid sha512 digest {self.sha512!r}")
        if not self.urls:
            raise RecordError("binary record requires at least one url")

    def to_dict(self) -> Dict[str, Any]:
        return {"sha512": self.sha512, "urls": list(self.urls)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "BinaryRecord":
        urls = payload.get("urls")
        if not isinstance(urls, list) or not all(isinstance(url, str) for url in urls):
            raise RecordError("binary record 'urls' must be a list of strings")
        return cls(sha512=payload.get("sha512"), urls=tuple(urls))  # type: ignore[arg-type]


@dataclass
class BinaryTable:
    """Ordered ``platform -> architecture -> BinaryRecord`` mapping."""

    _entries: Dict[Slot, BinaryRecord] = field(default_factory=dict)

    def __contains__(self, slot: object) -> bool:
        return slot in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Slot]:
        return iter(sorted(self._entries))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BinaryTable):
            return NotImplemented
        return self._entries == other._entries

    def get(self, slot: Slot) -> Optional[BinaryRecord]:
        return self._entries.get(slot)

    def set(self, slot: Slot, record: BinaryRecord) -> None:
        self._entries[slot] = record

    def items(self) -> List[Tuple[Slot, BinaryRecord]]:
        return [(slot, self._entries[slot]) for slot in self]

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """Return the nested mapping with keys sorted at every level."""

        nested: Dict[str, Dict[str, Dict[str, Any]]] = {}
        for slot, record in self.items():
            nested.setdefault(slot.platform, {})[slot.arch] = record.to_dict()
        return {platform: dict(sorted(arches.items())) for platform, arches in sorted(nested.items())}

    @classmethod
    def from_dict(cls, payload: object) -> "BinaryTable":
        if not isinstance(payload, Mapping):
            raise RecordError("'binaries' must be an object")
        table = cls()
        for platform, arches in payload.items():
            if not isinstance(arches, Mapping):
                raise RecordError(f"platform '{platform}' must map architectures to binaries")
            for arch, record in arches.items():
                if not isinstance(record, Mapping):
                    raise RecordError(f"binary '{platform}/{arch}' must be an object")
                table.set(Slot(str(platform), str(arch)), BinaryRecord.from_dict(record))
        return table


@dataclass(slots=True, frozen=True)
class ReleaseRecord:
    """Persisted per-release document describing its resolved binaries."""

    id: int
    name: str
    url: str
    binaries: BinaryTable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "binaries": self.binaries.to_dict(),
            "id": self.id,
            "name": self.name,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, payload: object) -> "ReleaseRecord":
        if not isinstance(payload, Mapping):
            raise RecordError("release record must be an object")
        release_id = payload.get("id")
        name = payload.get("name")
        url = payload.get("url")
        if not isinstance(release_id, int) or isinstance(release_id, bool):
            raise RecordError("release record 'id' must be an integer")
        if not isinstance(name, str) or not isinstance(url, str):
            raise RecordError("release record 'name' and 'url' must be strings")
        return cls(
            id=release_id,
            name=name,
            url=url,
            binaries=BinaryTable.from_dict(payload.get("binaries", {})),
        )


@dataclass(slots=True, frozen=True)
class IndexEntry:
    """Pointer from the index into the record store."""

    id: int
    name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, payload: object) -> "IndexEntry":
        if not isinstance(payload, Mapping):
            raise RecordError("index entry must be an object")
        release_id = payload.get("id")
        name = payload.get("name")
        if not isinstance(release_id, int) or isinstance(release_id, bool):
            raise RecordError("index entry 'id' must be an integer")
        if not isinstance(name, str):
            raise RecordError("index entry 'name' must be a string")
        return cls(id=release_id, name=name)


@dataclass(slots=True, frozen=True)
class UpstreamRelease:
    """Release as reported by the upstream listing."""

    id: int
    tag_name: str
    assets: Tuple[Asset, ...] = ()

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "UpstreamRelease":
        assets = tuple(
            Asset(name=str(asset["name"]), url=str(asset["browser_download_url"]))
            for asset in payload.get("assets") or ()
        )
        return cls(id=int(payload["id"]), tag_name=str(payload["tag_name"]), assets=assets)


class SelectionReason(str, Enum):
    """Why a release was selected for (re)processing."""

    REBUILD = "rebuild"
    NEW = "new"
    REFRESH = "refresh"
    RERELEASE = "rerelease"


@dataclass(slots=True, frozen=True)
class SelectedRelease:
    """Upstream release paired with the reason it is processed this run."""

    release: UpstreamRelease
    reason: SelectionReason

    @property
    def id(self) -> int:
        return self.release.id

    @property
    def tag(self) -> str:
        return self.release.tag_name

    @property
    def is_rerelease(self) -> bool:
        return self.reason is SelectionReason.RERELEASE


@dataclass(slots=True, frozen=True)
class ProcessedRelease:
    """Successful outcome of processing one selected release."""

    selected: SelectedRelease
    record: ReleaseRecord
    path: Path
