"""Per-release processing with injected fetchers."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Dict, List

import pytest

from GdvmRegistry.ReleaseSync.errors import DownloadFailure, ReleaseFatalError
from GdvmRegistry.ReleaseSync.events import Status, StatusEvent
from GdvmRegistry.ReleaseSync.models import (
    Asset,
    BinaryRecord,
    BinaryTable,
    ReleaseRecord,
    SelectedRelease,
    SelectionReason,
    Slot,
    UpstreamRelease,
)
from GdvmRegistry.ReleaseSync.processor import ReleaseProcessor
from GdvmRegistry.ReleaseSync.storage import RecordStore

TAG = "4.2-stable"
BASE = f"https://github.com/godotengine/godot-builds/releases/download/{TAG}"


def _digest(body: bytes) -> str:
    return hashlib.sha512(body).hexdigest()


class FakeHost:
    """Serves asset bodies by URL; ``failures`` makes the next N digests fail."""

    def __init__(self, files: Dict[str, bytes], *, sums: bool = True) -> None:
        self.bodies = {f"{BASE}/{name}": body for name, body in files.items()}
        if sums:
            text = "".join(f"{_digest(body)}  {name}\n" for name, body in files.items())
            self.bodies[f"{BASE}/SHA512-SUMS.txt"] = text.encode("utf-8")
        self.failures: Dict[str, int] = {}
        self.digest_calls: List[str] = []

    def fetch_text(self, url: str) -> str:
        return self.bodies[url].decode("utf-8")

    def digest_for_url(self, url: str) -> str:
        self.digest_calls.append(url)
        if self.failures.get(url, 0) > 0:
            self.failures[url] -= 1
            raise DownloadFailure(f"503 Service Unavailable - {url}", status_code=503, retryable=True)
        return _digest(self.bodies[url])

    def assets(self) -> List[Asset]:
        return [Asset(url.rsplit("/", 1)[-1], url) for url in self.bodies]


def _selected(host: FakeHost, release_id: int = 42) -> SelectedRelease:
    release = UpstreamRelease(id=release_id, tag_name=TAG, assets=tuple(host.assets()))
    return SelectedRelease(release=release, reason=SelectionReason.NEW)


def _processor(tmp_path: Path, host: FakeHost) -> ReleaseProcessor:
    return ReleaseProcessor(
        RecordStore(tmp_path),
        release_url=lambda tag: f"https://github.com/godotengine/godot-builds/releases/tag/{tag}",
        max_attempts=3,
        fetch_text=host.fetch_text,
        digest_for_url=host.digest_for_url,
    )


def test_process_writes_record_for_classified_assets(tmp_path: Path) -> None:
    host = FakeHost(
        {
            "Godot_v4.2-stable_win64.exe.zip": b"win64",
            "Godot_v4.2-stable_linux.x86_64.zip": b"linux",
            "Godot_v4.2-stable_export_templates.tpz": b"templates",
        }
    )
    events: List[StatusEvent] = []

    processed = _processor(tmp_path, host).process(_selected(host), emit=events.append)

    assert processed.path == tmp_path / f"42_{TAG}.json"
    assert processed.path.is_file()
    record = processed.record
    assert record.url.endswith(f"/releases/tag/{TAG}")
    assert record.binaries.get(Slot("windows", "x86_64")) == BinaryRecord(
        _digest(b"win64"), (f"{BASE}/Godot_v4.2-stable_win64.exe.zip",)
    )
    assert list(record.binaries) == [Slot("linux", "x86_64"), Slot("windows", "x86_64")]
    statuses = [event.status for event in events]
    assert statuses.count(Status.OK) == 2
    assert Status.SKIP_UNKNOWN in statuses
    assert statuses[-1] is Status.SAVED


def test_first_asset_in_canonical_order_claims_slot(tmp_path: Path) -> None:
    host = FakeHost(
        {
            "Godot_v3.5-stable_linux_server.64.zip": b"server",
            "Godot_v3.5-stable_x11.64.zip": b"x11",
        }
    )
    events: List[StatusEvent] = []

    record = _processor(tmp_path, host).process(_selected(host), emit=events.append).record

    assert record.binaries.get(Slot("linux", "x86_64")).sha512 == _digest(b"x11")
    skipped = [event for event in events if event.status is Status.SKIP_EXTRA]
    assert [event.file for event in skipped] == ["Godot_v3.5-stable_linux_server.64.zip"]
    assert f"{BASE}/Godot_v3.5-stable_linux_server.64.zip" not in host.digest_calls


def test_previous_digest_only_counts_for_same_url(tmp_path: Path) -> None:
    host = FakeHost({"Godot_v4.2-stable_win64.exe.zip": b"win64"}, sums=False)
    processor = _processor(tmp_path, host)
    stale = BinaryTable()
    stale.set(Slot("windows", "x86_64"), BinaryRecord("0" * 128, ("https://elsewhere.example/win64.zip",)))
    processor.store.write(ReleaseRecord(42, TAG, "https://x", stale))
    events: List[StatusEvent] = []

    processor.process(_selected(host), emit=events.append)

    verification = [event for event in events if event.slot == "windows/x86_64" and event.sha512]
    assert [event.status for event in verification] == [Status.OK]


def test_changed_digest_without_manifest_is_reported(tmp_path: Path) -> None:
    host = FakeHost({"Godot_v4.2-stable_win64.exe.zip": b"win64"}, sums=False)
    processor = _processor(tmp_path, host)
    stale = BinaryTable()
    stale.set(Slot("windows", "x86_64"), BinaryRecord("0" * 128, (f"{BASE}/Godot_v4.2-stable_win64.exe.zip",)))
    processor.store.write(ReleaseRecord(42, TAG, "https://x", stale))
    events: List[StatusEvent] = []

    record = processor.process(_selected(host), emit=events.append).record

    assert Status.CHANGED in [event.status for event in events]
    assert record.binaries.get(Slot("windows", "x86_64")).sha512 == _digest(b"win64")


def test_transient_failures_are_retried_and_reported(tmp_path: Path) -> None:
    host = FakeHost({"Godot_v4.2-stable_win64.exe.zip": b"win64"})
    host.failures[f"{BASE}/Godot_v4.2-stable_win64.exe.zip"] = 2
    events: List[StatusEvent] = []

    _processor(tmp_path, host).process(_selected(host), emit=events.append)

    statuses = [event.status for event in events]
    assert statuses.count(Status.RETRY) == 2
    assert statuses.count(Status.ERROR) == 2
    assert Status.OK in statuses


def test_exhausted_retries_abort_release_and_keep_previous_record(tmp_path: Path) -> None:
    host = FakeHost({"Godot_v4.2-stable_win64.exe.zip": b"win64"})
    host.failures[f"{BASE}/Godot_v4.2-stable_win64.exe.zip"] = 3
    processor = _processor(tmp_path, host)
    previous = ReleaseRecord(42, TAG, "https://x", BinaryTable())
    path = processor.store.write(previous)
    before = path.read_bytes()
    events: List[StatusEvent] = []

    with pytest.raises(ReleaseFatalError) as excinfo:
        processor.process(_selected(host), emit=events.append)

    assert excinfo.value.release_id == 42
    assert TAG in str(excinfo.value)
    assert path.read_bytes() == before
    assert len(host.digest_calls) == 3
    assert [event.status for event in events].count(Status.ERROR) == 2


def test_release_without_binaries_still_gets_record(tmp_path: Path) -> None:
    host = FakeHost({"Godot_v4.2-stable_web_editor.zip": b"web"}, sums=False)

    processed = _processor(tmp_path, host).process(_selected(host))

    assert len(processed.record.binaries) == 0
    assert processed.path.is_file()
