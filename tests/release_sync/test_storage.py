"""Record store and index persistence."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from GdvmRegistry.ReleaseSync.errors import RecordError
from GdvmRegistry.ReleaseSync.models import BinaryRecord, BinaryTable, IndexEntry, ReleaseRecord, Slot
from GdvmRegistry.ReleaseSync.storage import (
    RecordStore,
    dumps_canonical,
    load_index,
    record_file_name,
    sanitize_release_name,
    write_index,
    write_json_atomic,
)

DIGEST = "d" * 128


def _record(release_id: int = 7, name: str = "4.2-stable") -> ReleaseRecord:
    binaries = BinaryTable()
    binaries.set(Slot("windows", "x86_64"), BinaryRecord(DIGEST, ("https://example.org/win64.zip",)))
    binaries.set(Slot("linux", "x86_64"), BinaryRecord(DIGEST, ("https://example.org/linux.zip",)))
    return ReleaseRecord(
        id=release_id,
        name=name,
        url=f"https://github.com/godotengine/godot-builds/releases/tag/{name}",
        binaries=binaries,
    )


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("4.2.1-stable", "4.2.1-stable"),
        ("4.3 beta 1", "4.3_beta_1"),
        ("weird/../name", "weird_.._name"),
        ("a:*?b", "a_b"),
        ("dév", "d_v"),
    ],
)
def test_sanitize_release_name(name: str, expected: str) -> None:
    assert sanitize_release_name(name) == expected


def test_record_file_name_prefixes_id() -> None:
    assert record_file_name(123, "4.3 beta 1") == "123_4.3_beta_1.json"


def test_dumps_canonical_sorts_keys_with_tabs_and_newline() -> None:
    text = dumps_canonical({"b": 1, "a": {"d": "é", "c": [1]}})

    assert text == '{\n\t"a": {\n\t\t"c": [\n\t\t\t1\n\t\t],\n\t\t"d": "é"\n\t},\n\t"b": 1\n}\n'


def test_record_round_trips_and_serializes_sorted(tmp_path: Path) -> None:
    store = RecordStore(tmp_path / "releases")
    record = _record()

    path = store.write(record)

    assert path == tmp_path / "releases" / "7_4.2-stable.json"
    assert store.load(7, "4.2-stable") == record
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert list(payload) == ["binaries", "id", "name", "url"]
    assert list(payload["binaries"]) == ["linux", "windows"]
    assert payload["binaries"]["windows"]["x86_64"] == {
        "sha512": DIGEST,
        "urls": ["https://example.org/win64.zip"],
    }


def test_write_is_byte_stable(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    first = store.write(_record()).read_bytes()
    second = store.write(_record()).read_bytes()

    assert first == second


def test_write_json_atomic_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "index.json"

    write_json_atomic(target, [{"id": 1, "name": "x"}])
    write_json_atomic(target, [{"id": 2, "name": "y"}])

    assert json.loads(target.read_text(encoding="utf-8")) == [{"id": 2, "name": "y"}]
    assert [path.name for path in target.parent.iterdir()] == ["index.json"]


def test_load_binaries_missing_record_is_empty(tmp_path: Path) -> None:
    assert len(RecordStore(tmp_path).load_binaries(1, "nope")) == 0


def test_load_binaries_corrupt_record_is_empty_and_logged(tmp_path: Path, caplog) -> None:
    store = RecordStore(tmp_path)
    store.path_for(5, "broken").write_text("{not json", encoding="utf-8")
    caplog.set_level(logging.WARNING, logger="GdvmRegistry.ReleaseSync.storage")

    assert len(store.load_binaries(5, "broken")) == 0
    assert any(record.message == "ignoring unreadable release record" for record in caplog.records)


def test_load_rejects_invalid_digest(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    payload = _record().to_dict()
    payload["binaries"]["linux"]["x86_64"]["sha512"] = "xyz"
    write_json_atomic(store.path_for(7, "4.2-stable"), payload)

    with pytest.raises(RecordError):
        store.load(7, "4.2-stable")


def test_remove_reports_deleted_path(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    path = store.write(_record())

    assert store.remove(7, "4.2-stable") == path
    assert not path.exists()
    assert store.remove(7, "4.2-stable") is None


def test_list_record_files_ignores_other_files(tmp_path: Path) -> None:
    store = RecordStore(tmp_path)
    store.write(_record(2, "b"))
    store.write(_record(1, "a"))
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")

    assert [path.name for path in store.list_record_files()] == ["1_a.json", "2_b.json"]


def test_index_round_trip_sorted_newest_first(tmp_path: Path) -> None:
    path = tmp_path / "index.json"

    write_index(path, [IndexEntry(1, "old"), IndexEntry(3, "new"), IndexEntry(2, "mid")])

    assert load_index(path) == [IndexEntry(3, "new"), IndexEntry(2, "mid"), IndexEntry(1, "old")]
    assert path.read_text(encoding="utf-8").endswith("]\n")


def test_load_index_missing_file_is_empty(tmp_path: Path) -> None:
    assert load_index(tmp_path / "index.json") == []


def test_load_index_rejects_non_array(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    path.write_text('{"id": 1}', encoding="utf-8")

    with pytest.raises(RecordError, match="must be a JSON array"):
        load_index(path)
