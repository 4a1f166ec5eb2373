"""Checksum manifest parsing and the digest reconciliation table."""

from __future__ import annotations

from typing import List, Optional

import pytest

from GdvmRegistry.ReleaseSync.checksums import (
    find_manifest_asset,
    parse_manifest,
    reconcile_digest,
)
from GdvmRegistry.ReleaseSync.errors import DownloadFailure
from GdvmRegistry.ReleaseSync.events import Status
from GdvmRegistry.ReleaseSync.models import Asset

A = "a" * 128
B = "b" * 128
C = "c" * 128


class ScriptedDownloads:
    """Digest function returning queued values and recording purposes."""

    def __init__(self, *digests: str) -> None:
        self.digests = list(digests)
        self.purposes: List[str] = []

    def __call__(self, purpose: str) -> str:
        self.purposes.append(purpose)
        return self.digests.pop(0)


def test_parse_manifest_reads_digest_lines() -> None:
    text = f"{A}  Godot_win64.zip\n  {B}\tGodot_linux.x86_64.zip  \n\n"

    assert parse_manifest(text) == {"Godot_win64.zip": A, "Godot_linux.x86_64.zip": B}


def test_parse_manifest_ignores_malformed_lines() -> None:
    text = "\n".join(
        [
            "# comment",
            f"{A[:-1]}  short.zip",
            f"{A.upper()}  upper.zip",
            f"{A}  two words.zip",
            f"{C}  good.zip",
        ]
    )

    assert parse_manifest(text) == {"good.zip": C}


def test_parse_manifest_last_duplicate_wins() -> None:
    assert parse_manifest(f"{A}  f.zip\n{B}  f.zip\n") == {"f.zip": B}


def test_find_manifest_asset_matches_name_case_insensitively() -> None:
    assets = [Asset("Godot_win64.zip", "u1"), Asset("sha512-sums.TXT", "u2")]

    assert find_manifest_asset(assets) == Asset("sha512-sums.TXT", "u2")
    assert find_manifest_asset([Asset("SHA512-SUMS.txt.sig", "u3")]) is None


@pytest.mark.parametrize(
    ("downloads", "expected", "previous", "status", "digest", "purposes"),
    [
        # Manifest and first download agree.
        ((A,), A, None, Status.OK, A, ["verify"]),
        ((A,), A, A, Status.OK, A, ["verify"]),
        ((A,), A, B, Status.UPDATED, A, ["verify"]),
        # Disagreement triggers a recheck.
        ((B, A), A, None, Status.VERIFIED, A, ["verify", "recheck"]),
        ((B, B), A, None, Status.SUMS_MISMATCH, B, ["verify", "recheck"]),
        ((B, C), A, None, Status.INCONSISTENT, A, ["verify", "recheck"]),
        ((B, C), A, B, Status.INCONSISTENT, A, ["verify", "recheck"]),
        # No manifest entry: the download is authoritative.
        ((A,), None, None, Status.OK, A, ["verify"]),
        ((A,), None, A, Status.UNCHANGED, A, ["verify"]),
        ((B,), None, A, Status.CHANGED, B, ["verify"]),
    ],
)
def test_reconcile_digest_table(
    downloads: tuple,
    expected: Optional[str],
    previous: Optional[str],
    status: Status,
    digest: str,
    purposes: List[str],
) -> None:
    compute = ScriptedDownloads(*downloads)

    outcome = reconcile_digest(compute, expected=expected, previous=previous)

    assert outcome.status is status
    assert outcome.sha512 == digest
    assert compute.purposes == purposes
    assert outcome.downloads == tuple(downloads)


def test_reconcile_digest_notes_describe_disagreement() -> None:
    mismatch = reconcile_digest(ScriptedDownloads(B, B), expected=A, previous=None)
    inconsistent = reconcile_digest(ScriptedDownloads(B, C), expected=A, previous=None)
    changed = reconcile_digest(ScriptedDownloads(B), expected=None, previous=A)

    assert mismatch.note == "sums.txt=aaaaaaaa… dl=bbbbbbbb…"
    assert inconsistent.note == "sums.txt=aaaaaaaa… dl1=bbbbbbbb… dl2=cccccccc…"
    assert changed.note == "prev aaaaaaaa… -> bbbbbbbb…"


def test_reconcile_digest_propagates_download_failure() -> None:
    def compute(purpose: str) -> str:
        if purpose == "recheck":
            raise DownloadFailure("boom")
        return B

    with pytest.raises(DownloadFailure):
        reconcile_digest(compute, expected=A, previous=None)
