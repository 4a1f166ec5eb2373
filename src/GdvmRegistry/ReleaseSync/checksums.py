# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.checksums",
#   "purpose": "Checksum manifest parsing and per-slot digest reconciliation",
#   "sections": [
#     {
#       "id": "find-manifest-asset",
#       "name": "find_manifest_asset",
#       "anchor": "function-find-manifest-asset",
#       "kind": "function"
#     },
#     {
#       "id": "parse-manifest",
#       "name": "parse_manifest",
#       "anchor": "function-parse-manifest",
#       "kind": "function"
#     },
#     {
#       "id": "verification",
#       "name": "Verification",
#       "anchor": "class-verification",
#       "kind": "class"
#     },
#     {
#       "id": "reconcile-digest",
#       "name": "reconcile_digest",
#       "anchor": "function-reconcile-digest",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Checksum manifest parsing and digest reconciliation.

Upstream releases may ship a ``SHA512-SUMS.txt`` asset listing the expected
digest of every other file.  For each slot the processor downloads the
canonical asset at least once, and :func:`reconcile_digest` decides which
digest to trust given the fresh download, the manifest entry, and whatever
digest was persisted by a previous run:

* manifest present and the download agrees: trust the manifest (``ok``, or
  ``updated`` when the previously stored digest differed);
* manifest present and the download disagrees: download again.  A recheck
  matching the manifest is ``verified``; two downloads agreeing with each
  other but not the manifest is ``sums-mismatch`` (keep the download); full
  three-way disagreement is ``inconsistent`` and the manifest value is kept,
  since neither download can be trusted;
* no manifest entry: the download is authoritative and is compared with the
  previous digest (``ok``, ``unchanged``, ``changed``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from .events import Status
from .models import Asset

__all__ = [
    "MANIFEST_NAME_PATTERN",
    "Manifest",
    "Verification",
    "find_manifest_asset",
    "parse_manifest",
    "reconcile_digest",
    "short_digest",
]

MANIFEST_NAME_PATTERN = re.compile(r"^sha512-sums\.txt$", re.IGNORECASE)
_MANIFEST_LINE = re.compile(r"^([a-f0-9]{128})\s+(\S+)$")

Manifest = Dict[str, str]
DigestFn = Callable[[str], str]


def short_digest(digest: str) -> str:
    """Return the abbreviated form of ``digest`` used in status notes."""

    return f"{digest[:8]}…"


def find_manifest_asset(assets: Iterable[Asset]) -> Optional[Asset]:
    """Return the release's checksum manifest asset, if it has one."""

    for asset in assets:
        if MANIFEST_NAME_PATTERN.match(asset.name):
            return asset
    return None


def parse_manifest(text: str) -> Manifest:
    """Parse ``<digest> <filename>`` lines into a filename-to-digest mapping.

    Lines that do not match the expected shape are ignored.

    Examples:
        >>> parse_manifest("not a digest line\\n")
        {}
    """

    sums: Manifest = {}
    for line in text.splitlines():
        match = _MANIFEST_LINE.match(line.strip())
        if match:
            sums[match.group(2)] = match.group(1)
    return sums


@dataclass(slots=True, frozen=True)
class Verification:
    """Outcome of reconciling one slot's digest."""

    status: Status
    sha512: str
    note: str = ""
    downloads: Tuple[str, ...] = ()


def reconcile_digest(
    compute: DigestFn,
    *,
    expected: Optional[str],
    previous: Optional[str],
) -> Verification:
    """Decide the trusted digest for one slot.

    Args:
        compute: Downloads the asset and returns its sha512 hex digest.  It is
            called with a short purpose label (``"verify"`` or ``"recheck"``)
            and may raise when retries are exhausted.
        expected: Digest listed for the asset in the checksum manifest.
        previous: Digest persisted for the same slot and URL by an earlier run.

    Returns:
        Verification carrying the status, the final digest, and every digest
        computed along the way.
    """

    first = compute("verify")

    if expected is None:
        if previous is None:
            return Verification(Status.OK, first, downloads=(first,))
        if previous == first:
            return Verification(Status.UNCHANGED, first, downloads=(first,))
        return Verification(
            Status.CHANGED,
            first,
            note=f"prev {short_digest(previous)} -> {short_digest(first)}",
            downloads=(first,),
        )

    if first == expected:
        if previous is not None and previous != expected:
            return Verification(
                Status.UPDATED,
                expected,
                note=f"replaced previous {short_digest(previous)}",
                downloads=(first,),
            )
        return Verification(Status.OK, expected, downloads=(first,))

    second = compute("recheck")
    downloads = (first, second)
    if second == expected:
        return Verification(Status.VERIFIED, expected, downloads=downloads)
    if second == first:
        return Verification(
            Status.SUMS_MISMATCH,
            first,
            note=f"sums.txt={short_digest(expected)} dl={short_digest(first)}",
            downloads=downloads,
        )
    return Verification(
        Status.INCONSISTENT,
        expected,
        note=(
            f"sums.txt={short_digest(expected)} dl1={short_digest(first)} "
            f"dl2={short_digest(second)}"
        ),
        downloads=downloads,
    )
