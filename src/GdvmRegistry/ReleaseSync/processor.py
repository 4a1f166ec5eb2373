# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.processor",
#   "purpose": "Per-release orchestration: manifest, classification, verification, record write",
#   "sections": [
#     {
#       "id": "releaseprocessor",
#       "name": "ReleaseProcessor",
#       "anchor": "class-releaseprocessor",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Process one upstream release into its persisted record.

Processing is strictly sequential within a release: the checksum manifest is
fetched and parsed first, then assets are walked in canonical order and each
slot is claimed by the first asset that classifies into it.  The record is
written once, atomically, after every slot has been resolved; a failure
before that point leaves any earlier record untouched.
"""

from __future__ import annotations

from typing import Callable, Optional

from .checksums import Manifest, find_manifest_asset, parse_manifest, reconcile_digest
from .classify import canonical_order, file_name_for_url, slot_for
from .errors import DownloadFailure, ReleaseFatalError
from .events import Status, StatusEvent, WorkerEvent
from .models import (
    Asset,
    BinaryRecord,
    BinaryTable,
    ProcessedRelease,
    ReleaseRecord,
    SelectedRelease,
    Slot,
)
from .network import RetryPolicy
from .network import fetch_text as http_fetch_text
from .network import sha512_for_url as http_sha512
from .storage import RecordStore

__all__ = ["ReleaseProcessor", "EventSink"]

EventSink = Callable[[WorkerEvent], None]
TextFetcher = Callable[[str], str]
DigestFetcher = Callable[[str], str]


def _discard(event: WorkerEvent) -> None:
    return None


class ReleaseProcessor:
    """Resolve the binaries of a release and persist its record.

    Args:
        store: Record store owning the release's record file.
        release_url: Builds the human-facing release URL from a tag.
        max_attempts: Attempt ceiling applied to every network operation.
        fetch_text: Returns the text body of a URL (manifest downloads).
        digest_for_url: Returns the sha512 of the body served at a URL.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        release_url: Callable[[str], str],
        max_attempts: int = 3,
        fetch_text: TextFetcher = http_fetch_text,
        digest_for_url: DigestFetcher = http_sha512,
    ) -> None:
        self.store = store
        self.release_url = release_url
        self.max_attempts = max_attempts
        self._fetch_text = fetch_text
        self._digest_for_url = digest_for_url

    def _policy(self, emit: EventSink, tag: str, describe: str, **context: Optional[str]) -> RetryPolicy:
        def _on_retry(attempt: int, exc: BaseException) -> None:
            emit(StatusEvent(Status.ERROR, tag, note=f"{describe} attempt {attempt}: {exc}", **context))
            emit(StatusEvent(Status.RETRY, tag, note=f"{describe} attempt {attempt}", **context))

        return RetryPolicy(max_attempts=self.max_attempts, on_retry=_on_retry)

    def load_manifest(self, selected: SelectedRelease, emit: EventSink = _discard) -> Manifest:
        """Fetch and parse the release's checksum manifest, if it has one."""

        asset = find_manifest_asset(selected.release.assets)
        if asset is None:
            return {}
        emit(StatusEvent(Status.DOWNLOAD, selected.tag, note="sha512-sums"))
        policy = self._policy(emit, selected.tag, "downloading sums")
        text = policy.call(lambda: self._fetch_text(asset.url))
        return parse_manifest(text)

    def _digest(self, emit: EventSink, tag: str, slot: Slot, asset: Asset, file_name: str) -> Callable[[str], str]:
        def compute(purpose: str) -> str:
            emit(StatusEvent(Status.DOWNLOAD, tag, slot=slot.label, file=file_name, note=purpose))
            policy = self._policy(emit, tag, purpose, slot=slot.label, file=file_name)
            return policy.call(lambda: self._digest_for_url(asset.url))

        return compute

    def resolve_binaries(
        self,
        selected: SelectedRelease,
        manifest: Manifest,
        previous: BinaryTable,
        emit: EventSink = _discard,
    ) -> BinaryTable:
        """Claim one canonical asset per slot and reconcile its digest."""

        tag = selected.tag
        binaries = BinaryTable()
        for asset in canonical_order(selected.release.assets):
            file_name = file_name_for_url(asset.url)
            slot = slot_for(asset.name)
            if slot is None:
                emit(StatusEvent(Status.SKIP_UNKNOWN, tag, file=file_name))
                continue
            if slot in binaries:
                emit(StatusEvent(Status.SKIP_EXTRA, tag, slot=slot.label, file=file_name))
                continue

            urls = (asset.url,)
            prior = previous.get(slot)
            # A stored digest only counts when it was computed for the same download.
            previous_digest = prior.sha512 if prior is not None and set(prior.urls) == set(urls) else None

            verification = reconcile_digest(
                self._digest(emit, tag, slot, asset, file_name),
                expected=manifest.get(asset.name),
                previous=previous_digest,
            )
            binaries.set(slot, BinaryRecord(sha512=verification.sha512, urls=urls))
            emit(
                StatusEvent(
                    verification.status,
                    tag,
                    slot=slot.label,
                    file=file_name,
                    sha512=verification.sha512,
                    note=verification.note,
                )
            )
        return binaries

    def process(self, selected: SelectedRelease, emit: EventSink = _discard) -> ProcessedRelease:
        """Process ``selected`` and write its record.

        Raises:
            ReleaseFatalError: When a network operation exhausts its retries.
        """

        release = selected.release
        previous = self.store.load_binaries(release.id, release.tag_name)
        try:
            manifest = self.load_manifest(selected, emit)
            binaries = self.resolve_binaries(selected, manifest, previous, emit)
        except DownloadFailure as exc:
            raise ReleaseFatalError(release.id, release.tag_name, exc) from exc

        record = ReleaseRecord(
            id=release.id,
            name=release.tag_name,
            url=self.release_url(release.tag_name),
            binaries=binaries,
        )
        path = self.store.write(record)
        emit(StatusEvent(Status.SAVED, release.tag_name))
        return ProcessedRelease(selected=selected, record=record, path=path)
