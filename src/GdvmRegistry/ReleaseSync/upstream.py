"""Upstream release sources.

The selector only needs newest-first pages of releases.  The GitHub source
walks the REST listing; :class:`StaticReleaseSource` serves pre-built pages
and is what the test-suite and offline dry runs use.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Mapping, Optional, Protocol, Sequence

from .errors import DownloadFailure, UpstreamError
from .models import UpstreamRelease
from .network import RetryPolicy, fetch_json
from .settings import RegistrySettings, get_settings

__all__ = ["ReleaseSource", "GitHubReleaseSource", "StaticReleaseSource"]

logger = logging.getLogger(__name__)


class ReleaseSource(Protocol):
    """Paged, newest-first listing of upstream releases."""

    def iter_pages(self, per_page: int) -> Iterator[List[UpstreamRelease]]:
        """Yield successive pages until the listing is exhausted."""


class GitHubReleaseSource:
    """Release listing backed by the GitHub REST API."""

    def __init__(self, settings: Optional[RegistrySettings] = None) -> None:
        self.settings = settings or get_settings()

    def _fetch_page(self, page: int, per_page: int) -> object:
        url = self.settings.releases_api_url(page=page, per_page=per_page)

        def _on_retry(attempt: int, exc: BaseException) -> None:
            logger.warning(
                "release listing retry",
                extra={"stage": "select", "page": page, "attempt": attempt, "error": str(exc)},
            )

        policy = RetryPolicy(max_attempts=self.settings.max_attempts, on_retry=_on_retry)
        try:
            return policy.call(lambda: fetch_json(url))
        except DownloadFailure as exc:
            raise UpstreamError(f"failed to list releases (page {page}): {exc}") from exc

    def iter_pages(self, per_page: int) -> Iterator[List[UpstreamRelease]]:
        page = 1
        while True:
            logger.info(
                "fetching release page",
                extra={"stage": "select", "page": page},
            )
            payload = self._fetch_page(page, per_page)
            if not isinstance(payload, list):
                raise UpstreamError(f"release listing page {page} is not a JSON array")
            if not payload:
                return
            try:
                releases = [UpstreamRelease.from_api(item) for item in payload]
            except (KeyError, TypeError, ValueError) as exc:
                raise UpstreamError(f"malformed release on page {page}: {exc}") from exc
            yield releases
            if len(payload) < per_page:
                return
            page += 1


class StaticReleaseSource:
    """Release source serving fixed pages, recording how many were consumed."""

    def __init__(self, pages: Sequence[Sequence[UpstreamRelease]]) -> None:
        self.pages = [list(page) for page in pages]
        self.pages_served = 0

    @classmethod
    def from_api_payloads(cls, pages: Sequence[Sequence[Mapping[str, object]]]) -> "StaticReleaseSource":
        return cls([[UpstreamRelease.from_api(item) for item in page] for page in pages])

    def iter_pages(self, per_page: int) -> Iterator[List[UpstreamRelease]]:
        for page in self.pages:
            if not page:
                return
            self.pages_served += 1
            yield list(page)
