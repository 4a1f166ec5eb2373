"""HTTP primitives: JSON and text fetches and streaming sha512 digests.

Every failure, whether a transport error or a non-success status, surfaces
as :class:`~GdvmRegistry.ReleaseSync.errors.DownloadFailure` so that retry
policies only need to know about one exception type.
"""

from __future__ import annotations

import hashlib
from typing import Any, Optional

import httpx

from ..errors import DownloadFailure
from .client import get_http_client

__all__ = ["fetch_json", "fetch_text", "sha512_for_url"]

_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


def _raise_for_status(response: httpx.Response, url: str) -> None:
    if response.is_success:
        return
    status = response.status_code
    raise DownloadFailure(
        f"{status} {response.reason_phrase} - {url}",
        status_code=status,
        retryable=status in _RETRYABLE_STATUS,
    )


def _get(url: str, client: Optional[httpx.Client]) -> httpx.Response:
    active = client or get_http_client()
    try:
        response = active.get(url)
    except httpx.HTTPError as exc:
        raise DownloadFailure(f"request failed - {url}: {exc}", retryable=True) from exc
    _raise_for_status(response, url)
    return response


def fetch_json(url: str, *, client: Optional[httpx.Client] = None) -> Any:
    """Return the decoded JSON body served at ``url``."""

    response = _get(url, client)
    try:
        return response.json()
    except ValueError as exc:
        raise DownloadFailure(f"invalid JSON - {url}: {exc}") from exc


def fetch_text(url: str, *, client: Optional[httpx.Client] = None) -> str:
    """Return the text body served at ``url``."""

    return _get(url, client).text


def sha512_for_url(url: str, *, client: Optional[httpx.Client] = None) -> str:
    """Stream ``url`` and return the sha512 hex digest of its body."""

    active = client or get_http_client()
    digest = hashlib.sha512()
    try:
        with active.stream("GET", url) as response:
            _raise_for_status(response, url)
            for chunk in response.iter_bytes():
                digest.update(chunk)
    except httpx.HTTPError as exc:
        raise DownloadFailure(f"download failed - {url}: {exc}", retryable=True) from exc
    return digest.hexdigest()
