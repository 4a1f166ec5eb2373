"""Shared HTTPX client for upstream API calls and asset downloads.

The client is created lazily on first use and reused by every worker thread;
``httpx.Client`` is safe to share across threads.  Tests install a client
backed by ``httpx.MockTransport`` through :func:`configure_http_client`.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

import httpx

from ..settings import RegistrySettings, get_settings

__all__ = [
    "build_headers",
    "get_http_client",
    "configure_http_client",
    "reset_http_client",
    "close_http_client",
]

logger = logging.getLogger(__name__)

_client: Optional[httpx.Client] = None
_client_lock = threading.Lock()
_client_owned = False


def build_headers(settings: RegistrySettings) -> Dict[str, str]:
    """Return request headers carrying the User-Agent and optional token."""

    headers = {"User-Agent": settings.user_agent}
    token = settings.resolved_token()
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


def _create_http_client(settings: RegistrySettings) -> httpx.Client:
    return httpx.Client(
        headers=build_headers(settings),
        timeout=httpx.Timeout(settings.timeout_sec),
        follow_redirects=True,
    )


def get_http_client(settings: Optional[RegistrySettings] = None) -> httpx.Client:
    """Get or create the shared HTTPX client."""

    global _client, _client_owned

    if _client is not None:
        return _client
    with _client_lock:
        if _client is None:
            active = settings or get_settings()
            _client = _create_http_client(active)
            _client_owned = True
            logger.debug(
                "HTTP client initialized",
                extra={"stage": "network", "config_hash": active.config_hash()},
            )
        return _client


def configure_http_client(client: httpx.Client) -> None:
    """Install ``client`` as the shared client; the caller keeps ownership."""

    global _client, _client_owned

    with _client_lock:
        _client = client
        _client_owned = False


def close_http_client() -> None:
    """Close the shared client if this module created it.

    Safe to call multiple times or when no client has been created.
    """

    global _client, _client_owned

    with _client_lock:
        if _client is not None and _client_owned:
            _client.close()
        _client = None
        _client_owned = False


def reset_http_client() -> None:
    """Drop the shared client so the next call rebuilds it."""

    close_http_client()
