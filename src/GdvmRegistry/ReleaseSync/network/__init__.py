"""Network subsystem: shared HTTPX client, retry policy, and fetch helpers.

Example:
    >>> from GdvmRegistry.ReleaseSync.network import RetryPolicy, sha512_for_url
    >>> policy = RetryPolicy(max_attempts=3)
    >>> digest = policy.call(lambda: sha512_for_url(url))  # doctest: +SKIP
"""

from GdvmRegistry.ReleaseSync.network.client import (
    build_headers,
    close_http_client,
    configure_http_client,
    get_http_client,
    reset_http_client,
)
from GdvmRegistry.ReleaseSync.network.fetch import fetch_json, fetch_text, sha512_for_url
from GdvmRegistry.ReleaseSync.network.retry import RetryHook, RetryPolicy

__all__ = [
    "build_headers",
    "close_http_client",
    "configure_http_client",
    "get_http_client",
    "reset_http_client",
    "fetch_json",
    "fetch_text",
    "sha512_for_url",
    "RetryHook",
    "RetryPolicy",
]
