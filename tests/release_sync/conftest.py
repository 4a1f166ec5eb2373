"""Shared fixtures for the release registry test-suite.

``FakeUpstream`` plays both GitHub roles the synchronizer talks to: the
paged REST release listing and the asset download host.  It is installed
as the shared HTTPX client through ``httpx.MockTransport`` so no test
touches the network.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import Counter, defaultdict, deque
from pathlib import Path
from typing import Callable, Deque, Dict, Iterator, List, Mapping, Union
from urllib.parse import urlsplit

import httpx
import pytest

from GdvmRegistry.ReleaseSync.logging_utils import LOGGER_NAME
from GdvmRegistry.ReleaseSync.network import configure_http_client, reset_http_client
from GdvmRegistry.ReleaseSync.settings import RegistrySettings, reset_settings

DOWNLOAD_BASE = "https://github.com/godotengine/godot-builds/releases/download"
LISTING_PATH = "/repos/godotengine/godot-builds/releases"

Scripted = Union[bytes, int]


def sha512(payload: bytes) -> str:
    return hashlib.sha512(payload).hexdigest()


def download_url(tag: str, name: str) -> str:
    return f"{DOWNLOAD_BASE}/{tag}/{name}"


def sums_text(files: Mapping[str, bytes]) -> str:
    return "".join(f"{sha512(body)}  {name}\n" for name, body in files.items())


class FakeUpstream:
    """In-memory GitHub release listing plus download host."""

    digest = staticmethod(sha512)
    url = staticmethod(download_url)

    def __init__(self) -> None:
        self.releases: Dict[int, Dict[str, object]] = {}
        self.bodies: Dict[str, bytes] = {}
        self.scripts: Dict[str, Deque[Scripted]] = defaultdict(deque)
        self.hits: Counter = Counter()
        self.listing_pages: List[int] = []
        self._lock = threading.Lock()

    def publish(
        self,
        release_id: int,
        tag: str,
        files: Mapping[str, bytes],
        *,
        sums: Union[bool, str] = True,
    ) -> Dict[str, object]:
        """Register a release; ``sums`` may be custom manifest text."""

        assets = []
        for name, body in files.items():
            url = download_url(tag, name)
            self.bodies[url] = body
            assets.append({"name": name, "browser_download_url": url})
        if sums:
            text = sums if isinstance(sums, str) else sums_text(files)
            url = download_url(tag, "SHA512-SUMS.txt")
            self.bodies[url] = text.encode("utf-8")
            assets.append({"name": "SHA512-SUMS.txt", "browser_download_url": url})
        payload = {"id": release_id, "tag_name": tag, "assets": assets}
        self.releases[release_id] = payload
        return payload

    def withdraw(self, release_id: int) -> None:
        self.releases.pop(release_id)

    def script(self, url: str, *responses: Scripted) -> None:
        """Serve ``responses`` (bodies or status codes) before the stored body."""

        self.scripts[url].extend(responses)

    def _listing(self, request: httpx.Request) -> httpx.Response:
        page = int(request.url.params.get("page", "1"))
        per_page = int(request.url.params.get("per_page", "100"))
        with self._lock:
            self.listing_pages.append(page)
        ordered = [self.releases[key] for key in sorted(self.releases, reverse=True)]
        start = (page - 1) * per_page
        return httpx.Response(200, json=ordered[start : start + per_page])

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if urlsplit(url).path == LISTING_PATH:
            return self._listing(request)
        with self._lock:
            self.hits[url] += 1
            scripted = self.scripts[url].popleft() if self.scripts[url] else None
        if isinstance(scripted, int):
            return httpx.Response(scripted)
        if isinstance(scripted, bytes):
            return httpx.Response(200, content=scripted)
        body = self.bodies.get(url)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    for name in ("GITHUB_TOKEN", "WORKERS", "GDVM_REGISTRY_GITHUB_TOKEN", "GDVM_REGISTRY_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield
    reset_http_client()
    reset_settings()
    package_logger = logging.getLogger(LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest.fixture
def registry_dir(tmp_path: Path) -> Path:
    path = tmp_path / "registry"
    path.mkdir()
    return path


@pytest.fixture
def make_settings(registry_dir: Path) -> Callable[..., RegistrySettings]:
    def factory(**overrides: object) -> RegistrySettings:
        values: Dict[str, object] = {
            "registry_dir": registry_dir,
            "workers": 2,
            "github_token": "test-token",
            "log_level": "DEBUG",
        }
        values.update(overrides)
        return RegistrySettings(**values)

    return factory


@pytest.fixture
def upstream() -> Iterator[FakeUpstream]:
    fake = FakeUpstream()
    client = httpx.Client(transport=httpx.MockTransport(fake.handler))
    configure_http_client(client)
    try:
        yield fake
    finally:
        reset_http_client()
        client.close()

