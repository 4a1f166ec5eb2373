"""Asset classification and canonical asset ordering.

``slot_for`` maps a release asset filename onto the ``(platform, arch)`` slot
it would fill, or ``None`` when the file is not a supported binary.
``canonical_order`` ranks a release's assets so that, when several files
claim the same slot, the first one in the ordering wins.

Examples:
    >>> slot_for("Godot_v4.2.1-stable_win64.exe.zip")
    Slot(platform='windows', arch='x86_64')
    >>> slot_for("Godot_v4.2.1-stable_macos.universal.zip")
    Slot(platform='macos', arch='universal')
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

from .models import Asset, Slot

__all__ = [
    "MANAGED_RUNTIME_SUFFIX",
    "slot_for",
    "is_x11",
    "has_extra_info",
    "canonical_order",
    "file_name_for_url",
]

MANAGED_RUNTIME_SUFFIX = "-csharp"

_WINDOWS = re.compile(r"win(dows)?")
_MACOS = re.compile(r"(mac|osx)")
_LINUX = re.compile(r"(linux|x11)")
_ARM64 = re.compile(r"arm64|aarch64")
_ARM_OTHER = re.compile(r"arm(v7|v6|32|hf)?")
_X86_64 = re.compile(r"(?:^|[^a-z])(x86[_\-]?64|amd64|64)(?:[^a-z]|$)|win64")
_X86 = re.compile(r"(?:^|[^a-z])(x86|i[3-6]86|(?<!arm)32|32)(?:[^a-z]|$)|win32")
_MANAGED_RUNTIME = re.compile(r"mono")

_X11 = re.compile(r"x11", re.IGNORECASE)
_EXTRA_INFO = re.compile(r"(portable|headless|server|dedicated|symbols|debug|pdb)", re.IGNORECASE)


def _platform_for(name: str) -> Optional[str]:
    if _WINDOWS.search(name):
        return "windows"
    if _MACOS.search(name):
        return "macos"
    if _LINUX.search(name):
        return "linux"
    return None


def slot_for(filename: str) -> Optional[Slot]:
    """Return the slot ``filename`` belongs to, or ``None`` if unclassified."""

    name = filename.lower()

    platform = _platform_for(name)
    if platform is None:
        return None

    arch: Optional[str] = None

    if _ARM64.search(name):
        arch = "arm64"
    elif _ARM_OTHER.search(name):
        # 32-bit ARM builds are not supported.
        return None

    if _X86_64.search(name):
        arch = "x86_64"
    elif _X86.search(name):
        arch = "x86"
    elif platform == "macos":
        if _ARM64.search(name):
            arch = "arm64"
        elif "32" in name:
            arch = "x86"
        elif "64" in name:
            arch = "x86_64"
        else:
            arch = "universal"

    if arch is None:
        return None

    if _MANAGED_RUNTIME.search(name):
        platform = f"{platform}{MANAGED_RUNTIME_SUFFIX}"

    return Slot(platform=platform, arch=arch)


def is_x11(name: str) -> bool:
    """Return ``True`` for assets following the graphical X11 Linux naming."""

    return _X11.search(name) is not None


def has_extra_info(name: str) -> bool:
    """Return ``True`` for variant builds (headless, server, debug symbols, ...)."""

    return _EXTRA_INFO.search(name) is not None


def _rank(asset: Asset) -> tuple[bool, bool, int]:
    return (not is_x11(asset.name), has_extra_info(asset.name), len(asset.name))


def canonical_order(assets: Iterable[Asset]) -> List[Asset]:
    """Return ``assets`` ordered from most to least preferred slot candidate.

    X11 builds come first, then names without variant markers, then shorter
    names.  The sort is stable, so upstream order breaks remaining ties.
    """

    return sorted(assets, key=_rank)


def file_name_for_url(url: str) -> str:
    """Return the last path segment of ``url``."""

    path = urlparse(url).path
    return unquote(path.rsplit("/", 1)[-1])
