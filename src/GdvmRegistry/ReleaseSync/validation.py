# === NAVMAP v1 ===
# {
#   "module": "GdvmRegistry.ReleaseSync.validation",
#   "purpose": "Structural validation of the index and release record files",
#   "sections": [
#     {
#       "id": "finding",
#       "name": "Finding",
#       "anchor": "class-finding",
#       "kind": "class"
#     },
#     {
#       "id": "validationreport",
#       "name": "ValidationReport",
#       "anchor": "class-validationreport",
#       "kind": "class"
#     },
#     {
#       "id": "validate-registry",
#       "name": "validate_registry",
#       "anchor": "function-validate-registry",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Validate a registry directory as consumers will read it.

Errors are violations a client would trip over: unparsable JSON, duplicate
ids or names, missing record files, mismatched identity fields, malformed
digests and URLs outside the upstream repository.  Warnings flag data that
is legal but suspicious: record files the index no longer references,
releases without binaries and platforms without architectures.
"""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlsplit

from .models import is_sha512
from .storage import record_file_name

__all__ = ["Severity", "Finding", "ValidationReport", "validate_registry"]

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Finding:
    severity: Severity
    context: str
    message: str


@dataclass
class ValidationReport:
    """Findings collected while validating one registry."""

    findings: List[Finding] = field(default_factory=list)
    records_checked: int = 0

    def warn(self, context: str, message: str) -> None:
        self.findings.append(Finding(Severity.WARNING, context, message))
        logger.debug(message, extra={"stage": "validate", "severity": "warning", "context": context})

    def error(self, context: str, message: str) -> None:
        self.findings.append(Finding(Severity.ERROR, context, message))
        logger.debug(message, extra={"stage": "validate", "severity": "error", "context": context})

    @property
    def warnings(self) -> List[Finding]:
        return [item for item in self.findings if item.severity is Severity.WARNING]

    @property
    def errors(self) -> List[Finding]:
        return [item for item in self.findings if item.severity is Severity.ERROR]

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def grouped(self, severity: Severity) -> Dict[str, List[str]]:
        """Return messages of ``severity`` grouped by context, in discovery order."""

        groups: Dict[str, List[str]] = OrderedDict()
        for item in self.findings:
            if item.severity is severity:
                groups.setdefault(item.context, []).append(item.message)
        return groups


def _valid_url(value: object, prefix: str) -> bool:
    if not isinstance(value, str):
        return False
    parts = urlsplit(value)
    return parts.scheme == "https" and bool(parts.netloc) and value.startswith(prefix)


def _read_json(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    return json.loads(text)


def _describe_json_error(exc: ValueError) -> str:
    detail = exc.msg if isinstance(exc, json.JSONDecodeError) else str(exc)
    return f"invalid JSON ({detail.splitlines()[0] if detail else 'empty'})"


def _check_binaries(report: ValidationReport, context: str, binaries: object, download_prefix: str) -> None:
    if not isinstance(binaries, Mapping) or not binaries:
        report.warn(context, "no binaries defined")
        return
    for platform, arches in binaries.items():
        if not isinstance(arches, Mapping) or not arches:
            report.warn(context, f'build "{platform}" has no architectures')
            continue
        for arch, info in arches.items():
            slot_context = f"{context} → {platform}/{arch}"
            if not isinstance(info, Mapping):
                report.error(slot_context, "architecture entry is not an object")
                continue
            if not is_sha512(info.get("sha512")):
                report.error(slot_context, "sha512 missing or invalid")
            urls = info.get("urls")
            if not isinstance(urls, list) or not urls:
                report.error(slot_context, "urls array missing or empty")
                continue
            for url in urls:
                if not _valid_url(url, download_prefix):
                    report.error(slot_context, f'url "{url}" has wrong prefix or is not https')


def _check_record(
    report: ValidationReport,
    path: Path,
    expected_id: int,
    expected_name: str,
    release_prefix: str,
    download_prefix: str,
) -> None:
    context = str(path)
    try:
        record = _read_json(path)
    except ValueError as exc:
        report.error(context, _describe_json_error(exc))
        return
    except OSError as exc:
        report.error(context, f"unreadable ({exc.strerror or exc})")
        return
    report.records_checked += 1
    if not isinstance(record, Mapping):
        report.error(context, "record is not an object")
        return
    if record.get("id") != expected_id:
        report.error(context, "`id` mismatch")
    if record.get("name") != expected_name:
        report.error(context, "`name` mismatch")
    if not _valid_url(record.get("url"), release_prefix):
        report.error(context, "`url` invalid or wrong prefix")
    _check_binaries(report, context, record.get("binaries"), download_prefix)


def validate_registry(
    index_path: Path,
    releases_dir: Path,
    release_url_prefix: str,
    download_url_prefix: str,
    report: Optional[ValidationReport] = None,
) -> ValidationReport:
    """Validate ``index_path`` and the record files under ``releases_dir``.

    Args:
        index_path: Location of the JSON index.
        releases_dir: Directory holding ``<id>_<name>.json`` records.
        release_url_prefix: Required prefix of each record's ``url``.
        download_url_prefix: Required prefix of every binary download URL.
        report: Existing report to append to.

    Returns:
        ValidationReport whose ``exit_code`` is 1 when any error was found.
    """

    report = report if report is not None else ValidationReport()
    index_context = str(index_path)

    try:
        index = _read_json(index_path)
    except ValueError as exc:
        report.error(index_context, _describe_json_error(exc))
        return report
    except OSError as exc:
        report.error(index_context, f"unreadable ({exc.strerror or exc})")
        return report
    if not isinstance(index, list):
        report.error(index_context, "must be an array")
        return report
    logger.info("index parsed", extra={"stage": "validate", "entries": len(index)})

    seen_ids: set = set()
    seen_names: set = set()
    expected: "OrderedDict[Path, tuple]" = OrderedDict()
    for position, entry in enumerate(index):
        context = f"{index_context}[{position}]"
        if not isinstance(entry, Mapping):
            report.error(context, "entry is not an object")
            continue
        release_id = entry.get("id")
        name = entry.get("name")
        id_ok = isinstance(release_id, int) and not isinstance(release_id, bool)
        name_ok = isinstance(name, str)
        if not id_ok:
            report.error(context, "`id` must be number")
        if not name_ok:
            report.error(context, "`name` must be string")
        if id_ok and release_id in seen_ids:
            report.error(context, f"duplicate id {release_id}")
        if name_ok and name in seen_names:
            report.error(context, f'duplicate name "{name}"')
        if id_ok:
            seen_ids.add(release_id)
        if name_ok:
            seen_names.add(name)
        if id_ok and name_ok:
            expected[releases_dir / record_file_name(release_id, name)] = (release_id, name)

    actual = sorted(releases_dir.glob("*.json")) if releases_dir.is_dir() else []
    present = {path for path in expected if path.is_file()}
    for path in expected:
        if path not in present:
            report.error(str(path), "missing release file")
    for path in actual:
        if path not in expected:
            report.warn(str(path), "file not referenced in index")

    for path, (release_id, name) in expected.items():
        if path in present:
            _check_record(report, path, release_id, name, release_url_prefix, download_url_prefix)

    logger.info(
        "validation finished",
        extra={
            "stage": "validate",
            "records": report.records_checked,
            "warnings": len(report.warnings),
            "errors": len(report.errors),
        },
    )
    return report
