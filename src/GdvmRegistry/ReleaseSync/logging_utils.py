"""Structured logging helpers shared across release sync components."""

from __future__ import annotations

import json
import logging
import re
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .events import Status, StatusEvent

__all__ = [
    "LOGGER_NAME",
    "JSONFormatter",
    "format_status_line",
    "generate_correlation_id",
    "log_with_extra",
    "mask_sensitive_data",
    "setup_logging",
]

LOGGER_NAME = "GdvmRegistry.ReleaseSync"

_STATUS_WIDTH = max(len(status.value) for status in Status)
_TAG_WIDTH = 21
_SLOT_WIDTH = 24
_FILE_WIDTH = 50

# Attributes present on every LogRecord; anything else arrived via ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def generate_correlation_id() -> str:
    """Return a short-lived identifier that links related log entries."""

    return uuid.uuid4().hex[:12]


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """

    sensitive_keys = {"authorization", "api_key", "apikey", "token", "github_token", "password"}
    token_pattern = re.compile(r"\b(token|bearer)\s+\S+", re.IGNORECASE)
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in sensitive_keys:
            masked[key] = "***masked***"
        elif isinstance(value, str) and token_pattern.search(value):
            masked[key] = token_pattern.sub(r"\1 ***masked***", value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "release": getattr(record, "release", None),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def log_with_extra(
    logger: Union[logging.Logger, logging.LoggerAdapter],
    level: int,
    message: str,
    extra: Mapping[str, object],
) -> None:
    """Log ``message`` with structured ``extra`` supporting LoggerAdapters."""

    if isinstance(logger, logging.LoggerAdapter):
        merged: Dict[str, object] = dict(logger.extra or {})
        merged.update(extra)
        logger.logger.log(level, message, extra=merged)
        return
    logger.log(level, message, extra=extra)


def format_status_line(event: StatusEvent) -> str:
    """Render ``event`` as a column-aligned console line.

    Examples:
        >>> format_status_line(StatusEvent(Status.SAVED, "4.2-stable")).split()
        ['[saved]', '4.2-stable']
    """

    status = event.status.value
    cols = [
        f"[{status}]" + " " * (_STATUS_WIDTH - len(status) + 1),
        (event.tag or "").ljust(_TAG_WIDTH),
        (event.slot or "").ljust(_SLOT_WIDTH),
        (event.file or "").ljust(_FILE_WIDTH) if event.file else "",
    ]
    if event.sha512:
        cols.append(f"{event.sha512[:8]}…")
    if event.note:
        cols.append(event.note)
    return "  ".join(col for col in cols if col).rstrip()


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    max_log_size_mb: int = 100,
    propagate: bool = False,
) -> logging.Logger:
    """Configure release sync logging with a console handler and JSONL sidecar.

    Handlers installed here are tagged so that calling the function again
    replaces them instead of stacking duplicates.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_gdvm_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler) and getattr(handler, "stream", None) in (
                sys.stdout,
                sys.stderr,
            ):
                continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(message)s"))
    stream_handler._gdvm_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"gdvm-registry-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._gdvm_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger
