"""Structured logging helpers: JSON lines with context."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        label = getattr(record, "label", None)
        if label:
            payload["label"] = label
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def get_logger(name: str = "fnprobe") -> logging.Logger:
    """Return *name*'s logger; the package root gets a single JSON stderr handler."""
    root = logging.getLogger("fnprobe")
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(JsonFormatter())
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    return logging.getLogger(name)


def set_verbosity(verbose: bool) -> None:
    get_logger().setLevel(logging.DEBUG if verbose else logging.INFO)


def log_labeled_warning(label: str, message: str) -> None:
    """Emit a user-facing warning tagged with a short *label* (e.g. "functions")."""
    get_logger().warning("%s: %s", label, message, extra={"label": label})
