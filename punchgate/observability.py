from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator, Optional


# -----------------------------
# Branch context
# -----------------------------


branch_id_ctx: ContextVar[Optional[str]] = ContextVar("branch_id", default=None)


def get_branch_id() -> Optional[str]:
    return branch_id_ctx.get()


@contextmanager
def branch_context(branch_id: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``branch_id``."""

    token = branch_id_ctx.set(branch_id)
    try:
        yield
    finally:
        branch_id_ctx.reset(token)


def _utc_iso(ts: float | None = None) -> str:
    dt = datetime.fromtimestamp(ts or time.time(), tz=timezone.utc)
    return dt.isoformat()


# -----------------------------
# Logging
# -----------------------------


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.branch_id = get_branch_id()
        return True


@dataclass
class JsonLogConfig:
    service_name: str = "punchgate"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with the branch id when a cycle is running."""

    def __init__(self, config: JsonLogConfig) -> None:
        super().__init__()
        self.config = config

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": _utc_iso(record.created),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.config.service_name,
        }

        branch_id = getattr(record, "branch_id", None)
        if branch_id:
            payload["branch_id"] = branch_id

        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload["fields"] = fields

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        branch_id = getattr(record, "branch_id", None)
        if branch_id:
            return f"{line} [branch={branch_id}]"
        return line


def configure_logging(*, level: int, log_format: str) -> None:
    """Configure process logging.

    - log_format="json": structured JSON, one object per line
    - log_format="text": standard human-readable
    """

    root = logging.getLogger()
    root.setLevel(level)

    # Replace handlers to avoid duplicate logs when called multiple times.
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(ContextFilter())
    if log_format.strip().lower() == "json":
        handler.setFormatter(JsonFormatter(JsonLogConfig()))
    else:
        handler.setFormatter(TextFormatter())

    root.addHandler(handler)
