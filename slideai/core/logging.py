"""
Logging for the SlideAI backend.

Every record under the `slideai` logger carries the request id and the
entitlement session id bound to the current context, so one browser
session's load, generation and payment return can be followed across
requests. Production emits one JSON object per line; other environments
emit a readable single line.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

LOGGER_NAME = "slideai"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
session_id_ctx_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# `extra` keys promoted to top-level JSON fields
CONTEXT_FIELDS: Tuple[str, ...] = (
    "user_id",
    "session_id",
    "event_type",
    "error_code",
    "payment_reference",
    "path",
    "method",
    "status",
    "duration",
)

# Upper bounds in ms; generation and gateway calls routinely take seconds
_DURATION_BUCKETS: Tuple[Tuple[float, str], ...] = (
    (50, "<50ms"),
    (250, "50-250ms"),
    (1000, "250ms-1s"),
    (5000, "1-5s"),
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def duration_bucket(duration_ms: Optional[float]) -> str:
    """Coarse label for a request duration."""
    if duration_ms is None:
        return "unknown"
    for bound, label in _DURATION_BUCKETS:
        if duration_ms < bound:
            return label
    return ">=5s"


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


class ContextFilter(logging.Filter):
    """Fill request_id and session_id from context when not passed in `extra`."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        if getattr(record, "session_id", None) is None:
            record.session_id = session_id_ctx_var.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = []
        for label, name in (("rid", "request_id"), ("sid", "session_id"), ("user", "user_id")):
            value = getattr(record, name, None)
            if value:
                tags.append(f"[{label}={str(value)[:12]}]")
        prefix = " ".join([_timestamp(record), record.levelname, f"[{record.name}]", *tags])
        line = f"{prefix} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development", level: int = logging.INFO) -> None:
    """Install a single stdout handler on the `slideai` logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(ContextFilter())

    logger.handlers = [handler]
    logger.propagate = True

    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _truncate(value: Any, limit: int = 500) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """Emit a structured event; `extra` values are stringified and truncated."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    payload: Dict[str, Any] = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id,
        "session_id": session_id or session_id_ctx_var.get(),
    }
    if event_type:
        payload["event_type"] = event_type
    if error_code:
        payload["error_code"] = error_code
    for key, value in (extra or {}).items():
        if value is not None:
            payload[key] = _truncate(value)

    getattr(logger, level, logger.info)(msg, extra=payload)
