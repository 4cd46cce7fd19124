import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Exposed so other modules can set/request ids
req_id_var: ContextVar[str] = ContextVar("req_id", default="-")

_SENSITIVE_KEYS = (
    "password",
    "token",
    "secret",
    "cookie",
    "authorization",
    "apikey",
    "api_key",
)


def redact(data: Any) -> Any:
    """Replace values under sensitive keys with a placeholder, recursively."""
    if isinstance(data, dict):
        out = {}
        for key, value in data.items():
            if any(s in str(key).lower() for s in _SENSITIVE_KEYS):
                out[key] = "[REDACTED]"
            else:
                out[key] = redact(value)
        return out
    if isinstance(data, (list, tuple)):
        return [redact(v) for v in data]
    return data


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
            "req_id": getattr(record, "req_id", req_id_var.get()),
            "level": record.levelname,
            "component": record.name,
            "msg": record.getMessage(),
        }
        env = os.getenv("ENV", "").strip()
        if env:
            payload["env"] = env
        if hasattr(record, "meta"):
            payload["meta"] = redact(record.meta)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        try:
            return json.dumps(payload, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            # Fall back to the plain message if meta is not serialisable
            return payload["msg"]


class PlainFormatter(logging.Formatter):
    """Human-readable lines for local development, with meta appended."""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - [%(req_id)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "req_id"):
            record.req_id = req_id_var.get()
        line = super().format(record)
        meta = getattr(record, "meta", None)
        if meta:
            line = f"{line} {redact(meta)}"
        return line


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Propagate request id from context-var into every log line
        record.req_id = req_id_var.get()
        return True


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Call once at app startup.
    LOG_LEVEL controls verbosity (default INFO); LOG_FORMAT selects json or plain.
    """
    from storefront.settings import get_settings

    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    fmt = (fmt or settings.LOG_FORMAT).lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout if fmt == "plain" else sys.stderr)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(PlainFormatter() if fmt == "plain" else JsonFormatter())
    root_logger.addHandler(handler)

    # Reduce third-party verbosity unless LOG_LEVEL is DEBUG
    if level != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("aiosqlite").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)
        logging.getLogger("passlib").setLevel(logging.ERROR)
