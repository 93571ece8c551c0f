"""
Logging for inkpress.

Provides a request-id aware formatter pair (JSON and human readable) and the
log_service_calls class decorator that wraps every public coroutine of a
service with call/return/error lines.
"""

import functools
import inspect
import json
import logging
import time
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "lineno", "funcName", "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "exc_info", "exc_text", "stack_info", "request_id",
    "taskName", "message",
}


class RequestIDFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                entry[key] = value
        return json.dumps(entry, default=str)


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        line = (
            f"[{timestamp}] [{record.levelname}] [{getattr(record, 'request_id', '-')}] "
            f"{record.name}: {record.getMessage()}"
        )
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO", json_logs: bool = False) -> logging.Logger:
    """Configure the package logger once; safe to call repeatedly."""
    logger = logging.getLogger("inkpress")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if json_logs else StructuredFormatter())
    handler.addFilter(RequestIDFilter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def new_request_id() -> str:
    return uuid.uuid4().hex


def _describe(value: Any) -> Any:
    # ORM rows are logged by id only
    if value is None:
        return None
    if hasattr(value, "__tablename__") and hasattr(value, "id"):
        return f"{type(value).__name__}(id={value.id})"
    if isinstance(value, (list, tuple)):
        return f"<{len(value)} items>"
    if isinstance(getattr(value, "items", None), list):
        return f"{type(value).__name__}(<{len(value.items)} items>, total={getattr(value, 'total', '?')})"
    return value


def log_service_calls(cls):
    """
    Class decorator: wrap each public coroutine method with call logging.

    Usage:
        @log_service_calls
        class ArticleLifecycle:
            async def create(...): ...
    """
    logger = logging.getLogger(cls.__module__)

    def wrap(name: str, method):
        @functools.wraps(method)
        async def wrapper(self, *args, **kwargs):
            qualified = f"{cls.__name__}.{name}"
            logger.debug(
                "[SERVICE CALL] %s | args=%s kwargs=%s",
                qualified,
                [_describe(a) for a in args],
                {k: _describe(v) for k, v in kwargs.items()},
            )
            start = time.perf_counter()
            try:
                result = await method(self, *args, **kwargs)
            except Exception as exc:
                elapsed = (time.perf_counter() - start) * 1000
                logger.warning("[SERVICE ERROR] %s | %s: %s | time=%.1fms",
                               qualified, type(exc).__name__, exc, elapsed)
                raise
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug("[SERVICE RETURN] %s | result=%s | time=%.1fms",
                         qualified, _describe(result), elapsed)
            return result
        return wrapper

    for name, member in list(vars(cls).items()):
        if name.startswith("_") or not inspect.iscoroutinefunction(member):
            continue
        setattr(cls, name, wrap(name, member))
    return cls
