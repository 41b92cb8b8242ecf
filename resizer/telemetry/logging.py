# resizer/telemetry/logging.py
# Summary: JSON log lines for the service and per-request logger binding.
# - Every line carries ts/level/logger/message, the current request id and extras.
# - Pipeline stages receive a bound logger (request_id, endpoint) instead of a global one.

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, FrozenSet, Mapping, MutableMapping, Optional, Tuple

from resizer.middleware.request_id import get_request_id

# Attributes every LogRecord has; anything else on a record came in via ``extra``.
_RECORD_ATTRS: FrozenSet[str] = frozenset(logging.makeLogRecord({}).__dict__) | {
    "message",
    "asctime",
}

# Third-party loggers that are chatty at DEBUG (Pillow logs every plugin it imports).
_QUIET_LOGGERS = ("PIL", "multipart")


def _utc_stamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _jsonable(value: Any) -> Any:
    """Coerce ``extra`` values (action tuples, raw header bytes, ...) into JSON types."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, datetime):
        return _utc_stamp(value.timestamp())
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return str(value)


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, message, request_id, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _utc_stamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RECORD_ATTRS and not k.startswith("_")
        }
        request_id = extras.pop("request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id
        payload.update(_jsonable(extras))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_configured = False


def configure_root_logging(level: int | str = "INFO", stream: Optional[IO[str]] = None) -> None:
    """Install a single JSON handler on the root logger. Later calls are no-ops."""
    global _configured
    if _configured:
        return

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))

    _configured = True


class ContextAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """LoggerAdapter whose bound context fills in ``extra`` keys a call leaves out."""

    def __init__(self, logger: logging.Logger, extra: Optional[Mapping[str, Any]] = None):
        super().__init__(logger, dict(extra or {}))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        merged = dict(self.extra or {})
        merged.update(kwargs.get("extra") or {})
        kwargs["extra"] = merged
        return msg, kwargs


# Pipeline stages accept either a plain logger or a bound adapter.
LoggerLike = logging.Logger | logging.LoggerAdapter  # type: ignore[type-arg]


def bind(logger: Optional[logging.Logger] = None, **context: Any) -> ContextAdapter:
    """
    Bind request context to ``logger`` (root logger if omitted):

        log = bind(logging.getLogger("resizer.pipeline"), request_id=rid, endpoint="/resize")
        log.debug("Complete")
    """
    return ContextAdapter(logger or logging.getLogger(), context)


__all__ = ["JsonFormatter", "ContextAdapter", "LoggerLike", "bind", "configure_root_logging"]
