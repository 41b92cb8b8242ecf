# tests/logging/test_json_logging.py
# Summary: JSON log lines, bound context and request-id correlation.

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable

from starlette.testclient import TestClient

from resizer.middleware.request_id import _REQUEST_ID
from resizer.telemetry.logging import JsonFormatter, bind


def _record(msg: str, **extra: Any) -> logging.LogRecord:
    rec = logging.LogRecord("resizer.test", logging.INFO, __file__, 1, msg, None, None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def _access_log_records(caplog) -> Iterable[Dict[str, Any]]:
    for rec in caplog.records:
        if rec.name != "access":
            continue
        try:
            parsed = json.loads(rec.getMessage())
        except ValueError:
            continue
        if isinstance(parsed, dict):
            yield parsed


def test_formatter_emits_stable_keys() -> None:
    line = JsonFormatter().format(_record("hello"))
    payload = json.loads(line)
    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "resizer.test"
    assert payload["ts"].endswith("Z")
    assert "request_id" not in payload


def test_formatter_includes_extras_and_sanitizes() -> None:
    payload = json.loads(
        JsonFormatter().format(_record("x", actions=("orient", "convert:webp"), raw=b"ab"))
    )
    assert payload["actions"] == ["orient", "convert:webp"]
    assert payload["raw"] == "ab"


def test_formatter_picks_up_current_request_id() -> None:
    token = _REQUEST_ID.set("rid-42")
    try:
        payload = json.loads(JsonFormatter().format(_record("x")))
    finally:
        _REQUEST_ID.reset(token)
    assert payload["request_id"] == "rid-42"


def test_bind_merges_context(caplog) -> None:
    log = bind(logging.getLogger("resizer.bound"), request_id="r1", endpoint="/resize")
    with caplog.at_level("INFO", logger="resizer.bound"):
        log.info("go", extra={"endpoint": "/override"})
    rec = caplog.records[-1]
    assert rec.request_id == "r1"
    # per-call extras win over bound context
    assert rec.endpoint == "/override"


def test_access_log_carries_request_id(client: TestClient, photo_png: bytes, caplog) -> None:
    with caplog.at_level("INFO", logger="access"):
        r = client.post("/resize/webp", content=photo_png, headers={"X-Request-ID": "r-abc"})
    assert r.status_code == 200
    entries = [p for p in _access_log_records(caplog) if p.get("request_id") == "r-abc"]
    assert entries
    assert entries[0]["path"] == "/resize/webp"
    assert entries[0]["status_code"] == 200
    assert entries[0]["duration_ms"] >= 0
    assert entries[0]["actions"] == "convert:webp"
