from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Protocol, TypeVar, cast

from prometheus_client import REGISTRY as PROM_REGISTRY, Counter, Histogram

# ---- Protocols (surface we rely on) ------------------------------------------


class CounterLike(Protocol):
    def labels(self, *label_values: Any) -> "CounterLike": ...
    def inc(self, amount: float = 1.0) -> None: ...


class HistogramLike(Protocol):
    def labels(self, *label_values: Any) -> "HistogramLike": ...
    def observe(self, value: float) -> None: ...


# ---- Minimal helpers for registry access -------------------------------------


def _registry_map() -> Dict[str, Any]:
    mapping = getattr(PROM_REGISTRY, "_names_to_collectors", {})
    return mapping if isinstance(mapping, dict) else {}


T = TypeVar("T")


def _get_or_create(name: str, factory: Callable[[], T]) -> T:
    # Counters register under "<name>_total"; look up both so a module reload
    # reuses the existing collector instead of raising "Duplicated timeseries".
    existing = _registry_map().get(name) or _registry_map().get(f"{name}_total")
    if existing is not None:
        return cast(T, existing)
    return factory()


# ---- Collector factories ------------------------------------------------------


def _mk_counter(name: str, doc: str, labels: Iterable[str] | None = None) -> CounterLike:
    def _factory() -> Any:
        if labels:
            return Counter(name, doc, list(labels))
        return Counter(name, doc)

    return cast(CounterLike, _get_or_create(name, _factory))


def _mk_histogram(name: str, doc: str, labels: Iterable[str] | None = None) -> HistogramLike:
    def _factory() -> Any:
        if labels:
            return Histogram(name, doc, list(labels))
        return Histogram(name, doc)

    return cast(HistogramLike, _get_or_create(name, _factory))


# ---- Core collectors ----------------------------------------------------------

image_requests_total: CounterLike = _mk_counter(
    "image_requests_total", "Image requests received.", labels=["endpoint"]
)
image_actions_total: CounterLike = _mk_counter(
    "image_actions_total", "Transform actions applied.", labels=["action"]
)
image_failures_total: CounterLike = _mk_counter(
    "image_failures_total", "Requests failed by error kind.", labels=["kind"]
)
image_lossless_total: CounterLike = _mk_counter(
    "image_lossless_total", "Resolved lossless setting.", labels=["lossless"]
)
image_stats_failures_total: CounterLike = _mk_counter(
    "image_stats_failures_total", "Pixel statistics failures recovered as lossy."
)
image_stream_disconnects_total: CounterLike = _mk_counter(
    "image_stream_disconnects_total", "Output streams abandoned by the client."
)
image_output_bytes_total: CounterLike = _mk_counter(
    "image_output_bytes_total", "Encoded bytes streamed to clients."
)
image_transform_seconds: HistogramLike = _mk_histogram(
    "image_transform_seconds",
    "Time from request start to first output byte.",
    labels=["endpoint"],
)


# ---- Helpers -----------------------------------------------------------------


def inc_request(endpoint: str) -> None:
    image_requests_total.labels(endpoint).inc()


def inc_actions(actions: Iterable[str]) -> None:
    for action in actions:
        image_actions_total.labels(action).inc()


def inc_failure(kind: str) -> None:
    image_failures_total.labels(kind).inc()


def inc_lossless(lossless: bool) -> None:
    image_lossless_total.labels("true" if lossless else "false").inc()


def inc_stats_failure() -> None:
    image_stats_failures_total.inc()


def inc_disconnect() -> None:
    image_stream_disconnects_total.inc()


def add_output_bytes(n: int) -> None:
    image_output_bytes_total.inc(n)


def observe_transform(endpoint: str, seconds: float) -> None:
    image_transform_seconds.labels(endpoint).observe(seconds)


__all__ = [
    "add_output_bytes",
    "inc_actions",
    "inc_disconnect",
    "inc_failure",
    "inc_lossless",
    "inc_request",
    "inc_stats_failure",
    "observe_transform",
]
