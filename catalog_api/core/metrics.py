from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

CACHE_EVENTS = Counter(
    "catalog_cache_events_total",
    "Cache operations recorded by the catalog API.",
    labelnames=("cache", "event"),
)
CACHE_OPERATION_LATENCY = Histogram(
    "catalog_cache_operation_seconds",
    "Latency of cache backend operations.",
    labelnames=("operation",),
)
CACHE_BACKEND_UP = Gauge(
    "catalog_cache_backend_up",
    "Last known cache backend reachability (1 = reachable).",
)
STORE_QUERIES = Counter(
    "catalog_store_queries_total",
    "Queries issued against the durable store.",
    labelnames=("route", "operation", "result"),
)
STORE_QUERY_LATENCY = Histogram(
    "catalog_store_query_seconds",
    "Latency of durable store queries.",
    labelnames=("route", "operation"),
)


def record_cache_event(cache: str, event: str) -> None:
    """Increment a cache event counter."""
    CACHE_EVENTS.labels(cache=cache, event=event).inc()


def observe_cache_operation(operation: str, duration_seconds: float) -> None:
    """Record cache backend call latency."""
    CACHE_OPERATION_LATENCY.labels(operation=operation).observe(duration_seconds)


def set_cache_backend_up(reachable: bool) -> None:
    CACHE_BACKEND_UP.set(1 if reachable else 0)


def observe_store_query(
    route: str, operation: str, result: str, duration_seconds: float
) -> None:
    """Record store query result and latency."""
    STORE_QUERIES.labels(route=route, operation=operation, result=result).inc()
    STORE_QUERY_LATENCY.labels(route=route, operation=operation).observe(
        duration_seconds
    )
