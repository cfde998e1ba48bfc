"""
Resilient cache client for the product catalog.

Wraps a Valkey client so that the cache is purely advisory:
- Every backend call races a fixed deadline and is abandoned when it loses
- Any timeout or backend error marks the cache unreachable
- While unreachable, operations return immediately without touching Valkey
- Nothing is ever raised to the caller

Reachability is restored by CacheHealthMonitor, which stands in for the
backend's connect/ready events by probing with PING and backing off between
failed attempts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from functools import lru_cache
from typing import Any, Awaitable, Callable

import valkey.asyncio as valkey

from catalog_api.core.config import get_settings
from catalog_api.core.metrics import observe_cache_operation, record_cache_event
from catalog_api.services.cache_health import CacheHealthTracker

logger = logging.getLogger(__name__)

_FAILED = object()


class ResilientCache:
    """JSON cache operations that never fail the caller."""

    def __init__(
        self,
        client: valkey.Valkey,
        health: CacheHealthTracker,
        *,
        timeout_seconds: float = 1.0,
        name: str = "product",
    ) -> None:
        self._client = client
        self._health = health
        self._timeout = timeout_seconds
        self._name = name

    @property
    def available(self) -> bool:
        return self._health.reachable

    async def get_json(self, key: str) -> dict[str, Any] | None:
        """Return the decoded document for key, or None on miss or any failure."""
        payload = await self._call("get", key, lambda: self._client.get(key))
        if payload is _FAILED:
            return None
        if payload is None:
            record_cache_event(self._name, "miss")
            return None

        try:
            value = json.loads(payload)
        except (TypeError, ValueError):
            logger.warning("Discarding undecodable cache entry for key %s", key)
            record_cache_event(self._name, "decode_error")
            return None
        if not isinstance(value, dict):
            logger.warning("Discarding non-object cache entry for key %s", key)
            record_cache_event(self._name, "decode_error")
            return None

        record_cache_event(self._name, "hit")
        return value

    async def set_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store value under key with an absolute expiry. Best effort."""
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError):
            logger.warning(
                "Skipping cache write for key %s: value not serializable", key
            )
            return
        await self._call(
            "set", key, lambda: self._client.set(key, encoded, ex=ttl_seconds)
        )

    async def delete(self, key: str) -> None:
        """Remove key from the cache. Best effort."""
        result = await self._call("delete", key, lambda: self._client.delete(key))
        if result is not _FAILED:
            logger.info("Cache invalidated for key %s", key)

    async def _call(
        self, operation: str, key: str, func: Callable[[], Awaitable[Any]]
    ) -> Any:
        if not self._health.reachable:
            record_cache_event(self._name, "skipped")
            return _FAILED

        generation = self._health.generation
        started = time.perf_counter()
        try:
            # wait_for cancels the backend call when the deadline wins, so a
            # late reply can never touch the health state.
            return await asyncio.wait_for(func(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Cache %s timed out after %.2fs for key %s",
                operation,
                self._timeout,
                key,
            )
            record_cache_event(self._name, "timeout")
            self._health.mark_unreachable(f"{operation} timeout", since=generation)
            return _FAILED
        except Exception as exc:
            logger.warning("Cache %s failed for key %s: %s", operation, key, exc)
            record_cache_event(self._name, "error")
            self._health.mark_unreachable(f"{operation} error: {exc}", since=generation)
            return _FAILED
        finally:
            observe_cache_operation(operation, time.perf_counter() - started)


class CacheHealthMonitor:
    """
    Background probe that drives the cache health state.

    A successful PING is treated as the backend's ready signal and a failed
    one as its error signal. While unreachable the monitor retries with a
    linear backoff capped at backoff_max; while reachable it re-checks every
    interval seconds.
    """

    def __init__(
        self,
        client: valkey.Valkey,
        health: CacheHealthTracker,
        *,
        timeout_seconds: float = 1.0,
        interval_seconds: float = 5.0,
        backoff_step_seconds: float = 0.1,
        backoff_max_seconds: float = 3.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._health = health
        self._timeout = timeout_seconds
        self._interval = interval_seconds
        self._backoff_step = backoff_step_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    def reconnect_delay(self, attempt: int) -> float:
        """Delay before reconnection attempt number `attempt` (1-based)."""
        return min(max(attempt, 1) * self._backoff_step, self._backoff_max)

    async def probe_once(self) -> bool:
        try:
            await asyncio.wait_for(self._client.ping(), timeout=self._timeout)
        except asyncio.TimeoutError:
            self._health.mark_unreachable("ping timeout")
            return False
        except Exception as exc:
            self._health.mark_unreachable(f"ping error: {exc}")
            return False
        self._health.mark_reachable("ping")
        return True

    async def run(self) -> None:
        attempt = 0
        while True:
            if await self.probe_once():
                attempt = 0
                delay = self._interval
            else:
                attempt += 1
                delay = self.reconnect_delay(attempt)
                logger.info(
                    "Cache reconnection attempt %d, next probe in %.1fs",
                    attempt,
                    delay,
                )
            await self._sleep(delay)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="cache-health-monitor")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache
def get_valkey_client() -> valkey.Valkey:
    """Return a shared Valkey client instance."""
    settings = get_settings()
    return valkey.from_url(
        settings.valkey_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=settings.cache_operation_timeout_seconds,
    )


@lru_cache
def get_cache_health_tracker() -> CacheHealthTracker:
    """Return the process-wide cache health state."""
    return CacheHealthTracker()


@lru_cache
def get_product_cache() -> ResilientCache:
    """FastAPI dependency hook for cache usage."""
    settings = get_settings()
    return ResilientCache(
        get_valkey_client(),
        get_cache_health_tracker(),
        timeout_seconds=settings.cache_operation_timeout_seconds,
    )


def build_cache_health_monitor() -> CacheHealthMonitor:
    settings = get_settings()
    return CacheHealthMonitor(
        get_valkey_client(),
        get_cache_health_tracker(),
        timeout_seconds=settings.cache_operation_timeout_seconds,
        interval_seconds=settings.cache_health_check_interval_seconds,
        backoff_step_seconds=settings.cache_reconnect_backoff_step_seconds,
        backoff_max_seconds=settings.cache_reconnect_backoff_max_seconds,
    )


__all__ = [
    "CacheHealthMonitor",
    "ResilientCache",
    "build_cache_health_monitor",
    "get_cache_health_tracker",
    "get_product_cache",
    "get_valkey_client",
]
