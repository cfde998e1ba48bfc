"""Advisory reachability state for the cache backend."""

from __future__ import annotations

import logging

from catalog_api.core.metrics import set_cache_backend_up

logger = logging.getLogger(__name__)


class CacheHealthTracker:
    """
    Last known reachability of the cache backend.

    The flag is advisory: request handlers read it to pick messaging and cache
    operations read it to skip the backend, but correctness never depends on
    it. Every transition from unreachable to reachable starts a new generation. A failure
    reported by an operation that started under an older generation is
    ignored, so a slow call against a connection that has since been replaced
    cannot knock a fresh reconnect back to unreachable.
    """

    def __init__(self, reachable: bool = False) -> None:
        self._reachable = reachable
        self._generation = 0
        set_cache_backend_up(reachable)

    @property
    def reachable(self) -> bool:
        return self._reachable

    @property
    def generation(self) -> int:
        return self._generation

    def mark_reachable(self, reason: str = "ready") -> None:
        """Record a successful connect/ready signal from the backend."""
        if self._reachable:
            return
        self._generation += 1
        self._reachable = True
        set_cache_backend_up(True)
        logger.info("Cache backend reachable (%s)", reason)

    def mark_unreachable(self, reason: str, *, since: int | None = None) -> bool:
        """Record a failure. Returns False when the report is stale and ignored."""
        if since is not None and since != self._generation:
            logger.debug(
                "Ignoring stale cache failure (%s) from generation %s", reason, since
            )
            return False
        if self._reachable:
            logger.warning("Cache backend unreachable: %s", reason)
        self._reachable = False
        set_cache_backend_up(False)
        return True


__all__ = ["CacheHealthTracker"]
