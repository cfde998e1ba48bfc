from __future__ import annotations

import asyncio
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

PROJECT_DIR = Path(__file__).resolve().parents[1]
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from catalog_api.main import create_app  # noqa: E402
from catalog_api.models.product import ProductRecord  # noqa: E402
from catalog_api.persistence.dependencies import (  # noqa: E402
    get_read_repository,
    get_write_repository,
)
from catalog_api.persistence.repositories import StoreError, StoreProbe  # noqa: E402
from catalog_api.services.cache import (  # noqa: E402
    ResilientCache,
    get_cache_health_tracker,
    get_product_cache,
)
from catalog_api.services.cache_health import CacheHealthTracker  # noqa: E402
from catalog_api.services.catalog import CatalogService  # noqa: E402

CACHE_TIMEOUT_SECONDS = 0.05


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "requires_postgres: skip test if PostgreSQL is not available"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeValkey:
    """In-memory Valkey replacement used for tests."""

    def __init__(self, clock=time.monotonic) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._clock = clock
        self.should_fail = False
        self.delay: float = 0.0
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    def _prune(self) -> None:
        now = self._clock()
        expired = [
            key
            for key, (_, expires_at) in self._store.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            self._store.pop(key, None)

    async def _backend(self, command: str, key: str = "") -> None:
        self.calls.append((command, key))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.should_fail:
            raise ConnectionError("valkey unavailable")
        self._prune()

    def put_raw(self, key: str, value: str, ex: int | None = None) -> None:
        expires_at = self._clock() + ex if ex else None
        self._store[key] = (value, expires_at)

    def has(self, key: str) -> bool:
        self._prune()
        return key in self._store

    async def get(self, key: str) -> str | None:
        await self._backend("get", key)
        record = self._store.get(key)
        return record[0] if record is not None else None

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        await self._backend("set", key)
        self.put_raw(key, value, ex)
        return True

    async def delete(self, *keys: str) -> int:
        await self._backend("delete", ",".join(keys))
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
        return removed

    async def ping(self) -> bool:
        await self._backend("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True


class FakeProductRepository:
    """In-memory stand-in for ProductRepository, shared by both routes."""

    def __init__(self) -> None:
        self._rows: dict[int, ProductRecord] = {}
        self._next_id = 1
        self._tick = 0
        self.should_fail = False
        self.mutations: list[str] = []
        self.reads: list[str] = []

    def _timestamp(self) -> datetime:
        self._tick += 1
        return datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(
            seconds=self._tick
        )

    def _check(self, operation: str) -> None:
        if self.should_fail:
            raise StoreError(operation, "write", "connection refused")

    async def find_by_id(self, product_id: int) -> ProductRecord | None:
        self._check("find_by_id")
        self.reads.append(f"find_by_id:{product_id}")
        return self._rows.get(product_id)

    async def find_all(self) -> list[ProductRecord]:
        self._check("find_all")
        self.reads.append("find_all")
        return [self._rows[key] for key in sorted(self._rows)]

    async def insert(self, *, name: str, price_cents: int) -> ProductRecord:
        self._check("insert")
        record = ProductRecord(
            id=self._next_id,
            name=name,
            price_cents=price_cents,
            updated_at=self._timestamp(),
        )
        self._rows[record.id] = record
        self._next_id += 1
        self.mutations.append(f"insert:{record.id}")
        return record

    async def update_by_id(
        self, product_id: int, *, name: str, price_cents: int
    ) -> ProductRecord | None:
        self._check("update_by_id")
        if product_id not in self._rows:
            return None
        record = ProductRecord(
            id=product_id,
            name=name,
            price_cents=price_cents,
            updated_at=self._timestamp(),
        )
        self._rows[product_id] = record
        self.mutations.append(f"update:{product_id}")
        return record

    async def probe(self) -> StoreProbe:
        self._check("probe")
        return StoreProbe(
            db_time=datetime(2026, 1, 1, tzinfo=timezone.utc),
            product_count=len(self._rows),
        )


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def fake_valkey(clock: ManualClock) -> FakeValkey:
    return FakeValkey(clock=clock)


@pytest.fixture()
def cache_health() -> CacheHealthTracker:
    return CacheHealthTracker(reachable=True)


@pytest.fixture()
def resilient_cache(
    fake_valkey: FakeValkey, cache_health: CacheHealthTracker
) -> ResilientCache:
    return ResilientCache(
        fake_valkey, cache_health, timeout_seconds=CACHE_TIMEOUT_SECONDS
    )


@pytest.fixture()
def fake_repository() -> FakeProductRepository:
    return FakeProductRepository()


@pytest.fixture()
def catalog_service(
    fake_repository: FakeProductRepository, resilient_cache: ResilientCache
) -> CatalogService:
    return CatalogService(
        reader=fake_repository, writer=fake_repository, cache=resilient_cache
    )


@pytest.fixture()
def api_client(
    fake_repository: FakeProductRepository,
    resilient_cache: ResilientCache,
    cache_health: CacheHealthTracker,
) -> Iterator[TestClient]:
    """Test client wired to in-memory store and cache fakes.

    The lifespan is not entered, so no real database or Valkey is touched.
    """
    app = create_app()
    app.dependency_overrides[get_read_repository] = lambda: fake_repository
    app.dependency_overrides[get_write_repository] = lambda: fake_repository
    app.dependency_overrides[get_product_cache] = lambda: resilient_cache
    app.dependency_overrides[get_cache_health_tracker] = lambda: cache_health
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
