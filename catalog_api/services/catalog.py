"""
Cache-aside orchestration for the product catalog.

Reads go cache first and fall back to the read route; misses are written back
with a fixed TTL. Writes go to the write route and then invalidate the cached
snapshot. Cache interactions are best effort throughout: a cache that is slow
or down only changes latency and the advisory metadata in responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from fastapi import Depends
from pydantic import ValidationError

from catalog_api.core.config import get_settings
from catalog_api.core.telemetry import get_tracer
from catalog_api.models.product import ProductRecord
from catalog_api.persistence.dependencies import (
    get_read_repository,
    get_write_repository,
)
from catalog_api.persistence.repositories import ProductRepository
from catalog_api.services.cache import ResilientCache, get_product_cache

logger = logging.getLogger(__name__)

PRODUCT_CACHE_TTL_SECONDS = 60


def product_key(product_id: int) -> str:
    return f"product:{product_id}"


class ProductNotFoundError(LookupError):
    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


@dataclass(slots=True, frozen=True)
class ProductLookup:
    origin: Literal["cache", "database"]
    data: ProductRecord
    cache_available: bool


@dataclass(slots=True, frozen=True)
class ProductWriteResult:
    data: ProductRecord
    cache_available: bool


@dataclass(slots=True, frozen=True)
class ProductListing:
    data: list[ProductRecord]
    cache_available: bool


class CatalogService:
    """Cache-aside protocol over a read route, a write route and the cache."""

    def __init__(
        self,
        *,
        reader: ProductRepository,
        writer: ProductRepository,
        cache: ResilientCache,
        ttl_seconds: int = PRODUCT_CACHE_TTL_SECONDS,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._cache = cache
        self._ttl = ttl_seconds
        self._tracer = get_tracer()

    async def read_through(self, product_id: int) -> ProductLookup:
        key = product_key(product_id)
        with self._tracer.start_as_current_span("catalog.read_through") as span:
            span.set_attribute("catalog.product_id", product_id)

            cached = await self._cache.get_json(key)
            if cached is not None:
                try:
                    record = ProductRecord.model_validate(cached)
                except ValidationError:
                    logger.warning(
                        "Cached snapshot for %s has an unexpected shape", key
                    )
                else:
                    logger.debug("Cache HIT for product %s", product_id)
                    span.set_attribute("catalog.origin", "cache")
                    return ProductLookup(
                        origin="cache", data=record, cache_available=True
                    )

            logger.debug(
                "Cache MISS for product %s%s",
                product_id,
                "" if self._cache.available else " (cache down)",
            )
            record = await self._reader.find_by_id(product_id)
            if record is None:
                raise ProductNotFoundError(product_id)

            await self._cache.set_json(key, record.model_dump(mode="json"), self._ttl)
            span.set_attribute("catalog.origin", "database")
            return ProductLookup(
                origin="database",
                data=record,
                cache_available=self._cache.available,
            )

    async def create(self, *, name: str, price_cents: int) -> ProductWriteResult:
        record = await self._writer.insert(name=name, price_cents=price_cents)
        logger.info("Created product %s", record.id)
        return ProductWriteResult(data=record, cache_available=self._cache.available)

    async def update_and_invalidate(
        self, product_id: int, *, name: str, price_cents: int
    ) -> ProductWriteResult:
        record = await self._writer.update_by_id(
            product_id, name=name, price_cents=price_cents
        )
        if record is None:
            raise ProductNotFoundError(product_id)

        await self._cache.delete(product_key(product_id))
        return ProductWriteResult(data=record, cache_available=self._cache.available)

    async def list_all(self) -> ProductListing:
        # Full scans bypass the cache; only point lookups are cached.
        records = await self._reader.find_all()
        return ProductListing(data=records, cache_available=self._cache.available)


def get_catalog_service(
    reader: ProductRepository = Depends(get_read_repository),
    writer: ProductRepository = Depends(get_write_repository),
    cache: ResilientCache = Depends(get_product_cache),
) -> CatalogService:
    """FastAPI dependency that wires the service to both routes and the cache."""
    return CatalogService(
        reader=reader,
        writer=writer,
        cache=cache,
        ttl_seconds=get_settings().product_cache_ttl_seconds,
    )


__all__ = [
    "CatalogService",
    "ProductListing",
    "ProductLookup",
    "ProductNotFoundError",
    "ProductWriteResult",
    "get_catalog_service",
    "product_key",
]
