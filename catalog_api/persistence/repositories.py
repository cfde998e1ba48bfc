from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Literal

from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_api.core.metrics import observe_store_query
from catalog_api.models.product import ProductRecord
from catalog_api.persistence import models

logger = logging.getLogger(__name__)

StoreRoute = Literal["read", "write"]


class StoreError(Exception):
    """Raised when a query against the durable store fails."""

    def __init__(self, operation: str, route: str, message: str) -> None:
        super().__init__(f"{operation} on {route} route failed: {message}")
        self.operation = operation
        self.route = route


@dataclass(slots=True, frozen=True)
class StoreProbe:
    db_time: datetime
    product_count: int


class ProductRepository:
    """Queries against the products table, bound to one store route.

    Failures are wrapped in StoreError and always propagated; the store is
    the source of truth, so a failed query fails the request.
    """

    def __init__(self, session: AsyncSession, route: StoreRoute = "write") -> None:
        self._session = session
        self.route = route

    @asynccontextmanager
    async def _query(self, operation: str) -> AsyncIterator[None]:
        started = time.perf_counter()
        try:
            yield
        except (SQLAlchemyError, OSError) as exc:
            observe_store_query(
                self.route, operation, "error", time.perf_counter() - started
            )
            await self._rollback_quietly()
            raise StoreError(operation, self.route, str(exc)) from exc
        observe_store_query(
            self.route, operation, "success", time.perf_counter() - started
        )

    async def _rollback_quietly(self) -> None:
        try:
            await self._session.rollback()
        except (SQLAlchemyError, OSError):
            logger.debug("Rollback after failed %s query also failed", self.route)

    async def find_by_id(self, product_id: int) -> ProductRecord | None:
        async with self._query("find_by_id"):
            row = await self._session.get(models.Product, product_id)
        return ProductRecord.model_validate(row) if row is not None else None

    async def find_all(self) -> list[ProductRecord]:
        async with self._query("find_all"):
            result = await self._session.scalars(
                select(models.Product).order_by(models.Product.id)
            )
            rows = result.all()
        return [ProductRecord.model_validate(row) for row in rows]

    async def insert(self, *, name: str, price_cents: int) -> ProductRecord:
        stmt = (
            insert(models.Product)
            .values(name=name, price_cents=price_cents)
            .returning(models.Product)
        )
        async with self._query("insert"):
            row = (await self._session.scalars(stmt)).one()
            record = ProductRecord.model_validate(row)
            await self._session.commit()
        return record

    async def update_by_id(
        self, product_id: int, *, name: str, price_cents: int
    ) -> ProductRecord | None:
        stmt = (
            update(models.Product)
            .where(models.Product.id == product_id)
            .values(name=name, price_cents=price_cents, updated_at=func.now())
            .returning(models.Product)
            .execution_options(synchronize_session=False)
        )
        async with self._query("update_by_id"):
            row = (await self._session.scalars(stmt)).one_or_none()
            if row is None:
                await self._session.rollback()
                return None
            record = ProductRecord.model_validate(row)
            await self._session.commit()
        return record

    async def probe(self) -> StoreProbe:
        """Live round trip used by the health endpoint."""
        stmt = select(func.now(), func.count(models.Product.id))
        async with self._query("probe"):
            db_time, product_count = (await self._session.execute(stmt)).one()
        return StoreProbe(db_time=db_time, product_count=int(product_count))
