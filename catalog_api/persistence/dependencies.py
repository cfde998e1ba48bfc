from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_api.core.database import get_read_session, get_write_session
from catalog_api.persistence.repositories import ProductRepository


async def get_write_repository(
    session: AsyncSession = Depends(get_write_session),
) -> ProductRepository:
    """FastAPI dependency that yields a ProductRepository on the write route."""
    return ProductRepository(session, route="write")


async def get_read_repository(
    session: AsyncSession = Depends(get_read_session),
) -> ProductRepository:
    """FastAPI dependency that yields a ProductRepository on the read route."""
    return ProductRepository(session, route="read")
