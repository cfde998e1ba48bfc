from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Product ids and prices are stored in 32-bit integer columns.
MAX_STORED_INT = 2_147_483_647


class ProductWrite(BaseModel):
    """Body accepted by create and update requests."""

    name: str = Field(..., description="Display name. Must not be blank.")
    price_cents: int = Field(
        ...,
        ge=0,
        le=MAX_STORED_INT,
        strict=True,
        description="Price in minor currency units.",
    )

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value


class ProductRecord(BaseModel):
    """Snapshot of a stored product, as returned by the API and held in cache."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price_cents: int
    updated_at: datetime


class ProductLookupResponse(BaseModel):
    source: Literal["cache", "database"]
    data: ProductRecord
    cache: Literal["available", "unavailable"] | None = Field(
        None, description="Cache availability, reported on database reads only."
    )


class ProductListResponse(BaseModel):
    data: list[ProductRecord]
    count: int
    cache_status: Literal["available", "unavailable"]


class ProductCreatedResponse(ProductRecord):
    cache_status: Literal["active", "inactive"]


class ProductUpdatedResponse(ProductRecord):
    cache_invalidated: bool
    cache_status: Literal["invalidated", "unavailable"]
