from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class DatabaseStatus(BaseModel):
    status: str
    time: datetime
    product_count: int


class CacheStatus(BaseModel):
    status: str
    connected: bool


class ApiStatus(BaseModel):
    status: str
    uptime: float = Field(..., description="Process uptime in seconds.")


class ServiceStatuses(BaseModel):
    database: DatabaseStatus
    cache: CacheStatus
    api: ApiStatus


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    services: ServiceStatuses


class ServiceBanner(BaseModel):
    message: str
    status: str
    timestamp: datetime
    endpoints: list[str]
