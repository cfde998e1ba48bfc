from fastapi import APIRouter

from catalog_api.api.endpoints.health import router as health_router
from catalog_api.api.endpoints.products import router as products_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["meta"])
api_router.include_router(products_router, prefix="/products", tags=["products"])
