"""
Product catalog endpoints.

Point lookups are served through the cache-aside service; listings always
come from the store. Writes invalidate the cached snapshot of the product.
"""

from fastapi import APIRouter, Depends, Path, status

from catalog_api.models.product import (
    MAX_STORED_INT,
    ProductCreatedResponse,
    ProductListResponse,
    ProductLookupResponse,
    ProductUpdatedResponse,
    ProductWrite,
)
from catalog_api.services.catalog import CatalogService, get_catalog_service

router = APIRouter()


@router.get(
    "",
    response_model=ProductListResponse,
    summary="List all products",
)
async def list_products(
    service: CatalogService = Depends(get_catalog_service),
) -> ProductListResponse:
    listing = await service.list_all()
    return ProductListResponse(
        data=listing.data,
        count=len(listing.data),
        cache_status="available" if listing.cache_available else "unavailable",
    )


@router.get(
    "/{product_id}",
    response_model=ProductLookupResponse,
    response_model_exclude_none=True,
    summary="Get a product through the cache",
)
async def get_product(
    product_id: int = Path(..., le=MAX_STORED_INT),
    service: CatalogService = Depends(get_catalog_service),
) -> ProductLookupResponse:
    lookup = await service.read_through(product_id)
    if lookup.origin == "cache":
        return ProductLookupResponse(source="cache", data=lookup.data)
    return ProductLookupResponse(
        source="database",
        data=lookup.data,
        cache="available" if lookup.cache_available else "unavailable",
    )


@router.post(
    "",
    response_model=ProductCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a product",
)
async def create_product(
    payload: ProductWrite,
    service: CatalogService = Depends(get_catalog_service),
) -> ProductCreatedResponse:
    result = await service.create(name=payload.name, price_cents=payload.price_cents)
    return ProductCreatedResponse(
        **result.data.model_dump(),
        cache_status="active" if result.cache_available else "inactive",
    )


@router.put(
    "/{product_id}",
    response_model=ProductUpdatedResponse,
    summary="Update a product and invalidate its cache entry",
)
async def update_product(
    payload: ProductWrite,
    product_id: int = Path(..., le=MAX_STORED_INT),
    service: CatalogService = Depends(get_catalog_service),
) -> ProductUpdatedResponse:
    result = await service.update_and_invalidate(
        product_id, name=payload.name, price_cents=payload.price_cents
    )
    return ProductUpdatedResponse(
        **result.data.model_dump(),
        cache_invalidated=result.cache_available,
        cache_status="invalidated" if result.cache_available else "unavailable",
    )
