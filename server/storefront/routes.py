"""
HTTP routes for the storefront backend API.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from storefront.auth import get_current_profile, get_managed_store, require_admin
from storefront.config import get_settings
from storefront.db import DbClient, ProfileRecord, StoreRecord
from storefront.dependencies import (
    get_db_client,
    get_storage_client,
    get_theme_service,
)
from storefront.errors import ERROR_STATUS_CODES
from storefront.schemas import (
    CategoryRequest,
    CategoryResponse,
    DraftThemePatch,
    ListCategoriesResponse,
    ListProductsResponse,
    ListStoresResponse,
    OperationResponse,
    ProductCreateRequest,
    ProductResponse,
    ProductUpdateRequest,
    StoreCreateRequest,
    StoreResponse,
    StorefrontThemeResponse,
    UploadGrantResponse,
    UploadSignRequest,
)
from storefront.storage import StorageClient
from storefront.themes import OperationResult, ThemeService
from storefront.uploads import create_upload_grant

logger = logging.getLogger(__name__)

router = APIRouter()


def _unwrap(result: OperationResult) -> OperationResult:
    if not result.success:
        status_code = ERROR_STATUS_CODES.get(result.error_code or "", 500)
        raise HTTPException(status_code=status_code, detail=result.error)
    return result


# Theme draft/publish


@router.get("/stores/{store_id}/theme", response_model=OperationResponse)
def get_theme_settings(
    store: StoreRecord = Depends(get_managed_store),
    themes: ThemeService = Depends(get_theme_service),
):
    """
    Return the store's theme document, creating the default one on first access.
    """
    result = _unwrap(themes.get_theme_settings(store.id))
    return OperationResponse(**result.as_dict())


@router.patch("/stores/{store_id}/theme/draft", response_model=OperationResponse)
def save_draft_theme(
    payload: DraftThemePatch,
    store: StoreRecord = Depends(get_managed_store),
    themes: ThemeService = Depends(get_theme_service),
):
    patch = payload.to_patch()
    if not patch:
        raise HTTPException(status_code=400, detail="No draft fields to save")
    result = _unwrap(themes.save_draft_theme(store.id, patch))
    return OperationResponse(**result.as_dict())


@router.post("/stores/{store_id}/theme/publish", response_model=OperationResponse)
def publish_theme(
    store: StoreRecord = Depends(get_managed_store),
    themes: ThemeService = Depends(get_theme_service),
):
    result = _unwrap(themes.publish_theme(store.id))
    return OperationResponse(**result.as_dict())


@router.get("/stores/{store_id}/storefront-theme", response_model=StorefrontThemeResponse)
def storefront_theme(
    store_id: str,
    preview: bool = Query(False, description="Render the draft instead of the live theme"),
    themes: ThemeService = Depends(get_theme_service),
):
    # Preview mode is selected by the flag alone; draft themes are not secret.
    result = _unwrap(themes.storefront_theme(store_id, preview=preview))
    return StorefrontThemeResponse(store_id=store_id, preview=preview, **result.data)


# Uploads


@router.post("/uploads/sign", response_model=UploadGrantResponse)
def sign_upload(
    payload: UploadSignRequest,
    profile: ProfileRecord = Depends(get_current_profile),
    storage: StorageClient = Depends(get_storage_client),
):
    settings = get_settings()
    result = _unwrap(
        create_upload_grant(
            storage,
            profile,
            payload.file_name,
            expires_in=settings.upload_grant_ttl_seconds,
        )
    )
    return UploadGrantResponse(**result.data)


# Stores


@router.post("/stores", response_model=StoreResponse, status_code=201)
def create_store(
    payload: StoreCreateRequest,
    profile: ProfileRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    store = db.create_store(payload.name.strip(), profile.id)
    logger.info("Created store %s for %s", store.id, profile.id)
    return StoreResponse(**store.as_dict())


@router.get("/stores", response_model=ListStoresResponse)
def list_stores(
    profile: ProfileRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
):
    stores = db.list_stores(profile.id)
    return ListStoresResponse(stores=[StoreResponse(**s.as_dict()) for s in stores])


@router.delete("/stores/{store_id}", status_code=204)
def delete_store(
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
    themes: ThemeService = Depends(get_theme_service),
):
    db.delete_store(store.id)
    themes.cache.invalidate(store.id)
    logger.info("Deleted store %s", store.id)


# Categories


@router.get("/stores/{store_id}/categories", response_model=ListCategoriesResponse)
def list_categories(store_id: str, db: DbClient = Depends(get_db_client)):
    categories = db.list_categories(store_id)
    return ListCategoriesResponse(
        categories=[CategoryResponse(**c.as_dict()) for c in categories]
    )


@router.post(
    "/stores/{store_id}/categories", response_model=CategoryResponse, status_code=201
)
def add_category(
    payload: CategoryRequest,
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
):
    category = db.create_category(store.id, payload.name.strip())
    return CategoryResponse(**category.as_dict())


@router.patch(
    "/stores/{store_id}/categories/{category_id}", response_model=CategoryResponse
)
def update_category(
    category_id: str,
    payload: CategoryRequest,
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
):
    category = db.update_category(store.id, category_id, payload.name.strip())
    return CategoryResponse(**category.as_dict())


@router.delete("/stores/{store_id}/categories/{category_id}", status_code=204)
def delete_category(
    category_id: str,
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
):
    db.delete_category(store.id, category_id)


# Products


@router.get("/stores/{store_id}/products", response_model=ListProductsResponse)
def list_products(
    store_id: str,
    category_id: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Case-insensitive name search"),
    db: DbClient = Depends(get_db_client),
):
    products = db.list_products(store_id, category_id=category_id, search=q)
    return ListProductsResponse(
        products=[ProductResponse(**p.as_dict()) for p in products]
    )


@router.post("/stores/{store_id}/products", response_model=ProductResponse, status_code=201)
def add_product(
    payload: ProductCreateRequest,
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
):
    product = db.create_product(store.id, payload.model_dump())
    return ProductResponse(**product.as_dict())


@router.patch(
    "/stores/{store_id}/products/{product_id}", response_model=ProductResponse
)
def update_product(
    product_id: str,
    payload: ProductUpdateRequest,
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
):
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No product fields to update")
    product = db.update_product(store.id, product_id, changes)
    return ProductResponse(**product.as_dict())


@router.delete("/stores/{store_id}/products/{product_id}", status_code=204)
def delete_product(
    product_id: str,
    store: StoreRecord = Depends(get_managed_store),
    db: DbClient = Depends(get_db_client),
):
    db.delete_product(store.id, product_id)
