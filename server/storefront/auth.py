"""
Caller identity and admin checks.

Authentication itself is handled by the upstream auth service, which
forwards the signed-in user's id in the `X-User-Id` header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

from storefront.db import DbClient, ProfileRecord, StoreRecord
from storefront.dependencies import get_db_client
from storefront.errors import NotFound, PermissionDenied
from storefront.types import Role


def check_store_access(profile: ProfileRecord, store: Optional[StoreRecord]) -> StoreRecord:
    """Admins manage the stores they own; superadmins manage every store."""
    if not profile.is_admin:
        raise PermissionDenied("Admin access required.")
    if store is None:
        raise NotFound("Store not found.")
    if profile.role is not Role.SUPERADMIN and store.owner_id != profile.id:
        raise PermissionDenied("You do not have access to this store.")
    return store


def get_current_profile(
    x_user_id: Optional[str] = Header(default=None),
    db: DbClient = Depends(get_db_client),
) -> ProfileRecord:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated.")
    profile = db.get_profile(x_user_id)
    if profile is None:
        raise HTTPException(status_code=401, detail="Not authenticated.")
    return profile


def require_admin(profile: ProfileRecord = Depends(get_current_profile)) -> ProfileRecord:
    if not profile.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required.")
    return profile


def get_managed_store(
    store_id: str,
    profile: ProfileRecord = Depends(require_admin),
    db: DbClient = Depends(get_db_client),
) -> StoreRecord:
    return check_store_access(profile, db.get_store(store_id))
