"""
Signed upload grants for logos and product images.
"""

from __future__ import annotations

from typing import Optional
import logging
import re
import secrets
import time

from storefront.db import ProfileRecord
from storefront.errors import PermissionDenied, StorefrontError, ValidationError
from storefront.storage import StorageClient
from storefront.themes import OperationResult

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def build_upload_key(file_name: str, now_ms: Optional[int] = None) -> str:
    """
    Collision-resistant object key derived from the uploaded file name.

    `Logo Final.PNG` becomes `logo-final-1700000000000-1a2b3c4d.png`.
    """
    stem, dot, ext = file_name.strip().rpartition(".")
    if not dot:
        stem, ext = ext, ""
    stem = _UNSAFE_CHARS.sub("-", stem).strip("-").lower() or "upload"
    ext = _UNSAFE_CHARS.sub("", ext).lower()
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    key = f"{stem[:64]}-{now_ms}-{secrets.token_hex(4)}"
    return f"{key}.{ext}" if ext else key


def create_upload_grant(
    storage: StorageClient,
    profile: Optional[ProfileRecord],
    file_name: str,
    *,
    expires_in: int = 7200,
) -> OperationResult:
    """Admin-gated: mint a single-key upload credential for `file_name`."""
    try:
        if profile is None or not profile.is_admin:
            raise PermissionDenied("Only admins can upload files.")
        if not file_name or not file_name.strip():
            raise ValidationError("A file name is required.")
        path = build_upload_key(file_name)
        grant = storage.create_signed_upload(path, expires_in=expires_in)
        public_url = storage.public_url(path)
    except StorefrontError as exc:
        logger.error("Could not create upload grant for %s: %s", file_name, exc)
        return OperationResult.fail(exc)

    logger.info("Issued upload grant for %s to %s", path, profile.id)
    data = grant.as_dict()
    data["public_url"] = public_url
    return OperationResult.ok(data)
