"""
Error taxonomy shared by the DB, storage and service layers.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class; `code` is the stable identifier surfaced in results."""

    code = "error"


class ValidationError(StorefrontError):
    code = "validation"


class PermissionDenied(StorefrontError):
    code = "permission_denied"


class NotFound(StorefrontError):
    code = "not_found"


class UpstreamError(StorefrontError):
    """The backing database or storage service failed."""

    code = "upstream"


class UploadConflict(UpstreamError):
    """An object already exists at the upload key."""

    code = "conflict"


class CacheRefreshFailed(UpstreamError):
    """The change is stored but the cached storefront view is stale."""

    code = "cache_stale"


ERROR_STATUS_CODES = {
    ValidationError.code: 400,
    PermissionDenied.code: 403,
    NotFound.code: 404,
    UploadConflict.code: 409,
    CacheRefreshFailed.code: 502,
    UpstreamError.code: 502,
}
