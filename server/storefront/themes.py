"""
Theme draft/publish operations.

Every operation returns an `OperationResult` instead of raising, so callers
(HTTP routes and editor sessions) check `success` before using `data`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional
import logging

from pydantic import ValidationError as PydanticValidationError

from storefront.cache import RenderCache
from storefront.db import DbClient, ThemeRecord
from storefront.errors import (
    CacheRefreshFailed,
    NotFound,
    StorefrontError,
    UpstreamError,
    ValidationError,
)
from storefront.rendering import background_style, theme_style, theme_view
from storefront.schemas import background_adapter

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: StorefrontError) -> "OperationResult":
        return cls(success=False, error=str(exc), error_code=exc.code)

    def as_dict(self) -> dict:
        payload: dict = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        return payload


class ThemeService:
    """Draft/publish workflow over one `DbClient` and one `RenderCache`."""

    def __init__(self, db: DbClient, cache: RenderCache):
        self.db = db
        self.cache = cache

    def _run(
        self, action: str, store_id: str, operation: Callable[[], Any]
    ) -> OperationResult:
        if not store_id:
            return OperationResult.fail(ValidationError("Store ID is required."))
        try:
            return OperationResult.ok(operation())
        except StorefrontError as exc:
            logger.error("Error %s for store %s: %s", action, store_id, exc)
            return OperationResult.fail(exc)

    def get_theme_settings(self, store_id: str) -> OperationResult:
        """Fetch the theme document, creating the default one if absent."""
        return self._run(
            "fetching theme settings",
            store_id,
            lambda: self.db.get_or_create_theme(store_id).as_dict(),
        )

    def save_draft_theme(self, store_id: str, draft_fields: dict) -> OperationResult:
        """Merge `draft_fields` into the draft side of the document."""

        def save() -> dict:
            patch = dict(draft_fields)
            if patch.get("draft_background") is not None:
                try:
                    background = background_adapter.validate_python(
                        patch["draft_background"]
                    )
                except PydanticValidationError as exc:
                    raise ValidationError(f"Invalid background: {exc}") from exc
                patch["draft_background"] = background.model_dump(by_alias=True)
            record = self.db.apply_draft_patch(store_id, patch)
            logger.info("Saved draft theme fields %s for store %s", sorted(patch), store_id)
            return record.as_dict()

        return self._run("saving draft theme", store_id, save)

    def publish_theme(self, store_id: str) -> OperationResult:
        """
        Copy every draft field over its published counterpart.

        There is no compare-and-swap: whatever draft is stored when the
        update runs becomes live. Publishing twice without an intervening
        draft change leaves the published side unchanged.
        """

        def publish() -> dict:
            record = self.db.publish_theme(store_id)
            try:
                self.cache.invalidate(store_id)
            except UpstreamError as exc:
                raise CacheRefreshFailed(
                    "Theme was published, but the storefront cache could not be "
                    "refreshed. The live site may show the previous theme until "
                    "you publish again."
                ) from exc
            logger.info("Published theme for store %s", store_id)
            return record.as_dict()

        return self._run("publishing theme", store_id, publish)

    def storefront_theme(self, store_id: str, *, preview: bool = False) -> OperationResult:
        """
        Render view for the public storefront.

        Published views go through the render cache; preview (draft) views
        are always read from the database.
        """

        def resolve() -> dict:
            if not preview:
                cached = self.cache.get(store_id)
                if cached is not None:
                    return cached
            if self.db.get_store(store_id) is None:
                raise NotFound(f"Store {store_id} not found")
            record = self.db.get_theme(store_id) or ThemeRecord(store_id=store_id)
            view = theme_view(record.as_dict(), preview=preview)
            rendered = {
                "theme": view,
                "style": theme_style(view),
                "background_style": background_style(view.get("background")),
            }
            if not preview:
                self.cache.set(store_id, rendered)
            return rendered

        return self._run("resolving storefront theme", store_id, resolve)
