"""
Theme editor session: the in-memory draft an admin is working on.

A session is created per editor and owns its draft state, its save queue
and its preview hub; nothing is shared between sessions. Each edit updates
the local draft, is broadcast to attached preview surfaces, and is queued
for a debounced save.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from storefront.config import get_settings
from storefront.db import ProfileRecord
from storefront.drafts import DraftSaveQueue
from storefront.errors import CacheRefreshFailed, StorefrontError, ValidationError
from storefront.preview import PreviewHub, PreviewSurface
from storefront.rendering import draft_field_render_key, theme_view
from storefront.storage import StorageClient
from storefront.themes import OperationResult, ThemeService
from storefront.types import PUBLISHED_FIELDS
from storefront.uploads import create_upload_grant

logger = logging.getLogger(__name__)


class EditorState(str, Enum):
    LOADING = "LOADING"
    IDLE = "IDLE"
    EDITING = "EDITING"
    PERSISTING = "PERSISTING"


@dataclass
class Notification:
    level: str
    message: str
    description: Optional[str] = None


class ThemeEditorSession:
    def __init__(
        self,
        store_id: str,
        service: ThemeService,
        *,
        origin: str,
        debounce_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        storage: Optional[StorageClient] = None,
        profile: Optional[ProfileRecord] = None,
    ):
        self.store_id = store_id
        self.service = service
        self.storage = storage
        self.profile = profile
        self.state = EditorState.LOADING
        self.document: Optional[dict] = None
        self.notifications: list[Notification] = []
        if debounce_seconds is None:
            debounce_seconds = get_settings().draft_debounce_seconds
        self.hub = PreviewHub(origin)
        self.queue = DraftSaveQueue(
            self._save,
            debounce_seconds=debounce_seconds,
            clock=clock,
            on_error=lambda error: self._notify("error", "Failed to save draft", error),
        )

    def _notify(self, level: str, message: str, description: Optional[str] = None) -> None:
        self.notifications.append(Notification(level, message, description))
        log = logger.error if level == "error" else logger.info
        log("[%s] %s%s", self.store_id, message, f": {description}" if description else "")

    def _save(self, patch: dict) -> OperationResult:
        self.state = EditorState.PERSISTING
        return self.service.save_draft_theme(self.store_id, patch)

    def _settle(self, result: Optional[OperationResult]) -> Optional[OperationResult]:
        if result is not None:
            # Failed fields are back in the queue and stay dirty.
            self.state = EditorState.EDITING if self.queue.has_pending else EditorState.IDLE
        return result

    def load(self) -> bool:
        self.state = EditorState.LOADING
        result = self.service.get_theme_settings(self.store_id)
        if not result.success:
            self._notify("error", "Failed to load theme settings", result.error)
            return False
        self.document = result.data
        self.state = EditorState.IDLE
        return True

    @property
    def draft_view(self) -> dict:
        """The draft as the preview renders it."""
        return theme_view(self.document or {}, preview=True)

    def attach_preview(self, surface: PreviewSurface):
        """Attach a surface; it loads the persisted draft itself."""
        surface.load(self.service)
        return self.hub.attach(surface)

    def set_field(self, field: str, value: Any, nested_key: Optional[str] = None) -> bool:
        """Apply one edit locally and queue it. Returns False if the value was refused."""
        if self.document is None:
            raise RuntimeError("Theme settings are not loaded")
        render_key = draft_field_render_key(field, nested_key)
        try:
            self.queue.edit(field, value, nested_key)
        except ValidationError as exc:
            self._notify("error", "Invalid theme value", str(exc))
            return False

        document = copy.deepcopy(self.document)
        if nested_key is not None:
            document[field] = {**(document.get(field) or {}), nested_key: value}
        else:
            document[field] = value
        self.document = document
        self.state = EditorState.EDITING
        self.hub.theme_update({render_key: value})
        return True

    def poll(self) -> Optional[OperationResult]:
        return self._settle(self.queue.poll())

    def flush(self) -> Optional[OperationResult]:
        return self._settle(self.queue.flush())

    def publish(self) -> OperationResult:
        """
        Publish whatever draft is persisted now.

        Edits still waiting in the save queue are not flushed first; they
        reach the live site with the next publish.
        """
        if self.state is not EditorState.IDLE:
            logger.info(
                "[%s] Publishing while editor is %s", self.store_id, self.state.value
            )
        result = self.service.publish_theme(self.store_id)
        if result.success:
            if self.document is not None:
                for name in PUBLISHED_FIELDS:
                    self.document[name] = result.data[name]
            self._notify("success", "Theme published!")
            self.hub.theme_published()
        elif result.error_code == CacheRefreshFailed.code:
            self._notify("warning", "Theme published, storefront refresh pending", result.error)
        else:
            self._notify("error", "Failed to publish", result.error)
        return result

    def upload_logo(
        self, file_name: str, data: bytes, content_type: Optional[str] = None
    ) -> Optional[str]:
        """Upload a logo through a signed grant and set it as the draft logo."""
        if self.storage is None:
            raise RuntimeError("No storage client configured for this session")
        grant_result = create_upload_grant(self.storage, self.profile, file_name)
        if not grant_result.success:
            self._notify("error", grant_result.error or "Could not get a valid upload URL")
            return None
        grant = grant_result.data
        try:
            self.storage.upload_to_signed_url(
                grant["path"], grant["token"], data, content_type=content_type
            )
        except StorefrontError as exc:
            self._notify("error", "Logo upload failed", str(exc))
            return None
        public_url = self.storage.public_url(grant["path"])
        self.set_field("draft_logo_url", public_url)
        self._notify("success", "Logo uploaded successfully")
        return public_url
