"""
Live preview channel between a theme editor and storefront preview surfaces.

The editor broadcasts typed messages through a `PreviewHub`; every attached
surface gets its own channel. Delivery is fire-and-forget and at most once,
in send order per channel, with no replay for surfaces attached later: a new
surface catches up by loading the persisted theme itself.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated, Any, Iterable, Literal, Optional, Union
import logging

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from storefront.rendering import background_style, theme_style

if TYPE_CHECKING:
    from storefront.themes import ThemeService

logger = logging.getLogger(__name__)

THEME_UPDATE = "THEME_UPDATE"
THEME_PUBLISHED = "THEME_PUBLISHED"


class ThemeUpdateMessage(BaseModel):
    type: Literal["THEME_UPDATE"] = THEME_UPDATE
    payload: dict[str, Any]


class ThemePublishedMessage(BaseModel):
    type: Literal["THEME_PUBLISHED"] = THEME_PUBLISHED
    payload: dict[str, Any] = Field(default_factory=dict)


PreviewMessage = Annotated[
    Union[ThemeUpdateMessage, ThemePublishedMessage],
    Field(discriminator="type"),
]
preview_message_adapter = TypeAdapter(PreviewMessage)


class PreviewSurface:
    """
    A rendering context for one store's storefront.

    In preview mode it renders the draft and applies `THEME_UPDATE` payloads
    as shallow merges. In published mode it ignores draft updates and marks
    itself for reload when the theme is published.
    """

    def __init__(
        self,
        store_id: str,
        *,
        allowed_origins: Iterable[str],
        preview: bool = True,
    ):
        self.store_id = store_id
        self.allowed_origins = frozenset(allowed_origins)
        self.preview = preview
        self.theme: Optional[dict] = None
        self.needs_reload = False

    def load(self, service: "ThemeService") -> bool:
        result = service.storefront_theme(self.store_id, preview=self.preview)
        if not result.success:
            logger.warning(
                "Preview for store %s could not load theme: %s",
                self.store_id,
                result.error,
            )
            return False
        self.theme = result.data["theme"]
        self.needs_reload = False
        return True

    def receive(self, data: Any, origin: str) -> bool:
        """Handle one raw message. Returns True if it was accepted."""
        if origin not in self.allowed_origins:
            logger.warning("Dropped preview message from origin %s", origin)
            return False
        try:
            message = preview_message_adapter.validate_python(data)
        except PydanticValidationError:
            logger.warning("Dropped malformed preview message for store %s", self.store_id)
            return False

        if isinstance(message, ThemeUpdateMessage):
            if self.preview:
                self.theme = {**(self.theme or {}), **message.payload}
        elif not self.preview:
            self.needs_reload = True
        return True

    @property
    def style(self) -> dict[str, str]:
        return theme_style(self.theme or {})

    @property
    def background_style(self) -> dict[str, str]:
        return background_style((self.theme or {}).get("background"))


class PreviewChannel:
    """Ordered, unacknowledged delivery to exactly one surface."""

    def __init__(self, surface: PreviewSurface, origin: str):
        self.surface = surface
        self.origin = origin
        self.closed = False

    def send(self, data: dict) -> None:
        if self.closed:
            return
        try:
            self.surface.receive(data, self.origin)
        except Exception:
            logger.exception("Preview delivery failed for store %s", self.surface.store_id)

    def close(self) -> None:
        self.closed = True


class PreviewHub:
    """Fan-out point owned by one editor session."""

    def __init__(self, origin: str):
        self.origin = origin
        self.channels: list[PreviewChannel] = []

    def attach(self, surface: PreviewSurface) -> PreviewChannel:
        channel = PreviewChannel(surface, self.origin)
        self.channels.append(channel)
        return channel

    def detach(self, channel: PreviewChannel) -> None:
        channel.close()
        if channel in self.channels:
            self.channels.remove(channel)

    def broadcast(self, message: BaseModel) -> None:
        data = message.model_dump(mode="json")
        for channel in list(self.channels):
            channel.send(data)

    def theme_update(self, payload: dict[str, Any]) -> None:
        self.broadcast(ThemeUpdateMessage(payload=payload))

    def theme_published(self) -> None:
        self.broadcast(ThemePublishedMessage())
