"""
Coalescing save queue for draft theme edits.

Edits are buffered as a map from field key to latest value. Each edit pushes
the flush deadline back by the debounce window; once the window passes
without edits, `poll()` persists one patch carrying the last value of every
touched field. A dispatched save is never cancelled.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple
import logging
import time

from pydantic import ValidationError as PydanticValidationError

from storefront.errors import ValidationError
from storefront.schemas import background_adapter
from storefront.types import DRAFT_FIELDS

logger = logging.getLogger(__name__)

FieldKey = Tuple[str, Optional[str]]


def check_draft_value(field: str, value: Any) -> None:
    """Reject values the service would refuse on every retry."""
    if field == "draft_background" and value is not None:
        try:
            background_adapter.validate_python(value)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid background: {exc}") from exc


def build_patch(edits: Dict[FieldKey, Any]) -> dict:
    """Turn buffered edits into a `save_draft_theme` patch."""
    patch: dict = {}
    for (field, nested_key), value in edits.items():
        if nested_key is None:
            patch[field] = value
        else:
            patch.setdefault(field, {})[nested_key] = value
    return patch


class DraftSaveQueue:
    def __init__(
        self,
        saver: Callable[[dict], Any],
        *,
        debounce_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        self._saver = saver
        self._clock = clock
        self._on_error = on_error
        self.debounce_seconds = debounce_seconds
        self._pending: Dict[FieldKey, Any] = {}
        self._deadline: Optional[float] = None
        self.in_flight = False

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def edit(self, field: str, value: Any, nested_key: Optional[str] = None) -> None:
        if field not in DRAFT_FIELDS:
            raise ValueError(f"Not a draft field: {field}")
        if (field == "draft_settings") != (nested_key is not None):
            raise ValueError("Settings edits need a nested key, other fields must not have one")
        check_draft_value(field, value)
        self._pending[(field, nested_key)] = value
        self._deadline = self._clock() + self.debounce_seconds

    def poll(self) -> Optional[Any]:
        """Flush if the debounce window has elapsed. Returns the save result, if any."""
        if self._deadline is None or self._clock() < self._deadline:
            return None
        return self.flush()

    def flush(self) -> Optional[Any]:
        self._deadline = None
        if not self._pending:
            return None
        batch, self._pending = self._pending, {}
        self.in_flight = True
        try:
            result = self._saver(build_patch(batch))
        except Exception:
            self._requeue(batch)
            raise
        finally:
            self.in_flight = False

        if not result.success:
            if result.error_code == ValidationError.code:
                # Retrying the same values cannot succeed.
                logger.warning("Dropped rejected draft fields %s: %s", sorted({field for field, _ in batch}), result.error)
            else:
                self._requeue(batch)
                logger.warning("Draft save failed: %s", result.error)
            if self._on_error:
                self._on_error(result.error or "Failed to save draft")
        return result

    def _requeue(self, batch: Dict[FieldKey, Any]) -> None:
        # Values edited after the batch was taken are newer and win.
        for key, value in batch.items():
            self._pending.setdefault(key, value)
