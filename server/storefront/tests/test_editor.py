import unittest

from storefront.cache import InMemoryRenderCache
from storefront.db import InMemoryDbClient
from storefront.editor import EditorState, ThemeEditorSession
from storefront.errors import UpstreamError, ValidationError
from storefront.preview import PreviewSurface
from storefront.storage import InMemoryStorageClient
from storefront.themes import ThemeService
from storefront.types import DEFAULT_THEME_SETTINGS, Role

ORIGIN = "https://admin.example.com"


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FlakyDb(InMemoryDbClient):
    def __init__(self):
        super().__init__()
        self.fail_patches = 0
        self.reject_patches = 0
        self.patch_calls = 0

    def apply_draft_patch(self, store_id, patch):
        self.patch_calls += 1
        if self.fail_patches:
            self.fail_patches -= 1
            raise UpstreamError("connection reset")
        if self.reject_patches:
            self.reject_patches -= 1
            raise ValidationError("Value rejected by the database")
        return super().apply_draft_patch(store_id, patch)


class UnreachableCache(InMemoryRenderCache):
    def invalidate(self, store_id):
        raise UpstreamError("Could not invalidate the storefront cache")


class ThemeEditorSessionTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.db = FlakyDb()
        self.service = ThemeService(self.db, InMemoryRenderCache())
        self.storage = InMemoryStorageClient()
        self.admin = self.db.create_profile("owner@example.com", Role.ADMIN)
        self.store_id = self.db.create_store("S1", self.admin.id).id
        self.session = self._session()

    def _session(self, profile=None):
        return ThemeEditorSession(
            self.store_id,
            self.service,
            origin=ORIGIN,
            debounce_seconds=1.0,
            clock=self.clock,
            storage=self.storage,
            profile=profile or self.admin,
        )

    def test_session_lifecycle(self):
        self.assertEqual(self.session.state, EditorState.LOADING)
        self.assertTrue(self.session.load())
        self.assertEqual(self.session.state, EditorState.IDLE)
        self.assertEqual(self.session.draft_view["primaryColor"], "#6D28D9")

        self.session.set_field("draft_header_bg_color", "#000000")
        self.assertEqual(self.session.state, EditorState.EDITING)
        self.assertIsNone(self.session.poll())

        self.clock.now += 1.0
        result = self.session.poll()
        self.assertTrue(result.success)
        self.assertEqual(self.session.state, EditorState.IDLE)

        stored = self.db.get_theme(self.store_id)
        self.assertEqual(stored.draft_header_bg_color, "#000000")
        self.assertIsNone(stored.published_header_bg_color)

        self.assertTrue(self.session.publish().success)
        stored = self.db.get_theme(self.store_id)
        self.assertEqual(stored.published_header_bg_color, "#000000")
        self.assertEqual(self.session.document["published_header_bg_color"], "#000000")

    def test_edits_reach_preview_before_they_are_saved(self):
        self.session.load()
        surface = PreviewSurface(self.store_id, allowed_origins=[ORIGIN])
        self.session.attach_preview(surface)

        self.session.set_field("draft_settings", "#FF0000", nested_key="primaryColor")
        self.session.set_field("draft_footer_bg_color", "#EEEEEE")

        self.assertEqual(surface.theme["primaryColor"], "#FF0000")
        self.assertEqual(surface.theme["footerBgColor"], "#EEEEEE")
        self.assertEqual(self.db.patch_calls, 0)
        self.assertEqual(
            self.db.get_theme(self.store_id).draft_settings, DEFAULT_THEME_SETTINGS
        )

    def test_repeated_edits_make_one_write(self):
        self.session.load()
        for value in ("#100000", "#200000", "#300000"):
            self.session.set_field("draft_settings", value, nested_key="primaryColor")
            self.clock.now += 0.5
        self.clock.now += 1.0
        self.session.poll()

        self.assertEqual(self.db.patch_calls, 1)
        self.assertEqual(
            self.db.get_theme(self.store_id).draft_settings["primaryColor"], "#300000"
        )

    def test_failed_save_keeps_local_edit_and_retries_next_cycle(self):
        self.session.load()
        self.db.fail_patches = 1
        self.session.set_field("draft_logo_url", "https://cdn.test/a.png")
        result = self.session.flush()

        self.assertFalse(result.success)
        self.assertEqual(self.session.state, EditorState.EDITING)
        self.assertEqual(self.session.document["draft_logo_url"], "https://cdn.test/a.png")
        self.assertEqual(self.session.notifications[-1].message, "Failed to save draft")

        self.session.set_field("draft_header_bg_color", "#222222")
        self.clock.now += 1.0
        self.assertTrue(self.session.poll().success)
        stored = self.db.get_theme(self.store_id)
        self.assertEqual(stored.draft_logo_url, "https://cdn.test/a.png")
        self.assertEqual(stored.draft_header_bg_color, "#222222")
        self.assertEqual(self.session.state, EditorState.IDLE)

    def test_invalid_background_is_refused_and_later_edits_still_save(self):
        self.session.load()
        self.assertFalse(self.session.set_field("draft_background", {"type": "bogus"}))
        self.assertEqual(self.session.notifications[-1].message, "Invalid theme value")
        self.assertIsNone(self.session.document["draft_background"])
        self.assertFalse(self.session.queue.has_pending)

        for shade in ("#000000", "#000001", "#000002"):
            self.assertTrue(self.session.set_field("draft_header_bg_color", shade))
            self.clock.now += 1.0
            self.assertTrue(self.session.poll().success)
        self.assertEqual(
            self.db.get_theme(self.store_id).draft_header_bg_color, "#000002"
        )
        self.assertEqual(self.session.state, EditorState.IDLE)

    def test_rejected_save_is_not_retried(self):
        self.session.load()
        self.db.reject_patches = 1
        self.session.set_field("draft_logo_url", "bad")
        self.assertFalse(self.session.flush().success)
        self.assertEqual(self.session.state, EditorState.IDLE)
        self.assertEqual(self.session.notifications[-1].message, "Failed to save draft")

        self.session.set_field("draft_footer_bg_color", "#333333")
        self.clock.now += 1.0
        self.assertTrue(self.session.poll().success)
        stored = self.db.get_theme(self.store_id)
        self.assertEqual(stored.draft_footer_bg_color, "#333333")
        self.assertIsNone(stored.draft_logo_url)

    def test_publish_with_stale_cache_says_the_theme_is_live(self):
        service = ThemeService(self.db, UnreachableCache())
        session = ThemeEditorSession(
            self.store_id, service, origin=ORIGIN, debounce_seconds=1.0, clock=self.clock
        )
        session.load()
        session.set_field("draft_header_bg_color", "#0A0A0A")
        session.flush()

        result = session.publish()
        self.assertFalse(result.success)
        notification = session.notifications[-1]
        self.assertEqual(notification.level, "warning")
        self.assertIn("Theme published", notification.message)
        self.assertEqual(
            self.db.get_theme(self.store_id).published_header_bg_color, "#0A0A0A"
        )

    def test_publish_with_pending_edits_publishes_persisted_draft(self):
        self.session.load()
        self.session.set_field("draft_header_bg_color", "#ABABAB")
        self.assertTrue(self.session.publish().success)
        self.assertIsNone(self.db.get_theme(self.store_id).published_header_bg_color)

    def test_sessions_are_independent(self):
        other = self._session()
        self.session.load()
        other.load()
        self.session.set_field("draft_footer_bg_color", "#111111")
        self.assertIsNone(other.document["draft_footer_bg_color"])
        self.assertFalse(other.queue.has_pending)

    def test_upload_logo_sets_draft_logo_and_updates_preview(self):
        self.session.load()
        surface = PreviewSurface(self.store_id, allowed_origins=[ORIGIN])
        self.session.attach_preview(surface)

        url = self.session.upload_logo("brand.png", b"\x89PNG")

        self.assertIsNotNone(url)
        self.assertEqual(surface.theme["logoUrl"], url)
        self.assertEqual(self.session.document["draft_logo_url"], url)
        self.assertEqual(len(self.storage.stored_objects), 1)
        self.session.flush()
        self.assertEqual(self.db.get_theme(self.store_id).draft_logo_url, url)

    def test_upload_logo_requires_admin(self):
        customer = self.db.create_profile("shopper@example.com", Role.USER)
        session = self._session(profile=customer)
        session.load()
        self.assertIsNone(session.upload_logo("brand.png", b"x"))
        self.assertEqual(self.storage.stored_objects, {})
        self.assertIsNone(session.document["draft_logo_url"])

    def test_load_failure_is_reported(self):
        session = ThemeEditorSession("missing", self.service, origin=ORIGIN)
        self.assertFalse(session.load())
        self.assertEqual(session.state, EditorState.LOADING)
        self.assertEqual(session.notifications[0].level, "error")
        with self.assertRaises(RuntimeError):
            session.set_field("draft_logo_url", "x")


if __name__ == "__main__":
    unittest.main()
