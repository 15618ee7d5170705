import re
import unittest
from unittest.mock import MagicMock, patch

import requests
from botocore.exceptions import NoCredentialsError

from storefront.db import InMemoryDbClient
from storefront.errors import PermissionDenied, UploadConflict, UpstreamError
from storefront.storage import InMemoryStorageClient, S3StorageClient
from storefront.types import Role
from storefront.uploads import build_upload_key, create_upload_grant


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class UploadGrantTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.storage = InMemoryStorageClient(clock=self.clock)
        db = InMemoryDbClient()
        self.admin = db.create_profile("admin@example.com", Role.ADMIN)
        self.superadmin = db.create_profile("root@example.com", Role.SUPERADMIN)
        self.customer = db.create_profile("shopper@example.com", Role.USER)

    def _grant(self, file_name="logo.png", expires_in=7200):
        result = create_upload_grant(
            self.storage, self.admin, file_name, expires_in=expires_in
        )
        self.assertTrue(result.success, result.error)
        return result.data

    def test_grant_upload_and_resolve_public_url(self):
        grant = self._grant()
        self.storage.upload_to_signed_url(grant["path"], grant["token"], b"PNG")

        self.assertEqual(self.storage.get_bytes(grant["path"]), b"PNG")
        self.assertEqual(grant["public_url"], self.storage.public_url(grant["path"]))
        self.assertTrue(grant["public_url"].endswith(grant["path"]))
        self.assertEqual(grant["expires_at"], self.clock.now + 7200)

    def test_non_admins_are_refused(self):
        for profile in (self.customer, None):
            result = create_upload_grant(self.storage, profile, "logo.png")
            self.assertFalse(result.success)
            self.assertEqual(result.error_code, "permission_denied")
        self.assertEqual(self.storage.grants, {})

        result = create_upload_grant(self.storage, self.superadmin, "logo.png")
        self.assertTrue(result.success)

    def test_blank_file_name_is_rejected(self):
        result = create_upload_grant(self.storage, self.admin, "   ")
        self.assertFalse(result.success)
        self.assertEqual(result.error_code, "validation")

    def test_token_only_works_for_its_own_path(self):
        grant = self._grant()
        with self.assertRaises(PermissionDenied):
            self.storage.upload_to_signed_url("someone-else.png", grant["token"], b"x")
        self.assertNotIn("someone-else.png", self.storage.stored_objects)

    def test_token_cannot_be_reused_after_success(self):
        grant = self._grant()
        self.storage.upload_to_signed_url(grant["path"], grant["token"], b"first")
        with self.assertRaises(PermissionDenied):
            self.storage.upload_to_signed_url(grant["path"], grant["token"], b"second")
        self.assertEqual(self.storage.get_bytes(grant["path"]), b"first")

    def test_expired_token_is_rejected(self):
        grant = self._grant(expires_in=60)
        self.clock.now += 61
        with self.assertRaises(PermissionDenied):
            self.storage.upload_to_signed_url(grant["path"], grant["token"], b"late")

    def test_expired_unused_grants_are_pruned(self):
        stale = self._grant(expires_in=60)
        live = self._grant(expires_in=600)
        self.clock.now += 61
        fresh = self._grant()

        self.assertNotIn(stale["token"], self.storage.grants)
        self.assertEqual(set(self.storage.grants), {live["token"], fresh["token"]})

    def test_existing_object_is_never_overwritten(self):
        first = self.storage.create_signed_upload("fixed-key.png")
        second = self.storage.create_signed_upload("fixed-key.png")
        self.storage.upload_to_signed_url("fixed-key.png", first.token, b"one")
        with self.assertRaises(UploadConflict):
            self.storage.upload_to_signed_url("fixed-key.png", second.token, b"two")
        self.assertEqual(self.storage.get_bytes("fixed-key.png"), b"one")

    def test_keys_are_unique_and_sanitized(self):
        key = build_upload_key("My Logo (final).PNG", now_ms=1700000000000)
        self.assertRegex(key, r"^my-logo-final-1700000000000-[0-9a-f]{8}\.png$")
        self.assertNotEqual(
            build_upload_key("a.png", now_ms=1), build_upload_key("a.png", now_ms=1)
        )
        self.assertTrue(re.match(r"^upload-\d+-[0-9a-f]{8}\.jpg$", build_upload_key(".jpg")))
        self.assertRegex(build_upload_key("README"), r"^readme-\d+-[0-9a-f]{8}$")


class S3StorageClientTests(unittest.TestCase):
    def setUp(self):
        patcher = patch("storefront.storage.boto3.client")
        self.mock_boto_client = patcher.start()
        self.addCleanup(patcher.stop)
        self.s3 = MagicMock()
        self.mock_boto_client.return_value = self.s3
        self.s3.generate_presigned_url.side_effect = lambda ClientMethod, Params, ExpiresIn: (
            f"https://product-images.s3.example.com/{Params['Key']}"
            f"?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=sig"
        )
        self.client = S3StorageClient(
            bucket="product-images",
            region="us-east-1",
            endpoint=None,
            access_key_id="key",
            secret_access_key="secret",
        )

    def test_grant_is_a_conditional_presigned_put(self):
        grant = self.client.create_signed_upload("logo-1.png", expires_in=600)

        self.s3.generate_presigned_url.assert_called_with(
            ClientMethod="put_object",
            Params={"Bucket": "product-images", "Key": "logo-1.png", "IfNoneMatch": "*"},
            ExpiresIn=600,
        )
        self.assertEqual(grant.path, "logo-1.png")
        self.assertEqual(grant.token, "X-Amz-Expires=600&X-Amz-Signature=sig")
        self.assertEqual(
            self.client.public_url("logo-1.png"),
            "https://product-images.s3.example.com/logo-1.png",
        )

    @patch("storefront.storage.requests.put")
    def test_upload_maps_storage_responses(self, mock_put):
        mock_put.return_value = MagicMock(status_code=200, ok=True)
        self.client.upload_to_signed_url("logo-1.png", "X-Amz-Signature=sig", b"data")
        url = mock_put.call_args.args[0]
        self.assertEqual(url, "https://product-images.s3.example.com/logo-1.png?X-Amz-Signature=sig")
        self.assertEqual(mock_put.call_args.kwargs["headers"]["If-None-Match"], "*")

        mock_put.return_value = MagicMock(status_code=412, ok=False)
        with self.assertRaises(UploadConflict):
            self.client.upload_to_signed_url("logo-1.png", "t", b"data")

        mock_put.return_value = MagicMock(status_code=403, ok=False)
        with self.assertRaises(PermissionDenied):
            self.client.upload_to_signed_url("logo-1.png", "t", b"data")

        mock_put.side_effect = requests.ConnectionError()
        with self.assertRaises(UpstreamError):
            self.client.upload_to_signed_url("logo-1.png", "t", b"data")

    def test_grant_fails_cleanly_when_object_url_cannot_be_resolved(self):
        def presign(ClientMethod, Params, ExpiresIn):
            if ClientMethod == "get_object":
                raise NoCredentialsError()
            return f"https://product-images.s3.example.com/{Params['Key']}?X-Amz-Signature=sig"

        self.s3.generate_presigned_url.side_effect = presign
        admin = InMemoryDbClient().create_profile("admin@example.com", Role.ADMIN)

        result = create_upload_grant(self.client, admin, "logo.png")

        self.assertFalse(result.success)
        self.assertEqual(result.error_code, UpstreamError.code)

    def test_public_base_url_takes_precedence(self):
        self.client.public_base_url = "https://cdn.example.com/assets/"
        self.assertEqual(
            self.client.public_url("a b.png"), "https://cdn.example.com/assets/a%20b.png"
        )


if __name__ == "__main__":
    unittest.main()
