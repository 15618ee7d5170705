"""
Storage abstraction for S3-compatible object storage and in-memory testing.

Assets are written directly by the browser with a signed upload grant, so
the API never proxies file bytes. A grant is scoped to exactly one key and
the upload is rejected if an object already exists at that key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol
from urllib.parse import quote
import logging
import secrets
import time

import boto3
import requests
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from storefront.errors import PermissionDenied, UploadConflict, UpstreamError

logger = logging.getLogger(__name__)

UPLOAD_TIMEOUT = 60  # seconds


@dataclass(frozen=True)
class UploadGrant:
    path: str
    token: str
    url: str
    expires_at: float

    def as_dict(self) -> dict:
        return {
            "path": self.path,
            "token": self.token,
            "url": self.url,
            "expires_at": self.expires_at,
        }


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def create_signed_upload(self, path: str, expires_in: int = 7200) -> UploadGrant:
        ...

    def upload_to_signed_url(
        self, path: str, token: str, data: bytes, content_type: str | None = None
    ) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    bucket: str = "product-images"
    clock: Callable[[], float] = time.time
    stored_objects: dict = field(default_factory=dict)
    grants: dict = field(default_factory=dict)

    def create_signed_upload(self, path: str, expires_in: int = 7200) -> UploadGrant:
        now = self.clock()
        for stale in [t for t, g in self.grants.items() if now >= g.expires_at]:
            del self.grants[stale]
        token = secrets.token_urlsafe(24)
        grant = UploadGrant(
            path=path,
            token=token,
            url=f"{self.base_url}/upload/sign/{self.bucket}/{quote(path)}?token={token}",
            expires_at=now + expires_in,
        )
        self.grants[token] = grant
        return grant

    def upload_to_signed_url(
        self, path: str, token: str, data: bytes, content_type: str | None = None
    ) -> None:
        grant = self.grants.get(token)
        if grant is None or grant.path != path:
            raise PermissionDenied(f"Upload token is not valid for {path}")
        if self.clock() >= grant.expires_at:
            del self.grants[token]
            raise PermissionDenied("Upload token has expired")
        if path in self.stored_objects:
            raise UploadConflict(f"An object already exists at {path}")
        self.stored_objects[path] = bytes(data)
        # Grants are single use.
        del self.grants[token]

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/object/public/{self.bucket}/{quote(path)}"

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client using presigned, conditional PUT uploads.
    """

    bucket: str
    region: str
    endpoint: Optional[str]
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _object_url(self, path: str) -> str:
        # Presigning is local (no network call); stripping the query leaves
        # the addressing-style specific object URL.
        try:
            url = self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=60,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError(f"Could not resolve the object URL for {path}") from exc
        return url.split("?", 1)[0]

    def create_signed_upload(self, path: str, expires_in: int = 7200) -> UploadGrant:
        # If-None-Match becomes a signed header, so the upload can never
        # replace an existing object.
        try:
            url = self._client.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self.bucket, "Key": path, "IfNoneMatch": "*"},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Failed to presign upload for %s", path)
            raise UpstreamError("Could not create a signed upload URL") from exc
        _, token = url.split("?", 1)
        return UploadGrant(
            path=path, token=token, url=url, expires_at=time.time() + expires_in
        )

    def upload_to_signed_url(
        self, path: str, token: str, data: bytes, content_type: str | None = None
    ) -> None:
        headers = {"If-None-Match": "*"}
        if content_type:
            headers["Content-Type"] = content_type
        try:
            response = requests.put(
                f"{self._object_url(path)}?{token}",
                data=data,
                headers=headers,
                timeout=UPLOAD_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Upload to {path} failed") from exc
        if response.status_code == 412:
            raise UploadConflict(f"An object already exists at {path}")
        if response.status_code == 403:
            raise PermissionDenied(f"Upload token is not valid for {path}")
        if not response.ok:
            raise UpstreamError(
                f"Upload to {path} failed with status {response.status_code}"
            )

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(path)}"
        return self._object_url(path)

    def get_bytes(self, path: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=path)
        return response["Body"].read()
