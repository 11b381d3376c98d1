"""
Object storage for uploaded photos: Firebase Storage, Tencent COS
(S3-compatible) and an in-memory implementation for testing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config


class ObjectStore(Protocol):
    """Defines the operations the API needs from object storage."""

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        ...

    def delete_object(self, path: str) -> None:
        ...


@dataclass
class InMemoryObjectStore:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        self.stored_objects[path] = bytes(data)
        self.content_types[path] = content_type
        return f"{self.base_url}/{path}"

    def delete_object(self, path: str) -> None:
        self.stored_objects.pop(path, None)
        self.content_types.pop(path, None)


@dataclass
class CosObjectStore:
    """
    S3-compatible storage client for Tencent COS.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{quote(path)}"
        scheme, _, host = self.endpoint.partition("://")
        return f"{scheme}://{self.bucket}.{host.rstrip('/')}/{quote(path)}"

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            CacheControl="public, max-age=31536000",
        )
        return self.public_url(path)

    def delete_object(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)


@dataclass
class FirebaseObjectStore:
    """
    Firebase Storage client. Returned URLs carry a download token, matching
    what the web SDK's getDownloadURL produces.
    """

    bucket: Any

    def put_object(self, path: str, data: bytes, content_type: str) -> str:
        token = uuid.uuid4().hex
        blob = self.bucket.blob(path)
        blob.metadata = {"firebaseStorageDownloadTokens": token}
        blob.upload_from_string(data, content_type=content_type)
        return (
            f"https://firebasestorage.googleapis.com/v0/b/{self.bucket.name}/o/"
            f"{quote(path, safe='')}?alt=media&token={token}"
        )

    def delete_object(self, path: str) -> None:
        self.bucket.blob(path).delete()
