"""
Object storage abstraction for Firebase Storage, S3-compatible buckets and
in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from firebase_admin import storage as firebase_storage


@dataclass
class StoredObject:
    path: str
    size: int


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...

    def exists(self, path: str) -> bool:
        ...

    def list_objects(self, prefix: str) -> list[StoredObject]:
        ...

    def delete(self, path: str) -> None:
        ...

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: Dict[str, bytes] = field(default_factory=dict)
    content_types: Dict[str, str] = field(default_factory=dict)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self.stored_objects[path] = bytes(data)
        self.content_types[path] = content_type

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored

    def exists(self, path: str) -> bool:
        return path in self.stored_objects

    def list_objects(self, prefix: str) -> list[StoredObject]:
        return [
            StoredObject(path=path, size=len(data))
            for path, data in sorted(self.stored_objects.items())
            if path.startswith(prefix)
        ]

    def delete(self, path: str) -> None:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        del self.stored_objects[path]
        self.content_types.pop(path, None)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def reset(self) -> None:
        self.stored_objects.clear()
        self.content_types.clear()


@dataclass
class S3StorageClient:
    """
    Storage client for AWS S3 or any S3-compatible endpoint.
    """

    bucket: str
    region: str = ""
    endpoint: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket, Key=path, Body=data, ContentType=content_type
        )

    def get_bytes(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(path) from e
            raise
        return response["Body"].read()

    def exists(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                return False
            raise
        return True

    def list_objects(self, prefix: str) -> list[StoredObject]:
        paginator = self._client.get_paginator("list_objects_v2")
        objects: list[StoredObject] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents", []):
                objects.append(StoredObject(path=item["Key"], size=item.get("Size", 0)))
        return objects

    def delete(self, path: str) -> None:
        if not self.exists(path):
            raise FileNotFoundError(path)
        self._client.delete_object(Bucket=self.bucket, Key=path)

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=expires_in,
        )


class FirebaseStorageClient:
    """Firebase (Google Cloud Storage) bucket accessed through firebase-admin."""

    def __init__(self, bucket_name: Optional[str] = None):
        self._bucket = firebase_storage.bucket(bucket_name)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self._bucket.blob(path).upload_from_string(data, content_type=content_type)

    def get_bytes(self, path: str) -> bytes:
        blob = self._bucket.blob(path)
        if not blob.exists():
            raise FileNotFoundError(path)
        return blob.download_as_bytes()

    def exists(self, path: str) -> bool:
        return self._bucket.blob(path).exists()

    def list_objects(self, prefix: str) -> list[StoredObject]:
        return [
            StoredObject(path=blob.name, size=blob.size or 0)
            for blob in self._bucket.list_blobs(prefix=prefix)
        ]

    def delete(self, path: str) -> None:
        blob = self._bucket.blob(path)
        if not blob.exists():
            raise FileNotFoundError(path)
        blob.delete()

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return self._bucket.blob(path).generate_signed_url(
            expiration=timedelta(seconds=expires_in), method="GET"
        )
