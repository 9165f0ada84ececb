"""
Media host abstraction for S3-compatible storage and in-memory testing.
"""

from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from errors import UpstreamError
from schemas import AssetRef

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    """Defines the operations the API needs from the media host."""

    def upload(
        self,
        fileobj: BinaryIO,
        filename: str,
        folder: str,
        content_type: Optional[str] = None,
    ) -> AssetRef:
        ...

    def destroy(self, public_id: str) -> None:
        ...


def _asset_key(filename: str, folder: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return f"{folder}/{uuid.uuid4().hex}{ext.lower()}"


@dataclass
class InMemoryAssetStore:
    """Test double for media host interactions."""

    base_url: str = "https://example.test/assets"
    stored_objects: Dict[str, bytes] = field(default_factory=dict)
    destroyed: List[str] = field(default_factory=list)
    fail_uploads: bool = False
    fail_destroys: bool = False

    def upload(
        self,
        fileobj: BinaryIO,
        filename: str,
        folder: str,
        content_type: Optional[str] = None,
    ) -> AssetRef:
        if self.fail_uploads:
            raise UpstreamError(f"Failed to upload {filename} to the media host.")
        key = _asset_key(filename, folder)
        self.stored_objects[key] = fileobj.read()
        return AssetRef(public_id=key, url=f"{self.base_url}/{key}")

    def destroy(self, public_id: str) -> None:
        if self.fail_destroys:
            raise UpstreamError(f"Failed to delete {public_id} from the media host.")
        self.destroyed.append(public_id)
        self.stored_objects.pop(public_id, None)


@dataclass
class S3AssetStore:
    """
    Media host backed by an S3-compatible bucket.

    The public id of an asset is its object key; ``url`` is built from
    ``public_base_url`` when given, otherwise from the bucket endpoint.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )
        if not self.public_base_url:
            if self.endpoint:
                self.public_base_url = f"{self.endpoint.rstrip('/')}/{self.bucket}"
            else:
                self.public_base_url = f"https://{self.bucket}.s3.{self.region}.amazonaws.com"

    def upload(
        self,
        fileobj: BinaryIO,
        filename: str,
        folder: str,
        content_type: Optional[str] = None,
    ) -> AssetRef:
        key = _asset_key(filename, folder)
        extra = {"ContentType": content_type} if content_type else None
        try:
            self._client.upload_fileobj(fileobj, self.bucket, key, ExtraArgs=extra)
        except (BotoCoreError, ClientError) as exc:
            logger.error("Upload of %s to %s failed: %s", filename, folder, exc)
            raise UpstreamError(f"Failed to upload {filename} to the media host.") from exc
        return AssetRef(public_id=key, url=f"{self.public_base_url.rstrip('/')}/{key}")

    def destroy(self, public_id: str) -> None:
        # delete_object succeeds for keys that are already gone
        try:
            self._client.delete_object(Bucket=self.bucket, Key=public_id)
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError(f"Failed to delete {public_id} from the media host.") from exc
