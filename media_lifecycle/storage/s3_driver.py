"""S3-compatible object store (AWS S3, Cloudflare R2, MinIO, etc)."""

from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import aioboto3
from botocore.exceptions import ClientError

from media_lifecycle.services.image_metadata import describe_content
from media_lifecycle.storage.base import (
    DESTROY_NOT_FOUND,
    DESTROY_OK,
    BaseObjectStore,
    KeyInfo,
    StorageConnectionError,
    StorageError,
    StoragePermissionError,
    StoredObject,
)

NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class S3ObjectStore(BaseObjectStore):
    """S3-compatible object store.

    Supports:
    - AWS S3
    - Cloudflare R2
    - MinIO
    - Any S3-compatible API

    Configuration:
        aws_access_key_id: Access key
        aws_secret_access_key: Secret key
        bucket_name: Bucket name
        region: AWS region (default: us-east-1)
        endpoint_url: Custom endpoint URL (for R2, MinIO, etc)
        public_base_url: CDN or public bucket URL used for delivery (optional)

    Example:
        >>> config = {
        ...     "aws_access_key_id": "AKIA...",
        ...     "aws_secret_access_key": "...",
        ...     "bucket_name": "media",
        ...     "region": "us-east-1"
        ... }
        >>> store = S3ObjectStore(config)
        >>> stored = await store.upload(content, "assets/9f86d08...")
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.bucket_name = config["bucket_name"]
        self.region = config.get("region", "us-east-1")

        # S3 client configuration
        self.s3_config = {
            "aws_access_key_id": config["aws_access_key_id"],
            "aws_secret_access_key": config["aws_secret_access_key"],
            "region_name": self.region,
        }

        # Support custom endpoint (Cloudflare R2, MinIO, etc)
        if config.get("endpoint_url"):
            self.s3_config["endpoint_url"] = config["endpoint_url"]

        self.session = aioboto3.Session()

    def default_url(self, key: str) -> str:
        if "endpoint_url" in self.s3_config:
            return f"{self.s3_config['endpoint_url'].rstrip('/')}/{self.bucket_name}/{quote(key)}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{quote(key)}"

    @staticmethod
    def _raise_for(e: ClientError, action: str, key: str):
        code = e.response["Error"]["Code"]
        if code in ("403", "AccessDenied"):
            raise StoragePermissionError(f"Access denied to {key} during {action}")
        raise StorageError(f"Failed to {action} {key}: {e}")

    async def upload(self, content: bytes, key: str, tags: Optional[List[str]] = None) -> StoredObject:
        """Upload bytes to S3.

        Keys are content-addressed, so an overwrite writes identical bytes.
        """
        metadata = describe_content(content)
        params = {"Bucket": self.bucket_name, "Key": key, "Body": content}
        if metadata["format"]:
            params["ContentType"] = f"image/{metadata['format']}"
        if tags:
            params["Tagging"] = urlencode({label: "true" for label in tags})

        try:
            async with self.session.client("s3", **self.s3_config) as s3:
                response = await s3.put_object(**params)
        except ClientError as e:
            self._raise_for(e, "upload", key)

        return StoredObject(
            {
                "key": key,
                "url": self.delivery_url(key),
                "resource_id": response.get("ETag", "").strip('"') or key,
                **metadata,
            }
        )

    async def destroy(self, key: str) -> str:
        try:
            async with self.session.client("s3", **self.s3_config) as s3:
                try:
                    await s3.head_object(Bucket=self.bucket_name, Key=key)
                except ClientError as e:
                    if e.response["Error"]["Code"] in NOT_FOUND_CODES:
                        return DESTROY_NOT_FOUND
                    raise
                await s3.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as e:
            self._raise_for(e, "destroy", key)

        return DESTROY_OK

    async def _get_tags(self, s3, key: str) -> Dict[str, str]:
        response = await s3.get_object_tagging(Bucket=self.bucket_name, Key=key)
        return {t["Key"]: t["Value"] for t in response.get("TagSet", [])}

    async def _put_tags(self, s3, key: str, tags: Dict[str, str]) -> None:
        if not tags:
            await s3.delete_object_tagging(Bucket=self.bucket_name, Key=key)
            return
        await s3.put_object_tagging(
            Bucket=self.bucket_name,
            Key=key,
            Tagging={"TagSet": [{"Key": k, "Value": v} for k, v in tags.items()]},
        )

    async def tag(self, key: str, label: str) -> None:
        try:
            async with self.session.client("s3", **self.s3_config) as s3:
                tags = await self._get_tags(s3, key)
                if label not in tags:
                    tags[label] = "true"
                    await self._put_tags(s3, key, tags)
        except ClientError as e:
            if e.response["Error"]["Code"] in NOT_FOUND_CODES:
                raise FileNotFoundError(f"File not found: {key}")
            self._raise_for(e, "tag", key)

    async def untag(self, key: str, label: str) -> None:
        try:
            async with self.session.client("s3", **self.s3_config) as s3:
                tags = await self._get_tags(s3, key)
                if label in tags:
                    del tags[label]
                    await self._put_tags(s3, key, tags)
        except ClientError as e:
            if e.response["Error"]["Code"] in NOT_FOUND_CODES:
                return
            self._raise_for(e, "untag", key)

    async def list_keys(self, prefix: str = "") -> List[KeyInfo]:
        if prefix and not prefix.endswith("/"):
            prefix += "/"

        keys = []

        try:
            async with self.session.client("s3", **self.s3_config) as s3:
                # Handle pagination
                paginator = s3.get_paginator("list_objects_v2")
                async for page in paginator.paginate(Bucket=self.bucket_name, Prefix=prefix):
                    for obj in page.get("Contents", []):
                        # Skip directory markers
                        if obj["Key"].endswith("/"):
                            continue
                        keys.append(
                            KeyInfo(
                                {
                                    "key": obj["Key"],
                                    "size_bytes": obj["Size"],
                                    "modified_at": obj["LastModified"].replace(tzinfo=None),
                                }
                            )
                        )
        except ClientError as e:
            raise StorageError(f"Failed to list keys: {e}")

        return keys

    async def test_connection(self) -> bool:
        """Test S3 connection by checking if bucket exists."""
        try:
            async with self.session.client("s3", **self.s3_config) as s3:
                await s3.head_bucket(Bucket=self.bucket_name)
            return True

        except ClientError as e:
            error_code = e.response["Error"]["Code"]
            if error_code in ("404", "NoSuchBucket"):
                raise StorageConnectionError(f"Bucket not found: {self.bucket_name}")
            elif error_code == "403":
                raise StorageConnectionError(f"Access denied to bucket: {self.bucket_name}")
            return False

        except Exception:
            return False
