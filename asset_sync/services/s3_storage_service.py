import asyncio
from typing import Dict, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from asset_sync.core.abstract_storage_service import StorageService
from asset_sync.core.errors import StorageError
from asset_sync.models.data_models import RemoteObject


class S3StorageService(StorageService):
    """S3-compatible backend (Cloudflare R2, AWS S3, MinIO)."""

    def __init__(
        self,
        endpoint_url: Optional[str],
        access_key_id: Optional[str],
        secret_access_key: Optional[str],
        region: str = "us-east-1",
    ):
        self.session = aioboto3.Session(
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )
        self.endpoint_url = endpoint_url
        self._client_cm = None
        self._client = None
        self._lock = asyncio.Lock()

    async def _get_client(self):
        async with self._lock:
            if self._client is None:
                self._client_cm = self.session.client(
                    "s3", endpoint_url=self.endpoint_url
                )
                self._client = await self._client_cm.__aenter__()
        return self._client

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = None,
        cache_control: str = None,
    ):
        params = {"Bucket": bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        if cache_control:
            params["CacheControl"] = cache_control
        client = await self._get_client()
        try:
            await client.put_object(**params)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"upload of {key} failed: {e}") from e

    async def delete(self, bucket: str, key: str):
        client = await self._get_client()
        try:
            await client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"delete of {key} failed: {e}") from e

    async def list_objects(
        self, bucket: str, prefix: str
    ) -> Dict[str, RemoteObject]:
        client = await self._get_client()
        objects = {}
        try:
            paginator = client.get_paginator("list_objects_v2")
            async for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects[item["Key"]] = RemoteObject(
                        key=item["Key"],
                        size=item["Size"],
                        etag=item.get("ETag", "").strip('"'),
                    )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"listing {prefix} failed: {e}") from e
        return objects

    async def close(self):
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
            self._client_cm = None
            self._client = None
