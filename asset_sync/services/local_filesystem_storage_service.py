import hashlib
import os
from typing import Dict

import aiofiles

from asset_sync.core.abstract_storage_service import StorageService
from asset_sync.core.errors import StorageError
from asset_sync.models.data_models import RemoteObject


class LocalFilesystemStorageService(StorageService):
    """Mirrors objects into ``<base_path>/<bucket>/<key>``.

    Object metadata (content type, cache control) is kept in memory only.
    """

    def __init__(self, base_path: str = "local_storage"):
        self.base_path = base_path
        self.metadata: Dict[str, Dict[str, str]] = {}

    def _local_path(self, bucket: str, key: str) -> str:
        return os.path.join(self.base_path, bucket, *key.split("/"))

    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = None,
        cache_control: str = None,
    ):
        local_path = self._local_path(bucket, key)
        try:
            os.makedirs(os.path.dirname(local_path), exist_ok=True)
            async with aiofiles.open(local_path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"upload of {key} failed: {e}") from e
        self.metadata[f"{bucket}/{key}"] = {
            "ContentType": content_type or "",
            "CacheControl": cache_control or "",
        }

    async def delete(self, bucket: str, key: str):
        local_path = self._local_path(bucket, key)
        try:
            if os.path.exists(local_path):
                os.remove(local_path)
        except OSError as e:
            raise StorageError(f"delete of {key} failed: {e}") from e
        self.metadata.pop(f"{bucket}/{key}", None)

    async def list_objects(
        self, bucket: str, prefix: str
    ) -> Dict[str, RemoteObject]:
        bucket_path = os.path.join(self.base_path, bucket)
        objects = {}
        for dirpath, _, filenames in os.walk(bucket_path):
            for filename in filenames:
                full_path = os.path.join(dirpath, filename)
                key = os.path.relpath(full_path, bucket_path).replace(
                    os.sep, "/"
                )
                if not key.startswith(prefix):
                    continue
                async with aiofiles.open(full_path, "rb") as f:
                    data = await f.read()
                objects[key] = RemoteObject(
                    key=key,
                    size=len(data),
                    etag=hashlib.md5(data).hexdigest(),
                )
        return objects
