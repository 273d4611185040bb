from abc import ABC, abstractmethod
from typing import Dict

from asset_sync.models.data_models import RemoteObject


class StorageService(ABC):
    @abstractmethod
    async def upload(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str = None,
        cache_control: str = None,
    ):
        pass

    @abstractmethod
    async def delete(self, bucket: str, key: str):
        pass

    @abstractmethod
    async def list_objects(
        self, bucket: str, prefix: str
    ) -> Dict[str, RemoteObject]:
        pass

    async def close(self):
        pass
