from asset_sync.core.abstract_storage_service import StorageService
from asset_sync.core.config import Settings


def get_storage_service(settings: Settings) -> StorageService:
    if settings.storage_backend == "local":
        from asset_sync.services.local_filesystem_storage_service import (
            LocalFilesystemStorageService,
        )

        return LocalFilesystemStorageService(settings.local_storage_path)

    from asset_sync.services.s3_storage_service import S3StorageService

    return S3StorageService(
        endpoint_url=settings.resolved_endpoint_url,
        access_key_id=settings.access_key_id,
        secret_access_key=settings.secret_access_key,
        region=settings.region,
    )
