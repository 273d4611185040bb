import asyncio
import hashlib
import logging
import os
from typing import Iterable, List

import aiofiles

from asset_sync.core.abstract_storage_service import StorageService
from asset_sync.core.errors import SyncError
from asset_sync.helpers.file_utils import (
    content_type_from_extension,
    file_extension,
)
from asset_sync.models.results import SyncResult
from asset_sync.services.discovery_service import walk_files

logger = logging.getLogger(__name__)


async def sync_folder(
    storage: StorageService,
    bucket: str,
    root: str,
    folder: str,
    cache_control: str,
    max_concurrency: int = 8,
    timeout: float = 120.0,
) -> SyncResult:
    """Mirror ``root/folder`` to ``bucket`` under the ``folder/`` prefix.

    New or changed files are uploaded with ``cache_control``; remote keys under
    the prefix that no longer exist locally are deleted.
    """
    result = SyncResult(folder=folder)
    prefix = f"{folder}/"
    semaphore = asyncio.Semaphore(max_concurrency)

    try:
        remote = await asyncio.wait_for(
            storage.list_objects(bucket, prefix), timeout
        )
    except Exception as e:
        result.error = SyncError(folder, f"listing remote objects: {e!r}")
        return result

    walk_errors = []
    local_keys = {
        f"{prefix}{rel_path}": os.path.join(root, folder, rel_path)
        for rel_path in walk_files(
            os.path.join(root, folder), errors=walk_errors
        )
    }
    if walk_errors:
        # unread files would otherwise look like orphans
        result.error = SyncError(
            folder,
            f"cannot read {walk_errors[0].filename}, not mirroring a partial "
            "listing",
        )
        return result
    orphans = sorted(set(remote) - set(local_keys))

    async def upload(key: str, path: str):
        async with semaphore:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
            existing = remote.get(key)
            if (
                existing is not None
                and existing.size == len(data)
                and existing.etag == hashlib.md5(data).hexdigest()
            ):
                result.unchanged += 1
                return
            await asyncio.wait_for(
                storage.upload(
                    bucket,
                    key,
                    data,
                    content_type=content_type_from_extension(
                        file_extension(key)
                    ),
                    cache_control=cache_control,
                ),
                timeout,
            )
            result.uploaded.append(key)
            logger.debug("  uploaded %s", key)

    async def delete(key: str):
        async with semaphore:
            await asyncio.wait_for(storage.delete(bucket, key), timeout)
            result.deleted.append(key)
            logger.debug("  deleted %s", key)

    outcomes = await asyncio.gather(
        *(upload(key, path) for key, path in local_keys.items()),
        *(delete(key) for key in orphans),
        return_exceptions=True,
    )
    errors = []
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            errors.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome

    result.uploaded.sort()
    result.deleted.sort()
    if errors:
        result.error = SyncError(
            folder,
            f"{len(errors)} operation(s) failed, first: {errors[0]!r}",
        )
    return result


async def sync_folders(
    storage: StorageService,
    bucket: str,
    root: str,
    folders: Iterable[str],
    cache_control: str,
    max_concurrency: int = 8,
    timeout: float = 120.0,
) -> List[SyncResult]:
    results = []
    for folder in folders:
        logger.info("Syncing %s/ to %s", folder, bucket)
        result = await sync_folder(
            storage,
            bucket,
            root,
            folder,
            cache_control,
            max_concurrency=max_concurrency,
            timeout=timeout,
        )
        if result.ok:
            logger.info(
                "  %s/ synced: %d uploaded, %d deleted, %d unchanged",
                folder,
                len(result.uploaded),
                len(result.deleted),
                result.unchanged,
            )
        else:
            logger.error("  %s/ sync failed: %s", folder, result.error)
        results.append(result)
    return results
