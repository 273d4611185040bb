import asyncio
import logging
import os
import subprocess
from typing import Optional

from asset_sync.core.abstract_storage_service import StorageService
from asset_sync.core.config import Settings, validate_settings
from asset_sync.core.errors import CommitConflictError, ConfigurationError
from asset_sync.core.optimization_cache import OptimizationCache
from asset_sync.core.storage_factory import get_storage_service
from asset_sync.models.results import CommitOutcome, CommitState, PipelineReport
from asset_sync.services.discovery_service import discover_assets
from asset_sync.services.git_operations import RepositoryCommitter
from asset_sync.services.image_processing_service import optimize_assets
from asset_sync.services.manifest_service import generate_manifests
from asset_sync.services.sync_service import sync_folders

logger = logging.getLogger(__name__)


async def run_pipeline(
    settings: Settings,
    commit: bool = True,
    sync: bool = True,
    storage: Optional[StorageService] = None,
    committer: Optional[RepositoryCommitter] = None,
) -> PipelineReport:
    report = PipelineReport()
    try:
        validate_settings(settings)
    except ConfigurationError as e:
        logger.warning("Configuration incomplete, skipping all steps: %s", e)
        report.configured = False
        return report

    root = str(settings.root)
    discovery = discover_assets(
        root, settings.allowed_extensions, settings.cache_dir
    )
    if not discovery.asset_folders:
        logger.info("No images found to process")
        return report

    optimization = settings.optimization
    cache = OptimizationCache.load(
        os.path.join(root, settings.cache_dir), optimization.fingerprint()
    )
    report.optimization = await optimize_assets(
        root, discovery, optimization, cache, settings.image_timeout
    )
    for failure in report.optimization.failed:
        logger.warning("Not optimized: %s", failure.reason)

    report.manifests_written = generate_manifests(
        root, discovery.asset_folders, settings
    )

    if commit:
        committer = committer or RepositoryCommitter.from_settings(settings)
        try:
            report.commit = await asyncio.to_thread(
                committer.commit_and_push, discovery.asset_folders
            )
        except CommitConflictError as e:
            logger.error("Aborting before sync: %s", e)
            report.commit = CommitOutcome(
                state=CommitState.FAILED, attempts=e.attempts
            )
            report.exit_code = 1
            return report
        except (subprocess.SubprocessError, OSError) as e:
            # only exhausted pushes fail the run
            logger.warning("Skipping sync, git failed: %s", e)
            report.commit = CommitOutcome(state=CommitState.FAILED)
            return report

    if sync:
        owns_storage = storage is None
        storage = storage or get_storage_service(settings)
        try:
            report.sync = await sync_folders(
                storage,
                settings.bucket_name,
                root,
                discovery.asset_folders,
                settings.cache_control,
                max_concurrency=settings.max_concurrency,
                timeout=settings.network_timeout,
            )
        finally:
            if owns_storage:
                await storage.close()
        if report.sync_failures:
            logger.warning(
                "%d folder(s) failed to sync: %s",
                len(report.sync_failures),
                ", ".join(s.folder for s in report.sync_failures),
            )
        else:
            logger.info("All assets synced, available at %s", settings.base_url)

    return report
