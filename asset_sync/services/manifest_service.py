import json
import logging
import os
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from pydantic import ValidationError

from asset_sync.core.config import Settings
from asset_sync.helpers.file_utils import (
    content_type_from_extension,
    file_extension,
    is_allowed_extension,
)
from asset_sync.models.data_models import (
    COMPRESS,
    IMAGES_WEBP_MARKER,
    WEBP,
)
from asset_sync.models.image_metadata import Asset, Manifest, OptimizationEcho
from asset_sync.services.discovery_service import walk_files
from asset_sync.services.image_processing_service import SECONDARY_EXTENSION

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
PLACEHOLDER_NAMES = {MANIFEST_NAME, ".gitkeep"}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def classify(rel_path: str) -> str:
    directories = rel_path.split("/")[:-1]
    if (
        IMAGES_WEBP_MARKER in directories
        and file_extension(rel_path).lower() == SECONDARY_EXTENSION
    ):
        return WEBP
    return COMPRESS


def list_manifest_files(
    root: str, folder: str, allowed_extensions: Iterable[str]
) -> List[str]:
    """Repository-relative paths of the files a folder's manifest lists."""
    allowed = {ext.lower() for ext in allowed_extensions}
    paths = [
        f"{folder}/{rel_path}"
        for rel_path in walk_files(os.path.join(root, folder))
        if os.path.basename(rel_path) not in PLACEHOLDER_NAMES
        and is_allowed_extension(rel_path, allowed)
    ]
    return sorted(paths)


def build_manifest(
    root: str,
    folder: str,
    settings: Settings,
    generated_at: Optional[str] = None,
) -> Manifest:
    files = []
    for repo_path in list_manifest_files(
        root, folder, settings.allowed_extensions
    ):
        relative_path = repo_path[len(folder) + 1 :]
        extension = file_extension(repo_path)
        files.append(
            Asset(
                name=os.path.basename(repo_path),
                path=relative_path,
                url=f"{settings.base_url}/{repo_path}",
                size=os.path.getsize(os.path.join(root, repo_path)),
                type=content_type_from_extension(extension),
                extension=extension,
                optimization=classify(repo_path),
            )
        )

    optimization = settings.optimization
    return Manifest(
        folder=folder,
        base_url=settings.base_url,
        generated_at=generated_at or utc_timestamp(),
        total_files=len(files),
        total_size=sum(f.size for f in files),
        allowed_extensions=settings.allowed_extensions_label,
        optimization=OptimizationEcho(**optimization.model_dump()),
        files=files,
    )


def load_manifest(path: str) -> Optional[Manifest]:
    try:
        with open(path, "r", encoding="utf-8") as file:
            return Manifest(**json.load(file))
    except FileNotFoundError:
        return None
    except (OSError, ValueError, TypeError, ValidationError) as e:
        logger.warning("Existing manifest %s is unreadable: %s", path, e)
        return None


def write_manifest(root: str, manifest: Manifest) -> bool:
    """Write ``manifest.json``; returns False when nothing but the timestamp
    would change, in which case the file on disk is left as is."""
    path = os.path.join(root, manifest.folder, MANIFEST_NAME)
    existing = load_manifest(path)
    if (
        existing is not None
        and existing.without_timestamp() == manifest.without_timestamp()
    ):
        logger.info("  %s unchanged", path)
        return False

    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as file:
        json.dump(manifest.model_dump(), file, indent=2, ensure_ascii=False)
        file.write("\n")
    os.replace(tmp_path, path)
    logger.info(
        "  %s created (%d files, %d bytes)",
        path,
        manifest.total_files,
        manifest.total_size,
    )
    return True


def generate_manifests(
    root: str, folders: Iterable[str], settings: Settings
) -> List[str]:
    written = []
    for folder in folders:
        logger.info("Generating manifest for: %s", folder)
        manifest = build_manifest(root, folder, settings)
        if write_manifest(root, manifest):
            written.append(f"{folder}/{MANIFEST_NAME}")
    return written
