import logging
import os
from typing import Iterable, List, Optional

from asset_sync.helpers.file_utils import is_allowed_extension
from asset_sync.models.data_models import (
    DiscoveryResult,
    IMAGES_MARKER,
    IMAGES_WEBP_MARKER,
    MARKERS,
)

logger = logging.getLogger(__name__)

SKIPPED_DIRS = {".git"}


def innermost_marker(rel_path: str) -> Optional[str]:
    """Nearest marker among the directory segments of ``rel_path``."""
    for segment in reversed(rel_path.split("/")[:-1]):
        if segment in MARKERS:
            return segment
    return None


def asset_folder_of(rel_path: str) -> str:
    return rel_path.split("/", 1)[0]


def walk_files(
    root: str,
    extra_skips: Iterable[str] = (),
    errors: Optional[List[OSError]] = None,
):
    """Yield repository-relative POSIX paths of regular files, sorted.

    Unreadable directories are skipped. When ``errors`` is given the
    failures are appended to it, so callers can refuse a partial listing.
    """
    skips = SKIPPED_DIRS | set(extra_skips)

    def on_error(error: OSError):
        logger.warning("Skipping unreadable directory %s: %s", error.filename, error)
        if errors is not None:
            errors.append(error)

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        rel_dir = os.path.relpath(dirpath, root)
        rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/")
        dirnames[:] = sorted(
            d
            for d in dirnames
            if d not in skips
            and (f"{rel_dir}/{d}" if rel_dir else d) not in skips
        )
        for filename in sorted(filenames):
            full_path = os.path.join(dirpath, filename)
            if not os.path.isfile(full_path):
                continue
            yield f"{rel_dir}/{filename}" if rel_dir else filename


def discover_assets(
    root: str, allowed_extensions: Iterable[str], cache_dir: str = ""
) -> DiscoveryResult:
    allowed = {ext.lower() for ext in allowed_extensions}
    result = DiscoveryResult()
    marker_dirs = set()
    asset_folders = set()

    skips = [cache_dir.strip("/")] if cache_dir else []
    for rel_path in walk_files(root, skips):
        marker = innermost_marker(rel_path)
        if marker is None:
            continue

        segments = rel_path.split("/")
        for index, segment in enumerate(segments[:-1]):
            if segment in MARKERS:
                marker_dirs.add("/".join(segments[: index + 1]))
        asset_folders.add(asset_folder_of(rel_path))

        if not is_allowed_extension(rel_path, allowed):
            continue
        if marker == IMAGES_WEBP_MARKER:
            result.compress_webp.append(rel_path)
        elif marker == IMAGES_MARKER:
            result.compress_only.append(rel_path)

    result.compress_only.sort()
    result.compress_webp.sort()
    result.marker_dirs = sorted(marker_dirs)
    result.asset_folders = sorted(asset_folders)

    logger.info(
        "Found %d image(s): %d compress only, %d compress + WebP",
        result.total_images,
        len(result.compress_only),
        len(result.compress_webp),
    )
    return result
