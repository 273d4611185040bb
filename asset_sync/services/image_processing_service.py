import asyncio
import hashlib
import logging
import os
from io import BytesIO
from typing import Optional

import aiofiles
from PIL import Image

from asset_sync.core.errors import AssetProcessingError
from asset_sync.core.optimization_cache import OptimizationCache
from asset_sync.helpers.file_utils import (
    detect_extension_from_bytes,
    file_extension,
)
from asset_sync.models.data_models import DiscoveryResult, OptimizationSettings
from asset_sync.models.results import BatchReport, ItemResult, ItemStatus

logger = logging.getLogger(__name__)

OPTIMIZABLE_FORMATS = {"png": "PNG", "jpg": "JPEG", "jpeg": "JPEG"}
SECONDARY_EXTENSION = "webp"
# Ancillary data that changes pixels when dropped; everything else is stripped.
KEPT_INFO_KEYS = ("transparency",)

IMAGE_ERRORS = (
    OSError,
    ValueError,
    SyntaxError,
    Image.DecompressionBombError,
    AssetProcessingError,
)


def _strip_metadata(image: Image.Image):
    image.info = {
        key: image.info[key] for key in KEPT_INFO_KEYS if key in image.info
    }


def _has_alpha(image: Image.Image) -> bool:
    return "A" in image.getbands() or "transparency" in image.info


def encode_bounded(
    data: bytes, image_format: str, settings: OptimizationSettings
) -> bytes:
    with Image.open(BytesIO(data)) as image:
        image.load()
        # thumbnail() keeps the aspect ratio and never enlarges.
        image.thumbnail(
            (settings.max_width, settings.max_height),
            Image.Resampling.LANCZOS,
        )
        _strip_metadata(image)
        output = BytesIO()
        if image_format == "JPEG":
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            image.save(
                output,
                "JPEG",
                quality=settings.jpeg_quality,
                optimize=True,
            )
        else:
            image.save(
                output,
                "PNG",
                compress_level=settings.png_compression_level,
            )
        return output.getvalue()


def encode_webp(data: bytes, quality: int) -> bytes:
    with Image.open(BytesIO(data)) as image:
        image.load()
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if _has_alpha(image) else "RGB")
        _strip_metadata(image)
        output = BytesIO()
        image.save(output, "WEBP", quality=quality, method=6)
        return output.getvalue()


def secondary_path_for(file_path: str) -> str:
    return f"{os.path.splitext(file_path)[0]}.{SECONDARY_EXTENSION}"


async def _write_atomic(path: str, data: bytes):
    tmp_path = f"{path}.tmp"
    try:
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(data)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def _check_content(rel_path: str, data: bytes, extension: str):
    detected = detect_extension_from_bytes(data)
    if detected is None or detected == "svg":
        raise AssetProcessingError(rel_path, "content is not a raster image")
    declared = "jpg" if extension == "jpeg" else extension
    if detected != declared:
        logger.warning(
            "%s: content looks like %s but the extension says %s",
            rel_path,
            detected,
            extension,
        )


async def _run_encoder(func, *args, timeout: float):
    return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout)


async def _ensure_secondary(
    rel_path: str,
    file_path: str,
    data: bytes,
    settings: OptimizationSettings,
    timeout: float,
) -> bool:
    webp_path = secondary_path_for(file_path)
    if os.path.exists(webp_path):
        logger.info("  WebP already exists for %s", rel_path)
        return False
    webp_data = await _run_encoder(
        encode_webp, data, settings.webp_quality, timeout=timeout
    )
    await _write_atomic(webp_path, webp_data)
    logger.info(
        "  WebP created: %d bytes (%d%% of source)",
        len(webp_data),
        len(webp_data) * 100 // max(len(data), 1),
    )
    return True


async def optimize_image(
    root: str,
    rel_path: str,
    settings: OptimizationSettings,
    generate_secondary: bool = False,
    cache: Optional[OptimizationCache] = None,
    timeout: float = 60.0,
) -> ItemResult:
    file_path = os.path.join(root, rel_path)
    extension = file_extension(rel_path).lower()
    image_format = OPTIMIZABLE_FORMATS.get(extension)
    if image_format is None:
        return ItemResult.skipped(rel_path, "unsupported format")

    logger.info("Processing: %s", rel_path)
    try:
        async with aiofiles.open(file_path, "rb") as f:
            data = await f.read()
        original_size = len(data)
        _check_content(rel_path, data, extension)

        digest = hashlib.sha256(data).hexdigest()
        replaced = False
        if cache is not None and cache.is_current(rel_path, digest):
            logger.info("  Already optimized: %d bytes", original_size)
        else:
            candidate = await _run_encoder(
                encode_bounded, data, image_format, settings, timeout=timeout
            )
            if len(candidate) < original_size:
                await _write_atomic(file_path, candidate)
                data = candidate
                replaced = True
                logger.info(
                    "  Optimized: %d -> %d bytes", original_size, len(data)
                )
            else:
                logger.info("  Already optimal: %d bytes", original_size)
            if cache is not None:
                cache.record(rel_path, hashlib.sha256(data).hexdigest())

        webp_created = False
        if generate_secondary:
            webp_created = await _ensure_secondary(
                rel_path, file_path, data, settings, timeout
            )
    except asyncio.TimeoutError:
        error = AssetProcessingError(
            rel_path, f"timed out after {timeout:g}s"
        )
        logger.warning("  Failed: %s", error)
        return ItemResult.failed(rel_path, error)
    except IMAGE_ERRORS as e:
        error = (
            e
            if isinstance(e, AssetProcessingError)
            else AssetProcessingError(rel_path, str(e))
        )
        logger.warning("  Failed: %s", error)
        return ItemResult.failed(rel_path, error)

    if not replaced and not webp_created:
        return ItemResult.skipped(
            rel_path,
            "already optimized",
            original_size=original_size,
            final_size=len(data),
        )
    return ItemResult(
        path=rel_path,
        status=ItemStatus.SUCCESS,
        original_size=original_size,
        final_size=len(data),
        replaced=replaced,
        webp_created=webp_created,
    )


async def optimize_assets(
    root: str,
    discovery: DiscoveryResult,
    settings: OptimizationSettings,
    cache: Optional[OptimizationCache] = None,
    timeout: float = 60.0,
) -> BatchReport:
    report = BatchReport()
    logger.info(
        "Optimizing with max %dx%d, JPEG %d%%, WebP %d%%, PNG level %d",
        settings.max_width,
        settings.max_height,
        settings.jpeg_quality,
        settings.webp_quality,
        settings.png_compression_level,
    )
    batches = (
        (discovery.compress_only, False),
        (discovery.compress_webp, True),
    )
    for paths, generate_secondary in batches:
        for rel_path in paths:
            try:
                result = await optimize_image(
                    root,
                    rel_path,
                    settings,
                    generate_secondary=generate_secondary,
                    cache=cache,
                    timeout=timeout,
                )
            except Exception as e:
                logger.exception("Unexpected error processing %s", rel_path)
                result = ItemResult.failed(
                    rel_path, AssetProcessingError(rel_path, repr(e))
                )
            report.add(result)

    if cache is not None:
        cache.save()
    logger.info(
        "Optimization complete: %d changed, %d unchanged, %d failed, "
        "%d bytes saved",
        len(report.succeeded),
        len(report.skipped),
        len(report.failed),
        report.bytes_saved,
    )
    return report

