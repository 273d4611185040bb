import os
from typing import Iterable, Optional

import filetype

CONTENT_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "md": "text/markdown",
    "css": "text/css",
    "js": "application/javascript",
    "json": "application/json",
}


def file_extension(path: str) -> str:
    """Extension without the dot, original case; '' when there is none."""
    name = os.path.basename(path)
    if "." not in name.lstrip("."):
        return ""
    return name.rsplit(".", 1)[1]


def is_allowed_extension(path: str, allowed: Iterable[str]) -> bool:
    extension = file_extension(path).lower()
    return bool(extension) and extension in set(allowed)


def content_type_from_extension(extension: str) -> str:
    return CONTENT_TYPES.get(
        extension.lower().lstrip("."), "application/octet-stream"
    )


def is_svg(byte_data):
    return "<svg" in str(byte_data[0:100])


def detect_extension_from_bytes(byte_data) -> Optional[str]:
    if is_svg(byte_data):
        return "svg"
    fileinfo = filetype.guess(byte_data)
    if fileinfo is None:
        return None
    if fileinfo.extension == "jpeg":
        return "jpg"
    return fileinfo.extension
