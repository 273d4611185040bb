from pydantic import BaseModel, Field
from typing import List

COMPRESS = "compress"
WEBP = "webp"

IMAGES_MARKER = "images"
IMAGES_WEBP_MARKER = "images-webp"
MARKERS = (IMAGES_MARKER, IMAGES_WEBP_MARKER)


class OptimizationSettings(BaseModel):
    max_width: int = Field(default=1920, ge=1)
    max_height: int = Field(default=1080, ge=1)
    jpeg_quality: int = Field(default=85, ge=1, le=100)
    png_compression_level: int = Field(default=9, ge=0, le=9)
    webp_quality: int = Field(default=85, ge=1, le=100)

    def fingerprint(self) -> str:
        return (
            f"{self.max_width}x{self.max_height}"
            f"-j{self.jpeg_quality}"
            f"-p{self.png_compression_level}"
            f"-w{self.webp_quality}"
        )


class DiscoveryResult(BaseModel):
    # Repository-relative POSIX paths, sorted.
    compress_only: List[str] = Field(default_factory=list)
    compress_webp: List[str] = Field(default_factory=list)
    marker_dirs: List[str] = Field(default_factory=list)
    asset_folders: List[str] = Field(default_factory=list)

    @property
    def total_images(self) -> int:
        return len(self.compress_only) + len(self.compress_webp)


class RemoteObject(BaseModel):
    key: str
    size: int
    etag: str = ""
