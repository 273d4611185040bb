from pydantic import BaseModel, Field
from typing import Dict, List

DEFAULT_FOLDER_RULES = {
    "images/": "compress only",
    "images-webp/": "compress + webp generation",
}


class Asset(BaseModel):
    name: str
    path: str
    url: str
    size: int
    type: str
    extension: str
    optimization: str


class OptimizationEcho(BaseModel):
    max_width: int
    max_height: int
    jpeg_quality: int
    png_compression_level: int
    webp_quality: int
    folder_rules: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_FOLDER_RULES)
    )


class Manifest(BaseModel):
    folder: str
    base_url: str
    generated_at: str
    total_files: int
    total_size: int
    allowed_extensions: str
    optimization: OptimizationEcho
    files: List[Asset]

    def without_timestamp(self) -> dict:
        return self.model_dump(exclude={"generated_at"})
