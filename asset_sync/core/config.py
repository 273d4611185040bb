"""Runtime settings.

Values come from the environment (a ``.env`` file is loaded first when one
exists, so local runs behave like CI where secrets are injected as env vars).
The resulting :class:`Settings` object is passed explicitly to every service.
"""

import os
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from asset_sync.core.errors import ConfigurationError
from asset_sync.models.data_models import OptimizationSettings

PLACEHOLDER_BASE_URL = "https://cdn.yourdomain.com"
PLACEHOLDER_BUCKET = "your-bucket-name"
DEFAULT_ALLOWED_EXTENSIONS = (
    "png,jpg,jpeg,webp,gif,svg,mp3,wav,ogg,pdf,css,js,json,md,txt"
)

# env var -> settings field
ENV_FIELDS = {
    "MAX_WIDTH": "max_width",
    "MAX_HEIGHT": "max_height",
    "JPEG_QUALITY": "jpeg_quality",
    "PNG_COMPRESSION": "png_compression_level",
    "WEBP_QUALITY": "webp_quality",
    "BASE_URL": "base_url",
    "BUCKET_NAME": "bucket_name",
    "CACHE_CONTROL": "cache_control",
    "ALLOWED_EXTENSIONS": "allowed_extensions",
    "GIT_BRANCH": "branch",
    "PUSH_ATTEMPTS": "push_attempts",
    "RETRY_DELAY": "retry_delay",
    "GIT_USER_NAME": "git_user_name",
    "GIT_USER_EMAIL": "git_user_email",
    "COMMIT_MESSAGE": "commit_message",
    "STORAGE_BACKEND": "storage_backend",
    "LOCAL_STORAGE_PATH": "local_storage_path",
    "R2_ACCOUNT_ID": "account_id",
    "R2_ACCESS_KEY_ID": "access_key_id",
    "R2_SECRET_ACCESS_KEY": "secret_access_key",
    "S3_ENDPOINT_URL": "endpoint_url",
    "S3_REGION": "region",
    "IMAGE_CACHE_DIR": "cache_dir",
    "MAX_CONCURRENCY": "max_concurrency",
    "IMAGE_TIMEOUT": "image_timeout",
    "NETWORK_TIMEOUT": "network_timeout",
    "GIT_TIMEOUT": "git_timeout",
}


class Settings(BaseModel):
    root: Path = Path(".")

    max_width: int = Field(default=1920, ge=1)
    max_height: int = Field(default=1080, ge=1)
    jpeg_quality: int = Field(default=85, ge=1, le=100)
    png_compression_level: int = Field(default=9, ge=0, le=9)
    webp_quality: int = Field(default=85, ge=1, le=100)

    base_url: str = PLACEHOLDER_BASE_URL
    bucket_name: str = PLACEHOLDER_BUCKET
    cache_control: str = "public, max-age=31536000"
    allowed_extensions: List[str] = Field(
        default_factory=lambda: DEFAULT_ALLOWED_EXTENSIONS.split(",")
    )

    branch: str = "main"
    push_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=5.0, ge=0)
    git_user_name: str = "github-actions[bot]"
    git_user_email: str = (
        "41898282+github-actions[bot]@users.noreply.github.com"
    )
    commit_message: str = (
        "🤖 Auto-optimize images and update manifests [skip ci]"
    )

    storage_backend: str = "s3"
    local_storage_path: str = "local_storage"
    account_id: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint_url: Optional[str] = None
    region: str = "us-east-1"

    cache_dir: str = ".image-cache"
    max_concurrency: int = Field(default=8, ge=1)
    image_timeout: float = Field(default=60.0, gt=0)
    network_timeout: float = Field(default=120.0, gt=0)
    git_timeout: float = Field(default=120.0, gt=0)

    @field_validator("allowed_extensions", mode="before")
    @classmethod
    def split_extensions(cls, value):
        if isinstance(value, str):
            value = value.split(",")
        return [ext.strip().lstrip(".").lower() for ext in value if ext.strip()]

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("storage_backend")
    @classmethod
    def known_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("s3", "local"):
            raise ValueError(f"unknown storage backend '{value}'")
        return value

    @property
    def optimization(self) -> OptimizationSettings:
        return OptimizationSettings(
            max_width=self.max_width,
            max_height=self.max_height,
            jpeg_quality=self.jpeg_quality,
            png_compression_level=self.png_compression_level,
            webp_quality=self.webp_quality,
        )

    @property
    def allowed_extensions_label(self) -> str:
        return ",".join(self.allowed_extensions)

    @property
    def resolved_endpoint_url(self) -> Optional[str]:
        if self.endpoint_url:
            return self.endpoint_url
        if self.account_id:
            return f"https://{self.account_id}.r2.cloudflarestorage.com"
        return None


def load_settings(
    env: Optional[Mapping[str, str]] = None, root: Optional[Path] = None
) -> Settings:
    if env is None:
        load_dotenv(dotenv_path=Path(root or ".") / ".env")
        env = os.environ

    values = {
        field: env[name]
        for name, field in ENV_FIELDS.items()
        if env.get(name, "").strip() != ""
    }
    if root is not None:
        values["root"] = root

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def validate_settings(settings: Settings):
    problems = []
    if settings.base_url in ("", PLACEHOLDER_BASE_URL):
        problems.append(
            f"BASE_URL is unset or still the placeholder "
            f"'{PLACEHOLDER_BASE_URL}'"
        )
    if settings.bucket_name in ("", PLACEHOLDER_BUCKET):
        problems.append(
            f"BUCKET_NAME is unset or still the placeholder "
            f"'{PLACEHOLDER_BUCKET}'"
        )
    if settings.storage_backend == "s3":
        if not settings.access_key_id or not settings.secret_access_key:
            problems.append("R2_ACCESS_KEY_ID / R2_SECRET_ACCESS_KEY missing")
        if not settings.resolved_endpoint_url:
            problems.append("R2_ACCOUNT_ID or S3_ENDPOINT_URL missing")
    if problems:
        raise ConfigurationError("; ".join(problems))
