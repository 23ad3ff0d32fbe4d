from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILES = [REPO_ROOT / ".env"]

for env_path in ENV_FILES:
    if env_path.exists():
        load_dotenv(env_path, override=False)

MIB = 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, extra="allow", populate_by_name=True)

    app_name: str = Field(default="Video Share", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")

    database_url: str = Field(default="sqlite:///./vidshare.db", alias="DATABASE_URL")

    # Object storage
    s3_endpoint_url: Optional[str] = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_access_key: Optional[str] = Field(default=None, alias="S3_ACCESS_KEY")
    s3_secret_key: Optional[str] = Field(default=None, alias="S3_SECRET_KEY")
    s3_region: str = Field(default="us-east-1", alias="S3_REGION")
    s3_secure: Optional[bool] = Field(default=None, alias="S3_SECURE")
    storage_bucket: str = Field(default="videos", alias="STORAGE_BUCKET")

    # Chunked transfer
    chunk_threshold_bytes: int = Field(default=40 * MIB, ge=1, alias="CHUNK_THRESHOLD_BYTES")
    chunk_size_bytes: int = Field(default=5 * MIB, ge=1, alias="CHUNK_SIZE_BYTES")
    default_content_type: str = Field(default="video/mp4", alias="DEFAULT_CONTENT_TYPE")

    # Upload limits
    max_upload_size_mb: int = Field(default=4096, alias="MAX_UPLOAD_SIZE_MB")
    allowed_video_types: str = Field(
        default="video/mp4,video/webm,video/quicktime,video/x-msvideo,video/ogg",
        alias="ALLOWED_VIDEO_TYPES",
    )

    # Retry settings
    download_max_attempts: int = Field(default=3, ge=1, alias="DOWNLOAD_MAX_ATTEMPTS")
    download_backoff_base_seconds: float = Field(default=1.0, ge=0, alias="DOWNLOAD_BACKOFF_BASE_SECONDS")
    chunked_download_max_attempts: int = Field(default=2, ge=1, alias="CHUNKED_DOWNLOAD_MAX_ATTEMPTS")
    chunked_backoff_step_seconds: float = Field(default=2.0, ge=0, alias="CHUNKED_BACKOFF_STEP_SECONDS")
    backoff_cap_seconds: float = Field(default=5.0, ge=0, alias="BACKOFF_CAP_SECONDS")

    # Reconstructed media held for viewers; oldest handles are evicted past this
    media_handle_max_bytes: int = Field(default=2048 * MIB, ge=1, alias="MEDIA_HANDLE_MAX_BYTES")

    public_base_url: str = Field(default="http://localhost:5173", alias="PUBLIC_BASE_URL")

    jwt_secret: str = Field(default="", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_audience: Optional[str] = Field(default=None, alias="JWT_AUDIENCE")

    backend_cors_origins_raw: str = Field(default="http://localhost:5173", alias="BACKEND_CORS_ORIGINS")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="console", alias="LOG_FORMAT")

    @property
    def backend_cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.backend_cors_origins_raw.split(",") if origin.strip()]

    @property
    def allowed_video_types_list(self) -> List[str]:
        return [t.strip() for t in self.allowed_video_types.split(",") if t.strip()]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * MIB


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    if not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET is required in environment or .env")
    return settings
