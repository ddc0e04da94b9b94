from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database (default uses docker-compose service name)
    database_url: str = "postgresql+psycopg2://studious:studious_dev@db:5432/studious"

    # Redis backs both the look-aside cache and the Celery broker; empty disables the cache
    redis_url: str = "redis://redis:6379/0"

    # App settings
    app_name: str = "Studious"
    debug: bool = False
    log_level: str = "INFO"
    backend_url: str = "http://localhost:8000"
    cors_origins: list[str] = ["http://localhost:3000", "https://localhost:3000"]

    # Object storage (S3-compatible)
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    aws_region: str = "us-east-1"
    aws_s3_bucket_name: str = "studious-files"
    aws_s3_endpoint_url: str = ""

    # Upload lifecycle
    upload_slot_ttl_seconds: int = 900
    signed_url_ttl_seconds: int = 300

    # Thumbnails
    thumbnail_max_width: int = 200
    thumbnail_max_height: int = 200
    thumbnail_jpeg_quality: int = 80
    thumbnail_pdf_dpi: int = 144
    thumbnail_task_time_limit_seconds: int = 120

    # Bulk inserts (submissions created for every student of a class)
    bulk_insert_batch_size: int = 10
    bulk_insert_pause_seconds: float = 0.1

    cache_ttl_seconds: int = 600

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()
