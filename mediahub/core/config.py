"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AuthConfig:
    """Token signing and lifetime configuration."""

    secret_key: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str


@dataclass(frozen=True)
class StoreConfig:
    """Document store connection settings."""

    mongo_uri: str
    mongo_db: str
    fallback_dir: str


@dataclass(frozen=True)
class MediaConfig:
    """Object store backend settings."""

    backend: str
    local_dir: str
    public_base_url: str
    s3_bucket: str
    s3_region: str
    staging_dir: str


@dataclass(frozen=True)
class QueueConfig:
    """Durable task queue runtime configuration."""

    sqlite_path: str
    default_ttl_seconds: int
    default_max_retries: int
    default_retry_delay_seconds: int


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter and session cookie settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    upload_max_bytes: int
    cookie_secure: bool
    cookie_samesite: str


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    store: StoreConfig
    media: MediaConfig
    queue: QueueConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        secret_key = (
            os.getenv("AUTH_SECRET_KEY", "").strip() or "dev-insecure-secret-change-me"
        )
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        issuer = os.getenv("AUTH_ISSUER", "mediahub").strip() or "mediahub"
        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "mediahub").strip() or "mediahub"
        store_fallback_dir = (
            os.getenv("STORE_FALLBACK_DIR", "runtime/store").strip() or "runtime/store"
        )
        media_backend = os.getenv("MEDIA_BACKEND", "local").strip().lower() or "local"
        media_local_dir = (
            os.getenv("MEDIA_LOCAL_DIR", "runtime/media").strip() or "runtime/media"
        )
        media_public_base_url = (
            os.getenv("MEDIA_PUBLIC_BASE_URL", "/media").strip().rstrip("/") or "/media"
        )
        s3_bucket = os.getenv("S3_BUCKET", "").strip()
        s3_region = os.getenv("S3_REGION", "us-east-1").strip() or "us-east-1"
        staging_dir = (
            os.getenv("MEDIA_STAGING_DIR", "runtime/staging").strip()
            or "runtime/staging"
        )
        queue_sqlite_path = (
            os.getenv("TASK_QUEUE_SQLITE_PATH", "runtime/app_state.db").strip()
            or "runtime/app_state.db"
        )
        queue_ttl = int(os.getenv("TASK_QUEUE_TTL_SECONDS", "86400"))
        queue_max_retries = int(os.getenv("TASK_QUEUE_MAX_RETRIES", "3"))
        queue_retry_delay = int(os.getenv("TASK_QUEUE_RETRY_DELAY_SECONDS", "5"))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(10 * 1024 * 1024)))
        upload_max_bytes = int(os.getenv("UPLOAD_MAX_BYTES", str(500 * 1024 * 1024)))
        cookie_secure = _env_flag("COOKIE_SECURE", "1")
        cookie_samesite = (
            os.getenv("COOKIE_SAMESITE", "strict").strip().lower() or "strict"
        )

        return AppConfig(
            auth=AuthConfig(
                secret_key=secret_key,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
            ),
            store=StoreConfig(
                mongo_uri=mongo_uri,
                mongo_db=mongo_db,
                fallback_dir=store_fallback_dir,
            ),
            media=MediaConfig(
                backend=media_backend,
                local_dir=media_local_dir,
                public_base_url=media_public_base_url,
                s3_bucket=s3_bucket,
                s3_region=s3_region,
                staging_dir=staging_dir,
            ),
            queue=QueueConfig(
                sqlite_path=queue_sqlite_path,
                default_ttl_seconds=queue_ttl,
                default_max_retries=queue_max_retries,
                default_retry_delay_seconds=queue_retry_delay,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                upload_max_bytes=upload_max_bytes,
                cookie_secure=cookie_secure,
                cookie_samesite=cookie_samesite,
            ),
        )
