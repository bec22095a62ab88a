from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Base ---
    DATABASE_URL: str = "postgresql://archive:dev@db:5432/martyrs_archive"
    DB_POOL_SIZE: int = 10
    DB_POOL_TIMEOUT: int = 30                # seconds waiting for a pooled connection
    DB_CREATE_ALL: bool = False              # dev/tests only, Alembic owns the schema otherwise
    UPLOAD_DIR: str = "/data/uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    BACKUP_DIR: str = "/data/backups"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    # --- Auth ---
    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    ADMIN_USERNAME: str = "admin"
    ADMIN_EMAIL: str = "admin@martyrsarchive.local"
    ADMIN_PASSWORD: Optional[str] = None     # bootstrap super admin is skipped when unset
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_WINDOW_MINUTES: int = 15
    TRUST_PROXY_HEADERS: bool = False
    REDIS_URL: Optional[str] = None          # shared limiter store, in-process when unset

    # --- Uploads ---
    CORS_ORIGINS: str = "*"
    MAX_UPLOAD_MB: int = 5
    IMAGE_MAX_DIMENSION: int = 800
    IMAGE_QUALITY: int = 80

    # --- Moderation / stats ---
    TRIBUTE_WINDOW_HOURS: int = 24
    STATS_CACHE_SECONDS: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
