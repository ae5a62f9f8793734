"""
Application settings.

Values come from the environment (a local ``.env`` file is loaded first).
Tests build ``Settings(...)`` directly instead of touching the environment.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

import dotenv
from loguru import logger

DEV_JWT_SECRET = "dev-secret-change-me"

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:4000",
    "http://127.0.0.1:4000",
    "http://localhost:5500",
    "http://127.0.0.1:5500",
]


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 4000

    # Sessions and credentials
    jwt_secret: str = DEV_JWT_SECRET
    jwt_expires_minutes: int = 7 * 24 * 60
    bcrypt_rounds: int = 10
    password_reset_ttl_minutes: int = 30

    # Persistence
    store_backend: str = "json"
    data_file: str = "data/lawease.json"
    database_url: str = "sqlite:///data/lawease.db"

    # Blob storage
    blob_backend: Optional[str] = None
    upload_dir: str = "data/uploads"
    upload_max_bytes: int = 8 * 1024 * 1024
    azure_connection_string: Optional[str] = None
    azure_container: str = "lawease-docs"
    s3_bucket: Optional[str] = None
    s3_region: Optional[str] = None
    s3_endpoint: Optional[str] = None
    s3_force_path_style: bool = False

    # HTTP surface
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    auth_rate_limit: int = 12
    api_rate_limit: int = 400
    rate_limit_window_seconds: int = 15 * 60
    trust_proxy: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def resolved_blob_backend(self) -> str:
        """Explicit BLOB_BACKEND wins; otherwise pick from whichever cloud is configured."""
        if self.blob_backend:
            return self.blob_backend.lower()
        if self.s3_bucket and self.s3_region:
            return "s3"
        if self.azure_connection_string:
            return "azure"
        return "local"

    def validate(self) -> None:
        if self.store_backend not in ("json", "sql"):
            raise ValueError(f"Unknown STORE_BACKEND: {self.store_backend}")
        if self.resolved_blob_backend not in ("local", "azure", "s3"):
            raise ValueError(f"Unknown BLOB_BACKEND: {self.blob_backend}")
        if self.jwt_secret == DEV_JWT_SECRET:
            if self.is_production:
                raise ValueError("JWT_SECRET environment variable not set. Cannot start in production.")
            logger.warning("JWT_SECRET not set - using development secret")
        elif len(self.jwt_secret) < 32:
            logger.warning("JWT_SECRET is less than 32 bytes - use a stronger secret!")

    @classmethod
    def from_env(cls) -> "Settings":
        dotenv.load_dotenv()
        return cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=_env_int("PORT", 4000),
            jwt_secret=os.getenv("JWT_SECRET") or DEV_JWT_SECRET,
            jwt_expires_minutes=_env_int("JWT_EXPIRES_MINUTES", 7 * 24 * 60),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 10),
            password_reset_ttl_minutes=_env_int("PASSWORD_RESET_TOKEN_TTL_MINUTES", 30),
            store_backend=os.getenv("STORE_BACKEND", "json").lower(),
            data_file=os.getenv("DATA_FILE", "data/lawease.json"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///data/lawease.db"),
            blob_backend=os.getenv("BLOB_BACKEND") or None,
            upload_dir=os.getenv("UPLOAD_DIR", "data/uploads"),
            upload_max_bytes=_env_int("UPLOAD_MAX_BYTES", 8 * 1024 * 1024),
            azure_connection_string=os.getenv("AZURE_STORAGE_CONNECTION_STRING") or None,
            azure_container=os.getenv("AZURE_BLOB_CONTAINER", "lawease-docs"),
            s3_bucket=os.getenv("S3_BUCKET") or None,
            s3_region=os.getenv("S3_REGION") or None,
            s3_endpoint=os.getenv("S3_ENDPOINT") or None,
            s3_force_path_style=_env_bool("S3_FORCE_PATH_STYLE"),
            allowed_origins=_env_list("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS),
            auth_rate_limit=_env_int("AUTH_RATE_LIMIT", 12),
            api_rate_limit=_env_int("API_RATE_LIMIT", 400),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 15 * 60),
            trust_proxy=_env_bool("TRUST_PROXY"),
        )
