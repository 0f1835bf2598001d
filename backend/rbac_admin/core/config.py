import os
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _build_default_database_url() -> str:
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "rbac_admin")
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{db}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    PROJECT_NAME: str = "RBAC Admin API"
    API_V1_STR: str = "/api/v1"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    # unset: on in dev, off elsewhere
    LOG_REQUESTS: Optional[bool] = None
    LOG_SQL: Optional[bool] = None

    SECRET_KEY: str = "dev-secret-change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 14

    SEED_ENABLED: bool = True
    SEED_ORG_NAME: str = "Default Organization"
    MASTER_EMAIL: str = "admin@example.com"
    MASTER_USERNAME: str = "admin"
    MASTER_PASSWORD: str = "admin123"

    AUDIT_ENABLED: bool = True
    AUDIT_QUEUE_CAPACITY: int = 100
    AUDIT_MAX_BODY_BYTES: int = 64 * 1024
    AUDIT_EXEMPT_PATHS: List[str] = Field(default_factory=lambda: ["/api/v1/auth"])

    UPLOAD_DIR: str = "./uploads"
    UPLOAD_MAX_BYTES: int = 10 * 1024 * 1024

    DATABASE_URL: str = Field(default_factory=_build_default_database_url)
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    @field_validator("CORS_ORIGINS", "AUDIT_EXEMPT_PATHS", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @field_validator("AUDIT_QUEUE_CAPACITY")
    @classmethod
    def _validate_queue_capacity(cls, value):
        if value <= 0:
            raise ValueError("AUDIT_QUEUE_CAPACITY must be a positive integer")
        return value

    @field_validator("SECRET_KEY")
    @classmethod
    def _validate_secret_key(cls, value, info):
        env = str(info.data.get("ENV", "dev")).lower()
        if env != "dev" and (not value or value == "dev-secret-change-me"):
            raise ValueError("SECRET_KEY must be set in non-dev environments")
        return value

    @field_validator("SEED_ENABLED")
    @classmethod
    def _validate_seed_enabled(cls, value, info):
        env = str(info.data.get("ENV", "dev")).lower()
        if env != "dev" and value:
            raise ValueError("SEED_ENABLED must be false in non-dev environments")
        return value

    @property
    def is_dev(self) -> bool:
        return self.ENV.lower() == "dev"

    @property
    def request_logging_enabled(self) -> bool:
        return self.is_dev if self.LOG_REQUESTS is None else self.LOG_REQUESTS

    @property
    def sql_logging_enabled(self) -> bool:
        return self.is_dev if self.LOG_SQL is None else self.LOG_SQL


settings = Settings()
