"""Base configuration settings."""

import os
import secrets
import warnings
from typing import List, Optional

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Values are read from the environment (and a local ``.env`` file), matching
    field names case-insensitively.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Violet FHIR Server"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    testing: bool = False
    log_level: str = "INFO"
    log_format: str = "console"

    # API
    api_host: str = "127.0.0.1"
    api_port: int = 3001
    api_v1_prefix: str = "/api/v1"
    fhir_prefix: str = "/fhir"
    allowed_origins: List[str] = ["*"]

    # Storage
    storage_backend: str = Field(
        default="sqlalchemy", description="sqlalchemy or memory"
    )
    database_url: str = "sqlite:///./violet_fhir.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # Protocol
    fhir_version: str = "4.0.1"
    protocol_version: str = "R4"
    protocol_marker: str = "fhir"
    schema_directory: Optional[str] = Field(
        default=None,
        description="Directory of <ResourceType>.json schemas; packaged schemas when unset",
    )
    provision_schema_namespaces: bool = True

    # Security
    jwt_secret_key: str = Field(
        default_factory=lambda: os.getenv("JWT_SECRET_KEY", ""),
        description="JWT signing key - MUST be set in production",
    )
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24 * 7
    write_roles: List[str] = ["practitioner", "admin"]
    admin_roles: List[str] = ["admin"]

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_secret_key(cls, v: str, info: ValidationInfo) -> str:
        """Refuse an empty signing key outside development."""
        if not v or "change-me" in v.lower():
            env = os.getenv("ENVIRONMENT", "development").lower()
            if env in ["production", "staging"]:
                raise ValueError(
                    f"{info.field_name} must be set to a secure value in {env}"
                )
            secure_key = secrets.token_urlsafe(64)
            warnings.warn(
                f"{info.field_name} is not set. Generated a temporary "
                "development key; tokens will not survive a restart.",
                stacklevel=2,
            )
            return secure_key
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Only the bundled backends are selectable."""
        v = v.lower()
        if v not in ("sqlalchemy", "memory"):
            raise ValueError("storage_backend must be 'sqlalchemy' or 'memory'")
        return v

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")
