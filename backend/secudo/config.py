"""
Secudo Application Configuration
Environment-driven settings for the modeling backend and interchange engine
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SECUDO_",
        extra="allow",  # Allow extra fields from environment
    )

    # Application
    app_name: str = "Secudo"
    app_version: str = "1.4.0"
    debug: bool = False

    # Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # Database
    database_url: str = "sqlite:///./secudo.db"
    database_echo: bool = False

    # Allowed hosts for CORS (configurable via environment)
    allowed_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Snapshots (canonical model savepoints)
    max_snapshot_bytes: int = 2_000_000
    max_snapshot_title_length: int = 120

    # Projects
    project_trash_retention_days: int = 30
    default_project_norm: str = "IEC 62443"

    # Interchange
    export_format_version: int = 1

    @field_validator("secret_key")
    @classmethod
    def secret_key_must_be_strong(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError("Secret key must be at least 32 characters long")
        return v

    @field_validator("allowed_origins")
    @classmethod
    def validate_origins(cls, v: List[str]) -> List[str]:
        for origin in v:
            if not origin.startswith(("https://", "http://localhost", "http://127.0.0.1")):
                raise ValueError("All origins must use HTTPS (except localhost)")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        normalized = v.upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {v}")
        return normalized


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings"""
    return Settings()


# Security middleware configuration
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}
