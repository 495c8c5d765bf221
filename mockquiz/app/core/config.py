import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

LIMIT_FREQUENCIES = ("daily", "weekly", "monthly", "lifetime")


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if part not in origins:
            origins.append(part)
    return origins


def _parse_string_list(raw: Any) -> list[str]:
    if isinstance(raw, (list, tuple, set)):
        return [str(v).strip().lower() for v in raw if str(v).strip()]
    raw = str(raw or "").strip()
    if raw.startswith("["):
        try:
            return _parse_string_list(json.loads(raw))
        except json.JSONDecodeError:
            pass
    return [p.lower() for p in re.split(r"[,\s]+", raw) if p]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # PostgreSQL settings
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "mockquiz"
    db_password: str = "mockquiz"
    db_name: str = "mockquiz"

    # Connection pool settings
    db_pool_size: int = 20
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 300
    db_pool_pre_ping: bool = True
    db_command_timeout: float = 30.0

    # Explicit DATABASE_URL (takes priority over db_* settings)
    database_url_override: str = Field(default="", validation_alias="DATABASE_URL")

    @property
    def database_url(self) -> str:
        """Build database connection URL.

        Priority:
        1. database_url_override (from DATABASE_URL env var or .env file)
        2. Built from db_* settings
        """
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )

    # Document store backend: "sql" (SQLAlchemy) or "memory" (single process only)
    document_store: str = "sql"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Quota applied when no access rule is configured at all
    default_limit_count: int = 7
    default_limit_frequency: str = "weekly"

    # Enrollment statuses that grant access under an access rule
    eligible_enrollment_statuses: Annotated[list[str], NoDecode] = [
        "active",
        "paid",
        "enrolled",
    ]

    # Request limits
    max_questions_per_quiz: int = 180
    max_duration_minutes: int = 180

    # Maximum number of values in a single "in" query filter
    query_in_limit: int = 10

    # Commit transaction retry settings
    commit_max_retries: int = 10  # 11 attempts in total
    commit_retry_base_delay: float = 0.05
    commit_retry_max_delay: float = 1.0

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator("eligible_enrollment_statuses", mode="before")
    @classmethod
    def decode_enrollment_statuses(cls, v: Any) -> list[str]:
        return _parse_string_list(v)

    @field_validator(
        "default_limit_count",
        "max_questions_per_quiz",
        "max_duration_minutes",
        "query_in_limit",
        "db_pool_size",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate limit values are positive."""
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("default_limit_frequency")
    @classmethod
    def validate_frequency(cls, v: str) -> str:
        """Validate the default frequency is a known period."""
        v = v.strip().lower()
        if v not in LIMIT_FREQUENCIES:
            raise ValueError(f"default_limit_frequency must be one of {LIMIT_FREQUENCIES}")
        return v

    @field_validator("document_store")
    @classmethod
    def validate_document_store(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("sql", "memory"):
            raise ValueError("document_store must be 'sql' or 'memory'")
        return v

    @field_validator("commit_max_retries")
    @classmethod
    def validate_commit_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("commit_max_retries cannot be negative")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
