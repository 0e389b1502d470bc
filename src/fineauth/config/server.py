"""Server configuration settings."""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ServerSettings(BaseSettings):
    """HTTP listener and logging settings."""

    model_config = SettingsConfigDict(
        env_prefix="SERVER__",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(default="0.0.0.0", description="Interface to bind")
    port: int = Field(default=3000, ge=1, le=65535, description="Port to listen on")
    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Path | None = Field(
        default=Path("logs/fineauth.log"),
        description="Append-only log file (None disables file logging)",
    )
    json_logs: bool = Field(
        default=False, description="Render console logs as JSON lines"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level
