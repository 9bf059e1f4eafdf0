"""landdisagg settings loaded from environment variables."""

from enum import StrEnum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from landdisagg.models.common import GrasslandScheme


class LogLevel(StrEnum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogRenderer(StrEnum):
    """Output format for structured logs."""

    CONSOLE = "console"
    JSON = "json"


class Settings(BaseSettings):
    """Run-wide settings loaded from environment variables / .env file.

    Variables carry the ``LANDDISAGG_`` prefix, e.g.
    ``LANDDISAGG_GRASSLAND_SCHEME=GRASS_SPLIT``.
    """

    model_config = SettingsConfigDict(
        env_prefix="LANDDISAGG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Classification ---
    GRASSLAND_SCHEME: GrasslandScheme = Field(
        default=GrasslandScheme.NO_GRASS,
        description="Grassland classification of the incoming land pools.",
    )

    # --- Numerics ---
    CONSERVATION_TOLERANCE: float = Field(
        default=0.1,
        ge=0.0,
        description="Global absolute residual (Mha) above which a split is flagged.",
    )
    ABORT_ON_CONSERVATION_VIOLATION: bool = Field(
        default=False,
        description="Raise instead of warning when a split is not conserved.",
    )
    SHARE_EPSILON: float = Field(
        default=1e-10,
        gt=0.0,
        description="Added to share denominators so all-zero units give zero shares.",
    )

    # --- Execution ---
    MAX_WORKERS: int = Field(
        default=1,
        ge=1,
        description="Worker threads for independent passes (1 = sequential).",
    )

    # --- Logging ---
    LOG_LEVEL: LogLevel = Field(
        default=LogLevel.INFO,
        description="Log level.",
    )
    LOG_RENDERER: LogRenderer = Field(
        default=LogRenderer.CONSOLE,
        description="Console output for interactive runs, JSON for batch jobs.",
    )


def get_settings() -> Settings:
    """Factory for a fresh Settings instance."""
    return Settings()
