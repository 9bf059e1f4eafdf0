"""Shared types, enums, and base models used across landdisagg."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]


# --- Shared enums ---


class GrasslandScheme(StrEnum):
    """Which grassland classification the land pools arrive in.

    GRASS_SPLIT: the optimization model already separates managed pasture
    and rangeland. NO_GRASS: a single pasture pool that is split later
    using regional side-layer fractions.
    """

    GRASS_SPLIT = "GRASS_SPLIT"
    NO_GRASS = "NO_GRASS"

    @classmethod
    def from_realization(cls, realization: str) -> "GrasslandScheme":
        """Map a pasture module realization name to a scheme.

        'grasslands_apr22' -> GRASS_SPLIT, 'endo_jun13' -> NO_GRASS.
        """
        if "grass" in realization.lower():
            return cls.GRASS_SPLIT
        return cls.NO_GRASS


class OutputUnit(StrEnum):
    """Physical unit annotation attached to every emitted field."""

    MHA_PER_CELL = "Mha per grid-cell"
    LAND_FRACTION = "grid-cell land area fraction"
    AREA_FRACTION = "grid-cell area fraction"
    CROPAREA_FRACTION = "croparea fractions of total grid-cell"
    UNITLESS = "unitless"


class DiagnosticKind(StrEnum):
    """Categories of non-fatal findings raised during a run."""

    NEGATIVE_VALUE_CORRECTED = "NEGATIVE_VALUE_CORRECTED"
    CONSERVATION_VIOLATION = "CONSERVATION_VIOLATION"
    PASS_SKIPPED = "PASS_SKIPPED"
    PASS_FAILED = "PASS_FAILED"


class DiagnosticSeverity(StrEnum):
    """Severity levels for diagnostics."""

    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class PassStatus(StrEnum):
    """Final state of one disaggregation pass."""

    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


# --- Base model ---


class LandDisaggBase(BaseModel):
    """Base model with common configuration for all landdisagg Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "protected_namespaces": (),
    }
