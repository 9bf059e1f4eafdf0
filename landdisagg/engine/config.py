"""Engine configuration — numeric tolerances and the grassland variant.

The engine never reads the environment itself; scripts build a
DisaggregationConfig from Settings (or construct one directly in tests).
"""

from __future__ import annotations

from pydantic import Field

from landdisagg.config.settings import Settings
from landdisagg.models.common import GrasslandScheme, LandDisaggBase

DEFAULT_SHARE_EPSILON = 1e-10
DEFAULT_CONSERVATION_TOLERANCE = 0.1


class DisaggregationConfig(LandDisaggBase):
    """Configuration for one disaggregation run."""

    grassland_scheme: GrasslandScheme = GrasslandScheme.NO_GRASS
    conservation_tolerance: float = Field(default=DEFAULT_CONSERVATION_TOLERANCE, ge=0.0)
    abort_on_conservation_violation: bool = False
    share_epsilon: float = Field(default=DEFAULT_SHARE_EPSILON, gt=0.0)
    max_workers: int = Field(default=1, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DisaggregationConfig":
        """Engine view of environment-backed settings."""
        return cls(
            grassland_scheme=settings.GRASSLAND_SCHEME,
            conservation_tolerance=settings.CONSERVATION_TOLERANCE,
            abort_on_conservation_violation=settings.ABORT_ON_CONSERVATION_VIOLATION,
            share_epsilon=settings.SHARE_EPSILON,
            max_workers=settings.MAX_WORKERS,
        )
