"""Error taxonomy for disaggregation passes.

Hierarchy:
    DisaggregationError (base)
    ├── ConfigurationError      missing input a feature flag demands
    ├── UnknownCategory         label absent from a field or crosswalk
    ├── DuplicateCategoryError  category axis would hold a label twice
    ├── MissingCoefficient      field category without a weight
    ├── MissingProportions      crosswalk split without split proportions
    └── ConservationViolation   split does not sum back to its parent

ConfigurationError skips the optional sub-pass that needs the input.
UnknownCategory, DuplicateCategoryError, MissingCoefficient and
MissingProportions stop the affected pass. ConservationViolation is only
raised when the checker is configured to abort; otherwise a violation is
a diagnostic.
"""

from __future__ import annotations

from typing import Any


class DisaggregationError(Exception):
    """Base exception for all landdisagg errors.

    Attributes:
        message: Human-readable error message.
        context: Error-specific details (labels, pass name, residuals).
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        return self.message


class ConfigurationError(DisaggregationError):
    """A required external input is absent for an enabled feature."""


class UnknownCategory(DisaggregationError, KeyError):
    """Category label not present where it is required."""


class DuplicateCategoryError(DisaggregationError, ValueError):
    """Category axis would contain the same label twice."""


class MissingCoefficient(DisaggregationError, KeyError):
    """A field category has no entry in the coefficient field."""


class MissingProportions(DisaggregationError, ValueError):
    """A crosswalk splits a category but no split proportions were given."""


class ConservationViolation(DisaggregationError):
    """Disaggregated children do not sum back to the parent total."""
