"""Conservation check for share disaggregation.

A split is conserved when its children sum back to the parent. The
check is global: the signed cell-level differences are summed over all
cells and time steps and compared, in absolute value, against a
tolerance in the input's unit (Mha). NaNs are ignored.

A violation is a diagnostic by default; the run continues with the
computed values. With ``abort=True`` it raises ConservationViolation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from landdisagg.engine.config import DEFAULT_CONSERVATION_TOLERANCE
from landdisagg.engine.field import CATEGORY_AXIS, QuantityField
from landdisagg.errors import ConservationViolation
from landdisagg.models.common import DiagnosticKind, DiagnosticSeverity
from landdisagg.models.diagnostics import Diagnostic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConservationResult:
    """Outcome of one conservation check."""

    ok: bool
    residual: float
    tolerance: float
    label: str | None = None
    diagnostic: Diagnostic | None = None

    def __iter__(self) -> Iterator[bool | float]:
        """Unpack as ``ok, residual``."""
        return iter((self.ok, self.residual))


class ConservationChecker:
    """Compares Σ children against the parent total."""

    def __init__(
        self,
        tolerance: float = DEFAULT_CONSERVATION_TOLERANCE,
        *,
        abort: bool = False,
    ) -> None:
        if tolerance < 0:
            msg = "tolerance must be non-negative."
            raise ValueError(msg)
        self._tolerance = tolerance
        self._abort = abort

    @property
    def tolerance(self) -> float:
        return self._tolerance

    def check(
        self,
        children_fine: QuantityField,
        parent_fine_total: QuantityField,
        tolerance: float | None = None,
        *,
        label: str | None = None,
    ) -> ConservationResult:
        """Check that the children sum back to the parent.

        Args:
            children_fine: Cell-level children.
            parent_fine_total: Cell-level parent (one category), aligned to
                the children by unit and time labels.
            tolerance: Overrides the configured tolerance.
            label: Name of the split, used in messages.

        Raises:
            ConservationViolation: On violation, when configured to abort.
        """
        if len(parent_fine_total.categories) != 1:
            msg = (
                "parent_fine_total must have exactly one category, got "
                f"{list(parent_fine_total.categories)}."
            )
            raise ValueError(msg)

        tol = self._tolerance if tolerance is None else tolerance
        children_sum = children_fine.values.sum(axis=CATEGORY_AXIS)
        parent = parent_fine_total.values_for(
            units=children_fine.units, times=children_fine.times,
        )[:, 0, :]
        residual = abs(float(np.nansum(children_sum - parent)))

        if residual <= tol:
            return ConservationResult(ok=True, residual=residual, tolerance=tol, label=label)

        what = f"{label} " if label else ""
        message = f"large difference in {what}disaggregation detected"
        context = {"label": label, "residual": residual, "tolerance": tol}
        if self._abort:
            raise ConservationViolation(message, context=context)

        logger.warning("%s (residual=%.6g, tolerance=%.6g)", message, residual, tol)
        diagnostic = Diagnostic(
            kind=DiagnosticKind.CONSERVATION_VIOLATION,
            severity=DiagnosticSeverity.WARNING,
            message=message,
            detail=context,
        )
        return ConservationResult(
            ok=False,
            residual=residual,
            tolerance=tol,
            label=label,
            diagnostic=diagnostic,
        )
