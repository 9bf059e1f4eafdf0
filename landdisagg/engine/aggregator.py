"""Category-weighted aggregation — biodiversity intactness (BII) per cell.

indicator[u, t] = Σ_fields Σ_category field[u, category, t] · coeff[category]

Coefficients are either one scalar per category or a full field (per
cell, optionally per time step) obtained by projecting cluster-level
coefficients onto cells. All coefficient sets are versioned for
traceability.

Pure deterministic functions — no I/O.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from uuid import UUID

import numpy as np

from landdisagg.engine.field import CATEGORY_AXIS, QuantityField
from landdisagg.errors import MissingCoefficient
from landdisagg.models.common import new_uuid7

_SCALAR = "*"


class CoefficientField:
    """Versioned per-category weights, optionally varying per cell."""

    def __init__(
        self,
        field: QuantityField,
        *,
        per_unit: bool = True,
        bounded: bool = True,
        version_id: UUID | None = None,
    ) -> None:
        """Wrap a coefficient field.

        Args:
            field: Coefficients as a QuantityField (categories = classes).
            per_unit: False when the field holds one scalar per category.
            bounded: Require every coefficient to lie in [0, 1].
            version_id: Coefficient set version; generated if omitted.

        Raises:
            ValueError: If ``bounded`` and a coefficient is outside [0, 1].
        """
        if bounded:
            vals = field.values[~np.isnan(field.values)]
            if np.any(vals < 0.0) or np.any(vals > 1.0):
                msg = "coefficients must lie in [0, 1] (pass bounded=False to relax)."
                raise ValueError(msg)
        self._field = field
        self._per_unit = per_unit
        self._version_id = version_id or new_uuid7()

    @classmethod
    def from_scalars(
        cls,
        coefficients: Mapping[str, float],
        *,
        bounded: bool = True,
        version_id: UUID | None = None,
    ) -> CoefficientField:
        """One weight per category, identical for every cell and time step."""
        categories = list(coefficients)
        values = np.array(
            [float(coefficients[c]) for c in categories], dtype=np.float64,
        ).reshape(1, len(categories), 1)
        field = QuantityField(
            values=values, units=(_SCALAR,), categories=categories, times=(_SCALAR,),
        )
        return cls(field, per_unit=False, bounded=bounded, version_id=version_id)

    @classmethod
    def from_field(
        cls,
        field: QuantityField,
        *,
        bounded: bool = True,
        version_id: UUID | None = None,
    ) -> CoefficientField:
        """Per-cell weights; a single time step applies to every time step."""
        return cls(field, per_unit=True, bounded=bounded, version_id=version_id)

    @property
    def categories(self) -> tuple[str, ...]:
        return self._field.categories

    @property
    def version_id(self) -> UUID:
        return self._version_id

    @property
    def per_unit(self) -> bool:
        return self._per_unit

    @property
    def field(self) -> QuantityField:
        return self._field

    def values_for(self, target: QuantityField) -> np.ndarray:
        """Coefficients aligned to (broadcastable with) ``target``.

        Raises:
            MissingCoefficient: If a category of ``target`` has no weight.
        """
        missing = [c for c in target.categories if c not in self._field]
        if missing:
            raise MissingCoefficient(
                f"No coefficient for categories {missing}.",
                context={"missing": missing, "version_id": str(self._version_id)},
            )
        if not self._per_unit:
            idx = self._field.category_indices(target.categories)
            return self._field.values[:, idx, :]
        return self._field.values_for(
            units=target.units, categories=target.categories, times=target.times,
        )


class WeightedAggregator:
    """Deterministic category-weighted sum across one or more fields."""

    def aggregate(
        self,
        fields: QuantityField | Sequence[QuantityField],
        coefficients: CoefficientField,
        *,
        label: str = "bii",
    ) -> QuantityField:
        """Weighted sum over all categories of all fields.

        Args:
            fields: One or more cell-level fields; later fields are aligned
                to the first by unit and time labels.
            coefficients: Weights covering every category in ``fields``.
            label: Category label of the one-category result.

        Returns:
            One-category field on the first field's units and time steps.
            NaN products are skipped in the sum.

        Raises:
            MissingCoefficient: If any category lacks a coefficient.
            ValueError: If no field is given.
        """
        if isinstance(fields, QuantityField):
            fields = [fields]
        if not fields:
            msg = "aggregate requires at least one field."
            raise ValueError(msg)

        first = fields[0]
        n_units, _, n_times = first.shape
        total = np.zeros((n_units, 1, n_times), dtype=np.float64)
        for field in fields:
            aligned = field.align(units=first.units, times=first.times)
            weights = coefficients.values_for(aligned)
            total += np.nansum(aligned.values * weights, axis=CATEGORY_AXIS, keepdims=True)

        return QuantityField(
            values=total,
            units=first.units,
            categories=(label,),
            times=first.times,
            name=label,
        )
