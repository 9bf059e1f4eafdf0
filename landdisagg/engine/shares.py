"""Proportional share disaggregation of a parent category.

Splits a grid-cell parent total (e.g. cropland) into sub-categories
(crop_area / crop_fallow / crop_treecover) using the sub-categories'
cluster-level composition:

    share[c]       = children_coarse[c] / (Σ children_coarse + ε)
    children_fine  = project(share) · parent_fine_total

Every cell of a cluster receives the same share vector. ε keeps
all-zero clusters at zero instead of NaN.

Pure deterministic — no I/O.
"""

from __future__ import annotations

from landdisagg.engine.config import DEFAULT_SHARE_EPSILON
from landdisagg.engine.field import CATEGORY_AXIS, QuantityField
from landdisagg.engine.mapping import SpatialMapping


class ShareDisaggregator:
    """Cluster shares × cell parent total."""

    def __init__(self, epsilon: float = DEFAULT_SHARE_EPSILON) -> None:
        if epsilon <= 0:
            msg = "epsilon must be positive."
            raise ValueError(msg)
        self._epsilon = epsilon

    @property
    def epsilon(self) -> float:
        return self._epsilon

    def coarse_shares(self, children_coarse: QuantityField) -> QuantityField:
        """Each child's fraction of the cluster total per time step."""
        values = children_coarse.values
        totals = values.sum(axis=CATEGORY_AXIS, keepdims=True)
        return children_coarse.with_values(values / (totals + self._epsilon))

    def disaggregate(
        self,
        parent_fine_total: QuantityField,
        children_coarse: QuantityField,
        mapping: SpatialMapping,
    ) -> QuantityField:
        """Split a one-category cell field into the children's categories.

        Args:
            parent_fine_total: Cell-level parent total (one category).
            children_coarse: Cluster-level children, covering the parent's
                time steps.
            mapping: Cluster -> cell membership.

        Returns:
            Cell-level children on the parent's units and time steps.

        Raises:
            ValueError: If the parent has more than one category.
            KeyError: If a parent time step or owning cluster is missing
                from ``children_coarse``.
        """
        if len(parent_fine_total.categories) != 1:
            msg = (
                "parent_fine_total must have exactly one category, got "
                f"{list(parent_fine_total.categories)}."
            )
            raise ValueError(msg)

        shares = self.coarse_shares(children_coarse.select(times=parent_fine_total.times))
        fine_shares = mapping.project(shares, fine_units=parent_fine_total.units)
        values = fine_shares.values * parent_fine_total.values
        return fine_shares.with_values(values, name=parent_fine_total.name)
