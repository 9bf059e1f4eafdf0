"""SpatialMapping — cluster → grid-cell membership.

Supports:
    - Cell -> cluster lookup (every cell has exactly one owner)
    - Cluster -> cells lookup (every cluster owns at least one cell)
    - Project: cluster field -> cell field (piecewise constant)
    - Aggregate: cell field -> cluster field (sum or weighted mean)

Projection is lossless for cluster-level quantities that are intensive
(shares, coefficients). Aggregation is lossy:
    aggregate(project(v), "weighted_mean") == v
    BUT project(aggregate(v)) != v  (within-cluster variation lost)
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping, Sequence

import numpy as np

from landdisagg.engine.field import QuantityField


class SpatialMapping:
    """Immutable partition of grid cells into clusters with cell weights."""

    def __init__(
        self,
        membership: Mapping[Hashable, Sequence[Hashable]],
        weights: Mapping[Hashable, float] | None = None,
    ) -> None:
        """Build from ``{cluster: [cells]}``.

        Args:
            membership: Cells owned by each cluster.
            weights: Optional non-negative weight per cell (e.g. cell area).
                Defaults to 1.0 for every cell.

        Raises:
            ValueError: If a cluster is empty, a cell appears twice, or a
                weight is negative / missing.
        """
        if not membership:
            msg = "mapping must contain at least one cluster."
            raise ValueError(msg)

        cluster_of: dict[Hashable, Hashable] = {}
        members: dict[Hashable, tuple] = {}
        for cluster, cells in membership.items():
            cells = tuple(cells)
            if not cells:
                msg = f"cluster '{cluster}' has no member cells."
                raise ValueError(msg)
            for cell in cells:
                if cell in cluster_of:
                    msg = (
                        f"cell '{cell}' belongs to both '{cluster_of[cell]}' "
                        f"and '{cluster}'."
                    )
                    raise ValueError(msg)
                cluster_of[cell] = cluster
            members[cluster] = cells

        self._clusters = tuple(members)
        self._cells = tuple(cluster_of)
        self._cluster_of = cluster_of
        self._members = members
        self._cell_index = {c: i for i, c in enumerate(self._cells)}

        cluster_pos = {c: i for i, c in enumerate(self._clusters)}
        self._owner = np.array(
            [cluster_pos[cluster_of[cell]] for cell in self._cells], dtype=np.intp,
        )
        self._owner.flags.writeable = False

        if weights is None:
            w = np.ones(len(self._cells), dtype=np.float64)
        else:
            unknown = [c for c in weights if c not in cluster_of]
            if unknown:
                msg = f"weights given for unknown cells: {unknown[:5]}"
                raise ValueError(msg)
            missing = [c for c in self._cells if c not in weights]
            if missing:
                msg = f"weights missing for cells: {missing[:5]}"
                raise ValueError(msg)
            w = np.array([float(weights[c]) for c in self._cells], dtype=np.float64)
            if np.any(~np.isfinite(w)) or np.any(w < 0):
                msg = "cell weights must be finite and non-negative."
                raise ValueError(msg)
        w.flags.writeable = False
        self._weights = w

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[Hashable, Hashable]],
        weights: Mapping[Hashable, float] | None = None,
    ) -> SpatialMapping:
        """Build from ``(cell, cluster)`` rows of a cluster map table."""
        membership: dict[Hashable, list] = {}
        seen: dict[Hashable, Hashable] = {}
        for cell, cluster in pairs:
            if cell in seen:
                msg = f"cell '{cell}' belongs to both '{seen[cell]}' and '{cluster}'."
                raise ValueError(msg)
            seen[cell] = cluster
            membership.setdefault(cluster, []).append(cell)
        return cls(membership, weights)

    # -----------------------------------------------------------------
    # Basic lookups
    # -----------------------------------------------------------------

    @property
    def clusters(self) -> tuple:
        """Ordered cluster ids."""
        return self._clusters

    @property
    def cells(self) -> tuple:
        """Ordered cell ids (grouped by cluster)."""
        return self._cells

    @property
    def weights(self) -> np.ndarray:
        """Cell weights in ``cells`` order (read-only)."""
        return self._weights

    def cluster_of(self, cell: Hashable) -> Hashable:
        """Owning cluster of a cell.

        Raises:
            KeyError: If the cell is not in the mapping.
        """
        try:
            return self._cluster_of[cell]
        except KeyError:
            raise KeyError(f"Unknown cell: '{cell}'.") from None

    def cells_of(self, cluster: Hashable) -> list:
        """Member cells of a cluster.

        Raises:
            KeyError: If the cluster is not in the mapping.
        """
        try:
            return list(self._members[cluster])
        except KeyError:
            raise KeyError(
                f"Unknown cluster: '{cluster}'. {len(self._clusters)} clusters are mapped."
            ) from None

    def weight_of(self, cell: Hashable) -> float:
        return float(self._weights[self._cell_position(cell)])

    def _cell_position(self, cell: Hashable) -> int:
        try:
            return self._cell_index[cell]
        except KeyError:
            raise KeyError(f"Unknown cell: '{cell}'.") from None

    def normalized(self) -> SpatialMapping:
        """Copy whose weights sum to 1 within each cluster.

        Clusters whose weights sum to 0 get equal weights.
        """
        totals = np.bincount(self._owner, weights=self._weights, minlength=len(self._clusters))
        counts = np.bincount(self._owner, minlength=len(self._clusters))
        cluster_total = totals[self._owner]
        w = np.where(
            cluster_total > 0,
            self._weights / np.where(cluster_total > 0, cluster_total, 1.0),
            1.0 / counts[self._owner],
        )
        return SpatialMapping(
            self._members,
            weights=dict(zip(self._cells, w.tolist(), strict=True)),
        )

    # -----------------------------------------------------------------
    # Projection (cluster -> cell)
    # -----------------------------------------------------------------

    def project(
        self,
        coarse: QuantityField,
        fine_units: Sequence[Hashable] | None = None,
    ) -> QuantityField:
        """Piecewise-constant projection of a cluster field onto cells.

        Every cell receives the values of its owning cluster.

        Args:
            coarse: Field indexed by cluster ids.
            fine_units: Cells to produce, in order. Defaults to all cells.

        Raises:
            KeyError: If a cell is not mapped or its cluster is missing
                from ``coarse``.
        """
        fine_units = self._cells if fine_units is None else tuple(fine_units)
        owners = [self.cluster_of(cell) for cell in fine_units]
        values = coarse.values[coarse.unit_indices(owners), :, :]
        return QuantityField(
            values=values,
            units=fine_units,
            categories=coarse.categories,
            times=coarse.times,
            name=coarse.name,
        )

    # -----------------------------------------------------------------
    # Aggregation (cell -> cluster)
    # -----------------------------------------------------------------

    def aggregate(
        self,
        fine: QuantityField,
        method: str = "sum",
        weight: QuantityField | None = None,
    ) -> QuantityField:
        """Aggregate a cell field to clusters.

        Args:
            fine: Field indexed by cell ids.
            method: 'sum' for extensive quantities (areas),
                    'weighted_mean' for fractions (side layers).
            weight: One-category cell field used by 'weighted_mean'
                (e.g. land area). Falls back to the mapping's weights.

        Returns:
            Field over the clusters owning at least one cell of ``fine``,
            in mapping order. Clusters whose weights sum to 0 get the
            unweighted mean.
        """
        owner_pos = np.array(
            [self._owner[self._cell_position(cell)] for cell in fine.units], dtype=np.intp,
        )
        present = np.unique(owner_pos)
        n_clusters = len(self._clusters)
        n_cells, n_cat, n_t = fine.shape

        if method == "sum":
            out = np.zeros((n_clusters, n_cat, n_t), dtype=np.float64)
            np.add.at(out, owner_pos, fine.values)
        elif method == "weighted_mean":
            if weight is None:
                w = self._weights[[self._cell_position(c) for c in fine.units]]
                w = np.broadcast_to(w[:, np.newaxis], (n_cells, n_t))
            else:
                if len(weight.categories) != 1:
                    msg = "weight must have exactly one category."
                    raise ValueError(msg)
                w = weight.values_for(units=fine.units, times=fine.times)[:, 0, :]

            num = np.zeros((n_clusters, n_cat, n_t), dtype=np.float64)
            np.add.at(num, owner_pos, fine.values * w[:, np.newaxis, :])
            den = np.zeros((n_clusters, n_t), dtype=np.float64)
            np.add.at(den, owner_pos, w)

            plain = np.zeros((n_clusters, n_cat, n_t), dtype=np.float64)
            np.add.at(plain, owner_pos, fine.values)
            counts = np.bincount(owner_pos, minlength=n_clusters).astype(np.float64)
            counts = np.where(counts > 0, counts, 1.0)
            plain /= counts[:, np.newaxis, np.newaxis]

            den3 = den[:, np.newaxis, :]
            out = np.where(den3 > 0, num / np.where(den3 > 0, den3, 1.0), plain)
        else:
            raise ValueError(f"Unknown aggregation method: '{method}'")

        return QuantityField(
            values=out[present],
            units=[self._clusters[i] for i in present],
            categories=fine.categories,
            times=fine.times,
            name=fine.name,
        )

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        return f"<SpatialMapping clusters={len(self._clusters)} cells={len(self._cells)}>"

