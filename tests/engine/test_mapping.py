"""Tests for SpatialMapping — cluster → grid-cell membership.

Covers: partition validation, lookups, piecewise-constant projection,
sum and weighted-mean aggregation.
"""

import numpy as np
import pytest

from landdisagg.engine.field import QuantityField
from landdisagg.engine.mapping import SpatialMapping


def _coarse() -> QuantityField:
    return QuantityField(
        values=[[[1.0, 2.0]], [[10.0, 20.0]]],
        units=["c1", "c2"],
        categories=["crop"],
        times=["y1995", "y2000"],
    )


# ===================================================================
# Validation
# ===================================================================


class TestValidation:
    """Every cell has exactly one owner; every cluster owns a cell."""

    def test_empty_mapping_raises(self) -> None:
        with pytest.raises(ValueError, match="at least one cluster"):
            SpatialMapping({})

    def test_empty_cluster_raises(self) -> None:
        with pytest.raises(ValueError, match="no member cells"):
            SpatialMapping({"c1": ["a"], "c2": []})

    def test_cell_in_two_clusters_raises(self) -> None:
        with pytest.raises(ValueError, match="belongs to both"):
            SpatialMapping({"c1": ["a"], "c2": ["a"]})

    def test_from_pairs_duplicate_cell_raises(self) -> None:
        with pytest.raises(ValueError, match="belongs to both"):
            SpatialMapping.from_pairs([("a", "c1"), ("a", "c2")])

    def test_negative_weight_raises(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            SpatialMapping({"c1": ["a", "b"]}, weights={"a": 1.0, "b": -1.0})

    def test_missing_weight_raises(self) -> None:
        with pytest.raises(ValueError, match="missing"):
            SpatialMapping({"c1": ["a", "b"]}, weights={"a": 1.0})

    def test_weight_for_unknown_cell_raises(self) -> None:
        with pytest.raises(ValueError, match="unknown cells"):
            SpatialMapping({"c1": ["a"]}, weights={"a": 1.0, "z": 1.0})


# ===================================================================
# Lookups
# ===================================================================


class TestLookups:

    def test_from_pairs(self) -> None:
        m = SpatialMapping.from_pairs([("a", "c1"), ("c", "c2"), ("b", "c1")])
        assert m.clusters == ("c1", "c2")
        assert m.cells_of("c1") == ["a", "b"]
        assert m.cluster_of("c") == "c2"
        assert len(m) == 3

    def test_unknown_cell_raises(self, mapping) -> None:
        with pytest.raises(KeyError, match="Unknown cell"):
            mapping.cluster_of("z")

    def test_unknown_cluster_raises(self, mapping) -> None:
        with pytest.raises(KeyError, match="Unknown cluster"):
            mapping.cells_of("c9")

    def test_default_weights_are_one(self, mapping) -> None:
        np.testing.assert_array_equal(mapping.weights, [1.0, 1.0, 1.0])

    def test_normalized_weights_sum_to_one_per_cluster(self) -> None:
        m = SpatialMapping(
            {"c1": ["a", "b"], "c2": ["c", "d"]},
            weights={"a": 1.0, "b": 3.0, "c": 0.0, "d": 0.0},
        ).normalized()
        assert m.weight_of("a") == pytest.approx(0.25)
        assert m.weight_of("b") == pytest.approx(0.75)
        # all-zero cluster falls back to equal weights
        assert m.weight_of("c") == pytest.approx(0.5)


# ===================================================================
# Projection and aggregation
# ===================================================================


class TestProjection:
    """Cluster values copied onto member cells."""

    def test_every_cell_gets_its_cluster_value(self, mapping) -> None:
        fine = mapping.project(_coarse())
        assert fine.units == ("a", "b", "c")
        np.testing.assert_array_equal(fine.values[:, 0, 1], [2.0, 2.0, 20.0])

    def test_project_subset_of_cells(self, mapping) -> None:
        fine = mapping.project(_coarse(), fine_units=["c", "a"])
        np.testing.assert_array_equal(fine.values[:, 0, 0], [10.0, 1.0])

    def test_missing_cluster_raises(self, mapping) -> None:
        with pytest.raises(KeyError):
            mapping.project(_coarse().select(units=["c1"]))


class TestAggregation:
    """Cell values summed or averaged back to clusters."""

    def test_sum(self, mapping) -> None:
        fine = QuantityField(
            values=[[[1.0]], [[2.0]], [[4.0]]], units=["a", "b", "c"], categories=["crop"], times=["t"],
        )
        coarse = mapping.aggregate(fine, method="sum")
        assert coarse.units == ("c1", "c2")
        np.testing.assert_array_equal(coarse.values[:, 0, 0], [3.0, 4.0])

    def test_weighted_mean(self, mapping) -> None:
        fine = QuantityField(
            values=[[[0.2]], [[0.8]], [[0.5]]], units=["a", "b", "c"], categories=["manpast"], times=["t"],
        )
        weight = QuantityField(
            values=[[[3.0]], [[1.0]], [[2.0]]], units=["a", "b", "c"], categories=["land"], times=["t"],
        )
        coarse = mapping.aggregate(fine, method="weighted_mean", weight=weight)
        # (0.2 * 3 + 0.8 * 1) / 4
        assert coarse.value("c1", "manpast", "t") == pytest.approx(0.35)
        assert coarse.value("c2", "manpast", "t") == pytest.approx(0.5)

    def test_zero_weight_cluster_uses_plain_mean(self, mapping) -> None:
        fine = QuantityField(
            values=[[[0.2]], [[0.8]], [[0.5]]], units=["a", "b", "c"], categories=["x"], times=["t"],
        )
        weight = fine.with_values(np.zeros((3, 1, 1)))
        coarse = mapping.aggregate(fine, method="weighted_mean", weight=weight)
        assert coarse.value("c1", "x", "t") == pytest.approx(0.5)

    def test_weighted_mean_of_projection_is_identity(self, mapping) -> None:
        coarse = _coarse()
        back = mapping.aggregate(mapping.project(coarse), method="weighted_mean")
        np.testing.assert_allclose(back.values, coarse.values)

    def test_only_present_clusters_returned(self, mapping) -> None:
        fine = QuantityField(values=[[[1.0]]], units=["c"], categories=["x"], times=["t"])
        assert mapping.aggregate(fine).units == ("c2",)

    def test_unknown_method_raises(self, mapping) -> None:
        with pytest.raises(ValueError, match="Unknown aggregation method"):
            mapping.aggregate(mapping.project(_coarse()), method="median")
