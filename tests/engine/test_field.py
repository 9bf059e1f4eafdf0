"""Tests for QuantityField — labelled (unit × category × time) arrays.

Covers: construction checks, label-based selection, broadcasting of
single-time layers, category algebra (collapse, share, outer, concat).
"""

import numpy as np
import pytest

from landdisagg.engine.field import QuantityField
from landdisagg.errors import DuplicateCategoryError, UnknownCategory


def _field() -> QuantityField:
    values = np.arange(12, dtype=np.float64).reshape(2, 3, 2)
    return QuantityField(
        values=values,
        units=["c1", "c2"],
        categories=["crop", "past", "other"],
        times=["y1995", "y2000"],
        name="land",
    )


# ===================================================================
# Construction
# ===================================================================


class TestConstruction:
    """Shape and label validation."""

    def test_values_are_copied_and_frozen(self) -> None:
        raw = np.ones((1, 1, 1))
        f = QuantityField(values=raw, units=["c1"], categories=["crop"], times=["y1"])
        raw[0, 0, 0] = 5.0
        assert f.value("c1", "crop", "y1") == 1.0
        with pytest.raises(ValueError):
            f.values[0, 0, 0] = 2.0

    def test_rejects_non_3d(self) -> None:
        with pytest.raises(ValueError, match="3-D"):
            QuantityField(values=np.ones((2, 2)), units=["a", "b"], categories=["x", "y"], times=[])

    def test_rejects_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match="shape mismatch"):
            QuantityField(values=np.ones((2, 1, 1)), units=["a"], categories=["x"], times=["t"])

    def test_duplicate_category_raises(self) -> None:
        with pytest.raises(DuplicateCategoryError):
            QuantityField(values=np.ones((1, 2, 1)), units=["a"], categories=["x", "x"], times=["t"])

    def test_duplicate_unit_raises_value_error(self) -> None:
        with pytest.raises(ValueError, match="duplicate unit"):
            QuantityField(values=np.ones((2, 1, 1)), units=["a", "a"], categories=["x"], times=["t"])

    def test_from_records_fills_missing(self) -> None:
        f = QuantityField.from_records(
            {("a", "crop", "y1"): 2.0, ("b", "past", "y1"): 3.0},
        )
        assert f.units == ("a", "b")
        assert f.categories == ("crop", "past")
        assert f.value("a", "past", "y1") == 0.0
        assert f.to_records()[("b", "past", "y1")] == 3.0

    def test_repr_names_field(self) -> None:
        assert "'land'" in repr(_field())


# ===================================================================
# Selection
# ===================================================================


class TestSelection:
    """Axes are addressed by label."""

    def test_select_reorders_categories(self) -> None:
        f = _field()
        sub = f.select(categories=["other", "crop"])
        assert sub.categories == ("other", "crop")
        assert sub.value("c2", "other", "y2000") == f.value("c2", "other", "y2000")

    def test_select_single_label(self) -> None:
        sub = _field().select(categories="past", times="y1995")
        assert sub.shape == (2, 1, 1)

    def test_unknown_category_raises(self) -> None:
        with pytest.raises(UnknownCategory):
            _field().select(categories="urban")

    def test_unknown_category_is_key_error(self) -> None:
        with pytest.raises(KeyError):
            _field().category_indices(["urban"])

    def test_unknown_time_raises_key_error(self) -> None:
        with pytest.raises(KeyError, match="y2050"):
            _field().select(times="y2050")

    def test_align_by_label(self) -> None:
        f = _field()
        aligned = f.align(units=["c2", "c1"], times=["y2000", "y1995"])
        assert aligned.value("c1", "crop", "y1995") == f.value("c1", "crop", "y1995")
        assert aligned.units == ("c2", "c1")

    def test_drop(self) -> None:
        assert _field().drop("past").categories == ("crop", "other")

    def test_contains(self) -> None:
        f = _field()
        assert "crop" in f
        assert "urban" not in f

    def test_values_for_broadcasts_single_time(self) -> None:
        layer = QuantityField(
            values=[[[0.25]], [[0.75]]], units=["c1", "c2"], categories=["x"], times=["static"],
        )
        out = layer.values_for(units=["c2", "c1", "c2"], times=["y1", "y2"])
        assert out.shape == (3, 1, 2)
        np.testing.assert_array_equal(out[:, 0, 1], [0.75, 0.25, 0.75])

    def test_equals(self) -> None:
        assert _field().equals(_field())
        assert not _field().equals(_field().select(categories=["past", "crop", "other"]))


# ===================================================================
# Category algebra
# ===================================================================


class TestCategoryAlgebra:
    """rename, sum, collapse, share, outer, concat."""

    def test_rename(self) -> None:
        f = _field().rename({"past": "pasture"})
        assert f.categories == ("crop", "pasture", "other")

    def test_rename_unknown_raises(self) -> None:
        with pytest.raises(UnknownCategory):
            _field().rename({"urban": "town"})

    def test_sum_categories(self) -> None:
        total = _field().sum_categories()
        assert total.categories == ("total",)
        # c1, y1995: 0 + 2 + 4
        assert total.value("c1", "total", "y1995") == 6.0

    def test_collapse_age_classes(self) -> None:
        f = QuantityField(
            values=[[[1.0], [2.0], [4.0]]],
            units=["a"],
            categories=["aff.ac0", "aff.ac5", "plant.ac0"],
            times=["t"],
        )
        out = f.collapse(level=0)
        assert out.categories == ("aff", "plant")
        assert out.value("a", "aff", "t") == 3.0

    def test_share_sums_to_one(self) -> None:
        shares = _field().share()
        np.testing.assert_allclose(shares.values.sum(axis=1), 1.0)

    def test_share_of_empty_unit_is_zero(self) -> None:
        f = QuantityField(values=np.zeros((1, 2, 1)), units=["a"], categories=["x", "y"], times=["t"])
        np.testing.assert_array_equal(f.share().values, 0.0)

    def test_divide_by_requires_one_category(self) -> None:
        with pytest.raises(ValueError, match="exactly one category"):
            _field().divide_by(_field())

    def test_scale(self) -> None:
        f = _field()
        doubled = f.scale(f.sum_categories().with_values(np.full((2, 1, 2), 2.0)))
        np.testing.assert_array_equal(doubled.values, f.values * 2.0)

    def test_outer_labels_and_values(self) -> None:
        land = QuantityField(values=[[[0.4], [0.6]]], units=["a"], categories=["crop", "other"], times=["t"])
        veg = QuantityField(
            values=[[[0.25], [0.75]]], units=["a"], categories=["forested", "nonforested"], times=["t"],
        )
        out = land.outer(veg)
        assert out.categories == (
            "crop.forested", "crop.nonforested", "other.forested", "other.nonforested",
        )
        assert out.value("a", "other.nonforested", "t") == pytest.approx(0.45)
        assert out.total() == pytest.approx(land.total())

    def test_concat(self) -> None:
        f = _field()
        joined = QuantityField.concat(f.select(categories="crop"), f.select(categories=["past", "other"]))
        assert joined.categories == f.categories
        np.testing.assert_array_equal(joined.values, f.values)

    def test_concat_duplicate_raises(self) -> None:
        f = _field()
        with pytest.raises(DuplicateCategoryError):
            QuantityField.concat(f, f.select(categories="crop"))
