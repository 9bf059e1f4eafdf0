"""Shared pytest fixtures for the landdisagg test suite.

Provides:
- mapping: two clusters ('c1' owns cells 'a', 'b'; 'c2' owns 'c')
- interpolator: proportional interpolation double that records its calls
- pipeline_inputs: a complete, mutually consistent set of run inputs
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
import pytest

from landdisagg.data.schemes import LUH2_LAND_CLASSES, MAGPIE_LAND_CLASSES
from landdisagg.engine.field import QuantityField
from landdisagg.engine.interfaces import SideConstraints
from landdisagg.engine.mapping import SpatialMapping
from landdisagg.engine.pipeline import DisaggregationInputs

INITIAL = ("y1995",)
TIMES = ("y1995", "y2000")


def build_field(
    data: dict[str, dict[str, list[float]]],
    times: tuple[str, ...],
    categories: tuple[str, ...] | None = None,
) -> QuantityField:
    """``{unit: {category: [value per time step]}}`` -> QuantityField."""
    units = list(data)
    categories = categories or tuple(next(iter(data.values())))
    values = np.array(
        [[data[u][c] for c in categories] for u in units], dtype=np.float64,
    )
    return QuantityField(values=values, units=units, categories=categories, times=times)


@dataclass
class ProportionalInterpolator:
    """Distributes each cluster value over its cells in proportion to the prior.

    Cluster totals are conserved exactly. A cluster whose prior for a class
    is zero spreads that class evenly over its cells. With ``unit='share'``
    each cell is normalized to sum to 1.
    """

    calls: list[dict] = field(default_factory=list)

    def __call__(
        self,
        *,
        coarse_series: QuantityField,
        initial_coarse: QuantityField,
        initial_fine: QuantityField,
        mapping: SpatialMapping,
        side_constraints: SideConstraints,
        unit: str = "Mha",
    ) -> QuantityField:
        self.calls.append({
            "coarse_series": coarse_series,
            "initial_coarse": initial_coarse,
            "initial_fine": initial_fine,
            "side_constraints": side_constraints,
            "unit": unit,
        })
        cells = initial_fine.units
        prior = initial_fine.select(
            categories=coarse_series.categories, times=initial_fine.times[:1],
        )
        prior_totals = mapping.project(
            mapping.aggregate(prior, method="sum"), fine_units=cells,
        ).values
        counts = np.array(
            [len(mapping.cells_of(mapping.cluster_of(c))) for c in cells], dtype=np.float64,
        )[:, np.newaxis, np.newaxis]
        weights = np.where(
            prior_totals > 0,
            prior.values / np.where(prior_totals > 0, prior_totals, 1.0),
            1.0 / counts,
        )
        projected = mapping.project(coarse_series, fine_units=cells).values
        out = QuantityField(
            values=projected * weights,
            units=cells,
            categories=coarse_series.categories,
            times=coarse_series.times,
        )
        return out.share() if unit == "share" else out


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mapping() -> SpatialMapping:
    return SpatialMapping({"c1": ["a", "b"], "c2": ["c"]})


@pytest.fixture
def interpolator() -> ProportionalInterpolator:
    return ProportionalInterpolator()


@pytest.fixture
def land_ini_fine() -> QuantityField:
    """LUH2-class prior at the initial time step (Mha)."""
    rows = {
        #     crop past range forestry primf secdf urban primo secdo
        "a": [2.0, 1.0, 1.0, 0.5, 1.0, 1.0, 0.1, 0.4, 0.6],
        "b": [1.0, 0.5, 0.5, 0.5, 0.0, 2.0, 0.1, 0.0, 1.0],
        "c": [3.0, 2.0, 0.0, 1.0, 2.0, 1.0, 0.2, 1.0, 0.0],
    }
    return QuantityField(
        values=np.array(list(rows.values()))[:, :, np.newaxis],
        units=list(rows),
        categories=LUH2_LAND_CLASSES,
        times=INITIAL,
    )


@pytest.fixture
def land_coarse() -> QuantityField:
    """Cluster land pools (Mha) over two time steps."""
    return build_field(
        {
            "c1": {
                "crop": [3.0, 3.5], "past": [3.0, 2.5], "forestry": [1.0, 1.2],
                "primforest": [1.0, 0.9], "secdforest": [3.0, 2.9],
                "urban": [0.2, 0.2], "other": [2.0, 2.0],
            },
            "c2": {
                "crop": [3.0, 3.2], "past": [2.0, 1.8], "forestry": [1.0, 1.0],
                "primforest": [2.0, 2.0], "secdforest": [1.0, 1.0],
                "urban": [0.2, 0.2], "other": [1.0, 1.0],
            },
        },
        TIMES,
        categories=MAGPIE_LAND_CLASSES,
    )


@pytest.fixture
def crop_subcategories_coarse() -> QuantityField:
    return build_field(
        {
            "c1": {"crop_area": [2.4, 2.8], "crop_fallow": [0.3, 0.35], "crop_treecover": [0.3, 0.35]},
            "c2": {"crop_area": [3.0, 3.2], "crop_fallow": [0.0, 0.0], "crop_treecover": [0.0, 0.0]},
        },
        TIMES,
    )


@pytest.fixture
def crop_types_coarse() -> QuantityField:
    return build_field(
        {
            "c1": {"maiz.rainfed": [1.2, 1.4], "maiz.irrigated": [0.6, 0.7], "betr.rainfed": [0.6, 0.7]},
            "c2": {"maiz.rainfed": [3.0, 3.2], "maiz.irrigated": [0.0, 0.0], "betr.rainfed": [0.0, 0.0]},
        },
        TIMES,
    )


@pytest.fixture
def forestry_coarse() -> QuantityField:
    return build_field(
        {
            "c1": {"aff.ac0": [0.5, 0.6], "ndc.ac0": [0.0, 0.0], "plant.ac0": [0.25, 0.3], "plant.ac5": [0.25, 0.3]},
            "c2": {"aff.ac0": [0.0, 0.0], "ndc.ac0": [0.0, 0.0], "plant.ac0": [1.0, 1.0], "plant.ac5": [0.0, 0.0]},
        },
        TIMES,
    )


@pytest.fixture
def side_layers_fine() -> QuantityField:
    return build_field(
        {
            "a": {"manpast": [0.5], "rangeland": [0.5], "forested": [0.6], "nonforested": [0.4]},
            "b": {"manpast": [0.8], "rangeland": [0.2], "forested": [0.3], "nonforested": [0.7]},
            "c": {"manpast": [1.0], "rangeland": [0.0], "forested": [1.0], "nonforested": [0.0]},
        },
        INITIAL,
    )


def bii_coefficients(value: float, overrides: dict[str, float] | None = None) -> QuantityField:
    """Cluster BII coefficients, ``value`` everywhere unless overridden."""
    classes = ("crop", "manpast", "rangeland", "forestry", "primforest", "secdforest", "urban", "other")
    labels = [f"{c}.{v}" for c in classes for v in ("forested", "nonforested")]
    overrides = overrides or {}
    row = {label: [overrides.get(label, value)] for label in labels}
    return build_field({"c1": row, "c2": row}, INITIAL)


@pytest.fixture
def conservation_fine() -> QuantityField:
    return build_field(
        {
            "a": {"past": [0.2], "primforest": [0.5], "secdforest": [0.1], "other": [0.1]},
            "b": {"past": [0.0], "primforest": [0.0], "secdforest": [0.5], "other": [0.0]},
            "c": {"past": [0.4], "primforest": [1.0], "secdforest": [0.0], "other": [0.2]},
        },
        INITIAL,
    )


@pytest.fixture
def peatland_fine() -> QuantityField:
    return build_field(
        {"a": {"peatland": [0.01]}, "b": {"peatland": [0.0]}, "c": {"peatland": [0.05]}},
        INITIAL,
    )


@pytest.fixture
def pipeline_inputs(
    mapping,
    land_coarse,
    land_ini_fine,
    crop_subcategories_coarse,
    crop_types_coarse,
    forestry_coarse,
    side_layers_fine,
    conservation_fine,
    peatland_fine,
) -> DisaggregationInputs:
    """Every optional input present (no-grass scheme)."""
    return DisaggregationInputs(
        mapping=mapping,
        land_coarse=land_coarse,
        land_ini_coarse=land_coarse.select(times=INITIAL),
        land_ini_fine=land_ini_fine,
        model_times=TIMES,
        crop_subcategories_coarse=crop_subcategories_coarse,
        crop_types_coarse=crop_types_coarse,
        forestry_coarse=forestry_coarse,
        side_layers_fine=side_layers_fine,
        bii_coefficients_coarse=bii_coefficients(0.5, {"primforest.forested": 1.0}),
        conservation_fine=conservation_fine,
        peatland_fine=peatland_fine,
        cell_latitudes={"a": 0.0, "b": 0.0, "c": 60.0},
    )


@pytest.fixture
def field_factory():
    """``build_field`` for tests that assemble their own fields."""
    return build_field


@pytest.fixture
def bii_coefficients_factory():
    return bii_coefficients
