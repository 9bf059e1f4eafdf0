"""Prior preparation and grid-cell area helpers.

- clip_negative: negative values in a high-resolution prior are set to 0
  and reported as a diagnostic.
- cell_area_mha: area of a regular lat/lon grid cell in Mha.
- share_of_cell_area: a Mha field as a fraction of its cell's area.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable, Mapping

import numpy as np

from landdisagg.engine.field import QuantityField
from landdisagg.models.common import DiagnosticKind, DiagnosticSeverity
from landdisagg.models.diagnostics import Diagnostic

logger = logging.getLogger(__name__)

# Length of one degree of latitude (km)
KM_PER_DEGREE = 111.263

# 1 Mha = 1e10 m²
MHA_PER_M2 = 1e-10

DEFAULT_RESOLUTION = 0.5


def clip_negative(
    field: QuantityField,
    *,
    source: str | None = None,
) -> tuple[QuantityField, Diagnostic | None]:
    """Set negative values to 0.

    Returns:
        (clipped field, diagnostic). The diagnostic is None when nothing
        was negative, in which case the input field is returned as is.
    """
    negative = field.values < 0
    count = int(negative.sum())
    if count == 0:
        return field, None

    where = f" Check {source}." if source else ""
    message = (
        "Negative values in initial high resolution dataset detected "
        f"and set to 0.{where}"
    )
    logger.warning("%s (%d values)", message, count)
    diagnostic = Diagnostic(
        kind=DiagnosticKind.NEGATIVE_VALUE_CORRECTED,
        severity=DiagnosticSeverity.WARNING,
        message=message,
        detail={"count": count, "source": source},
    )
    return field.with_values(np.where(negative, 0.0, field.values)), diagnostic


def cell_area_mha(
    latitude: float | np.ndarray,
    resolution: float = DEFAULT_RESOLUTION,
) -> np.ndarray:
    """Area of a ``resolution``° grid cell centred at ``latitude`` (Mha)."""
    side_m = KM_PER_DEGREE * 1000.0 * resolution
    return side_m * side_m * np.cos(np.deg2rad(np.asarray(latitude, dtype=np.float64))) * MHA_PER_M2


def share_of_cell_area(
    field: QuantityField,
    latitudes: Mapping[Hashable, float],
    resolution: float = DEFAULT_RESOLUTION,
) -> QuantityField:
    """Divide a Mha-per-cell field by each cell's area.

    Non-finite ratios (zero-area cells, NaN input) are set to 0.

    Raises:
        KeyError: If a cell has no latitude.
    """
    try:
        lat = np.array([latitudes[u] for u in field.units], dtype=np.float64)
    except KeyError as exc:
        raise KeyError(f"No latitude for cell {exc.args[0]!r}.") from None

    area = cell_area_mha(lat, resolution)[:, np.newaxis, np.newaxis]
    with np.errstate(divide="ignore", invalid="ignore"):
        out = field.values / area
    out[~np.isfinite(out)] = 0.0
    return field.with_values(out)
