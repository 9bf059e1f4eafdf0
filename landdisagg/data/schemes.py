"""Named crosswalk tables between the land-use model, LUH2 and BII classes.

The grassland variant is decided in exactly one place, ``land_scheme``.
Downstream code receives a LandScheme and calls ``split`` on its tables
with side-layer proportions; in the grass-split scheme those tables have
no one-to-many rows and the proportions go unused.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from landdisagg.data.crosswalk import Crosswalk
from landdisagg.errors import UnknownCategory
from landdisagg.models.common import GrasslandScheme

# ---------------------------------------------------------------------------
# Class sets
# ---------------------------------------------------------------------------

MAGPIE_LAND_CLASSES: tuple[str, ...] = (
    "crop", "past", "forestry", "primforest", "secdforest", "urban", "other",
)

LUH2_LAND_CLASSES: tuple[str, ...] = (
    "crop", "past", "range", "forestry", "primforest", "secdforest",
    "urban", "primother", "secdother",
)

CROP_SUBCATEGORIES: tuple[str, ...] = ("crop_area", "crop_fallow", "crop_treecover")

FORESTRY_TYPES: tuple[str, ...] = ("aff", "ndc", "plant")

POTENTIAL_VEGETATION: tuple[str, ...] = ("forested", "nonforested")

GRASSLAND_FRACTIONS: tuple[str, ...] = ("manpast", "rangeland")

# Second-generation bioenergy crops; every other crop type is food/feed.
BIOENERGY_CROPS: frozenset[str] = frozenset({"betr", "begr"})

_WATER_SUFFIX: dict[str, str] = {"rainfed": "rf", "irrigated": "ir"}

# Classes common to both grassland variants (MAgPIE -> LUH2)
_LUH2_COMMON_ROWS: list[tuple[str, str]] = [
    ("crop", "crop"),
    ("urban", "urban"),
    ("primforest", "primforest"),
    ("secdforest", "secdforest"),
    ("forestry", "forestry"),
    ("other", "primother"),
    ("other", "secdother"),
]

_BII_IDENTITY: tuple[str, ...] = (
    "crop", "forestry", "primforest", "secdforest", "urban", "other",
)

# ---------------------------------------------------------------------------
# Fixed tables
# ---------------------------------------------------------------------------

FORESTRY_OUTPUT = Crosswalk(
    [
        ("aff", "PlantedForest_Afforestation"),
        ("ndc", "PlantedForest_NPiNDC"),
        ("plant", "PlantedForest_Timber"),
    ],
    internal="MAgPIE",
    external="output",
)

# Grassland model pools -> land pools (grass-split scheme)
GRASSLAND_POOLS = Crosswalk(
    [("pastr", "past"), ("range", "range")],
    internal="grassland",
    external="MAgPIE",
)

# LUH2 prior -> BII land classes
LUH2_TO_BII_PRIOR = Crosswalk(
    [
        ("crop", "crop"),
        ("past", "manpast"),
        ("range", "rangeland"),
        ("forestry", "forestry"),
        ("primforest", "primforest"),
        ("secdforest", "secdforest"),
        ("urban", "urban"),
        ("primother", "other"),
        ("secdother", "other"),
    ],
    internal="LUH2",
    external="BII",
)

# Other land -> primary / secondary other land
OTHER_LAND_SPLIT = Crosswalk(
    [("other", "primother"), ("other", "secdother")],
    internal="land",
    external="land_primsecd",
)


@dataclass(frozen=True)
class LandScheme:
    """Crosswalk tables for one grassland variant."""

    scheme: GrasslandScheme
    luh2: Crosswalk        # MAgPIE (internal) <-> LUH2 (external)
    bii: Crosswalk         # land pools (internal) -> BII classes (external)
    grassland_split: bool  # coarse pools carry separate pasture/rangeland


def land_scheme(scheme: GrasslandScheme | str) -> LandScheme:
    """Crosswalk tables for the configured grassland variant.

    GRASS_SPLIT: pasture and rangeland are separate pools at the source;
    ``past <-> past``, ``range <-> range``, renamed to manpast/rangeland
    for BII.

    NO_GRASS: a single pasture pool; LUH2 past and range merge into it,
    and for BII it is split into manpast/rangeland by side-layer
    fractions.
    """
    scheme = GrasslandScheme(scheme)

    if scheme == GrasslandScheme.GRASS_SPLIT:
        grass_rows = [("past", "past"), ("range", "range")]
        bii_rows = [("past", "manpast"), ("range", "rangeland")]
    else:
        grass_rows = [("past", "past"), ("past", "range")]
        bii_rows = [("past", "manpast"), ("past", "rangeland")]

    luh2 = Crosswalk(
        _LUH2_COMMON_ROWS[:1] + grass_rows + _LUH2_COMMON_ROWS[1:],
        internal="MAgPIE",
        external="LUH2",
    )
    bii = Crosswalk(bii_rows, internal="MAgPIE", external="BII").with_identity(_BII_IDENTITY)

    return LandScheme(
        scheme=scheme,
        luh2=luh2,
        bii=bii,
        grassland_split=scheme == GrasslandScheme.GRASS_SPLIT,
    )


def crop_group(label: str, sep: str = ".") -> str:
    """Crop group of a ``"<crop>.<water>"`` label.

    'maiz.rainfed' -> 'crop_kfo_rf', 'betr.irrigated' -> 'crop_kbe_ir'.

    Raises:
        UnknownCategory: If the label has no recognised water component.
    """
    crop, _, water = label.partition(sep)
    if water not in _WATER_SUFFIX:
        raise UnknownCategory(
            f"Crop type '{label}' has no water component "
            f"({sorted(_WATER_SUFFIX)}).",
            context={"label": label},
        )
    kind = "kbe" if crop in BIOENERGY_CROPS else "kfo"
    return f"crop_{kind}_{_WATER_SUFFIX[water]}"


def crop_group_crosswalk(labels: Iterable[str]) -> Crosswalk:
    """Merge table from crop type × water labels to the four crop groups."""
    return Crosswalk(
        ((label, crop_group(label)) for label in labels),
        internal="crop_type",
        external="crop_group",
    )
