"""Disaggregation pipeline — cluster land pools to grid-cell outputs.

Passes:
1. land              cluster pools -> cell pools (interpolation primitive)
2. conservation_land externally disaggregated conservation layer
3. peatland          peatland area and share of cell area
4. land_split        crop -> crop_area / fallow / treecover -> crop groups,
                     forestry -> planted forest types
5. bii               biodiversity intactness per cell

Pass 1 feeds all others; a failure there stops the run. Passes 2-5 share
no mutable state and run concurrently when ``max_workers > 1``. A fatal
error in one of them stops that pass only and none of its outputs are
written; a missing optional input skips it.

Deterministic given its inputs and the interpolation primitive.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from uuid import UUID

import numpy as np

from landdisagg.data.crosswalk import CrosswalkDirection
from landdisagg.data.schemes import (
    CROP_SUBCATEGORIES,
    FORESTRY_OUTPUT,
    GRASSLAND_POOLS,
    LUH2_TO_BII_PRIOR,
    OTHER_LAND_SPLIT,
    POTENTIAL_VEGETATION,
    LandScheme,
    crop_group_crosswalk,
    land_scheme,
)
from landdisagg.engine.aggregator import CoefficientField, WeightedAggregator
from landdisagg.engine.config import DisaggregationConfig
from landdisagg.engine.conservation import ConservationChecker
from landdisagg.engine.field import CATEGORY_AXIS, QuantityField
from landdisagg.engine.interfaces import (
    EmittedOutput,
    InMemorySink,
    InterpolationPrimitive,
    OutputSink,
    SideConstraints,
)
from landdisagg.engine.mapping import SpatialMapping
from landdisagg.engine.priors import clip_negative, share_of_cell_area
from landdisagg.engine.recombine import FieldRecombiner, Position
from landdisagg.engine.shares import ShareDisaggregator
from landdisagg.errors import ConfigurationError, DisaggregationError
from landdisagg.models.common import (
    DiagnosticKind,
    DiagnosticSeverity,
    OutputUnit,
    PassStatus,
    new_uuid7,
)
from landdisagg.models.diagnostics import Diagnostic

logger = logging.getLogger(__name__)

OTHER_LAND = "other"


def _year(label: Hashable) -> int:
    """Year of a time label such as ``"y1995"`` or ``1995``."""
    return int(str(label).lstrip("y"))


@dataclass
class DisaggregationInputs:
    """Already-parsed tensors for one run.

    Coarse fields are indexed by cluster id, fine fields by cell id.
    """

    mapping: SpatialMapping
    land_coarse: QuantityField             # land pools, all time steps
    land_ini_coarse: QuantityField         # land pools, initial time step
    land_ini_fine: QuantityField           # LUH2-class prior, initial time step
    model_times: Sequence[Hashable] | None = None
    grassland_coarse: QuantityField | None = None           # pastr / range
    crop_subcategories_coarse: QuantityField | None = None  # crop_area / fallow / treecover
    crop_types_coarse: QuantityField | None = None          # "<crop>.<water>"
    forestry_coarse: QuantityField | None = None            # aff / ndc / plant (.age class)
    side_layers_fine: QuantityField | None = None           # manpast, rangeland, forested, ...
    bii_coefficients_coarse: QuantityField | None = None    # "<land>.<vegetation>"
    conservation_fine: QuantityField | None = None
    peatland_fine: QuantityField | None = None
    cell_latitudes: Mapping[Hashable, float] | None = None
    peatland_start: int | None = None                       # first year in peatland outputs
    side_constraints: SideConstraints = field(default_factory=SideConstraints)


@dataclass(frozen=True)
class PassOutcome:
    """Result of one pass."""

    name: str
    status: PassStatus
    outputs: tuple[str, ...] = ()
    diagnostics: tuple[Diagnostic, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class PipelineResult:
    """Result of an entire run. Fields themselves live in the sink."""

    run_id: UUID
    outcomes: tuple[PassOutcome, ...]

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return [d for o in self.outcomes for d in o.diagnostics]

    @property
    def failed(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == PassStatus.FAILED]

    @property
    def skipped(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == PassStatus.SKIPPED]

    def outcome(self, name: str) -> PassOutcome:
        for o in self.outcomes:
            if o.name == name:
                return o
        raise KeyError(f"No pass named '{name}'.")


@dataclass
class _PassContext:
    """Pending outputs and diagnostics of a pass still in progress."""

    name: str
    outputs: list[EmittedOutput] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)

    def emit(self, name: str, value: QuantityField, unit: OutputUnit) -> None:
        self.outputs.append(EmittedOutput(name=name, field=value, unit=unit))

    def note(self, diagnostic: Diagnostic | None) -> None:
        if diagnostic is not None:
            self.diagnostics.append(diagnostic.model_copy(update={"pass_name": self.name}))

    def outcome(self, status: PassStatus, error: str | None = None) -> PassOutcome:
        written = tuple(o.name for o in self.outputs) if status == PassStatus.COMPLETED else ()
        return PassOutcome(
            name=self.name,
            status=status,
            outputs=written,
            diagnostics=tuple(self.diagnostics),
            error=error,
        )


_PassFn = Callable[[DisaggregationInputs, QuantityField, _PassContext], None]


class DisaggregationPipeline:
    """Runs every pass of one disaggregation."""

    def __init__(
        self,
        interpolator: InterpolationPrimitive,
        *,
        config: DisaggregationConfig | None = None,
        sink: OutputSink | None = None,
    ) -> None:
        self._interpolate = interpolator
        self._config = config or DisaggregationConfig()
        self._sink: OutputSink = sink if sink is not None else InMemorySink()
        self._scheme = land_scheme(self._config.grassland_scheme)
        self._shares = ShareDisaggregator(self._config.share_epsilon)
        self._checker = ConservationChecker(
            self._config.conservation_tolerance,
            abort=self._config.abort_on_conservation_violation,
        )
        self._recombiner = FieldRecombiner()
        self._aggregator = WeightedAggregator()

    @property
    def sink(self) -> OutputSink:
        return self._sink

    @property
    def scheme(self) -> LandScheme:
        return self._scheme

    def run(self, inputs: DisaggregationInputs) -> PipelineResult:
        """Execute all passes.

        Raises:
            DisaggregationError, ValueError, KeyError: If the land pass
                fails; nothing is written in that case.
        """
        run_id = new_uuid7()
        logger.info("Starting disaggregation run %s (%s)", run_id, self._scheme.scheme)

        land_ctx = _PassContext("land")
        land_fine = self._land_pass(inputs, land_ctx)
        self._commit(land_ctx)
        outcomes = [land_ctx.outcome(PassStatus.COMPLETED)]

        passes: list[tuple[str, _PassFn]] = [
            ("conservation_land", self._conservation_pass),
            ("peatland", self._peatland_pass),
            ("land_split", self._land_split_pass),
            ("bii", self._bii_pass),
        ]
        if self._config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self._config.max_workers) as executor:
                future_to_name = {
                    executor.submit(self._run_pass, name, fn, inputs, land_fine): name
                    for name, fn in passes
                }
                finished = {
                    future_to_name[future]: future.result()
                    for future in as_completed(future_to_name)
                }
            outcomes.extend(finished[name] for name, _ in passes)
        else:
            outcomes.extend(
                self._run_pass(name, fn, inputs, land_fine) for name, fn in passes
            )

        logger.info("Finished disaggregation")
        return PipelineResult(run_id=run_id, outcomes=tuple(outcomes))

    # -----------------------------------------------------------------
    # Pass bookkeeping
    # -----------------------------------------------------------------

    def _run_pass(
        self,
        name: str,
        fn: _PassFn,
        inputs: DisaggregationInputs,
        land_fine: QuantityField,
    ) -> PassOutcome:
        ctx = _PassContext(name)
        try:
            fn(inputs, land_fine, ctx)
        except ConfigurationError as exc:
            logger.warning("Skipping %s: %s", name, exc)
            ctx.note(Diagnostic(
                kind=DiagnosticKind.PASS_SKIPPED,
                severity=DiagnosticSeverity.INFO,
                message=str(exc),
                detail=exc.context,
            ))
            return ctx.outcome(PassStatus.SKIPPED, error=str(exc))
        except (DisaggregationError, ValueError, KeyError) as exc:
            logger.error("Pass %s failed: %s", name, exc)
            ctx.note(Diagnostic(
                kind=DiagnosticKind.PASS_FAILED,
                severity=DiagnosticSeverity.ERROR,
                message=str(exc),
                detail={"error_type": type(exc).__name__},
            ))
            return ctx.outcome(PassStatus.FAILED, error=str(exc))

        self._commit(ctx)
        return ctx.outcome(PassStatus.COMPLETED)

    def _commit(self, ctx: _PassContext) -> None:
        for out in ctx.outputs:
            logger.info("Write outputs %s", out.name)
            self._sink.write(out.name, out.field, out.unit)

    # -----------------------------------------------------------------
    # Shared steps
    # -----------------------------------------------------------------

    def _land_pools(
        self,
        inputs: DisaggregationInputs,
    ) -> tuple[QuantityField, QuantityField]:
        """Coarse land pools in the scheme's classes (all steps, initial step).

        In the grass-split scheme the single pasture pool is replaced by
        the grassland model's pasture and rangeland pools.
        """
        land, land_ini = inputs.land_coarse, inputs.land_ini_coarse
        if not self._scheme.grassland_split:
            return land, land_ini

        if inputs.grassland_coarse is None:
            raise ConfigurationError(
                "The grass-split scheme needs grassland_coarse "
                "(pasture and rangeland pools).",
                context={"missing": ["grassland_coarse"]},
            )
        grass = GRASSLAND_POOLS.apply(inputs.grassland_coarse)
        return (
            self._recombiner.replace(land, "past", grass),
            self._recombiner.replace(land_ini, "past", grass),
        )

    def _side_constraints(
        self,
        inputs: DisaggregationInputs,
        conservation: QuantityField | None = None,
    ) -> SideConstraints:
        return replace(
            inputs.side_constraints,
            conservation_land=conservation if conservation is not None else inputs.conservation_fine,
            peatland=inputs.peatland_fine,
        )

    def _split(
        self,
        parent_fine: QuantityField,
        children_coarse: QuantityField,
        mapping: SpatialMapping,
        ctx: _PassContext,
    ) -> QuantityField:
        """Share-disaggregate one category and check conservation."""
        children_fine = self._shares.disaggregate(parent_fine, children_coarse, mapping)
        result = self._checker.check(
            children_fine, parent_fine, label=parent_fine.categories[0],
        )
        ctx.note(result.diagnostic)
        return children_fine

    def _replace(
        self,
        tensor: QuantityField,
        parent: str,
        children: QuantityField,
        position: Position,
    ) -> QuantityField:
        return self._recombiner.replace(tensor, parent, children, position=position)

    # -----------------------------------------------------------------
    # Passes
    # -----------------------------------------------------------------

    def _land_pass(self, inputs: DisaggregationInputs, ctx: _PassContext) -> QuantityField:
        logger.info("Disaggregating MAgPIE land pools")
        land_coarse, land_ini_coarse = self._land_pools(inputs)

        prior = self._scheme.luh2.apply(inputs.land_ini_fine, CrosswalkDirection.BACKWARD)
        prior = prior.select(categories=land_coarse.categories)
        prior, diagnostic = clip_negative(prior, source="land_ini_fine")
        ctx.note(diagnostic)

        land_fine = self._interpolate(
            coarse_series=land_coarse,
            initial_coarse=land_ini_coarse.select(categories=land_coarse.categories),
            initial_fine=prior,
            mapping=inputs.mapping,
            side_constraints=self._side_constraints(inputs),
            unit="Mha",
        )
        ctx.emit("cell.land", land_fine, OutputUnit.MHA_PER_CELL)
        ctx.emit("cell.land_share", land_fine.share(), OutputUnit.LAND_FRACTION)
        return land_fine

    def _conservation_pass(
        self,
        inputs: DisaggregationInputs,
        land_fine: QuantityField,
        ctx: _PassContext,
    ) -> None:
        if inputs.conservation_fine is None:
            raise ConfigurationError(
                "No conservation baseline supplied; conservation land is not disaggregated.",
                context={"missing": ["conservation_fine"]},
            )
        logger.info("Disaggregating conservation land")
        ctx.emit("cell.conservation_land", inputs.conservation_fine, OutputUnit.MHA_PER_CELL)

    def _peatland_pass(
        self,
        inputs: DisaggregationInputs,
        land_fine: QuantityField,
        ctx: _PassContext,
    ) -> None:
        missing = [
            name for name, value in (
                ("peatland_fine", inputs.peatland_fine),
                ("cell_latitudes", inputs.cell_latitudes),
            ) if value is None
        ]
        if missing:
            raise ConfigurationError(
                f"Peatland outputs need {missing}.", context={"missing": missing},
            )
        logger.info("Disaggregating peatland")
        peat = inputs.peatland_fine
        if inputs.peatland_start is not None:
            kept = [t for t in peat.times if _year(t) >= inputs.peatland_start]
            if not kept:
                msg = f"No peatland time steps from {inputs.peatland_start} on."
                raise ValueError(msg)
            peat = peat.select(times=kept)
        ctx.emit("cell.peatland", peat, OutputUnit.MHA_PER_CELL)
        ctx.emit(
            "cell.peatland_share",
            share_of_cell_area(peat, inputs.cell_latitudes),
            OutputUnit.AREA_FRACTION,
        )

    def _land_split_pass(
        self,
        inputs: DisaggregationInputs,
        land_fine: QuantityField,
        ctx: _PassContext,
    ) -> None:
        missing = [
            name for name, value in (
                ("crop_subcategories_coarse", inputs.crop_subcategories_coarse),
                ("crop_types_coarse", inputs.crop_types_coarse),
                ("forestry_coarse", inputs.forestry_coarse),
            ) if value is None
        ]
        if missing:
            raise ConfigurationError(
                f"Land split needs {missing}.", context={"missing": missing},
            )

        mapping = inputs.mapping
        times = tuple(inputs.model_times) if inputs.model_times is not None else land_fine.times
        land_split = land_fine.select(times=times)

        logger.info("Disaggregating cropland")
        crop_parts = self._split(
            land_split.select(categories="crop"),
            inputs.crop_subcategories_coarse.select(categories=CROP_SUBCATEGORIES),
            mapping,
            ctx,
        )
        land_split = self._replace(land_split, "crop", crop_parts, "start")

        logger.info("Disaggregating MAgPIE crop types")
        crop_types = self._split(
            land_split.select(categories="crop_area"),
            inputs.crop_types_coarse,
            mapping,
            ctx,
        )
        ctx.emit(
            "cell.croparea_share",
            crop_types.divide_by(land_split.sum_categories()),
            OutputUnit.CROPAREA_FRACTION,
        )
        crop_groups = crop_group_crosswalk(crop_types.categories).apply(crop_types)
        land_split = self._replace(land_split, "crop_area", crop_groups, "start")

        logger.info("Disaggregating forestry")
        forestry = self._split(
            land_split.select(categories="forestry"),
            inputs.forestry_coarse.collapse(level=0),
            mapping,
            ctx,
        )
        land_split = self._replace(
            land_split, "forestry", FORESTRY_OUTPUT.apply(forestry), "end",
        )

        ctx.emit("cell.land_split", land_split, OutputUnit.MHA_PER_CELL)
        ctx.emit("cell.land_split_share", land_split.share(), OutputUnit.LAND_FRACTION)

    def _bii_pass(
        self,
        inputs: DisaggregationInputs,
        land_fine: QuantityField,
        ctx: _PassContext,
    ) -> None:
        missing = [
            name for name, value in (
                ("side_layers_fine", inputs.side_layers_fine),
                ("bii_coefficients_coarse", inputs.bii_coefficients_coarse),
            ) if value is None
        ]
        if missing:
            raise ConfigurationError(
                f"BII disaggregation needs {missing}.", context={"missing": missing},
            )

        logger.info("Disaggregating BII values")
        mapping = inputs.mapping
        side_fine = inputs.side_layers_fine

        # Side layers at cluster level, weighted by each cell's land area
        land_area = inputs.land_ini_fine.sum_categories("land_area")
        land_area = land_area.with_values(land_area.values + self._config.share_epsilon)
        side_coarse = mapping.aggregate(side_fine, method="weighted_mean", weight=land_area)

        bii_classes = self._scheme.bii
        land_coarse, land_ini_coarse = self._land_pools(inputs)
        land_coarse = bii_classes.split(land_coarse, proportions=side_coarse)
        land_ini_coarse = bii_classes.split(land_ini_coarse, proportions=side_coarse)
        conservation = None
        if inputs.conservation_fine is not None:
            conservation = bii_classes.split(inputs.conservation_fine, proportions=side_fine)

        prior, diagnostic = clip_negative(
            LUH2_TO_BII_PRIOR.apply(inputs.land_ini_fine), source="land_ini_fine",
        )
        ctx.note(diagnostic)
        land_bii = self._interpolate(
            coarse_series=land_coarse,
            initial_coarse=land_ini_coarse.select(categories=land_coarse.categories),
            initial_fine=prior.select(categories=land_coarse.categories),
            mapping=mapping,
            side_constraints=self._side_constraints(inputs, conservation),
            unit="share",
        )

        coefficients = self._bii_coefficients(
            inputs.bii_coefficients_coarse, mapping, land_bii.units,
        )
        land_bii = self._split_other_land(land_bii, inputs.land_ini_fine)
        land_bii = land_bii.outer(side_fine.select(categories=POTENTIAL_VEGETATION))

        bii_fine = self._aggregator.aggregate(land_bii, coefficients, label="bii")
        ctx.emit("cell.bii", bii_fine, OutputUnit.UNITLESS)

    # -----------------------------------------------------------------
    # BII helpers
    # -----------------------------------------------------------------

    def _bii_coefficients(
        self,
        coarse: QuantityField,
        mapping: SpatialMapping,
        fine_units: Sequence[Hashable],
    ) -> CoefficientField:
        """Cluster BII coefficients on cells, with other land split.

        ``other.<veg>`` becomes ``primother.<veg>`` (fully intact, 1.0) and
        ``secdother.<veg>`` (the cluster coefficient).
        """
        other = [c for c in coarse.categories if c.split(".")[0] == OTHER_LAND]
        expanded = coarse
        if other:
            secondary = coarse.select(categories=other).rename({c: f"secd{c}" for c in other})
            primary = secondary.with_values(
                np.ones(secondary.shape), categories=[f"prim{c}" for c in other],
            )
            expanded = QuantityField.concat(coarse.drop(other), primary, secondary)
        return CoefficientField.from_field(mapping.project(expanded, fine_units=fine_units))

    def _split_other_land(
        self,
        land: QuantityField,
        prior_luh2: QuantityField,
    ) -> QuantityField:
        """Split other land into primary and secondary by the prior's ratio.

        Cells without other land in the prior count as secondary.
        """
        prim = prior_luh2.select(categories="primother").values
        secd = prior_luh2.select(categories="secdother").values
        total = prim + secd
        prim_share = np.divide(prim, total, out=np.zeros_like(prim), where=total > 0)
        proportions = QuantityField(
            values=np.concatenate([prim_share, 1.0 - prim_share], axis=CATEGORY_AXIS),
            units=prior_luh2.units,
            categories=("primother", "secdother"),
            times=prior_luh2.times,
        )
        return OTHER_LAND_SPLIT.with_identity(land.categories).split(
            land, proportions=proportions,
        )
