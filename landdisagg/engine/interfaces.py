"""Contracts for the collaborators the pipeline consumes but does not own.

- InterpolationPrimitive: turns a cluster time series plus a cell-level
  prior into a conserved cell-level field (weighted cropland-availability
  interpolation). Supplied by the caller.
- OutputSink: persistence layer receiving each finished field keyed by
  name, with its physical unit.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from typing import Literal, Protocol

from landdisagg.engine.field import QuantityField
from landdisagg.engine.mapping import SpatialMapping
from landdisagg.models.common import OutputUnit

InterpolationUnit = Literal["Mha", "share"]


@dataclass(frozen=True)
class SideConstraints:
    """Optional cell-level layers forwarded to the interpolation primitive.

    ``urban_land=None`` means static urban land.
    """

    avl_cropland: QuantityField | None = None
    urban_land: QuantityField | None = None
    conservation_land: QuantityField | None = None
    peatland: QuantityField | None = None
    marginal_land: str | None = None
    snv_policy_share: Mapping[Hashable, float] | None = None
    snv_policy_fader: Mapping[Hashable, float] | None = None


class InterpolationPrimitive(Protocol):
    """Cluster series + cell prior -> cell field conserving cluster totals."""

    def __call__(
        self,
        *,
        coarse_series: QuantityField,
        initial_coarse: QuantityField,
        initial_fine: QuantityField,
        mapping: SpatialMapping,
        side_constraints: SideConstraints,
        unit: InterpolationUnit = "Mha",
    ) -> QuantityField: ...


class OutputSink(Protocol):
    """Receives finished fields."""

    def write(self, name: str, field: QuantityField, unit: OutputUnit) -> None: ...


@dataclass(frozen=True)
class EmittedOutput:
    """A finished field with its unit annotation."""

    name: str
    field: QuantityField
    unit: OutputUnit


class InMemorySink:
    """OutputSink keeping every written field in a dict (thread-safe)."""

    def __init__(self) -> None:
        self._outputs: dict[str, EmittedOutput] = {}
        self._lock = threading.Lock()

    def write(self, name: str, field: QuantityField, unit: OutputUnit) -> None:
        with self._lock:
            self._outputs[name] = EmittedOutput(name=name, field=field, unit=unit)

    @property
    def outputs(self) -> dict[str, EmittedOutput]:
        with self._lock:
            return dict(self._outputs)

    def __getitem__(self, name: str) -> EmittedOutput:
        return self.outputs[name]

    def __contains__(self, name: object) -> bool:
        return name in self.outputs
