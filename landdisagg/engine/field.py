"""QuantityField — a labelled (unit × category × time) array.

Every tensor the engine touches is a QuantityField: cluster-level land
pools, grid-cell priors, side layers, coefficient grids. Axes are looked
up by label, never by position, so two fields with the same labels in a
different order combine correctly.

Values are float64, copied on construction and frozen.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping, Sequence

import numpy as np

from landdisagg.errors import DuplicateCategoryError, UnknownCategory

UNIT_AXIS = 0
CATEGORY_AXIS = 1
TIME_AXIS = 2


def _as_labels(labels: Hashable | Iterable[Hashable]) -> tuple:
    """Accept a single label or an iterable of labels."""
    if isinstance(labels, str | int):
        return (labels,)
    return tuple(labels)


def _duplicates(labels: Sequence[Hashable]) -> list:
    seen: set = set()
    dupes: list = []
    for label in labels:
        if label in seen and label not in dupes:
            dupes.append(label)
        seen.add(label)
    return dupes


class QuantityField:
    """Read-only labelled array over (unit, category, time).

    Units are spatial ids (cluster or grid cell), categories are land
    classes or sub-types, times are time-step labels.
    """

    def __init__(
        self,
        *,
        values: np.ndarray | Sequence,
        units: Sequence[Hashable],
        categories: Sequence[str],
        times: Sequence[Hashable],
        name: str | None = None,
    ) -> None:
        arr = np.array(values, dtype=np.float64)
        units = tuple(units)
        categories = tuple(categories)
        times = tuple(times)

        if arr.ndim != 3:
            msg = f"values must be 3-D (unit, category, time), got {arr.ndim}-D."
            raise ValueError(msg)

        expected = (len(units), len(categories), len(times))
        if arr.shape != expected:
            msg = f"shape mismatch: values are {arr.shape} but labels describe {expected}."
            raise ValueError(msg)

        dup_categories = _duplicates(categories)
        if dup_categories:
            raise DuplicateCategoryError(
                f"duplicate category labels: {dup_categories}",
                context={"labels": dup_categories},
            )
        for axis_name, labels in (("unit", units), ("time", times)):
            dupes = _duplicates(labels)
            if dupes:
                msg = f"duplicate {axis_name} labels: {dupes}"
                raise ValueError(msg)

        arr.flags.writeable = False
        self._values = arr
        self._units = units
        self._categories = categories
        self._times = times
        self._name = name
        self._unit_index = {u: i for i, u in enumerate(units)}
        self._category_index = {c: i for i, c in enumerate(categories)}
        self._time_index = {t: i for i, t in enumerate(times)}

    # -----------------------------------------------------------------
    # Construction helpers
    # -----------------------------------------------------------------

    @classmethod
    def from_records(
        cls,
        records: Mapping[tuple[Hashable, str, Hashable], float],
        *,
        units: Sequence[Hashable] | None = None,
        categories: Sequence[str] | None = None,
        times: Sequence[Hashable] | None = None,
        fill: float = 0.0,
        name: str | None = None,
    ) -> QuantityField:
        """Build a field from ``{(unit, category, time): value}``.

        Label order follows first appearance unless given explicitly.
        Missing combinations are set to ``fill``.
        """
        keys = list(records)
        units = tuple(units) if units is not None else tuple(dict.fromkeys(k[0] for k in keys))
        categories = (
            tuple(categories) if categories is not None
            else tuple(dict.fromkeys(k[1] for k in keys))
        )
        times = tuple(times) if times is not None else tuple(dict.fromkeys(k[2] for k in keys))

        u_idx = {u: i for i, u in enumerate(units)}
        c_idx = {c: i for i, c in enumerate(categories)}
        t_idx = {t: i for i, t in enumerate(times)}

        values = np.full((len(units), len(categories), len(times)), fill, dtype=np.float64)
        for (unit, category, time), value in records.items():
            if category not in c_idx:
                raise UnknownCategory(f"Unknown category '{category}' in records.")
            values[u_idx[unit], c_idx[category], t_idx[time]] = value
        return cls(values=values, units=units, categories=categories, times=times, name=name)

    def with_values(
        self,
        values: np.ndarray,
        *,
        categories: Sequence[str] | None = None,
        name: str | None = None,
    ) -> QuantityField:
        """New field with the same unit/time labels and new values."""
        return QuantityField(
            values=values,
            units=self._units,
            categories=self._categories if categories is None else categories,
            times=self._times,
            name=self._name if name is None else name,
        )

    # -----------------------------------------------------------------
    # Labels and values
    # -----------------------------------------------------------------

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def units(self) -> tuple:
        return self._units

    @property
    def categories(self) -> tuple[str, ...]:
        return self._categories

    @property
    def times(self) -> tuple:
        return self._times

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def shape(self) -> tuple[int, int, int]:
        return self._values.shape  # type: ignore[return-value]

    def __contains__(self, category: object) -> bool:
        return category in self._category_index

    def __repr__(self) -> str:
        n_u, n_c, n_t = self.shape
        label = f" '{self._name}'" if self._name else ""
        return (
            f"<QuantityField{label} units={n_u} times={n_t} "
            f"categories={list(self._categories)}>"
        )

    def unit_indices(self, units: Iterable[Hashable]) -> np.ndarray:
        """Positions of unit labels (repeats allowed).

        Raises:
            KeyError: If a unit label is not on the unit axis.
        """
        try:
            return np.array([self._unit_index[u] for u in units], dtype=np.intp)
        except KeyError as exc:
            raise KeyError(f"Unknown spatial unit: {exc.args[0]!r}") from None

    def category_indices(self, categories: Iterable[str]) -> np.ndarray:
        """Positions of category labels.

        Raises:
            UnknownCategory: If a label is not on the category axis.
        """
        categories = _as_labels(categories)
        missing = [c for c in categories if c not in self._category_index]
        if missing:
            raise UnknownCategory(
                f"Unknown categories {missing}; available: {list(self._categories)}",
                context={"missing": missing, "field": self._name},
            )
        return np.array([self._category_index[c] for c in categories], dtype=np.intp)

    def time_indices(self, times: Iterable[Hashable]) -> np.ndarray:
        """Positions of time labels.

        Raises:
            KeyError: If a time label is not on the time axis.
        """
        times = _as_labels(times)
        try:
            return np.array([self._time_index[t] for t in times], dtype=np.intp)
        except KeyError as exc:
            raise KeyError(
                f"Unknown time step: {exc.args[0]!r}; available: {list(self._times)}"
            ) from None

    def value(self, unit: Hashable, category: str, time: Hashable) -> float:
        """Single value by labels."""
        u = self.unit_indices([unit])[0]
        c = self.category_indices([category])[0]
        t = self.time_indices([time])[0]
        return float(self._values[u, c, t])

    def to_records(self) -> dict[tuple[Hashable, str, Hashable], float]:
        """Flatten to ``{(unit, category, time): value}``."""
        return {
            (u, c, t): float(self._values[i, j, k])
            for i, u in enumerate(self._units)
            for j, c in enumerate(self._categories)
            for k, t in enumerate(self._times)
        }

    def total(self) -> float:
        """Sum over all units, categories and time steps."""
        return float(self._values.sum())

    def equals(self, other: QuantityField) -> bool:
        """Same labels in the same order and identical values (NaN == NaN)."""
        return (
            self._units == other.units
            and self._categories == other.categories
            and self._times == other.times
            and bool(np.array_equal(self._values, other.values, equal_nan=True))
        )

    # -----------------------------------------------------------------
    # Named-axis selection
    # -----------------------------------------------------------------

    def select(
        self,
        *,
        units: Hashable | Iterable[Hashable] | None = None,
        categories: str | Iterable[str] | None = None,
        times: Hashable | Iterable[Hashable] | None = None,
    ) -> QuantityField:
        """Subset (and reorder) by labels on any axis."""
        new_units = self._units if units is None else _as_labels(units)
        new_categories = self._categories if categories is None else _as_labels(categories)
        new_times = self._times if times is None else _as_labels(times)

        values = self._values
        if units is not None:
            values = values[self.unit_indices(new_units), :, :]
        if categories is not None:
            values = values[:, self.category_indices(new_categories), :]
        if times is not None:
            values = values[:, :, self.time_indices(new_times)]

        return QuantityField(
            values=values,
            units=new_units,
            categories=new_categories,
            times=new_times,
            name=self._name,
        )

    def align(
        self,
        *,
        units: Iterable[Hashable] | None = None,
        times: Iterable[Hashable] | None = None,
    ) -> QuantityField:
        """Reorder units/times to match another field's labels."""
        return self.select(units=units, times=times)

    def drop(self, categories: str | Iterable[str]) -> QuantityField:
        """Remove categories from the category axis."""
        dropped = _as_labels(categories)
        self.category_indices(dropped)
        keep = [c for c in self._categories if c not in dropped]
        return self.select(categories=keep)

    def values_for(
        self,
        *,
        units: Iterable[Hashable],
        categories: Iterable[str] | None = None,
        times: Iterable[Hashable],
    ) -> np.ndarray:
        """Array aligned to the given labels.

        A field with a single time step broadcasts over any requested
        time axis (time-invariant layers such as side-layer fractions).
        Unit labels may repeat.
        """
        values = self._values[self.unit_indices(units), :, :]
        if categories is not None:
            values = values[:, self.category_indices(categories), :]
        times = tuple(times)
        if len(self._times) == 1 and times != self._times:
            return np.repeat(values, len(times), axis=TIME_AXIS)
        return values[:, :, self.time_indices(times)]

    # -----------------------------------------------------------------
    # Category-axis algebra
    # -----------------------------------------------------------------

    def rename(self, mapping: Mapping[str, str]) -> QuantityField:
        """Rename categories; labels not in ``mapping`` are kept."""
        self.category_indices(list(mapping))
        new = [mapping.get(c, c) for c in self._categories]
        return self.with_values(self._values, categories=new)

    def sum_categories(self, label: str = "total") -> QuantityField:
        """Collapse the category axis to one category holding the sum."""
        return self.with_values(
            self._values.sum(axis=CATEGORY_AXIS, keepdims=True),
            categories=(label,),
        )

    def collapse(self, level: int = 0, sep: str = ".") -> QuantityField:
        """Sum compound labels (``"aff.ac5"``) by one of their components.

        ``level=0`` on ``["aff.ac0", "aff.ac5", "plant.ac0"]`` gives
        ``["aff", "plant"]``. Plain labels collapse to themselves.
        """
        keys = [c.split(sep)[level] if sep in c else c for c in self._categories]
        order = list(dict.fromkeys(keys))
        pos = {k: i for i, k in enumerate(order)}
        out = np.zeros((len(self._units), len(order), len(self._times)), dtype=np.float64)
        for j, key in enumerate(keys):
            out[:, pos[key], :] += self._values[:, j, :]
        return self.with_values(out, categories=order)

    def scale(self, factor: QuantityField) -> QuantityField:
        """Multiply every category by a one-category field (aligned by label)."""
        if len(factor.categories) != 1:
            msg = f"scale factor must have exactly one category, got {list(factor.categories)}."
            raise ValueError(msg)
        f = factor.values_for(units=self._units, times=self._times)
        return self.with_values(self._values * f)

    def divide_by(self, denominator: QuantityField) -> QuantityField:
        """Divide every category by a one-category field; 0 where it is 0."""
        if len(denominator.categories) != 1:
            msg = (
                "denominator must have exactly one category, "
                f"got {list(denominator.categories)}."
            )
            raise ValueError(msg)
        d = np.broadcast_to(
            denominator.values_for(units=self._units, times=self._times), self.shape,
        )
        out = np.zeros(self.shape, dtype=np.float64)
        np.divide(self._values, d, out=out, where=d != 0)
        return self.with_values(out)

    def share(self) -> QuantityField:
        """Row-normalized variant: each value over its unit/time category sum.

        Units with an all-zero composition get zero shares.
        """
        return self.divide_by(self.sum_categories())

    def outer(self, other: QuantityField, sep: str = ".") -> QuantityField:
        """Category product ``a × b`` labelled ``"a.b"``.

        Used to cross land classes with potential natural vegetation
        fractions (``"crop.forested"``, ``"crop.nonforested"``, ...).
        """
        b = other.values_for(units=self._units, times=self._times)
        n_u, n_a, n_t = self.shape
        n_b = b.shape[CATEGORY_AXIS]
        values = (self._values[:, :, np.newaxis, :] * b[:, np.newaxis, :, :]).reshape(
            n_u, n_a * n_b, n_t,
        )
        labels = [f"{a}{sep}{c}" for a in self._categories for c in other.categories]
        return self.with_values(values, categories=labels)

    @staticmethod
    def concat(*fields: QuantityField) -> QuantityField:
        """Stack fields along the category axis.

        Units and times follow the first field; the others are aligned
        by label.

        Raises:
            DuplicateCategoryError: If two fields share a category label.
        """
        if not fields:
            msg = "concat requires at least one field."
            raise ValueError(msg)
        first = fields[0]
        parts = [first.values] + [
            f.align(units=first.units, times=first.times).values for f in fields[1:]
        ]
        categories = [c for f in fields for c in f.categories]
        return QuantityField(
            values=np.concatenate(parts, axis=CATEGORY_AXIS),
            units=first.units,
            categories=categories,
            times=first.times,
            name=first.name,
        )
