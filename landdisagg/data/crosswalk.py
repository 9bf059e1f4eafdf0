"""Bidirectional category crosswalk between two classification schemes.

Supports:
    - Rename: one-to-one rows (lossless, round-trips exactly)
    - Merge: many internal labels -> one external label (summed)
    - Split: one label -> several labels, weighted by supplied proportions

The table only carries names. Numeric split weights always come from a
proportions field (side-layer fractions, policy faders), never from the
table itself.

IMPORTANT: Merging is a lossy operation.
    apply(apply(v, FORWARD), BACKWARD) == v   for rename tables
    BUT a merge followed by a split only recovers v if the proportions
    are the original composition.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum

import numpy as np

from landdisagg.engine.field import QuantityField
from landdisagg.errors import MissingProportions, UnknownCategory


class CrosswalkDirection(StrEnum):
    """Which column of the table is the source."""

    FORWARD = "FORWARD"    # internal -> external
    BACKWARD = "BACKWARD"  # external -> internal


class Crosswalk:
    """Ordered ``(internal, external)`` label pairs."""

    def __init__(
        self,
        rows: Iterable[tuple[str, str]],
        *,
        internal: str = "internal",
        external: str = "external",
    ) -> None:
        """Build lookup tables from rows.

        Args:
            rows: ``(internal_label, external_label)`` pairs.
            internal: Name of the internal scheme (e.g. 'MAgPIE').
            external: Name of the external scheme (e.g. 'LUH2').

        Raises:
            ValueError: If a row is malformed or repeated.
        """
        self._rows: tuple[tuple[str, str], ...] = ()
        self._forward: dict[str, list[str]] = {}
        self._backward: dict[str, list[str]] = {}
        self._internal = internal
        self._external = external

        seen: set[tuple[str, str]] = set()
        ordered: list[tuple[str, str]] = []
        for row in rows:
            if len(row) != 2:
                msg = f"crosswalk rows must be (internal, external) pairs, got {row!r}."
                raise ValueError(msg)
            pair = (str(row[0]), str(row[1]))
            if pair in seen:
                msg = f"duplicate crosswalk row {pair}."
                raise ValueError(msg)
            seen.add(pair)
            ordered.append(pair)
            self._forward.setdefault(pair[0], []).append(pair[1])
            self._backward.setdefault(pair[1], []).append(pair[0])
        self._rows = tuple(ordered)

    @classmethod
    def identity(
        cls,
        labels: Iterable[str],
        *,
        internal: str = "internal",
        external: str = "external",
    ) -> Crosswalk:
        """Table mapping every label to itself."""
        return cls(((lbl, lbl) for lbl in labels), internal=internal, external=external)

    # -----------------------------------------------------------------
    # Basic lookups
    # -----------------------------------------------------------------

    @property
    def rows(self) -> list[tuple[str, str]]:
        return list(self._rows)

    @property
    def internal(self) -> str:
        return self._internal

    @property
    def external(self) -> str:
        return self._external

    @property
    def is_rename(self) -> bool:
        """True when every label maps to exactly one label in both directions."""
        return all(len(v) == 1 for v in self._forward.values()) and all(
            len(v) == 1 for v in self._backward.values()
        )

    def _lookup(self, direction: CrosswalkDirection) -> dict[str, list[str]]:
        if direction == CrosswalkDirection.FORWARD:
            return self._forward
        return self._backward

    def labels(self, direction: CrosswalkDirection = CrosswalkDirection.FORWARD) -> list[str]:
        """Source labels for a direction, in row order."""
        return list(self._lookup(direction))

    def targets(
        self,
        label: str,
        direction: CrosswalkDirection = CrosswalkDirection.FORWARD,
    ) -> list[str]:
        """Target labels of a source label.

        'other' -> ['primother', 'secdother'] (MAgPIE -> LUH2).

        Raises:
            UnknownCategory: If the label has no row in that direction.
        """
        try:
            return list(self._lookup(direction)[label])
        except KeyError:
            raise UnknownCategory(
                f"Unknown category '{label}' for crosswalk "
                f"{self._describe(direction)}.",
                context={"label": label},
            ) from None

    def _describe(self, direction: CrosswalkDirection) -> str:
        if direction == CrosswalkDirection.FORWARD:
            return f"'{self._internal}' -> '{self._external}'"
        return f"'{self._external}' -> '{self._internal}'"

    # -----------------------------------------------------------------
    # Derived tables
    # -----------------------------------------------------------------

    def reversed(self) -> Crosswalk:
        """Same table with the two schemes swapped."""
        return Crosswalk(
            ((ext, intl) for intl, ext in self._rows),
            internal=self._external,
            external=self._internal,
        )

    def with_identity(self, labels: Iterable[str]) -> Crosswalk:
        """Add ``(label, label)`` rows for labels without an internal row."""
        extra = [(lbl, lbl) for lbl in labels if lbl not in self._forward]
        return Crosswalk(
            list(self._rows) + extra,
            internal=self._internal,
            external=self._external,
        )

    # -----------------------------------------------------------------
    # Field remapping
    # -----------------------------------------------------------------

    def apply(
        self,
        field: QuantityField,
        direction: CrosswalkDirection = CrosswalkDirection.FORWARD,
    ) -> QuantityField:
        """Rename / merge the category axis of a field.

        Labels sharing a target are summed elementwise at every unit and
        time step. Target order follows the field's category order.

        Raises:
            UnknownCategory: If a field category has no row.
            MissingProportions: If a field category splits into several
                targets (use ``split`` with proportions).
        """
        return self.split(field, direction, proportions=None)

    def split(
        self,
        field: QuantityField,
        direction: CrosswalkDirection = CrosswalkDirection.FORWARD,
        proportions: QuantityField | None = None,
    ) -> QuantityField:
        """Like ``apply``, resolving one-to-many rows with proportions.

        A source label with targets ``[t1, t2]`` contributes
        ``value * proportions[t_i]`` to each target. Proportions are
        aligned by unit label; a single-time proportions field applies
        to every time step.

        Args:
            field: Field whose categories are all source labels.
            direction: Which column is the source.
            proportions: Field carrying every split target as a category.

        Raises:
            UnknownCategory: If a field category has no row, or a split
                target is missing from ``proportions``.
            MissingProportions: If a split is needed but no proportions
                were supplied.
        """
        lookup = self._lookup(direction)
        unknown = [c for c in field.categories if c not in lookup]
        if unknown:
            raise UnknownCategory(
                f"Categories {unknown} have no row in crosswalk "
                f"{self._describe(direction)}.",
                context={"missing": unknown},
            )

        targets: list[str] = []
        for category in field.categories:
            for target in lookup[category]:
                if target not in targets:
                    targets.append(target)
        position = {t: i for i, t in enumerate(targets)}

        n_units, _, n_times = field.shape
        out = np.zeros((n_units, len(targets), n_times), dtype=np.float64)
        for j, category in enumerate(field.categories):
            source = field.values[:, j, :]
            category_targets = lookup[category]
            if len(category_targets) == 1:
                out[:, position[category_targets[0]], :] += source
                continue

            if proportions is None:
                raise MissingProportions(
                    f"'{category}' splits into {category_targets} in crosswalk "
                    f"{self._describe(direction)}; split proportions are required.",
                    context={"category": category, "targets": category_targets},
                )
            weights = proportions.values_for(
                units=field.units, categories=category_targets, times=field.times,
            )
            for k, target in enumerate(category_targets):
                out[:, position[target], :] += source * weights[:, k, :]

        return QuantityField(
            values=out,
            units=field.units,
            categories=targets,
            times=field.times,
            name=field.name,
        )

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"<Crosswalk {self._internal}->{self._external} rows={len(self._rows)}>"
