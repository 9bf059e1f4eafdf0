"""Swap a parent category for its disaggregated children.

Only the parent's slot changes. Every other category is copied from the
input array by index, so its values stay bit-identical.
"""

from __future__ import annotations

from typing import Literal

import numpy as np

from landdisagg.engine.field import CATEGORY_AXIS, QuantityField
from landdisagg.errors import DuplicateCategoryError

Position = Literal["parent", "start", "end"]


class FieldRecombiner:
    """Replaces one category of a multi-category field."""

    def replace(
        self,
        tensor: QuantityField,
        parent_label: str,
        children_fine: QuantityField,
        position: Position = "parent",
    ) -> QuantityField:
        """Drop ``parent_label`` and insert the children's categories.

        Args:
            tensor: Multi-category field holding the parent.
            parent_label: Category to replace.
            children_fine: Replacement categories, covering the tensor's
                units and time steps.
            position: 'parent' puts the children in the parent's slot,
                'start' / 'end' put them first / last.

        Returns:
            New field; ``tensor`` is not modified.

        Raises:
            UnknownCategory: If ``parent_label`` is not in ``tensor``.
            DuplicateCategoryError: If a child label already names another
                category of ``tensor``.
            KeyError: If the children miss a unit or time step of ``tensor``.
        """
        parent_pos = int(tensor.category_indices([parent_label])[0])
        remaining = [c for c in tensor.categories if c != parent_label]

        clashes = [c for c in children_fine.categories if c in remaining]
        if clashes:
            raise DuplicateCategoryError(
                f"Children {clashes} of '{parent_label}' already exist in the field.",
                context={"parent": parent_label, "labels": clashes},
            )

        if position == "parent":
            before = list(tensor.categories[:parent_pos])
            after = list(tensor.categories[parent_pos + 1:])
        elif position == "start":
            before, after = [], remaining
        elif position == "end":
            before, after = remaining, []
        else:
            raise ValueError(f"Unknown position: '{position}'")

        children = children_fine.align(units=tensor.units, times=tensor.times)
        parts = []
        if before:
            parts.append(tensor.values[:, tensor.category_indices(before), :])
        parts.append(children.values)
        if after:
            parts.append(tensor.values[:, tensor.category_indices(after), :])

        return tensor.with_values(
            np.concatenate(parts, axis=CATEGORY_AXIS),
            categories=before + list(children.categories) + after,
        )
