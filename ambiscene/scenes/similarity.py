"""Descriptor similarity used for scene boundary detection."""

from __future__ import annotations

from ..models.datatypes import DESCRIPTOR_KEYS, DescriptorSet


def similarity(left: DescriptorSet, right: DescriptorSet) -> float:
    """Return the fraction of schema keys with identical values, in `[0, 1]`."""

    left_values = left.as_dict()
    right_values = right.as_dict()
    matching = sum(1 for key in DESCRIPTOR_KEYS if left_values[key] == right_values[key])
    return matching / float(len(DESCRIPTOR_KEYS))
