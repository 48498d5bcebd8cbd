"""Per-scene descriptor aggregation by majority vote."""

from __future__ import annotations

from typing import Sequence

from ..models.datatypes import DESCRIPTOR_KEYS, DescriptorSet


def _majority(values: Sequence[str]) -> str:
    """Return the most common value; ties go to the value seen first."""

    counts: dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    best = values[0]
    for value in counts:
        if counts[value] > counts[best]:
            best = value
    return best


def aggregate_descriptors(members: Sequence[DescriptorSet]) -> DescriptorSet:
    """Combine member descriptor sets key by key; empty input yields the neutral set."""

    if not members:
        return DescriptorSet.neutral()
    values = [member.as_dict() for member in members]
    return DescriptorSet(
        **{key: _majority([item[key] for item in values]) for key in DESCRIPTOR_KEYS}
    )
