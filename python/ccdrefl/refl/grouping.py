"""
Tolerance keys used to compare floating point acquisition settings.

Grouping of frames and merging of curve points both go through `Tolerance`, so
two values are "the same setting" in exactly one way throughout a run.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import NamedTuple


@dataclass(frozen=True, slots=True)
class Tolerance:
    """
    Rounding resolution tagged with the quantity it applies to.

    Parameters
    ----------
    resolution : float
        Width of one bin. Values are binned by ``round(value / resolution)``.
    tag : str
        Name of the quantity, keeps keys of different quantities distinct.
    """

    resolution: float
    tag: str = ""

    def __post_init__(self):
        if not (math.isfinite(self.resolution) and self.resolution > 0):
            msg = f"Tolerance resolution must be positive, got {self.resolution}"
            raise ValueError(msg)

    def key(self, value: float) -> tuple[str, int]:
        """Return the tagged bin of a value."""
        if not math.isfinite(value):
            msg = f"Cannot bin non-finite {self.tag or 'value'}: {value}"
            raise ValueError(msg)
        return (self.tag, round(value / self.resolution))

    def same(self, a: float, b: float) -> bool:
        """Check if two values fall in the same bin."""
        return self.key(a) == self.key(b)

    def close(self, a: float, b: float) -> bool:
        """Check if two values are at most one resolution apart."""
        return abs(a - b) <= self.resolution


class GroupKey(NamedTuple):
    """Key of one exposure group: binned angle and binned attenuation."""

    angle: tuple[str, int]
    attenuation: tuple[str, int]


def group_by[T](
    items: Iterable[T], key: Callable[[T], Hashable]
) -> dict[Hashable, list[T]]:
    """
    Group items by key, keeping the input order inside each group.

    The returned mapping is ordered by sorted key so that iteration order does
    not depend on the order the items were discovered in.
    """
    groups: dict[Hashable, list[T]] = defaultdict(list)
    for item in items:
        groups[key(item)].append(item)
    return {k: groups[k] for k in sorted(groups)}


def exposure_key(
    angle: float,
    attenuation: float,
    angle_tolerance: Tolerance,
    attenuation_tolerance: Tolerance,
) -> GroupKey:
    """Return the exposure group key of an acquisition setting."""
    return GroupKey(
        angle_tolerance.key(angle),
        attenuation_tolerance.key(attenuation),
    )
