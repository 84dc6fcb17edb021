# -*- coding: utf-8 -*-
########################
# curve.py
########################
# Purpose:
# - Piecewise-linear curves over ordered (x, y) control points.
# - Used by weight curves, gap curves and any other numeric mapping in the pipeline.
#
# Design notes:
# - x values must be strictly increasing.
# - Outside the domain the nearest endpoint value is returned.
# - No I/O. Pure and deterministic.
#
########################
# Interfaces:
# Public dataclasses:
# - Curve(points: tuple[tuple[float, float], ...])
#   - from_pairs(pairs) -> Curve
#   - evaluate(x: float) -> float
#   - max_x -> float
#
# Public functions:
# - flat_curve(value: float = 1.0) -> Curve
#
########################
# Smoke Tests:
#   - python curve.py
########################

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple


@dataclass(frozen=True)
class Curve:
    points: Tuple[Tuple[float, float], ...]
    _xs: Tuple[float, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.points:
            raise ValueError("curve needs at least one control point")
        normalized = tuple((float(x), float(y)) for x, y in self.points)
        for index in range(1, len(normalized)):
            if normalized[index][0] <= normalized[index - 1][0]:
                raise ValueError(
                    f"curve x values must be strictly increasing, got {normalized[index - 1][0]} then {normalized[index][0]}"
                )
        object.__setattr__(self, "points", normalized)
        object.__setattr__(self, "_xs", tuple(x for x, _ in normalized))

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]]) -> "Curve":
        points: List[Tuple[float, float]] = []
        for pair in pairs:
            if len(pair) != 2:
                raise ValueError(f"curve control point must be an (x, y) pair, got {pair!r}")
            points.append((float(pair[0]), float(pair[1])))
        return cls(points=tuple(points))

    @property
    def max_x(self) -> float:
        return self._xs[-1]

    def evaluate(self, x: float) -> float:
        value = float(x)
        if value <= self._xs[0]:
            return self.points[0][1]
        if value >= self._xs[-1]:
            return self.points[-1][1]

        upper_index = bisect.bisect_right(self._xs, value)
        lower_x, lower_y = self.points[upper_index - 1]
        upper_x, upper_y = self.points[upper_index]
        if value == lower_x:
            return lower_y
        ratio = (value - lower_x) / (upper_x - lower_x)
        return lower_y + (upper_y - lower_y) * ratio


def flat_curve(value: float = 1.0) -> Curve:
    return Curve(points=((0.0, float(value)),))


def _run_unit_tests() -> None:
    curve = Curve.from_pairs([(0.0, 1.0), (0.4, 10.0), (0.8, 200.0)])
    assert curve.evaluate(0.4) == 10.0
    assert curve.evaluate(-3.0) == 1.0
    assert curve.evaluate(5.0) == 200.0
    assert abs(curve.evaluate(0.2) - 5.5) < 1e-9
    assert flat_curve(3.0).evaluate(100.0) == 3.0

    try:
        Curve.from_pairs([(0.0, 1.0), (0.0, 2.0)])
    except ValueError:
        pass
    else:
        raise AssertionError("Expected ValueError for repeated x")


if __name__ == "__main__":
    _run_unit_tests()
    print("curve.py: ok")
