# -*- coding: utf-8 -*-
########################
# difficulty_rating.py
########################
# Purpose:
# - Compute a scalar difficulty for a chart with one of several interchangeable methods,
#   rescale it and map it onto a discrete difficulty label.
#
########################
# Key Logic:
# - Count: notes per second.
# - Density: every note carries a halo of concentric (radius, height) bands centred on its time.
#   Halos of overlapping notes add up. The second and later notes of a row are scaled by
#   chord_weights (rank 2 uses chord_weights[0], extra ranks reuse the last weight).
#   The score is the generalized mean of the summed density over time:
#     (integral(D(t) ** p dt) / T) ** (1 / p)
#   D(t) is piecewise constant, so the integral is computed exactly by sweeping band edges.
#   T is the chart duration when known, otherwise the span covered by the halos.
# - Gap: each gap between consecutive rows maps through gap_curve; the score is the
#   generalized mean of those values with the given exponent.
# - Rescale: (in_lo, in_hi) -> (out_lo, out_hi), inputs outside the domain clamp.
# - Labels: largest threshold <= rescaled value wins. Below the smallest threshold: no label.
# - A chart without notes always rescales to 0.
#
########################
# Interfaces:
# Public classes:
# - CountMethod, DensityMethod, GapMethod (RatingMethod protocol: name, raw_score(chart) -> float)
# - RatingScale(in_lo, in_hi, out_lo, out_hi).apply(value) -> float
#
# Public functions:
# - lookup_label(value, thresholds) -> Optional[str]
# - rate(chart, method, *, scale, labels) -> DifficultyScore
# - apply_score(chart, score, *, set_meter, set_diff) -> Chart
#
########################

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

from beatmap_models import Chart, DifficultyScore, group_rows
from curve import Curve


class RatingMethod(Protocol):
    name: str

    def raw_score(self, chart: Chart) -> float:
        ...


def _generalized_mean(values: Sequence[float], exponent: float) -> float:
    if not values:
        return 0.0
    power_sum = sum(max(0.0, value) ** exponent for value in values)
    return (power_sum / float(len(values))) ** (1.0 / exponent)


@dataclass(frozen=True)
class CountMethod:
    name: str = "Count"

    def raw_score(self, chart: Chart) -> float:
        duration_seconds = chart.effective_duration_seconds()
        if duration_seconds <= 0.0:
            return 0.0
        return float(len(chart.notes)) / duration_seconds


@dataclass(frozen=True)
class DensityMethod:
    halo: Tuple[Tuple[float, float], ...] = ((0.25, 1.0), (0.5, 0.5))
    chord_weights: Tuple[float, ...] = (0.5,)
    exponent: float = 1.0
    name: str = "Density"

    def __post_init__(self) -> None:
        if not self.halo:
            raise ValueError("density halo needs at least one (radius, height) band")
        for radius, height in self.halo:
            if float(radius) <= 0.0:
                raise ValueError(f"halo radius must be positive, got {radius!r}")
            if float(height) < 0.0:
                raise ValueError(f"halo height must be non-negative, got {height!r}")
        if float(self.exponent) <= 0.0:
            raise ValueError(f"density exponent must be positive, got {self.exponent!r}")
        object.__setattr__(self, "halo", tuple(sorted((float(r), float(h)) for r, h in self.halo)))

    def chord_weight(self, rank: int) -> float:
        if rank <= 0 or not self.chord_weights:
            return 1.0
        return float(self.chord_weights[min(rank - 1, len(self.chord_weights) - 1)])

    def _edges(self, chart: Chart) -> List[Tuple[float, float]]:
        # Decompose the banded halo into nested boxes: box k spans radius r_k with height h_k - h_{k+1}.
        box_heights = []
        for index, (radius, height) in enumerate(self.halo):
            outer_height = self.halo[index + 1][1] if index + 1 < len(self.halo) else 0.0
            box_heights.append((radius, height - outer_height))

        edges: List[Tuple[float, float]] = []
        for row in group_rows(chart.notes):
            for rank, note in enumerate(row):
                weight = self.chord_weight(rank)
                center = float(note.time_seconds)
                for radius, box_height in box_heights:
                    contribution = weight * box_height
                    if contribution == 0.0:
                        continue
                    edges.append((center - radius, contribution))
                    edges.append((center + radius, -contribution))
        edges.sort(key=lambda item: item[0])
        return edges

    def raw_score(self, chart: Chart) -> float:
        if not chart.notes:
            return 0.0
        edges = self._edges(chart)
        if not edges:
            return 0.0

        integral = 0.0
        level = 0.0
        previous_position = edges[0][0]
        for position, delta in edges:
            if position > previous_position:
                integral += (max(0.0, level) ** self.exponent) * (position - previous_position)
                previous_position = position
            level += delta

        window_seconds = chart.effective_duration_seconds()
        if window_seconds <= 0.0:
            window_seconds = edges[-1][0] - edges[0][0]
        if window_seconds <= 0.0:
            return 0.0
        return (integral / window_seconds) ** (1.0 / self.exponent)


_DEFAULT_GAP_CURVE = Curve.from_pairs(
    [(0.0625, 16.0), (0.125, 8.0), (0.25, 4.0), (0.5, 2.0), (1.0, 1.0), (2.0, 0.0)]
)


@dataclass(frozen=True)
class GapMethod:
    gap_curve: Curve = _DEFAULT_GAP_CURVE
    exponent: float = 1.0
    name: str = "Gap"

    def __post_init__(self) -> None:
        if float(self.exponent) <= 0.0:
            raise ValueError(f"gap exponent must be positive, got {self.exponent!r}")

    def raw_score(self, chart: Chart) -> float:
        row_times = [float(row[0].time_seconds) for row in group_rows(chart.notes)]
        if len(row_times) < 2:
            return 0.0
        gap_values = [self.gap_curve.evaluate(row_times[index] - row_times[index - 1]) for index in range(1, len(row_times))]
        return _generalized_mean(gap_values, float(self.exponent))


@dataclass(frozen=True)
class RatingScale:
    in_lo: float
    in_hi: float
    out_lo: float
    out_hi: float

    def __post_init__(self) -> None:
        if float(self.in_hi) == float(self.in_lo):
            raise ValueError("rating scale input domain must not be empty")

    def apply(self, value: float) -> float:
        low = min(self.in_lo, self.in_hi)
        high = max(self.in_lo, self.in_hi)
        clamped = min(max(float(value), low), high)
        ratio = (clamped - self.in_lo) / (self.in_hi - self.in_lo)
        return self.out_lo + ratio * (self.out_hi - self.out_lo)


def lookup_label(value: float, thresholds: Sequence[Tuple[float, str]]) -> Optional[str]:
    best: Optional[Tuple[float, str]] = None
    for threshold, label in thresholds:
        if float(threshold) <= float(value) and (best is None or float(threshold) > best[0]):
            best = (float(threshold), str(label))
    return best[1] if best is not None else None


def rate(
    chart: Chart,
    method: RatingMethod,
    *,
    scale: Optional[RatingScale] = None,
    labels: Sequence[Tuple[float, str]] = (),
) -> DifficultyScore:
    if not chart.notes:
        raw_value = 0.0
        rescaled_value = 0.0
    else:
        raw_value = float(method.raw_score(chart))
        if math.isnan(raw_value):
            raw_value = 0.0
        rescaled_value = scale.apply(raw_value) if scale is not None else raw_value

    return DifficultyScore(
        raw=raw_value,
        rescaled=rescaled_value,
        label=lookup_label(rescaled_value, labels) if labels else None,
        method=method.name,
    )


def apply_score(chart: Chart, score: DifficultyScore, *, set_meter: bool, set_diff: bool) -> Chart:
    changes = {"score": score}
    if set_meter:
        changes["meter"] = max(1, int(math.floor(score.rescaled + 0.5)))
    if set_diff and score.label is not None:
        changes["difficulty"] = score.label
    return chart.with_changes(**changes)
