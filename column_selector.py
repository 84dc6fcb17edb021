# -*- coding: utf-8 -*-
########################
# column_selector.py
########################
# Purpose:
# - Pick output columns for new notes with curve-weighted random sampling.
# - Columns hit recently get the weight the curve assigns to a short elapsed time,
#   which keeps jacks rare unless the curve says otherwise.
#
# Design notes:
# - Sampling is without replacement: one rng.random() draw per chosen column.
# - Columns never hit use the curve's maximum x as elapsed time.
# - Negative weights count as zero. When every weight is zero the draw is uniform.
# - Asking for more columns than candidates is recovered by returning every candidate.
#
########################
# Interfaces:
# Public functions:
# - select_columns(n, candidate_columns, last_hit_times, curve, rng, *, now) -> list[int]
#
# Public classes:
# - class ColumnSelector
#   - __init__(curve: Curve, key_count: int)
#   - touch(column: int, time_seconds: float) -> None
#   - weight_for(column: int, now: float) -> float
#   - choose(candidate_columns, now, rng) -> Optional[int]
#   - choose_many(n, candidate_columns, now, rng) -> list[int]
#
########################

from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from curve import Curve
from errors import TransformError


logger = logging.getLogger(__name__)


def _column_weight(curve: Curve, last_hit_time: Optional[float], now: float) -> float:
    if last_hit_time is None:
        elapsed = curve.max_x
    else:
        elapsed = float(now) - float(last_hit_time)
    return max(0.0, curve.evaluate(elapsed))


def _draw_index(weights: Sequence[float], rng: random.Random) -> int:
    total = float(sum(weights))
    roll = rng.random()
    if total <= 0.0:
        return min(int(roll * len(weights)), len(weights) - 1)

    threshold = roll * total
    cumulative = 0.0
    for index, weight in enumerate(weights):
        cumulative += weight
        if threshold < cumulative:
            return index
    # Float rounding can leave threshold == total; fall back to the last weighted column.
    for index in range(len(weights) - 1, -1, -1):
        if weights[index] > 0.0:
            return index
    return len(weights) - 1


def select_columns(
    n: int,
    candidate_columns: Sequence[int],
    last_hit_times: Sequence[Optional[float]],
    curve: Curve,
    rng: random.Random,
    *,
    now: float,
) -> List[int]:
    remaining = [int(column) for column in candidate_columns]
    wanted = int(n)
    if wanted < 0:
        raise TransformError(f"cannot select a negative number of columns ({wanted})")
    if wanted > len(remaining):
        logger.warning(
            "Asked for %d columns but only %d candidates are available; choosing all candidates",
            wanted,
            len(remaining),
        )
        wanted = len(remaining)

    chosen: List[int] = []
    while len(chosen) < wanted:
        weights = [_column_weight(curve, last_hit_times[column], now) for column in remaining]
        picked_index = _draw_index(weights, rng)
        chosen.append(remaining.pop(picked_index))
    return chosen


class ColumnSelector:
    def __init__(self, curve: Curve, key_count: int) -> None:
        if int(key_count) <= 0:
            raise TransformError(f"cannot select columns for a {key_count}-key chart")
        self._curve = curve
        self._last_hit_times: List[Optional[float]] = [None] * int(key_count)

    @property
    def key_count(self) -> int:
        return len(self._last_hit_times)

    def last_hit_time(self, column: int) -> Optional[float]:
        return self._last_hit_times[int(column)]

    def touch(self, column: int, time_seconds: float) -> None:
        self._last_hit_times[int(column)] = float(time_seconds)

    def weight_for(self, column: int, now: float) -> float:
        return _column_weight(self._curve, self._last_hit_times[int(column)], now)

    def choose_many(self, n: int, candidate_columns: Sequence[int], now: float, rng: random.Random) -> List[int]:
        chosen = select_columns(n, candidate_columns, self._last_hit_times, self._curve, rng, now=now)
        for column in chosen:
            self.touch(column, now)
        return chosen

    def choose(self, candidate_columns: Sequence[int], now: float, rng: random.Random) -> Optional[int]:
        if not candidate_columns:
            return None
        return self.choose_many(1, candidate_columns, now, rng)[0]
