# -*- coding: utf-8 -*-
########################
# difficulty_select.py
########################
# Purpose:
# - Choose which rated charts survive into the output and give them ordered difficulty labels.
#
########################
# Key Logic:
# - merge: flatten every incoming group into one set. Otherwise each group is handled alone.
# - dedup: while the closest pair of neighbouring scores is closer than dedup_dist, keep only
#   the chart nearest to lo + dedup_bias * (hi - lo). Ties keep the easier chart.
#   dedup_dist 0 never merges.
# - cap: when more than max_count charts remain, drop charts by preference:
#   - Spread: drop one chart at a time, picking the removal that maximizes the minimum score gap
#     among survivors. Only removals that keep the best achievable minimum gap within reach are
#     considered, so the final set is an optimal max-min subset. Ties drop the lower score.
#   - Easiest / Hardest: keep the lowest / highest scores.
#   - Nearest: keep the scores closest to target.
# - label: sort survivors by ascending score and assign diff_names in order.
#
########################
# Interfaces:
# Public enums:
# - class Prefer(str, enum.Enum): SPREAD | EASIEST | HARDEST | NEAREST
#
# Public functions:
# - chart_score(chart) -> float
# - dedup(charts, *, dedup_dist, dedup_bias) -> list[Chart]
# - cap(charts, *, max_count, prefer, target) -> list[Chart]
# - assign_labels(charts, diff_names) -> list[Chart]
# - select(groups, *, max_count, prefer, dedup_dist, dedup_bias, diff_names, merge, target) -> list[list[Chart]]
#
########################

from __future__ import annotations

import enum
import logging
import math
from typing import List, Optional, Sequence

from beatmap_models import Chart
from errors import ConfigError


logger = logging.getLogger(__name__)

_GAP_TOLERANCE = 1e-9


class Prefer(str, enum.Enum):
    SPREAD = "Spread"
    EASIEST = "Easiest"
    HARDEST = "Hardest"
    NEAREST = "Nearest"


def chart_score(chart: Chart) -> float:
    if chart.score is None:
        return 0.0
    return float(chart.score.rescaled)


def _sorted_by_score(charts: Sequence[Chart]) -> List[Chart]:
    return sorted(charts, key=chart_score)


def min_gap(scores: Sequence[float]) -> float:
    ordered = sorted(scores)
    if len(ordered) < 2:
        return math.inf
    return min(ordered[index + 1] - ordered[index] for index in range(len(ordered) - 1))


def dedup(charts: Sequence[Chart], *, dedup_dist: float, dedup_bias: float) -> List[Chart]:
    survivors = _sorted_by_score(charts)
    bias = min(max(float(dedup_bias), 0.0), 1.0)
    while len(survivors) >= 2:
        scores = [chart_score(chart) for chart in survivors]
        closest_gap, pair_index = min((scores[index + 1] - scores[index], index) for index in range(len(scores) - 1))
        if not closest_gap < float(dedup_dist):
            break
        low_score = scores[pair_index]
        high_score = scores[pair_index + 1]
        target = low_score + bias * (high_score - low_score)
        if abs(low_score - target) <= abs(high_score - target):
            kept = survivors[pair_index]
        else:
            kept = survivors[pair_index + 1]
        logger.debug("dedup merged scores %.3f and %.3f, kept %.3f", low_score, high_score, chart_score(kept))
        survivors[pair_index:pair_index + 2] = [kept]
    return survivors


def _greedy_count(sorted_scores: Sequence[float], gap: float) -> int:
    """Largest subset size whose neighbouring scores are all at least `gap` apart."""
    if not sorted_scores:
        return 0
    count = 1
    last_score = sorted_scores[0]
    for score in sorted_scores[1:]:
        if score - last_score >= gap - _GAP_TOLERANCE:
            count += 1
            last_score = score
    return count


def best_min_gap(scores: Sequence[float], count: int) -> float:
    """Best achievable minimum gap for a subset of `count` scores."""
    ordered = sorted(scores)
    if count <= 1 or len(ordered) < count:
        return math.inf
    candidates = sorted(
        {ordered[j] - ordered[i] for i in range(len(ordered)) for j in range(i + 1, len(ordered))},
        reverse=True,
    )
    for candidate in candidates:
        if _greedy_count(ordered, candidate) >= count:
            return candidate
    return 0.0


def _spread(charts: Sequence[Chart], max_count: int) -> List[Chart]:
    survivors = _sorted_by_score(charts)
    target_gap = best_min_gap([chart_score(chart) for chart in survivors], max_count)

    while len(survivors) > max_count:
        best_index: Optional[int] = None
        best_value = -math.inf
        for index in range(len(survivors)):
            rest_scores = [chart_score(chart) for position, chart in enumerate(survivors) if position != index]
            if not math.isinf(target_gap) and _greedy_count(rest_scores, target_gap) < max_count:
                continue
            value = min_gap(rest_scores)
            # Strict comparison keeps the lowest index, dropping the lower score on ties.
            if best_index is None or value > best_value:
                best_index = index
                best_value = value
        if best_index is None:
            best_index = 0
        del survivors[best_index]
    return survivors


def cap(charts: Sequence[Chart], *, max_count: int, prefer: Prefer, target: float = 0.0) -> List[Chart]:
    limit = max(0, int(max_count))
    ordered = _sorted_by_score(charts)
    if len(ordered) <= limit:
        return ordered
    if limit == 0:
        return []

    preference = Prefer(prefer)
    if preference is Prefer.SPREAD:
        return _spread(ordered, limit)
    if preference is Prefer.EASIEST:
        return ordered[:limit]
    if preference is Prefer.HARDEST:
        return ordered[-limit:]
    if preference is Prefer.NEAREST:
        nearest = sorted(ordered, key=lambda chart: (abs(chart_score(chart) - float(target)), chart_score(chart)))
        return _sorted_by_score(nearest[:limit])
    raise ConfigError(f"Unsupported selection preference: {prefer!r}")


def assign_labels(charts: Sequence[Chart], diff_names: Sequence[str]) -> List[Chart]:
    ordered = _sorted_by_score(charts)
    if not diff_names:
        return ordered
    if len(ordered) > len(diff_names):
        raise ConfigError(
            f"{len(ordered)} charts survived selection but only {len(diff_names)} difficulty names are configured"
        )
    return [chart.with_changes(difficulty=str(name)) for chart, name in zip(ordered, diff_names)]


def select(
    groups: Sequence[Sequence[Chart]],
    *,
    max_count: int,
    prefer: Prefer = Prefer.SPREAD,
    dedup_dist: float = 0.0,
    dedup_bias: float = 0.5,
    diff_names: Sequence[str] = (),
    merge: bool = True,
    target: float = 0.0,
) -> List[List[Chart]]:
    if merge:
        working_groups = [[chart for group in groups for chart in group]]
    else:
        working_groups = [list(group) for group in groups]

    selected_groups: List[List[Chart]] = []
    for group in working_groups:
        unrated_count = len([chart for chart in group if chart.score is None])
        if unrated_count:
            logger.warning("%d charts reached selection without a score; treating them as 0", unrated_count)
        survivors = dedup(group, dedup_dist=dedup_dist, dedup_bias=dedup_bias)
        survivors = cap(survivors, max_count=max_count, prefer=prefer, target=target)
        selected_groups.append(assign_labels(survivors, diff_names))
    return selected_groups
