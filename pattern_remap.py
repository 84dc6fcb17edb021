# -*- coding: utf-8 -*-
########################
# pattern_remap.py
########################
# Purpose:
# - Replace runs of closely spaced notes with fixed multi-column patterns.
# - Each pattern set yields one independent chart variant, so one source chart can become
#   several differently styled charts (for example Easy, Medium and Hard flavours).
#
########################
# Key Logic:
# - Rows are notes sharing a timestamp. A cluster is a maximal run of rows whose consecutive
#   gaps (in beats) are <= the set's cluster gap (default: the largest template dist).
# - A cluster has a span (last row beat - first row beat), a max gap between consecutive rows,
#   and a local density (notes per row). Density is fractional, so keys: 1.5 reads as
#   "usually one note per row, sometimes two".
# - Templates are tried in listed order. A template matches when
#   span <= dist and density >= keys. First match wins, including exact ties.
# - A cluster with a single row (span 0) never matches; it has no length to scale a
#   template over, so it takes the identity fallback.
# - Instantiation: each (relative beat, relative column) pair is scaled by span / unit,
#   offset by the cluster start, and its column is (base + relative column) mod key_count.
#   The base column comes from the weighted column selector.
# - Clusters that match no template keep one note per source note (kind and hold end kept),
#   each placed on a column from the weighted selector.
#
########################
# Interfaces:
# Public dataclasses:
# - PatternTemplate(dist: float, keys: float, notes: tuple[tuple[float, int], ...], unit: Optional[float])
# - PatternSet(templates: tuple[PatternTemplate, ...], default_unit: float, cluster_gap: Optional[float], name: str)
# - Cluster(rows, start_beat, end_beat, max_gap)
#
# Public functions:
# - find_clusters(chart, *, gap_beats: float) -> list[Cluster]
# - match_template(cluster, pattern_set) -> Optional[PatternTemplate]
# - remap_with_set(chart, pattern_set, *, gamemode, weight_curve, rng) -> Chart
# - remap(chart, pattern_sets, *, gamemode, weight_curve, rng) -> list[Chart]
#
########################

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import gamemodes
from beatmap_models import Chart, NoteEvent, NoteKind, group_rows
from column_selector import ColumnSelector
from curve import Curve
from errors import TransformError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternTemplate:
    dist: float
    keys: float
    notes: Tuple[Tuple[float, int], ...]
    unit: Optional[float] = None

    def __post_init__(self) -> None:
        if not self.notes:
            raise ValueError("pattern template needs at least one note")
        if self.unit is not None and float(self.unit) <= 0.0:
            raise ValueError(f"pattern unit must be positive, got {self.unit!r}")


@dataclass(frozen=True)
class PatternSet:
    templates: Tuple[PatternTemplate, ...]
    default_unit: float = 4.0
    cluster_gap: Optional[float] = None
    name: str = ""

    def __post_init__(self) -> None:
        if float(self.default_unit) <= 0.0:
            raise ValueError(f"default_unit must be positive, got {self.default_unit!r}")

    def effective_cluster_gap(self) -> float:
        if self.cluster_gap is not None:
            return float(self.cluster_gap)
        if not self.templates:
            return 0.0
        return max(float(template.dist) for template in self.templates)

    def unit_for(self, template: PatternTemplate) -> float:
        return float(template.unit) if template.unit is not None else float(self.default_unit)


@dataclass(frozen=True)
class Cluster:
    rows: Tuple[Tuple[NoteEvent, ...], ...]
    start_beat: float
    end_beat: float
    max_gap: float

    @property
    def span(self) -> float:
        return self.end_beat - self.start_beat

    @property
    def note_count(self) -> int:
        return sum(len(row) for row in self.rows)

    @property
    def density(self) -> float:
        return float(self.note_count) / float(len(self.rows))

    @property
    def start_time_seconds(self) -> float:
        return float(self.rows[0][0].time_seconds)


def find_clusters(chart: Chart, *, gap_beats: float) -> List[Cluster]:
    clusters: List[Cluster] = []
    current_rows: List[Tuple[NoteEvent, ...]] = []
    current_beats: List[float] = []

    def flush() -> None:
        if not current_rows:
            return
        gaps = [current_beats[index] - current_beats[index - 1] for index in range(1, len(current_beats))]
        clusters.append(
            Cluster(
                rows=tuple(current_rows),
                start_beat=current_beats[0],
                end_beat=current_beats[-1],
                max_gap=max(gaps) if gaps else 0.0,
            )
        )
        current_rows.clear()
        current_beats.clear()

    for row in group_rows(chart.notes):
        row_beat = chart.timing.seconds_to_beat(row[0].time_seconds)
        if current_beats and row_beat - current_beats[-1] > float(gap_beats):
            flush()
        current_rows.append(tuple(row))
        current_beats.append(row_beat)
    flush()
    return clusters


def match_template(cluster: Cluster, pattern_set: PatternSet) -> Optional[PatternTemplate]:
    if len(cluster.rows) < 2 or cluster.span <= 0.0:
        return None
    for template in pattern_set.templates:
        if cluster.span <= float(template.dist) and cluster.density >= float(template.keys):
            return template
    return None


class _ColumnLocks:
    """Tracks which output columns are busy so placed notes never overlap a running hold."""

    def __init__(self, key_count: int) -> None:
        self._locked_until: List[Optional[float]] = [None] * key_count

    def release_before(self, time_seconds: float) -> None:
        for column, release_time in enumerate(self._locked_until):
            if release_time is not None and time_seconds > release_time:
                self._locked_until[column] = None

    def free_columns(self) -> List[int]:
        return [column for column, release_time in enumerate(self._locked_until) if release_time is None]

    def is_free(self, column: int) -> bool:
        return self._locked_until[column] is None

    def lock(self, column: int, release_time: float) -> None:
        self._locked_until[column] = float(release_time)


def _place_identity(
    cluster: Cluster,
    *,
    selector: ColumnSelector,
    locks: _ColumnLocks,
    rng: random.Random,
) -> List[NoteEvent]:
    placed: List[NoteEvent] = []
    for row in cluster.rows:
        for note in row:
            locks.release_before(note.time_seconds)
            column = selector.choose(locks.free_columns(), note.time_seconds, rng)
            if column is None:
                continue
            release_time = note.release_time_seconds
            locks.lock(column, release_time)
            selector.touch(column, release_time)
            placed.append(
                NoteEvent(
                    time_seconds=note.time_seconds,
                    lane=column,
                    kind=note.kind,
                    end_time_seconds=note.end_time_seconds,
                )
            )
    return placed


def _place_template(
    cluster: Cluster,
    template: PatternTemplate,
    *,
    unit: float,
    chart: Chart,
    key_count: int,
    selector: ColumnSelector,
    locks: _ColumnLocks,
    rng: random.Random,
) -> List[NoteEvent]:
    scale = cluster.span / unit
    start_time = cluster.start_time_seconds
    locks.release_before(start_time)
    base_column = selector.choose(locks.free_columns(), start_time, rng)
    if base_column is None:
        return []

    placements = sorted(
        (
            (chart.timing.beat_to_seconds(cluster.start_beat + float(relative_beat) * scale), int(relative_column))
            for relative_beat, relative_column in template.notes
        ),
        key=lambda item: item[0],
    )

    placed: List[NoteEvent] = []
    occupied = set()
    for time_seconds, relative_column in placements:
        locks.release_before(time_seconds)
        column = (base_column + relative_column) % key_count
        # A held column shifts the note to the next free column.
        for _ in range(key_count):
            if locks.is_free(column) and (time_seconds, column) not in occupied:
                break
            column = (column + 1) % key_count
        else:
            continue
        occupied.add((time_seconds, column))
        locks.lock(column, time_seconds)
        selector.touch(column, time_seconds)
        placed.append(NoteEvent(time_seconds=time_seconds, lane=column, kind=NoteKind.TAP))
    return placed


def remap_with_set(
    chart: Chart,
    pattern_set: PatternSet,
    *,
    gamemode: str,
    weight_curve: Curve,
    rng: random.Random,
) -> Chart:
    target_gamemode = gamemodes.normalize_gamemode(gamemode)
    key_count = gamemodes.key_count(target_gamemode)
    selector = ColumnSelector(weight_curve, key_count)
    locks = _ColumnLocks(key_count)

    remapped_notes: List[NoteEvent] = []
    matched_count = 0
    clusters = find_clusters(chart, gap_beats=pattern_set.effective_cluster_gap())
    for cluster in clusters:
        template = match_template(cluster, pattern_set)
        if template is None:
            remapped_notes.extend(_place_identity(cluster, selector=selector, locks=locks, rng=rng))
            continue
        matched_count += 1
        remapped_notes.extend(
            _place_template(
                cluster,
                template,
                unit=pattern_set.unit_for(template),
                chart=chart,
                key_count=key_count,
                selector=selector,
                locks=locks,
                rng=rng,
            )
        )

    logger.debug(
        "pattern set %r matched %d of %d clusters", pattern_set.name or "(unnamed)", matched_count, len(clusters)
    )
    changes = {"key_count": key_count, "gamemode": target_gamemode}
    if pattern_set.name:
        changes["description"] = pattern_set.name
    return chart.with_notes(remapped_notes, **changes)


def remap(
    chart: Chart,
    pattern_sets: Sequence[PatternSet],
    *,
    gamemode: str,
    weight_curve: Curve,
    rng: random.Random,
) -> List[Chart]:
    if not pattern_sets:
        raise TransformError("remap needs at least one pattern set")
    return [
        remap_with_set(chart, pattern_set, gamemode=gamemode, weight_curve=weight_curve, rng=rng)
        for pattern_set in pattern_sets
    ]
