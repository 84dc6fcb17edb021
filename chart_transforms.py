# -*- coding: utf-8 -*-
########################
# chart_transforms.py
########################
# Purpose:
# - Chart-to-chart transforms hosted by the pipeline graph:
#   - rekey: convert a chart to another keycount, picking columns with the weighted selector.
#   - limit_simultaneous: cap how many columns are active at once.
#   - align: snap note times onto a beat grid.
#
# Design notes:
# - Every transform returns a new Chart; the input chart is never modified.
# - All randomness comes from the rng handed in by the caller (see seeding.SeedSource).
# - A note that cannot be placed is dropped, never written to an invalid column.
#
########################
# Interfaces:
# Public functions:
# - rekey(chart, *, gamemode: str, weight_curve: Curve, avoid_shuffle: bool, rng) -> Chart
# - limit_simultaneous(chart, *, max_active: int, rng) -> Chart
# - align(chart, *, snap: int) -> Chart
#
########################

from __future__ import annotations

import logging
import math
import random
from typing import Dict, List, Optional

import gamemodes
from beatmap_models import Chart, NoteEvent, NoteKind, group_rows
from column_selector import ColumnSelector
from curve import Curve
from errors import TransformError


logger = logging.getLogger(__name__)


def rekey(
    chart: Chart,
    *,
    gamemode: str,
    weight_curve: Curve,
    avoid_shuffle: bool,
    rng: random.Random,
) -> Chart:
    target_gamemode = gamemodes.normalize_gamemode(gamemode)
    out_key_count = gamemodes.key_count(target_gamemode)
    logger.debug("converting %dK to %dK (%s)", chart.key_count, out_key_count, target_gamemode)

    if avoid_shuffle and chart.key_count == out_key_count:
        return chart.with_changes(gamemode=target_gamemode)

    selector = ColumnSelector(weight_curve, out_key_count)
    # A column is locked while an incoming note time is <= its release time.
    locked_until: List[Optional[float]] = [None] * out_key_count
    mapped_notes: List[NoteEvent] = []
    dropped_count = 0

    for note in chart.notes:
        note_time = float(note.time_seconds)
        for column in range(out_key_count):
            release_time = locked_until[column]
            if release_time is not None and note_time > release_time:
                locked_until[column] = None

        free_columns = [column for column in range(out_key_count) if locked_until[column] is None]
        out_column = selector.choose(free_columns, note_time, rng)
        if out_column is None:
            dropped_count += 1
            continue

        release_time = note.release_time_seconds
        locked_until[out_column] = release_time
        selector.touch(out_column, release_time)
        mapped_notes.append(
            NoteEvent(
                time_seconds=note_time,
                lane=int(out_column),
                kind=note.kind,
                end_time_seconds=note.end_time_seconds,
            )
        )

    if dropped_count:
        logger.debug("rekey dropped %d notes with no free column", dropped_count)

    return chart.with_notes(mapped_notes, key_count=out_key_count, gamemode=target_gamemode)


def limit_simultaneous(chart: Chart, *, max_active: int, rng: random.Random) -> Chart:
    limit = int(max_active)
    if limit < 0:
        raise TransformError(f"simultaneous limit must be non-negative, got {limit}")
    logger.debug("limiting max simultaneous keys to %d/%dK", limit, chart.key_count)

    active_hold_ends: Dict[int, float] = {}
    kept_notes: List[NoteEvent] = []

    for row in group_rows(chart.notes):
        row_time = float(row[0].time_seconds)
        for lane in [lane for lane, end_time in active_hold_ends.items() if end_time <= row_time]:
            del active_hold_ends[lane]

        row_lanes = {int(note.lane) for note in row}
        holding_count = len([lane for lane in active_hold_ends if lane not in row_lanes])
        notes_to_remove = max(0, holding_count + len(row) - limit)
        removed_indices = set(rng.sample(range(len(row)), min(notes_to_remove, len(row))))

        for index, note in enumerate(row):
            if index in removed_indices:
                continue
            kept_notes.append(note)
            if note.is_sustained:
                active_hold_ends[int(note.lane)] = note.release_time_seconds

    return chart.with_notes(kept_notes)


def _snap_beat(beat: float, snap: int) -> float:
    return math.floor(float(beat) * snap + 0.5) / float(snap)


def align(chart: Chart, *, snap: int) -> Chart:
    """Round every note onto a 1/snap beat grid.

    Notes landing on an occupied (time, column) slot are dropped, keeping the earlier one.
    Holds that collapse to zero length become taps.
    """
    snap_value = int(snap)
    if snap_value <= 0:
        raise TransformError(f"align snap must be positive, got {snap_value}")

    timing = chart.timing
    occupied = set()
    aligned_notes: List[NoteEvent] = []
    for note in chart.notes:
        start_beat = _snap_beat(timing.seconds_to_beat(note.time_seconds), snap_value)
        start_time = timing.beat_to_seconds(start_beat)
        slot = (start_beat, int(note.lane))
        if slot in occupied:
            continue
        occupied.add(slot)

        kind = note.kind
        end_time: Optional[float] = None
        if note.is_sustained and note.end_time_seconds is not None:
            end_beat = _snap_beat(timing.seconds_to_beat(note.end_time_seconds), snap_value)
            if end_beat > start_beat:
                end_time = timing.beat_to_seconds(end_beat)
            else:
                kind = NoteKind.TAP
        aligned_notes.append(NoteEvent(time_seconds=start_time, lane=int(note.lane), kind=kind, end_time_seconds=end_time))

    return chart.with_notes(aligned_notes)
