# -*- coding: utf-8 -*-
########################
# timing_model.py
########################
# Purpose:
# - Single source of truth for chart timing.
# - Converts beat positions into seconds and back, using BPM segments and the simfile offset.
#
# Design notes:
# - No I/O. Keep this module pure and deterministic.
# - Offset follows the StepMania convention: time = seconds_from_beat_zero - offset.
# - Segments are sorted by start beat and always begin at beat 0.
#
########################
# Interfaces:
# Public dataclasses:
# - TimingMap(bpm_segments: tuple[tuple[float, float], ...], offset_seconds: float)
#   - beat_to_seconds(beat: float) -> float
#   - seconds_to_beat(time_seconds: float) -> float
#
# Public functions:
# - default_timing(bpm: float = 120.0) -> TimingMap
#
# Inputs:
# - bpm_segments as (start_beat, bpm) pairs, parsed by sm_store.py.
#
# Outputs:
# - Seconds and beats used by chart_transforms.py, pattern_remap.py and sm_store.py.
#
########################
# Smoke Tests:
#   - python timing_model.py
########################

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from typing import Sequence, Tuple


@dataclass(frozen=True)
class TimingMap:
    bpm_segments: Tuple[Tuple[float, float], ...] = ((0.0, 120.0),)
    offset_seconds: float = 0.0
    _segment_seconds: Tuple[float, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        segments = sorted(((float(beat), float(bpm)) for beat, bpm in self.bpm_segments), key=lambda item: item[0])
        if not segments:
            segments = [(0.0, 120.0)]
        for _, bpm in segments:
            if bpm <= 0.0:
                raise ValueError(f"Invalid BPM value (must be > 0): {bpm!r}")
        if segments[0][0] != 0.0:
            segments.insert(0, (0.0, segments[0][1]))

        # Seconds elapsed from beat 0 at the start of each segment, ignoring offset.
        cumulative_seconds = [0.0]
        for index in range(1, len(segments)):
            prev_start_beat, prev_bpm = segments[index - 1]
            current_start_beat, _ = segments[index]
            cumulative_seconds.append(cumulative_seconds[-1] + (current_start_beat - prev_start_beat) * 60.0 / prev_bpm)

        object.__setattr__(self, "bpm_segments", tuple(segments))
        object.__setattr__(self, "offset_seconds", float(self.offset_seconds))
        object.__setattr__(self, "_segment_seconds", tuple(cumulative_seconds))

    def beat_to_seconds(self, beat: float) -> float:
        beat_value = float(beat)
        segment_index = 0
        for index, (start_beat, _) in enumerate(self.bpm_segments):
            if beat_value >= start_beat:
                segment_index = index
            else:
                break
        start_beat, bpm = self.bpm_segments[segment_index]
        seconds = self._segment_seconds[segment_index] + (beat_value - start_beat) * 60.0 / bpm
        return seconds - self.offset_seconds

    def seconds_to_beat(self, time_seconds: float) -> float:
        unshifted = float(time_seconds) + self.offset_seconds
        segment_index = max(0, bisect.bisect_right(self._segment_seconds, unshifted) - 1)
        start_beat, bpm = self.bpm_segments[segment_index]
        return start_beat + (unshifted - self._segment_seconds[segment_index]) * bpm / 60.0


def default_timing(bpm: float = 120.0) -> TimingMap:
    return TimingMap(bpm_segments=((0.0, float(bpm)),), offset_seconds=0.0)


def timing_from_segments(bpm_segments: Sequence[Tuple[float, float]], offset_seconds: float) -> TimingMap:
    return TimingMap(bpm_segments=tuple(bpm_segments), offset_seconds=float(offset_seconds))


def _run_unit_tests() -> None:
    timing = timing_from_segments([(0.0, 120.0), (4.0, 60.0)], offset_seconds=0.0)
    assert abs(timing.beat_to_seconds(4.0) - 2.0) < 1e-9
    assert abs(timing.beat_to_seconds(5.0) - 3.0) < 1e-9
    assert abs(timing.seconds_to_beat(3.0) - 5.0) < 1e-9
    assert abs(timing.seconds_to_beat(1.0) - 2.0) < 1e-9

    shifted = timing_from_segments([(0.0, 60.0)], offset_seconds=0.5)
    assert abs(shifted.beat_to_seconds(0.0) - (-0.5)) < 1e-9
    assert abs(shifted.seconds_to_beat(shifted.beat_to_seconds(7.25)) - 7.25) < 1e-9


if __name__ == "__main__":
    _run_unit_tests()
    print("timing_model.py: ok")
