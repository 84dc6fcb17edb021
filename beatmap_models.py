# -*- coding: utf-8 -*-
########################
# beatmap_models.py
########################
# Purpose:
# - Core data models for the conversion pipeline.
# - Defines the internal Chart representation, its notes and its difficulty score.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - Charts are frozen. Transforms build new charts with with_notes() / dataclasses.replace,
#   so a chart handed downstream can never be mutated by the node that sent it.
# - Notes are always kept sorted by (time_seconds, lane).
#
########################
# Interfaces:
# Public enums:
# - class NoteKind(enum.Enum): TAP | HOLD | ROLL
#
# Public dataclasses:
# - NoteEvent(time_seconds: float, lane: int, kind: NoteKind, end_time_seconds: Optional[float])
# - ChartMetadata(title, subtitle, artist, ..., music: Optional[Path], source_path: Optional[Path])
# - DifficultyScore(raw: float, rescaled: float, label: Optional[str], method: str)
# - Chart(notes, key_count, gamemode, timing, metadata, difficulty, meter, description, duration_seconds, score)
#
# Public functions:
# - sort_notes(notes) -> tuple[NoteEvent, ...]
# - group_rows(notes) -> list[list[NoteEvent]]
#
# Inputs/Outputs:
# - These types are exchanged between sm_store, the chart transforms, the rating and selection
#   stages and the pipeline graph.
#
########################

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
import enum
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from timing_model import TimingMap


class NoteKind(enum.Enum):
    TAP = "tap"
    HOLD = "hold"
    ROLL = "roll"


@dataclass(frozen=True)
class NoteEvent:
    time_seconds: float
    lane: int
    kind: NoteKind = NoteKind.TAP
    end_time_seconds: Optional[float] = None

    @property
    def is_sustained(self) -> bool:
        return self.kind in (NoteKind.HOLD, NoteKind.ROLL)

    @property
    def release_time_seconds(self) -> float:
        if self.is_sustained and self.end_time_seconds is not None:
            return float(self.end_time_seconds)
        return float(self.time_seconds)


@dataclass(frozen=True)
class ChartMetadata:
    title: str = "Untitled"
    subtitle: str = ""
    artist: str = ""
    title_translit: str = ""
    subtitle_translit: str = ""
    artist_translit: str = ""
    genre: str = ""
    credit: str = ""
    music: Optional[Path] = None
    banner: Optional[Path] = None
    background: Optional[Path] = None
    sample_start_seconds: Optional[float] = None
    sample_length_seconds: Optional[float] = None
    source_path: Optional[Path] = None

    def media_files(self) -> List[Path]:
        """Files referenced by the chart, relative to the source directory."""
        return [path for path in (self.music, self.banner, self.background) if path is not None]


@dataclass(frozen=True)
class DifficultyScore:
    raw: float
    rescaled: float
    label: Optional[str] = None
    method: str = ""


def sort_notes(notes: Iterable[NoteEvent]) -> Tuple[NoteEvent, ...]:
    return tuple(sorted(notes, key=lambda note: (float(note.time_seconds), int(note.lane))))


def group_rows(notes: Iterable[NoteEvent]) -> List[List[NoteEvent]]:
    """Group sorted notes into rows of notes sharing one timestamp."""
    rows: List[List[NoteEvent]] = []
    for note in notes:
        if rows and rows[-1][0].time_seconds == note.time_seconds:
            rows[-1].append(note)
        else:
            rows.append([note])
    return rows


@dataclass(frozen=True)
class Chart:
    notes: Tuple[NoteEvent, ...]
    key_count: int
    gamemode: str = ""
    timing: TimingMap = field(default_factory=TimingMap)
    metadata: ChartMetadata = field(default_factory=ChartMetadata)
    difficulty: str = "Edit"
    meter: int = 1
    description: str = ""
    duration_seconds: float = 0.0
    score: Optional[DifficultyScore] = None

    def __post_init__(self) -> None:
        if int(self.key_count) <= 0:
            raise ValueError(f"key_count must be positive, got {self.key_count!r}")
        object.__setattr__(self, "notes", sort_notes(self.notes))

    def with_notes(self, notes: Iterable[NoteEvent], **changes) -> "Chart":
        return dataclasses.replace(self, notes=sort_notes(notes), **changes)

    def with_changes(self, **changes) -> "Chart":
        return dataclasses.replace(self, **changes)

    def first_time_seconds(self) -> float:
        return float(self.notes[0].time_seconds) if self.notes else 0.0

    def last_time_seconds(self) -> float:
        if not self.notes:
            return 0.0
        return max(note.release_time_seconds for note in self.notes)

    def effective_duration_seconds(self) -> float:
        if self.duration_seconds > 0.0:
            return float(self.duration_seconds)
        if len(self.notes) < 2:
            return 0.0
        return self.last_time_seconds() - self.first_time_seconds()

    def identity(self) -> str:
        """Stable text identity used to derive per-chart random seeds."""
        source_text = str(self.metadata.source_path) if self.metadata.source_path is not None else ""
        music_text = str(self.metadata.music) if self.metadata.music is not None else ""
        return "|".join([source_text, music_text, self.metadata.title, self.gamemode, self.difficulty, self.description])
