# -*- coding: utf-8 -*-
########################
# sm_store.py
########################
# Purpose:
# - Parse and write StepMania .sm files.
# - Convert between StepMania note blocks and the internal beatmap_models.Chart representation.
#
# Design notes:
# - Pure parsing and serialization; the only I/O is reading or writing the one simfile.
# - Parsing must be tolerant of minor format variance but never silently accept invalid charts.
# - Every #NOTES block with a known step type becomes one Chart. Unknown step types are skipped.
# - Notes are placed on a 48-ticks-per-beat grid when saving, the finest grid StepMania rows
#   can express for 4th through 192nd notes.
#
########################
# Interfaces:
# Public exceptions:
# - class SimfileError(errors.CollaboratorError)
# - class SimfileParseError(SimfileError)
# - class SimfileValidationError(SimfileError)
#
# Public dataclasses:
# - StepChartBlock(step_type: str, description: str, difficulty: str, meter: int, notes_text: str)
#
# Public functions:
# - load_simfile(simfile_path: pathlib.Path) -> list[beatmap_models.Chart]
# - save_simfile(output_path: pathlib.Path, charts: Sequence[beatmap_models.Chart]) -> None
# - build_notes_text(chart, timing) -> str
#
# Inputs:
# - simfile_path for loading.
# - Charts sharing one song for saving; song-level tags come from the first chart.
#
# Outputs:
# - Charts for the pipeline graph.
# - .sm files on disk.
#
########################

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import gamemodes
from beatmap_models import Chart, ChartMetadata, NoteEvent, NoteKind
from errors import CollaboratorError
from timing_model import TimingMap


logger = logging.getLogger(__name__)


class SimfileError(CollaboratorError):
    """Base error for simfile parsing and validation."""


class SimfileParseError(SimfileError):
    """Raised when the file cannot be parsed into expected .sm structure."""


class SimfileValidationError(SimfileError):
    """Raised when the file parses but violates the strict chart rules."""


@dataclass(frozen=True)
class StepChartBlock:
    step_type: str
    description: str
    difficulty: str
    meter: int
    notes_text: str


TICKS_PER_BEAT = 48
BEATS_PER_MEASURE = 4
TICKS_PER_MEASURE = TICKS_PER_BEAT * BEATS_PER_MEASURE

_SYMBOL_TAP = "1"
_SYMBOL_HOLD_HEAD = "2"
_SYMBOL_TAIL = "3"
_SYMBOL_ROLL_HEAD = "4"
_IGNORED_SYMBOLS = {"0", "M", "L", "F", "K"}


def _read_text_utf8(file_path: Path) -> str:
    try:
        return file_path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SimfileParseError(f"Simfile is not valid UTF-8: {file_path}", source_path=file_path) from exc
    except OSError as exc:
        raise SimfileParseError(f"Failed to read simfile: {file_path}", source_path=file_path) from exc


def _parse_sm_tags(simfile_text: str) -> Dict[str, str]:
    """Parse simple #TAG:value; fields.

    This intentionally ignores tags that do not match this pattern, such as multi-line #NOTES.
    """
    tags: Dict[str, str] = {}
    for match in re.finditer(r"(?im)^\s*#([A-Z0-9_]+)\s*:\s*(.*?)\s*;\s*$", simfile_text):
        tag_name = str(match.group(1) or "").strip().upper()
        tag_value = str(match.group(2) or "").strip()
        tags[tag_name] = tag_value
    return tags


def _parse_offset_seconds(tags: Dict[str, str]) -> float:
    raw_text = tags.get("OFFSET", "").strip()
    if not raw_text:
        return 0.0
    try:
        return float(raw_text)
    except ValueError as exc:
        raise SimfileParseError(f"Invalid #OFFSET value: {raw_text!r}") from exc


def _parse_bpm_segments(tags: Dict[str, str]) -> List[Tuple[float, float]]:
    raw_text = tags.get("BPMS", "").strip()
    if not raw_text:
        return [(0.0, 120.0)]

    segments: List[Tuple[float, float]] = []
    for item in raw_text.split(","):
        item_text = item.strip()
        if not item_text:
            continue
        if "=" not in item_text:
            raise SimfileParseError(f"Invalid #BPMS segment: {item_text!r}")
        beat_text, bpm_text = item_text.split("=", 1)
        try:
            beat_value = float(beat_text.strip())
            bpm_value = float(bpm_text.strip())
        except ValueError as exc:
            raise SimfileParseError(f"Invalid #BPMS segment numeric values: {item_text!r}") from exc
        if bpm_value <= 0.0:
            raise SimfileParseError(f"Invalid BPM value (must be > 0): {bpm_value!r}")
        segments.append((beat_value, bpm_value))

    if not segments:
        segments.append((0.0, 120.0))
    return segments


def _parse_optional_float(tags: Dict[str, str], tag_name: str) -> Optional[float]:
    raw_text = tags.get(tag_name, "").strip()
    if not raw_text:
        return None
    try:
        return float(raw_text)
    except ValueError:
        return None


def _optional_path(tags: Dict[str, str], tag_name: str) -> Optional[Path]:
    raw_text = tags.get(tag_name, "").strip()
    return Path(raw_text) if raw_text else None


def _extract_notes_blocks(simfile_text: str) -> List[str]:
    """Extract raw #NOTES blocks without the leading marker and trailing semicolon."""
    blocks: List[str] = []
    pattern = re.compile(r"(?is)#NOTES\s*:\s*(.*?)\s*;", re.MULTILINE)
    for match in pattern.finditer(simfile_text):
        blocks.append(str(match.group(1) or ""))
    return blocks


def _strip_comments(text: str) -> str:
    return "\n".join(line.split("//", 1)[0] for line in text.splitlines())


def _parse_notes_block(block_body: str) -> StepChartBlock:
    parts = _strip_comments(block_body).split(":", 5)
    if len(parts) != 6:
        raise SimfileParseError("Invalid #NOTES block structure: expected 6 colon-separated fields")

    step_type_text = str(parts[0]).strip().lower()
    description_text = str(parts[1]).strip()
    difficulty_text_raw = str(parts[2]).strip()
    meter_text = str(parts[3]).strip()
    # radar values are parts[4], ignored but required
    notes_text = str(parts[5])

    if not step_type_text:
        raise SimfileParseError("Missing step type in #NOTES block")

    try:
        meter_value = int(float(meter_text)) if meter_text else 1
    except (ValueError, OverflowError) as exc:
        raise SimfileParseError(f"Invalid meter value in #NOTES block: {meter_text!r}") from exc

    return StepChartBlock(
        step_type=step_type_text,
        description=description_text,
        difficulty=gamemodes.canonical_difficulty(difficulty_text_raw),
        meter=meter_value,
        notes_text=notes_text,
    )


def _split_measures(notes_text: str) -> List[List[str]]:
    measures: List[List[str]] = []
    current_measure_rows: List[str] = []
    for raw_line in notes_text.splitlines():
        line_text = str(raw_line).strip()
        if not line_text:
            continue
        if line_text == ",":
            measures.append(current_measure_rows)
            current_measure_rows = []
            continue
        if line_text.endswith(","):
            row_part = line_text[:-1].strip()
            if row_part:
                current_measure_rows.append(row_part)
            measures.append(current_measure_rows)
            current_measure_rows = []
            continue
        current_measure_rows.append(line_text)
    if current_measure_rows:
        measures.append(current_measure_rows)
    return measures


def _parse_notes_text_to_events(notes_text: str, *, key_count: int, timing: TimingMap) -> List[NoteEvent]:
    events: List[NoteEvent] = []
    open_heads: Dict[int, Tuple[float, NoteKind]] = {}

    for measure_index, measure_rows in enumerate(_split_measures(notes_text)):
        rows_per_measure = len(measure_rows)
        for row_index, row_text in enumerate(measure_rows):
            normalized_row = "".join([char for char in row_text if not char.isspace()])
            if len(normalized_row) != key_count:
                raise SimfileValidationError(
                    f"Invalid row width. Expected {key_count}, got {len(normalized_row)}: {row_text!r}"
                )
            beat_value = (measure_index + float(row_index) / float(rows_per_measure)) * BEATS_PER_MEASURE
            time_seconds = timing.beat_to_seconds(beat_value)

            for lane_index, symbol in enumerate(normalized_row):
                if symbol in _IGNORED_SYMBOLS:
                    continue
                if symbol == _SYMBOL_TAP:
                    events.append(NoteEvent(time_seconds=time_seconds, lane=lane_index))
                elif symbol in (_SYMBOL_HOLD_HEAD, _SYMBOL_ROLL_HEAD):
                    if lane_index in open_heads:
                        raise SimfileValidationError(f"Hold head on lane {lane_index} while another hold is open")
                    kind = NoteKind.HOLD if symbol == _SYMBOL_HOLD_HEAD else NoteKind.ROLL
                    open_heads[lane_index] = (time_seconds, kind)
                elif symbol == _SYMBOL_TAIL:
                    head = open_heads.pop(lane_index, None)
                    if head is None:
                        raise SimfileValidationError(f"Hold tail on lane {lane_index} without a head")
                    events.append(
                        NoteEvent(time_seconds=head[0], lane=lane_index, kind=head[1], end_time_seconds=time_seconds)
                    )
                else:
                    raise SimfileValidationError(f"Unsupported note symbol {symbol!r} in row {row_text!r}.")

    if open_heads:
        raise SimfileValidationError(f"Hold heads without tails on lanes {sorted(open_heads)}")
    return events


def _build_metadata(tags: Dict[str, str], simfile_path: Path) -> ChartMetadata:
    return ChartMetadata(
        title=tags.get("TITLE", "").strip() or simfile_path.stem,
        subtitle=tags.get("SUBTITLE", ""),
        artist=tags.get("ARTIST", ""),
        title_translit=tags.get("TITLETRANSLIT", ""),
        subtitle_translit=tags.get("SUBTITLETRANSLIT", ""),
        artist_translit=tags.get("ARTISTTRANSLIT", ""),
        genre=tags.get("GENRE", ""),
        credit=tags.get("CREDIT", ""),
        music=_optional_path(tags, "MUSIC"),
        banner=_optional_path(tags, "BANNER"),
        background=_optional_path(tags, "BACKGROUND"),
        sample_start_seconds=_parse_optional_float(tags, "SAMPLESTART"),
        sample_length_seconds=_parse_optional_float(tags, "SAMPLELENGTH"),
        source_path=Path(simfile_path),
    )


def load_simfile(simfile_path: Path) -> List[Chart]:
    simfile_path = Path(simfile_path)
    simfile_text = _read_text_utf8(simfile_path)
    tags = _parse_sm_tags(simfile_text)

    try:
        timing = TimingMap(bpm_segments=tuple(_parse_bpm_segments(tags)), offset_seconds=_parse_offset_seconds(tags))
    except (SimfileError, ValueError) as exc:
        raise SimfileParseError(str(exc), source_path=simfile_path) from exc
    if tags.get("STOPS", "").strip():
        logger.debug("Ignoring #STOPS in %s", simfile_path)

    metadata = _build_metadata(tags, simfile_path)
    notes_blocks_raw = _extract_notes_blocks(simfile_text)
    if not notes_blocks_raw:
        raise SimfileParseError("No #NOTES blocks found", source_path=simfile_path)

    charts: List[Chart] = []
    for block_body in notes_blocks_raw:
        try:
            block = _parse_notes_block(block_body)
        except SimfileError as exc:
            raise SimfileParseError(str(exc), source_path=simfile_path) from exc
        if not gamemodes.is_known_gamemode(block.step_type):
            logger.warning("Skipping unknown step type %r in %s", block.step_type, simfile_path)
            continue
        key_count = gamemodes.key_count(block.step_type)
        try:
            notes = _parse_notes_text_to_events(block.notes_text, key_count=key_count, timing=timing)
        except SimfileError as exc:
            raise SimfileValidationError(f"{block.step_type} {block.difficulty}: {exc}", source_path=simfile_path) from exc
        charts.append(
            Chart(
                notes=tuple(notes),
                key_count=key_count,
                gamemode=block.step_type,
                timing=timing,
                metadata=metadata,
                difficulty=block.difficulty,
                meter=block.meter,
                description=block.description,
            )
        )
    return charts


def _beat_to_tick(beat: float) -> int:
    return int(math.floor(float(beat) * TICKS_PER_BEAT + 0.5))


def _place_symbols(chart: Chart, timing: TimingMap) -> Dict[int, List[str]]:
    rows: Dict[int, List[str]] = {}

    def slot(tick: int, lane: int) -> str:
        return rows.get(tick, ["0"] * chart.key_count)[lane]

    def put(tick: int, lane: int, symbol: str) -> None:
        rows.setdefault(tick, ["0"] * chart.key_count)[lane] = symbol

    skipped_count = 0
    for note in chart.notes:
        lane = int(note.lane)
        if lane < 0 or lane >= chart.key_count:
            raise SimfileValidationError(f"Invalid lane index {lane} for {chart.key_count}-key chart")
        start_tick = _beat_to_tick(timing.seconds_to_beat(note.time_seconds))
        if start_tick < 0 or slot(start_tick, lane) != "0":
            skipped_count += 1
            continue

        end_tick: Optional[int] = None
        if note.is_sustained and note.end_time_seconds is not None:
            end_tick = _beat_to_tick(timing.seconds_to_beat(note.end_time_seconds))
            # A tail sharing its slot with another note moves back one tick.
            if slot(end_tick, lane) != "0":
                end_tick -= 1
            if end_tick <= start_tick or slot(end_tick, lane) != "0":
                end_tick = None

        if end_tick is None:
            put(start_tick, lane, _SYMBOL_TAP)
        else:
            put(start_tick, lane, _SYMBOL_ROLL_HEAD if note.kind is NoteKind.ROLL else _SYMBOL_HOLD_HEAD)
            put(end_tick, lane, _SYMBOL_TAIL)

    if skipped_count:
        logger.debug("Skipped %d notes that collided or started before beat 0", skipped_count)
    return rows


def build_notes_text(chart: Chart, timing: TimingMap) -> str:
    rows = _place_symbols(chart, timing)
    last_tick = max(rows) if rows else 0
    measures_count = last_tick // TICKS_PER_MEASURE + 1

    output_lines: List[str] = []
    for measure_index in range(measures_count):
        measure_start = measure_index * TICKS_PER_MEASURE
        offsets = [tick - measure_start for tick in rows if measure_start <= tick < measure_start + TICKS_PER_MEASURE]
        step = TICKS_PER_BEAT
        for offset in offsets:
            step = math.gcd(step, offset)
        step = step or TICKS_PER_BEAT

        if measure_index > 0:
            output_lines.append(",")
        output_lines.append(f"// Measure {measure_index}")
        empty_row = "0" * chart.key_count
        for offset in range(0, TICKS_PER_MEASURE, step):
            row = rows.get(measure_start + offset)
            output_lines.append("".join(row) if row is not None else empty_row)

    return "\n".join(output_lines) + "\n"


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{float(value):.6f}".rstrip("0").rstrip(".")


def _format_bpm_segments(timing: TimingMap) -> str:
    return ",".join(f"{_format_number(beat) or '0'}={_format_number(bpm)}" for beat, bpm in timing.bpm_segments)


def _path_text(path: Optional[Path]) -> str:
    return path.as_posix() if path is not None else ""


def save_simfile(output_path: Path, charts: Sequence[Chart]) -> None:
    if not charts:
        raise SimfileValidationError("Zero charts supplied", source_path=output_path)

    main_chart = charts[0]
    metadata = main_chart.metadata
    timing = main_chart.timing

    lines: List[str] = []
    lines.append("// Converted automatically by beatconv")
    lines.append(f"#TITLE:{metadata.title};")
    lines.append(f"#SUBTITLE:{metadata.subtitle};")
    lines.append(f"#ARTIST:{metadata.artist};")
    lines.append(f"#TITLETRANSLIT:{metadata.title_translit};")
    lines.append(f"#SUBTITLETRANSLIT:{metadata.subtitle_translit};")
    lines.append(f"#ARTISTTRANSLIT:{metadata.artist_translit};")
    lines.append(f"#GENRE:{metadata.genre};")
    lines.append(f"#CREDIT:{metadata.credit};")
    lines.append(f"#BANNER:{_path_text(metadata.banner)};")
    lines.append(f"#BACKGROUND:{_path_text(metadata.background)};")
    lines.append(f"#MUSIC:{_path_text(metadata.music)};")
    lines.append(f"#OFFSET:{_format_number(timing.offset_seconds) or '0'};")
    lines.append(f"#SAMPLESTART:{_format_number(metadata.sample_start_seconds)};")
    lines.append(f"#SAMPLELENGTH:{_format_number(metadata.sample_length_seconds)};")
    lines.append("#SELECTABLE:YES;")
    lines.append(f"#BPMS:{_format_bpm_segments(timing)};")
    lines.append("#STOPS:;")

    for chart in charts:
        difficulty_label = gamemodes.canonical_difficulty(chart.difficulty)
        description = chart.description
        if difficulty_label.lower() != str(chart.difficulty).strip().lower() and not description:
            description = str(chart.difficulty)
        lines.append("")
        lines.append("#NOTES:")
        lines.append(f"     {gamemodes.normalize_gamemode(chart.gamemode)}:")
        lines.append(f"     {description}:")
        lines.append(f"     {difficulty_label}:")
        lines.append(f"     {max(1, int(chart.meter))}:")
        lines.append("     0.000,0.000,0.000,0.000,0.000:")
        lines.append(build_notes_text(chart, timing).rstrip("\n"))
        lines.append(";")
    lines.append("")

    # Written to a sibling temp file, then renamed into place.
    temp_path = output_path.with_suffix(output_path.suffix + ".tmp")
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path.write_text("\n".join(lines), encoding="utf-8")
        temp_path.replace(output_path)
    except OSError as exc:
        temp_path.unlink(missing_ok=True)
        raise SimfileError(f"Failed to write simfile: {output_path}", source_path=metadata.source_path) from exc
