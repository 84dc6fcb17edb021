# -*- coding: utf-8 -*-
########################
# library_index.py
########################
# Purpose:
# - Locate source simfiles for Load nodes.
# - Lay out converted songs on disk for Write nodes: one folder per song, one .sm per source,
#   media files placed beside it.
#
# Design notes:
# - Directory layout is an interface contract with sm_store.py and file_placement.py.
# - Keep listing order deterministic (sorted paths).
# - Charts are grouped by their source file; every group becomes one simfile.
# - Media is placed before the simfile is saved, so a failed placement never leaves a
#   simfile pointing at missing files.
# - A failing write_charts call removes the files it created, earlier groups included.
#
########################
# Interfaces:
# Public dataclasses:
# - WriteResult(simfile_paths: list[Path], placed_files: list[Path], created_simfiles: list[Path])
#
# Public functions:
# - list_source_simfiles(source_paths, recursive=True) -> list[pathlib.Path]
# - song_folder_name(chart) -> str
# - write_charts(charts, destination, strategies, file_name=None) -> WriteResult
#
########################

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import sm_store
from beatmap_models import Chart
from errors import CollaboratorError
from file_placement import CopyStrategy, place_file


logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    simfile_paths: List[Path] = field(default_factory=list)
    placed_files: List[Path] = field(default_factory=list)
    created_simfiles: List[Path] = field(default_factory=list)


def _list_sm_files(directory_path: Path, recursive: bool) -> List[Path]:
    if not directory_path.is_dir():
        return []
    pattern = "**/*.sm" if recursive else "*.sm"
    return sorted([path for path in directory_path.glob(pattern) if path.is_file()])


def list_source_simfiles(source_paths: Iterable[Path], recursive: bool = True) -> List[Path]:
    """Expand files and folders into a sorted, de-duplicated list of .sm files."""
    found: List[Path] = []
    seen = set()
    for source_path in source_paths:
        source_path = Path(source_path)
        if source_path.is_file():
            candidates = [source_path]
        elif source_path.is_dir():
            candidates = _list_sm_files(source_path, recursive)
        else:
            logger.warning("Load path does not exist: %s", source_path)
            continue
        for candidate in candidates:
            key = candidate.resolve()
            if key in seen:
                continue
            seen.add(key)
            found.append(candidate)
    return found


_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def _safe_name(text: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", str(text)).strip().strip(".")
    return cleaned or "untitled"


def song_folder_name(chart: Chart) -> str:
    source_path = chart.metadata.source_path
    if source_path is not None and source_path.parent.name:
        return _safe_name(source_path.parent.name)
    return _safe_name(chart.metadata.title)


def _simfile_name(chart: Chart, file_name: Optional[str]) -> str:
    if file_name:
        name = _safe_name(file_name)
    elif chart.metadata.source_path is not None:
        name = _safe_name(chart.metadata.source_path.stem)
    else:
        name = _safe_name(chart.metadata.title)
    return name if name.lower().endswith(".sm") else f"{name}.sm"


def _group_by_source(charts: Sequence[Chart]) -> Dict[str, List[Chart]]:
    groups: Dict[str, List[Chart]] = {}
    for chart in charts:
        source_path = chart.metadata.source_path
        key = str(source_path) if source_path is not None else f"title:{chart.metadata.title}"
        groups.setdefault(key, []).append(chart)
    return groups


def _place_media(chart: Chart, song_directory: Path, strategies: Sequence[CopyStrategy], placed: List[Path]) -> None:
    source_path = chart.metadata.source_path
    for media_path in chart.metadata.media_files():
        if media_path.is_absolute():
            media_source = media_path
        elif source_path is not None:
            media_source = source_path.parent / media_path
        else:
            logger.debug("No source folder to resolve %s against, not placing it", media_path)
            continue
        destination_path = song_directory / media_path.name
        strategy = place_file(media_source, destination_path, strategies)
        if strategy is not None:
            logger.debug("Placed %s via %s", destination_path, strategy.value)
            placed.append(destination_path)


def _relocated(chart: Chart) -> Chart:
    metadata = chart.metadata
    return chart.with_changes(
        metadata=replace(
            metadata,
            music=Path(metadata.music.name) if metadata.music is not None else None,
            banner=Path(metadata.banner.name) if metadata.banner is not None else None,
            background=Path(metadata.background.name) if metadata.background is not None else None,
        )
    )


def write_charts(
    charts: Sequence[Chart],
    destination: Path,
    strategies: Sequence[CopyStrategy],
    file_name: Optional[str] = None,
) -> WriteResult:
    """Write charts under destination, one simfile per source file.

    Raises CollaboratorError when media cannot be placed or the simfile cannot be saved.
    Files created by the failing call are removed again before the error propagates.
    """
    result = WriteResult()
    try:
        _write_groups(charts, Path(destination), strategies, file_name, result)
    except CollaboratorError:
        _remove_created(result)
        raise
    return result


def _remove_created(result: WriteResult) -> None:
    for created_path in result.created_simfiles + result.placed_files:
        try:
            created_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove partial output %s: %s", created_path, exc)


def _write_groups(
    charts: Sequence[Chart],
    destination: Path,
    strategies: Sequence[CopyStrategy],
    file_name: Optional[str],
    result: WriteResult,
) -> None:
    for group in _group_by_source(charts).values():
        main_chart = group[0]
        song_directory = Path(destination) / song_folder_name(main_chart)
        try:
            song_directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CollaboratorError(
                f"Failed to create output folder {song_directory}", source_path=main_chart.metadata.source_path
            ) from exc

        _place_media(main_chart, song_directory, strategies, result.placed_files)
        simfile_path = song_directory / _simfile_name(main_chart, file_name)
        existed = simfile_path.exists()
        sm_store.save_simfile(simfile_path, [_relocated(chart) for chart in group])
        logger.info("Wrote %d charts to %s", len(group), simfile_path)
        result.simfile_paths.append(simfile_path)
        if not existed:
            result.created_simfiles.append(simfile_path)
