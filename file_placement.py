# -*- coding: utf-8 -*-
########################
# file_placement.py
########################
# Purpose:
# - Place media files (music, banner, background) next to a written simfile.
# - Tries an ordered list of strategies until one succeeds: hardlink, copy, symlink.
#
# Design notes:
# - An existing destination file is left as is.
# - Failures of one strategy fall through to the next; only when every strategy fails
#   is a CollaboratorError raised.
#
########################
# Interfaces:
# Public enums:
# - class CopyStrategy(str, enum.Enum): HARDLINK | COPY | SYMLINK
#
# Public functions:
# - place_file(source_path, destination_path, strategies) -> CopyStrategy | None
#
########################

from __future__ import annotations

import enum
import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Sequence

from errors import CollaboratorError


logger = logging.getLogger(__name__)


class CopyStrategy(str, enum.Enum):
    HARDLINK = "Hardlink"
    COPY = "Copy"
    SYMLINK = "Symlink"


def _apply_strategy(strategy: CopyStrategy, source_path: Path, destination_path: Path) -> None:
    if strategy is CopyStrategy.HARDLINK:
        os.link(source_path, destination_path)
    elif strategy is CopyStrategy.COPY:
        shutil.copy2(source_path, destination_path)
    elif strategy is CopyStrategy.SYMLINK:
        os.symlink(source_path.resolve(), destination_path)
    else:
        raise ValueError(f"Unsupported copy strategy: {strategy!r}")


def place_file(source_path: Path, destination_path: Path, strategies: Sequence[CopyStrategy]) -> Optional[CopyStrategy]:
    """Place source_path at destination_path.

    Returns the strategy that worked, or None when the destination already existed.
    """
    if destination_path.exists() or destination_path.is_symlink():
        return None
    if not source_path.is_file():
        raise CollaboratorError(f"Referenced file does not exist: {source_path}", source_path=source_path)
    if not strategies:
        raise CollaboratorError("No copy strategies configured", source_path=source_path)

    destination_path.parent.mkdir(parents=True, exist_ok=True)
    errors = []
    for strategy in strategies:
        try:
            _apply_strategy(CopyStrategy(strategy), source_path, destination_path)
        except OSError as exception:
            logger.debug("%s of %s failed: %s", CopyStrategy(strategy).value, source_path, exception)
            errors.append(f"{CopyStrategy(strategy).value}: {exception}")
            continue
        return CopyStrategy(strategy)

    raise CollaboratorError(
        f"Failed to place {destination_path.name}: " + "; ".join(errors),
        source_path=source_path,
    )
