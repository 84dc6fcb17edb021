# -*- coding: utf-8 -*-
########################
# errors.py
########################
# Purpose:
# - Shared exception taxonomy for the conversion engine.
#
# Design notes:
# - ConfigError is fatal and raised before any chart is processed.
# - TransformError is recovered by the stage that raised it (clamp, identity mapping, drop chart).
# - CollaboratorError is isolated to one beatmapset or chart and reported with its source path.
#
########################

from __future__ import annotations

from pathlib import Path
from typing import Optional


class BeatconvError(Exception):
    """Base error for the conversion engine."""


class ConfigError(BeatconvError):
    """Raised when the pipeline document or graph is malformed."""


class TransformError(BeatconvError):
    """Raised when a transform cannot apply cleanly to one chart."""


class CollaboratorError(BeatconvError):
    """Raised when an external load or write step fails for one source."""

    def __init__(self, message: str, *, source_path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.source_path = source_path

    def __str__(self) -> str:
        base_text = super().__str__()
        if self.source_path is None:
            return base_text
        return f"{base_text} (source: {self.source_path})"


class GamemodeMismatchError(CollaboratorError):
    """Raised when a chart's step type is not one the stage accepts."""
