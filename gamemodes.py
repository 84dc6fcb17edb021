# -*- coding: utf-8 -*-
########################
# gamemodes.py
########################
# Purpose:
# - StepMania step type table: step type id -> number of columns.
# - Difficulty label normalization shared by the loader, the selector and the writer.
#
# Design notes:
# - Step type ids are the lowercase names StepMania writes in #NOTES blocks.
# - Unknown step types are an error, never a silent default.
#
########################

from __future__ import annotations

from typing import Dict, List

from errors import ConfigError


_KEY_COUNTS: Dict[str, int] = {
    "dance-single": 4,
    "dance-double": 8,
    "dance-couple": 8,
    "dance-solo": 6,
    "dance-threepanel": 3,
    "dance-routine": 8,
    "pump-single": 5,
    "pump-halfdouble": 6,
    "pump-double": 10,
    "pump-couple": 10,
    "pump-routine": 10,
    "kb7-single": 7,
    "ez2-single": 5,
    "ez2-double": 10,
    "ez2-real": 7,
    "para-single": 5,
    "ds3ddx-single": 8,
    "bm-single5": 6,
    "bm-versus5": 6,
    "bm-double5": 12,
    "bm-single7": 8,
    "bm-versus7": 8,
    "bm-double7": 16,
    "maniax-single": 4,
    "maniax-double": 8,
    "techno-single4": 4,
    "techno-single5": 5,
    "techno-single8": 8,
    "techno-double4": 8,
    "techno-double5": 10,
    "techno-double8": 16,
    "pnm-five": 5,
    "pnm-nine": 9,
    "kickbox-human": 4,
    "kickbox-quadarm": 4,
    "kickbox-insect": 6,
    "kickbox-arachnid": 8,
}

DIFFICULTY_NAMES: List[str] = ["Beginner", "Easy", "Medium", "Hard", "Challenge", "Edit"]

_DIFFICULTY_CANONICAL_LABEL = {name.lower(): name for name in DIFFICULTY_NAMES}


def normalize_gamemode(gamemode: str) -> str:
    gamemode_text = str(gamemode or "").strip().lower()
    if gamemode_text not in _KEY_COUNTS:
        raise ConfigError(f"Unsupported step type: {gamemode!r}")
    return gamemode_text


def is_known_gamemode(gamemode: str) -> bool:
    return str(gamemode or "").strip().lower() in _KEY_COUNTS


def key_count(gamemode: str) -> int:
    return _KEY_COUNTS[normalize_gamemode(gamemode)]


def canonical_difficulty(difficulty: str) -> str:
    """Map a difficulty label onto StepMania's canonical spelling.

    Labels StepMania does not know are written as Edit charts.
    """
    difficulty_text = str(difficulty or "").strip().lower()
    return _DIFFICULTY_CANONICAL_LABEL.get(difficulty_text, "Edit")
