"""
config.py

Typed configuration loading and validation for beatconv.

Design goals
- Load exactly one UTF-8 JSON pipeline document
- Validate with pydantic (defaults included); the node list is validated by pipeline_nodes
- Support environment variable overrides
- No other I/O beyond reading the config file (no directory creation)

Config file location
- An explicit path (the CLI --config option) wins.
- Otherwise, if BEATCONV_CONFIG_PATH is set, that file is used.
- Otherwise beatconv searches these paths in order and uses the first one that exists:
  1) ./beatconv_config.json (current working directory)
  2) <user config dir>/beatconv/beatconv_config.json

Example config file (beatconv_config.json)
{
  "seed": 1234,
  "log_level": "info",
  "workers": 4,
  "nodes": [
    {"Load": {"paths": ["songs"], "gamemodes": ["dance-single"]}},
    {"Rekey": {"gamemode": "pump-single"}},
    {"Rate": {"method": "Density", "scale": [0, 10, 1, 20]}},
    {"Select": {"max": 5, "prefer": "Spread", "dedup_dist": 0.5}},
    {"Write": {"output": "converted"}}
  ]
}
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import ConfigError
from logging_config import LogVerbosity, parse_verbosity
from seeding import DEFAULT_SEED


class PipelineConfig(BaseModel):
    seed: int = Field(default=DEFAULT_SEED, description="Seed for every random decision of a run.")
    log_level: LogVerbosity = Field(default=LogVerbosity.INFO, description="error, warning, info or verbose")
    workers: int = Field(default=1, ge=1, description="Beatmapsets converted in parallel.")
    nodes: List[Dict[str, Any]] = Field(min_length=1, description="Pipeline node entries.")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> LogVerbosity:
        return parse_verbosity(value)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir("beatconv", "beatconv"))
    return [
        Path.cwd() / "beatconv_config.json",
        config_directory / "beatconv_config.json",
    ]


def _resolve_config_path() -> Path:
    explicit_path_text = os.environ.get("BEATCONV_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    for candidate_path in _default_config_candidates():
        if candidate_path.exists():
            return candidate_path

    candidates_text = "\n".join("  - " + str(path) for path in _default_config_candidates())
    raise ConfigError(
        "No beatconv config file found. Create beatconv_config.json in one of these locations:\n" + candidates_text
    )


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as exception:
        raise ConfigError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ConfigError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ConfigError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - BEATCONV_SEED
    - BEATCONV_LOG_LEVEL
    - BEATCONV_WORKERS
    """
    updated_config = dict(config_dict)

    def override_string(env_name: str, key_name: str) -> None:
        value_text = os.environ.get(env_name, "")
        if value_text.strip():
            updated_config[key_name] = value_text.strip()

    def override_int(env_name: str, key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            updated_config[key_name] = int(value_text, 0)
        except ValueError as exception:
            raise ConfigError(f"{env_name} must be an integer, got {value_text!r}") from exception

    override_int("BEATCONV_SEED", "seed")
    override_string("BEATCONV_LOG_LEVEL", "log_level")
    override_int("BEATCONV_WORKERS", "workers")

    return updated_config


def parse_config(config_dict: Dict[str, Any], source: str = "<memory>") -> PipelineConfig:
    try:
        return PipelineConfig.model_validate(config_dict)
    except ValidationError as exception:
        raise ConfigError(f"Config validation failed for {source}:\n{exception}") from exception


def load_config(config_path: Optional[Path] = None) -> Tuple[PipelineConfig, Path]:
    resolved_path = Path(config_path) if config_path is not None else _resolve_config_path()
    json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)
    return parse_config(json_dict, str(resolved_path)), resolved_path


def to_json(config: PipelineConfig) -> str:
    return json.dumps(config.model_dump(mode="json"), ensure_ascii=False, indent=2)
