# -*- coding: utf-8 -*-
########################
# pipeline_nodes.py
########################
# Purpose:
# - Typed node and route definitions for the conversion pipeline document.
# - Parses the JSON grammar into a closed set of pydantic models, validated before any chart
#   is processed.
#
# Design notes:
# - Stage kinds: Load, Rekey, Rate, Select, Write, Align, Simultaneous, Remap.
#   Routing kinds: Chain, Nest, Pipe. The set is closed: pipeline_graph.py dispatches on it
#   with a fixed table and refuses to build when a kind has no body.
# - A node entry is a one-key object: {"Rate": {...}}. Routes are "Auto", "Null",
#   a node name, or {"Chain": [...]}, {"Nest": [...]}, {"Pipe": entry}.
# - Any validation failure is reported as errors.ConfigError.
#
########################
# Interfaces:
# Public dataclasses (routes):
# - AutoRoute(), NullRoute(), NamedRoute(name), ChainRoute(entries), NestRoute(entries), PipeRoute(entry)
#
# Public models (stages):
# - LoadNode, RekeyNode, RateNode, SelectNode, WriteNode, AlignNode, SimultaneousNode, RemapNode
#
# Public functions:
# - parse_route(value) -> Route
# - parse_node_entry(value) -> StageNode | ChainRoute | NestRoute | PipeRoute
# - parse_node_list(values) -> list[...]
# - node_kind(node) -> str
#
########################

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

import gamemodes
from curve import Curve, flat_curve
from difficulty_rating import CountMethod, DensityMethod, GapMethod, RatingMethod, RatingScale
from difficulty_select import Prefer
from errors import ConfigError
from file_placement import CopyStrategy
from pattern_remap import PatternSet, PatternTemplate


@dataclass(frozen=True)
class AutoRoute:
    pass


@dataclass(frozen=True)
class NullRoute:
    pass


@dataclass(frozen=True)
class NamedRoute:
    name: str


@dataclass(frozen=True)
class ChainRoute:
    entries: Tuple[Any, ...]


@dataclass(frozen=True)
class NestRoute:
    entries: Tuple[Any, ...]


@dataclass(frozen=True)
class PipeRoute:
    entry: Any


Route = Union[AutoRoute, NullRoute, NamedRoute, ChainRoute, NestRoute, PipeRoute]
SubGraphRoute = (ChainRoute, NestRoute, PipeRoute)

DEFAULT_WEIGHT_CURVE: List[Tuple[float, float]] = [(0.0, 1.0), (0.4, 10.0), (0.8, 200.0), (1.4, 300.0)]


def _validate_curve_pairs(value: Optional[List[Tuple[float, float]]]) -> Optional[List[Tuple[float, float]]]:
    if value is None:
        return None
    # Curve raises ValueError for empty or non-increasing points.
    Curve.from_pairs(value)
    return value


class _NodeBase(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    name: Optional[str] = Field(default=None, description="Name other nodes can route into.")
    from_: Any = Field(default_factory=AutoRoute, alias="from", description="Auto or an inline sub-graph run first.")
    into: Any = Field(default_factory=AutoRoute, description="Where this node's output goes.")

    @field_validator("from_", "into", mode="before")
    @classmethod
    def parse_routes(cls, value: Any) -> Any:
        return parse_route(value)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("node name must not be empty")
        if trimmed in ("Auto", "Null"):
            raise ValueError(f"node name {trimmed!r} is reserved")
        return trimmed


class LoadNode(_NodeBase):
    paths: List[Path] = Field(default_factory=list, description="Simfiles or folders to load.")
    recursive: bool = Field(default=True, description="Search folders recursively for .sm files.")
    gamemodes: List[str] = Field(default_factory=list, description="Accepted source step types; empty accepts all.")
    exclude_gamemodes: List[str] = Field(default_factory=list, description="Source step types always dropped.")
    permissive: bool = Field(default=True, description="Skip charts with another step type instead of failing.")

    @field_validator("gamemodes", "exclude_gamemodes")
    @classmethod
    def validate_gamemodes(cls, value: List[str]) -> List[str]:
        normalized = []
        for gamemode in value:
            if not gamemodes.is_known_gamemode(gamemode):
                raise ValueError(f"unknown step type {gamemode!r}")
            normalized.append(gamemode.strip().lower())
        return normalized


class RekeyNode(_NodeBase):
    gamemode: str = Field(default="pump-single", description="Target step type.")
    avoid_shuffle: bool = Field(default=True, description="Keep columns when the keycount already matches.")
    weight_curve: List[Tuple[float, float]] = Field(default_factory=lambda: list(DEFAULT_WEIGHT_CURVE))

    @field_validator("gamemode")
    @classmethod
    def validate_gamemode(cls, value: str) -> str:
        if not gamemodes.is_known_gamemode(value):
            raise ValueError(f"unknown step type {value!r}")
        return value.strip().lower()

    @field_validator("weight_curve")
    @classmethod
    def validate_weight_curve(cls, value: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        return _validate_curve_pairs(value)

    def curve(self) -> Curve:
        return Curve.from_pairs(self.weight_curve)


class RateNode(_NodeBase):
    method: Literal["Count", "Density", "Gap"] = "Count"
    scale: Optional[Tuple[float, float, float, float]] = Field(
        default=None, description="(in_lo, in_hi, out_lo, out_hi) affine rescale; inputs outside clamp."
    )
    set_meter: bool = True
    set_diff: List[Tuple[float, str]] = Field(default_factory=list, description="(threshold, label) table.")
    halo: List[Tuple[float, float]] = Field(default_factory=lambda: [(0.25, 1.0), (0.5, 0.5)])
    chord_weights: List[float] = Field(default_factory=lambda: [0.5])
    exponent: float = Field(default=1.0, gt=0.0)
    gap_curve: Optional[List[Tuple[float, float]]] = None

    @field_validator("gap_curve")
    @classmethod
    def validate_gap_curve(cls, value: Optional[List[Tuple[float, float]]]) -> Optional[List[Tuple[float, float]]]:
        return _validate_curve_pairs(value)

    @field_validator("scale")
    @classmethod
    def validate_scale(cls, value: Optional[Tuple[float, float, float, float]]) -> Optional[Tuple[float, float, float, float]]:
        if value is not None and value[0] == value[1]:
            raise ValueError("scale input domain must not be empty")
        return value

    @field_validator("halo")
    @classmethod
    def validate_halo(cls, value: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        if not value:
            raise ValueError("halo needs at least one (radius, height) band")
        for radius, height in value:
            if radius <= 0.0 or height < 0.0:
                raise ValueError(f"invalid halo band ({radius}, {height})")
        return value

    def build_method(self) -> RatingMethod:
        if self.method == "Density":
            return DensityMethod(
                halo=tuple((float(r), float(h)) for r, h in self.halo),
                chord_weights=tuple(float(weight) for weight in self.chord_weights),
                exponent=float(self.exponent),
            )
        if self.method == "Gap":
            if self.gap_curve is None:
                return GapMethod(exponent=float(self.exponent))
            return GapMethod(gap_curve=Curve.from_pairs(self.gap_curve), exponent=float(self.exponent))
        return CountMethod()

    def build_scale(self) -> Optional[RatingScale]:
        if self.scale is None:
            return None
        in_lo, in_hi, out_lo, out_hi = self.scale
        return RatingScale(in_lo=in_lo, in_hi=in_hi, out_lo=out_lo, out_hi=out_hi)


class SelectNode(_NodeBase):
    merge: bool = True
    max_count: int = Field(default=5, ge=0, alias="max")
    prefer: Prefer = Prefer.SPREAD
    target: float = Field(default=0.0, description="Score preferred by prefer: Nearest.")
    dedup_dist: float = Field(default=0.0, ge=0.0)
    dedup_bias: float = Field(default=0.5, ge=0.0, le=1.0)
    diff_names: List[str] = Field(default_factory=lambda: ["Beginner", "Easy", "Medium", "Hard", "Challenge"])

    @model_validator(mode="after")
    def check_label_capacity(self) -> "SelectNode":
        if self.diff_names and self.max_count > len(self.diff_names):
            raise ValueError(
                f"max ({self.max_count}) is larger than the number of diff_names ({len(self.diff_names)})"
            )
        return self


class WriteNode(_NodeBase):
    into: Any = Field(default_factory=NullRoute)
    output: Path = Field(default=Path("converted"), description="Output root folder.")
    copy_strategies: List[CopyStrategy] = Field(
        default_factory=lambda: [CopyStrategy.HARDLINK, CopyStrategy.COPY, CopyStrategy.SYMLINK],
        alias="copy",
        description="Ways to place media files next to the simfile, tried in order.",
    )
    file_name: Optional[str] = Field(default=None, description="Simfile name; defaults to the source file name.")


class AlignNode(_NodeBase):
    snap: int = Field(default=4, ge=1, description="Grid divisions per beat.")


class SimultaneousNode(_NodeBase):
    max_active: int = Field(default=2, ge=0, alias="max")


class PatternTemplateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    dist: float = Field(ge=0.0, description="Longest span, in beats, of a matching cluster.")
    keys: float = Field(default=0.0, ge=0.0, description="Smallest notes-per-row density of a matching cluster.")
    notes: List[Tuple[float, int]] = Field(min_length=1)
    unit: Optional[float] = Field(default=None, gt=0.0)

    def to_template(self) -> PatternTemplate:
        return PatternTemplate(
            dist=float(self.dist),
            keys=float(self.keys),
            notes=tuple((float(beat), int(column)) for beat, column in self.notes),
            unit=self.unit,
        )


class PatternSetConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = ""
    default_unit: float = Field(default=4.0, gt=0.0)
    cluster_gap: Optional[float] = Field(default=None, ge=0.0)
    templates: List[PatternTemplateConfig] = Field(default_factory=list)

    def to_pattern_set(self) -> PatternSet:
        return PatternSet(
            templates=tuple(template.to_template() for template in self.templates),
            default_unit=float(self.default_unit),
            cluster_gap=self.cluster_gap,
            name=self.name,
        )


class RemapNode(_NodeBase):
    gamemode: str = Field(default="pump-single", description="Target step type.")
    weight_curve: List[Tuple[float, float]] = Field(default_factory=lambda: [(0.0, 1.0)])
    pattern_sets: List[PatternSetConfig] = Field(min_length=1)

    @field_validator("gamemode")
    @classmethod
    def validate_gamemode(cls, value: str) -> str:
        if not gamemodes.is_known_gamemode(value):
            raise ValueError(f"unknown step type {value!r}")
        return value.strip().lower()

    @field_validator("weight_curve")
    @classmethod
    def validate_weight_curve(cls, value: List[Tuple[float, float]]) -> List[Tuple[float, float]]:
        return _validate_curve_pairs(value)

    def curve(self) -> Curve:
        if not self.weight_curve:
            return flat_curve()
        return Curve.from_pairs(self.weight_curve)

    def build_pattern_sets(self) -> List[PatternSet]:
        return [pattern_set.to_pattern_set() for pattern_set in self.pattern_sets]


StageNode = Union[LoadNode, RekeyNode, RateNode, SelectNode, WriteNode, AlignNode, SimultaneousNode, RemapNode]

NODE_KINDS: Dict[str, Type[_NodeBase]] = {
    "Load": LoadNode,
    "Rekey": RekeyNode,
    "Rate": RateNode,
    "Select": SelectNode,
    "Write": WriteNode,
    "Align": AlignNode,
    "Simultaneous": SimultaneousNode,
    "Remap": RemapNode,
}

_KIND_BY_TYPE = {node_type: kind for kind, node_type in NODE_KINDS.items()}


def node_kind(node: Any) -> str:
    return _KIND_BY_TYPE.get(type(node), type(node).__name__)


def _single_key_object(value: Any, what: str) -> Tuple[str, Any]:
    if not isinstance(value, dict) or len(value) != 1:
        raise ConfigError(f"{what} must be an object with exactly one key, got {value!r}")
    return next(iter(value.items()))


def parse_node_list(values: Any) -> List[Any]:
    if not isinstance(values, (list, tuple)):
        raise ConfigError(f"expected a list of nodes, got {values!r}")
    return [parse_node_entry(value) for value in values]


def parse_node_entry(value: Any) -> Any:
    if isinstance(value, (_NodeBase,) + SubGraphRoute):
        return value

    kind, params = _single_key_object(value, "node entry")
    if kind == "Chain":
        return ChainRoute(entries=tuple(parse_node_list(params)))
    if kind == "Nest":
        return NestRoute(entries=tuple(parse_node_list(params)))
    if kind == "Pipe":
        return PipeRoute(entry=parse_node_entry(params))

    node_type = NODE_KINDS.get(kind)
    if node_type is None:
        raise ConfigError(f"unknown node kind {kind!r}; expected one of {sorted(NODE_KINDS)} or Chain, Nest, Pipe")
    try:
        return node_type.model_validate(params if params is not None else {})
    except ValidationError as exception:
        raise ConfigError(f"invalid {kind} node:\n{exception}") from exception


def parse_route(value: Any) -> Route:
    if isinstance(value, (AutoRoute, NullRoute, NamedRoute) + SubGraphRoute):
        return value
    if value is None:
        return NullRoute()
    if isinstance(value, str):
        text = value.strip()
        if text == "Auto":
            return AutoRoute()
        if text == "Null":
            return NullRoute()
        if not text:
            raise ConfigError("route name must not be empty")
        return NamedRoute(name=text)

    kind, params = _single_key_object(value, "route")
    if kind in ("Chain", "Nest", "Pipe"):
        return parse_node_entry(value)
    raise ConfigError(f"unknown route kind {kind!r}; expected Auto, Null, a node name, Chain, Nest or Pipe")
