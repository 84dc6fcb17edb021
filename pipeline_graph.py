# -*- coding: utf-8 -*-
########################
# pipeline_graph.py
########################
# Purpose:
# - Compile the parsed node list into an immutable graph of stage nodes with index-based
#   successor lists, then walk beatmapsets through it.
#
# Design notes:
# - Compilation runs right to left with a continuation: the ids a node's Auto route forwards to.
#   The top level has no continuation, so a dangling Auto on a non-Write stage is a ConfigError.
# - Chain compiles its entries as a private sub-pipeline ending in the parent continuation.
#   Nest compiles every entry against the same continuation, so the input fans out and the
#   outputs merge. Pipe compiles its single entry in place.
# - A stage's from sub-graph is compiled with the stage itself as the continuation.
# - Named routes are resolved after every node exists, so declaration order does not matter.
# - Nodes are visited in topological order. Each node gets one group per delivering edge.
# - Nodes without successors are terminal: their output is returned to the caller.
# - Charts are immutable, so fan-out hands every successor the same chart objects.
#
########################
# Interfaces:
# Public dataclasses:
# - CompiledNode(node_id, node, successors, label)
# - Graph(nodes, entry_ids, order)
# - RunContext(seeds, writer)
# - RunReport(processed, charts_out, failures)
#
# Public functions:
# - build_graph(entries) -> Graph
# - run_graph(graph, charts, seeds=None, writer=None, *, start_ids=None) -> list[Chart]
# - run_sources(graph, *, loader, writer, seeds, workers) -> RunReport
#
########################

from __future__ import annotations

import heapq
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import library_index
import sm_store
from beatmap_models import Chart
from chart_transforms import align, limit_simultaneous, rekey
from difficulty_rating import apply_score, rate
from difficulty_select import select
from errors import CollaboratorError, ConfigError, GamemodeMismatchError, TransformError
from pattern_remap import remap
from pipeline_nodes import (
    NODE_KINDS,
    AlignNode,
    AutoRoute,
    ChainRoute,
    LoadNode,
    NamedRoute,
    NestRoute,
    NullRoute,
    PipeRoute,
    RateNode,
    RekeyNode,
    RemapNode,
    SelectNode,
    SimultaneousNode,
    SubGraphRoute,
    WriteNode,
    node_kind,
    parse_node_list,
)
from seeding import SeedSource


logger = logging.getLogger(__name__)

Writer = Callable[[Sequence[Chart], WriteNode], Any]
Loader = Callable[[Path], List[Chart]]


@dataclass(frozen=True)
class CompiledNode:
    node_id: int
    node: Any
    successors: Tuple[int, ...]
    label: str


@dataclass(frozen=True)
class Graph:
    nodes: Tuple[CompiledNode, ...]
    entry_ids: Tuple[int, ...]
    order: Tuple[int, ...]

    def load_nodes(self) -> List[CompiledNode]:
        return [self.nodes[node_id] for node_id in self.order if isinstance(self.nodes[node_id].node, LoadNode)]

    def find(self, name: str) -> Optional[CompiledNode]:
        for compiled in self.nodes:
            if compiled.node.name == name:
                return compiled
        return None


def default_writer(charts: Sequence[Chart], node: WriteNode) -> library_index.WriteResult:
    return library_index.write_charts(
        charts,
        destination=node.output,
        strategies=node.copy_strategies,
        file_name=node.file_name,
    )


@dataclass(frozen=True)
class RunContext:
    seeds: SeedSource = field(default_factory=SeedSource)
    writer: Writer = default_writer


# A successor before name resolution: a node id or a node name.
_SuccessorRef = Union[int, str]


class _GraphBuilder:
    def __init__(self) -> None:
        self._nodes: List[Any] = []
        self._successor_refs: List[List[_SuccessorRef]] = []
        self._entry_ids_by_name: Dict[str, List[int]] = {}

    def _allocate(self, node: Any) -> int:
        self._nodes.append(node)
        self._successor_refs.append([])
        return len(self._nodes) - 1

    def _label(self, node_id: int) -> str:
        node = self._nodes[node_id]
        if node.name:
            return f"{node_kind(node)}({node.name})"
        return f"{node_kind(node)}#{node_id}"

    def compile_sequence(self, entries: Sequence[Any], continuation: Optional[List[int]]) -> Optional[List[int]]:
        next_ids = continuation
        for entry in reversed(list(entries)):
            next_ids = self.compile_entry(entry, next_ids)
        return next_ids

    def compile_entry(self, entry: Any, continuation: Optional[List[int]]) -> List[int]:
        if isinstance(entry, ChainRoute):
            entry_ids = self.compile_sequence(entry.entries, continuation)
            if entry_ids is None:
                raise ConfigError("empty Chain at the end of the pipeline has nowhere to send charts")
            return entry_ids
        if isinstance(entry, NestRoute):
            entry_ids: List[int] = []
            for sub_entry in entry.entries:
                entry_ids.extend(self.compile_entry(sub_entry, continuation))
            return entry_ids
        if isinstance(entry, PipeRoute):
            return self.compile_entry(entry.entry, continuation)
        if type(entry) not in NODE_KINDS.values():
            raise ConfigError(f"unexpected pipeline entry {entry!r}")
        return self._compile_stage(entry, continuation)

    def _compile_stage(self, node: Any, continuation: Optional[List[int]]) -> List[int]:
        node_id = self._allocate(node)
        self._successor_refs[node_id] = self._resolve_into(node_id, node.into, continuation)

        entry_ids = [node_id]
        source_route = node.from_
        if isinstance(source_route, SubGraphRoute):
            entry_ids = self.compile_entry(source_route, [node_id])
        elif not isinstance(source_route, AutoRoute):
            raise ConfigError(f"{self._label(node_id)}: from must be Auto, Chain, Nest or Pipe")

        if node.name:
            if node.name in self._entry_ids_by_name:
                raise ConfigError(f"duplicate node name {node.name!r}")
            self._entry_ids_by_name[node.name] = list(entry_ids)
        return entry_ids

    def _resolve_into(self, node_id: int, route: Any, continuation: Optional[List[int]]) -> List[_SuccessorRef]:
        if isinstance(route, AutoRoute):
            if continuation is None:
                if isinstance(self._nodes[node_id], WriteNode):
                    return []
                raise ConfigError(
                    f"{self._label(node_id)} routes Auto but is the last node; route it into Null or another node"
                )
            return list(continuation)
        if isinstance(route, NullRoute):
            return []
        if isinstance(route, NamedRoute):
            return [route.name]
        if isinstance(route, SubGraphRoute):
            return list(self.compile_entry(route, continuation))
        raise ConfigError(f"{self._label(node_id)}: unsupported route {route!r}")

    def finish(self, entry_ids: Sequence[int]) -> Graph:
        successors: List[Tuple[int, ...]] = []
        for node_id, refs in enumerate(self._successor_refs):
            resolved: List[int] = []
            for ref in refs:
                if isinstance(ref, str):
                    target_ids = self._entry_ids_by_name.get(ref)
                    if target_ids is None:
                        raise ConfigError(f"{self._label(node_id)} routes into unknown node {ref!r}")
                    resolved.extend(target_ids)
                else:
                    resolved.append(ref)
            successors.append(tuple(resolved))

        order = _topological_order(len(self._nodes), successors, self._label)
        nodes = tuple(
            CompiledNode(node_id=node_id, node=node, successors=successors[node_id], label=self._label(node_id))
            for node_id, node in enumerate(self._nodes)
        )
        return Graph(nodes=nodes, entry_ids=tuple(entry_ids), order=tuple(order))


def _topological_order(
    node_count: int,
    successors: Sequence[Sequence[int]],
    label_for: Callable[[int], str],
) -> List[int]:
    in_degree = [0] * node_count
    for targets in successors:
        for target in targets:
            in_degree[target] += 1

    ready = [node_id for node_id in range(node_count) if in_degree[node_id] == 0]
    heapq.heapify(ready)
    order: List[int] = []
    while ready:
        node_id = heapq.heappop(ready)
        order.append(node_id)
        for target in successors[node_id]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                heapq.heappush(ready, target)

    if len(order) != node_count:
        stuck = sorted(label_for(node_id) for node_id in range(node_count) if in_degree[node_id] > 0)
        raise ConfigError(f"pipeline contains a cycle through: {', '.join(stuck)}")
    return order


def build_graph(entries: Sequence[Any]) -> Graph:
    missing = [kind for kind, node_type in NODE_KINDS.items() if node_type not in _NODE_BODIES]
    if missing:
        raise ConfigError(f"no handler for node kinds: {', '.join(missing)}")

    parsed = parse_node_list(list(entries))
    if not parsed:
        raise ConfigError("pipeline has no nodes")
    builder = _GraphBuilder()
    entry_ids = builder.compile_sequence(parsed, None) or []
    graph = builder.finish(entry_ids)
    logger.debug("built pipeline graph with %d nodes, entries %s", len(graph.nodes), list(graph.entry_ids))
    return graph


########################
# Node bodies
########################


def _flatten(groups: Sequence[Sequence[Chart]]) -> List[Chart]:
    return [chart for group in groups for chart in group]


def _map_each(label: str, charts: Sequence[Chart], transform: Callable[[Chart], Sequence[Chart]]) -> List[Chart]:
    output: List[Chart] = []
    for chart in charts:
        try:
            output.extend(transform(chart))
        except TransformError as exc:
            logger.warning("%s dropped %r: %s", label, chart.metadata.title, exc)
    return output


def _run_load(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: LoadNode = compiled.node
    charts = _flatten(groups)
    if node.exclude_gamemodes:
        kept = [chart for chart in charts if chart.gamemode not in node.exclude_gamemodes]
        if len(kept) != len(charts):
            logger.debug("%s excluded %d charts by step type", compiled.label, len(charts) - len(kept))
        charts = kept
    if not node.gamemodes:
        return charts
    accepted: List[Chart] = []
    for chart in charts:
        if chart.gamemode in node.gamemodes:
            accepted.append(chart)
            continue
        if node.permissive:
            logger.debug("%s skipped %s chart from %s", compiled.label, chart.gamemode, chart.metadata.source_path)
            continue
        raise GamemodeMismatchError(
            f"{compiled.label}: step type {chart.gamemode!r} is not one of {node.gamemodes}",
            source_path=chart.metadata.source_path,
        )
    return accepted


def _run_rekey(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: RekeyNode = compiled.node
    curve = node.curve()
    return _map_each(
        compiled.label,
        _flatten(groups),
        lambda chart: [
            rekey(
                chart,
                gamemode=node.gamemode,
                weight_curve=curve,
                avoid_shuffle=node.avoid_shuffle,
                rng=context.seeds.rng_for(chart, f"rekey:{compiled.node_id}"),
            )
        ],
    )


def _run_rate(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: RateNode = compiled.node
    method = node.build_method()
    scale = node.build_scale()
    labels = [(float(threshold), str(label)) for threshold, label in node.set_diff]

    def rate_one(chart: Chart) -> List[Chart]:
        score = rate(chart, method, scale=scale, labels=labels)
        logger.debug("%s rated %r at %.3f (raw %.3f)", compiled.label, chart.difficulty, score.rescaled, score.raw)
        return [apply_score(chart, score, set_meter=node.set_meter, set_diff=bool(labels))]

    return _map_each(compiled.label, _flatten(groups), rate_one)


def _run_select(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: SelectNode = compiled.node
    selected = select(
        groups,
        max_count=node.max_count,
        prefer=node.prefer,
        dedup_dist=node.dedup_dist,
        dedup_bias=node.dedup_bias,
        diff_names=node.diff_names,
        merge=node.merge,
        target=node.target,
    )
    return _flatten(selected)


def _run_write(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: WriteNode = compiled.node
    charts = _flatten(groups)
    if not charts:
        return []
    try:
        context.writer(charts, node)
    except CollaboratorError as exc:
        logger.error("%s failed to write %d charts: %s", compiled.label, len(charts), exc)
        return []
    return charts


def _run_align(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: AlignNode = compiled.node
    return _map_each(compiled.label, _flatten(groups), lambda chart: [align(chart, snap=node.snap)])


def _run_simultaneous(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: SimultaneousNode = compiled.node
    return _map_each(
        compiled.label,
        _flatten(groups),
        lambda chart: [
            limit_simultaneous(
                chart,
                max_active=node.max_active,
                rng=context.seeds.rng_for(chart, f"simultaneous:{compiled.node_id}"),
            )
        ],
    )


def _run_remap(compiled: CompiledNode, groups: List[List[Chart]], context: RunContext) -> List[Chart]:
    node: RemapNode = compiled.node
    pattern_sets = node.build_pattern_sets()
    curve = node.curve()
    return _map_each(
        compiled.label,
        _flatten(groups),
        lambda chart: remap(
            chart,
            pattern_sets,
            gamemode=node.gamemode,
            weight_curve=curve,
            rng=context.seeds.rng_for(chart, f"remap:{compiled.node_id}"),
        ),
    )


NodeBody = Callable[[CompiledNode, List[List[Chart]], RunContext], List[Chart]]

_NODE_BODIES: Dict[type, NodeBody] = {
    LoadNode: _run_load,
    RekeyNode: _run_rekey,
    RateNode: _run_rate,
    SelectNode: _run_select,
    WriteNode: _run_write,
    AlignNode: _run_align,
    SimultaneousNode: _run_simultaneous,
    RemapNode: _run_remap,
}


########################
# Walking
########################


def run_graph(
    graph: Graph,
    charts: Sequence[Chart],
    seeds: Optional[SeedSource] = None,
    writer: Optional[Writer] = None,
    *,
    start_ids: Optional[Sequence[int]] = None,
) -> List[Chart]:
    """Walk one beatmapset through the graph and return the charts reaching terminal nodes.

    Raises CollaboratorError when a Load node rejects the beatmapset.
    """
    context = RunContext(seeds=seeds or SeedSource(), writer=writer or default_writer)
    inbox: Dict[int, List[List[Chart]]] = {}
    for node_id in graph.entry_ids if start_ids is None else start_ids:
        inbox.setdefault(node_id, []).append(list(charts))

    results: List[Chart] = []
    for node_id in graph.order:
        groups = inbox.pop(node_id, None)
        if groups is None:
            continue
        compiled = graph.nodes[node_id]
        body = _NODE_BODIES[type(compiled.node)]
        output = body(compiled, groups, context)
        logger.debug(
            "%s: %d charts in, %d charts out", compiled.label, sum(len(group) for group in groups), len(output)
        )
        if not compiled.successors:
            results.extend(output)
            continue
        if not output:
            continue
        for successor_id in compiled.successors:
            inbox.setdefault(successor_id, []).append(list(output))
    return results


@dataclass
class RunReport:
    processed: int = 0
    charts_out: int = 0
    failures: List[Tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _process_source(
    graph: Graph,
    load_id: int,
    source_path: Path,
    loader: Loader,
    seeds: SeedSource,
    writer: Optional[Writer],
) -> Tuple[Path, int, Optional[str]]:
    try:
        charts = loader(source_path)
        results = run_graph(graph, charts, seeds, writer, start_ids=[load_id])
    except CollaboratorError as exc:
        logger.error("failed to convert %s: %s", source_path, exc)
        return source_path, 0, str(exc)
    except Exception as exc:
        logger.exception("unexpected error converting %s", source_path)
        return source_path, 0, f"{type(exc).__name__}: {exc}"
    logger.info("converted %s into %d charts", source_path, len(results))
    return source_path, len(results), None


def run_sources(
    graph: Graph,
    *,
    loader: Loader = sm_store.load_simfile,
    writer: Optional[Writer] = None,
    seeds: Optional[SeedSource] = None,
    workers: int = 1,
) -> RunReport:
    """Run every source file named by the Load nodes; each file is one unit of work."""
    load_nodes = graph.load_nodes()
    if not load_nodes:
        raise ConfigError("pipeline has no Load node to read sources from")
    seeds = seeds or SeedSource()

    units: List[Tuple[int, Path]] = []
    for compiled in load_nodes:
        node: LoadNode = compiled.node
        for source_path in library_index.list_source_simfiles(node.paths, recursive=node.recursive):
            units.append((compiled.node_id, source_path))
    logger.info("found %d source simfiles", len(units))

    report = RunReport()
    with ThreadPoolExecutor(max_workers=max(1, int(workers))) as executor:
        futures = [
            executor.submit(_process_source, graph, load_id, source_path, loader, seeds, writer)
            for load_id, source_path in units
        ]
        for future in futures:
            source_path, chart_count, failure = future.result()
            report.processed += 1
            report.charts_out += chart_count
            if failure is not None:
                report.failures.append((source_path, failure))
    return report
