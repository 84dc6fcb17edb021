"""
beatconv.py

Command line entrypoint: load the pipeline document, build the graph and convert every
source simfile the Load nodes name.

Exit codes
- 0: every beatmapset converted
- 1: at least one beatmapset failed (details are logged)
- 2: configuration error, nothing was processed
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from config import load_config, to_json
from errors import ConfigError
from logging_config import LogVerbosity, configure_logging
from pipeline_graph import build_graph, run_sources
from seeding import SeedSource


logger = logging.getLogger("beatconv")


def _build_argument_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(description="Convert rhythm-game charts through a pipeline of stages.")
    argument_parser.add_argument("--config", type=Path, default=None, help="Pipeline document (JSON).")
    argument_parser.add_argument("--seed", type=int, default=None, help="Override the configured random seed.")
    argument_parser.add_argument("--workers", type=int, default=None, help="Beatmapsets converted in parallel.")
    argument_parser.add_argument("--verbose", action="store_true", help="Log per-node traffic.")
    argument_parser.add_argument("--print-config", action="store_true", help="Print the validated config and exit.")
    return argument_parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parsed_args = _build_argument_parser().parse_args(argv)
    configure_logging(LogVerbosity.VERBOSE if parsed_args.verbose else LogVerbosity.INFO)

    try:
        pipeline_config, config_path = load_config(parsed_args.config)
        if not parsed_args.verbose:
            configure_logging(pipeline_config.log_level)
        graph = build_graph(pipeline_config.nodes)
    except ConfigError as exception:
        logger.error("%s", exception)
        return 2

    if parsed_args.print_config:
        print(to_json(pipeline_config))
        return 0

    seed = parsed_args.seed if parsed_args.seed is not None else pipeline_config.seed
    workers = parsed_args.workers if parsed_args.workers is not None else pipeline_config.workers
    logger.info("Using config %s (seed %d, %d workers)", config_path, seed, workers)

    try:
        report = run_sources(graph, seeds=SeedSource(seed), workers=max(1, int(workers)))
    except ConfigError as exception:
        logger.error("%s", exception)
        return 2

    logger.info(
        "Processed %d beatmapsets, %d charts out, %d failed",
        report.processed,
        report.charts_out,
        len(report.failures),
    )
    for source_path, message in report.failures:
        logger.error("  %s: %s", source_path, message)
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
