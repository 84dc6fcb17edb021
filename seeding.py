# -*- coding: utf-8 -*-
########################
# seeding.py
########################
# Purpose:
# - One run-wide seed, split into independent random generators per decision site.
#
# Design notes:
# - Generators are derived with sha256 over (run seed, chart identity, purpose).
# - Purposes carry the node id, so two stages never share a stream.
# - Worker scheduling has no effect on which generator a chart receives.
#
########################
# Interfaces:
# Public dataclasses:
# - SeedSource(seed: int = DEFAULT_SEED)
#   - derive_seed(*parts: str) -> int
#   - rng_for(chart, purpose: str) -> random.Random
#
########################

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass

from beatmap_models import Chart


DEFAULT_SEED = 0x05D2_0002


@dataclass(frozen=True)
class SeedSource:
    """Run-wide random source.

    Created once per run and passed explicitly to every stage that draws random numbers.
    Each decision site gets its own generator derived from (run seed, chart identity, purpose),
    so the output does not depend on how beatmapsets are scheduled across worker threads.
    """

    seed: int = DEFAULT_SEED

    def derive_seed(self, *parts: str) -> int:
        payload = "|".join([str(int(self.seed))] + [str(part) for part in parts]).encode("utf-8")
        digest = hashlib.sha256(payload).digest()
        return int.from_bytes(digest[:8], byteorder="big", signed=False)

    def rng_for(self, chart: Chart, purpose: str) -> random.Random:
        return random.Random(self.derive_seed(chart.identity(), purpose))
