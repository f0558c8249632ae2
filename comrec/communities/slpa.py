"""Speaker-listener label propagation (SLPA) for overlapping communities.

Xie, Szymanski & Liu, "SLPA: Uncovering Overlapping Communities in Social
Networks via a Speaker-listener Interaction Dynamic Process", ICDMW 2011.

Each node keeps a memory of labels, initially its own id. In every round the
nodes listen in random order: each neighbor speaks a label drawn from its memory
(proportionally to label frequency), the listener stores the label with the
largest accumulated edge weight. After `memorySize` rounds, labels whose
frequency in a node's memory is below `probabilityThreshold` are discarded and
the surviving frequencies become the node's membership levels.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Mapping

import numpy as np
from scipy import sparse

from .backends import (
    CommunityBackend,
    CommunityDetectionAlgorithm,
    DetectionResult,
    ParameterSpec,
    normalized_cover,
    undirected_graph,
)

logger = logging.getLogger(__name__)


def _optional_int(raw: str) -> int | None:
    return None if raw.lower() in ("", "none") else int(raw)


class SlpaBackend(CommunityBackend):
    algorithm = CommunityDetectionAlgorithm.SLPA
    overlapping = True
    parameters = (
        ParameterSpec("probabilityThreshold", float, 0.15, lambda v: 0.0 <= v <= 1.0, "must be in [0, 1]"),
        ParameterSpec("memorySize", int, 100, lambda v: v >= 1, "must be >= 1"),
        ParameterSpec("seed", _optional_int, None),
    )

    def detect(self, graph: sparse.spmatrix, params: Mapping[str, str] | None = None) -> DetectionResult:
        p = self.parse_parameters(params)
        g = undirected_graph(graph, self.algorithm)
        memories = self.propagate(g, int(p["memorySize"]), np.random.default_rng(p["seed"]))
        return DetectionResult(memberships=self.post_process(memories, float(p["probabilityThreshold"])))

    @staticmethod
    def propagate(g: sparse.csr_matrix, rounds: int, rng: np.random.Generator) -> list[list[int]]:
        n = g.shape[0]
        memories: list[list[int]] = [[node] for node in range(n)]
        for _ in range(rounds):
            for listener in rng.permutation(n):
                start, end = g.indptr[listener], g.indptr[listener + 1]
                if start == end:
                    memories[listener].append(listener)
                    continue

                received: dict[int, float] = {}
                for speaker, weight in zip(g.indices[start:end], g.data[start:end]):
                    memory = memories[speaker]
                    label = memory[int(rng.integers(len(memory)))]
                    received[label] = received.get(label, 0.0) + float(weight)

                best = max(received.values())
                winners = sorted(label for label, w in received.items() if w == best)
                chosen = winners[0] if len(winners) == 1 else winners[int(rng.integers(len(winners)))]
                memories[listener].append(chosen)
        return memories

    @staticmethod
    def post_process(memories: list[list[int]], threshold: float) -> sparse.csr_matrix:
        n = len(memories)
        rows: list[int] = []
        labels: list[int] = []
        values: list[float] = []
        for node, memory in enumerate(memories):
            counts = Counter(memory)
            total = float(len(memory))
            kept = {label: c / total for label, c in counts.items() if c / total >= threshold}
            if not kept:
                # Threshold above every frequency: keep the dominant label.
                label, c = min(counts.items(), key=lambda kv: (-kv[1], kv[0]))
                kept = {label: c / total}
            for label, level in kept.items():
                rows.append(node)
                labels.append(label)
                values.append(level)

        # Communities are the surviving labels, numbered by label id.
        columns = {label: i for i, label in enumerate(sorted(set(labels)))}
        cols = [columns[label] for label in labels]
        cover = normalized_cover(rows, cols, values, (n, len(columns)))
        logger.debug("SLPA: %d surviving labels over %d nodes", len(columns), n)
        return cover
