"""Community detection over similarity graphs with one normalized output format."""

from __future__ import annotations

import logging
import time
from typing import Mapping

import numpy as np
from scipy import sparse

from ..errors import ConfigurationError
from .backends import CommunityBackend, CommunityDetectionAlgorithm, DetectionResult, default_backends

logger = logging.getLogger(__name__)


def dominant_communities(memberships: sparse.spmatrix) -> np.ndarray:
    """Community with the highest membership level per node.

    Entries are scanned in ascending column order and only a strictly greater
    level replaces the current choice, so the first community wins on ties.
    Rows without a positive entry map to community 0.
    """
    m = sparse.csr_matrix(memberships, copy=True)
    m.sort_indices()
    n = m.shape[0]
    vector = np.zeros(n, dtype=np.int64)
    for node in range(n):
        start, end = m.indptr[node], m.indptr[node + 1]
        max_level = 0.0
        community = 0
        for col, level in zip(m.indices[start:end], m.data[start:end]):
            if level > max_level:
                max_level = float(level)
                community = int(col)
        vector[node] = community
    return vector


def make_non_overlapping(memberships: sparse.spmatrix) -> sparse.csr_matrix:
    """Collapse a cover into a hard partition with one unit entry per row.

    The column count is kept even when some communities end up empty.
    """
    n, k = memberships.shape
    vector = dominant_communities(memberships)
    if n and k == 0:
        raise ValueError("cannot collapse memberships without any community column")
    return sparse.csr_matrix((np.ones(n, dtype=np.float64), (np.arange(n), vector)), shape=(n, k))


def compute_memberships_vector(memberships: sparse.spmatrix) -> np.ndarray:
    return dominant_communities(memberships)


class CommunityDetector:
    """Runs one of the configured backends over a weighted graph.

    Usage: configure with the setters, attach a graph, call `detect_communities()`,
    then read `memberships`, `memberships_vector`, `num_communities` and
    `computation_time`. The instance can be reused with another graph; results of
    the previous run are replaced, never merged.
    """

    def __init__(self, backends: Mapping[CommunityDetectionAlgorithm, CommunityBackend] | None = None) -> None:
        self.backends: dict[CommunityDetectionAlgorithm, CommunityBackend] = dict(
            default_backends() if backends is None else backends
        )

        self.algorithm: CommunityDetectionAlgorithm | None = None
        self.overlapping = True
        self.graph: sparse.spmatrix | None = None

        # DMID parameters
        self.dmid_leadership_iteration_bound = 1000
        self.dmid_leadership_precision_factor = 0.001
        self.dmid_profitability_delta = 0.1
        # Walktrap parameters
        self.walktrap_steps = 2
        # SLPA parameters
        self.slpa_probability_threshold = 0.15
        self.slpa_memory_size = 100
        self.seed: int | None = None

        self._memberships: sparse.csr_matrix | None = None
        self._memberships_vector: np.ndarray | None = None
        self._computation_time = 0

    def set_algorithm(self, algorithm: CommunityDetectionAlgorithm | str) -> None:
        try:
            self.algorithm = CommunityDetectionAlgorithm(algorithm)
        except ValueError as exc:
            allowed = ", ".join(a.value for a in CommunityDetectionAlgorithm)
            raise ConfigurationError(f"Unknown community detection algorithm {algorithm!r}; expected one of [{allowed}]") from exc

    def set_graph(self, graph: sparse.spmatrix) -> None:
        self.graph = graph

    def set_overlapping(self, overlapping: bool) -> None:
        self.overlapping = bool(overlapping)

    def set_dmid_parameters(self, iteration_bound: int, precision_factor: float, profitability_delta: float) -> None:
        self.dmid_leadership_iteration_bound = iteration_bound
        self.dmid_leadership_precision_factor = precision_factor
        self.dmid_profitability_delta = profitability_delta

    def set_walktrap_parameters(self, steps: int) -> None:
        self.walktrap_steps = steps

    def set_slpa_parameters(self, probability_threshold: float, memory_size: int) -> None:
        self.slpa_probability_threshold = probability_threshold
        self.slpa_memory_size = memory_size

    def set_seed(self, seed: int | None) -> None:
        self.seed = seed

    @property
    def memberships(self) -> sparse.csr_matrix | None:
        return self._memberships

    @property
    def memberships_vector(self) -> np.ndarray | None:
        return self._memberships_vector

    @property
    def num_communities(self) -> int:
        if self._memberships is None:
            raise RuntimeError("detect_communities() has not been run")
        return int(self._memberships.shape[1])

    @property
    def computation_time(self) -> int:
        """Whole seconds spent in the last `detect_communities()` call."""
        return self._computation_time

    def backend_parameters(self) -> dict[str, str]:
        """String-encoded parameters for the selected backend."""
        if self.algorithm == CommunityDetectionAlgorithm.DMID:
            return {
                "leadershipIterationBound": str(self.dmid_leadership_iteration_bound),
                "leadershipPrecisionFactor": str(self.dmid_leadership_precision_factor),
                "profitabilityDelta": str(self.dmid_profitability_delta),
            }
        if self.algorithm == CommunityDetectionAlgorithm.SLPA:
            return {
                "probabilityThreshold": str(self.slpa_probability_threshold),
                "memorySize": str(self.slpa_memory_size),
                "seed": str(self.seed),
            }
        if self.algorithm == CommunityDetectionAlgorithm.WALKTRAP:
            return {"steps": str(self.walktrap_steps)}
        raise ConfigurationError("No community detection algorithm selected")

    def detect_communities(self) -> None:
        if self.algorithm is None:
            raise ConfigurationError("No community detection algorithm selected")
        if self.graph is None:
            raise ConfigurationError("No graph set for community detection")
        backend = self.backends.get(self.algorithm)
        if backend is None:
            raise ConfigurationError(f"No backend registered for {self.algorithm.value}")

        params = self.backend_parameters()
        logger.info("%s: %s", self.algorithm.value, params)

        t0 = time.perf_counter()
        result: DetectionResult = backend.detect(self.graph, params)

        memberships = sparse.csr_matrix(result.memberships)
        if backend.overlapping or result.vector is None:
            if not self.overlapping:
                memberships = make_non_overlapping(memberships)
            vector = compute_memberships_vector(memberships)
        else:
            vector = np.asarray(result.vector, dtype=np.int64)
        elapsed = time.perf_counter() - t0

        # Publish only complete results.
        self._memberships = memberships
        self._memberships_vector = vector
        self._computation_time = int(elapsed)
        logger.info(
            "%s: %d communities over %d nodes in %.2fs",
            self.algorithm.value,
            memberships.shape[1],
            memberships.shape[0],
            elapsed,
        )
