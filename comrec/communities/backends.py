"""Pluggable community-detection backends behind one `detect(graph, params)` interface.

Every backend consumes a weighted adjacency matrix plus a mapping of
string-encoded parameters and returns a `DetectionResult`:

- overlapping backends (DMID, SLPA) return a membership matrix whose rows may
  hold several fractional entries (each row sums to 1);
- hard-partition backends (Walktrap) return a one-hot membership matrix and the
  per-node community vector straight from the solver.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

import numpy as np
from scipy import sparse

from ..errors import ConfigurationError, MalformedGraphError


class CommunityDetectionAlgorithm(str, Enum):
    WALKTRAP = "walktrap"
    DMID = "dmid"
    SLPA = "slpa"


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    caster: Callable[[str], Any]
    default: Any
    check: Callable[[Any], bool] | None = None
    requirement: str = ""


@dataclass(frozen=True)
class DetectionResult:
    memberships: sparse.csr_matrix
    # Only set by hard-partition backends.
    vector: np.ndarray | None = None

    @property
    def num_communities(self) -> int:
        return int(self.memberships.shape[1])


class CommunityBackend(ABC):
    """Strategy interface for one community-detection algorithm."""

    algorithm: CommunityDetectionAlgorithm
    overlapping: bool = True
    parameters: Sequence[ParameterSpec] = ()

    def parse_parameters(self, params: Mapping[str, str] | None) -> dict[str, Any]:
        """Decode a `name -> string value` mapping; absent names take their defaults."""
        params = dict(params or {})
        known = {p.name for p in self.parameters}
        unknown = sorted(set(params) - known)
        if unknown:
            raise ConfigurationError(f"{self.algorithm.value}: unknown parameters {unknown}; expected {sorted(known)}")

        parsed: dict[str, Any] = {}
        for spec in self.parameters:
            raw = params.get(spec.name)
            if raw is None:
                parsed[spec.name] = spec.default
                continue
            try:
                value = spec.caster(str(raw).strip())
            except ValueError as exc:
                raise ConfigurationError(
                    f"{self.algorithm.value}: invalid value for {spec.name}: {raw!r}"
                ) from exc
            if spec.check is not None and not spec.check(value):
                raise ConfigurationError(f"{self.algorithm.value}: {spec.name} {spec.requirement}, got {value!r}")
            parsed[spec.name] = value
        return parsed

    @abstractmethod
    def detect(self, graph: sparse.spmatrix, params: Mapping[str, str] | None = None) -> DetectionResult:
        raise NotImplementedError


def undirected_graph(graph: sparse.spmatrix, algorithm: CommunityDetectionAlgorithm) -> sparse.csr_matrix:
    """Validate a weighted adjacency matrix and return a symmetric copy without self-loops."""
    if not sparse.issparse(graph):
        graph = sparse.csr_matrix(np.asarray(graph, dtype=np.float64))
    if graph.ndim != 2 or graph.shape[0] != graph.shape[1]:
        raise MalformedGraphError(algorithm.value, f"adjacency matrix must be square, got shape {graph.shape}")

    g = sparse.csr_matrix(graph, dtype=np.float64, copy=True)
    if g.nnz and not np.isfinite(g.data).all():
        raise MalformedGraphError(algorithm.value, "edge weights must be finite")
    if g.nnz and (g.data < 0).any():
        raise MalformedGraphError(algorithm.value, "edge weights must be non-negative")

    g.setdiag(0.0)
    g.eliminate_zeros()
    sym = g.maximum(g.T).tocsr()
    sym.sort_indices()
    return sym


def memberships_from_labels(labels: Sequence[int]) -> tuple[sparse.csr_matrix, np.ndarray]:
    """One-hot membership matrix and vector from a hard partition.

    Community ids are renumbered to `[0, k)` in order of first appearance.
    """
    n = len(labels)
    remap: dict[int, int] = {}
    vector = np.zeros(n, dtype=np.int64)
    for node, label in enumerate(labels):
        vector[node] = remap.setdefault(int(label), len(remap))

    matrix = sparse.csr_matrix(
        (np.ones(n, dtype=np.float64), (np.arange(n), vector)),
        shape=(n, len(remap)),
    )
    return matrix, vector


def normalized_cover(
    rows: Sequence[int],
    cols: Sequence[int],
    values: Sequence[float],
    shape: tuple[int, int],
) -> sparse.csr_matrix:
    """Build a cover matrix whose non-empty rows sum to 1."""
    m = sparse.csr_matrix(
        (np.asarray(values, dtype=np.float64), (np.asarray(rows, dtype=np.int64), np.asarray(cols, dtype=np.int64))),
        shape=shape,
    )
    m.sum_duplicates()
    m.eliminate_zeros()
    row_sums = np.asarray(m.sum(axis=1)).ravel()
    scale = np.divide(1.0, row_sums, out=np.zeros_like(row_sums), where=row_sums > 0)
    m = sparse.diags(scale) @ m
    m = sparse.csr_matrix(m)
    m.sort_indices()
    return m


def default_backends() -> dict[CommunityDetectionAlgorithm, CommunityBackend]:
    from .dmid import DmidBackend
    from .slpa import SlpaBackend
    from .walktrap import WalktrapBackend

    return {
        CommunityDetectionAlgorithm.WALKTRAP: WalktrapBackend(),
        CommunityDetectionAlgorithm.DMID: DmidBackend(),
        CommunityDetectionAlgorithm.SLPA: SlpaBackend(),
    }
