"""Walktrap (random-walk hierarchical clustering) via python-igraph."""

from __future__ import annotations

import logging
from typing import Mapping

import numpy as np
from scipy import sparse

from ..errors import CommunityDetectionError
from .backends import (
    CommunityBackend,
    CommunityDetectionAlgorithm,
    DetectionResult,
    ParameterSpec,
    memberships_from_labels,
    undirected_graph,
)

logger = logging.getLogger(__name__)


def to_igraph(graph: sparse.csr_matrix):
    """Build an undirected weighted igraph Graph from the upper triangle of a symmetric adjacency."""
    import igraph as ig

    upper = sparse.triu(graph, k=1).tocoo()
    edges = list(zip(upper.row.tolist(), upper.col.tolist()))
    g = ig.Graph(n=graph.shape[0], edges=edges, directed=False)
    g.es["weight"] = upper.data.tolist()
    return g


class WalktrapBackend(CommunityBackend):
    algorithm = CommunityDetectionAlgorithm.WALKTRAP
    overlapping = False
    parameters = (
        ParameterSpec("steps", int, 2, lambda v: v >= 1, "must be >= 1"),
    )

    def detect(self, graph: sparse.spmatrix, params: Mapping[str, str] | None = None) -> DetectionResult:
        steps = self.parse_parameters(params)["steps"]
        g = undirected_graph(graph, self.algorithm)
        n = g.shape[0]

        if g.nnz == 0:
            # No edges to walk on: every node is its own community.
            labels = list(range(n))
        else:
            import igraph as ig

            ig_graph = to_igraph(g)
            try:
                dendrogram = ig_graph.community_walktrap(weights="weight", steps=int(steps))
                labels = dendrogram.as_clustering().membership
            except ig.InternalError as exc:
                raise CommunityDetectionError(self.algorithm.value, str(exc)) from exc

        memberships, vector = memberships_from_labels(labels)
        return DetectionResult(memberships=memberships, vector=np.asarray(vector, dtype=np.int64))
