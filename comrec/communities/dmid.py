"""DMID: disassortative degree mixing and information diffusion.

Shahriari, Krott & Klamma, "Disassortative Degree Mixing and Information
Diffusion for Overlapping Community Detection in Social Networks (DMID)",
WWW 2015 companion.

Phases:

1. Leadership: a random walk over the disassortativity matrix
   `DA[i, j] = |deg(i) - deg(j)| / (deg(i) + deg(j))` (column-normalized),
   iterated until the step change drops below `leadershipPrecisionFactor / n`
   or `leadershipIterationBound` steps; leadership = walk probability * degree.
2. Leaders: each node follows its neighbor with the highest leadership when that
   neighbor leads it. Local leaders have followers and no stronger neighbor;
   global leaders have at least the average follower count of local leaders.
3. Cascades: from every global leader, nodes adopt the leader's label once the
   weighted share of their adopting neighbors exceeds a profitability threshold.
   The threshold starts at 0 and grows by `profitabilityDelta` until the cascade
   no longer swallows another global leader.
4. Membership levels decay with the squared hop distance to each leader and are
   normalized per node.
"""

from __future__ import annotations

import logging
from typing import Mapping

import numpy as np
from scipy import sparse
from scipy.sparse import csgraph

from .backends import (
    CommunityBackend,
    CommunityDetectionAlgorithm,
    DetectionResult,
    ParameterSpec,
    normalized_cover,
    undirected_graph,
)

logger = logging.getLogger(__name__)


class DmidBackend(CommunityBackend):
    algorithm = CommunityDetectionAlgorithm.DMID
    overlapping = True
    parameters = (
        ParameterSpec("leadershipIterationBound", int, 1000, lambda v: v >= 1, "must be >= 1"),
        ParameterSpec("leadershipPrecisionFactor", float, 0.001, lambda v: v > 0.0, "must be > 0"),
        ParameterSpec("profitabilityDelta", float, 0.1, lambda v: 0.0 < v <= 1.0, "must be in (0, 1]"),
    )

    def detect(self, graph: sparse.spmatrix, params: Mapping[str, str] | None = None) -> DetectionResult:
        p = self.parse_parameters(params)
        g = undirected_graph(graph, self.algorithm)
        n = g.shape[0]
        if n == 0:
            return DetectionResult(memberships=sparse.csr_matrix((0, 0), dtype=np.float64))

        degrees = np.asarray(g.sum(axis=1), dtype=np.float64).ravel()
        leadership = self.leadership_vector(
            g, degrees, int(p["leadershipIterationBound"]), float(p["leadershipPrecisionFactor"])
        ) * degrees
        leaders = self.global_leaders(g, leadership)

        distances = csgraph.shortest_path(g, directed=False, unweighted=True, indices=leaders)
        distances = np.atleast_2d(distances)

        communities = [
            self.cascade_with_threshold(g, degrees, leader, leaders, float(p["profitabilityDelta"]))
            for leader in leaders
        ]
        rows, cols, values = self.membership_levels(leaders, leadership, communities, distances)
        cover = normalized_cover(rows, cols, values, (n, len(leaders)))
        logger.debug("DMID: %d global leaders over %d nodes", len(leaders), n)
        return DetectionResult(memberships=cover)

    @staticmethod
    def disassortativity_matrix(g: sparse.csr_matrix, degrees: np.ndarray) -> sparse.csr_matrix:
        coo = g.tocoo()
        di = degrees[coo.row]
        dj = degrees[coo.col]
        values = np.abs(di - dj) / (di + dj)
        return sparse.csr_matrix((values, (coo.row, coo.col)), shape=g.shape)

    def leadership_vector(
        self,
        g: sparse.csr_matrix,
        degrees: np.ndarray,
        iteration_bound: int,
        precision_factor: float,
    ) -> np.ndarray:
        n = g.shape[0]
        da = self.disassortativity_matrix(g, degrees).tocsc()
        col_sums = np.asarray(da.sum(axis=0)).ravel()

        # Degree-homogeneous neighborhoods have an all-zero column; walk on the plain edges there.
        flat = (col_sums == 0.0) & (degrees > 0.0)
        if flat.any():
            da = (da + sparse.csc_matrix(g) @ sparse.diags(flat.astype(np.float64))).tocsc()
            col_sums = np.asarray(da.sum(axis=0)).ravel()

        scale = np.divide(1.0, col_sums, out=np.zeros_like(col_sums), where=col_sums > 0)
        transition = sparse.csr_matrix(da @ sparse.diags(scale))

        vector = np.full(n, 1.0 / n)
        tolerance = precision_factor / n
        for _ in range(iteration_bound):
            nxt = transition @ vector
            done = np.max(np.abs(nxt - vector)) <= tolerance
            vector = nxt
            if done:
                break
        return vector

    @staticmethod
    def global_leaders(g: sparse.csr_matrix, leadership: np.ndarray) -> list[int]:
        n = g.shape[0]
        followers = np.zeros(n, dtype=np.int64)
        stronger_neighbor = np.zeros(n, dtype=bool)
        for node in range(n):
            start, end = g.indptr[node], g.indptr[node + 1]
            if start == end:
                continue
            neighbors = g.indices[start:end]
            best = neighbors[int(np.argmax(leadership[neighbors]))]
            if leadership[best] > leadership[node]:
                followers[best] += 1
                stronger_neighbor[node] = True

        local = np.flatnonzero((followers > 0) & ~stronger_neighbor)
        if local.size:
            leaders = set(local[followers[local] >= followers[local].mean()].tolist())
        else:
            leaders = set()

        # Components without a leader (isolated nodes, regular graphs) get their strongest node.
        _, component = csgraph.connected_components(g, directed=False)
        led = {int(component[leader]) for leader in leaders}
        for comp in np.unique(component):
            if int(comp) in led:
                continue
            members = np.flatnonzero(component == comp)
            leaders.add(int(members[int(np.argmax(leadership[members]))]))
        return sorted(leaders)

    @staticmethod
    def cascade(g: sparse.csr_matrix, degrees: np.ndarray, leader: int, threshold: float) -> np.ndarray:
        n = g.shape[0]
        adopted = np.zeros(n, dtype=bool)
        adopted[leader] = True
        while True:
            weight_in = g @ adopted.astype(np.float64)
            share = np.divide(weight_in, degrees, out=np.zeros(n), where=degrees > 0)
            new = (~adopted) & (weight_in > 0) & (share > threshold)
            if not new.any():
                return np.flatnonzero(adopted)
            adopted |= new

    def cascade_with_threshold(
        self,
        g: sparse.csr_matrix,
        degrees: np.ndarray,
        leader: int,
        leaders: list[int],
        delta: float,
    ) -> np.ndarray:
        others = np.asarray([l for l in leaders if l != leader], dtype=np.int64)
        threshold = 0.0
        while True:
            members = self.cascade(g, degrees, leader, threshold)
            if threshold >= 1.0 or not np.isin(others, members).any():
                return members
            threshold = min(1.0, threshold + delta)

    @staticmethod
    def membership_levels(
        leaders: list[int],
        leadership: np.ndarray,
        communities: list[np.ndarray],
        distances: np.ndarray,
    ) -> tuple[list[int], list[int], list[float]]:
        n = distances.shape[1]
        strength = np.asarray([max(float(leadership[l]), 0.0) for l in leaders])
        if not (strength > 0).any():
            strength = np.ones(len(leaders))
        strength = np.where(strength > 0, strength, strength[strength > 0].min())

        rows: list[int] = []
        cols: list[int] = []
        values: list[float] = []
        assigned = np.zeros(n, dtype=bool)
        for c, members in enumerate(communities):
            for node in members:
                rows.append(int(node))
                cols.append(c)
                values.append(strength[c] / (distances[c, node] + 1.0) ** 2)
            assigned[members] = True

        # Nodes no cascade reached join their nearest leaders.
        for node in np.flatnonzero(~assigned):
            d = distances[:, node]
            reachable = np.isfinite(d)
            if not reachable.any():
                continue
            nearest = np.flatnonzero(reachable & (d == d[reachable].min()))
            for c in nearest:
                rows.append(int(node))
                cols.append(int(c))
                values.append(strength[c] / (d[c] + 1.0) ** 2)
        return rows, cols, values
