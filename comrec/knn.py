"""k-nearest-neighbor similarity graphs over users and items."""

from __future__ import annotations

import logging
from enum import Enum

import numpy as np
from scipy import sparse
from sklearn.neighbors import NearestNeighbors


logger = logging.getLogger(__name__)


class SimilarityMeasure(str, Enum):
    COSINE = "cosine"
    PEARSON = "pearson"


def mean_center_rows(matrix: sparse.csr_matrix) -> sparse.csr_matrix:
    """Subtract each row's mean rating from its stored entries (unrated cells stay empty)."""
    m = sparse.csr_matrix(matrix, dtype=np.float64, copy=True)
    counts = np.diff(m.indptr)
    sums = np.asarray(m.sum(axis=1), dtype=np.float64).ravel()
    means = np.divide(sums, counts, out=np.zeros_like(sums, dtype=np.float64), where=counts > 0)
    m.data = m.data - np.repeat(means, counts)
    return m


def knn_adjacency(
    vectors: sparse.csr_matrix,
    k: int,
    similarity: SimilarityMeasure = SimilarityMeasure.COSINE,
) -> sparse.csr_matrix:
    """Symmetric weighted k-NN graph over the rows of `vectors`.

    Each row keeps its `k` most similar other rows; only strictly positive
    similarities become edges. The directed k-NN relation is symmetrized with an
    element-wise maximum so the result is a valid undirected weighted graph.
    """
    n = int(vectors.shape[0])
    if n == 0:
        return sparse.csr_matrix((0, 0), dtype=np.float64)

    x = sparse.csr_matrix(vectors, dtype=np.float64)
    if similarity == SimilarityMeasure.PEARSON:
        x = mean_center_rows(x)

    n_neighbors = min(int(k) + 1, n)
    model = NearestNeighbors(n_neighbors=n_neighbors, metric="cosine", algorithm="brute")
    model.fit(x)
    distances, indices = model.kneighbors(x, return_distance=True)

    rows: list[int] = []
    cols: list[int] = []
    weights: list[float] = []
    for node in range(n):
        kept = 0
        for dist, other in zip(distances[node], indices[node]):
            other = int(other)
            if other == node or kept >= k:
                continue
            sim = 1.0 - float(dist)
            kept += 1
            if not np.isfinite(sim) or sim <= 0.0:
                continue
            rows.append(node)
            cols.append(other)
            weights.append(sim)

    directed = sparse.csr_matrix((weights, (rows, cols)), shape=(n, n), dtype=np.float64)
    adjacency = directed.maximum(directed.T).tocsr()
    adjacency.sort_indices()
    return adjacency


def build_knn_graphs(
    ratings: sparse.csr_matrix,
    k: int,
    similarity: SimilarityMeasure = SimilarityMeasure.COSINE,
) -> tuple[sparse.csr_matrix, sparse.csr_matrix]:
    """Build (user adjacency, item adjacency) from a `users x items` rating matrix."""
    ratings = sparse.csr_matrix(ratings)
    user_graph = knn_adjacency(ratings, k, similarity)
    item_graph = knn_adjacency(ratings.T.tocsr(), k, similarity)
    logger.info(
        "kNN graphs (k=%d, sim=%s): user edges=%d item edges=%d",
        int(k),
        similarity.value,
        user_graph.nnz // 2,
        item_graph.nnz // 2,
    )
    return user_graph, item_graph
