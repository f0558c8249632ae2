from __future__ import annotations

import numpy as np
import pytest
from scipy import sparse

from comrec.knn import SimilarityMeasure, build_knn_graphs, knn_adjacency, mean_center_rows


RATINGS = sparse.csr_matrix(
    np.array(
        [
            [5.0, 4.0, 0.0, 0.0],
            [5.0, 4.0, 0.0, 0.0],
            [0.0, 0.0, 3.0, 0.0],
            [1.0, 0.0, 0.0, 2.0],
        ]
    )
)


def test_identical_rows_are_linked_and_orthogonal_rows_are_not() -> None:
    g = knn_adjacency(RATINGS, k=1)

    assert g[0, 1] == pytest.approx(1.0)
    assert g[1, 0] == pytest.approx(1.0)
    assert g.getrow(2).nnz == 0


@pytest.mark.parametrize("similarity", list(SimilarityMeasure))
def test_graphs_are_symmetric_without_self_loops(similarity: SimilarityMeasure) -> None:
    users, items = build_knn_graphs(RATINGS, k=2, similarity=similarity)

    for g, n in ((users, RATINGS.shape[0]), (items, RATINGS.shape[1])):
        assert g.shape == (n, n)
        assert np.allclose(g.toarray(), g.T.toarray())
        assert np.all(g.diagonal() == 0)
        assert np.all(g.data > 0)


def test_mean_center_rows_leaves_unrated_cells_empty() -> None:
    centered = mean_center_rows(RATINGS)

    assert centered.nnz == RATINGS.nnz
    assert centered[0, 0] == pytest.approx(0.5)
    assert centered[0, 1] == pytest.approx(-0.5)
    assert centered[2, 2] == pytest.approx(0.0)


def test_empty_input() -> None:
    assert knn_adjacency(sparse.csr_matrix((0, 3)), k=5).shape == (0, 0)
