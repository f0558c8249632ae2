from __future__ import annotations

import numpy as np
import pytest
from scipy import sparse

from comrec.recsys.aggregates import community_ratings, user_community_ratings


def test_community_rating_is_membership_weighted_average() -> None:
    memberships = sparse.csr_matrix(np.array([[0.6, 0.4], [0.4, 0.6]]))
    ratings = sparse.csr_matrix(np.array([[4.0], [5.0]]))

    cr = community_ratings(memberships, ratings)

    assert cr.shape == (2, 1)
    assert cr[0, 0] == pytest.approx(4.4)
    assert cr[1, 0] == pytest.approx(4.6)


def test_community_rating_ignores_members_without_rating() -> None:
    memberships = sparse.csr_matrix(np.array([[1.0], [1.0], [1.0]]))
    ratings = sparse.csr_matrix(np.array([[2.0, 0.0], [4.0, 0.0], [0.0, 0.0]]))

    cr = community_ratings(memberships, ratings)

    assert cr[0, 0] == pytest.approx(3.0)
    assert cr.getrow(0).nnz == 1


def test_user_community_rating_blends_memberships() -> None:
    memberships = sparse.csr_matrix(np.array([[0.5, 0.5]]))
    com_ratings = sparse.csr_matrix(np.array([[3.0], [5.0]]))

    ucr = user_community_ratings(memberships, com_ratings)

    assert ucr.shape == (1, 1)
    assert ucr[0, 0] == pytest.approx(4.0)


def test_user_community_rating_divides_by_all_membership_levels() -> None:
    memberships = sparse.csr_matrix(np.array([[0.5, 0.5]]))
    # Community 1 has no rating for item 0; community 0 has none for item 1.
    com_ratings = sparse.csr_matrix(np.array([[4.0, 0.0], [0.0, 2.0]]))

    ucr = user_community_ratings(memberships, com_ratings)

    assert ucr[0, 0] == pytest.approx(2.0)
    assert ucr[0, 1] == pytest.approx(1.0)


def test_user_community_rating_skips_items_no_community_rated() -> None:
    memberships = sparse.csr_matrix(np.array([[0.3, 0.7], [1.0, 0.0]]))
    com_ratings = sparse.csr_matrix(np.array([[3.0, 0.0, 0.0], [5.0, 4.0, 0.0]]))

    ucr = user_community_ratings(memberships, com_ratings)

    assert ucr[0, 0] == pytest.approx(0.3 * 3.0 + 0.7 * 5.0)
    assert ucr[0, 1] == pytest.approx(0.7 * 4.0)
    assert ucr.getrow(1).indices.tolist() == [0]
    assert ucr.getcol(2).nnz == 0


def test_user_without_communities_has_no_entries() -> None:
    memberships = sparse.csr_matrix(np.array([[0.0, 0.0], [1.0, 0.0]]))
    com_ratings = sparse.csr_matrix(np.array([[3.0], [5.0]]))

    ucr = user_community_ratings(memberships, com_ratings)

    assert ucr.getrow(0).nnz == 0
    assert ucr[1, 0] == pytest.approx(3.0)
