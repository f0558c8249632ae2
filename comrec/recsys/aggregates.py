"""Community-level rating aggregates derived from memberships and training ratings."""

from __future__ import annotations

import logging

import numpy as np
from scipy import sparse

logger = logging.getLogger(__name__)


def _weighted_average(weights: sparse.spmatrix, values: sparse.spmatrix) -> sparse.csr_matrix:
    """Entry-wise `sum_x w[r, x] * v[x, c] / sum_x w[r, x]` over the x where `v[x, c]` is stored."""
    weights = sparse.csr_matrix(weights, dtype=np.float64)
    values = sparse.csr_matrix(values, dtype=np.float64)

    present = values.copy()
    present.data = np.ones_like(present.data)

    numerator = sparse.csr_matrix(weights @ values)
    denominator = sparse.csr_matrix(weights @ present)
    denominator.eliminate_zeros()

    # The denominator's support decides which averages exist (an average may be 0).
    den = denominator.tocoo()
    num = np.asarray(numerator[den.row, den.col], dtype=np.float64).ravel()
    result = sparse.csr_matrix((num / den.data, (den.row, den.col)), shape=denominator.shape)
    result.sort_indices()
    return result


def community_ratings(user_memberships: sparse.spmatrix, ratings: sparse.spmatrix) -> sparse.csr_matrix:
    """Average rating each user community gives each item (`communities x items`).

    For community `c` and item `i`, the members that rated `i` contribute their
    rating weighted by their membership level in `c`:
    `sum_u m[u, c] * r[u, i] / sum_u m[u, c]`. Items no member rated have no entry.
    """
    matrix = _weighted_average(sparse.csr_matrix(user_memberships).T, ratings)
    n_rows = max(matrix.shape[0], 1)
    logger.info(
        "Community ratings: communities=%d avg ratings per community=%.2f",
        matrix.shape[0],
        matrix.nnz / n_rows,
    )
    return matrix


def user_community_ratings(user_memberships: sparse.spmatrix, com_ratings: sparse.spmatrix) -> sparse.csr_matrix:
    """Each user's communities' average rating per item (`users x items`).

    The communities' ratings are blended with the user's membership levels and
    divided by the sum of all of the user's levels, so a community without a
    rating for the item pulls the average down. Entries exist only where the
    blended sum is positive.
    """
    memberships = sparse.csr_matrix(user_memberships, dtype=np.float64)
    numerator = sparse.csr_matrix(memberships @ sparse.csr_matrix(com_ratings, dtype=np.float64))
    numerator.data[numerator.data <= 0] = 0.0
    numerator.eliminate_zeros()

    level_sums = np.asarray(memberships.sum(axis=1), dtype=np.float64).ravel()
    num = numerator.tocoo()
    matrix = sparse.csr_matrix((num.data / level_sums[num.row], (num.row, num.col)), shape=numerator.shape)
    matrix.sort_indices()

    n_rows = max(matrix.shape[0], 1)
    logger.info(
        "User community ratings: users=%d avg community ratings per user=%.2f",
        matrix.shape[0],
        matrix.nnz / n_rows,
    )
    return matrix
