"""Lazily materialized neighbor lists keyed by entity id."""

from __future__ import annotations

from functools import lru_cache
from typing import Callable, Generic, TypeVar

import numpy as np
from scipy import sparse


V = TypeVar("V")


class NeighborCache(Generic[V]):
    """Memoizing map from an integer id to a computed value.

    Values are computed by `loader` on first access and never invalidated; the
    cache is append-only for its whole lifetime. Build a new cache instead of
    clearing one.
    """

    def __init__(self, loader: Callable[[int], V], *, size: int | None = None) -> None:
        self._size = size
        self._load = lru_cache(maxsize=None)(loader)

    def __getitem__(self, key: int) -> V:
        key = int(key)
        if self._size is not None and not 0 <= key < self._size:
            raise KeyError(f"id out of range [0, {self._size}): {key}")
        return self._load(key)

    get = __getitem__

    def __len__(self) -> int:
        """Number of materialized entries (not the id range)."""
        return self._load.cache_info().currsize


def row_columns(matrix: sparse.csr_matrix, row: int) -> np.ndarray:
    """Column indices of the stored entries of `row`, ascending and read-only."""
    start, end = matrix.indptr[row], matrix.indptr[row + 1]
    cols = np.array(matrix.indices[start:end], dtype=np.int64)
    cols.setflags(write=False)
    return cols


def row_values(matrix: sparse.csr_matrix, row: int) -> np.ndarray:
    """Stored values of `row`, aligned with `row_columns(matrix, row)`."""
    start, end = matrix.indptr[row], matrix.indptr[row + 1]
    values = np.array(matrix.data[start:end], dtype=np.float64)
    values.setflags(write=False)
    return values


def row_columns_cache(
    matrix: sparse.spmatrix,
    transform: Callable[[np.ndarray], V] | None = None,
) -> NeighborCache:
    """row id -> columns with a stored entry (e.g. user -> rated items)."""
    csr = sparse.csr_matrix(matrix, copy=True)
    csr.sort_indices()
    return _cache(csr, row_columns, transform)


def column_rows_cache(
    matrix: sparse.spmatrix,
    transform: Callable[[np.ndarray], V] | None = None,
) -> NeighborCache:
    """column id -> rows with a stored entry (e.g. item -> rating users)."""
    transposed = sparse.csr_matrix(sparse.csr_matrix(matrix).T)
    transposed.sort_indices()
    return _cache(transposed, row_columns, transform)


def row_values_cache(
    matrix: sparse.spmatrix,
    transform: Callable[[np.ndarray], V] | None = None,
) -> NeighborCache:
    """row id -> stored values, aligned with `row_columns_cache(matrix)`."""
    csr = sparse.csr_matrix(matrix, copy=True)
    csr.sort_indices()
    return _cache(csr, row_values, transform)


def _cache(
    csr: sparse.csr_matrix,
    extract: Callable[[sparse.csr_matrix, int], np.ndarray],
    transform: Callable[[np.ndarray], V] | None,
) -> NeighborCache:
    if transform is None:
        return NeighborCache(lambda r: extract(csr, r), size=csr.shape[0])
    return NeighborCache(lambda r: transform(extract(csr, r)), size=csr.shape[0])
