from __future__ import annotations

from typing import Mapping

import numpy as np
import pytest
from scipy import sparse

from comrec.communities.backends import CommunityBackend, CommunityDetectionAlgorithm, DetectionResult
from comrec.communities.detector import (
    CommunityDetector,
    compute_memberships_vector,
    dominant_communities,
    make_non_overlapping,
)
from comrec.errors import CommunityDetectionError, ConfigurationError


COVER = sparse.csr_matrix(
    np.array(
        [
            [0.5, 0.5, 0.0],
            [0.2, 0.4, 0.4],
            [0.0, 0.0, 0.0],
            [0.1, 0.0, 0.9],
        ]
    )
)


class FixedBackend(CommunityBackend):
    algorithm = CommunityDetectionAlgorithm.WALKTRAP
    overlapping = True

    def __init__(self, memberships: sparse.csr_matrix) -> None:
        self.memberships = memberships
        self.calls: list[dict[str, str]] = []

    def detect(self, graph: sparse.spmatrix, params: Mapping[str, str] | None = None) -> DetectionResult:
        self.calls.append(dict(params or {}))
        return DetectionResult(memberships=self.memberships)


class FailingBackend(CommunityBackend):
    algorithm = CommunityDetectionAlgorithm.WALKTRAP

    def __init__(self, exc: BaseException) -> None:
        self.exc = exc

    def detect(self, graph: sparse.spmatrix, params: Mapping[str, str] | None = None) -> DetectionResult:
        raise self.exc


def _detector(backend: CommunityBackend) -> CommunityDetector:
    cd = CommunityDetector(backends={CommunityDetectionAlgorithm.WALKTRAP: backend})
    cd.set_algorithm("walktrap")
    cd.set_graph(sparse.identity(COVER.shape[0], format="csr"))
    return cd


def test_dominant_community_first_wins_on_ties_and_zero_rows_map_to_zero() -> None:
    vector = dominant_communities(COVER)
    assert vector.tolist() == [0, 1, 0, 2]


def test_collapse_has_one_unit_entry_per_row_and_keeps_columns() -> None:
    hard = make_non_overlapping(COVER)

    assert hard.shape == COVER.shape
    assert np.array_equal(np.diff(hard.indptr), np.ones(COVER.shape[0]))
    assert np.allclose(hard.data, 1.0)


def test_vector_agrees_with_collapse() -> None:
    hard = make_non_overlapping(COVER)
    vector = compute_memberships_vector(COVER)

    assert hard.indices.tolist() == vector.tolist()
    assert compute_memberships_vector(hard).tolist() == vector.tolist()


def test_collapse_without_columns_is_rejected() -> None:
    with pytest.raises(ValueError):
        make_non_overlapping(sparse.csr_matrix((2, 0)))


def test_detector_dispatches_and_keeps_cover_when_overlapping() -> None:
    backend = FixedBackend(COVER)
    cd = _detector(backend)
    cd.set_walktrap_parameters(3)
    cd.detect_communities()

    assert backend.calls == [{"steps": "3"}]
    assert (cd.memberships != COVER).nnz == 0
    assert cd.num_communities == 3
    assert cd.memberships_vector.tolist() == [0, 1, 0, 2]
    assert isinstance(cd.computation_time, int)


def test_detector_collapses_when_overlapping_disabled() -> None:
    cd = _detector(FixedBackend(COVER))
    cd.set_overlapping(False)
    cd.detect_communities()

    assert cd.memberships.shape == COVER.shape
    assert np.array_equal(np.diff(cd.memberships.indptr), np.ones(COVER.shape[0]))
    assert cd.memberships.indices.tolist() == cd.memberships_vector.tolist()


def test_detector_reuse_replaces_previous_results() -> None:
    backend = FixedBackend(COVER)
    cd = _detector(backend)
    cd.detect_communities()

    backend.memberships = sparse.csr_matrix(np.ones((2, 1)))
    cd.set_graph(sparse.identity(2, format="csr"))
    cd.detect_communities()

    assert cd.memberships.shape == (2, 1)
    assert cd.memberships_vector.tolist() == [0, 0]


def test_backend_failure_propagates() -> None:
    cd = _detector(FailingBackend(CommunityDetectionError("walktrap", "boom")))
    with pytest.raises(CommunityDetectionError) as info:
        cd.detect_communities()
    assert info.value.algorithm == "walktrap"


def test_interrupted_detection_leaves_previous_results() -> None:
    cd = _detector(FixedBackend(COVER))
    cd.detect_communities()
    before = cd.memberships

    cd.backends[CommunityDetectionAlgorithm.WALKTRAP] = FailingBackend(KeyboardInterrupt())
    with pytest.raises(KeyboardInterrupt):
        cd.detect_communities()

    assert cd.memberships is before


def test_detection_requires_algorithm_and_graph() -> None:
    cd = CommunityDetector(backends={})
    with pytest.raises(ConfigurationError):
        cd.detect_communities()

    cd.set_algorithm(CommunityDetectionAlgorithm.SLPA)
    with pytest.raises(ConfigurationError):
        cd.detect_communities()

    cd.set_graph(sparse.identity(2, format="csr"))
    with pytest.raises(ConfigurationError):
        cd.detect_communities()


def test_num_communities_before_detection() -> None:
    with pytest.raises(RuntimeError):
        CommunityDetector(backends={}).num_communities


def test_unknown_algorithm_name() -> None:
    with pytest.raises(ConfigurationError):
        CommunityDetector(backends={}).set_algorithm("louvain")


def test_empty_backend_mapping_is_kept() -> None:
    assert CommunityDetector(backends={}).backends == {}
    assert set(CommunityDetector().backends) == set(CommunityDetectionAlgorithm)
