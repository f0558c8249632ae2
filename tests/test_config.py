from __future__ import annotations

from pathlib import Path

import pytest

from comrec.communities.backends import CommunityDetectionAlgorithm
from comrec.config import RecommenderConfig, get_repo_root, load_config, resolve_path
from comrec.errors import ConfigurationError
from comrec.knn import SimilarityMeasure


REPO_ROOT = Path(__file__).resolve().parents[1]


def test_repo_config_loads() -> None:
    cfg = load_config(REPO_ROOT / "config.yaml")

    assert cfg.knn.k == 10
    assert cfg.community.algorithm == CommunityDetectionAlgorithm.WALKTRAP
    assert cfg.train.bold_driver is False


def test_sections_override_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "knn:\n"
        "  k: 5\n"
        "  similarity: PEARSON\n"
        "community:\n"
        "  algorithm: slpa\n"
        "  slpa:\n"
        "    memory_size: 30\n"
        "train:\n"
        "  iterations: 7\n"
        "  lr: 0.05\n"
        "  bold_driver: true\n"
    )

    cfg = load_config(path)

    assert cfg.knn.k == 5
    assert cfg.knn.similarity == SimilarityMeasure.PEARSON
    assert cfg.community.algorithm == CommunityDetectionAlgorithm.SLPA
    assert cfg.community.slpa_memory_size == 30
    assert cfg.community.slpa_probability_threshold == 0.15
    assert cfg.train.iterations == 7
    assert cfg.train.lr == 0.05
    assert cfg.train.bold_driver is True
    assert cfg.train.reg_b == 0.1


def test_empty_file_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("")
    assert load_config(path) == RecommenderConfig()


@pytest.mark.parametrize(
    "raw",
    [
        {"community": {"algorithm": "louvain"}},
        {"knn": {"similarity": "jaccard"}},
        {"knn": {"k": 0}},
        {"knn": {"k": "many"}},
        {"train": {"momentum": 0.9}},
        {"train": "fast"},
    ],
)
def test_invalid_config_is_rejected(raw: dict) -> None:
    with pytest.raises(ConfigurationError):
        RecommenderConfig.from_mapping(raw)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_repo_root_is_found_from_a_subdirectory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "config.yaml").write_text("knn:\n  k: 3\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    root = get_repo_root()

    assert root == tmp_path.resolve()
    assert resolve_path(root, "config.yaml") == (tmp_path / "config.yaml").resolve()
    assert load_config(resolve_path(root, "config.yaml")).knn.k == 3
