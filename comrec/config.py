"""YAML configuration for graph building, community detection and training."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from .communities.detector import CommunityDetectionAlgorithm
from .errors import ConfigurationError
from .knn import SimilarityMeasure


@dataclass(frozen=True)
class KnnConfig:
    k: int = 10
    similarity: SimilarityMeasure = SimilarityMeasure.COSINE


@dataclass(frozen=True)
class CommunityConfig:
    algorithm: CommunityDetectionAlgorithm = CommunityDetectionAlgorithm.WALKTRAP
    overlapping: bool = True
    walktrap_steps: int = 2
    dmid_iteration_bound: int = 1000
    dmid_precision_factor: float = 0.001
    dmid_profitability_delta: float = 0.1
    slpa_probability_threshold: float = 0.15
    slpa_memory_size: int = 100
    seed: int | None = 42


@dataclass(frozen=True)
class TrainConfig:
    factors: int = 10
    init_mean: float = 0.0
    init_std: float = 0.1
    iterations: int = 100
    # learning rates per parameter group
    lr: float = 0.01
    lr_n: float = 0.01
    lr_c: float = 0.01
    lr_cn: float = 0.01
    lr_cf: float = 0.01
    max_lr: float = -1.0
    bold_driver: bool = False
    # L2 regularization per parameter group
    reg_b: float = 0.1
    reg_n: float = 0.1
    reg_u: float = 0.1
    reg_i: float = 0.1
    reg_c: float = 0.1
    reg_cn: float = 0.1
    reg_cf: float = 0.1
    seed: int = 42


@dataclass(frozen=True)
class RecommenderConfig:
    knn: KnnConfig = field(default_factory=KnnConfig)
    community: CommunityConfig = field(default_factory=CommunityConfig)
    train: TrainConfig = field(default_factory=TrainConfig)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RecommenderConfig":
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Expected a mapping, got {type(raw)}")

        knn_raw = _section(raw, "knn")
        com_raw = _section(raw, "community")
        train_raw = _section(raw, "train")
        walktrap_raw = _section(com_raw, "walktrap")
        dmid_raw = _section(com_raw, "dmid")
        slpa_raw = _section(com_raw, "slpa")

        knn_defaults = KnnConfig()
        knn = KnnConfig(
            k=_as(int, knn_raw.get("k", knn_defaults.k), "knn.k"),
            similarity=_enum(SimilarityMeasure, knn_raw.get("similarity", knn_defaults.similarity), "knn.similarity"),
        )
        if knn.k < 1:
            raise ConfigurationError(f"knn.k must be >= 1, got {knn.k}")

        cd = CommunityConfig()
        community = CommunityConfig(
            algorithm=_enum(CommunityDetectionAlgorithm, com_raw.get("algorithm", cd.algorithm), "community.algorithm"),
            overlapping=bool(com_raw.get("overlapping", cd.overlapping)),
            walktrap_steps=_as(int, walktrap_raw.get("steps", cd.walktrap_steps), "community.walktrap.steps"),
            dmid_iteration_bound=_as(
                int, dmid_raw.get("iteration_bound", cd.dmid_iteration_bound), "community.dmid.iteration_bound"
            ),
            dmid_precision_factor=_as(
                float, dmid_raw.get("precision_factor", cd.dmid_precision_factor), "community.dmid.precision_factor"
            ),
            dmid_profitability_delta=_as(
                float,
                dmid_raw.get("profitability_delta", cd.dmid_profitability_delta),
                "community.dmid.profitability_delta",
            ),
            slpa_probability_threshold=_as(
                float,
                slpa_raw.get("probability_threshold", cd.slpa_probability_threshold),
                "community.slpa.probability_threshold",
            ),
            slpa_memory_size=_as(int, slpa_raw.get("memory_size", cd.slpa_memory_size), "community.slpa.memory_size"),
            seed=(None if com_raw.get("seed", cd.seed) is None else _as(int, com_raw.get("seed", cd.seed), "community.seed")),
        )

        # Every TrainConfig field is a plain scalar: cast with the default's type.
        td = TrainConfig()
        overrides: dict[str, Any] = {}
        for name, value in train_raw.items():
            if not hasattr(td, name):
                raise ConfigurationError(f"Unknown train option: train.{name}")
            default = getattr(td, name)
            caster = bool if isinstance(default, bool) else type(default)
            overrides[name] = _as(caster, value, f"train.{name}")
        train = TrainConfig(**overrides)

        return cls(knn=knn, community=community, train=train)


def load_config(path: Path) -> RecommenderConfig:
    """Load `config.yaml` into a RecommenderConfig (missing sections keep defaults)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    obj = yaml.safe_load(path.read_text())
    if obj is None:
        obj = {}
    if not isinstance(obj, dict):
        raise ConfigurationError(f"Expected YAML mapping at {path}, got {type(obj)}")
    return RecommenderConfig.from_mapping(obj)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"Config section {name!r} must be a mapping, got {type(value)}")
    return value


def _as(caster: type, value: Any, key: str) -> Any:
    try:
        return caster(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {key}: {value!r}") from exc


def _enum(enum_cls: type, value: Any, key: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"{key} must be one of [{allowed}], got {value!r}") from exc


def get_repo_root() -> Path:
    """Nearest directory holding `config.yaml` or `.git`, from the cwd first, then this package."""
    for start in (Path.cwd().resolve(), Path(__file__).resolve().parent):
        for candidate in (start, *start.parents):
            if (candidate / "config.yaml").is_file() or (candidate / ".git").exists():
                return candidate
    raise FileNotFoundError("Could not locate repo root (expected `config.yaml` or `.git`).")


def resolve_path(repo_root: Path, path: Path | str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else (repo_root / p).resolve()
