"""Community-aware neighborhood SVD++ recommender."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

import numpy as np
import torch
from scipy import sparse

from ..cache import NeighborCache, column_rows_cache, row_columns_cache, row_values_cache
from ..communities.detector import CommunityDetector
from ..config import RecommenderConfig
from ..knn import SimilarityMeasure, build_knn_graphs
from .aggregates import community_ratings, user_community_ratings
from .model import CommunityNeighborhoodModel
from .train import fit


logger = logging.getLogger(__name__)

GraphBuilder = Callable[[sparse.csr_matrix, int, SimilarityMeasure], tuple[sparse.csr_matrix, sparse.csr_matrix]]


def _as_index(values: np.ndarray) -> torch.Tensor:
    return torch.tensor(np.asarray(values), dtype=torch.long)


def _as_values(values: np.ndarray) -> torch.Tensor:
    return torch.tensor(np.asarray(values), dtype=torch.float64)


@dataclass(frozen=True)
class RecommendedItem:
    item: int
    score: float


@dataclass(frozen=True)
class CommunityContext:
    """Everything derived from the training data at initialization; read-only while training."""

    train: sparse.csr_matrix
    global_mean: float
    user_memberships: sparse.csr_matrix
    item_memberships: sparse.csr_matrix
    # Dense copies of the membership levels for tensor arithmetic.
    user_membership_levels: torch.Tensor
    item_membership_levels: torch.Tensor
    community_ratings: sparse.csr_matrix
    user_community_ratings: sparse.csr_matrix

    user_items: NeighborCache[torch.Tensor]
    user_ratings: NeighborCache[torch.Tensor]
    item_users: NeighborCache[np.ndarray]
    user_communities: NeighborCache[torch.Tensor]
    item_communities: NeighborCache[torch.Tensor]
    # Items rated by members of the user's communities.
    user_community_items: NeighborCache[torch.Tensor]
    user_community_item_ratings: NeighborCache[torch.Tensor]

    @property
    def num_user_communities(self) -> int:
        return int(self.user_memberships.shape[1])

    @property
    def num_item_communities(self) -> int:
        return int(self.item_memberships.shape[1])


class CommunityNeighborhoodRecommender:
    """Neighborhood + latent-factor model enriched with user and item communities.

    Lifecycle: `init_model()` builds the similarity graphs, detects communities,
    derives the community rating aggregates and the neighbor caches, then
    initializes every parameter table; `build_model()` trains them with SGD.
    Each instance owns its whole state, so folds trained side by side never
    share parameters or caches.
    """

    algo_name = "ComNeighSVD++"

    def __init__(
        self,
        train: sparse.spmatrix,
        *,
        config: RecommenderConfig | None = None,
        detector: CommunityDetector | None = None,
        graph_builder: GraphBuilder = build_knn_graphs,
        rating_scale: tuple[float, float] | None = None,
    ) -> None:
        self.train = sparse.csr_matrix(train, dtype=np.float64, copy=True)
        self.train.sort_indices()
        self.config = config or RecommenderConfig()
        self.detector = detector
        self.graph_builder = graph_builder
        if rating_scale is None:
            rating_scale = (
                (float(self.train.data.min()), float(self.train.data.max())) if self.train.nnz else (0.0, 0.0)
            )
        self.rating_scale = rating_scale

        self.model: CommunityNeighborhoodModel | None = None
        self.context: CommunityContext | None = None
        self.loss_history: list[float] = []

    @property
    def num_users(self) -> int:
        return int(self.train.shape[0])

    @property
    def num_items(self) -> int:
        return int(self.train.shape[1])

    @property
    def is_initialized(self) -> bool:
        return self.model is not None and self.context is not None

    def _make_detector(self) -> CommunityDetector:
        com = self.config.community
        cd = self.detector or CommunityDetector()
        cd.set_algorithm(com.algorithm)
        cd.set_overlapping(com.overlapping)
        cd.set_seed(com.seed)
        cd.set_walktrap_parameters(com.walktrap_steps)
        cd.set_dmid_parameters(com.dmid_iteration_bound, com.dmid_precision_factor, com.dmid_profitability_delta)
        cd.set_slpa_parameters(com.slpa_probability_threshold, com.slpa_memory_size)
        return cd

    def init_model(self) -> None:
        """Build graphs, communities, aggregates, caches and parameters.

        Nothing is published on the instance until every step has finished, so
        an exception or interruption leaves the recommender uninitialized.
        """
        knn = self.config.knn
        tc = self.config.train
        train = self.train

        logger.info("%s build user and item graphs ...", self.algo_name)
        user_graph, item_graph = self.graph_builder(train, knn.k, knn.similarity)

        logger.info("%s detect communities ...", self.algo_name)
        cd = self._make_detector()
        cd.set_graph(user_graph)
        cd.detect_communities()
        user_memberships = sparse.csr_matrix(cd.memberships)
        cd.set_graph(item_graph)
        cd.detect_communities()
        item_memberships = sparse.csr_matrix(cd.memberships)
        _log_community_info(self.algo_name, "user", user_memberships)
        _log_community_info(self.algo_name, "item", item_memberships)

        logger.info("%s compute community ratings ...", self.algo_name)
        com_ratings = community_ratings(user_memberships, train)
        logger.info("%s compute community ratings per user ...", self.algo_name)
        user_com_ratings = user_community_ratings(user_memberships, com_ratings)

        context = CommunityContext(
            train=train,
            global_mean=float(train.data.mean()) if train.nnz else 0.0,
            user_memberships=user_memberships,
            item_memberships=item_memberships,
            user_membership_levels=torch.tensor(user_memberships.toarray(), dtype=torch.float64),
            item_membership_levels=torch.tensor(item_memberships.toarray(), dtype=torch.float64),
            community_ratings=com_ratings,
            user_community_ratings=user_com_ratings,
            user_items=row_columns_cache(train, transform=_as_index),
            user_ratings=row_values_cache(train, transform=_as_values),
            item_users=column_rows_cache(train),
            user_communities=row_columns_cache(user_memberships, transform=_as_index),
            item_communities=row_columns_cache(item_memberships, transform=_as_index),
            user_community_items=row_columns_cache(user_com_ratings, transform=_as_index),
            user_community_item_ratings=row_values_cache(user_com_ratings, transform=_as_values),
        )

        generator = torch.Generator().manual_seed(int(tc.seed))
        model = CommunityNeighborhoodModel(
            self.num_users,
            self.num_items,
            context.num_user_communities,
            context.num_item_communities,
            factors=tc.factors,
            init_mean=tc.init_mean,
            init_std=tc.init_std,
            generator=generator,
        )

        self.context = context
        self.model = model
        self.loss_history = []

    def build_model(self) -> list[float]:
        """Train all parameters with SGD; returns the per-iteration loss."""
        self._require_initialized()
        logger.info("%s learn model parameters ...", self.algo_name)
        self.loss_history = fit(self, self.config.train)
        return self.loss_history

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise RuntimeError("Model is not initialized; call init_model() first")

    def _check_ids(self, u: int, j: int) -> None:
        if not 0 <= u < self.num_users:
            raise KeyError(f"Unknown user index: {u}")
        if not 0 <= j < self.num_items:
            raise KeyError(f"Unknown item index: {j}")

    def biases(self, u: int, items: torch.Tensor) -> torch.Tensor:
        """Baseline estimates `b_uk` of user `u` for every item in `items`."""
        ctx = self.context
        t = self.model.tables()
        user_part = (
            ctx.global_mean
            + t["user_bias"][u]
            + torch.dot(ctx.user_membership_levels[u], t["user_com_bias"])
        )
        item_part = t["item_bias"][items] + ctx.item_membership_levels[items] @ t["item_com_bias"]
        return user_part + item_part

    def baseline(self, u: int, j: int) -> float:
        """Global mean, individual biases and membership-weighted community biases."""
        self._require_initialized()
        self._check_ids(u, j)
        return float(self.biases(u, torch.tensor([j], dtype=torch.long))[0])

    def user_factor(self, u: int) -> torch.Tensor:
        """P_u enriched with rated-item, community co-rated item and community offsets."""
        ctx = self.context
        t = self.model.tables()
        factor = t["P"][u].clone()

        items = ctx.user_items[u]
        if items.numel():
            factor += t["Y"][items].sum(dim=0) / math.sqrt(items.numel())
        com_items = ctx.user_community_items[u]
        if com_items.numel():
            factor += t["Z"][com_items].sum(dim=0) / math.sqrt(com_items.numel())
        coms = ctx.user_communities[u]
        factor += (ctx.user_membership_levels[u, coms].unsqueeze(1) * t["Ocu"][coms]).sum(dim=0)
        return factor

    def item_factor(self, j: int) -> torch.Tensor:
        """Q_j enriched with membership-weighted item community offsets."""
        ctx = self.context
        t = self.model.tables()
        coms = ctx.item_communities[j]
        return t["Q"][j] + (ctx.item_membership_levels[j, coms].unsqueeze(1) * t["Oci"][coms]).sum(dim=0)

    def predict(self, u: int, j: int, *, bound: bool = False) -> float:
        """Predicted rating of user `u` for item `j` (inner ids).

        Neighbor sets that are empty contribute nothing, so a user without
        training ratings gets the baseline plus the factor term.
        """
        self._require_initialized()
        self._check_ids(u, j)
        ctx = self.context
        t = self.model.tables()

        with torch.no_grad():
            pred = self.baseline(u, j)

            items = ctx.user_items[u]
            if items.numel():
                b_uk = self.biases(u, items)
                r_uk = ctx.user_ratings[u]
                terms = (r_uk - b_uk) * t["W"][j, items] + t["C"][j, items]
                pred += float(terms.sum()) / math.sqrt(items.numel())

            com_items = ctx.user_community_items[u]
            if com_items.numel():
                b_uk = self.biases(u, com_items)
                rc_uk = ctx.user_community_item_ratings[u]
                terms = (rc_uk - b_uk) * t["D"][j, com_items]
                pred += float(terms.sum()) / math.sqrt(com_items.numel())

            pred += float(torch.dot(self.user_factor(u), self.item_factor(j)))

        if bound:
            lo, hi = self.rating_scale
            pred = min(max(pred, lo), hi)
        return pred

    def recommend(self, u: int, *, k: int = 10) -> list[RecommendedItem]:
        """Top-`k` items the user has not rated in training, by predicted rating."""
        self._require_initialized()
        if not 0 <= u < self.num_users:
            raise KeyError(f"Unknown user index: {u}")

        seen = set(self.context.user_items[u].tolist())
        scored = [
            RecommendedItem(item=j, score=self.predict(u, j))
            for j in range(self.num_items)
            if j not in seen
        ]
        scored.sort(key=lambda r: (-r.score, r.item))
        return scored[: int(k)]

    def __str__(self) -> str:
        tc = self.config.train
        return ",".join(
            str(v)
            for v in (
                tc.factors, tc.lr, tc.lr_n, tc.lr_c, tc.lr_cn, tc.lr_cf, tc.max_lr,
                tc.reg_b, tc.reg_n, tc.reg_u, tc.reg_i, tc.reg_c, tc.reg_cn, tc.reg_cf,
                tc.iterations, tc.bold_driver,
            )
        )


def _log_community_info(algo_name: str, kind: str, memberships: sparse.csr_matrix) -> None:
    n_nodes, n_coms = memberships.shape
    size = memberships.nnz
    logger.info(
        "%s %s communities: %d, members per community: %.2f, communities per %s: %.2f",
        algo_name,
        kind,
        n_coms,
        size / n_coms if n_coms else 0.0,
        kind,
        size / n_nodes if n_nodes else 0.0,
    )
