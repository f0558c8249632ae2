from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import torch

from ..config import TrainConfig
from ..errors import TrainingDivergedError

if TYPE_CHECKING:  # pragma: no cover
    from .recommender import CommunityNeighborhoodRecommender


logger = logging.getLogger(__name__)

CONVERGENCE_TOLERANCE = 1e-5


@dataclass(frozen=True)
class LearningRates:
    """Current learning rate of each parameter group."""

    lr: float  # biases, P, Q, Y
    lr_n: float  # W, C
    lr_c: float  # community biases
    lr_cn: float  # D
    lr_cf: float  # Z, Ocu, Oci

    @classmethod
    def from_config(cls, cfg: TrainConfig) -> "LearningRates":
        return cls(lr=cfg.lr, lr_n=cfg.lr_n, lr_c=cfg.lr_c, lr_cn=cfg.lr_cn, lr_cf=cfg.lr_cf)

    def scaled(self, factor: float) -> "LearningRates":
        return LearningRates(
            lr=self.lr * factor,
            lr_n=self.lr_n * factor,
            lr_c=self.lr_c * factor,
            lr_cn=self.lr_cn * factor,
            lr_cf=self.lr_cf * factor,
        )

    def capped(self, max_lr: float) -> "LearningRates":
        if max_lr <= 0:
            return self
        return LearningRates(
            lr=min(self.lr, max_lr),
            lr_n=min(self.lr_n, max_lr),
            lr_c=min(self.lr_c, max_lr),
            lr_cn=min(self.lr_cn, max_lr),
            lr_cf=min(self.lr_cf, max_lr),
        )


@dataclass(frozen=True)
class IterationOutcome:
    converged: bool
    rates: LearningRates
    delta_loss: float


def check_iteration(
    iteration: int,
    loss: float,
    last_loss: float,
    rates: LearningRates,
    cfg: TrainConfig,
) -> IterationOutcome:
    """Validate the loss, adapt the learning rates (bold driver) and test convergence."""
    if not math.isfinite(loss):
        raise TrainingDivergedError(
            f"Loss = {loss} at iteration {iteration}: current settings do not fit the data"
        )

    delta_loss = last_loss - loss
    if cfg.bold_driver and iteration > 1:
        rates = rates.scaled(1.05 if abs(last_loss) > abs(loss) else 0.5)
    rates = rates.capped(cfg.max_lr)

    converged = abs(loss) < CONVERGENCE_TOLERANCE or (iteration > 1 and 0.0 < delta_loss < CONVERGENCE_TOLERANCE)
    return IterationOutcome(converged=converged, rates=rates, delta_loss=delta_loss)


def sgd_update(
    rec: "CommunityNeighborhoodRecommender",
    u: int,
    j: int,
    r_uj: float,
    rates: LearningRates,
    cfg: TrainConfig,
) -> float:
    """One SGD step on the observed rating `r_uj`; returns its loss contribution (unhalved)."""
    ctx = rec.context
    t = rec.model.tables()
    ub, ib, ucb, icb = t["user_bias"], t["item_bias"], t["user_com_bias"], t["item_com_bias"]
    P, Q, Y, Z, Ocu, Oci = t["P"], t["Q"], t["Y"], t["Z"], t["Ocu"], t["Oci"]
    W, C, D = t["W"], t["C"], t["D"]

    e = r_uj - rec.predict(u, j)
    loss = e * e

    items = ctx.user_items[u]
    ratings = ctx.user_ratings[u]
    user_coms = ctx.user_communities[u]
    item_coms = ctx.item_communities[j]
    com_items = ctx.user_community_items[u]
    com_ratings = ctx.user_community_item_ratings[u]

    w = math.sqrt(items.numel())
    cw = math.sqrt(com_items.numel())

    with torch.no_grad():
        # baseline
        bu = float(ub[u])
        ub[u] += rates.lr * (e - cfg.reg_b * bu)
        loss += cfg.reg_b * bu * bu

        bj = float(ib[j])
        ib[j] += rates.lr * (e - cfg.reg_b * bj)
        loss += cfg.reg_b * bj * bj

        mu = ctx.user_membership_levels[u, user_coms]
        bc = ucb[user_coms].clone()
        ucb.index_add_(0, user_coms, rates.lr_c * (e * mu - cfg.reg_c * bc))
        loss += cfg.reg_c * float((bc * bc).sum())

        mi = ctx.item_membership_levels[j, item_coms]
        bc = icb[item_coms].clone()
        icb.index_add_(0, item_coms, rates.lr_c * (e * mi - cfg.reg_c * bc))
        loss += cfg.reg_c * float((bc * bc).sum())

        # neighborhood, only for neighbors actually present
        if items.numel():
            b_uk = rec.biases(u, items)
            wjk = W[j, items].clone()
            W[j].index_add_(0, items, rates.lr_n * (e * (ratings - b_uk) / w - cfg.reg_n * wjk))
            loss += cfg.reg_n * float((wjk * wjk).sum())

            cjk = C[j, items].clone()
            C[j].index_add_(0, items, rates.lr_n * (e / w - cfg.reg_n * cjk))
            loss += cfg.reg_n * float((cjk * cjk).sum())

        if com_items.numel():
            b_uk = rec.biases(u, com_items)
            djk = D[j, com_items].clone()
            D[j].index_add_(0, com_items, rates.lr_cn * (e / cw * (com_ratings - b_uk) - cfg.reg_cn * djk))
            loss += cfg.reg_cn * float((djk * djk).sum())

        # factors
        sum_ys = Y[items].sum(dim=0) / w if items.numel() else torch.zeros_like(P[u])
        sum_zs = Z[com_items].sum(dim=0) / cw if com_items.numel() else torch.zeros_like(P[u])
        sum_ocus = (mu.unsqueeze(1) * Ocu[user_coms]).sum(dim=0)
        sum_ocis = (mi.unsqueeze(1) * Oci[item_coms]).sum(dim=0)

        puf = P[u].clone()
        qjf = Q[j].clone()
        item_side = qjf + sum_ocis
        user_side = puf + sum_ocus + sum_ys + sum_zs

        P[u] += rates.lr * (e * item_side - cfg.reg_u * puf)
        Q[j] += rates.lr * (e * user_side - cfg.reg_i * qjf)
        loss += cfg.reg_u * float((puf * puf).sum()) + cfg.reg_i * float((qjf * qjf).sum())

        if items.numel():
            ykf = Y[items].clone()
            Y.index_add_(0, items, rates.lr * (e * item_side / w - cfg.reg_u * ykf))
            loss += cfg.reg_u * float((ykf * ykf).sum())

        if com_items.numel():
            zkf = Z[com_items].clone()
            Z.index_add_(0, com_items, rates.lr_cf * (e * item_side / cw - cfg.reg_cf * zkf))
            loss += cfg.reg_cf * float((zkf * zkf).sum())

        ocu = Ocu[user_coms].clone()
        Ocu.index_add_(0, user_coms, rates.lr_cf * (e * mu.unsqueeze(1) * item_side - cfg.reg_cf * ocu))
        loss += cfg.reg_cf * float((ocu * ocu).sum())

        oci = Oci[item_coms].clone()
        Oci.index_add_(0, item_coms, rates.lr_cf * (e * mi.unsqueeze(1) * user_side - cfg.reg_cf * oci))
        loss += cfg.reg_cf * float((oci * oci).sum())

    return loss


def fit(rec: "CommunityNeighborhoodRecommender", cfg: TrainConfig) -> list[float]:
    """Run SGD over all training ratings until `cfg.iterations` or convergence.

    Ratings are visited in row-major order of the training matrix. Returns the
    loss of every completed iteration.
    """
    train = rec.context.train
    rows = train.indptr
    rates = LearningRates.from_config(cfg).capped(cfg.max_lr)
    history: list[float] = []
    last_loss = 0.0

    logger.info("Learning model parameters: iterations=%d ratings=%d", int(cfg.iterations), train.nnz)
    for iteration in range(1, int(cfg.iterations) + 1):
        loss = 0.0
        for u in range(train.shape[0]):
            for idx in range(rows[u], rows[u + 1]):
                loss += sgd_update(rec, u, int(train.indices[idx]), float(train.data[idx]), rates, cfg)
        loss *= 0.5
        history.append(loss)

        outcome = check_iteration(iteration, loss, last_loss, rates, cfg)
        logger.info(
            "iter=%d loss=%.6f delta_loss=%.6f lr=%.6f", iteration, loss, outcome.delta_loss, outcome.rates.lr
        )
        rates = outcome.rates
        last_loss = loss
        if outcome.converged:
            break

    return history
