from __future__ import annotations

import argparse
import logging
from dataclasses import replace
from pathlib import Path

import pandas as pd

from ..communities.backends import CommunityDetectionAlgorithm
from ..config import get_repo_root, load_config, resolve_path
from ..data import RatingData, load_ratings_csv
from ..utils import ReproducibilityConfig, set_global_seed, setup_logging
from .recommender import CommunityNeighborhoodRecommender


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Community-aware neighborhood SVD++ recommendations")
    p.add_argument("--ratings", type=Path, required=True, help="CSV with userId,itemId,rating columns")
    p.add_argument("--user-id", type=str, required=True, help="Raw userId from the ratings file")
    p.add_argument("--k", type=int, default=10, help="How many item recommendations to return")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument(
        "--algorithm",
        choices=[a.value for a in CommunityDetectionAlgorithm],
        default=None,
        help="Override community.algorithm",
    )
    p.add_argument("--iterations", type=int, default=None, help="Override train.iterations")
    p.add_argument("--log-level", type=str, default="INFO")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)

    repo_root = get_repo_root()
    config_path = resolve_path(repo_root, args.config)
    cfg = load_config(config_path)
    if args.algorithm is not None:
        cfg = replace(cfg, community=replace(cfg.community, algorithm=CommunityDetectionAlgorithm(args.algorithm)))
    if args.iterations is not None:
        cfg = replace(cfg, train=replace(cfg.train, iterations=int(args.iterations)))

    set_global_seed(ReproducibilityConfig(seed=cfg.train.seed))

    df = load_ratings_csv(resolve_path(repo_root, args.ratings))
    # Keep raw ids as strings so --user-id matches regardless of the CSV dtype.
    df["userId"] = df["userId"].astype(str)
    data = RatingData.from_frame(df)

    rec = CommunityNeighborhoodRecommender(data.train, config=cfg, rating_scale=data.rating_scale)
    rec.init_model()
    rec.build_model()

    u = data.inner_user_id(str(args.user_id))
    recs = rec.recommend(u, k=int(args.k))

    print("\n=== Recommended Items ===")
    if recs:
        df_r = pd.DataFrame(
            [{"itemId": data.raw_item_id(r.item), "score": rec.predict(u, r.item, bound=True)} for r in recs]
        )
        print(df_r.to_string(index=False))
    else:
        print("No recommendations found (the user has rated every item).")


if __name__ == "__main__":
    main()
