from __future__ import annotations

import argparse
import logging
from pathlib import Path

import pandas as pd

from .config import load_config, section
from .data import load_movielens, sample_dataset
from .errors import NumericInstability, RecommenderError
from .models import ModelKind
from .paths import ProjectPaths, get_repo_root, resolve_path
from .session import RecommenderSession
from .train import EpochReport, TrainConfig
from .utils import setup_logging


logger = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Train a latent-factor recommender on MovieLens and show recommendations.")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--data-dir", type=Path, default=None, help="Directory with u.data and u.item")
    p.add_argument("--sample", action="store_true", help="Use the tiny built-in sample instead of files")
    p.add_argument("--model", choices=[k.value for k in ModelKind], default=None, help="rating or retrieval")
    p.add_argument("--epochs", type=int, default=None, help="Override epochs")
    p.add_argument("--batch-size", type=int, default=None, help="Override batch size")
    p.add_argument("--embed-dim", type=int, default=None, help="Override embedding dimension")
    p.add_argument("--lr", type=float, default=None, help="Override learning rate")
    p.add_argument("--reg", type=float, default=None, help="Override L2 strength (rating model)")
    p.add_argument("--train-fraction", type=float, default=None, help="Override train/validation split ratio")
    p.add_argument("--seed", type=int, default=None, help="Seed for init and shuffling")
    p.add_argument("--user-id", type=int, default=None, help="Raw user id; default: first qualified user")
    p.add_argument("--top-n", type=int, default=None, help="How many recommendations to return")
    p.add_argument("--project-out", type=Path, default=None, help="Write 2D item projection CSV here")
    return p


def main(argv: list[str] | None = None) -> int:
    setup_logging("INFO")
    args = build_arg_parser().parse_args(argv)

    config: dict = {}
    try:
        repo_root = get_repo_root()
    except FileNotFoundError:
        repo_root = Path.cwd()
    config_path = resolve_path(repo_root, args.config)
    if config_path.exists():
        config = load_config(config_path)
    else:
        logger.info("No config at %s; using defaults", config_path)

    dataset_cfg = section(config, "dataset")
    ranking_cfg = section(config, "ranking")
    projection_cfg = section(config, "projection")

    try:
        train_cfg = TrainConfig.from_mapping(
            section(config, "training"),
            epochs=args.epochs,
            batch_size=args.batch_size,
            embed_dim=args.embed_dim,
            lr=args.lr,
            reg=args.reg,
            train_fraction=args.train_fraction,
            seed=args.seed,
        )
    except RecommenderError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    if args.sample:
        data = sample_dataset()
        min_user_ratings = 1
    else:
        raw_dir = args.data_dir if args.data_dir is not None else Path(str(dataset_cfg.get("raw_dir", "data/raw")))
        paths = ProjectPaths.from_repo_root(repo_root, raw_dir=raw_dir)
        max_interactions = dataset_cfg.get("max_interactions")
        data = load_movielens(paths.raw_dir, max_interactions=None if max_interactions is None else int(max_interactions))
        min_user_ratings = int(dataset_cfg.get("min_user_ratings", 20))

    session = RecommenderSession.from_data(
        data,
        rating_min=float(ranking_cfg.get("rating_min", 1.0)),
        rating_max=float(ranking_cfg.get("rating_max", 5.0)),
    )

    kind = ModelKind(args.model or section(config, "model").get("kind", ModelKind.RATING.value))
    progress: list[EpochReport] = []
    try:
        result = session.train(train_cfg, kind=kind, on_epoch=progress.append)
    except NumericInstability as exc:
        logger.error("Training diverged: %s (try a lower --lr)", exc)
        return 1

    print("\n=== Training ===")
    print(pd.DataFrame([r.__dict__ for r in progress]).to_string(index=False))
    print(f"state={result.state.value} epochs_completed={result.epochs_completed}")

    user_id = args.user_id
    if user_id is None:
        candidates = session.qualified_users(min_ratings=min_user_ratings)
        if not candidates:
            print("No user has enough ratings to pick a default; pass --user-id.")
            return 1
        user_id = candidates[0]

    top_n = int(args.top_n or ranking_cfg.get("top_n", 10))
    try:
        history = session.history(user_id, limit=top_n)
        recs = session.recommend(user_id, top_n=top_n)
    except RecommenderError as exc:
        logger.error("%s", exc)
        return 1

    titles = {it.item_id: it.title for it in data.items}
    print(f"\n=== Top rated by user {user_id} ===")
    df_h = pd.DataFrame(
        [{"itemId": r.item_id, "title": titles.get(r.item_id, f"Item {r.item_id}"), "rating": r.rating} for r in history]
    )
    print(df_h.to_string(index=False))

    print(f"\n=== Recommended for user {user_id} ===")
    if recs:
        print(pd.DataFrame([r.__dict__ for r in recs]).to_string(index=False))
    else:
        print("No unrated items left to recommend.")

    if args.project_out is not None:
        points = session.project_items(
            max_points=projection_cfg.get("max_points"),
            n_iter=int(projection_cfg.get("n_iter", 10)),
        )
        out = Path(args.project_out)
        out.parent.mkdir(parents=True, exist_ok=True)
        df_p = pd.DataFrame([p.__dict__ for p in points])
        df_p["title"] = [session.titles[i] for i in df_p["item_idx"]]
        df_p.to_csv(out, index=False)
        logger.info("Wrote %d projected points to %s", len(df_p), out)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
