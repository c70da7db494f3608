"""
Command line entry points.

``recommend`` runs the pipeline for one requirement profile (JSON file)
against a catalog export and prints the result as JSON.  ``embed``
regenerates the item embedding matrix and id map from a catalog export.

    python -m vmsrp.cli recommend --catalog data/catalog.xlsx --profile profile.json
    python -m vmsrp.cli embed --catalog data/catalog.xlsx
"""

from __future__ import annotations
import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from .assemble import JsonFilePackageSink
from .catalog import DataFrameCatalogStore, load_catalog_frame, row_to_item
from .config import (
    CATALOG_SNAPSHOT_PATH,
    EMBED_BATCH_DELAY_SEC,
    EMBED_BATCH_SIZE,
    EMBEDDINGS_PATH,
    ENCODER_MODEL,
    IDS_MAPPING_PATH,
    PACKAGES_PATH,
    ensure_hf_env,
    ensure_log_dir,
)
from .embed_index import (
    SentenceTransformerEmbedder,
    build_item_embeddings,
    load_embedding_store,
    save_embeddings,
)
from .llm import OpenAICompletionClient
from .models import RequirementProfile
from .pipeline import recommend


def configure_logging(verbose: bool = False) -> None:
    """Console at INFO (DEBUG with ``-v``) plus a rotating file under the log dir."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")
    logger.add(
        ensure_log_dir() / "vmsrp.log",
        level="DEBUG",
        rotation="10 MB",
        retention=5,
        encoding="utf-8",
    )


def load_profile(path: Path) -> RequirementProfile:
    with path.open("r", encoding="utf-8") as f:
        return RequirementProfile.model_validate(json.load(f))


def cmd_recommend(args: argparse.Namespace) -> int:
    profile = load_profile(Path(args.profile))
    df = load_catalog_frame(Path(args.catalog))
    embedder = SentenceTransformerEmbedder(args.encoder)
    outcome = recommend(
        profile,
        catalog=DataFrameCatalogStore(df),
        embedding_store=load_embedding_store(Path(args.embeddings), Path(args.ids)),
        completion=OpenAICompletionClient(),
        embedder=embedder,
        sink=JsonFilePackageSink(Path(args.packages)),
    )
    print(outcome.model_dump_json(indent=2))
    return 0 if outcome.success else 1


def cmd_embed(args: argparse.Namespace) -> int:
    df = load_catalog_frame(Path(args.catalog))
    items = [row_to_item(row) for _, row in df.iterrows()]
    embedder = SentenceTransformerEmbedder(args.encoder)
    ids, vectors = build_item_embeddings(
        items, embedder, batch_size=args.batch_size, delay_sec=args.delay
    )
    save_embeddings(ids, vectors, Path(args.out_embeddings), Path(args.out_ids))
    print(f"Embedded {len(ids)}/{len(items)} items -> {args.out_embeddings}")
    return 0 if len(ids) == len(items) else 1


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="vmsrp", description="Training content package recommender")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging on the console")
    sub = ap.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("recommend", help="build a package for one requirement profile")
    rec.add_argument("--catalog", default=str(CATALOG_SNAPSHOT_PATH), help="parquet/xlsx/csv export")
    rec.add_argument("--profile", required=True, help="requirement profile JSON")
    rec.add_argument("--embeddings", default=str(EMBEDDINGS_PATH))
    rec.add_argument("--ids", default=str(IDS_MAPPING_PATH))
    rec.add_argument("--packages", default=str(PACKAGES_PATH), help="package JSON store")
    rec.add_argument("--encoder", default=ENCODER_MODEL)
    rec.set_defaults(func=cmd_recommend)

    emb = sub.add_parser("embed", help="regenerate item embeddings")
    emb.add_argument("--catalog", default=str(CATALOG_SNAPSHOT_PATH))
    emb.add_argument("--out-embeddings", default=str(EMBEDDINGS_PATH))
    emb.add_argument("--out-ids", default=str(IDS_MAPPING_PATH))
    emb.add_argument("--batch-size", type=int, default=EMBED_BATCH_SIZE)
    emb.add_argument("--delay", type=float, default=EMBED_BATCH_DELAY_SEC, help="seconds between batches")
    emb.add_argument("--encoder", default=ENCODER_MODEL)
    emb.set_defaults(func=cmd_embed)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ensure_hf_env()
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
