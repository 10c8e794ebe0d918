import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Iterator, TextIO

from .config import BOOLEAN_DATA, BOOLEAN_PREF_VALUE, NUM_RECOMMENDATIONS, SHOW_PROGRESS, THRESHOLD
from .errors import CfrankError
from .job_config import RecommenderConfig
from .pipeline import (
    build_preference_matrix,
    build_similarity_matrix,
    collect_row_statistics,
    combine_by_key,
    recommend,
)
from .row_stats import Record
from .topk import RecommendedItem, load_item_allowlist
from .vectors import SparseVector

logger = logging.getLogger(__name__)


def read_triples(path: str | Path, default_value: float | None = None) -> Iterator[tuple[int, int, float]]:
    """
    Read ``a,b,value`` lines.

    Blank lines and lines starting with ``#`` are skipped. Two-column lines
    take ``default_value`` when one is given; anything else unparsable is
    logged and ignored.
    """
    with open(path, newline="", encoding="utf-8") as handle:
        for line_no, row in enumerate(csv.reader(handle), start=1):
            if not row or not row[0].strip() or row[0].lstrip().startswith("#"):
                continue
            try:
                if len(row) == 2 and default_value is not None:
                    yield int(row[0]), int(row[1]), default_value
                elif len(row) == 3:
                    yield int(row[0]), int(row[1]), float(row[2])
                else:
                    raise ValueError(f"expected 3 fields, got {len(row)}")
            except ValueError as exc:
                logger.warning(f"{path}:{line_no} ignored ({exc}): {','.join(row)}")


def format_recommendations(items: list[RecommendedItem]) -> str:
    return "[" + ",".join(f"{item.item_id}:{item.score:g}" for item in items) + "]"


def format_vector(vector: SparseVector) -> str:
    return "{" + ",".join(f"{index}:{value:g}" for index, value in sorted(vector.nonzeroes())) + "}"


def _open_output(path: str | None) -> TextIO:
    return open(path, "w", encoding="utf-8") if path else sys.stdout


def cmd_recommend(args: argparse.Namespace) -> None:
    """Compute top-K recommendations for every user."""
    default_pref = BOOLEAN_PREF_VALUE if args.boolean_data else None
    preferences, user_map, item_map = build_preference_matrix(read_triples(args.preferences, default_pref))

    # Similarity triples are keyed by user IDs (user-based) or item IDs (item-based)
    sim_index = item_map if args.item_based else user_map
    similarity = build_similarity_matrix(read_triples(args.similarity), sim_index)

    cfg = RecommenderConfig(
        boolean_data=args.boolean_data,
        num_recommendations=args.num_recommendations,
        items_to_recommend_for=load_item_allowlist(args.items_file) if args.items_file else None,
        item_index_map=item_map,
    )

    results = recommend(
        preferences,
        similarity,
        cfg,
        item_based=args.item_based,
        user_index_map=user_map,
        num_partitions=args.partitions,
        show_progress=args.progress,
    )

    out = _open_output(args.output)
    try:
        for user_id in sorted(results):
            out.write(f"{user_id}\t{format_recommendations(results[user_id])}\n")
    finally:
        if out is not sys.stdout:
            out.close()
    logger.info(f"Wrote recommendations for {len(results)} users")


def cmd_row_stats(args: argparse.Namespace) -> None:
    """Normalize and transpose a row matrix, reporting per-row statistics."""
    rows: dict[int, SparseVector] = {}
    for row, column, value in read_triples(args.matrix):
        rows.setdefault(row, SparseVector()).set(column, value)

    cfg = RecommenderConfig(threshold=args.threshold)
    column_records, stats_records = collect_row_statistics(sorted(rows.items()), args.similarity_classname, cfg)

    records: list[Record] = sorted(combine_by_key(column_records).items())
    records.extend(stats_records)

    out = _open_output(args.output)
    try:
        for key, vector in records:
            out.write(f"{key}\t{format_vector(vector)}\n")
    finally:
        if out is not sys.stdout:
            out.close()


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Collaborative filtering recommendations")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Recommend command
    rec_parser = subparsers.add_parser("recommend", help="Compute top-K recommendations per user")
    rec_parser.add_argument("--preferences", required=True, help="CSV of user,item,value lines")
    rec_parser.add_argument("--similarity", required=True, help="CSV of id,id,similarity lines")
    rec_parser.add_argument("--item-based", action="store_true",
                            help="Similarity file holds item-item similarities (default: user-user)")
    rec_parser.add_argument("--boolean-data", action="store_true", default=BOOLEAN_DATA,
                            help="Treat preferences as presence only and rank by summed similarity")
    rec_parser.add_argument("--num-recommendations", "-n", type=int, default=NUM_RECOMMENDATIONS,
                            help="Recommendations per user")
    rec_parser.add_argument("--items-file", help="Only recommend item IDs listed in this file (one per line)")
    rec_parser.add_argument("--partitions", type=int, default=1, help="Number of user partitions")
    rec_parser.add_argument("--output", "-o", help="Output file (default: stdout)")
    rec_parser.add_argument("--progress", action="store_true", default=SHOW_PROGRESS, help="Show progress bars")
    rec_parser.set_defaults(func=cmd_recommend)

    # Row statistics command
    stats_parser = subparsers.add_parser("row-stats", help="Transpose rows and collect norms/maxima")
    stats_parser.add_argument("--matrix", required=True, help="CSV of row,column,value lines")
    stats_parser.add_argument("--similarity-classname", required=True,
                              help="Dotted path of a class providing normalize() and norm()")
    stats_parser.add_argument("--threshold", type=float, default=THRESHOLD,
                              help="Similarity threshold; enables non-zero count and max value collection")
    stats_parser.add_argument("--output", "-o", help="Output file (default: stdout)")
    stats_parser.set_defaults(func=cmd_row_stats)

    args = parser.parse_args(argv)

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except CfrankError as exc:
        logger.error(f"{args.command} failed: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
