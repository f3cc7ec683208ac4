#!/usr/bin/env python3
"""
Book recommendations from a key-value index.

Loads book records, stores their vectors in the key-value store and prints
top-K and range recommendations for one book (or for a pair of sample books).
"""

import argparse
import json
import sys
from typing import List, Optional

from .core.bootstrap import StartMode, bootstrap
from .core.config import (
    get_build_workers,
    get_data_path,
    get_embedding_provider,
    get_kv_store,
    get_query_workers,
    get_range_radius,
    get_top_k,
    get_vector_store,
    validate_config,
)
from .core.errors import BookRecError, StoreConnectionError
from .core.index_builder import BuildReport, entry_key
from .core.query_engine import QueryEngine
from .vector.embeddings import FeatureEncoder
from .vector.types import QueryResult

# Queried when no --book is given
DEMO_BOOK_IDS = ["book:26415", "book:9"]


def parse_bool(value: str) -> bool:
    """argparse type for explicit true/false flag values."""
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "y", "on"):
        return True
    if lowered in ("false", "0", "no", "n", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got '{value}'")


def format_recommendations(result: QueryResult) -> str:
    """Format hits for display."""
    lines = []
    for r in result:
        lines.append(f"\tid: {r.id}\n\ttitle: {r.title}\n\tscore: {r.score}\n\n")
    return "".join(lines)


def format_build_report(report: BuildReport) -> str:
    lines = [f"Index: {report.index_name}"]
    if report.cancelled:
        lines.append("Status: CANCELLED")
    elif report.failed:
        lines.append(f"Status: COMPLETED WITH FAILURES ({report.failed} failed)")
    else:
        lines.append("Status: SUCCESS")
    lines.append(f"Entries written: {report.written}")
    if report.failed:
        lines.append(f"Entries failed: {report.failed}")
        for error in report.errors[:5]:
            lines.append(f"  - {error}")
    return "\n".join(lines)


def _result_dict(result: QueryResult) -> dict:
    return {
        "count": result.count,
        "recommendations": [{"id": r.id, "title": r.title, "score": r.score} for r in result],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookrec",
        description="Book recommendations from a key-value vector index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --load true                 # Build the index, then run the sample queries
  %(prog)s --load false --book 9       # Query an existing index
  %(prog)s --text "space opera"        # Free-text query against an existing index

Environment variables:
- STORE_BACKEND=redis|sqlite|memory (default redis)
- REDIS_HOST=127.0.0.1, REDIS_PORT=6379 or REDIS_URL
- EMBED_PROVIDER=hash|sentence, EMBED_DIM=384
- SEARCH_BACKEND=bruteforce|faiss
        """
    )

    parser.add_argument(
        "--store-url", "-r",
        default=None,
        help="Redis URL (overrides REDIS_URL / REDIS_HOST / REDIS_PORT)"
    )

    parser.add_argument(
        "--book", "-b",
        default="",
        help="Id of the book to get recommendations for (e.g. 9 or book:9)"
    )

    parser.add_argument(
        "--load", "-l",
        type=parse_bool,
        default=False,
        metavar="BOOL",
        help="Load the records and build the index (false reuses the stored index)"
    )

    parser.add_argument(
        "--data", "-d",
        default=None,
        help="Records to load: directory of JSON files, JSON or JSON-lines file"
    )

    parser.add_argument(
        "--k", "-k",
        type=int,
        default=None,
        help="Number of recommendations to show"
    )

    parser.add_argument(
        "--radius",
        type=float,
        default=None,
        help="Cosine distance radius for range recommendations"
    )

    parser.add_argument(
        "--text", "-t",
        default=None,
        help="Free-text query instead of a book id"
    )

    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output results as JSON instead of human-readable text"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    k = args.k if args.k is not None else get_top_k()
    radius = args.radius if args.radius is not None else get_range_radius()
    if k < 1:
        parser.error("--k must be >= 1")

    store = get_kv_store(args.store_url)
    try:
        encoder = FeatureEncoder(get_embedding_provider())
        mode = StartMode.from_flag(args.load)
        report = bootstrap(mode, store, encoder, args.data or get_data_path(), workers=get_build_workers())

        output = {}
        if report is not None:
            if args.json:
                output["build"] = report.to_dict()
            else:
                print(format_build_report(report))
                print("-" * 60)

        engine = QueryEngine(store, encoder=encoder, vector_store_factory=get_vector_store,
                             workers=get_query_workers())

        if args.text:
            result = engine.query_text(args.text, k=k)
            if args.json:
                output["text"] = {"query": args.text, **_result_dict(result)}
            else:
                print(f"Recommendations for \"{args.text}\"")
                print(format_recommendations(result), end="")
        else:
            targets = [entry_key(args.book)] if args.book else DEMO_BOOK_IDS

            knn = {target: engine.query(target, k=k) for target in targets}
            by_range = {target: engine.query_range(target, radius=radius, limit=k) for target in targets}

            if args.json:
                output["recommendations"] = {t: _result_dict(r) for t, r in knn.items()}
                output["range"] = {t: _result_dict(r) for t, r in by_range.items()}
            else:
                for target, result in knn.items():
                    print(f"Recommendations for {target}")
                    print(format_recommendations(result), end="")
                for target, result in by_range.items():
                    print(f"Recommendations by range for {target}")
                    print(format_recommendations(result), end="")

        if args.json:
            print(json.dumps(output, indent=2, default=str))
        return 0

    except StoreConnectionError as e:
        print(f"ERROR: Store unavailable: {e}")
        return 1
    except BookRecError as e:
        print(f"ERROR: {e}")
        return 1
    except OSError as e:
        print(f"ERROR: Cannot read records: {e}")
        return 1
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
