"""
Command-line interface.

Usage:
    lexis analyze book.txt --threshold 0.00005 --output result.json
    lexis analyze book.txt --export words.json --title "Persuasion"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from lexis.analyze import analyze
from lexis.config import DEFAULT_RARITY_THRESHOLD
from lexis.exceptions import AnalysisCancelled, LexisError
from lexis.export import BookInfo, write_export
from lexis.progress import ProgressEvent

logger = logging.getLogger(__name__)


def _print_progress(event: ProgressEvent) -> None:
    detail = f" {event.detail}" if event.detail else ""
    print(f"[{event.progress:3d}%] {event.stage.value}{detail}", file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lexis",
        description="Extract hard vocabulary from book text.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser("analyze", help="Analyse one plain-text book")
    analyze_parser.add_argument("file", type=Path, help="UTF-8 text file")
    analyze_parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_RARITY_THRESHOLD,
        help="Rarity threshold; words rarer than this are kept (default: %(default)s)",
    )
    analyze_parser.add_argument("--book-id", type=int, default=0)
    analyze_parser.add_argument(
        "--output", type=Path, default=None, help="Write the full result JSON here"
    )
    analyze_parser.add_argument(
        "--export", type=Path, default=None, help="Write a versioned word-list export here"
    )
    analyze_parser.add_argument("--title", default=None, help="Book title for --export")
    analyze_parser.add_argument("--author", default=None, help="Book author for --export")
    analyze_parser.add_argument(
        "--quiet", action="store_true", help="Do not print progress to stderr"
    )
    return parser


def _run_analyze(args: argparse.Namespace) -> int:
    if not args.file.is_file():
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        return 1

    try:
        document = args.file.read_bytes()
    except OSError as e:
        print(f"Error: Cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    try:
        result = analyze(
            document,
            args.threshold,
            book_id=args.book_id,
            on_progress=None if args.quiet else _print_progress,
        )
    except AnalysisCancelled:
        return 130
    except LexisError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(
            json.dumps(result.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
        )
    else:
        for record in result.hard_words:
            print(f"{record.word}\t{record.frequency_score:.2e}\t{record.count}")

    if args.export:
        info = BookInfo(id=args.book_id, title=args.title or args.file.stem, author=args.author)
        write_export(args.export, [(info, result)])

    print(
        f"{result.stats.hard_words_count} hard words in {result.word_count} words "
        f"({len(result.stats.filtered_by_ner)} names removed)",
        file=sys.stderr,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "analyze":
        return _run_analyze(args)
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
