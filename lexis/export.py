"""
Versioned JSON export of hard-word lists.

The export is a reading-list artifact, not a full result dump: each word
keeps its frequency score and example contexts, but counts and variants
are intentionally left out.

Format:
    {
      "version": "1.0",
      "exported_at": "2026-01-01T12:00:00+00:00",
      "books": [
        {"id": 7, "title": "...", "author": "...",
         "words": [{"word": "...", "frequency_score": 1.2e-06, "contexts": ["..."]}]}
      ]
    }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lexis.models import AnalysisResult, HardWordRecord

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


@dataclass(frozen=True)
class BookInfo:
    """Library metadata attached to an exported book."""

    id: int
    title: str
    author: str | None = None


def export_word(record: HardWordRecord) -> dict[str, Any]:
    return {
        "word": record.word,
        "frequency_score": record.frequency_score,
        "contexts": list(record.contexts),
    }


def build_export(
    books: Iterable[tuple[BookInfo, AnalysisResult]],
    exported_at: datetime | None = None,
) -> dict[str, Any]:
    """
    Build the export document.

    Args:
        books: (book metadata, analysis result) pairs, in the order to export
        exported_at: Export timestamp (defaults to now, UTC)

    Returns:
        JSON-serializable export document
    """
    exported_at = exported_at or datetime.now(timezone.utc)
    return {
        "version": EXPORT_VERSION,
        "exported_at": exported_at.isoformat(),
        "books": [
            {
                "id": info.id,
                "title": info.title,
                "author": info.author,
                "words": [export_word(record) for record in result.hard_words],
            }
            for info, result in books
        ],
    }


def write_export(
    path: str | Path,
    books: Iterable[tuple[BookInfo, AnalysisResult]],
    exported_at: datetime | None = None,
) -> Path:
    """
    Write the export document to ``path``.

    Raises:
        OSError: If the file cannot be written.
    """
    path = Path(path)
    document = build_export(books, exported_at)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error("Failed to write export %s: %s", path, e)
        raise
    logger.info(
        "Exported %d books (%d words) to %s",
        len(document["books"]),
        sum(len(book["words"]) for book in document["books"]),
        path,
    )
    return path
