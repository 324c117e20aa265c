"""
Hard-word analysis entry points.

This module provides the main `analyze()` function that turns a book's raw
text into a ranked AnalysisResult, running the pipeline synchronously in
the calling thread. For background execution with queuing and progress
channels, see `lexis.jobs.JobQueue`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from lexis.config import AnalysisConfig
from lexis.context import PipelineContext
from lexis.exceptions import LexisError
from lexis.jobs import AnalysisJob, CancellationToken, ProgressListener
from lexis.models import AnalysisResult

logger = logging.getLogger(__name__)


def analyze(
    document_text: str | bytes,
    rarity_threshold: float | None = None,
    *,
    book_id: int = 0,
    config: AnalysisConfig | None = None,
    context: PipelineContext | None = None,
    on_progress: ProgressListener | None = None,
    cancel_token: CancellationToken | None = None,
) -> AnalysisResult:
    """
    Extract hard words from a document.

    This is the main entry point for Lexis. It runs, in order:
    - Sentence and word segmentation
    - Frequency filtering against the rarity threshold
    - Repair of concatenated tokens ("theendofeternity")
    - Stem grouping of inflected forms
    - Removal of names and places with the entity model
    - Aggregation into ranked records

    Args:
        document_text: Raw book text (or UTF-8 bytes). Empty or unreadable
            input yields an empty result, not an error.
        rarity_threshold: Words strictly rarer than this are kept
            (~1e-6 very rare .. 1e-4 common). Overrides ``config``.
        book_id: Identifier echoed in progress events and the result.
        config: Analysis configuration (uses defaults if None).
        context: Shared resources (uses the process default if None; its
            entity model and labels are fixed when it is first created).
        on_progress: Called synchronously with each progress event.
        cancel_token: Token polled at every stage boundary.

    Returns:
        AnalysisResult with hard words sorted rarest first

    Raises:
        AnalysisCancelled: If ``cancel_token`` was cancelled.
        ResourceUnavailableError: If a frequency table, dictionary or model
            cannot be loaded.
        InferenceError: If the entity model fails.

    Example:
        >>> result = analyze(text, 0.00005, book_id=7)
        >>> for record in result.hard_words[:5]:
        ...     print(record.word, record.count, record.contexts[0])
    """
    config = config or AnalysisConfig()
    if rarity_threshold is not None:
        config = config.with_threshold(rarity_threshold)

    job = AnalysisJob(
        book_id=book_id,
        document=document_text,
        config=config,
        context=context,
        cancel_token=cancel_token,
        on_progress=on_progress,
    )
    job.run()
    return job.result()


def analyze_batch(
    books: Mapping[int, str | bytes] | Iterable[tuple[int, str | bytes]],
    rarity_threshold: float | None = None,
    *,
    config: AnalysisConfig | None = None,
    context: PipelineContext | None = None,
    on_progress: ProgressListener | None = None,
    cancel_token: CancellationToken | None = None,
) -> Iterator[tuple[int, AnalysisResult | LexisError]]:
    """
    Analyse several books one after another.

    A failed book does not stop the batch. Cancelling the shared token
    stops the current book and every later one.

    Args:
        books: book_id -> text mapping, or (book_id, text) pairs
        rarity_threshold: Applied to every book
        config: Analysis configuration
        context: Shared resources for all books
        on_progress: Progress listener (events carry their book_id)
        cancel_token: Token shared by all books

    Yields:
        (book_id, result) tuples where result is AnalysisResult or the
        LexisError that ended that book's job
    """
    items = books.items() if isinstance(books, Mapping) else books
    for book_id, document in items:
        try:
            result = analyze(
                document,
                rarity_threshold,
                book_id=book_id,
                config=config,
                context=context,
                on_progress=on_progress,
                cancel_token=cancel_token,
            )
        except LexisError as e:
            logger.warning("Book %d: %s", book_id, e)
            yield (book_id, e)
            continue
        yield (book_id, result)
