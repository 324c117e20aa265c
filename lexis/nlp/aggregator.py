"""
Final aggregation into hard-word records.

A pure fold over the surviving groups: no filtering happens here. Records
are ordered rarest first, then by descending count, then alphabetically,
so identical input always yields identical output.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping

from lexis.config import AnalysisConfig
from lexis.models import (
    AnalysisResult,
    AnalysisStats,
    HardWordRecord,
    Sentence,
    WordGroup,
)

logger = logging.getLogger(__name__)

WHITESPACE_PATTERN = re.compile(r"\s+")


def clean_context(text: str) -> str:
    """
    Normalize an example sentence for display.

    Example:
        >>> clean_context("She  was&nbsp;all\\u00a0civility.")
        'She was all civility.'
    """
    text = text.replace("&nbsp;", " ").replace("\u00a0", " ")
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def sort_key(record: HardWordRecord) -> tuple[float, int, str]:
    return (record.frequency_score, -record.count, record.word)


class Aggregator:
    """Builds HardWordRecords, statistics and the final AnalysisResult."""

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()

    def contexts(self, group: WordGroup, sentences: Mapping[int, Sentence]) -> tuple[str, ...]:
        """Distinct example sentences in order of first appearance, capped."""
        contexts: list[str] = []
        if self.config.max_contexts == 0:
            return ()
        for occ in group.occurrences:
            context = clean_context(sentences[occ.sentence_index].text)
            if not self.config.min_context_chars <= len(context) <= self.config.max_context_chars:
                continue
            if context in contexts:
                continue
            contexts.append(context)
            if len(contexts) >= self.config.max_contexts:
                break
        return tuple(contexts)

    def record(self, group: WordGroup, sentences: Mapping[int, Sentence]) -> HardWordRecord:
        return HardWordRecord(
            word=group.word,
            frequency_score=group.frequency_score,
            contexts=self.contexts(group, sentences),
            count=group.count,
            variants=tuple(group.variants),
        )

    def aggregate(
        self,
        book_id: int,
        word_count: int,
        groups: Iterable[WordGroup],
        sentences: Mapping[int, Sentence],
        total_candidates: int,
        filtered_by_ner: Iterable[str] = (),
    ) -> AnalysisResult:
        """
        Fold surviving groups into the terminal AnalysisResult.

        Args:
            book_id: Identifier of the analysed book.
            word_count: Total tokens in the document.
            groups: Groups that survived every filter.
            sentences: Document sentences by index (for contexts).
            total_candidates: Distinct groups before entity filtering.
            filtered_by_ner: Words dropped by entity filtering.
        """
        records = sorted((self.record(group, sentences) for group in groups), key=sort_key)
        stats = AnalysisStats(
            total_candidates=total_candidates,
            filtered_by_ner=tuple(sorted(filtered_by_ner)),
            hard_words_count=len(records),
        )
        logger.info(
            "Aggregated %d hard words (%d candidates, %d entities removed)",
            stats.hard_words_count,
            stats.total_candidates,
            len(stats.filtered_by_ner),
        )
        return AnalysisResult(
            book_id=book_id,
            word_count=word_count,
            hard_words=tuple(records),
            stats=stats,
        )
