"""
Data models for Lexis.

Working types (Sentence, WordOccurrence, CandidateWord, WordGroup) live only
for the duration of one analysis. The output types (HardWordRecord,
AnalysisStats, AnalysisResult) are immutable and owned by the caller.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

# Frequency score reported for words the frequency table does not contain
UNKNOWN_FREQUENCY = -1.0


# =============================================================================
# WORKING TYPES
# =============================================================================


@dataclass(frozen=True)
class Sentence:
    """A sentence with its stable position in the document."""

    index: int
    text: str
    start: int  # Character offset of the sentence in the document


@dataclass(frozen=True)
class WordOccurrence:
    """One token instance inside a sentence."""

    surface: str  # As it appeared ("Gaieties")
    canonical: str  # Lowercase lookup form ("gaieties")
    sentence_index: int
    offset: int  # Character offset within the sentence

    @property
    def end(self) -> int:
        return self.offset + len(self.surface)

    def overlaps(self, start: int, end: int) -> bool:
        """True if this token shares at least one character with [start, end)."""
        return self.offset < end and start < self.end


@dataclass
class CandidateWord:
    """
    A canonical form and every occurrence that shares it.

    Filled by the frequency filter and handed stage to stage; only the stage
    currently holding it appends to ``occurrences``.
    """

    canonical: str
    occurrences: list[WordOccurrence] = field(default_factory=list)
    frequency_score: float = UNKNOWN_FREQUENCY

    @property
    def count(self) -> int:
        return len(self.occurrences)

    @property
    def is_known(self) -> bool:
        return self.frequency_score != UNKNOWN_FREQUENCY

    def add(self, occurrence: WordOccurrence) -> None:
        self.occurrences.append(occurrence)


@dataclass
class WordGroup:
    """
    Candidate words that reduce to the same stem.

    ``word`` is the representative form shown to the reader; the other forms
    become variants.
    """

    stem: str
    forms: dict[str, CandidateWord]
    word: str

    @property
    def occurrences(self) -> list[WordOccurrence]:
        """All occurrences in document order."""
        merged = [occ for form in self.forms.values() for occ in form.occurrences]
        merged.sort(key=lambda occ: (occ.sentence_index, occ.offset))
        return merged

    @property
    def count(self) -> int:
        return sum(form.count for form in self.forms.values())

    @property
    def variants(self) -> list[str]:
        return sorted(form for form in self.forms if form != self.word)

    @property
    def frequency_score(self) -> float:
        """
        Score of the representative form, falling back to the most common
        known form, then to UNKNOWN_FREQUENCY.
        """
        representative = self.forms[self.word]
        if representative.is_known:
            return representative.frequency_score
        known = [form.frequency_score for form in self.forms.values() if form.is_known]
        return max(known) if known else UNKNOWN_FREQUENCY

    def form_counts(self) -> Counter[str]:
        return Counter({name: form.count for name, form in self.forms.items()})


# =============================================================================
# OUTPUT TYPES
# =============================================================================


@dataclass(frozen=True)
class SampleWord:
    """A word shown while entity filtering runs, with its classification."""

    word: str
    is_entity: bool

    def to_dict(self) -> dict[str, Any]:
        return {"word": self.word, "is_entity": self.is_entity}


@dataclass(frozen=True)
class HardWordRecord:
    """
    One entry in the hard-word list.

    Invariants:
        count >= 1 and equals the occurrences of ``word`` plus all variants.
        ``variants`` never contains ``word``.
        ``contexts`` come only from occurrences that survived every stage.
    """

    word: str
    frequency_score: float
    contexts: tuple[str, ...]
    count: int
    variants: tuple[str, ...] = ()

    @property
    def is_known(self) -> bool:
        return self.frequency_score != UNKNOWN_FREQUENCY

    def to_dict(self) -> dict[str, Any]:
        return {
            "word": self.word,
            "frequency_score": self.frequency_score,
            "contexts": list(self.contexts),
            "count": self.count,
            "variants": list(self.variants),
        }


@dataclass(frozen=True)
class AnalysisStats:
    """Summary counts for one analysis."""

    total_candidates: int = 0
    filtered_by_ner: tuple[str, ...] = ()
    hard_words_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_candidates": self.total_candidates,
            "filtered_by_ner": list(self.filtered_by_ner),
            "hard_words_count": self.hard_words_count,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """
    The main output type for callers.

    Example:
        >>> result = lexis.analyze(text, 0.00005, book_id=7)
        >>> for record in result.hard_words[:10]:
        ...     print(record.word, record.count)
    """

    book_id: int
    word_count: int
    hard_words: tuple[HardWordRecord, ...]
    stats: AnalysisStats

    @property
    def is_empty(self) -> bool:
        """True for a successful run that found no hard words."""
        return not self.hard_words

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary matching the result schema consumed by the UI
        """
        return {
            "book_id": self.book_id,
            "word_count": self.word_count,
            "hard_words": [record.to_dict() for record in self.hard_words],
            "stats": self.stats.to_dict(),
        }
