"""
Frequency table lookup and rarity filtering.

Every distinct canonical form is looked up once in a read-only frequency
table. A word becomes a candidate when its score is strictly below the
rarity threshold. Words the table does not contain are NOT assumed rare:
they are handed to the segmentation corrector, which decides whether they
are conversion artifacts or real (unlisted) words.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Protocol

from lexis.exceptions import ResourceUnavailableError
from lexis.models import CandidateWord, WordOccurrence

logger = logging.getLogger(__name__)

DIGIT_CHARS = frozenset("0123456789")

# Words listed by a wordfreq table when no limit is given
WORDFREQ_WORD_LIMIT = 100_000


# =============================================================================
# FREQUENCY TABLES
# =============================================================================


class FrequencyTable(Protocol):
    """Read-only mapping from canonical word form to corpus frequency."""

    def score(self, word: str) -> float | None:
        """Frequency in [0, 1), or None if the word is not in the table."""
        ...

    def words(self, limit: int | None = None) -> list[str]:
        """Listed words; with ``limit``, only the most frequent ones."""
        ...


class WordfreqTable:
    """
    Frequency table backed by the ``wordfreq`` package.

    Scores are probabilities of seeing the word in a large mixed-genre
    English corpus ("the" ~ 0.05, "felicity" ~ 1.5e-6). ``wordfreq`` reports
    0.0 for unlisted words; that is mapped to None.

    Example:
        >>> table = WordfreqTable()
        >>> table.score("obsequious") < 0.00005
        True
        >>> table.score("theendofeternity") is None
        True
    """

    def __init__(self, lang: str = "en", wordlist: str = "large") -> None:
        self.lang = lang
        self.wordlist = wordlist
        try:
            from wordfreq import top_n_list, word_frequency

            # Probe once so a broken data install fails here, not mid-job
            word_frequency("the", lang, wordlist=wordlist)
        except (ImportError, LookupError, OSError, ValueError) as e:
            raise ResourceUnavailableError(
                f"Could not load wordfreq '{wordlist}' list for '{lang}': {e}",
                stage="frequency-filtering",
            ) from e
        self._word_frequency = word_frequency
        self._top_n_list = top_n_list
        logger.info("Loaded wordfreq frequency table (%s, %s)", lang, wordlist)

    def score(self, word: str) -> float | None:
        freq = self._word_frequency(word, self.lang, wordlist=self.wordlist)
        return freq if freq > 0.0 else None

    def words(self, limit: int | None = None) -> list[str]:
        """The ``limit`` most frequent alphabetic words (default 100,000)."""
        words = self._top_n_list(self.lang, limit or WORDFREQ_WORD_LIMIT, wordlist=self.wordlist)
        return [word for word in words if word.isalpha()]


class StaticFrequencyTable:
    """
    Frequency table from an in-memory mapping or a word-count file.

    The file format is one ``word count`` pair per line, as used by SymSpell
    frequency dictionaries. Counts are normalized to frequencies.

    Example:
        >>> table = StaticFrequencyTable.from_counts({"the": 900, "sanguine": 1})
        >>> table.score("sanguine")
        0.0011...
    """

    def __init__(self, frequencies: Mapping[str, float]) -> None:
        self._frequencies = {word.lower(): freq for word, freq in frequencies.items() if freq > 0}

    @classmethod
    def from_counts(cls, counts: Mapping[str, int]) -> StaticFrequencyTable:
        total = sum(counts.values())
        if total <= 0:
            return cls({})
        return cls({word: count / total for word, count in counts.items()})

    @classmethod
    def from_file(cls, path: str | Path, separator: str | None = None) -> StaticFrequencyTable:
        """
        Load a ``word count`` file.

        Raises:
            ResourceUnavailableError: If the file cannot be read or parsed.
        """
        path = Path(path)
        counts: dict[str, int] = {}
        try:
            with open(path, encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    parts = line.split(separator)
                    if len(parts) < 2:
                        raise ValueError(f"line {line_no}: expected 'word count'")
                    counts[parts[0]] = counts.get(parts[0], 0) + int(parts[1])
        except (OSError, ValueError) as e:
            raise ResourceUnavailableError(
                f"Could not load frequency dictionary {path}: {e}",
                stage="frequency-filtering",
            ) from e
        logger.info("Loaded %d words from %s", len(counts), path)
        return cls.from_counts(counts)

    def score(self, word: str) -> float | None:
        return self._frequencies.get(word.lower())

    def words(self, limit: int | None = None) -> list[str]:
        """All words alphabetically, or the ``limit`` most frequent."""
        if limit is None:
            return sorted(self._frequencies)
        return sorted(self._frequencies, key=lambda w: (-self._frequencies[w], w))[:limit]

    def __len__(self) -> int:
        return len(self._frequencies)

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and word.lower() in self._frequencies


# =============================================================================
# FREQUENCY FILTER
# =============================================================================


class FrequencyClass(Enum):
    """Outcome of looking one word up in the frequency table."""

    COMMON = "common"  # At or above the threshold, dropped
    RARE = "rare"  # Below the threshold, candidate
    UNKNOWN = "unknown"  # Not in the table, deferred to correction
    INELIGIBLE = "ineligible"  # Too short or contains digits


@dataclass
class FilterResult:
    """Candidates produced by one pass over the document."""

    candidates: dict[str, CandidateWord] = field(default_factory=dict)
    unknown: dict[str, CandidateWord] = field(default_factory=dict)
    tokens_seen: int = 0
    distinct_words: int = 0


class FrequencyFilter:
    """
    Keeps words rarer than the threshold, defers unknown words.

    The shared table is only read. Lookups are memoized per filter instance,
    and a filter instance belongs to one job.

    Example:
        >>> table = StaticFrequencyTable({"the": 0.05, "sanguine": 0.0000015})
        >>> f = FrequencyFilter(table, rarity_threshold=0.00005)
        >>> f.classify("the"), f.classify("sanguine"), f.classify("zzyzx")
        (<FrequencyClass.COMMON: 'common'>, <FrequencyClass.RARE: 'rare'>, <FrequencyClass.UNKNOWN: 'unknown'>)
    """

    def __init__(
        self,
        table: FrequencyTable,
        rarity_threshold: float,
        min_word_length: int = 3,
    ) -> None:
        self.table = table
        self.rarity_threshold = rarity_threshold
        self.min_word_length = min_word_length
        self._seen: dict[str, tuple[FrequencyClass, float | None]] = {}

    def lookup(self, word: str) -> tuple[FrequencyClass, float | None]:
        """Classify a canonical form and return its score (None if unknown)."""
        cached = self._seen.get(word)
        if cached is not None:
            return cached

        if len(word) < self.min_word_length or DIGIT_CHARS.intersection(word):
            decision: tuple[FrequencyClass, float | None] = (FrequencyClass.INELIGIBLE, None)
        else:
            score = self.table.score(word)
            if score is None:
                decision = (FrequencyClass.UNKNOWN, None)
            elif score < self.rarity_threshold:
                decision = (FrequencyClass.RARE, score)
            else:
                decision = (FrequencyClass.COMMON, score)

        self._seen[word] = decision
        return decision

    def classify(self, word: str) -> FrequencyClass:
        return self.lookup(word)[0]

    def add(self, occurrence: WordOccurrence, result: FilterResult) -> None:
        """Route one occurrence into the candidate or unknown bucket."""
        result.tokens_seen += 1
        word = occurrence.canonical
        if word not in self._seen:
            result.distinct_words += 1
        decision, score = self.lookup(word)

        if decision is FrequencyClass.RARE:
            bucket = result.candidates
        elif decision is FrequencyClass.UNKNOWN:
            bucket = result.unknown
        else:
            return

        candidate = bucket.get(word)
        if candidate is None:
            candidate = CandidateWord(canonical=word)
            if score is not None:
                candidate.frequency_score = score
            bucket[word] = candidate
        candidate.add(occurrence)

    def filter(self, occurrences: Iterable[WordOccurrence]) -> FilterResult:
        """Run the filter over a stream of occurrences."""
        result = FilterResult()
        for occurrence in occurrences:
            self.add(occurrence, result)
        logger.debug(
            "Frequency filter: %d tokens, %d rare, %d unknown",
            result.tokens_seen,
            len(result.candidates),
            len(result.unknown),
        )
        return result
