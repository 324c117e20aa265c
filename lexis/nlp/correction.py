"""
Segmentation correction for tokens missing from the frequency table.

Document conversion (EPUB/PDF to text) regularly drops the spaces between
words, producing tokens like "theendofeternity" or "believethat's". Such
tokens are absent from the frequency table and would otherwise be reported
as extremely rare vocabulary.

Each unknown token is split with SymSpell's word segmentation, loaded from
the same frequency table the filter uses: an exact pass first, then a pass
that may repair segments within the edit budget. The split is then judged
by our own acceptance policy:
- it has at least two segments,
- every segment is in the frequency table and, when a dictionary is
  available, is an independent dictionary word,
- short segments are very common words,
- the geometric mean of segment probabilities (with a penalty per edit)
  clears a fixed bar.

Accepted tokens are conversion artifacts and leave the candidate set.
Rejected tokens are kept as hard-word candidates: a real word is never
discarded just because it could not be re-segmented.

Only unknown tokens reach this module. Tokens with a frequency score are
settled by the frequency filter and never segmented.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lexis.config import CorrectionConfig
from lexis.exceptions import ResourceUnavailableError
from lexis.models import UNKNOWN_FREQUENCY, CandidateWord

if TYPE_CHECKING:
    from spellchecker import SpellChecker
    from symspellpy import SymSpell

    from lexis.nlp.frequency import FrequencyTable

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# SymSpell's corpus size; table frequencies are scaled to counts against it
SYMSPELL_CORPUS_SIZE = 1_024_908_267_229

SYMSPELL_PREFIX_LENGTH = 7


# =============================================================================
# SEGMENTATION INDEX
# =============================================================================


@dataclass
class SegmentationIndex:
    """A SymSpell dictionary built from a frequency table."""

    symspell: SymSpell
    max_edit_distance: int
    size: int


def create_segmentation_index(
    table: FrequencyTable, max_edit_distance: int = 1, size: int = 100_000
) -> SegmentationIndex:
    """
    Load the ``size`` most frequent table words into a SymSpell dictionary.

    Raises:
        ResourceUnavailableError: If symspellpy is missing or the table's
            word list cannot be read.
    """
    try:
        from symspellpy import SymSpell

        symspell = SymSpell(
            max_dictionary_edit_distance=max_edit_distance,
            prefix_length=SYMSPELL_PREFIX_LENGTH,
        )
        loaded = 0
        for word in table.words(size):
            frequency = table.score(word)
            if not frequency:
                continue
            count = max(1, round(frequency * SYMSPELL_CORPUS_SIZE))
            symspell.create_dictionary_entry(word, count)
            loaded += 1
    except (ImportError, LookupError, OSError, ValueError) as e:
        raise ResourceUnavailableError(
            f"Could not build segmentation index: {e}",
            stage="malformed-word-correction",
        ) from e
    logger.info(
        "Segmentation index ready (%d words, max edit distance %d)", loaded, max_edit_distance
    )
    return SegmentationIndex(symspell=symspell, max_edit_distance=max_edit_distance, size=loaded)


# =============================================================================
# DATA STRUCTURES
# =============================================================================


@dataclass(frozen=True)
class Segmentation:
    """Best split found for one token, and whether it was accepted."""

    token: str
    segments: tuple[str, ...]
    edits: int
    probability: float  # Geometric mean of segment probabilities
    accepted: bool
    reason: str

    @property
    def text(self) -> str:
        return " ".join(self.segments)


@dataclass
class CorrectionResult:
    """Outcome of correcting one job's unknown tokens."""

    retained: dict[str, CandidateWord] = field(default_factory=dict)
    resolved: dict[str, Segmentation] = field(default_factory=dict)
    attempts: int = 0


# =============================================================================
# SEGMENTATION CORRECTOR
# =============================================================================


class SegmentationCorrector:
    """
    Splits unknown tokens into known words.

    Attributes:
        table: Frequency table used for segment probabilities.
        index: SymSpell index over the table (built from it if not given).
        dictionary: Optional SpellChecker every segment must be known to.
        config: Acceptance and search parameters.

    Example:
        >>> table = WordfreqTable()
        >>> corrector = SegmentationCorrector(table, dictionary=create_dictionary(table))
        >>> result = corrector.segment("theendofeternity")
        >>> result.accepted, result.text
        (True, 'the end of eternity')
    """

    def __init__(
        self,
        table: FrequencyTable,
        index: SegmentationIndex | None = None,
        dictionary: SpellChecker | None = None,
        config: CorrectionConfig | None = None,
    ) -> None:
        self.table = table
        self.config = config or CorrectionConfig()
        self.index = index or create_segmentation_index(
            table, self.config.max_edit_distance, self.config.index_size
        )
        self.dictionary = dictionary
        self.max_edit_distance = min(self.config.max_edit_distance, self.index.max_edit_distance)
        self._log_penalty = math.log10(self.config.edit_penalty)

    def correct(self, unknown: dict[str, CandidateWord]) -> CorrectionResult:
        """
        Try to resolve every unknown token.

        Args:
            unknown: Tokens the frequency table does not contain, by
                canonical form.

        Returns:
            CorrectionResult with retained candidates and resolved artifacts.
        """
        result = CorrectionResult()
        for token in sorted(unknown):
            candidate = unknown[token]
            result.attempts += 1
            segmentation = self.segment(token)
            if segmentation.accepted:
                result.resolved[token] = segmentation
                logger.debug(
                    "Resolved concatenated token '%s' -> '%s' (p=%.2e)",
                    token,
                    segmentation.text,
                    segmentation.probability,
                )
            else:
                candidate.frequency_score = UNKNOWN_FREQUENCY
                result.retained[token] = candidate
                logger.debug("Kept unknown token '%s': %s", token, segmentation.reason)

        logger.info(
            "Segmentation correction: %d unknown, %d resolved, %d kept",
            result.attempts,
            len(result.resolved),
            len(result.retained),
        )
        return result

    def segment(self, token: str) -> Segmentation:
        """
        Find and judge the best split of a token.

        The part before an apostrophe is segmented ("believethat's" is judged
        as "believethat"). An exact split is preferred; the edit-tolerant
        pass only runs when the exact split is rejected.
        """
        word = token.split("'", 1)[0]

        if "-" in word:
            return self._rejected(token, "hyphenated compound")
        if len(word) < self.config.min_token_length:
            return self._rejected(token, "too short to be a concatenation")

        distances = (0, self.max_edit_distance) if self.max_edit_distance else (0,)
        for distance in distances:
            composition = self.index.symspell.word_segmentation(
                word,
                max_edit_distance=distance,
                max_segmentation_word_length=self.config.max_segment_length,
            )
            segmentation = self._judge(
                token,
                tuple(composition.segmented_string.split()),
                tuple(composition.corrected_string.split()),
            )
            if segmentation.accepted:
                return segmentation
        return segmentation

    def _judge(
        self, token: str, pieces: tuple[str, ...], segments: tuple[str, ...]
    ) -> Segmentation:
        """Apply the acceptance policy to one SymSpell split."""
        frequencies = []
        for segment in segments:
            frequency = self.table.score(segment)
            if frequency is None:
                return self._rejected(token, f"segment '{segment}' is not a known word")
            if (
                len(segment) < self.config.min_segment_length
                and frequency < self.config.short_segment_min_frequency
            ):
                return self._rejected(token, f"short segment '{segment}' is not common enough")
            frequencies.append(frequency)

        if self.dictionary is not None:
            missing = self.dictionary.unknown(segments)
            if missing:
                return self._rejected(
                    token, f"segments not in dictionary: {', '.join(sorted(missing))}"
                )

        edits = sum(1 for piece, segment in zip(pieces, segments) if piece != segment)
        log_probability = sum(math.log10(f) for f in frequencies) + edits * self._log_penalty
        probability = 10 ** (log_probability / len(segments))

        if len(segments) < 2:
            return Segmentation(
                token=token,
                segments=segments,
                edits=edits,
                probability=probability,
                accepted=False,
                reason="single segment is a spelling variant, not a concatenation",
            )
        if probability < self.config.min_segment_probability:
            return Segmentation(
                token=token,
                segments=segments,
                edits=edits,
                probability=probability,
                accepted=False,
                reason=f"split probability {probability:.2e} below minimum",
            )
        return Segmentation(
            token=token,
            segments=segments,
            edits=edits,
            probability=probability,
            accepted=True,
            reason="split into known words",
        )

    @staticmethod
    def _rejected(token: str, reason: str) -> Segmentation:
        return Segmentation(
            token=token,
            segments=(token,),
            edits=0,
            probability=0.0,
            accepted=False,
            reason=reason,
        )
