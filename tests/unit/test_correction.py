"""
Tests for segmentation correction of concatenated tokens.
"""

import sys

import pytest

from lexis.config import CorrectionConfig
from lexis.context import create_dictionary
from lexis.exceptions import ResourceUnavailableError
from lexis.models import UNKNOWN_FREQUENCY, CandidateWord, WordOccurrence
from lexis.nlp.correction import SegmentationCorrector, create_segmentation_index

# Check for optional dependencies
try:
    from wordfreq import word_frequency  # noqa: F401

    HAS_WORDFREQ = True
except ImportError:
    HAS_WORDFREQ = False

requires_wordfreq = pytest.mark.skipif(not HAS_WORDFREQ, reason="wordfreq not installed")


@pytest.fixture
def corrector(frequency_table) -> SegmentationCorrector:
    """Exact splits only."""
    return SegmentationCorrector(frequency_table, config=CorrectionConfig(max_edit_distance=0))


@pytest.fixture
def edit_corrector(frequency_table) -> SegmentationCorrector:
    """Splits allowing one edit per segment, over a dictionary of the table's words."""
    return SegmentationCorrector(
        frequency_table,
        dictionary=create_dictionary(frequency_table),
        config=CorrectionConfig(max_edit_distance=1),
    )


def candidate(word: str) -> CandidateWord:
    return CandidateWord(
        canonical=word,
        occurrences=[WordOccurrence(surface=word, canonical=word, sentence_index=0, offset=0)],
    )


class TestExactSegmentation:
    """Tests for splits into exact dictionary words."""

    def test_concatenation_is_split(self, corrector):
        result = corrector.segment("theendofeternity")
        assert result.accepted
        assert result.segments == ("the", "end", "of", "eternity")
        assert result.edits == 0
        assert result.text == "the end of eternity"

    def test_apostrophe_token_uses_leading_part(self, corrector):
        """Only the part before the apostrophe is segmented."""
        result = corrector.segment("believethat's")
        assert result.accepted
        assert result.segments == ("believe", "that")

    def test_no_split_is_rejected(self, corrector):
        result = corrector.segment("zqxjvbwkpl")
        assert not result.accepted
        assert result.segments == ("zqxjvbwkpl",)

    def test_short_token_not_attempted(self, corrector):
        result = corrector.segment("theend")
        assert not result.accepted
        assert "too short" in result.reason

    def test_hyphenated_token_not_attempted(self, corrector):
        result = corrector.segment("gaiety-and-sanguine")
        assert not result.accepted
        assert "hyphenated" in result.reason

    def test_probability_bar(self, frequency_table):
        """A split below the minimum geometric-mean probability is rejected."""
        strict = SegmentationCorrector(
            frequency_table,
            config=CorrectionConfig(max_edit_distance=0, min_segment_probability=0.5),
        )
        result = strict.segment("theendofeternity")
        assert not result.accepted
        assert result.segments == ("the", "end", "of", "eternity")
        assert "below minimum" in result.reason

    def test_rare_short_segments_not_allowed(self, frequency_table):
        """Segments shorter than min_segment_length must be very common words."""
        strict = SegmentationCorrector(
            frequency_table,
            config=CorrectionConfig(max_edit_distance=0, short_segment_min_frequency=0.5),
        )
        assert not strict.segment("theendofeternity").accepted

    def test_exact_only_no_repairs(self, corrector):
        """With no edit budget a misspelled segment is never repaired."""
        result = corrector.segment("believethta")
        assert not result.accepted
        assert result.edits == 0


class TestDictionaryCheck:
    """Tests for checking split segments against the dictionary."""

    def test_segment_missing_from_dictionary_rejected(self, frequency_table):
        from spellchecker import SpellChecker

        dictionary = SpellChecker(language=None)
        dictionary.word_frequency.load_words(
            [word for word in frequency_table.words() if word != "eternity"]
        )
        corrector = SegmentationCorrector(
            frequency_table,
            dictionary=dictionary,
            config=CorrectionConfig(max_edit_distance=0),
        )
        result = corrector.segment("theendofeternity")
        assert not result.accepted
        assert "eternity" in result.reason
        assert "not in dictionary" in result.reason

    def test_full_dictionary_accepts(self, frequency_table):
        corrector = SegmentationCorrector(
            frequency_table,
            dictionary=create_dictionary(frequency_table),
            config=CorrectionConfig(max_edit_distance=0),
        )
        assert corrector.segment("theendofeternity").accepted


class TestSegmentationIndex:
    """Tests for building the SymSpell index from a frequency table."""

    def test_loads_table_words(self, frequency_table):
        index = create_segmentation_index(frequency_table, max_edit_distance=0)
        assert index.size == len(frequency_table.words())
        assert index.max_edit_distance == 0

    def test_size_limits_loaded_words(self, frequency_table):
        index = create_segmentation_index(frequency_table, size=5)
        assert index.size == 5

    def test_corrector_reuses_index(self, frequency_table):
        index = create_segmentation_index(frequency_table, max_edit_distance=2)
        corrector = SegmentationCorrector(
            frequency_table, index=index, config=CorrectionConfig(max_edit_distance=1)
        )
        assert corrector.index is index
        assert corrector.max_edit_distance == 1

    def test_missing_symspellpy_is_resource_error(self, frequency_table, monkeypatch):
        monkeypatch.setitem(sys.modules, "symspellpy", None)
        with pytest.raises(ResourceUnavailableError) as exc_info:
            create_segmentation_index(frequency_table)
        assert exc_info.value.stage == "malformed-word-correction"


class TestEditTolerantSegmentation:
    """Tests for splits that repair segments within the edit budget."""

    def test_segment_repaired(self, edit_corrector):
        result = edit_corrector.segment("believethta")
        assert result.accepted
        assert result.segments == ("believe", "that")
        assert result.edits == 1

    def test_exact_split_preferred(self, edit_corrector):
        result = edit_corrector.segment("theendofeternity")
        assert result.accepted
        assert result.edits == 0

    def test_single_segment_is_spelling_variant(self, edit_corrector):
        """A misspelling of one word is not a concatenation artifact."""
        result = edit_corrector.segment("eternitty")
        assert not result.accepted
        assert result.segments == ("eternity",)
        assert "single segment" in result.reason


class TestCorrect:
    """Tests for correcting a job's unknown tokens."""

    def test_resolved_and_retained(self, corrector):
        unknown = {
            "theendofeternity": candidate("theendofeternity"),
            "zqxjvbwkpl": candidate("zqxjvbwkpl"),
        }
        result = corrector.correct(unknown)
        assert set(result.resolved) == {"theendofeternity"}
        assert set(result.retained) == {"zqxjvbwkpl"}
        assert result.retained["zqxjvbwkpl"].frequency_score == UNKNOWN_FREQUENCY
        assert result.retained["zqxjvbwkpl"].count == 1
        assert result.attempts == 2

    def test_empty_input(self, corrector):
        result = corrector.correct({})
        assert result.resolved == {}
        assert result.retained == {}


@requires_wordfreq
class TestWithWordfreq:
    """Worked examples against the real frequency table."""

    @pytest.fixture(scope="class")
    def wordfreq_corrector(self):
        from lexis.nlp.frequency import WordfreqTable

        table = WordfreqTable()
        return SegmentationCorrector(table, dictionary=create_dictionary(table))

    def test_theendofeternity_is_split(self, wordfreq_corrector):
        result = wordfreq_corrector.segment("theendofeternity")
        assert result.accepted
        assert len(result.segments) >= 2
        assert "".join(result.segments) == "theendofeternity"

    def test_believethat_is_split(self, wordfreq_corrector):
        result = wordfreq_corrector.segment("believethat's")
        assert result.accepted
        assert result.segments == ("believe", "that")

    @pytest.mark.parametrize("word", ["crepuscularly", "obstreperously", "inveigling"])
    def test_rare_real_words_kept(self, wordfreq_corrector, word):
        """Rare words that merely contain common fragments stay candidates."""
        result = wordfreq_corrector.correct({word: candidate(word)})
        assert word in result.retained
        assert word not in result.resolved

    def test_artifacts_resolved_alongside_rare_words(self, wordfreq_corrector):
        unknown = {
            word: candidate(word)
            for word in ("theendofeternity", "crepuscularly", "obstreperously")
        }
        result = wordfreq_corrector.correct(unknown)
        assert set(result.resolved) == {"theendofeternity"}
        assert set(result.retained) == {"crepuscularly", "obstreperously"}
