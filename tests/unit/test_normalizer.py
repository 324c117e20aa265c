"""
Tests for stem grouping.
"""

import pytest

from lexis.models import CandidateWord, WordOccurrence
from lexis.nlp.normalizer import Normalizer, choose_representative


def candidate(word: str, count: int, score: float = 0.000001, start_sentence: int = 0):
    return CandidateWord(
        canonical=word,
        occurrences=[
            WordOccurrence(surface=word, canonical=word, sentence_index=start_sentence + i, offset=0)
            for i in range(count)
        ],
        frequency_score=score,
    )


@pytest.fixture(scope="module")
def normalizer() -> Normalizer:
    return Normalizer()


class TestChooseRepresentative:
    """Tests for the display-form choice."""

    def test_most_frequent_wins(self):
        assert choose_representative({"gaieties": 3, "gaiety": 1}) == "gaieties"

    def test_tie_prefers_shortest(self):
        assert choose_representative({"gaieties": 2, "gaiety": 2}) == "gaiety"

    def test_tie_then_alphabetical(self):
        assert choose_representative({"abc": 1, "abb": 1}) == "abb"


class TestNormalizer:
    """Tests for grouping candidates by stem."""

    def test_inflections_grouped(self, normalizer):
        groups = normalizer.group(
            [candidate("gaiety", 2), candidate("gaieties", 1), candidate("sanguine", 1)]
        )
        by_word = {g.word: g for g in groups}
        assert set(by_word) == {"gaiety", "sanguine"}
        assert by_word["gaiety"].variants == ["gaieties"]
        assert by_word["gaiety"].count == 3
        assert by_word["sanguine"].variants == []

    def test_plural_grouped(self, normalizer):
        groups = normalizer.group([candidate("favorites", 1), candidate("favorite", 1)])
        assert len(groups) == 1
        assert groups[0].word == "favorite"
        assert groups[0].variants == ["favorites"]

    def test_grouping_is_stable(self, normalizer):
        """Input order never changes groups, order or representatives."""
        words = [candidate("gaieties", 2), candidate("sanguine", 1), candidate("gaiety", 2)]
        first = normalizer.group(words)
        second = normalizer.group(list(reversed(words)))
        assert [(g.stem, g.word, g.variants) for g in first] == [
            (g.stem, g.word, g.variants) for g in second
        ]

    def test_groups_sorted_by_stem(self, normalizer):
        groups = normalizer.group([candidate("sanguine", 1), candidate("civility", 1)])
        assert [g.stem for g in groups] == sorted(g.stem for g in groups)

    def test_occurrences_merged_in_document_order(self, normalizer):
        groups = normalizer.group(
            [candidate("gaieties", 1, start_sentence=5), candidate("gaiety", 2, start_sentence=0)]
        )
        assert [occ.sentence_index for occ in groups[0].occurrences] == [0, 1, 5]


class TestRebuild:
    """Tests for rebuilding groups after occurrence removal."""

    def test_representative_rechosen(self, normalizer):
        group = normalizer.group(
            [candidate("gaiety", 2), candidate("gaieties", 1, start_sentence=9)]
        )[0]
        rebuilt = Normalizer.rebuild(group, lambda occ: occ.sentence_index == 9)
        assert rebuilt.word == "gaieties"
        assert rebuilt.count == 1
        assert rebuilt.variants == []

    def test_nothing_left(self, normalizer):
        group = normalizer.group([candidate("sanguine", 2)])[0]
        assert Normalizer.rebuild(group, lambda occ: False) is None
