"""
Morphological normalization of candidate words.

Inflected forms ("gaiety", "gaieties") are grouped under one Snowball
(Porter2) stem so each vocabulary item is reported once. The display form
is the most frequent form in the group (ties: shortest, then alphabetical);
the other forms become variants.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING

from lexis.exceptions import ResourceUnavailableError
from lexis.models import CandidateWord, WordGroup, WordOccurrence

if TYPE_CHECKING:
    from nltk.stem.api import StemmerI

logger = logging.getLogger(__name__)


def create_stemmer(language: str = "english") -> StemmerI:
    """
    Create the Snowball stemmer used for grouping.

    Raises:
        ResourceUnavailableError: If nltk is missing or the language unknown.
    """
    try:
        from nltk.stem.snowball import SnowballStemmer

        return SnowballStemmer(language)
    except (ImportError, ValueError) as e:
        raise ResourceUnavailableError(
            f"Could not create '{language}' stemmer: {e}", stage="stemming"
        ) from e


def choose_representative(form_counts: Mapping[str, int]) -> str:
    """
    Pick the display form of a group.

    Example:
        >>> choose_representative({"gaieties": 2, "gaiety": 2, "gay": 1})
        'gaiety'
    """
    return min(form_counts, key=lambda form: (-form_counts[form], len(form), form))


class Normalizer:
    """
    Groups candidate words by stem.

    Grouping is stable: the same candidate set always yields the same
    groups, in the same order, with the same representative.

    Example:
        >>> normalizer = Normalizer()
        >>> groups = normalizer.group(candidates)
        >>> [(g.word, g.variants) for g in groups]
        [('gaiety', ['gaieties'])]
    """

    def __init__(self, stemmer: StemmerI | None = None) -> None:
        self.stemmer = stemmer or create_stemmer()

    def stem(self, word: str) -> str:
        return self.stemmer.stem(word)

    def group(self, candidates: Iterable[CandidateWord]) -> list[WordGroup]:
        """
        Merge candidates sharing a stem into WordGroups.

        Args:
            candidates: Surviving candidate words (consumed).

        Returns:
            Groups sorted by stem.
        """
        by_stem: dict[str, dict[str, CandidateWord]] = {}
        for candidate in sorted(candidates, key=lambda c: c.canonical):
            by_stem.setdefault(self.stem(candidate.canonical), {})[candidate.canonical] = candidate

        groups = [
            WordGroup(
                stem=stem,
                forms=forms,
                word=choose_representative({name: form.count for name, form in forms.items()}),
            )
            for stem, forms in sorted(by_stem.items())
        ]
        merged = sum(1 for g in groups if len(g.forms) > 1)
        logger.debug("Normalizer: %d groups, %d with variants", len(groups), merged)
        return groups

    @staticmethod
    def rebuild(group: WordGroup, keep: Callable[[WordOccurrence], bool]) -> WordGroup | None:
        """
        Rebuild a group from the occurrences ``keep`` accepts.

        Forms left without occurrences are dropped and the representative is
        re-chosen over what remains. Returns None if nothing remains.
        """
        forms: dict[str, CandidateWord] = {}
        for name, form in group.forms.items():
            survivors = [occ for occ in form.occurrences if keep(occ)]
            if survivors:
                forms[name] = CandidateWord(
                    canonical=name,
                    occurrences=survivors,
                    frequency_score=form.frequency_score,
                )
        if not forms:
            return None
        return WordGroup(
            stem=group.stem,
            forms=forms,
            word=choose_representative({name: form.count for name, form in forms.items()}),
        )
