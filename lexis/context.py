"""
Shared, read-only resources for analysis jobs.

A PipelineContext bundles the process-lifetime handles every job needs:
the frequency table, the segmentation dictionary, the stemmer and the
entity recognizer. It is built once and passed into each job; jobs only
read from it. The GLiNER model inside the recognizer still loads lazily
on first use, under a lock, so a context is cheap to build.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from lexis.config import AnalysisConfig
from lexis.exceptions import ResourceUnavailableError
from lexis.nlp.correction import SegmentationIndex, create_segmentation_index
from lexis.nlp.entities import EntityRecognizer
from lexis.nlp.frequency import FrequencyTable, StaticFrequencyTable, WordfreqTable
from lexis.nlp.normalizer import Normalizer
from lexis.nlp.segmenter import Segmenter

if TYPE_CHECKING:
    from nltk.stem.api import StemmerI
    from spellchecker import SpellChecker

logger = logging.getLogger(__name__)


def create_dictionary(table: FrequencyTable) -> SpellChecker:
    """
    Build the dictionary that segmentation splits are checked against.

    A StaticFrequencyTable gets a dictionary over exactly its own words;
    otherwise pyspellchecker's bundled English list is used, so a split
    of a wordfreq-unknown token must consist of independent dictionary
    words, not just fragments that happen to have a frequency.

    Raises:
        ResourceUnavailableError: If pyspellchecker is missing or its data
            cannot be loaded.
    """
    try:
        from spellchecker import SpellChecker

        if isinstance(table, StaticFrequencyTable):
            spell = SpellChecker(language=None)
            spell.word_frequency.load_words(table.words())
        else:
            spell = SpellChecker(language="en")
    except (ImportError, OSError, ValueError) as e:
        raise ResourceUnavailableError(
            f"Could not load segmentation dictionary: {e}",
            stage="malformed-word-correction",
        ) from e
    logger.debug("Segmentation dictionary ready (%d words)", len(spell.word_frequency.dictionary))
    return spell


@dataclass
class PipelineContext:
    """
    Handles shared by every job in the process.

    Attributes:
        frequency_table: Read-only word -> frequency lookup.
        index: SymSpell segmentation index over the frequency table.
        dictionary: SpellChecker that segmentation splits are checked
            against, or None to rely on the frequency table alone.
        normalizer: Stem grouping (wraps the nltk stemmer).
        recognizer: Lazily-loaded GLiNER entity recognizer.
        segmenter: Sentence and word splitter.

    Example:
        >>> context = PipelineContext.create()
        >>> result = lexis.analyze(text, 0.00005, context=context)
    """

    frequency_table: FrequencyTable
    normalizer: Normalizer
    recognizer: EntityRecognizer
    index: SegmentationIndex | None = None
    dictionary: SpellChecker | None = None
    segmenter: Segmenter = field(default_factory=Segmenter)

    @classmethod
    def create(
        cls,
        config: AnalysisConfig | None = None,
        *,
        frequency_table: FrequencyTable | None = None,
        index: SegmentationIndex | None = None,
        dictionary: SpellChecker | None = None,
        stemmer: StemmerI | None = None,
        entity_model: Any | None = None,
    ) -> PipelineContext:
        """
        Load every shared resource except the entity model weights.

        Args:
            config: Analysis config (entity model name, labels, edit budget).
            frequency_table: Table to use instead of wordfreq.
            index: Segmentation index to use instead of building one.
            dictionary: SpellChecker to use instead of building one.
            stemmer: nltk stemmer to use instead of Snowball English.
            entity_model: Preloaded GLiNER-compatible model.

        Raises:
            ResourceUnavailableError: If a resource cannot be loaded.
        """
        config = config or AnalysisConfig()
        table = frequency_table if frequency_table is not None else WordfreqTable()
        if index is None:
            index = create_segmentation_index(
                table, config.correction.max_edit_distance, config.correction.index_size
            )
        if dictionary is None:
            dictionary = create_dictionary(table)
        context = cls(
            frequency_table=table,
            normalizer=Normalizer(stemmer),
            recognizer=EntityRecognizer.from_config(config.entities, model=entity_model),
            index=index,
            dictionary=dictionary,
        )
        logger.info(
            "Pipeline context ready (table=%s, entity model=%s)",
            type(table).__name__,
            context.recognizer.model_name,
        )
        return context


# =============================================================================
# PROCESS-WIDE DEFAULT
# =============================================================================

_default_context: PipelineContext | None = None
_default_lock = threading.Lock()


def get_default_context() -> PipelineContext:
    """Process-wide context, created on first call."""
    global _default_context
    if _default_context is None:
        with _default_lock:
            if _default_context is None:
                _default_context = PipelineContext.create()
    return _default_context


def set_default_context(context: PipelineContext | None) -> None:
    """Replace (or with None, reset) the process-wide context."""
    global _default_context
    with _default_lock:
        _default_context = context
