"""
Pipeline stages for hard-word extraction.

Stages run in this order, cheapest first:
- Segmenter: sentences and word tokens
- FrequencyFilter: keep words rarer than the threshold, defer unknown words
- SegmentationCorrector: split concatenated tokens ("theendofeternity")
- Normalizer: group inflected forms by Snowball stem
- EntityFilter: drop names and places tagged by GLiNER
- Aggregator: ranked HardWordRecords and stats
"""

from lexis.nlp.aggregator import Aggregator, clean_context
from lexis.nlp.correction import CorrectionResult, Segmentation, SegmentationCorrector
from lexis.nlp.entities import (
    EntityBatch,
    EntityFilter,
    EntityFilterResult,
    EntityRecognizer,
    EntitySpan,
    is_likely_proper_noun,
)
from lexis.nlp.frequency import (
    FilterResult,
    FrequencyClass,
    FrequencyFilter,
    FrequencyTable,
    StaticFrequencyTable,
    WordfreqTable,
)
from lexis.nlp.normalizer import Normalizer, choose_representative, create_stemmer
from lexis.nlp.segmenter import SegmentedDocument, Segmenter, canonical_form

__all__ = [
    # Segmentation
    "Segmenter",
    "SegmentedDocument",
    "canonical_form",
    # Frequency
    "FrequencyTable",
    "WordfreqTable",
    "StaticFrequencyTable",
    "FrequencyFilter",
    "FrequencyClass",
    "FilterResult",
    # Correction
    "SegmentationCorrector",
    "Segmentation",
    "CorrectionResult",
    # Normalization
    "Normalizer",
    "create_stemmer",
    "choose_representative",
    # Entities
    "EntityRecognizer",
    "EntityFilter",
    "EntityFilterResult",
    "EntityBatch",
    "EntitySpan",
    "is_likely_proper_noun",
    # Aggregation
    "Aggregator",
    "clean_context",
]
