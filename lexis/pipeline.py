"""
Hard-word pipeline orchestrator.

Wires the stages together in their fixed order, cheapest first:
- Segmenter (sentences and tokens)
- FrequencyFilter (rarity threshold, unknown words deferred)
- SegmentationCorrector (concatenation artifacts among unknown words)
- Normalizer (stem grouping)
- EntityFilter (GLiNER, the only expensive stage)
- Aggregator (records, stats, ordering)

Every stage boundary goes through ``job.advance()``, which polls the
cancellation token, moves the job's state machine forward and emits one
progress event.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lexis.config import AnalysisConfig
from lexis.models import (
    AnalysisResult,
    CandidateWord,
    SampleWord,
    Sentence,
    WordGroup,
    WordOccurrence,
)
from lexis.nlp.aggregator import Aggregator
from lexis.nlp.correction import SegmentationCorrector
from lexis.nlp.entities import EntityBatch, EntityFilter
from lexis.nlp.frequency import FrequencyFilter
from lexis.progress import ENTITY_FILTERING_END_PERCENT, STAGE_PERCENT, Stage

if TYPE_CHECKING:
    from lexis.context import PipelineContext
    from lexis.jobs import AnalysisJob

logger = logging.getLogger(__name__)

# Words of each kind shown per entity-filtering progress event
SAMPLE_SIZE = 5


def decode_document(document: str | bytes, book_id: int = 0) -> str:
    """
    Text of a document, or "" if it is not valid UTF-8.

    Unreadable input is a valid zero-result run, not an error.
    """
    if isinstance(document, str):
        return document
    try:
        return document.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        logger.warning("Book %d: document is not valid UTF-8 (%s); analysing as empty", book_id, e)
        return ""


@dataclass
class PipelineRun:
    """State accumulated while one job moves through the stages."""

    book_id: int
    text: str
    sentences: dict[int, Sentence] = field(default_factory=dict)
    tokens: list[WordOccurrence] = field(default_factory=list)
    candidates: dict[str, CandidateWord] = field(default_factory=dict)
    unknown: dict[str, CandidateWord] = field(default_factory=dict)
    groups: list[WordGroup] = field(default_factory=list)
    total_candidates: int = 0
    filtered_by_ner: list[str] = field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.tokens)


class AnalysisPipeline:
    """
    Runs the stages for one job against a shared context.

    The pipeline holds no state between runs; everything per-job lives in
    a PipelineRun, and the context is only read.
    """

    def __init__(self, context: PipelineContext, config: AnalysisConfig | None = None) -> None:
        self.context = context
        self.config = config or AnalysisConfig()

    def run(self, job: AnalysisJob) -> AnalysisResult:
        """
        Analyse the job's document.

        Raises:
            AnalysisCancelled: If the job's token is cancelled.
            ResourceUnavailableError: If a shared resource cannot load.
            InferenceError: If the entity model fails.
        """
        start = time.perf_counter()
        run = PipelineRun(book_id=job.book_id, text=decode_document(job.document, job.book_id))

        job.advance(Stage.SEGMENTATION, "Splitting text into sentences")
        self._segment(run)

        job.advance(
            Stage.FREQUENCY_FILTERING,
            f"Checking {run.word_count} words from {len(run.sentences)} sentences",
        )
        self._filter_frequency(run)

        job.advance(
            Stage.MALFORMED_WORD_CORRECTION,
            f"Repairing {len(run.unknown)} words missing from the dictionary",
        )
        self._correct(run)

        job.advance(Stage.STEMMING, f"Grouping {len(run.candidates)} candidate words")
        self._normalize(run)

        job.advance(
            Stage.ENTITY_FILTERING, f"Looking for names among {len(run.groups)} words"
        )
        self._filter_entities(run, job)

        job.advance(Stage.AGGREGATION, f"Building {len(run.groups)} hard-word entries")
        result = Aggregator(self.config).aggregate(
            book_id=run.book_id,
            word_count=run.word_count,
            groups=run.groups,
            sentences=run.sentences,
            total_candidates=run.total_candidates,
            filtered_by_ner=run.filtered_by_ner,
        )

        logger.info(
            "Book %d: %d words -> %d hard words in %.2fs",
            run.book_id,
            result.word_count,
            result.stats.hard_words_count,
            time.perf_counter() - start,
        )
        return result

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _segment(self, run: PipelineRun) -> None:
        if not run.text.strip():
            logger.warning("Book %d: document is empty", run.book_id)
        for sentence, tokens in self.context.segmenter.segment(run.text):
            run.sentences[sentence.index] = sentence
            run.tokens.extend(tokens)
        logger.info(
            "Book %d: %d sentences, %d tokens",
            run.book_id,
            len(run.sentences),
            run.word_count,
        )

    def _filter_frequency(self, run: PipelineRun) -> None:
        frequency_filter = FrequencyFilter(
            self.context.frequency_table,
            rarity_threshold=self.config.rarity_threshold,
            min_word_length=self.config.min_word_length,
        )
        result = frequency_filter.filter(run.tokens)
        run.candidates = result.candidates
        run.unknown = result.unknown
        logger.info(
            "Book %d: %d distinct words, %d below %.2e, %d not in table",
            run.book_id,
            result.distinct_words,
            len(run.candidates),
            self.config.rarity_threshold,
            len(run.unknown),
        )

    def _correct(self, run: PipelineRun) -> None:
        corrector = SegmentationCorrector(
            self.context.frequency_table,
            index=self.context.index,
            dictionary=self.context.dictionary,
            config=self.config.correction,
        )
        result = corrector.correct(run.unknown)
        run.unknown = {}
        run.candidates.update(result.retained)

    def _normalize(self, run: PipelineRun) -> None:
        run.groups = self.context.normalizer.group(run.candidates.values())
        run.candidates = {}
        run.total_candidates = len(run.groups)
        logger.info("Book %d: %d word groups", run.book_id, run.total_candidates)

    def _filter_entities(self, run: PipelineRun, job: AnalysisJob) -> None:
        entity_filter = EntityFilter(self.context.recognizer, self.config.entities)
        rare_words = [
            group.word
            for group in sorted(run.groups, key=lambda g: (g.frequency_score, g.word))
        ]
        start_percent = STAGE_PERCENT[Stage.ENTITY_FILTERING]
        span = ENTITY_FILTERING_END_PERCENT - start_percent
        batches = 0

        def on_batch(batch: EntityBatch) -> None:
            nonlocal batches
            percent = start_percent + span * batch.processed // max(batch.total, 1)
            samples = sample_words(batch.new_entities, rare_words, batches)
            batches += 1
            job.report(
                percent,
                f"Checked {batch.processed}/{batch.total} sentences, "
                f"{batch.entities_found} names found",
                samples,
            )

        result = entity_filter.filter(
            run.groups, run.sentences, checkpoint=job.checkpoint, on_batch=on_batch
        )
        run.groups = result.groups
        run.filtered_by_ner = result.filtered


def sample_words(
    new_entities: tuple[str, ...], rare_words: list[str], batch_number: int
) -> list[SampleWord]:
    """
    Words to show while entity filtering runs.

    Mixes the entities found in the latest batch with a rotating window of
    rare candidates (rarest first) so the display keeps moving. Words just
    tagged as entities are left out of the rare window.

    Example:
        >>> sample_words(("darcy",), ["felicity"], 0)
        [SampleWord(word='darcy', is_entity=True), SampleWord(word='felicity', is_entity=False)]
    """
    samples = [SampleWord(word=word, is_entity=True) for word in new_entities[:SAMPLE_SIZE]]
    entities = set(new_entities)
    rare_words = [word for word in rare_words if word not in entities]
    if rare_words:
        offset = (batch_number * SAMPLE_SIZE) % len(rare_words)
        window = (rare_words[offset:] + rare_words[:offset])[:SAMPLE_SIZE]
        samples.extend(SampleWord(word=word, is_entity=False) for word in window)
    return samples
