"""
Named-entity filtering with a GLiNER zero-shot sequence-labelling model.

Provides:
- EntityRecognizer: lazy, lock-guarded, load-once wrapper around GLiNER
  (dependency injection via the optional ``model`` parameter)
- EntityFilter: tags the sentences holding surviving candidates and removes
  every occurrence whose span overlaps an entity span

Removal is per occurrence: "Hope" the heroine is dropped while "hope" in
another sentence survives. A word left with no occurrences is dropped
entirely and reported in ``filtered``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from lexis.config import DEFAULT_ENTITY_LABELS, DEFAULT_ENTITY_MODEL, EntityConfig
from lexis.exceptions import InferenceError, ResourceUnavailableError
from lexis.models import Sentence, WordGroup, WordOccurrence
from lexis.nlp.normalizer import Normalizer

if TYPE_CHECKING:
    from gliner import GLiNER

logger = logging.getLogger(__name__)

STAGE = "entity-filtering"

# Characters that may precede the first word of a sentence
LEADING_PUNCTUATION = " \t\"'“‘([—-"


@dataclass(frozen=True)
class EntitySpan:
    """A single entity tagged by the model, offsets relative to its sentence."""

    text: str
    label: str
    score: float
    start: int
    end: int


# =============================================================================
# ENTITY RECOGNIZER
# =============================================================================


class EntityRecognizer:
    """
    Shared, read-only handle on the entity model.

    The model loads on first use. Loading is guarded by a lock so that
    concurrent jobs wait for one load and then share the same instance.

    Example:
        >>> recognizer = EntityRecognizer()
        >>> [(e.text, e.label) for e in recognizer.predict("Mr. Darcy left Pemberley.")]
        [('Darcy', 'person'), ('Pemberley', 'location')]
    """

    def __init__(
        self,
        model_name: str = DEFAULT_ENTITY_MODEL,
        labels: Sequence[str] = DEFAULT_ENTITY_LABELS,
        threshold: float = 0.5,
        model: GLiNER | Any | None = None,
    ) -> None:
        self.model_name = model_name
        self.labels = list(labels)
        self.threshold = threshold
        self._model = model
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: EntityConfig, model: Any | None = None) -> EntityRecognizer:
        return cls(
            model_name=config.model_name,
            labels=config.labels,
            threshold=config.threshold,
            model=model,
        )

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self) -> GLiNER | Any:
        """
        Get the model, loading it on first call.

        Raises:
            ResourceUnavailableError: If gliner is missing or the model
                cannot be loaded.
        """
        if self._model is not None:
            return self._model
        with self._lock:
            if self._model is None:
                start = time.perf_counter()
                try:
                    from gliner import GLiNER

                    self._model = GLiNER.from_pretrained(self.model_name)
                except Exception as e:
                    logger.error("Failed to load entity model '%s': %s", self.model_name, e)
                    raise ResourceUnavailableError(
                        f"Could not load entity model '{self.model_name}': {e}", stage=STAGE
                    ) from e
                logger.info(
                    "Loaded entity model '%s' in %.1fs",
                    self.model_name,
                    time.perf_counter() - start,
                )
        return self._model

    def predict(self, text: str) -> list[EntitySpan]:
        """
        Tag entities in one piece of text.

        Returns:
            Deduplicated spans sorted by position.

        Raises:
            ResourceUnavailableError: If the model cannot be loaded.
            InferenceError: If the model call fails or returns malformed spans.
        """
        if not text or not text.strip():
            return []

        model = self.load()
        try:
            raw_entities = model.predict_entities(text, self.labels, threshold=self.threshold)
        except Exception as e:
            raise InferenceError(f"Entity model failed on {len(text)} chars: {e}", stage=STAGE) from e

        spans: list[EntitySpan] = []
        seen: set[tuple[int, int]] = set()
        try:
            for ent in raw_entities:
                key = (int(ent["start"]), int(ent["end"]))
                if key in seen:
                    continue
                seen.add(key)
                spans.append(
                    EntitySpan(
                        text=ent["text"],
                        label=ent["label"],
                        score=float(ent.get("score", 1.0)),
                        start=key[0],
                        end=key[1],
                    )
                )
        except (KeyError, TypeError, ValueError) as e:
            raise InferenceError(f"Malformed entity output: {e}", stage=STAGE) from e

        spans.sort(key=lambda s: (s.start, s.end))
        return spans


# =============================================================================
# ENTITY FILTER
# =============================================================================


@dataclass(frozen=True)
class EntityBatch:
    """Progress after one inference batch."""

    processed: int
    total: int
    entities_found: int
    new_entities: tuple[str, ...]


@dataclass
class EntityFilterResult:
    """Groups surviving entity filtering, and what was removed."""

    groups: list[WordGroup] = field(default_factory=list)
    filtered: list[str] = field(default_factory=list)
    occurrences_removed: int = 0
    sentences_tagged: int = 0
    entity_spans: dict[int, list[EntitySpan]] = field(default_factory=dict)


def is_likely_proper_noun(occurrence: WordOccurrence, sentence: Sentence) -> bool:
    """Capitalized and not the first word of its sentence."""
    if not occurrence.surface[:1].isupper():
        return False
    return bool(sentence.text[: occurrence.offset].strip(LEADING_PUNCTUATION))


def split_windows(text: str, max_chars: int) -> Iterator[tuple[int, str]]:
    """
    Split long text into chunks of at most ``max_chars``, at whitespace.

    Yields:
        (offset, chunk) pairs covering the text in order.
    """
    start = 0
    while len(text) - start > max_chars:
        cut = text.rfind(" ", start + 1, start + max_chars)
        if cut <= start:
            cut = start + max_chars
        yield start, text[start:cut]
        start = cut
        while start < len(text) and text[start].isspace():
            start += 1
    if start < len(text):
        yield start, text[start:]


class EntityFilter:
    """
    Removes named-entity occurrences from candidate groups.

    Attributes:
        recognizer: Shared EntityRecognizer (never mutated by the filter).
        config: Batch size, window size and prefilter settings.
    """

    def __init__(self, recognizer: EntityRecognizer, config: EntityConfig | None = None) -> None:
        self.recognizer = recognizer
        self.config = config or EntityConfig()

    def sentences_to_tag(
        self, groups: Sequence[WordGroup], sentences: Mapping[int, Sentence]
    ) -> list[int]:
        """Indices of the sentences that hold surviving candidates."""
        indices: set[int] = set()
        for group in groups:
            for occ in group.occurrences:
                if self.config.proper_noun_prefilter and not is_likely_proper_noun(
                    occ, sentences[occ.sentence_index]
                ):
                    continue
                indices.add(occ.sentence_index)
        return sorted(indices)

    def tag(self, sentence: Sentence) -> list[EntitySpan]:
        """Tag one sentence, window by window, with sentence-relative offsets."""
        spans: list[EntitySpan] = []
        for offset, chunk in split_windows(sentence.text, self.config.max_chars):
            for span in self.recognizer.predict(chunk):
                spans.append(
                    EntitySpan(
                        text=span.text,
                        label=span.label,
                        score=span.score,
                        start=span.start + offset,
                        end=span.end + offset,
                    )
                )
        return spans

    def filter(
        self,
        groups: list[WordGroup],
        sentences: Mapping[int, Sentence],
        checkpoint: Callable[[], None] | None = None,
        on_batch: Callable[[EntityBatch], None] | None = None,
    ) -> EntityFilterResult:
        """
        Tag candidate sentences and drop entity occurrences.

        Args:
            groups: Normalized candidate groups (consumed).
            sentences: Document sentences by index.
            checkpoint: Called before each batch; raises to stop the job.
            on_batch: Called after each batch with progress.

        Returns:
            EntityFilterResult with surviving groups in input order.

        Raises:
            ResourceUnavailableError: If the model cannot be loaded.
            InferenceError: If tagging fails.
        """
        result = EntityFilterResult()
        indices = self.sentences_to_tag(groups, sentences)
        total = len(indices)

        if indices:
            self.recognizer.load()
            logger.info("Running entity model on %d sentences", total)

        entity_words: set[str] = set()
        start = time.perf_counter()
        for batch_start in range(0, total, self.config.batch_size):
            if checkpoint is not None:
                checkpoint()
            batch = indices[batch_start : batch_start + self.config.batch_size]
            new_entities: list[str] = []
            for index in batch:
                spans = self.tag(sentences[index])
                if spans:
                    result.entity_spans[index] = spans
                for span in spans:
                    for word in span.text.lower().split():
                        if word not in entity_words:
                            entity_words.add(word)
                            new_entities.append(word)
            result.sentences_tagged += len(batch)
            if on_batch is not None:
                on_batch(
                    EntityBatch(
                        processed=result.sentences_tagged,
                        total=total,
                        entities_found=len(entity_words),
                        new_entities=tuple(new_entities),
                    )
                )

        if total:
            elapsed = time.perf_counter() - start
            logger.info(
                "Entity tagging: %d sentences in %.2fs (%.1f ms/sentence), %d entity words",
                total,
                elapsed,
                elapsed * 1000 / total,
                len(entity_words),
            )

        def keep(occ: WordOccurrence) -> bool:
            return not any(
                occ.overlaps(span.start, span.end)
                for span in result.entity_spans.get(occ.sentence_index, ())
            )

        for group in groups:
            rebuilt = Normalizer.rebuild(group, keep)
            if rebuilt is None:
                result.filtered.append(group.word)
                result.occurrences_removed += group.count
                logger.debug("Dropped entity '%s' (%d occurrences)", group.word, group.count)
                continue
            result.occurrences_removed += group.count - rebuilt.count
            result.groups.append(rebuilt)

        logger.info(
            "Entity filter: %d groups in, %d dropped, %d occurrences removed",
            len(groups),
            len(result.filtered),
            result.occurrences_removed,
        )
        return result
