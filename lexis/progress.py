"""
Progress reporting for analysis jobs.

Progress events are a closed family: one event type per pipeline stage,
each carrying the stable stage label the UI keys on. Delivery is
best-effort. The pipeline never waits for a listener: events go into a
bounded channel that drops the oldest undelivered event when full, and a
listener that raises is logged and ignored.

Wire format (``event.to_dict()``):
    {book_id, stage, progress, detail?, sample_words?: [{word, is_entity}]}
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

from lexis.models import SampleWord

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Stage labels shared with the UI."""

    SEGMENTATION = "segmentation"
    FREQUENCY_FILTERING = "frequency-filtering"
    MALFORMED_WORD_CORRECTION = "malformed-word-correction"
    STEMMING = "stemming"
    ENTITY_FILTERING = "entity-filtering"
    AGGREGATION = "aggregation"


# Percent reported when each stage starts; entity filtering advances per batch
STAGE_PERCENT = {
    Stage.SEGMENTATION: 5,
    Stage.FREQUENCY_FILTERING: 20,
    Stage.MALFORMED_WORD_CORRECTION: 30,
    Stage.STEMMING: 40,
    Stage.ENTITY_FILTERING: 45,
    Stage.AGGREGATION: 90,
}
ENTITY_FILTERING_END_PERCENT = 85
COMPLETE_PERCENT = 100


# =============================================================================
# EVENTS
# =============================================================================


@dataclass(frozen=True)
class ProgressEvent:
    """Base for all progress events. Use the per-stage subclasses."""

    stage: ClassVar[Stage]

    book_id: int
    progress: int
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "book_id": self.book_id,
            "stage": self.stage.value,
            "progress": self.progress,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        return data


@dataclass(frozen=True)
class SegmentationProgress(ProgressEvent):
    stage: ClassVar[Stage] = Stage.SEGMENTATION


@dataclass(frozen=True)
class FrequencyFilteringProgress(ProgressEvent):
    stage: ClassVar[Stage] = Stage.FREQUENCY_FILTERING


@dataclass(frozen=True)
class CorrectionProgress(ProgressEvent):
    stage: ClassVar[Stage] = Stage.MALFORMED_WORD_CORRECTION


@dataclass(frozen=True)
class StemmingProgress(ProgressEvent):
    stage: ClassVar[Stage] = Stage.STEMMING


@dataclass(frozen=True)
class EntityFilteringProgress(ProgressEvent):
    """Entity-filtering progress, optionally with classified sample words."""

    stage: ClassVar[Stage] = Stage.ENTITY_FILTERING

    sample_words: tuple[SampleWord, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.sample_words:
            data["sample_words"] = [sample.to_dict() for sample in self.sample_words]
        return data


@dataclass(frozen=True)
class AggregationProgress(ProgressEvent):
    stage: ClassVar[Stage] = Stage.AGGREGATION


EVENT_TYPES: dict[Stage, type[ProgressEvent]] = {
    cls.stage: cls
    for cls in (
        SegmentationProgress,
        FrequencyFilteringProgress,
        CorrectionProgress,
        StemmingProgress,
        EntityFilteringProgress,
        AggregationProgress,
    )
}


# =============================================================================
# CHANNEL
# =============================================================================


class ProgressChannel:
    """
    Bounded, drop-oldest event channel from a worker to one consumer.

    ``publish`` never blocks. Consumers iterate the channel; iteration ends
    once the channel is closed and drained.

    Example:
        >>> channel = ProgressChannel(maxsize=2)
        >>> for event in (a, b, c):
        ...     channel.publish(event)
        >>> channel.close()
        >>> list(channel)  # oldest event was dropped
        [b, c]
    """

    def __init__(self, maxsize: int = 64) -> None:
        self._events: deque[ProgressEvent] = deque(maxlen=maxsize)
        self._cond = threading.Condition()
        self._closed = False
        self.dropped = 0

    def publish(self, event: ProgressEvent) -> None:
        with self._cond:
            if self._closed:
                return
            if len(self._events) == self._events.maxlen:
                self.dropped += 1
            self._events.append(event)
            self._cond.notify()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """
        Next event, waiting if needed.

        Returns None once the channel is closed and empty, or on timeout.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._events or self._closed, timeout=timeout):
                return None
            if self._events:
                return self._events.popleft()
            return None

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event


# =============================================================================
# REPORTER
# =============================================================================


class ProgressReporter:
    """
    Builds events for one job and hands them to a sink.

    Percentages never decrease within a run. A failing sink is logged and
    ignored: losing an event only affects UI smoothness.
    """

    def __init__(self, book_id: int, sink: Callable[[ProgressEvent], None] | None = None) -> None:
        self.book_id = book_id
        self.sink = sink
        self.last_percent = 0
        self.events_emitted = 0

    def emit(
        self,
        stage: Stage,
        percent: int,
        detail: str | None = None,
        sample_words: Sequence[SampleWord] = (),
    ) -> ProgressEvent:
        percent = max(self.last_percent, min(int(percent), COMPLETE_PERCENT))
        self.last_percent = percent

        event_type = EVENT_TYPES[stage]
        if event_type is EntityFilteringProgress:
            event: ProgressEvent = EntityFilteringProgress(
                book_id=self.book_id,
                progress=percent,
                detail=detail,
                sample_words=tuple(sample_words),
            )
        else:
            event = event_type(book_id=self.book_id, progress=percent, detail=detail)

        self.events_emitted += 1
        if self.sink is not None:
            try:
                self.sink(event)
            except Exception as e:
                logger.warning("Progress listener failed on %s event: %s", stage.value, e)
        return event

    def stage_started(self, stage: Stage, detail: str | None = None) -> ProgressEvent:
        return self.emit(stage, STAGE_PERCENT[stage], detail)
