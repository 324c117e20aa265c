"""
Analysis jobs: state machine, cancellation and the background job queue.

A job moves strictly forward through the pipeline states:

    PENDING -> SEGMENTING -> FREQUENCY_FILTERING -> SEGMENTATION_CORRECTING
            -> NORMALIZING -> ENTITY_FILTERING -> AGGREGATING -> COMPLETED

FAILED and CANCELLED are reachable from any non-terminal state. Each
forward transition emits exactly one progress event. Terminal jobs are
never reused.

The JobQueue runs one job per book at a time (later jobs for the same book
wait in FIFO order) and different books concurrently on a thread pool.
Progress for queued jobs flows through a bounded ProgressChannel to a
per-job delivery thread, so a slow listener never stalls the pipeline.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

from lexis.config import AnalysisConfig, JobQueueConfig
from lexis.context import PipelineContext, get_default_context
from lexis.exceptions import AnalysisCancelled, LexisError, PipelineError
from lexis.models import AnalysisResult, SampleWord
from lexis.progress import (
    COMPLETE_PERCENT,
    ProgressChannel,
    ProgressEvent,
    ProgressReporter,
    Stage,
)

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]
CompletionListener = Callable[["AnalysisJob"], None]


# =============================================================================
# CANCELLATION
# =============================================================================


class CancellationToken:
    """
    Thread-safe, one-way cancellation flag.

    The pipeline polls the token at every stage transition and before each
    entity-model batch.

    Example:
        >>> token = CancellationToken()
        >>> job = queue.submit(7, text, cancel_token=token)
        >>> token.cancel()  # e.g. the reader closed the book view
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, stage: Stage | None = None) -> None:
        if self._event.is_set():
            where = f" at {stage.value}" if stage is not None else ""
            raise AnalysisCancelled(f"Analysis cancelled{where}")


# =============================================================================
# STATE MACHINE
# =============================================================================


class JobState(str, Enum):
    """Lifecycle states of an analysis job."""

    PENDING = "pending"
    SEGMENTING = "segmenting"
    FREQUENCY_FILTERING = "frequency_filtering"
    SEGMENTATION_CORRECTING = "segmentation_correcting"
    NORMALIZING = "normalizing"
    ENTITY_FILTERING = "entity_filtering"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    def can_transition_to(self, other: JobState) -> bool:
        if self.is_terminal:
            return False
        if other in (JobState.FAILED, JobState.CANCELLED):
            return True
        order = PIPELINE_STATES.index(self)
        return order + 1 < len(PIPELINE_STATES) and PIPELINE_STATES[order + 1] is other


PIPELINE_STATES: tuple[JobState, ...] = (
    JobState.PENDING,
    JobState.SEGMENTING,
    JobState.FREQUENCY_FILTERING,
    JobState.SEGMENTATION_CORRECTING,
    JobState.NORMALIZING,
    JobState.ENTITY_FILTERING,
    JobState.AGGREGATING,
    JobState.COMPLETED,
)
TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})

STATE_FOR_STAGE = {
    Stage.SEGMENTATION: JobState.SEGMENTING,
    Stage.FREQUENCY_FILTERING: JobState.FREQUENCY_FILTERING,
    Stage.MALFORMED_WORD_CORRECTION: JobState.SEGMENTATION_CORRECTING,
    Stage.STEMMING: JobState.NORMALIZING,
    Stage.ENTITY_FILTERING: JobState.ENTITY_FILTERING,
    Stage.AGGREGATION: JobState.AGGREGATING,
}
STAGE_FOR_STATE = {state: stage for stage, state in STATE_FOR_STAGE.items()}


# =============================================================================
# ANALYSIS JOB
# =============================================================================


class AnalysisJob:
    """
    One analysis of one book, runnable exactly once.

    ``run()`` executes the pipeline in the calling thread; the JobQueue
    calls it from a worker. The outcome is read with ``result()``, which
    returns the AnalysisResult, or raises AnalysisCancelled / PipelineError.

    Attributes:
        book_id: Identifier echoed in progress events and the result.
        state: Current JobState.
        history: Every state the job has entered, in order.
        token: The job's CancellationToken.
        channel: Progress channel when the job runs on a JobQueue.
    """

    def __init__(
        self,
        book_id: int,
        document: str | bytes,
        config: AnalysisConfig | None = None,
        context: PipelineContext | None = None,
        cancel_token: CancellationToken | None = None,
        on_progress: ProgressListener | None = None,
    ) -> None:
        self.book_id = book_id
        self.document = document
        self.config = config or AnalysisConfig()
        self.context = context
        self.token = cancel_token or CancellationToken()
        self.channel: ProgressChannel | None = None
        self.reporter = ProgressReporter(book_id, sink=on_progress)

        self.state = JobState.PENDING
        self.history: list[JobState] = [JobState.PENDING]
        self.started_at: float | None = None
        self.finished_at: float | None = None

        self._result: AnalysisResult | None = None
        self._error: LexisError | None = None
        self._done = threading.Event()
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"AnalysisJob(book_id={self.book_id}, state={self.state.value})"

    # -------------------------------------------------------------------------
    # Hooks used by the pipeline
    # -------------------------------------------------------------------------

    def advance(self, stage: Stage, detail: str | None = None) -> None:
        """
        Enter the state for ``stage`` and emit its progress event.

        Raises:
            AnalysisCancelled: If the token was cancelled.
        """
        self.token.raise_if_cancelled(stage)
        self._transition(STATE_FOR_STAGE[stage])
        self.reporter.stage_started(stage, detail)

    def checkpoint(self) -> None:
        """Cancellation check inside a long stage."""
        self.token.raise_if_cancelled(STAGE_FOR_STATE.get(self.state))

    def report(
        self,
        percent: int,
        detail: str | None = None,
        sample_words: Sequence[SampleWord] = (),
    ) -> None:
        """Emit an intermediate progress event for the current stage."""
        self.reporter.emit(STAGE_FOR_STATE[self.state], percent, detail, sample_words)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def run(self) -> None:
        """
        Execute the pipeline and settle the job in a terminal state.

        Never raises for pipeline failures; those are stored and re-raised
        by ``result()``.

        Raises:
            PipelineError: If the job was already run.
        """
        from lexis.pipeline import AnalysisPipeline

        with self._lock:
            if self.started_at is not None:
                raise PipelineError(f"Job for book {self.book_id} was already run")
            self.started_at = time.perf_counter()

        try:
            self.token.raise_if_cancelled()
            context = self.context or get_default_context()
            result = AnalysisPipeline(context, self.config).run(self)
        except AnalysisCancelled as e:
            logger.info("Book %d: analysis cancelled during %s", self.book_id, self.state.value)
            self._finish(JobState.CANCELLED, error=e)
        except PipelineError as e:
            logger.error("Book %d: analysis failed: %s", self.book_id, e)
            self._finish(JobState.FAILED, error=e)
        except Exception as e:
            stage = STAGE_FOR_STATE.get(self.state)
            logger.exception("Book %d: unexpected error during %s", self.book_id, self.state.value)
            error = PipelineError(
                f"Unexpected error: {e}", stage=stage.value if stage is not None else None
            )
            error.__cause__ = e
            self._finish(JobState.FAILED, error=error)
        else:
            self._result = result
            self._transition(JobState.COMPLETED)
            self.reporter.emit(
                Stage.AGGREGATION,
                COMPLETE_PERCENT,
                f"Found {result.stats.hard_words_count} hard words",
            )
            self._finish(JobState.COMPLETED)

    def cancel(self) -> None:
        """Request cancellation; the job stops at its next checkpoint."""
        self.token.cancel()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    @property
    def error(self) -> LexisError | None:
        return self._error

    @property
    def elapsed(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job is terminal. Returns False on timeout."""
        return self._done.wait(timeout)

    def result(self, timeout: float | None = None) -> AnalysisResult:
        """
        Wait for and return the job's result.

        Raises:
            TimeoutError: If the job is still running after ``timeout``.
            AnalysisCancelled: If the job was cancelled.
            PipelineError: If the job failed.
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"Job for book {self.book_id} still {self.state.value}")
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result

    def _transition(self, new_state: JobState) -> None:
        if not self.state.can_transition_to(new_state):
            raise PipelineError(
                f"Illegal job transition {self.state.value} -> {new_state.value}"
            )
        logger.debug("Book %d: %s -> %s", self.book_id, self.state.value, new_state.value)
        self.state = new_state
        self.history.append(new_state)

    def _finish(self, state: JobState, error: LexisError | None = None) -> None:
        if state is not JobState.COMPLETED:
            self._transition(state)
        self._error = error
        self.finished_at = time.perf_counter()
        self._done.set()


# =============================================================================
# JOB QUEUE
# =============================================================================


class JobQueue:
    """
    Background runner for analysis jobs.

    One job per book is active at a time; further jobs for that book wait
    in submission order. Jobs for different books run concurrently, up to
    ``max_workers``. Completion callbacks run on the job's delivery thread
    after its last progress event.

    Example:
        >>> with JobQueue() as queue:
        ...     job = queue.submit(7, text, 0.00005, on_progress=print)
        ...     result = job.result()
    """

    def __init__(
        self,
        config: JobQueueConfig | None = None,
        context: PipelineContext | None = None,
        analysis_config: AnalysisConfig | None = None,
    ) -> None:
        self.config = config or JobQueueConfig()
        self.context = context
        self.analysis_config = analysis_config or AnalysisConfig()
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="lexis-job"
        )
        self._lock = threading.Lock()
        self._active: dict[int, AnalysisJob] = {}
        self._waiting: dict[int, deque[AnalysisJob]] = {}
        self._closed = False

    def __enter__(self) -> JobQueue:
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown(wait=True)

    def submit(
        self,
        book_id: int,
        document: str | bytes,
        rarity_threshold: float | None = None,
        *,
        config: AnalysisConfig | None = None,
        cancel_token: CancellationToken | None = None,
        on_progress: ProgressListener | None = None,
        on_complete: CompletionListener | None = None,
        replace: bool = False,
    ) -> AnalysisJob:
        """
        Queue an analysis.

        Args:
            book_id: Book being analysed; jobs for one book run one at a time.
            document: Raw text (or UTF-8 bytes).
            rarity_threshold: Overrides the config's threshold.
            config: Per-job analysis config (defaults to the queue's).
            cancel_token: Token to stop the job (a new one is made if None).
            on_progress: Called for each delivered progress event.
            on_complete: Called with the job after its last progress event.
            replace: Cancel this book's running and waiting jobs first.

        Raises:
            LexisError: If the queue has been shut down.
        """
        config = config or self.analysis_config
        if rarity_threshold is not None:
            config = config.with_threshold(rarity_threshold)

        job = AnalysisJob(
            book_id=book_id,
            document=document,
            config=config,
            context=self.context,
            cancel_token=cancel_token,
        )
        job.channel = ProgressChannel(maxsize=self.config.progress_buffer)
        job.reporter.sink = job.channel.publish

        with self._lock:
            if self._closed:
                raise LexisError("JobQueue has been shut down")
            if on_progress is not None or on_complete is not None:
                self._start_delivery(job, on_progress, on_complete)
            if replace:
                self._cancel_locked(book_id)
            if book_id in self._active:
                self._waiting.setdefault(book_id, deque()).append(job)
                logger.info(
                    "Book %d: job queued behind running analysis (%d waiting)",
                    book_id,
                    len(self._waiting[book_id]),
                )
            else:
                self._active[book_id] = job
                self._executor.submit(self._execute, job)
        return job

    def cancel(self, book_id: int) -> int:
        """Cancel the running and waiting jobs of a book. Returns how many."""
        with self._lock:
            return self._cancel_locked(book_id)

    def active_jobs(self) -> list[int]:
        """Book ids with a running job."""
        with self._lock:
            return sorted(self._active)

    def waiting_jobs(self, book_id: int) -> int:
        with self._lock:
            return len(self._waiting.get(book_id, ()))

    def shutdown(self, wait: bool = True, cancel: bool = False) -> None:
        """
        Stop accepting jobs.

        Args:
            wait: Block until running and waiting jobs are terminal.
            cancel: Cancel all running and waiting jobs first.
        """
        with self._lock:
            self._closed = True
            if cancel:
                for book_id in list(self._active):
                    self._cancel_locked(book_id)
        self._executor.shutdown(wait=wait)

    def _execute(self, job: AnalysisJob | None) -> None:
        # Runs a book's jobs back to back on one worker to keep them FIFO
        while job is not None:
            try:
                job.run()
            finally:
                if job.channel is not None:
                    job.channel.close()
            book_id = job.book_id
            with self._lock:
                waiting = self._waiting.get(book_id)
                if waiting:
                    job = waiting.popleft()
                    self._active[book_id] = job
                else:
                    self._waiting.pop(book_id, None)
                    del self._active[book_id]
                    job = None

    def _cancel_locked(self, book_id: int) -> int:
        jobs = list(self._waiting.get(book_id, ()))
        if book_id in self._active:
            jobs.append(self._active[book_id])
        for job in jobs:
            job.cancel()
        if jobs:
            logger.info("Book %d: cancelled %d job(s)", book_id, len(jobs))
        return len(jobs)

    @staticmethod
    def _start_delivery(
        job: AnalysisJob,
        on_progress: ProgressListener | None,
        on_complete: CompletionListener | None,
    ) -> None:
        channel = job.channel
        assert channel is not None

        def deliver() -> None:
            for event in channel:
                if on_progress is None:
                    continue
                try:
                    on_progress(event)
                except Exception as e:
                    logger.warning("Book %d: progress listener failed: %s", job.book_id, e)
            job.wait()
            if on_complete is not None:
                try:
                    on_complete(job)
                except Exception:
                    logger.exception("Book %d: completion listener failed", job.book_id)

        thread = threading.Thread(
            target=deliver, name=f"lexis-progress-{job.book_id}", daemon=True
        )
        thread.start()
