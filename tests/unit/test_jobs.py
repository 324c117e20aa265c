"""
Tests for the job state machine, AnalysisJob and the background JobQueue.

Queue tests block the fake entity model on a threading.Event so that a job
is reliably mid-run while the test submits, cancels or inspects the queue.
"""

import threading

import pytest

from lexis import (
    AnalysisCancelled,
    AnalysisJob,
    CancellationToken,
    InferenceError,
    JobQueue,
    JobQueueConfig,
    JobState,
    LexisError,
    PipelineError,
)
from lexis.jobs import PIPELINE_STATES

TIMEOUT = 10


class BlockingModel:
    """Wraps a FakeGLiNER; each call waits until ``release`` is set."""

    def __init__(self, fake_model_cls):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.model = fake_model_cls(on_call=self._block)

    def _block(self, text):
        self.entered.set()
        self.release.wait(TIMEOUT)

    def predict_entities(self, text, labels, threshold=0.5):
        return self.model.predict_entities(text, labels, threshold)


@pytest.fixture
def blocking(fake_model_cls):
    model = BlockingModel(fake_model_cls)
    yield model
    model.release.set()


@pytest.fixture
def queue(make_context, analysis_config, blocking):
    queue = JobQueue(context=make_context(blocking), analysis_config=analysis_config)
    yield queue
    blocking.release.set()
    queue.shutdown(wait=True, cancel=True)


class TestJobState:
    """Tests for the transition rules."""

    def test_forward_one_step_only(self):
        assert JobState.PENDING.can_transition_to(JobState.SEGMENTING)
        assert not JobState.PENDING.can_transition_to(JobState.FREQUENCY_FILTERING)
        assert JobState.AGGREGATING.can_transition_to(JobState.COMPLETED)
        assert not JobState.ENTITY_FILTERING.can_transition_to(JobState.NORMALIZING)

    @pytest.mark.parametrize("state", PIPELINE_STATES[:-1])
    def test_failure_and_cancel_from_any_running_state(self, state):
        assert state.can_transition_to(JobState.FAILED)
        assert state.can_transition_to(JobState.CANCELLED)

    @pytest.mark.parametrize("state", [JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED])
    def test_terminal_states_are_final(self, state):
        assert state.is_terminal
        assert not any(state.can_transition_to(other) for other in JobState)


class TestAnalysisJob:
    """Tests for running a single job in the calling thread."""

    def test_history_walks_every_state(self, sample_text, context, analysis_config):
        job = AnalysisJob(7, sample_text, config=analysis_config, context=context)
        job.run()
        assert job.state is JobState.COMPLETED
        assert job.history == list(PIPELINE_STATES)
        assert job.done
        assert job.elapsed is not None and job.elapsed >= 0
        assert job.result().book_id == 7

    def test_runs_only_once(self, sample_text, context, analysis_config):
        job = AnalysisJob(7, sample_text, config=analysis_config, context=context)
        job.run()
        with pytest.raises(PipelineError):
            job.run()
        assert job.state is JobState.COMPLETED

    def test_result_timeout(self, sample_text, context):
        job = AnalysisJob(7, sample_text, context=context)
        with pytest.raises(TimeoutError):
            job.result(timeout=0.01)

    def test_cancelled_history(self, sample_text, make_context, analysis_config, fake_model_cls):
        token = CancellationToken()
        model = fake_model_cls(on_call=lambda text: token.cancel())
        job = AnalysisJob(
            7, sample_text, config=analysis_config, context=make_context(model), cancel_token=token
        )
        job.run()
        assert job.state is JobState.CANCELLED
        assert job.history[-2:] == [JobState.ENTITY_FILTERING, JobState.CANCELLED]
        assert isinstance(job.error, AnalysisCancelled)


class TestJobQueue:
    """Tests for background execution, ordering and cancellation."""

    def test_same_book_runs_in_submission_order(self, queue, blocking, sample_text):
        first = queue.submit(1, sample_text)
        assert blocking.entered.wait(TIMEOUT)
        second = queue.submit(1, sample_text)

        assert queue.active_jobs() == [1]
        assert queue.waiting_jobs(1) == 1
        assert second.state is JobState.PENDING

        blocking.release.set()
        assert second.wait(TIMEOUT)
        assert first.state is JobState.COMPLETED
        assert second.state is JobState.COMPLETED
        assert first.finished_at <= second.started_at
        assert queue.waiting_jobs(1) == 0

    def test_different_books_run_concurrently(self, queue, blocking, sample_text):
        jobs = [queue.submit(book_id, sample_text) for book_id in (1, 2)]
        assert blocking.entered.wait(TIMEOUT)
        assert queue.active_jobs() == [1, 2]
        blocking.release.set()
        for job in jobs:
            assert job.result(TIMEOUT).stats.hard_words_count == 6

    def test_threshold_override(self, queue, blocking, sample_text):
        blocking.release.set()
        job = queue.submit(1, sample_text, 0.0000013)
        assert [r.word for r in job.result(TIMEOUT).hard_words] == [
            "gaieties",
            "obsequious",
            "civility",
        ]

    def test_completion_after_last_progress(self, queue, blocking, sample_text):
        blocking.release.set()
        events = []
        seen_at_completion = []
        completed = threading.Event()

        def on_complete(job):
            seen_at_completion.append(len(events))
            completed.set()

        job = queue.submit(1, sample_text, on_progress=events.append, on_complete=on_complete)
        assert completed.wait(TIMEOUT)
        assert job.state is JobState.COMPLETED
        assert seen_at_completion == [len(events)]
        assert events[-1].progress == 100
        assert [e.progress for e in events] == sorted(e.progress for e in events)

    def test_cancel_book(self, queue, blocking, sample_text):
        job = queue.submit(1, sample_text)
        assert blocking.entered.wait(TIMEOUT)
        assert queue.cancel(1) == 1
        blocking.release.set()

        assert job.wait(TIMEOUT)
        assert job.state is JobState.CANCELLED
        with pytest.raises(AnalysisCancelled):
            job.result()
        assert queue.cancel(1) == 0

    def test_cancelled_job_emits_no_completion_event(self, queue, blocking, sample_text):
        events = []
        completed = threading.Event()
        job = queue.submit(
            1, sample_text, on_progress=events.append, on_complete=lambda j: completed.set()
        )
        assert blocking.entered.wait(TIMEOUT)
        queue.cancel(1)
        blocking.release.set()
        assert completed.wait(TIMEOUT)
        assert job.state is JobState.CANCELLED
        assert all(event.progress < 100 for event in events)

    def test_replace_cancels_existing_jobs(self, queue, blocking, sample_text):
        old = queue.submit(1, sample_text)
        assert blocking.entered.wait(TIMEOUT)
        new = queue.submit(1, sample_text, replace=True)
        blocking.release.set()

        assert new.wait(TIMEOUT)
        assert old.state is JobState.CANCELLED
        assert new.state is JobState.COMPLETED

    def test_failed_job(self, make_context, analysis_config, sample_text):
        class BrokenModel:
            def predict_entities(self, text, labels, threshold=0.5):
                raise RuntimeError("model crashed")

        with JobQueue(
            JobQueueConfig(max_workers=1),
            context=make_context(BrokenModel()),
            analysis_config=analysis_config,
        ) as queue:
            job = queue.submit(1, sample_text)
            assert job.wait(TIMEOUT)
        assert job.state is JobState.FAILED
        with pytest.raises(InferenceError):
            job.result()

    def test_submit_after_shutdown(self, queue, sample_text):
        queue.shutdown()
        with pytest.raises(LexisError):
            queue.submit(1, sample_text)
