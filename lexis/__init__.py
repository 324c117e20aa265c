"""
Lexis: Extract hard vocabulary from the books you read.

Given a book's raw text and a rarity threshold, Lexis produces a ranked,
deduplicated list of uncommon words, each with its occurrence count,
example sentences and inflected variants. Names and places are removed
with a zero-shot entity model so the list holds vocabulary, not cast lists.

Example:
    >>> import lexis
    >>> result = lexis.analyze(text, 0.00005, book_id=7)
    >>> for record in result.hard_words[:10]:
    ...     print(record.word, record.count, record.variants)

    >>> # Background jobs with progress
    >>> with lexis.JobQueue() as queue:
    ...     job = queue.submit(7, text, on_progress=lambda e: print(e.to_dict()))
    ...     result = job.result()
"""

from lexis.analyze import analyze, analyze_batch
from lexis.config import (
    DEFAULT_RARITY_THRESHOLD,
    AnalysisConfig,
    CorrectionConfig,
    EntityConfig,
    JobQueueConfig,
)
from lexis.context import PipelineContext, get_default_context, set_default_context
from lexis.exceptions import (
    AnalysisCancelled,
    ConfigurationError,
    InferenceError,
    LexisError,
    PipelineError,
    ResourceUnavailableError,
)
from lexis.export import BookInfo, build_export, write_export
from lexis.jobs import AnalysisJob, CancellationToken, JobQueue, JobState
from lexis.models import (
    UNKNOWN_FREQUENCY,
    AnalysisResult,
    AnalysisStats,
    HardWordRecord,
    SampleWord,
)
from lexis.nlp.frequency import StaticFrequencyTable, WordfreqTable
from lexis.progress import ProgressChannel, ProgressEvent, Stage

__version__ = "0.1.0"
__all__ = [
    # Main API
    "analyze",
    "analyze_batch",
    # Configuration
    "AnalysisConfig",
    "CorrectionConfig",
    "EntityConfig",
    "JobQueueConfig",
    "DEFAULT_RARITY_THRESHOLD",
    # Shared resources
    "PipelineContext",
    "get_default_context",
    "set_default_context",
    "WordfreqTable",
    "StaticFrequencyTable",
    # Jobs
    "JobQueue",
    "AnalysisJob",
    "JobState",
    "CancellationToken",
    # Progress
    "Stage",
    "ProgressEvent",
    "ProgressChannel",
    # Output
    "AnalysisResult",
    "AnalysisStats",
    "HardWordRecord",
    "SampleWord",
    "UNKNOWN_FREQUENCY",
    # Export
    "BookInfo",
    "build_export",
    "write_export",
    # Exceptions
    "LexisError",
    "ConfigurationError",
    "PipelineError",
    "ResourceUnavailableError",
    "InferenceError",
    "AnalysisCancelled",
]
