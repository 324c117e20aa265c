"""
Exception classes for Lexis.

All Lexis exceptions inherit from LexisError, making it easy to
catch all library errors.

Example:
    >>> try:
    ...     result = lexis.analyze(text, 0.00005)
    ... except lexis.AnalysisCancelled:
    ...     pass  # job was stopped, nothing to show
    ... except lexis.PipelineError as e:
    ...     print(f"Analysis failed: {e}")
"""


class LexisError(Exception):
    """
    Base exception for all Lexis errors.

    Catch this to handle any Lexis-specific error.
    """

    pass


class ConfigurationError(LexisError, ValueError):
    """
    Raised for invalid configuration values.

    Subclasses ValueError so callers validating input generically still catch it.

    Example:
        >>> JobQueue(JobQueueConfig(max_workers=0))
        ConfigurationError: max_workers must be >= 1, got 0
    """

    pass


class PipelineError(LexisError):
    """
    Raised when an analysis job fails.

    A failed job never produces a partial result and never corrupts the
    shared resources, so a new job can be submitted right away.
    """

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            return f"[{self.stage}] {message}"
        return message


class ResourceUnavailableError(PipelineError):
    """
    Raised when the frequency table, dictionary, or entity model cannot load.

    Example:
        >>> recognizer.load()
        ResourceUnavailableError: Could not load entity model 'urchade/gliner_medium-v2.1'
    """

    pass


class InferenceError(PipelineError):
    """
    Raised when the entity model fails while tagging sentences.

    Entity filtering is never skipped silently: a result without it would
    report names and places as vocabulary.
    """

    pass


class AnalysisCancelled(LexisError):
    """
    Raised when a job is stopped through its cancellation token.

    This is not a failure: there is no error message and no partial result.
    """

    pass
