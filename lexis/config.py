"""
Configuration for Lexis hard-word analysis.

All options have sensible defaults. The rarity threshold is the only value
most callers change; it is deliberately never validated so that out-of-band
values simply yield near-empty or near-total candidate sets.
"""

from dataclasses import dataclass, field, replace

from lexis.exceptions import ConfigurationError

DEFAULT_RARITY_THRESHOLD = 0.00005

DEFAULT_ENTITY_MODEL = "urchade/gliner_medium-v2.1"
# Names, places and the misc proper nouns (holidays, events, nationalities)
DEFAULT_ENTITY_LABELS = (
    "person",
    "location",
    "organization",
    "country",
    "city",
    "nationality",
    "event",
    "holiday",
    "work of art",
)


@dataclass
class CorrectionConfig:
    """
    Configuration for repairing concatenated tokens (e.g. "theendofeternity").

    Only tokens absent from the frequency table are ever considered. A split
    is accepted when every segment is a known dictionary word and the
    geometric mean of the segment probabilities clears
    ``min_segment_probability``.

    Example:
        >>> config = AnalysisConfig(
        ...     correction=CorrectionConfig(max_edit_distance=0)
        ... )
    """

    # Unknown tokens shorter than this are kept without a correction attempt
    min_token_length: int = 8

    # Longest substring tried as one segment
    max_segment_length: int = 20

    # Edits allowed per segment (0 = exact dictionary words only)
    max_edit_distance: int = 1

    # Most frequent table words loaded into the SymSpell segmentation index
    index_size: int = 100_000

    # Segments shorter than this must be very common words ("of", "a")
    min_segment_length: int = 3
    short_segment_min_frequency: float = 0.001

    # Acceptance bar ("the end of eternity" ~ 1.4e-3) and per-repair penalty
    min_segment_probability: float = 0.0001
    edit_penalty: float = 0.01

    def __post_init__(self):
        """Validate configuration."""
        if self.min_token_length < 2:
            raise ConfigurationError(f"min_token_length must be >= 2, got {self.min_token_length}")
        if self.max_segment_length < 1:
            raise ConfigurationError(
                f"max_segment_length must be >= 1, got {self.max_segment_length}"
            )
        if self.index_size < 1:
            raise ConfigurationError(f"index_size must be >= 1, got {self.index_size}")
        if self.max_edit_distance not in (0, 1, 2):
            raise ConfigurationError(
                f"max_edit_distance must be one of (0, 1, 2), got {self.max_edit_distance!r}"
            )
        if not 0.0 < self.min_segment_probability < 1.0:
            raise ConfigurationError(
                f"min_segment_probability must be between 0.0 and 1.0, "
                f"got {self.min_segment_probability}"
            )
        if not 0.0 < self.edit_penalty <= 1.0:
            raise ConfigurationError(
                f"edit_penalty must be in (0.0, 1.0], got {self.edit_penalty}"
            )


@dataclass
class EntityConfig:
    """
    Configuration for named-entity filtering.

    The model is loaded once per process and shared by every job, so
    ``model_name`` is only read the first time the model loads.
    """

    model_name: str = DEFAULT_ENTITY_MODEL
    labels: tuple[str, ...] = DEFAULT_ENTITY_LABELS
    threshold: float = 0.5

    # Sentences per inference batch (progress is reported per batch)
    batch_size: int = 64

    # Longer sentences are tagged in whitespace-aligned windows
    max_chars: int = 512

    # Only tag sentences where a candidate is capitalized mid-sentence
    proper_noun_prefilter: bool = False

    def __post_init__(self):
        """Validate configuration."""
        self.labels = tuple(self.labels)
        if not self.labels:
            raise ConfigurationError("labels must contain at least one entity label")
        if not 0.0 <= self.threshold <= 1.0:
            raise ConfigurationError(
                f"threshold must be between 0.0 and 1.0, got {self.threshold}"
            )
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.max_chars < 32:
            raise ConfigurationError(f"max_chars must be >= 32, got {self.max_chars}")


@dataclass
class AnalysisConfig:
    """
    Configuration for one hard-word analysis.

    Example:
        >>> config = AnalysisConfig(rarity_threshold=0.00001, max_contexts=3)
        >>> result = lexis.analyze(text, config=config)
    """

    # Lower threshold => only rarer words kept (~1e-6 very rare .. 1e-4 common)
    rarity_threshold: float = DEFAULT_RARITY_THRESHOLD

    # Tokens shorter than this (or containing digits) are never candidates
    min_word_length: int = 3

    # Example sentences kept per hard word
    max_contexts: int = 5
    min_context_chars: int = 20
    max_context_chars: int = 500

    correction: CorrectionConfig = field(default_factory=CorrectionConfig)
    entities: EntityConfig = field(default_factory=EntityConfig)

    def __post_init__(self):
        """Validate configuration."""
        if self.min_word_length < 1:
            raise ConfigurationError(f"min_word_length must be >= 1, got {self.min_word_length}")
        if self.max_contexts < 0:
            raise ConfigurationError(f"max_contexts must be >= 0, got {self.max_contexts}")
        if self.min_context_chars > self.max_context_chars:
            raise ConfigurationError(
                f"min_context_chars ({self.min_context_chars}) must not exceed "
                f"max_context_chars ({self.max_context_chars})"
            )

    def with_threshold(self, rarity_threshold: float) -> "AnalysisConfig":
        """Copy of this config with a different rarity threshold."""
        return replace(self, rarity_threshold=rarity_threshold)


@dataclass
class JobQueueConfig:
    """Configuration for the background job queue."""

    # Jobs for different books that may run at the same time
    max_workers: int = 2

    # Undelivered progress events kept per job before the oldest is dropped
    progress_buffer: int = 64

    def __post_init__(self):
        """Validate configuration."""
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.progress_buffer < 1:
            raise ConfigurationError(
                f"progress_buffer must be >= 1, got {self.progress_buffer}"
            )
