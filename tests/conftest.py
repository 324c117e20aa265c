"""
Pytest configuration and fixtures for Lexis tests.

Unit tests run against a small StaticFrequencyTable and a duck-typed fake
GLiNER model so they are fast and deterministic. The real Snowball stemmer
is used everywhere (it needs no downloaded data).
"""

import re
import threading
from pathlib import Path

import pytest

from lexis import AnalysisConfig, PipelineContext, StaticFrequencyTable
from lexis.config import EntityConfig

# Scores >= 5e-5 are common at the default threshold; lower scores are rare
VOCABULARY = {
    # Common
    "the": 0.05,
    "of": 0.03,
    "and": 0.03,
    "to": 0.025,
    "a": 0.02,
    "in": 0.02,
    "was": 0.01,
    "it": 0.01,
    "is": 0.01,
    "that": 0.01,
    "for": 0.007,
    "he": 0.006,
    "with": 0.006,
    "on": 0.006,
    "be": 0.006,
    "she": 0.005,
    "her": 0.005,
    "his": 0.005,
    "this": 0.005,
    "as": 0.005,
    "they": 0.004,
    "but": 0.004,
    "not": 0.004,
    "had": 0.004,
    "at": 0.004,
    "by": 0.004,
    "all": 0.003,
    "their": 0.002,
    "very": 0.001,
    "great": 0.001,
    "man": 0.001,
    "said": 0.001,
    "time": 0.001,
    "long": 0.001,
    "end": 0.0005,
    "house": 0.0005,
    "believe": 0.0004,
    "room": 0.0003,
    "felt": 0.0003,
    "hope": 0.0003,
    "garden": 0.0002,
    "walked": 0.0002,
    "letter": 0.0002,
    "evening": 0.0002,
    "morning": 0.0002,
    "smiled": 0.0001,
    "cousin": 0.0001,
    "complete": 0.0001,
    # Rare
    "eternity": 0.00002,
    "favorites": 0.00001,
    "favorite": 0.00002,
    "countenance": 0.000004,
    "gaiety": 0.000003,
    "gaieties": 0.0000002,
    "sanguine": 0.000002,
    "felicity": 0.0000015,
    "civility": 0.0000012,
    "obsequious": 0.0000008,
    "indolence": 0.0000006,
    # Names (rare by frequency, removed by the entity model)
    "elizabeth": 0.00004,
    "darcy": 0.000002,
    "bennet": 0.0000005,
    "pemberley": 0.0000001,
}

# Names the fake entity model tags (case-sensitive, whole words)
GAZETTEER = {
    "Elizabeth": "person",
    "Darcy": "person",
    "Bennet": "person",
    "Felicity": "person",
    "Pemberley": "location",
}


class FakeGLiNER:
    """
    Stand-in for a GLiNER model: tags gazetteer names in the text.

    Attributes:
        calls: Every text passed to predict_entities.
        on_call: Optional hook run at the start of each call.
    """

    def __init__(self, gazetteer=None, on_call=None):
        self.gazetteer = dict(GAZETTEER if gazetteer is None else gazetteer)
        self.on_call = on_call
        self.calls = []
        self._lock = threading.Lock()

    def predict_entities(self, text, labels, threshold=0.5):
        with self._lock:
            self.calls.append(text)
        if self.on_call is not None:
            self.on_call(text)
        entities = []
        for name, label in self.gazetteer.items():
            if label not in labels:
                continue
            for match in re.finditer(rf"\b{re.escape(name)}\b", text):
                entities.append(
                    {
                        "start": match.start(),
                        "end": match.end(),
                        "text": match.group(),
                        "label": label,
                        "score": 0.9,
                    }
                )
        return entities


@pytest.fixture(scope="session")
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def frequency_table() -> StaticFrequencyTable:
    """Small, fixed frequency table."""
    return StaticFrequencyTable(VOCABULARY)


@pytest.fixture
def fake_model() -> FakeGLiNER:
    return FakeGLiNER()


@pytest.fixture
def fake_model_cls():
    """The FakeGLiNER class, for tests that need custom gazetteers or hooks."""
    return FakeGLiNER


@pytest.fixture
def analysis_config() -> AnalysisConfig:
    """Default config with one-sentence entity batches and short contexts allowed."""
    return AnalysisConfig(min_context_chars=1, entities=EntityConfig(batch_size=1))


@pytest.fixture
def make_context(frequency_table, analysis_config):
    """Factory for pipeline contexts over the static table."""

    def _make(model=None, config=None):
        return PipelineContext.create(
            config or analysis_config,
            frequency_table=frequency_table,
            entity_model=model if model is not None else FakeGLiNER(),
        )

    return _make


@pytest.fixture
def context(make_context, fake_model) -> PipelineContext:
    return make_context(fake_model)


@pytest.fixture
def sample_text() -> str:
    """Short passage over the static vocabulary."""
    return (
        "Elizabeth walked in the garden with great gaiety. "
        "Her gaiety was complete, and all the gaieties of the evening felt long. "
        "Mr. Darcy said it with civility and a sanguine countenance. "
        "Felicity smiled at her cousin. "
        "Their felicity was complete. "
        "The letter was obsequious; it was theendofeternity."
    )
