"""
Sentence and word segmentation.

Sentences come from nltk's pretrained Punkt tokenizer, run separately on
each paragraph so that blank-line breaks (headings, chapter titles) always
end a sentence. Each sentence is then split into word tokens: letters and
digits plus internal apostrophes/hyphens form one token ("don't",
"well-known"); punctuation and whitespace are boundaries. Works on any
Unicode letters, not only ASCII.
"""

from __future__ import annotations

import logging
import re
import threading
import unicodedata
from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

from lexis.exceptions import ResourceUnavailableError
from lexis.models import Sentence, WordOccurrence

if TYPE_CHECKING:
    from nltk.tokenize.punkt import PunktTokenizer

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

# Blank line(s) between paragraphs
PARAGRAPH_BREAK_PATTERN = re.compile(r"\n[ \t]*\n\s*")

# One word token: letters/digits joined by single internal apostrophes or hyphens
WORD_PATTERN = re.compile(r"[^\W_]+(?:['’\-‐][^\W_]+)*")

PUNKT_RESOURCE = "punkt_tab"

_tokenizers: dict[str, PunktTokenizer] = {}
_tokenizers_lock = threading.Lock()


def load_sentence_tokenizer(language: str = "english") -> PunktTokenizer:
    """
    Load (once per process) the Punkt sentence tokenizer for a language.

    The ``punkt_tab`` data is downloaded on first use if it is not already
    installed.

    Raises:
        ResourceUnavailableError: If nltk or the Punkt data is unavailable.
    """
    with _tokenizers_lock:
        if language in _tokenizers:
            return _tokenizers[language]
        try:
            import nltk
            from nltk.tokenize.punkt import PunktTokenizer

            try:
                nltk.data.find(f"tokenizers/{PUNKT_RESOURCE}/{language}/")
            except LookupError:
                logger.info("Downloading nltk '%s' data", PUNKT_RESOURCE)
                nltk.download(PUNKT_RESOURCE, quiet=True, raise_on_error=True)
            tokenizer = PunktTokenizer(language)
        except (ImportError, LookupError, OSError, ValueError) as e:
            raise ResourceUnavailableError(
                f"Could not load Punkt sentence tokenizer for '{language}': {e}",
                stage="segmentation",
            ) from e
        _tokenizers[language] = tokenizer
        logger.info("Loaded Punkt sentence tokenizer (%s)", language)
        return tokenizer


def canonical_form(surface: str) -> str:
    """
    Lowercase lookup form of a token.

    Applies NFC normalization, folds curly apostrophes and strips a
    possessive suffix ("Elizabeth's" -> "elizabeth", "horses'" -> "horses").

    Example:
        >>> canonical_form("Darcy’s")
        'darcy'
    """
    word = unicodedata.normalize("NFC", surface).lower()
    word = word.replace("’", "'").replace("‐", "-")
    if word.endswith("'s"):
        word = word[:-2]
    return word.rstrip("'")


@dataclass
class Segmenter:
    """
    Splits text into sentences and word tokens.

    Purely a transform: no state is kept between calls, so one instance can
    be shared by concurrent jobs. The Punkt tokenizer is loaded on the first
    call, not at construction.

    Example:
        >>> segmenter = Segmenter()
        >>> [s.text for s in segmenter.sentences("It rained. Mr. Darcy left!")]
        ['It rained.', 'Mr. Darcy left!']
    """

    language: str = "english"

    def sentences(self, text: str) -> Iterator[Sentence]:
        """
        Yield sentences in document order.

        Empty or whitespace-only input yields nothing and loads nothing.

        Raises:
            ResourceUnavailableError: If the Punkt data cannot be loaded.
        """
        if not text or not text.strip():
            return

        tokenizer = load_sentence_tokenizer(self.language)
        index = 0
        for start, end in self._paragraphs(text):
            for span_start, span_end in tokenizer.span_tokenize(text[start:end]):
                sentence = self._make_sentence(text, start + span_start, start + span_end, index)
                if sentence is not None:
                    yield sentence
                    index += 1

    def tokens(self, sentence: Sentence) -> list[WordOccurrence]:
        """Split one sentence into word occurrences with in-sentence offsets."""
        return [
            WordOccurrence(
                surface=match.group(),
                canonical=canonical_form(match.group()),
                sentence_index=sentence.index,
                offset=match.start(),
            )
            for match in WORD_PATTERN.finditer(sentence.text)
        ]

    def segment(self, text: str) -> Iterator[tuple[Sentence, list[WordOccurrence]]]:
        """Yield each sentence with its tokens."""
        for sentence in self.sentences(text):
            yield sentence, self.tokens(sentence)

    def count_tokens(self, text: str) -> int:
        """Total number of word tokens in the document."""
        return sum(len(tokens) for _, tokens in self.segment(text))

    @staticmethod
    def _paragraphs(text: str) -> Iterator[tuple[int, int]]:
        pos = 0
        for match in PARAGRAPH_BREAK_PATTERN.finditer(text):
            yield pos, match.start()
            pos = match.end()
        yield pos, len(text)

    @staticmethod
    def _make_sentence(text: str, start: int, end: int, index: int) -> Sentence | None:
        raw = text[start:end]
        stripped = raw.strip()
        if not stripped:
            return None
        leading = len(raw) - len(raw.lstrip())
        return Sentence(index=index, text=stripped, start=start + leading)


class SegmentedDocument:
    """
    Lazy, restartable view of a document's sentences.

    Every iteration re-segments the text from the start, so the document can
    be walked more than once without holding all tokens in memory.
    """

    def __init__(self, text: str, segmenter: Segmenter | None = None) -> None:
        self.text = text
        self.segmenter = segmenter or Segmenter()

    def __iter__(self) -> Iterator[tuple[Sentence, list[WordOccurrence]]]:
        return self.segmenter.segment(self.text)

    def sentences(self) -> Iterator[Sentence]:
        return self.segmenter.sentences(self.text)

    @property
    def word_count(self) -> int:
        return self.segmenter.count_tokens(self.text)
