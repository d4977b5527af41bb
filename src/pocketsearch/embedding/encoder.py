"""Model-free text embeddings built with the hashing trick."""

from __future__ import annotations

import hashlib
import logging
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np

DEFAULT_DIMENSION = 256
DEFAULT_NGRAM_SIZE = 3

CHAR_NGRAM_PREFIX = "c_"
WORD_NGRAM_SEPARATOR = "_"

STOP_WORDS = frozenset(
    {
        # Chinese
        "的", "了", "是", "在", "我", "有", "和", "就", "不", "人", "都", "一", "一个",
        "上", "也", "很", "到", "说", "要", "去", "你", "会", "着", "没有", "看", "好",
        # English
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
        "may", "might", "must", "shall", "can", "need", "dare", "ought", "used",
        "to", "of", "in", "for", "on", "with", "at", "by", "from", "as", "into",
        "through", "during", "before", "after", "above", "below", "between", "under",
    }
)

# Unicode blocks whose characters are tokenized one character at a time.
_WIDE_SCRIPT_RANGES = (
    (0x2000, 0x206F),  # General Punctuation
    (0x3000, 0x303F),  # CJK Symbols and Punctuation
    (0x3400, 0x4DBF),  # CJK Unified Ideographs Extension A
    (0x4E00, 0x9FFF),  # CJK Unified Ideographs
    (0xF900, 0xFAFF),  # CJK Compatibility Ideographs
    (0xFF00, 0xFFEF),  # Halfwidth and Fullwidth Forms
    (0x20000, 0x2A6DF),  # CJK Unified Ideographs Extension B
)

logger = logging.getLogger(__name__)


def is_wide_script(char: str) -> bool:
    code = ord(char)
    return any(low <= code <= high for low, high in _WIDE_SCRIPT_RANGES)


def _is_separator(char: str) -> bool:
    return char.isspace() or unicodedata.category(char)[0] in ("P", "S")


def preprocess(text: str) -> str:
    """Lowercase and collapse runs of punctuation and whitespace into one space."""
    parts: List[str] = []
    in_separator = False
    for char in text.lower():
        if _is_separator(char):
            if not in_separator:
                parts.append(" ")
                in_separator = True
        else:
            parts.append(char)
            in_separator = False
    return "".join(parts).strip()


def tokenize(text: str) -> List[str]:
    """Split preprocessed text into tokens, one token per wide-script character."""
    tokens: List[str] = []
    current: List[str] = []

    for char in text:
        if char.isspace():
            if current:
                tokens.append("".join(current))
                current = []
        elif is_wide_script(char):
            if current:
                tokens.append("".join(current))
                current = []
            tokens.append(char)
        else:
            current.append(char)

    if current:
        tokens.append("".join(current))

    return [token for token in tokens if token.strip() and token not in STOP_WORDS]


def generate_ngrams(tokens: Sequence[str], n: int = DEFAULT_NGRAM_SIZE) -> List[str]:
    """Return word 1..n-grams followed by tagged character bigrams."""
    ngrams = list(tokens)

    for size in range(2, n + 1):
        for start in range(len(tokens) - size + 1):
            ngrams.append(WORD_NGRAM_SEPARATOR.join(tokens[start : start + size]))

    for token in tokens:
        if len(token) >= 2:
            for start in range(len(token) - 1):
                ngrams.append(CHAR_NGRAM_PREFIX + token[start : start + 2])

    return ngrams


def hash_feature(feature: str) -> int:
    """Signed 32-bit hash taken from the leading bytes of an MD5 digest."""
    digest = hashlib.md5(feature.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big", signed=True)


def feature_weight(ngram: str) -> float:
    if ngram.startswith(CHAR_NGRAM_PREFIX):
        return 0.5
    if WORD_NGRAM_SEPARATOR in ngram:
        return 1.5
    return 1.0


@dataclass(slots=True)
class EmbeddingConfig:
    dimension: int = DEFAULT_DIMENSION
    ngram_size: int = DEFAULT_NGRAM_SIZE

    def __post_init__(self) -> None:
        if self.dimension < 1:
            raise ValueError("dimension must be positive")
        if self.ngram_size < 1:
            raise ValueError("ngram_size must be positive")


class HashingEmbedder:
    """Deterministic text embeddings without a trained model.

    Features:
    - Word 1..n-grams plus character bigrams, so mixed CJK/Latin text works
      without a segmentation model
    - Signed feature hashing into a fixed number of buckets
    - Three statistical tail features (length, CJK share, digit share)
    - L2-normalized float32 output

    The embedder holds no mutable state and is safe to share between threads.
    """

    def __init__(self, config: EmbeddingConfig | None = None) -> None:
        self.config = config or EmbeddingConfig()
        self.dimension = self.config.dimension

    def embed_text(self, text: str) -> np.ndarray:
        """Return the normalized float32 embedding of a single text."""
        cleaned = preprocess(text)
        tokens = tokenize(cleaned)
        ngrams = generate_ngrams(tokens, self.config.ngram_size)

        vector = np.zeros(self.dimension, dtype=np.float32)
        for ngram in ngrams:
            h = hash_feature(ngram)
            bucket = (h & 0x7FFFFFFF) % self.dimension
            sign = 1.0 if (h >> 31) & 1 == 0 else -1.0
            vector[bucket] += np.float32(sign * feature_weight(ngram))

        self._add_tail_features(cleaned, vector)
        return self._normalize(vector)

    def embed(self, texts: Sequence[str] | Iterable[str]) -> np.ndarray:
        """Return a (len(texts), dimension) float32 matrix."""
        vectors = [self.embed_text(text) for text in texts]
        if not vectors:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return np.vstack(vectors)

    def embed_query(self, text: str) -> np.ndarray:
        """Convenience wrapper for single-query embedding."""
        return self.embed_text(text)

    def _add_tail_features(self, text: str, vector: np.ndarray) -> None:
        if self.dimension <= 3:
            return
        length = float(len(text))
        denominator = max(length, 1.0)
        wide_ratio = sum(1 for char in text if is_wide_script(char)) / denominator
        digit_ratio = sum(1 for char in text if char.isdecimal()) / denominator

        vector[self.dimension - 3] = min(max(length / 1000.0, 0.0), 1.0)
        vector[self.dimension - 2] = wide_ratio
        vector[self.dimension - 1] = digit_ratio

    @staticmethod
    def _normalize(vector: np.ndarray) -> np.ndarray:
        norm = np.float32(np.sqrt(np.dot(vector, vector)))
        if norm > 0:
            vector /= norm
        return vector
