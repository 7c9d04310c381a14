"""
Tokenizer / embedder contracts and a dependency-free implementation
based on random indexing with character n-grams.

The engine only needs two things from the outside world: a way to
turn text into token ids, and a way to turn token ids into a
fixed-length vector.  ``Tokenizer`` and ``Embedder`` describe those
contracts; a transformer-backed embedder can be dropped in behind
them.  The hashing implementations below need nothing beyond the
standard library.

How the hashing pair works
--------------------------
1. ``HashTokenizer`` splits text into **word unigrams** (stopwords
   removed) and **character n-grams** (tri- and quad-grams within each
   word), and hashes each feature to a stable integer id.  The lowest
   bit of an id marks n-grams, so the embedder can weight whole words
   higher without a vocabulary.
2. ``HashingEmbedder`` derives a deterministic pseudo-random unit
   vector for each id from its SHA-256 digest, sums them (words weighted
   3.0, n-grams 1.0, each scaled by ``1 + log(count)``) and
   L2-normalises the result.
"""

from __future__ import annotations

import hashlib
import math
import re
import struct
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Sequence

from ..errors import InvalidInput

# Dimension of the hashing embedder's vectors.
EMBED_DIM = 384


# ------------------------------------------------------------------
# Contracts
# ------------------------------------------------------------------

class Tokenizer(ABC):
    @abstractmethod
    def encode(self, text: str) -> List[int]:
        """Token ids for *text*; empty for empty text."""


class Embedder(ABC):
    @property
    @abstractmethod
    def dimension(self) -> int:
        """Length of every vector this embedder returns."""

    @abstractmethod
    def embed(self, token_ids: Sequence[int]) -> List[float]:
        """
        Embed a token sequence.

        Raises ``InvalidInput`` on an empty sequence and
        ``ModelUnavailable`` if a backing model cannot be loaded.
        """


# ------------------------------------------------------------------
# Tokenisation
# ------------------------------------------------------------------

_WORD_RE = re.compile(r"[a-z0-9']+")
_STOPWORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "were", "be", "been",
    "being", "have", "has", "had", "do", "does", "did", "will",
    "would", "could", "should", "may", "might", "shall", "can",
    "to", "of", "in", "for", "on", "with", "at", "by", "from",
    "as", "into", "about", "between", "through", "during", "before",
    "after", "above", "below", "and", "but", "or", "nor", "not",
    "so", "yet", "both", "either", "neither", "each", "every",
    "this", "that", "these", "those", "it", "its", "i", "me", "my",
    "we", "our", "you", "your", "he", "him", "his", "she", "her",
    "they", "them", "their", "what", "which", "who", "whom",
    "said", "just",
})

_NGRAM_BIT = 1


def _char_ngrams(word: str, ns: tuple[int, ...] = (3, 4)) -> List[str]:
    """Extract character n-grams from a word, including boundary markers."""
    padded = f"#{word}#"
    grams: List[str] = []
    for n in ns:
        for i in range(len(padded) - n + 1):
            grams.append(padded[i:i + n])
    return grams


def tokenise(text: str) -> tuple[List[str], List[str]]:
    """
    Return ``(words, char_ngrams)`` from *text*.

    Words are unigrams with stopwords removed.  Char n-grams come from
    every word longer than two characters, stopwords included.
    """
    all_words = _WORD_RE.findall(text.lower())
    words = [w for w in all_words if w not in _STOPWORDS and len(w) > 1]
    ngrams: List[str] = []
    for w in all_words:
        if len(w) > 2:
            ngrams.extend(_char_ngrams(w))
    return words, ngrams


def _feature_id(feature: str, is_ngram: bool) -> int:
    digest = hashlib.sha256(feature.encode("utf-8")).digest()
    base = struct.unpack_from(">I", digest, 0)[0] & ~_NGRAM_BIT
    return base | (_NGRAM_BIT if is_ngram else 0)


class HashTokenizer(Tokenizer):
    """Feature-hashing tokenizer; no vocabulary file needed."""

    def encode(self, text: str) -> List[int]:
        if not text or not text.strip():
            return []
        words, ngrams = tokenise(text)
        if not words and not ngrams:
            # Only stopwords / punctuation: keep the raw text as one feature
            words = [text.strip().lower()]
        ids = [_feature_id(w, False) for w in words]
        ids.extend(_feature_id(g, True) for g in ngrams)
        return ids


# ------------------------------------------------------------------
# Hash-based pseudo-random vector generation
# ------------------------------------------------------------------

_CACHE_MAX = 10000


class HashingEmbedder(Embedder):
    """Random-indexing embedder over ``HashTokenizer`` ids."""

    WORD_WEIGHT = 3.0
    NGRAM_WEIGHT = 1.0

    def __init__(self, dim: int = EMBED_DIM):
        if dim <= 0:
            raise ValueError(f"dim must be positive, got {dim}")
        self._dim = dim
        self._cache: Dict[int, List[float]] = {}

    @property
    def dimension(self) -> int:
        return self._dim

    def _feature_vector(self, token_id: int) -> List[float]:
        """Deterministic unit vector for *token_id* using SHA-256 seeding."""
        cached = self._cache.get(token_id)
        if cached is not None:
            return cached

        rounds_needed = math.ceil(self._dim * 4 / 32)  # SHA-256 = 32 bytes
        all_bytes = b""
        seed = str(token_id).encode("ascii")
        for _ in range(rounds_needed):
            seed = hashlib.sha256(seed).digest()
            all_bytes += seed

        raw = [
            struct.unpack_from(">I", all_bytes, i * 4)[0] / 2147483647.5 - 1.0
            for i in range(self._dim)
        ]
        norm = math.sqrt(sum(x * x for x in raw))
        result = [0.0] * self._dim if norm < 1e-10 else [x / norm for x in raw]

        if len(self._cache) >= _CACHE_MAX:
            self._cache.clear()
        self._cache[token_id] = result
        return result

    def embed(self, token_ids: Sequence[int]) -> List[float]:
        if len(token_ids) == 0:
            raise InvalidInput("Tokenizer returned no tokens.")

        vec = [0.0] * self._dim
        for token_id, count in Counter(token_ids).items():
            base = self.NGRAM_WEIGHT if token_id & _NGRAM_BIT else self.WORD_WEIGHT
            weight = base * (1.0 + math.log(count))
            fv = self._feature_vector(token_id)
            for d in range(self._dim):
                vec[d] += weight * fv[d]

        norm = math.sqrt(sum(x * x for x in vec))
        if norm < 1e-10:
            return [0.0] * self._dim
        return [x / norm for x in vec]


# ------------------------------------------------------------------
# Similarity
# ------------------------------------------------------------------

def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    ``dot / (|a| |b|)`` over the shared length; 0.0 when either vector
    has zero magnitude.
    """
    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for av, bv in zip(a, b):
        dot += av * bv
        mag_a += av * av
        mag_b += bv * bv
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (math.sqrt(mag_a) * math.sqrt(mag_b))
