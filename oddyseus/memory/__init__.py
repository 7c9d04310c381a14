"""
In-process long-term memory: scored memory records, affect-weighted
retrieval, time hints, and the short-lived dialogue buffer.
"""

from .embeddings import (
    EMBED_DIM,
    Embedder,
    HashingEmbedder,
    HashTokenizer,
    Tokenizer,
    cosine_similarity,
)
from .memory_store import (
    MemoryEntry,
    MemorySignals,
    MemoryStore,
    RetrievalConfig,
    ScoredMemory,
    affect_score,
    compute_weighted_score,
    retrieve_top_memories,
    time_decay,
)
from .temporal import TimeHint, detect_time_hint
from .dialogue import DialogueConfig, DialogueContextManager, ROLE_SUMMARY
