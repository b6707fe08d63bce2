"""Digest Indexer - Incrementally embed Gmail daily digest threads into a vector index."""

from digest_indexer.core.models import (
    ChangeDecision,
    EmbeddingResult,
    Extraction,
    MailThread,
    RunSummary,
    ThreadRecord,
    UpsertResult,
    VectorRecord,
)
from digest_indexer.pipeline.indexer import DigestIndexer

__all__ = [
    "ChangeDecision",
    "DigestIndexer",
    "EmbeddingResult",
    "Extraction",
    "MailThread",
    "RunSummary",
    "ThreadRecord",
    "UpsertResult",
    "VectorRecord",
]
