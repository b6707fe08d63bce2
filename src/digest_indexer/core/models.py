"""Frozen dataclasses for the Digest Indexer domain model."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from digest_indexer.core.message import GmailMessage

UNKNOWN_PUBLISHER = "unknown"


@dataclass(frozen=True)
class MailThread:
    """A conversation returned by the mail search, with its messages in thread order."""

    thread_id: str
    messages: tuple[GmailMessage, ...] = field(default_factory=tuple)
    labels: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ThreadRecord:
    """Normalized view of one conversation. Every field always has a value."""

    thread_id: str = ""
    subject: str = ""
    full_text: str = ""
    participant_emails: frozenset[str] = field(default_factory=frozenset)
    last_message_date: int = 0
    publisher_id: str = UNKNOWN_PUBLISHER
    gmail_labels: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ExtractionIssue:
    """A single field that could not be read while extracting a thread."""

    thread_id: str
    message_index: int
    field: str
    error: str


@dataclass(frozen=True)
class Extraction:
    """A thread record plus the issues recorded while building it."""

    record: ThreadRecord
    issues: tuple[ExtractionIssue, ...] = field(default_factory=tuple)


class ChangeAction(StrEnum):
    PROCESS = "process"
    SKIP = "skip"


@dataclass(frozen=True)
class ChangeDecision:
    """Outcome of comparing a thread's fingerprint with the stored one."""

    action: ChangeAction
    fingerprint: str

    @property
    def should_process(self) -> bool:
        return self.action is ChangeAction.PROCESS


class FailureReason(StrEnum):
    """Why an embedding or upsert call produced no result."""

    EMPTY_INPUT = "empty_input"
    MISSING_CREDENTIAL = "missing_credential"
    MISSING_DESTINATION = "missing_destination"
    HTTP_ERROR = "http_error"
    MALFORMED_RESPONSE = "malformed_response"
    NETWORK_ERROR = "network_error"


@dataclass(frozen=True)
class EmbeddingResult:
    """Embedding vector, or the reason none is available."""

    vector: tuple[float, ...] | None = None
    reason: FailureReason | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.vector is not None

    @classmethod
    def success(cls, vector: list[float]) -> EmbeddingResult:
        return cls(vector=tuple(vector))

    @classmethod
    def failure(cls, reason: FailureReason, detail: str = "") -> EmbeddingResult:
        return cls(reason=reason, detail=detail)


@dataclass(frozen=True)
class UpsertResult:
    """Number of vectors the index accepted, or the reason the upsert failed."""

    upserted_count: int = 0
    reason: FailureReason | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, upserted_count: int) -> UpsertResult:
        return cls(upserted_count=upserted_count)

    @classmethod
    def failure(cls, reason: FailureReason, detail: str = "") -> UpsertResult:
        return cls(reason=reason, detail=detail)


@dataclass(frozen=True)
class VectorRecord:
    """One (id, vector, metadata) entry for the vector index."""

    id: str
    values: tuple[float, ...]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RunSummary:
    """Mutable counters for one indexing run."""

    total: int = 0
    processed: int = 0
    skipped: int = 0
    errors: int = 0
    current_stage: str = "idle"
    watermark: int = 0
