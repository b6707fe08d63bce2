"""Pipeline orchestrator: search → extract → change check → embed → upsert → persist."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from googleapiclient.discovery import Resource

from digest_indexer.config.settings import DigestIndexerSettings
from digest_indexer.core.auth import authenticate, build_gmail_service, build_sheets_service
from digest_indexer.core.classifier import is_daily_digest
from digest_indexer.core.embedding_client import EmbeddingClient
from digest_indexer.core.exceptions import ConfigurationError, DigestIndexerError
from digest_indexer.core.extractor import ThreadExtractor
from digest_indexer.core.fingerprint import detect_change
from digest_indexer.core.gmail_client import GmailClient, build_search_query
from digest_indexer.core.models import (
    UNKNOWN_PUBLISHER,
    MailThread,
    RunSummary,
    ThreadRecord,
    VectorRecord,
)
from digest_indexer.core.publisher import load_publisher_mapping, resolve_publisher
from digest_indexer.core.vector_client import VectorIndexClient, discover_index_host
from digest_indexer.storage.state_store import INDEX_HOST_KEY, StateStore

logger = logging.getLogger(__name__)

PROCESSED = "processed"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class _RunContext:
    """Everything a single run shares across threads. Discarded when the run ends."""

    publisher_mapping: dict[str, str]
    internal_domains: list[str]
    label_names: dict[str, str]
    fingerprints: dict[str, str]


def _is_internal(address: str, internal_domains: list[str]) -> bool:
    domain = address.rpartition("@")[2]
    return any(domain == d or domain.endswith(f".{d}") for d in internal_domains)


class DigestIndexer:
    """Orchestrates one incremental indexing pass over daily digest threads.

    Each run searches Gmail for digest threads active since the last watermark,
    re-embeds only threads whose text fingerprint changed, upserts them into the
    vector index, and then persists the fingerprint map and the new watermark.
    A failure in one thread never stops the others; a failed thread keeps its
    old fingerprint so the next run retries it.
    """

    def __init__(
        self,
        settings: DigestIndexerSettings | None = None,
        on_progress: Callable[[RunSummary], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or DigestIndexerSettings()
        self._on_progress = on_progress
        self._clock = clock
        self._summary = RunSummary()
        self._extractor = ThreadExtractor()

        # Components initialized lazily
        self._gmail: GmailClient | None = None
        self._sheets: Resource | None = None
        self._store: StateStore | None = None
        self._embedder: EmbeddingClient | None = None
        self._vectors: VectorIndexClient | None = None

    @property
    def on_progress(self) -> Callable[[RunSummary], None] | None:
        return self._on_progress

    @on_progress.setter
    def on_progress(self, callback: Callable[[RunSummary], None] | None) -> None:
        self._on_progress = callback

    # ---------- initialization ----------

    def _ensure_store(self) -> StateStore:
        if self._store is None:
            self._settings.ensure_directories()
            self._store = StateStore(self._settings.state_path)
            self._store.connect()
        return self._store

    def _ensure_mail(self) -> tuple[GmailClient, Resource]:
        if self._gmail is None or self._sheets is None:
            creds = authenticate(self._settings.credentials_path, self._settings.token_path)
            if self._gmail is None:
                self._gmail = GmailClient(
                    build_gmail_service(creds),
                    max_retries=self._settings.max_retries,
                    initial_backoff_seconds=self._settings.initial_backoff_seconds,
                    max_backoff_seconds=self._settings.max_backoff_seconds,
                    inter_page_delay_seconds=self._settings.inter_page_delay_seconds,
                    num_retries=self._settings.num_retries,
                )
            if self._sheets is None:
                self._sheets = build_sheets_service(creds)
        return self._gmail, self._sheets

    def _ensure_index(self, store: StateStore) -> tuple[EmbeddingClient, VectorIndexClient]:
        """Build the embedding and vector clients, resolving the index host.

        Raises:
            IndexDiscoveryError: If no host is configured or cached and discovery fails.
        """
        s = self._settings
        if self._embedder is None:
            self._embedder = EmbeddingClient(
                s.openai_api_key,
                endpoint=s.embedding_endpoint,
                model=s.embedding_model,
                max_chars=s.max_embedding_chars,
                timeout_seconds=s.request_timeout_seconds,
            )
        if self._vectors is None:
            host = s.pinecone_index_host or store.get_property(INDEX_HOST_KEY) or ""
            if not host:
                host = discover_index_host(
                    s.pinecone_api_key,
                    s.pinecone_environment,
                    s.pinecone_index_name,
                    timeout_seconds=s.request_timeout_seconds,
                )
                store.set_property(INDEX_HOST_KEY, host)
                logger.info("Cached index host %s", host)
            self._vectors = VectorIndexClient(
                s.pinecone_api_key,
                host,
                metadata_max_chars=s.metadata_text_max_chars,
                timeout_seconds=s.request_timeout_seconds,
            )
        return self._embedder, self._vectors

    # ---------- entry points ----------

    def validate_config(self) -> bool:
        """Check that every required setting is present. Performs no I/O."""
        missing = self._settings.missing_required()
        for name in missing:
            logger.error("Missing required setting: DIGEST_%s", name.upper())
        if not missing:
            logger.info("Configuration OK")
        return not missing

    def run(self) -> RunSummary:
        """Run one incremental indexing pass.

        Returns:
            RunSummary with final counts.

        Raises:
            ConfigurationError: If required settings are missing (nothing is written).
            IndexDiscoveryError: If the index host cannot be resolved.
            DigestIndexerError: If the Gmail search itself fails (state is not persisted).
        """
        missing = self._settings.missing_required()
        if missing:
            raise ConfigurationError(
                "Missing required settings: " + ", ".join(f"DIGEST_{m.upper()}" for m in missing)
            )

        store = self._ensure_store()
        gmail, sheets = self._ensure_mail()
        embedder, vectors = self._ensure_index(store)

        watermark = store.load_watermark()
        ctx = _RunContext(
            publisher_mapping=self._load_publisher_mapping(sheets),
            internal_domains=self._settings.internal_domain_list,
            label_names={},
            fingerprints=store.load_fingerprints(),
        )

        run_started = int(self._clock())
        query = build_search_query(self._settings.subject_prefix, watermark)
        run_id = store.start_run(query)
        self._summary = RunSummary(current_stage="search", watermark=watermark)
        self._notify()
        logger.info("Searching: %s", query)

        status = "completed"
        try:
            thread_ids = list(
                gmail.search_thread_ids(query, self._settings.max_results_per_page)
            )
            ctx.label_names = self._load_label_names(gmail)
            self._summary.total = len(thread_ids)
            self._summary.current_stage = "process"
            self._notify()

            for thread_id in thread_ids:
                try:
                    outcome = self._process_thread(thread_id, gmail, embedder, vectors, ctx)
                except Exception as e:
                    logger.error("Failed to process thread %s: %s", thread_id, e)
                    outcome = FAILED

                if outcome == PROCESSED:
                    self._summary.processed += 1
                elif outcome == SKIPPED:
                    self._summary.skipped += 1
                else:
                    self._summary.errors += 1
                self._notify()

            self._summary.current_stage = "persist"
            self._notify()
            self._persist(store, ctx.fingerprints, run_started)

            self._summary.current_stage = "complete"
            self._notify()
        except Exception as e:
            status = "failed"
            self._summary.current_stage = f"error: {e}"
            self._notify()
            raise
        finally:
            store.complete_run(
                run_id,
                threads_total=self._summary.total,
                threads_processed=self._summary.processed,
                threads_skipped=self._summary.skipped,
                threads_failed=self._summary.errors,
                status=status,
            )

        logger.info(
            "Run complete: %d processed, %d skipped, %d errors, %d total",
            self._summary.processed, self._summary.skipped,
            self._summary.errors, self._summary.total,
        )
        return self._summary

    def preview_latest(self) -> dict[str, Any] | None:
        """Extract, classify and fingerprint the most recent matching thread.

        Writes no state and makes no embedding, upsert or discovery calls.

        Returns:
            A dict describing the thread, or None if no thread matches.
        """
        store = self._ensure_store()
        gmail, sheets = self._ensure_mail()

        query = build_search_query(self._settings.subject_prefix)
        thread_ids = list(gmail.search_thread_ids(query, 1, limit=1))
        if not thread_ids:
            logger.info("No thread matches %s", query)
            return None

        thread = gmail.get_thread(thread_ids[0], gmail.label_name_map())
        record, issue_count = self._build_record(thread, self._load_publisher_mapping(sheets))
        stored = store.load_fingerprints().get(record.thread_id)
        decision = detect_change(record.full_text, stored)

        return {
            "thread_id": record.thread_id,
            "subject": record.subject,
            "participants": sorted(record.participant_emails),
            "last_message_date": record.last_message_date,
            "publisher_id": record.publisher_id,
            "labels": list(record.gmail_labels),
            "is_daily_digest": is_daily_digest(
                record, self._settings.target_sender, self._settings.subject_prefix
            ),
            "fingerprint": decision.fingerprint,
            "stored_fingerprint": stored,
            "would_process": decision.should_process,
            "extraction_issues": issue_count,
            "text_preview": record.full_text[:500],
        }

    def get_status(self) -> dict[str, Any]:
        """Current watermark, tracked thread count and recent runs."""
        store = self._ensure_store()
        return {
            "watermark": store.load_watermark(),
            "tracked_threads": len(store.load_fingerprints()),
            "index_host": self._settings.pinecone_index_host
            or store.get_property(INDEX_HOST_KEY, ""),
            "recent_runs": store.recent_runs(5),
        }

    def reset_state(self) -> None:
        """Clear the watermark and fingerprints so the next run re-indexes everything."""
        self._ensure_store().reset_run_state()
        logger.info("Run state reset")

    def close(self) -> None:
        """Clean up resources."""
        if self._store:
            self._store.close()
        if self._embedder:
            self._embedder.close()
        if self._vectors:
            self._vectors.close()

    # ---------- per-thread work ----------

    def _process_thread(
        self,
        thread_id: str,
        gmail: GmailClient,
        embedder: EmbeddingClient,
        vectors: VectorIndexClient,
        ctx: _RunContext,
    ) -> str:
        thread = gmail.get_thread(thread_id, ctx.label_names)
        record, _ = self._build_record(thread, ctx.publisher_mapping)

        decision = detect_change(record.full_text, ctx.fingerprints.get(thread_id))
        if not decision.should_process:
            logger.debug("Thread %s unchanged, skipping", thread_id)
            return SKIPPED

        embedding = embedder.embed(record.full_text)
        if not embedding.ok:
            logger.warning(
                "No embedding for thread %s (%s: %s)",
                thread_id, embedding.reason, embedding.detail,
            )
            return FAILED

        vector = VectorRecord(
            id=thread_id,
            values=embedding.vector,
            metadata=self._build_metadata(record, decision.fingerprint, ctx.internal_domains),
        )
        result = vectors.upsert([vector])
        if not result.ok:
            logger.warning(
                "Upsert failed for thread %s (%s: %s)", thread_id, result.reason, result.detail
            )
            return FAILED

        ctx.fingerprints[thread_id] = decision.fingerprint
        logger.info("Indexed thread %s (%s)", thread_id, record.subject)
        return PROCESSED

    def _build_record(
        self, thread: MailThread, publisher_mapping: dict[str, str]
    ) -> tuple[ThreadRecord, int]:
        extraction = self._extractor.extract(thread.thread_id, thread.messages)
        if extraction.issues:
            logger.warning(
                "Thread %s extracted with %d field errors", thread.thread_id, len(extraction.issues)
            )

        record = extraction.record
        publisher_id = resolve_publisher(thread.labels, publisher_mapping)
        if publisher_id != UNKNOWN_PUBLISHER:
            record = replace(record, publisher_id=publisher_id)
        record = replace(record, gmail_labels=tuple(thread.labels))
        return record, len(extraction.issues)

    def _build_metadata(
        self, record: ThreadRecord, fingerprint: str, internal_domains: list[str]
    ) -> dict[str, Any]:
        participants = sorted(record.participant_emails)
        external = [p for p in participants if not _is_internal(p, internal_domains)]
        return {
            "publisher_id": record.publisher_id,
            "subject": record.subject,
            "last_message_date": record.last_message_date,
            "participants": ", ".join(participants),
            "external_participants": ", ".join(external),
            "fingerprint": fingerprint,
            "is_daily_digest": is_daily_digest(
                record, self._settings.target_sender, self._settings.subject_prefix
            ),
            "labels": ", ".join(record.gmail_labels),
            "text": record.full_text[: self._settings.metadata_text_max_chars],
        }

    # ---------- auxiliary state ----------

    def _load_publisher_mapping(self, sheets: Resource) -> dict[str, str]:
        if not self._settings.publisher_sheet_id:
            logger.info(
                "No publisher sheet configured; publisher ids default to %s", UNKNOWN_PUBLISHER
            )
            return {}
        try:
            return load_publisher_mapping(
                sheets,
                self._settings.publisher_sheet_id,
                self._settings.publisher_sheet_name,
                num_retries=self._settings.num_retries,
            )
        except DigestIndexerError as e:
            logger.warning("Publisher lookup unavailable, using empty mapping: %s", e)
            return {}

    def _load_label_names(self, gmail: GmailClient) -> dict[str, str]:
        try:
            return gmail.label_name_map()
        except DigestIndexerError as e:
            logger.warning("Label names unavailable, using label ids: %s", e)
            return {}

    def _persist(self, store: StateStore, fingerprints: dict[str, str], watermark: int) -> None:
        try:
            store.save_run_state(fingerprints, watermark)
            logger.info("Saved %d fingerprints, watermark=%d", len(fingerprints), watermark)
        except Exception as e:
            logger.error("Failed to persist run state: %s", e)

    def _notify(self) -> None:
        """Send progress update to callback if registered."""
        if self._on_progress:
            self._on_progress(self._summary)
