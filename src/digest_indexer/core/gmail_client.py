"""Gmail API client for label listing, thread search and thread fetch."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Generator
from typing import Any

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError

from digest_indexer.core.exceptions import DigestIndexerError, RateLimitError
from digest_indexer.core.message import GmailMessage
from digest_indexer.core.models import MailThread

logger = logging.getLogger(__name__)


def _is_rate_limit_error(exc: Exception) -> bool:
    """Check whether an exception represents a Gmail API 429 rate limit."""
    if isinstance(exc, HttpError) and exc.status_code == 429:
        return True
    error_str = str(exc)
    return "429" in error_str or "rateLimitExceeded" in error_str


def build_search_query(subject_prefix: str, after_epoch: int = 0) -> str:
    """Gmail search for threads whose subject matches the prefix, active at/after a time."""
    escaped = subject_prefix.replace('"', '\\"')
    query = f'subject:"{escaped}"'
    if after_epoch > 0:
        query += f" after:{after_epoch}"
    return query


class GmailClient:
    """Thin wrapper around Gmail API for label listing, thread search and fetch."""

    def __init__(
        self,
        service: Resource,
        user_id: str = "me",
        *,
        max_retries: int = 5,
        initial_backoff_seconds: float = 1.0,
        max_backoff_seconds: float = 60.0,
        inter_page_delay_seconds: float = 0.2,
        num_retries: int = 3,
    ) -> None:
        self._service = service
        self._user_id = user_id
        self._max_retries = max_retries
        self._initial_backoff = initial_backoff_seconds
        self._max_backoff = max_backoff_seconds
        self._inter_page_delay = inter_page_delay_seconds
        self._num_retries = num_retries

    def _execute_with_retry(self, request: Any, context: str) -> Any:
        """Execute a single API request with exponential backoff on 429 errors.

        Args:
            request: A googleapiclient HttpRequest object.
            context: Description for log messages (e.g. "list labels").

        Returns:
            The API response dict.

        Raises:
            RateLimitError: When retries are exhausted on 429 errors.
            DigestIndexerError: On non-rate-limit API errors.
        """
        backoff = self._initial_backoff

        for attempt in range(self._max_retries + 1):
            try:
                return request.execute(num_retries=self._num_retries)
            except Exception as e:
                if _is_rate_limit_error(e):
                    if attempt >= self._max_retries:
                        raise RateLimitError(
                            f"Rate limited during {context} after "
                            f"{self._max_retries} retries: {e}"
                        ) from e
                    sleep_time = min(backoff, self._max_backoff)
                    jitter = random.uniform(0, sleep_time)
                    logger.warning(
                        "Rate limited during %s (attempt %d/%d), sleeping %.2fs",
                        context, attempt + 1, self._max_retries, jitter,
                    )
                    time.sleep(jitter)
                    backoff = min(backoff * 2, self._max_backoff)
                else:
                    raise DigestIndexerError(f"Failed to {context}: {e}") from e

        raise RateLimitError(f"Rate limited during {context} after {self._max_retries} retries")

    def list_labels(self) -> list[dict[str, str]]:
        """List all Gmail labels.

        Returns:
            List of dicts with 'id' and 'name' keys.
        """
        request = self._service.users().labels().list(userId=self._user_id)
        results = self._execute_with_retry(request, "list labels")
        labels = results.get("labels", [])
        return [{"id": lbl["id"], "name": lbl["name"]} for lbl in labels]

    def search_thread_ids(
        self,
        query: str,
        max_results_per_page: int = 100,
        *,
        limit: int | None = None,
    ) -> Generator[str, None, None]:
        """Paginate through thread IDs matching a Gmail search query, newest first.

        Args:
            query: Gmail search query.
            max_results_per_page: Threads per API page (1-500).
            limit: Stop after this many IDs. None means unlimited.
        """
        page_token: str | None = None
        first_page = True
        yielded = 0

        while True:
            if not first_page and self._inter_page_delay > 0:
                time.sleep(self._inter_page_delay)
            first_page = False

            page_size = max_results_per_page
            if limit is not None:
                page_size = min(page_size, limit - yielded)

            kwargs: dict[str, Any] = {
                "userId": self._user_id,
                "q": query,
                "maxResults": page_size,
            }
            if page_token:
                kwargs["pageToken"] = page_token

            request = self._service.users().threads().list(**kwargs)
            response = self._execute_with_retry(request, "search threads")

            threads = response.get("threads", [])
            if not threads:
                return

            logger.debug("Found %d thread IDs (page)", len(threads))
            for thread in threads:
                yield thread["id"]
                yielded += 1
                if limit is not None and yielded >= limit:
                    return

            page_token = response.get("nextPageToken")
            if not page_token:
                return

    def get_thread(self, thread_id: str, label_names: dict[str, str] | None = None) -> MailThread:
        """Fetch one thread with full message payloads.

        Args:
            thread_id: Gmail thread ID.
            label_names: Label ID → name lookup; unknown IDs are kept as-is.

        Returns:
            MailThread whose labels are the union of its messages' labels,
            in order of first appearance.
        """
        request = (
            self._service.users()
            .threads()
            .get(userId=self._user_id, id=thread_id, format="full")
        )
        response = self._execute_with_retry(request, f"fetch thread {thread_id}")

        names = label_names or {}
        messages: list[GmailMessage] = []
        labels: list[str] = []
        for raw in response.get("messages", []):
            message = GmailMessage(raw)
            messages.append(message)
            for label_id in message.label_ids:
                name = names.get(label_id, label_id)
                if name not in labels:
                    labels.append(name)

        return MailThread(thread_id=thread_id, messages=tuple(messages), labels=tuple(labels))

    def label_name_map(self) -> dict[str, str]:
        """Label ID → display name for every label in the mailbox."""
        return {lbl["id"]: lbl["name"] for lbl in self.list_labels()}
