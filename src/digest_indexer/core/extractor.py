"""Thread extraction: fold a conversation's messages into one ThreadRecord."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from digest_indexer.core.message import GmailMessage
from digest_indexer.core.models import Extraction, ExtractionIssue, ThreadRecord

logger = logging.getLogger(__name__)

ADDRESS_HEADERS = ("From", "To", "Cc", "Bcc")

# One pass: "<user@domain>" (group 1) or a bare user@domain (group 2).
_ADDRESS_RE = re.compile(
    r"<\s*([^<>\s@]+@[^<>\s@]+\.[^<>\s@]+)\s*>"
    r"|([A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,})"
)


def extract_addresses(value: str) -> list[str]:
    """Find every email address in a header value, lowercased, in order of appearance.

    Handles ``Name <user@domain>`` and bare ``user@domain`` forms, mixed freely
    within one string. Duplicates within the string are returned once.
    """
    if not value:
        return []

    found: list[str] = []
    for match in _ADDRESS_RE.finditer(value):
        address = (match.group(1) or match.group(2)).lower()
        if address not in found:
            found.append(address)
    return found


@dataclass
class _Accumulator:
    texts: list[str] = field(default_factory=list)
    participants: set[str] = field(default_factory=set)
    issues: list[ExtractionIssue] = field(default_factory=list)


class ThreadExtractor:
    """Builds a fully-populated ThreadRecord from a thread's messages.

    Each field read is isolated: a failure is logged and recorded as an
    ExtractionIssue, and extraction carries on with whatever was accumulated.
    """

    def extract(self, thread_id: str, messages: Sequence[GmailMessage]) -> Extraction:
        if not messages:
            return Extraction(record=ThreadRecord(thread_id=thread_id))

        acc = _Accumulator()

        subject = self._read(acc, thread_id, 0, "subject", messages[0].get_subject) or ""
        last_index = len(messages) - 1
        last_date = self._read(acc, thread_id, last_index, "date", messages[-1].get_date) or 0

        for index, message in enumerate(messages):
            body = self._read(acc, thread_id, index, "body", message.get_plain_body)
            if body:
                acc.texts.append(body)

            sources: list[tuple[str, Callable[[], str]]] = [
                (name, lambda m=message, n=name: m.get_header(n)) for name in ADDRESS_HEADERS
            ]
            sources.append(("sender", message.get_from))
            sources.append(("recipient", message.get_to))

            for field_name, reader in sources:
                value = self._read(acc, thread_id, index, field_name, reader)
                if value:
                    acc.participants.update(extract_addresses(value))

        record = ThreadRecord(
            thread_id=thread_id,
            subject=subject,
            full_text="\n\n".join(acc.texts).strip(),
            participant_emails=frozenset(acc.participants),
            last_message_date=int(last_date),
        )
        return Extraction(record=record, issues=tuple(acc.issues))

    @staticmethod
    def _read(
        acc: _Accumulator,
        thread_id: str,
        message_index: int,
        field_name: str,
        reader: Callable[[], str | int],
    ) -> str | int | None:
        try:
            return reader()
        except Exception as e:
            logger.warning(
                "Thread %s message %d: failed to read %s: %s",
                thread_id, message_index, field_name, e,
            )
            acc.issues.append(
                ExtractionIssue(
                    thread_id=thread_id,
                    message_index=message_index,
                    field=field_name,
                    error=str(e),
                )
            )
            return None
