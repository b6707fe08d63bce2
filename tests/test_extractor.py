"""Tests for ThreadExtractor and address extraction."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

import pytest

from digest_indexer.core.exceptions import ParseError
from digest_indexer.core.extractor import ThreadExtractor, extract_addresses
from digest_indexer.core.message import GmailMessage
from digest_indexer.core.models import ThreadRecord


@pytest.fixture
def extractor() -> ThreadExtractor:
    return ThreadExtractor()


class TestExtractAddresses:
    """extract_addresses() finds bracketed and bare addresses in one pass."""

    def test_bracketed(self) -> None:
        assert extract_addresses("Logan Lorenz <Logan.Lorenz@OfflineStudio.com>") == [
            "logan.lorenz@offlinestudio.com"
        ]

    def test_bare(self) -> None:
        assert extract_addresses("someone@example.com") == ["someone@example.com"]

    def test_bracketed_and_bare_in_one_string(self) -> None:
        value = "Alice <Alice@Example.com>, bob@example.org"
        assert extract_addresses(value) == ["alice@example.com", "bob@example.org"]

    def test_multiple_bracketed(self) -> None:
        value = '"Doe, Jane" <jane@a.com>, John <john@b.com>'
        assert extract_addresses(value) == ["jane@a.com", "john@b.com"]

    def test_duplicates_returned_once(self) -> None:
        value = "x@example.com <X@example.com>"
        assert extract_addresses(value) == ["x@example.com"]

    def test_empty_and_no_addresses(self) -> None:
        assert extract_addresses("") == []
        assert extract_addresses("undisclosed-recipients:;") == []


class TestEmptyThread:
    """An empty message list yields a fully-populated default record."""

    def test_defaults(self, extractor: ThreadExtractor) -> None:
        extraction = extractor.extract("t_empty", [])
        record = extraction.record

        assert record == ThreadRecord(thread_id="t_empty")
        assert record.subject == ""
        assert record.full_text == ""
        assert record.participant_emails == frozenset()
        assert record.last_message_date == 0
        assert record.publisher_id == "unknown"
        assert record.gmail_labels == ()
        assert extraction.issues == ()


class TestThreadExtraction:
    """Subject from the first message, date from the last, bodies joined in order."""

    def test_multi_message_thread(self, extractor: ThreadExtractor, message_factory: Any) -> None:
        messages = [
            GmailMessage(message_factory("m1", subject="Mula Daily Digest - Oct 1",
                                         body="  First body ", internal_date_ms=1_000_000)),
            GmailMessage(message_factory("m2", subject="Re: Mula Daily Digest - Oct 1",
                                         sender="Bob <bob@partner.com>",
                                         cc="carol@partner.com, Dan <DAN@partner.com>",
                                         body="Second body\n", internal_date_ms=2_000_000)),
        ]

        extraction = extractor.extract("t1", messages)
        record = extraction.record

        assert record.thread_id == "t1"
        assert record.subject == "Mula Daily Digest - Oct 1"
        assert record.last_message_date == 2_000
        assert record.full_text == "First body \n\nSecond body"
        assert record.participant_emails == frozenset({
            "logan.lorenz@offlinestudio.com",
            "team@offlinestudio.com",
            "bob@partner.com",
            "carol@partner.com",
            "dan@partner.com",
        })
        assert extraction.issues == ()

    def test_bcc_is_scanned(self, extractor: ThreadExtractor, message_factory: Any) -> None:
        raw = message_factory(bcc="hidden@example.com")
        record = extractor.extract("t1", [GmailMessage(raw)]).record
        assert "hidden@example.com" in record.participant_emails

    def test_last_message_date_uses_given_order(
        self, extractor: ThreadExtractor, message_factory: Any
    ) -> None:
        messages = [
            GmailMessage(message_factory("m1", internal_date_ms=9_000_000)),
            GmailMessage(message_factory("m2", internal_date_ms=1_000_000)),
        ]
        assert extractor.extract("t1", messages).record.last_message_date == 1_000


class TestPartialFailures:
    """A failing field or message never aborts extraction."""

    def test_body_failure_keeps_other_messages(
        self, extractor: ThreadExtractor, message_factory: Any
    ) -> None:
        broken = MagicMock(spec=GmailMessage)
        broken.get_subject.return_value = "Mula Daily Digest - Oct 2"
        broken.get_plain_body.side_effect = ParseError("bad base64")
        broken.get_header.return_value = ""
        broken.get_from.return_value = "broken@example.com"
        broken.get_to.return_value = ""
        broken.get_date.return_value = 0

        messages = [
            GmailMessage(message_factory("m1", body="Before")),
            broken,
            GmailMessage(message_factory("m3", body="After", internal_date_ms=5_000_000)),
        ]

        extraction = extractor.extract("t_partial", messages)

        assert extraction.record.full_text == "Before\n\nAfter"
        assert "broken@example.com" in extraction.record.participant_emails
        assert extraction.record.last_message_date == 5_000
        assert len(extraction.issues) == 1
        issue = extraction.issues[0]
        assert issue.thread_id == "t_partial"
        assert issue.message_index == 1
        assert issue.field == "body"
        assert "bad base64" in issue.error

    def test_header_failure_is_isolated(self, extractor: ThreadExtractor) -> None:
        msg = MagicMock(spec=GmailMessage)
        msg.get_subject.side_effect = ParseError("no headers")
        msg.get_plain_body.return_value = "Body"
        msg.get_header.side_effect = lambda name: (
            "cc@example.com" if name == "Cc" else _raise(ParseError(f"bad {name}"))
        )
        msg.get_from.return_value = "Sender <s@example.com>"
        msg.get_to.side_effect = ParseError("bad to")
        msg.get_date.side_effect = ValueError("bad date")

        extraction = extractor.extract("t_headers", [msg])
        record = extraction.record

        assert record.subject == ""
        assert record.last_message_date == 0
        assert record.full_text == "Body"
        assert record.participant_emails == frozenset({"cc@example.com", "s@example.com"})
        fields = {issue.field for issue in extraction.issues}
        assert fields == {"subject", "date", "From", "To", "Bcc", "recipient"}


def _raise(exc: Exception) -> str:
    raise exc
