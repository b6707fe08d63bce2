"""Shared fixtures for Digest Indexer tests."""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any

import pytest

from digest_indexer.config.settings import DigestIndexerSettings
from digest_indexer.core.message import GmailMessage
from digest_indexer.core.models import MailThread


def encode_body(text: str) -> str:
    """Base64url-encode a body the way the Gmail API does (padding stripped)."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def make_raw_message(
    message_id: str = "msg_1",
    *,
    subject: str = "Mula Daily Digest - Oct 1",
    sender: str = "Logan Lorenz <logan.lorenz@offlinestudio.com>",
    to: str = "team@offlinestudio.com",
    cc: str = "",
    bcc: str = "",
    body: str | None = "Hello world",
    html: str | None = None,
    internal_date_ms: int | None = 1_696_150_800_000,
    label_ids: tuple[str, ...] = ("INBOX",),
) -> dict[str, Any]:
    """Build a raw Gmail API message dict (format=full)."""
    headers = [{"name": "Subject", "value": subject}, {"name": "From", "value": sender}]
    if to:
        headers.append({"name": "To", "value": to})
    if cc:
        headers.append({"name": "Cc", "value": cc})
    if bcc:
        headers.append({"name": "Bcc", "value": bcc})

    parts = []
    if body is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": encode_body(body)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": encode_body(html)}})

    raw: dict[str, Any] = {
        "id": message_id,
        "threadId": "thread_1",
        "labelIds": list(label_ids),
        "snippet": (body or "")[:100],
        "payload": {"mimeType": "multipart/alternative", "headers": headers, "parts": parts},
    }
    if internal_date_ms is not None:
        raw["internalDate"] = str(internal_date_ms)
    return raw


def make_thread(
    thread_id: str = "thread_1",
    bodies: tuple[str, ...] = ("Hello world",),
    labels: tuple[str, ...] = (),
    subject: str = "Mula Daily Digest - Oct 1",
) -> MailThread:
    """Build a MailThread with one message per body."""
    messages = tuple(
        GmailMessage(
            make_raw_message(
                f"{thread_id}_msg_{i}",
                subject=subject,
                body=body,
                internal_date_ms=1_696_150_800_000 + i * 60_000,
            )
        )
        for i, body in enumerate(bodies)
    )
    return MailThread(thread_id=thread_id, messages=messages, labels=labels)


@pytest.fixture
def raw_message() -> dict[str, Any]:
    """A simple raw digest message."""
    return make_raw_message()


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Temporary database path for tests."""
    return tmp_path / "test.db"


@pytest.fixture
def tmp_settings(tmp_path: Path) -> DigestIndexerSettings:
    """Complete settings pointing to temporary paths."""
    return DigestIndexerSettings(
        _env_file=None,
        credentials_path=tmp_path / "creds" / "client_secret.json",
        token_path=tmp_path / "creds" / "token.json",
        state_path=tmp_path / "data" / "state.db",
        openai_api_key="sk-test",
        pinecone_api_key="pc-test",
        pinecone_environment="us-east-1-aws",
        pinecone_index_name="digests",
        pinecone_index_host="https://digests-abc.svc.pinecone.io",
        publisher_sheet_id="sheet_123",
        internal_domains="offlinestudio.com",
    )


@pytest.fixture
def message_factory() -> Any:
    """Builder for raw Gmail message dicts."""
    return make_raw_message


@pytest.fixture
def thread_factory() -> Any:
    """Builder for MailThread objects."""
    return make_thread
