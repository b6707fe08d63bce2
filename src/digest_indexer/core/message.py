"""Read-only accessors over a raw Gmail API message dict (format=full)."""

from __future__ import annotations

import base64
import logging
from email.utils import parsedate_to_datetime
from typing import Any

import trafilatura

from digest_indexer.core.exceptions import ParseError

logger = logging.getLogger(__name__)


class GmailMessage:
    """Wraps one raw Gmail message and exposes the fields the extractor reads.

    Accessors decode lazily and may raise ``ParseError`` on a malformed payload,
    so callers can isolate a failure to the single field being read.
    """

    def __init__(self, raw_message: dict[str, Any]) -> None:
        self._raw = raw_message

    @property
    def message_id(self) -> str:
        return self._raw.get("id", "")

    @property
    def label_ids(self) -> tuple[str, ...]:
        return tuple(self._raw.get("labelIds", []))

    def get_header(self, name: str) -> str:
        """Return a header value (case-insensitive); repeated headers are comma-joined."""
        wanted = name.lower()
        try:
            headers = self._raw.get("payload", {}).get("headers", [])
            values = [h.get("value", "") for h in headers if h.get("name", "").lower() == wanted]
        except AttributeError as e:
            raise ParseError(f"Malformed headers in message {self.message_id}: {e}") from e
        return ", ".join(v for v in values if v)

    def get_subject(self) -> str:
        return self.get_header("Subject")

    def get_from(self) -> str:
        return self.get_header("From")

    def get_to(self) -> str:
        return self.get_header("To")

    def get_date(self) -> int:
        """Message timestamp in epoch seconds.

        Uses Gmail's ``internalDate`` (milliseconds) and falls back to the Date
        header. Returns 0 when neither is usable.
        """
        internal = self._raw.get("internalDate")
        if internal:
            try:
                return int(internal) // 1000
            except (TypeError, ValueError):
                logger.warning("Bad internalDate %r on message %s", internal, self.message_id)

        date_str = self.get_header("Date")
        if not date_str:
            return 0
        try:
            return int(parsedate_to_datetime(date_str).timestamp())
        except (TypeError, ValueError):
            logger.warning("Failed to parse date: %s", date_str)
            return 0

    def get_plain_body(self) -> str:
        """Plain-text body of the message.

        Strategy:
        1. First text/plain part in the MIME tree (attachments skipped).
        2. Otherwise the text/html part reduced to text via trafilatura.
        3. Otherwise the Gmail snippet.
        """
        payload = self._raw.get("payload", {})
        try:
            plain_text, html = self._walk_parts(payload)
            if plain_text is None and html is None:
                body_data = payload.get("body", {}).get("data")
                if body_data:
                    decoded = self._decode_body(body_data)
                    if "html" in payload.get("mimeType", ""):
                        html = decoded
                    else:
                        plain_text = decoded
        except ParseError:
            raise
        except Exception as e:
            raise ParseError(f"Failed to read body of message {self.message_id}: {e}") from e

        if plain_text is not None:
            return plain_text
        if html:
            text = self._html_to_text(html)
            if text:
                return text
        return self._raw.get("snippet", "")

    def _walk_parts(self, part: dict[str, Any]) -> tuple[str | None, str | None]:
        """Recursively walk MIME parts to find text/plain and text/html."""
        plain_text: str | None = None
        html: str | None = None
        mime_type = part.get("mimeType", "")

        if mime_type == "text/plain":
            data = part.get("body", {}).get("data")
            if data:
                plain_text = self._decode_body(data)
        elif mime_type == "text/html":
            data = part.get("body", {}).get("data")
            if data:
                html = self._decode_body(data)
        elif mime_type.startswith("multipart/"):
            for sub_part in part.get("parts", []):
                if sub_part.get("filename"):
                    continue

                sub_plain, sub_html = self._walk_parts(sub_part)
                if sub_plain and not plain_text:
                    plain_text = sub_plain
                if sub_html and not html:
                    html = sub_html

        return plain_text, html

    @staticmethod
    def _decode_body(data: str) -> str:
        """Decode base64url-encoded body data (RFC 4648 §5)."""
        padded = data + "=" * (4 - len(data) % 4) if len(data) % 4 else data
        try:
            return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
        except ValueError as e:
            raise ParseError(f"Invalid base64 body data: {e}") from e

    @staticmethod
    def _html_to_text(html: str) -> str | None:
        try:
            return trafilatura.extract(
                html,
                output_format="txt",
                favor_recall=True,
                include_links=True,
                include_tables=True,
            )
        except Exception as e:
            logger.warning("Trafilatura extraction failed: %s", e)
            return None
