"""Label-to-publisher resolution backed by a Google Sheets lookup table."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from googleapiclient.discovery import Resource

from digest_indexer.core.exceptions import PublisherLookupError
from digest_indexer.core.models import UNKNOWN_PUBLISHER

logger = logging.getLogger(__name__)


def load_publisher_mapping(
    sheets_service: Resource,
    spreadsheet_id: str,
    sheet_name: str,
    *,
    num_retries: int = 3,
) -> dict[str, str]:
    """Read (label, publisher id) rows from the lookup sheet.

    The first row is a header. Rows with a blank label or blank id are skipped.
    Labels are trimmed and lowercased; a later duplicate label overrides an
    earlier one.

    Raises:
        PublisherLookupError: If no sheet is configured or the read fails.
    """
    if not spreadsheet_id or not sheet_name:
        raise PublisherLookupError("No publisher lookup sheet configured")

    try:
        response = (
            sheets_service.spreadsheets()
            .values()
            .get(spreadsheetId=spreadsheet_id, range=sheet_name)
            .execute(num_retries=num_retries)
        )
    except Exception as e:
        raise PublisherLookupError(
            f"Failed to read publisher sheet {sheet_name!r}: {e}"
        ) from e

    rows: list[list[Any]] = response.get("values", [])
    mapping: dict[str, str] = {}
    for row in rows[1:]:
        if len(row) < 2:
            continue
        label = str(row[0]).strip().lower()
        publisher_id = str(row[1]).strip()
        if not label or not publisher_id:
            continue
        mapping[label] = publisher_id

    logger.info("Loaded %d publisher mappings from sheet %r", len(mapping), sheet_name)
    return mapping


def resolve_publisher(labels: Iterable[str], mapping: dict[str, str]) -> str:
    """Return the publisher id of the first label found in the mapping, else 'unknown'."""
    for label in labels:
        publisher_id = mapping.get(label.lower())
        if publisher_id is not None:
            return publisher_id
    return UNKNOWN_PUBLISHER
