"""Pinecone REST client: vector upsert and index host discovery."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from digest_indexer.core.exceptions import IndexDiscoveryError
from digest_indexer.core.models import FailureReason, UpsertResult, VectorRecord

logger = logging.getLogger(__name__)

CONTROLLER_URL = "https://controller.{environment}.pinecone.io/databases/{index_name}"
DEFAULT_METADATA_MAX_CHARS = 1000


def _normalize_host(host: str) -> str:
    host = host.strip().rstrip("/")
    if host and not host.startswith(("http://", "https://")):
        host = f"https://{host}"
    return host


def discover_index_host(
    api_key: str,
    environment: str,
    index_name: str,
    *,
    timeout_seconds: float = 30.0,
    session: requests.Session | None = None,
) -> str:
    """Look up an index's data-plane host from the Pinecone controller.

    Returns:
        The host, prefixed with ``https://``.

    Raises:
        IndexDiscoveryError: On any transport error, non-200 response or
            a response without ``status.host``.
    """
    url = CONTROLLER_URL.format(environment=environment, index_name=index_name)
    http = session or requests.Session()
    try:
        response = http.get(url, headers={"Api-Key": api_key}, timeout=timeout_seconds)
    except requests.RequestException as e:
        raise IndexDiscoveryError(f"Index discovery request failed: {e}") from e
    finally:
        if session is None:
            http.close()

    if response.status_code != 200:
        raise IndexDiscoveryError(
            f"Index discovery for {index_name!r} returned {response.status_code}: "
            f"{response.text[:500]}"
        )

    try:
        host = response.json()["status"]["host"]
    except (ValueError, KeyError, TypeError) as e:
        raise IndexDiscoveryError(f"Index discovery response has no status.host: {e}") from e
    if not host:
        raise IndexDiscoveryError("Index discovery returned an empty host")

    logger.info("Discovered host for index %s: %s", index_name, host)
    return _normalize_host(str(host))


class VectorIndexClient:
    """Upserts vectors into one Pinecone index over REST."""

    def __init__(
        self,
        api_key: str,
        host: str,
        *,
        metadata_max_chars: int = DEFAULT_METADATA_MAX_CHARS,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._host = _normalize_host(host or "")
        self._metadata_max_chars = metadata_max_chars
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    @property
    def host(self) -> str:
        return self._host

    def upsert(self, records: Sequence[VectorRecord]) -> UpsertResult:
        """Store (id, vector, metadata) records.

        String metadata values are capped at ``metadata_max_chars`` before
        sending. Failures are logged and returned, never raised.
        """
        if not self._host:
            return UpsertResult.failure(FailureReason.MISSING_DESTINATION, "Index host is not set")
        if not self._api_key:
            return UpsertResult.failure(
                FailureReason.MISSING_CREDENTIAL, "Pinecone API key is not set"
            )
        if not records:
            return UpsertResult.failure(FailureReason.EMPTY_INPUT, "No records to upsert")

        body = {
            "vectors": [
                {
                    "id": record.id,
                    "values": list(record.values),
                    "metadata": self._cap_metadata(record.metadata),
                }
                for record in records
            ]
        }

        try:
            response = self._session.post(
                f"{self._host}/vectors/upsert",
                json=body,
                headers={"Api-Key": self._api_key, "Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("Upsert request failed: %s", e)
            return UpsertResult.failure(FailureReason.NETWORK_ERROR, str(e))

        if response.status_code != 200:
            logger.warning(
                "Upsert of %d vectors returned %d: %s",
                len(records), response.status_code, response.text[:500],
            )
            return UpsertResult.failure(FailureReason.HTTP_ERROR, f"HTTP {response.status_code}")

        try:
            count = int(response.json().get("upsertedCount", len(records)))
        except (ValueError, TypeError, AttributeError):
            count = len(records)
        logger.debug("Upserted %d vectors", count)
        return UpsertResult.success(count)

    def _cap_metadata(self, metadata: dict[str, Any]) -> dict[str, Any]:
        capped: dict[str, Any] = {}
        for key, value in metadata.items():
            if isinstance(value, str) and len(value) > self._metadata_max_chars:
                value = value[: self._metadata_max_chars]
            capped[key] = value
        return capped

    def close(self) -> None:
        self._session.close()
