"""Embedding API client. Failures come back as EmbeddingResult, never as exceptions."""

from __future__ import annotations

import logging
from typing import Any

import requests

from digest_indexer.core.models import EmbeddingResult, FailureReason

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://api.openai.com/v1/embeddings"
DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_MAX_CHARS = 8000


class EmbeddingClient:
    """Thin wrapper around an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        max_chars: int = DEFAULT_MAX_CHARS,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key
        self._endpoint = endpoint
        self._model = model
        self._max_chars = max_chars
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def embed(self, text: str) -> EmbeddingResult:
        """Embed a thread's text, truncated to the provider's input limit.

        Returns:
            EmbeddingResult holding the vector, or a tagged failure reason.
        """
        if not text or not text.strip():
            return EmbeddingResult.failure(FailureReason.EMPTY_INPUT, "No text to embed")
        if not self._api_key:
            return EmbeddingResult.failure(
                FailureReason.MISSING_CREDENTIAL, "Embedding API key is not set"
            )

        if len(text) > self._max_chars:
            logger.debug(
                "Truncating embedding input from %d to %d chars", len(text), self._max_chars
            )
            text = text[: self._max_chars]

        try:
            response = self._session.post(
                self._endpoint,
                json={"input": text, "model": self._model},
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.warning("Embedding request failed: %s", e)
            return EmbeddingResult.failure(FailureReason.NETWORK_ERROR, str(e))

        if not 200 <= response.status_code < 300:
            logger.warning(
                "Embedding API returned %d: %s", response.status_code, response.text[:500]
            )
            return EmbeddingResult.failure(
                FailureReason.HTTP_ERROR, f"HTTP {response.status_code}"
            )

        try:
            payload: Any = response.json()
        except ValueError as e:
            logger.warning("Embedding API returned invalid JSON: %s", e)
            return EmbeddingResult.failure(FailureReason.MALFORMED_RESPONSE, "Invalid JSON")

        vector = self._parse_vector(payload)
        if vector is None:
            logger.warning("Embedding response has no usable 'data[0].embedding'")
            return EmbeddingResult.failure(
                FailureReason.MALFORMED_RESPONSE, "Missing embedding in response"
            )
        return EmbeddingResult.success(vector)

    @staticmethod
    def _parse_vector(payload: Any) -> list[float] | None:
        try:
            embedding = payload["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(embedding, list) or not embedding:
            return None
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in embedding):
            return None
        return [float(v) for v in embedding]

    def close(self) -> None:
        self._session.close()
