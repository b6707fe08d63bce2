"""Custom exceptions for the Digest Indexer."""


class DigestIndexerError(Exception):
    """Base exception for all Digest Indexer errors."""


class ConfigurationError(DigestIndexerError):
    """Required configuration is missing; the run cannot start."""


class AuthenticationError(DigestIndexerError):
    """Failed to authenticate with Google APIs."""


class RateLimitError(DigestIndexerError):
    """Gmail API rate limit exceeded."""


class IndexDiscoveryError(DigestIndexerError):
    """Could not resolve the vector index host."""


class PublisherLookupError(DigestIndexerError):
    """Failed to read the label-to-publisher lookup sheet."""


class StateStoreError(DigestIndexerError):
    """Failed to read or write persisted run state."""


class ParseError(DigestIndexerError):
    """Failed to read a field from a Gmail message payload."""
