"""
Exception hierarchy for the cluster performance tracker.

Inside a cycle these never escape as fatal: provider errors become "no price"
in PriceSource, and database errors are rolled back per ticker or per cluster.
"""

from typing import Any, Dict, Optional


class ClusterPerfError(Exception):
    """Base exception carrying a message and structured details."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form used in API error responses."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# Persistence

class DatabaseError(ClusterPerfError):
    """A query or transaction against the store failed."""


class RecordNotFoundError(DatabaseError):
    """A cluster or cluster action id does not exist."""


# Input

class ValidationError(ClusterPerfError):
    """Caller-supplied parameters are out of range."""


# Quote provider

class ExternalServiceError(ClusterPerfError):
    """An external service could not be used."""


class PriceProviderError(ExternalServiceError):
    """Quote provider request failed or returned an unusable payload."""


class ProviderNoticeError(PriceProviderError):
    """Quote provider answered with an explicit error or throttling notice."""


class RateLimitError(ClusterPerfError):
    """Waiting for the next provider token would take longer than allowed."""

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        if retry_after is not None:
            self.details.setdefault("retry_after", round(retry_after, 3))


# Configuration

class ConfigurationError(ClusterPerfError):
    """Settings are inconsistent or name something unknown."""


class MissingSecretError(ConfigurationError):
    """A required credential is not set in the environment."""
