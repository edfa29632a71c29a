"""
Exception hierarchy for the retrieval engine.

Exception Hierarchy:
    RetrievalError (base)
    ├── ConfigurationError (also a ValueError)
    │   └── MissingCredentialError
    ├── ProviderError
    │   ├── TransientProviderError
    │   └── PermanentProviderError
    ├── DocumentReadError
    └── CorruptIndexError

Failures local to one document or one search path are absorbed by the
index manager and the hybrid search engine. Configuration and credential
failures propagate to the caller.
"""

from __future__ import annotations


class RetrievalError(Exception):
    """Base exception for all retrieval engine errors."""


class ConfigurationError(RetrievalError, ValueError):
    """Invalid configuration value or unsupported provider name."""


class MissingCredentialError(ConfigurationError):
    """A provider was selected but its credential is not set."""

    def __init__(self, env_var: str, provider: str) -> None:
        self.env_var = env_var
        self.provider = provider
        super().__init__(
            f"{env_var} not found. "
            f"Set the environment variable to use {provider} embeddings."
        )


class ProviderError(RetrievalError):
    """An embedding provider call failed."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        original_error: Exception | None = None,
    ) -> None:
        self.provider = provider
        self.original_error = original_error
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Rate limit, overload or server error that outlived the retry budget."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        attempts: int,
        original_error: Exception | None = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, provider=provider, original_error=original_error)


class PermanentProviderError(ProviderError):
    """Bad credentials, malformed request or any other non-retryable failure."""


class DocumentReadError(RetrievalError):
    """Content of a document could not be read from the repository."""

    def __init__(self, document_id: str, reason: str) -> None:
        self.document_id = document_id
        self.reason = reason
        super().__init__(f"Cannot read document {document_id}: {reason}")


class CorruptIndexError(RetrievalError):
    """Persisted index artifacts are unreadable or inconsistent."""
