"""
Embedding providers for vector-based semantic search.

Two interchangeable variants are selected by configuration:

- ``GeminiEmbedder`` wraps the Google GenAI embedding API and distinguishes
  document and query task types.
- ``OpenAIEmbedder`` wraps the OpenAI embeddings endpoint, which has a single
  task type, so queries and documents are embedded the same way.

Each variant owns a ``RetryPolicy``: rate limits, overload and server errors are
retried with exponential backoff, anything else fails immediately.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

import openai
import httpx
from google.genai import Client as GenAIClient
from google.genai.types import HttpOptions
from openai import OpenAI

from .config import IndexSettings
from .errors import (
    ConfigurationError,
    MissingCredentialError,
    PermanentProviderError,
    TransientProviderError,
)


logger = logging.getLogger(__name__)

ENV_PROVIDER = "KB_RETRIEVAL_EMBEDDING_PROVIDER"
ENV_MODEL = "KB_RETRIEVAL_EMBEDDING_MODEL"
ENV_DIM = "KB_RETRIEVAL_EMBEDDING_DIM"

DEFAULT_PROVIDER = "gemini"
SUPPORTED_PROVIDERS: tuple[str, ...] = ("gemini", "openai")

DEFAULT_MODELS: dict[str, str] = {
    "gemini": "gemini-embedding-001",
    "openai": "text-embedding-3-small",
}

DEFAULT_DIMENSIONS: dict[str, int] = {
    "gemini": 3072,
    "openai": 1536,
}

MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-004": 768,
    "gemini-embedding-001": 3072,
}

CREDENTIAL_ENV_VARS: dict[str, str] = {
    "gemini": "GOOGLE_API_KEY",
    "openai": "OPENAI_API_KEY",
}

_TRANSIENT_MARKERS: tuple[str, ...] = (
    "429",
    "quota",
    "rate limit",
    "rate_limit",
    "ratelimit",
    "overloaded",
    "unavailable",
    "resource_exhausted",
    "resource exhausted",
)


class Embedder(Protocol):
    """Converts text to fixed-dimension vectors."""

    provider_name: str
    model_name: str
    dimensions: int

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts for document indexing, one vector per text, in order."""

    def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""


def is_transient_error(exc: BaseException) -> bool:
    """Return True for rate-limit, overload, server and connection failures."""
    if isinstance(exc, (ConnectionError, TimeoutError, httpx.TimeoutException)):
        return True
    for attr in ("status_code", "code"):
        status = getattr(exc, attr, None)
        if isinstance(status, int) and not isinstance(status, bool):
            if status == 429 or status >= 500:
                return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


@dataclass
class RetryPolicy:
    """Exponential backoff for transient provider failures."""

    max_retries: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)

    def call(
        self,
        fn: Callable[[], Any],
        *,
        provider: str,
        operation: str,
        is_transient: Callable[[BaseException], bool] = is_transient_error,
    ) -> Any:
        """Run *fn*, retrying transient failures up to ``max_retries`` times."""
        for attempt in range(self.max_retries + 1):
            try:
                return fn()
            except Exception as exc:
                if not is_transient(exc):
                    raise PermanentProviderError(
                        f"{provider} {operation} failed: {exc}",
                        provider=provider,
                        original_error=exc,
                    ) from exc
                if attempt >= self.max_retries:
                    raise TransientProviderError(
                        f"{provider} {operation} failed after "
                        f"{attempt + 1} attempts: {exc}",
                        provider=provider,
                        attempts=attempt + 1,
                        original_error=exc,
                    ) from exc
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s API rate limited during %s, retrying in %.1fs (%d/%d)",
                    provider,
                    operation,
                    delay,
                    attempt + 1,
                    self.max_retries,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")


def _resolve_model(provider: str, model: str | None) -> str:
    return model or os.getenv(ENV_MODEL) or DEFAULT_MODELS[provider]


def _resolve_dim(provider: str, model_name: str, dim: int | None) -> tuple[int, bool]:
    """Return (dimensions, explicitly_requested)."""
    if dim is not None:
        return dim, True
    raw = os.getenv(ENV_DIM)
    if raw:
        try:
            return int(raw), True
        except ValueError as exc:
            raise ConfigurationError(f"{ENV_DIM} must be an integer, got {raw!r}") from exc
    return MODEL_DIMENSIONS.get(model_name, DEFAULT_DIMENSIONS[provider]), False


class GeminiEmbedder:
    """Generate text embeddings via Google GenAI."""

    provider_name = "gemini"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        client: Any | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self.model_name = _resolve_model(self.provider_name, model)
        self.dimensions, _ = _resolve_dim(self.provider_name, self.model_name, dim)
        self.retry_policy = retry_policy or RetryPolicy()

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if not resolved_key:
                raise MissingCredentialError("GOOGLE_API_KEY", self.provider_name)
            if timeout:
                # HttpOptions.timeout is in milliseconds.
                self._client = GenAIClient(
                    api_key=resolved_key,
                    http_options=HttpOptions(timeout=int(timeout * 1000)),
                )
            else:
                self._client = GenAIClient(api_key=resolved_key)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed document texts with the RETRIEVAL_DOCUMENT task type."""
        if not texts:
            return []
        return self.retry_policy.call(
            lambda: self._embed(texts, task_type="RETRIEVAL_DOCUMENT"),
            provider=self.provider_name,
            operation="batch embedding",
        )

    def embed_query(self, text: str) -> list[float]:
        """Embed a single query text with the RETRIEVAL_QUERY task type."""
        vectors = self.retry_policy.call(
            lambda: self._embed([text], task_type="RETRIEVAL_QUERY"),
            provider=self.provider_name,
            operation="query embedding",
        )
        return vectors[0]

    def _embed(self, texts: list[str], *, task_type: str) -> list[list[float]]:
        result = self._client.models.embed_content(
            model=self.model_name,
            contents=texts,
            config={
                "task_type": task_type,
                "output_dimensionality": self.dimensions,
            },
        )
        embeddings = [list(emb.values) for emb in result.embeddings]
        if len(embeddings) != len(texts):
            raise ValueError(
                f"expected {len(texts)} embeddings, received {len(embeddings)}"
            )
        return embeddings


def _is_openai_transient(exc: BaseException) -> bool:
    if isinstance(exc, (openai.RateLimitError, openai.APIConnectionError)):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code == 429 or exc.status_code >= 500
    return is_transient_error(exc)


class OpenAIEmbedder:
    """Generate text embeddings via the OpenAI embeddings endpoint."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        client: Any | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout: float | None = None,
    ) -> None:
        self.model_name = _resolve_model(self.provider_name, model)
        self.dimensions, self._dim_requested = _resolve_dim(
            self.provider_name, self.model_name, dim
        )
        self.retry_policy = retry_policy or RetryPolicy()

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("OPENAI_API_KEY")
            if not resolved_key:
                raise MissingCredentialError("OPENAI_API_KEY", self.provider_name)
            if timeout:
                self._client = OpenAI(api_key=resolved_key, timeout=timeout)
            else:
                self._client = OpenAI(api_key=resolved_key)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return self.retry_policy.call(
            lambda: self._embed(texts),
            provider=self.provider_name,
            operation="batch embedding",
            is_transient=_is_openai_transient,
        )

    def embed_query(self, text: str) -> list[float]:
        # OpenAI has no query-specific task type.
        vectors = self.retry_policy.call(
            lambda: self._embed([text]),
            provider=self.provider_name,
            operation="query embedding",
            is_transient=_is_openai_transient,
        )
        return vectors[0]

    def _embed(self, texts: list[str]) -> list[list[float]]:
        params: dict[str, Any] = {"model": self.model_name, "input": texts}
        if self._dim_requested:
            params["dimensions"] = self.dimensions
        response = self._client.embeddings.create(**params)
        ordered = sorted(response.data, key=lambda item: item.index)
        embeddings = [list(item.embedding) for item in ordered]
        if len(embeddings) != len(texts):
            raise ValueError(
                f"expected {len(texts)} embeddings, received {len(embeddings)}"
            )
        return embeddings


_PROVIDER_CLASSES: dict[str, type] = {
    "gemini": GeminiEmbedder,
    "openai": OpenAIEmbedder,
}


def resolve_provider_name(provider: str | None = None) -> str:
    name = (provider or os.getenv(ENV_PROVIDER) or DEFAULT_PROVIDER).strip().lower()
    if name not in _PROVIDER_CLASSES:
        raise ConfigurationError(
            f"Unsupported embedding provider: {name!r}. "
            f"Must be one of {', '.join(SUPPORTED_PROVIDERS)}."
        )
    return name


def create_embedder(
    provider: str | None = None,
    *,
    model: str | None = None,
    dim: int | None = None,
    settings: IndexSettings | None = None,
    client: Any | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Embedder:
    """Build the configured embedding provider.

    Raises ConfigurationError for an unknown provider and
    MissingCredentialError when the provider's API key is not set.
    """
    name = resolve_provider_name(provider)
    effective = settings or IndexSettings()
    retry_policy = RetryPolicy(
        max_retries=effective.max_retries,
        base_delay=effective.retry_base_delay,
        sleep=sleep,
    )
    embedder_cls = _PROVIDER_CLASSES[name]
    return embedder_cls(
        model=model,
        dim=dim,
        client=client,
        retry_policy=retry_policy,
        timeout=effective.call_timeout,
    )


def missing_embedding_credential(provider: str | None = None) -> str | None:
    """Return the name of the missing credential env var, or None when set."""
    try:
        name = resolve_provider_name(provider)
    except ConfigurationError:
        return f"UNKNOWN_EMBEDDING_PROVIDER({provider or os.getenv(ENV_PROVIDER)})"
    env_var = CREDENTIAL_ENV_VARS[name]
    return None if os.getenv(env_var) else env_var
