"""
Configuration helpers for index storage and indexing behaviour.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError


DEFAULT_INDEX_DIR = "~/.kb_retrieval/index"
ENV_INDEX_DIR = "KB_RETRIEVAL_INDEX_DIR"

DEFAULT_DB_PATH = "~/.kb_retrieval/catalog.duckdb"
ENV_DB_PATH = "KB_RETRIEVAL_DB_PATH"

ENV_PREFIX = "KB_RETRIEVAL_"


def resolve_index_dir(override_path: str | None = None) -> Path:
    """
    Resolve the vector index directory from override, env var, or default.

    Precedence:
    1) explicit override_path
    2) KB_RETRIEVAL_INDEX_DIR
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_INDEX_DIR) or DEFAULT_INDEX_DIR
    resolved = Path(raw_path).expanduser().resolve()
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB catalog path from override, env var, or default.

    Precedence:
    1) explicit override_path
    2) KB_RETRIEVAL_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _env_int(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be an integer, got {raw!r}"
        ) from exc
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= {minimum}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{ENV_PREFIX}{name} must be a number, got {raw!r}"
        ) from exc
    if value < 0:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be >= 0")
    return value


@dataclass(frozen=True)
class IndexSettings:
    """Tunables for index builds and hybrid search."""

    embed_batch_size: int = 50
    batch_delay_ms: int = 100
    max_content_length: int = 32000
    min_content_chars: int = 50
    checkpoint_interval: int = 25
    progress_interval: int = 10
    max_retries: int = 3
    retry_base_delay: float = 1.0
    call_timeout: float = 60.0
    keyword_limit: int = 15
    semantic_limit: int = 15
    related_limit: int = 10

    def __post_init__(self) -> None:
        if self.embed_batch_size <= 0:
            raise ConfigurationError("embed_batch_size must be > 0")
        if self.checkpoint_interval <= 0:
            raise ConfigurationError("checkpoint_interval must be > 0")
        if self.progress_interval <= 0:
            raise ConfigurationError("progress_interval must be > 0")
        if self.max_content_length <= 0:
            raise ConfigurationError("max_content_length must be > 0")

    @classmethod
    def from_env(cls) -> IndexSettings:
        """Build settings from KB_RETRIEVAL_* environment variables."""
        defaults = cls()
        return cls(
            embed_batch_size=_env_int(
                "EMBED_BATCH_SIZE", defaults.embed_batch_size, minimum=1
            ),
            batch_delay_ms=_env_int("BATCH_DELAY_MS", defaults.batch_delay_ms),
            max_content_length=_env_int(
                "MAX_CONTENT_LENGTH", defaults.max_content_length, minimum=1
            ),
            checkpoint_interval=_env_int(
                "CHECKPOINT_INTERVAL", defaults.checkpoint_interval, minimum=1
            ),
            max_retries=_env_int("MAX_RETRIES", defaults.max_retries),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", defaults.retry_base_delay),
            call_timeout=_env_float("CALL_TIMEOUT", defaults.call_timeout),
        )
