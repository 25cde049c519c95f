"""
tsrag - Centralized Configuration
==================================
Uses ``pydantic-settings`` (``BaseSettings``) to load *all* configuration
from environment variables and the project-level ``.env`` file.

Security
--------
- ``GOOGLE_API_KEY`` is typed as ``SecretStr`` and has **no default value**.
  If the key is missing at startup, Pydantic raises a ``ValidationError``.
  The raw value is never exposed in repr, logs, or tracebacks.
- ``MONGO_URI`` is also ``SecretStr``: Atlas connection strings embed
  credentials and must never leak into logs.

Retrieval tuning
----------------
``VECTOR_WEIGHT`` / ``TEXT_WEIGHT`` are the Reciprocal Rank Fusion list
weights.  ``VECTOR_CANDIDATE_MULTIPLIER`` controls how many ANN candidates
``$vectorSearch`` inspects per requested result, and
``HYBRID_FETCH_MULTIPLIER`` how many results each list contributes to
fusion.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings.

    Every field is loaded from environment variables (or ``.env``).
    Fields *without* a default are **required**.

    Attributes
    ----------
    GOOGLE_API_KEY : SecretStr
        API key for Google AI Studio (Gemini).  **Required.**
    MONGO_URI : SecretStr
        MongoDB Atlas connection string.  **Required.**
    EMBEDDING_DIMENSION : int
        Fixed vector length *D* shared by every stored chunk.
    CACHE_MAX_SIZE : int
        Capacity of the response cache (LRU eviction beyond it).
    CACHE_TTL_SECONDS : int
        Sliding expiry of a cache entry, refreshed on every read.
    UPSTREAM_TIMEOUT_SECONDS : float
        Upper bound for every embedding, search and generation call.
    """

    # ── Resolved Absolute Paths ────────────────────────────────────────
    BASE_DIR: Path = Path(__file__).resolve().parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    PDF_PATH: Path = DATA_DIR / "Essential-typescript-5-third-edition.pdf"

    # ── Environment Mode ───────────────────────────────────────────────
    ENV: Literal["dev", "prod"] = "dev"

    # ── API Keys (REQUIRED, no default) ────────────────────────────────
    GOOGLE_API_KEY: SecretStr

    # ── MongoDB Atlas (REQUIRED, no default) ───────────────────────────
    MONGO_URI: SecretStr
    MONGO_DB_NAME: str = "ts_rag"
    EMBEDDINGS_COLLECTION: str = "embeddings"
    CONVERSATIONS_COLLECTION: str = "conversations"
    VECTOR_INDEX_NAME: str = "vector_index"
    FULLTEXT_INDEX_NAME: str = "fulltext_index"

    # ── Model Configuration ────────────────────────────────────────────
    EMBEDDING_MODEL: str = "models/gemini-embedding-001"
    EMBEDDING_DIMENSION: int = 3072
    LLM_MODEL: str = "gemini-2.5-flash"
    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_OUTPUT_TOKENS: int = 2048

    # ── Deployment Persona ─────────────────────────────────────────────
    BOOK_TITLE: str = "Essential TypeScript 5"
    RESPONSE_LANGUAGE: str = "português (Brasil)"

    # ── Response Cache ─────────────────────────────────────────────────
    CACHE_MAX_SIZE: int = 100
    CACHE_TTL_SECONDS: int = 60 * 30

    # ── Retrieval ──────────────────────────────────────────────────────
    DEFAULT_TOP_K: int = 5
    VECTOR_WEIGHT: float = 0.7
    TEXT_WEIGHT: float = 0.3
    VECTOR_CANDIDATE_MULTIPLIER: int = 10
    HYBRID_FETCH_MULTIPLIER: int = 2
    SOURCE_PREVIEW_CHARS: int = 200
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0

    # ── Ingestion Parameters ───────────────────────────────────────────
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    EMBED_BATCH_SIZE: int = 16
    RATE_LIMIT_RPM: int = 90

    # ── HTTP Server ────────────────────────────────────────────────────
    HOST: str = "0.0.0.0"
    PORT: int = 3333
    CORS_ORIGINS: list[str] = ["*"]

    # ── Validators ─────────────────────────────────────────────────────

    @field_validator("CACHE_MAX_SIZE", "CACHE_TTL_SECONDS", "EMBEDDING_DIMENSION", "DEFAULT_TOP_K", "SOURCE_PREVIEW_CHARS", "EMBED_BATCH_SIZE", "RATE_LIMIT_RPM")
    @classmethod
    def _strictly_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"value must be ≥ 1, got {v}")
        return v


    @field_validator("VECTOR_CANDIDATE_MULTIPLIER", "HYBRID_FETCH_MULTIPLIER")
    @classmethod
    def _multiplier_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"over-fetch multiplier must be ≥ 1, got {v}")
        return v


    @field_validator("VECTOR_WEIGHT", "TEXT_WEIGHT")
    @classmethod
    def _weight_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"fusion weight must be ≥ 0, got {v}")
        return v


    @field_validator("UPSTREAM_TIMEOUT_SECONDS")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"UPSTREAM_TIMEOUT_SECONDS must be > 0, got {v}")
        return v


    @field_validator("PORT")
    @classmethod
    def _port_range(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError(f"PORT must be 1–65535, got {v}")
        return v


    @model_validator(mode="after")
    def _overlap_below_chunk_size(self) -> Settings:
        if self.CHUNK_OVERLAP >= self.CHUNK_SIZE:
            raise ValueError(f"CHUNK_OVERLAP ({self.CHUNK_OVERLAP}) must be smaller than CHUNK_SIZE ({self.CHUNK_SIZE})")
        return self

    # ── Pydantic Settings Configuration ────────────────────────────────
    model_config = SettingsConfigDict(env_file=Path(__file__).resolve().parent.parent / ".env", env_file_encoding="utf-8", extra="ignore")


# ── Singleton Instance ─────────────────────────────────────────────────
# Import this throughout the project:
#     from tsrag.config.settings import settings
settings = Settings()
