"""
tsrag - Error Taxonomy
=======================
Hard failures of the RAG pipeline.  Scope rejection and empty retrieval
are *not* errors: they come back as ordinary ``RAGResponse`` values.
"""

from __future__ import annotations


class RAGError(Exception):
    """Base class for every tsrag failure."""


class RetrievalUnavailable(RAGError):
    """The index store is unreachable or rejected the query."""


class GenerationFailed(RAGError):
    """The generative model returned empty or unusable output."""


class UpstreamTimeout(RAGError):
    """An external call (embedding, search, generation, persistence) ran past its deadline."""

    def __init__(self, operation: str, timeout_seconds: float) -> None:
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(f"{operation} did not complete within {timeout_seconds:.1f}s")


class EmbeddingDimensionMismatch(RAGError):
    """A chunk's embedding length differs from the corpus dimension."""

    def __init__(self, expected: int, actual: int, index: int) -> None:
        self.expected = expected
        self.actual = actual
        self.index = index
        super().__init__(f"chunk #{index} has an embedding of {actual} dimensions, expected {expected}")
