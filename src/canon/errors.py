"""Exception hierarchy shared by the Canon library and CLI."""

from __future__ import annotations


class CanonError(Exception):
    """Base class for all errors raised by Canon itself."""


class ValidationError(CanonError, ValueError):
    """Input rejected before any storage or external call is made."""


class DimensionMismatchError(CanonError, ValueError):
    """Two vectors (or a vector and the configured dimensionality) differ in length.

    This is a configuration / programming error: embeddings from different
    models were mixed, or the deployment dimensionality changed.
    """

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )
        self.expected = expected
        self.actual = actual


class NotFoundError(CanonError, LookupError):
    """A chunk, cluster or conflict does not exist for the given brand."""

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind} '{record_id}' not found")
        self.kind = kind
        self.record_id = record_id


class ChunkLockedError(CanonError):
    """A locked chunk rejected a status change or deletion."""

    def __init__(self, chunk_id: str, action: str) -> None:
        super().__init__(f"Cannot {action} locked chunk '{chunk_id}'. Unlock it first.")
        self.chunk_id = chunk_id
        self.action = action
