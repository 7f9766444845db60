from __future__ import annotations


class AnalysisError(Exception):
    """Base class for failures of a sensitive analysis run."""


class InvalidJobError(AnalysisError):
    """Raised when a processing job is malformed; no chunk work is started."""


class UnsupportedShapeError(AnalysisError, ValueError):
    """Raised when content is chunked with an unknown analysis type."""

    def __init__(self, shape: object) -> None:
        self.shape = shape
        super().__init__(f"Unsupported analysis type: {shape}")


class EntityShapeError(AnalysisError, ValueError):
    """Raised when an entity does not fit the content shape it was found in."""


class IdentifierError(AnalysisError):
    """Raised when the external entity identifier fails."""


class ChunkTaskError(AnalysisError):
    """Raised when processing a single chunk fails.

    ``chunk_index`` is zero-based; the message uses the one-based chunk
    number so it reads naturally in logs and client-facing errors.
    """

    def __init__(self, chunk_index: int, cause: BaseException) -> None:
        self.chunk_index = chunk_index
        self.cause = cause
        reason = str(cause) or type(cause).__name__
        super().__init__(f"Chunk {chunk_index + 1} processing failed: {reason}")
