"""Error types raised by the memory pipeline."""


class MemoryPipelineError(Exception):
    """Base class for all memory pipeline failures."""


class GenerationError(MemoryPipelineError):
    """The text-generation call behind extraction failed."""


class MalformedExtractionOutput(MemoryPipelineError):
    """The model answered, but not in the expected JSON shape.

    Handled inside the extractor; callers never see it.
    """


class InvalidMemoryInput(MemoryPipelineError, ValueError):
    """Arguments rejected before any I/O took place."""


class EmbeddingError(MemoryPipelineError):
    """The embedding provider failed or returned an unusable response."""


class EmbeddingDimensionError(EmbeddingError):
    """A vector did not have the provider's fixed dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding has {actual} dimensions, expected {expected}"
        )
        self.expected = expected
        self.actual = actual


class StorageError(MemoryPipelineError):
    """A store operation failed. The message names the operation."""


class SearchError(MemoryPipelineError):
    """The similarity search failed or returned malformed rows."""
