"""Memory pipeline: extraction, embedding, storage and semantic search."""

from .embeddings import (
    CachedEmbeddingProvider,
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    cosine_similarity,
)
from .errors import (
    EmbeddingDimensionError,
    EmbeddingError,
    GenerationError,
    InvalidMemoryInput,
    MalformedExtractionOutput,
    MemoryPipelineError,
    SearchError,
    StorageError,
)
from .extractor import MemoryExtractor
from .manager import MemoryManager
from .models import (
    ExtractedMemory,
    ExtractionResult,
    Memory,
    MemoryCategory,
    SearchResult,
)
from .search import MemorySearcher, SimilarityBackend
from .store import MemoryStore

__all__ = [
    "CachedEmbeddingProvider",
    "EmbeddingDimensionError",
    "EmbeddingError",
    "EmbeddingProvider",
    "ExtractedMemory",
    "ExtractionResult",
    "GenerationError",
    "InvalidMemoryInput",
    "MalformedExtractionOutput",
    "Memory",
    "MemoryCategory",
    "MemoryExtractor",
    "MemoryManager",
    "MemoryPipelineError",
    "MemorySearcher",
    "MemoryStore",
    "OpenAIEmbeddingProvider",
    "SearchError",
    "SearchResult",
    "SimilarityBackend",
    "StorageError",
    "cosine_similarity",
]
