"""Semantic search over stored memories."""

import logging
import numbers
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .embeddings import EmbeddingProvider
from .errors import InvalidMemoryInput, SearchError
from .models import MemoryCategory, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 5


class SimilarityBackend(Protocol):
    """Ranks one owner's memories against a query vector.

    Implementations must only return rows belonging to owner_id, ordered
    most relevant first, at most match_limit of them. Each row is a mapping
    with id, content, category and similarity.
    """

    async def match_memories(
        self,
        owner_id: str,
        query_embedding: Sequence[float],
        match_limit: int,
        category: MemoryCategory | None = None,
    ) -> Sequence[Mapping[str, Any]]:
        ...


class MemorySearcher:
    """Embeds a query and forwards the backend's ranking as SearchResults.

    The backend's order and scores are trusted as-is: no re-sorting,
    filtering or thresholding happens here.
    """

    def __init__(
        self,
        backend: SimilarityBackend,
        embedder: EmbeddingProvider,
        default_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        """Initialize the searcher.

        Args:
            backend: The similarity ranking operation (e.g. a MemoryStore).
            embedder: Provider used to embed queries. Must match the one
                used when the memories were stored.
            default_limit: Result bound used when a search gives none.
        """
        _check_limit(default_limit)
        self.backend = backend
        self.embedder = embedder
        self.default_limit = default_limit

    async def search_memories(
        self,
        owner_id: str,
        query: str,
        limit: int | None = None,
        category: MemoryCategory | str | None = None,
    ) -> list[SearchResult]:
        """Find an owner's memories most similar to a query.

        Args:
            owner_id: Whose memories to search.
            query: Free-text query, non-empty.
            limit: Maximum number of results, default_limit if None.
            category: Optionally search a single category.

        Returns:
            Up to limit results in backend order; empty if nothing matched.

        Raises:
            InvalidMemoryInput: If an argument is invalid (no I/O happened).
            EmbeddingError: If the query couldn't be embedded.
            SearchError: If the ranking call failed or returned bad rows.
        """
        if not owner_id:
            raise InvalidMemoryInput("owner_id is required")
        if not isinstance(query, str) or not query.strip():
            raise InvalidMemoryInput("Search query cannot be empty")
        if limit is None:
            limit = self.default_limit
        _check_limit(limit)
        if category is not None and not isinstance(category, MemoryCategory):
            try:
                category = MemoryCategory(category)
            except ValueError:
                raise InvalidMemoryInput(f"Unknown memory category {category!r}") from None

        query_embedding = await self.embedder.embed(query)

        try:
            rows = await self.backend.match_memories(
                owner_id, query_embedding, limit, category
            )
            results = self._to_results(rows)
        except SearchError:
            raise
        except Exception as e:
            raise SearchError(f"Failed to search memories: {e}") from e

        if len(results) > limit:
            logger.warning(
                "Search backend returned %d rows for limit %d", len(results), limit
            )
            results = results[:limit]

        return results

    def _to_results(self, rows: Any) -> list[SearchResult]:
        if rows is None:
            return []
        if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)):
            raise SearchError(
                f"Failed to search memories: expected a list of rows, got {type(rows).__name__}"
            )
        return [self._row_to_result(row) for row in rows]

    def _row_to_result(self, row: Any) -> SearchResult:
        try:
            score = row["similarity"]
            if isinstance(score, bool) or not isinstance(score, numbers.Real):
                raise TypeError(f"similarity is not a number: {score!r}")
            return SearchResult(
                id=str(row["id"]),
                content=row["content"],
                category=MemoryCategory(row["category"]),
                score=float(score),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SearchError(f"Failed to search memories: malformed row ({e})") from e


def _check_limit(limit: Any) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise InvalidMemoryInput(f"Search limit must be a positive integer, got {limit!r}")
