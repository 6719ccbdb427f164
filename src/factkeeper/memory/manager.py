"""Memory manager for orchestrating extraction, storage and recall."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ..logging import JSONLLogger, get_logger
from .errors import InvalidMemoryInput, MemoryPipelineError
from .models import ExtractedMemory, Memory, MemoryCategory, SearchResult
from .search import MemorySearcher
from .store import MemoryStore

if TYPE_CHECKING:
    from .extractor import MemoryExtractor

logger = logging.getLogger(__name__)


class MemoryManager:
    """Orchestrates the pipeline: extract, store, and recall memories.

    extract_and_store propagates every failure. capture and recall are the
    conversation-facing wrappers: they log failures and fall back to an
    empty result so a broken memory backend never breaks a reply.
    """

    def __init__(
        self,
        store: MemoryStore,
        searcher: MemorySearcher,
        extractor: MemoryExtractor | None = None,
        dedup_threshold: float | None = None,
        event_log: JSONLLogger | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store: The MemoryStore for persistence.
            searcher: The MemorySearcher for recall and deduplication.
            extractor: Optional MemoryExtractor for automatic extraction.
            dedup_threshold: When set, a candidate whose closest stored
                memory (same owner and category) scores at or above this
                value is not stored again.
            event_log: JSONL event log, the global logger if None.
        """
        self.store = store
        self.searcher = searcher
        self.extractor = extractor
        self.dedup_threshold = dedup_threshold
        self._event_log = event_log

    @property
    def event_log(self) -> JSONLLogger:
        if self._event_log is None:
            self._event_log = get_logger()
        return self._event_log

    async def extract_and_store(self, owner_id: str, message: str) -> list[Memory]:
        """Extract facts from a message and store each of them.

        Facts are stored one by one. If one fails the error propagates and
        the ones already stored stay stored.

        Args:
            owner_id: The user who wrote the message.
            message: The raw message, kept as each memory's source_message.

        Returns:
            The memories stored for this message (empty if no extractor or
            nothing worth remembering).
        """
        stored: list[Memory] = []
        await self._store_all(owner_id, message, stored)
        return stored

    async def _store_all(self, owner_id: str, message: str, stored: list[Memory]) -> None:
        """Extract and store, appending each stored memory to stored as it lands."""
        if not self.extractor:
            return

        start = time.monotonic()
        result = await self.extractor.extract(message)
        self.event_log.log_extraction(
            owner_id,
            count=len(result.memories),
            duration_ms=(time.monotonic() - start) * 1000,
        )

        for candidate in result.memories:
            if await self._is_duplicate(owner_id, candidate):
                continue

            memory = await self.store.add_memory(
                owner_id,
                candidate.content,
                candidate.category,
                source_message=message,
            )
            self.event_log.log_memory_added(owner_id, memory.id, memory.category.value)
            stored.append(memory)

        logger.debug("Stored %d memories for owner %s", len(stored), owner_id)

    async def capture(self, owner_id: str, message: str) -> list[Memory]:
        """Like extract_and_store, but never raises pipeline errors.

        Memories stored before a failure stay stored; their count is
        recorded with the failure.

        Returns:
            The stored memories, or an empty list if anything failed.
        """
        stored: list[Memory] = []
        try:
            await self._store_all(owner_id, message, stored)
        except MemoryPipelineError as e:
            logger.warning(
                "Failed to capture memories after storing %d (non-critical): %s",
                len(stored),
                e,
            )
            self.event_log.log_failure("capture", owner_id, str(e), stored=len(stored))
            return []
        return stored

    async def recall(
        self,
        owner_id: str,
        query: str,
        limit: int | None = None,
        category: MemoryCategory | str | None = None,
    ) -> list[SearchResult]:
        """Search memories, degrading to no context when the backend fails.

        Raises:
            InvalidMemoryInput: For invalid arguments, which are caller bugs.
        """
        start = time.monotonic()
        try:
            results = await self.searcher.search_memories(
                owner_id, query, limit=limit, category=category
            )
        except InvalidMemoryInput:
            raise
        except MemoryPipelineError as e:
            logger.warning("Memory search failed, continuing without context: %s", e)
            self.event_log.log_failure("recall", owner_id, str(e))
            return []

        self.event_log.log_search(
            owner_id,
            limit=limit,
            count=len(results),
            duration_ms=(time.monotonic() - start) * 1000,
        )
        return results

    async def load_all(self, owner_id: str) -> list[Memory]:
        """Load all memories of an owner, newest first."""
        return await self.store.get_all_memories(owner_id)

    def format_for_prompt(self, results: list[SearchResult]) -> str:
        """Format recalled memories as a block for a system prompt.

        Args:
            results: Memories to format.

        Returns:
            XML-formatted memory block, or empty string if no results.
        """
        if not results:
            return ""

        lines = [f"- {result.content} ({result.category.value})" for result in results]
        content = "\n".join(lines)

        return f"""<memory>
What you know about the user:
{content}
</memory>"""

    async def _is_duplicate(self, owner_id: str, candidate: ExtractedMemory) -> bool:
        if self.dedup_threshold is None:
            return False

        matches = await self.searcher.search_memories(
            owner_id, candidate.content, limit=1, category=candidate.category
        )
        if matches and matches[0].score >= self.dedup_threshold:
            self.event_log.log_memory_skipped(owner_id, matches[0].id, matches[0].score)
            logger.debug("Skipping duplicate of %s: %r", matches[0].id, candidate.content)
            return True
        return False
