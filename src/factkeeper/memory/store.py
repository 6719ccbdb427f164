"""SQLite storage for user memories."""

import asyncio
import logging
import sqlite3
import threading
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, TypeVar

import numpy as np

from .embeddings import EmbeddingProvider
from .errors import EmbeddingDimensionError, InvalidMemoryInput, StorageError
from .models import Memory, MemoryCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CATEGORY_CHECK = ", ".join(f"'{value}'" for value in MemoryCategory.values())

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS user_memories (
    id              TEXT PRIMARY KEY,
    owner_id        TEXT NOT NULL,
    content         TEXT NOT NULL CHECK (length(trim(content)) > 0),
    category        TEXT NOT NULL CHECK (category IN ({_CATEGORY_CHECK})),
    embedding       BLOB NOT NULL,
    source_message  TEXT,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_memories_owner
    ON user_memories(owner_id, created_at DESC);
"""

_COLUMNS = "id, owner_id, content, category, embedding, source_message, created_at, updated_at"


def _pack_embedding(vector: Sequence[float]) -> bytes:
    """Serialize a vector as float32 bytes."""
    return np.asarray(vector, dtype=np.float32).tobytes()


def _unpack_embedding(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=np.float32)


def _coerce_category(category: MemoryCategory | str) -> MemoryCategory:
    if isinstance(category, MemoryCategory):
        return category
    try:
        return MemoryCategory(category)
    except ValueError:
        raise InvalidMemoryInput(
            f"Unknown memory category {category!r}; "
            f"expected one of {', '.join(MemoryCategory.values())}"
        ) from None


class MemoryStore:
    """Persistent, owner-scoped storage for memories using SQLite.

    Rows are append-only: add_memory always inserts, nothing here updates
    or deletes. The store also serves as the similarity backend for
    MemorySearcher through match_memories.

    sqlite3 is blocking, so every query runs in the default executor.
    A lock serializes access to the shared connection.
    """

    def __init__(self, db_path: Path, embedder: EmbeddingProvider) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file.
            embedder: Provider used to embed content on write.
        """
        self.db_path = db_path
        self.embedder = embedder
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def init_db(self) -> None:
        """Create the memories table if it doesn't exist.

        Raises:
            StorageError: If the database file can't be opened or created.
        """
        with self._lock:
            try:
                conn = self._get_connection()
                conn.executescript(_SCHEMA)
                conn.commit()
            except (sqlite3.Error, OSError) as e:
                raise StorageError(f"Failed to initialize database: {e}") from e

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        def locked() -> T:
            with self._lock:
                return func(self._get_connection())

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, locked)

    async def add_memory(
        self,
        owner_id: str,
        content: str,
        category: MemoryCategory | str,
        source_message: str | None = None,
    ) -> Memory:
        """Embed and insert a new memory.

        Args:
            owner_id: The user the memory belongs to.
            content: The fact, non-empty.
            category: A MemoryCategory or its wire value.
            source_message: Optional raw message the fact came from.

        Returns:
            The memory as read back from the database.

        Raises:
            InvalidMemoryInput: Before any I/O, if an argument is invalid.
            StorageError: If embedding or inserting failed.
        """
        if not owner_id:
            raise InvalidMemoryInput("owner_id is required")
        if not isinstance(content, str) or not content.strip():
            raise InvalidMemoryInput("Memory content cannot be empty")
        parsed = _coerce_category(category)
        content = content.strip()

        try:
            embedding = await self.embedder.embed(content)
            if len(embedding) != self.embedder.dimensions:
                raise EmbeddingDimensionError(self.embedder.dimensions, len(embedding))

            now = datetime.now(timezone.utc).isoformat()
            params = (
                str(uuid.uuid4()),
                owner_id,
                content,
                parsed.value,
                _pack_embedding(embedding),
                source_message,
                now,
                now,
            )

            def insert(conn: sqlite3.Connection) -> sqlite3.Row:
                cursor = conn.execute(
                    f"""
                    INSERT INTO user_memories ({_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    RETURNING {_COLUMNS}
                    """,
                    params,
                )
                row = cursor.fetchone()
                conn.commit()
                return row

            row = await self._run(insert)
        except Exception as e:
            raise StorageError(f"Failed to add memory: {e}") from e

        memory = self._row_to_memory(row)
        logger.debug("Added memory %s for owner %s", memory.id, owner_id)
        return memory

    async def get_all_memories(self, owner_id: str) -> list[Memory]:
        """Get all memories of an owner, newest first.

        Raises:
            StorageError: If the query failed.
        """
        if not owner_id:
            raise InvalidMemoryInput("owner_id is required")

        def select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            cursor = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM user_memories
                WHERE owner_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (owner_id,),
            )
            return cursor.fetchall()

        try:
            rows = await self._run(select)
        except Exception as e:
            raise StorageError(f"Failed to get memories: {e}") from e

        return [self._row_to_memory(row) for row in rows]

    async def match_memories(
        self,
        owner_id: str,
        query_embedding: Sequence[float],
        match_limit: int,
        category: MemoryCategory | None = None,
    ) -> list[dict[str, Any]]:
        """Rank an owner's memories by cosine similarity to a query vector.

        Args:
            owner_id: Only this owner's rows are considered.
            query_embedding: Vector of the query.
            match_limit: Maximum number of rows to return.
            category: Optionally restrict matches to one category.

        Returns:
            Rows of {id, content, category, similarity}, most similar first.
        """
        sql = "SELECT id, content, category, embedding FROM user_memories WHERE owner_id = ?"
        params: list[Any] = [owner_id]
        if category is not None:
            sql += " AND category = ?"
            params.append(category.value)

        def select(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            return conn.execute(sql, params).fetchall()

        rows = await self._run(select)
        if not rows:
            return []

        query = np.asarray(query_embedding, dtype=np.float32)
        matrix = np.vstack([_unpack_embedding(row["embedding"]) for row in rows])
        if matrix.shape[1] != query.shape[0]:
            raise EmbeddingDimensionError(matrix.shape[1], query.shape[0])

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(
            matrix @ query,
            norms,
            out=np.zeros(len(rows), dtype=np.float32),
            where=norms > 0,
        )

        # Stable sort keeps insertion order among equal scores
        order = np.argsort(-scores, kind="stable")[:match_limit]
        return [
            {
                "id": rows[i]["id"],
                "content": rows[i]["content"],
                "category": rows[i]["category"],
                "similarity": float(scores[i]),
            }
            for i in order
        ]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _row_to_memory(self, row: sqlite3.Row) -> Memory:
        """Convert a database row to a Memory."""
        return Memory(
            id=row["id"],
            owner_id=row["owner_id"],
            content=row["content"],
            category=MemoryCategory(row["category"]),
            embedding=tuple(float(x) for x in _unpack_embedding(row["embedding"])),
            source_message=row["source_message"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
