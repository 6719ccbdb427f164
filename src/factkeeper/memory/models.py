"""Data models for the memory pipeline."""

from dataclasses import dataclass, field
from enum import Enum


class MemoryCategory(Enum):
    """Closed taxonomy of memory subjects.

    Values are the stable wire strings shared by the extraction prompt,
    the database and search results.
    """

    PERSONAL_INFO = "personal_info"
    HEALTH = "health"
    PREFERENCES = "preferences"
    EVENTS = "events"
    INTERESTS = "interests"
    WORK = "work"
    OTHER = "other"

    @property
    def description(self) -> str:
        """Short explanation of what belongs in this category."""
        descriptions = {
            MemoryCategory.PERSONAL_INFO: "name, age, location, family",
            MemoryCategory.HEALTH: "symptoms, conditions, medications",
            MemoryCategory.PREFERENCES: "likes, dislikes, communication style",
            MemoryCategory.EVENTS: "upcoming appointments, deadlines",
            MemoryCategory.INTERESTS: "hobbies, favorite topics",
            MemoryCategory.WORK: "job, projects, colleagues",
            MemoryCategory.OTHER: "anything memorable that fits nowhere else",
        }
        return descriptions[self]

    @classmethod
    def values(cls) -> list[str]:
        """All wire values, in declaration order."""
        return [member.value for member in cls]


@dataclass(frozen=True)
class Memory:
    """A persisted fact about a user.

    Attributes:
        id: UUID assigned by the store.
        owner_id: The user the fact belongs to.
        content: Third-person statement of the fact.
        category: Subject of the fact.
        embedding: Vector representation of content.
        source_message: Raw message the fact came from, for auditing.
        created_at: ISO timestamp when created.
        updated_at: ISO timestamp, equal to created_at (rows are never updated).
    """

    id: str
    owner_id: str
    content: str
    category: MemoryCategory
    embedding: tuple[float, ...]
    source_message: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ExtractedMemory:
    """A candidate fact produced by extraction, not yet stored."""

    content: str
    category: MemoryCategory


@dataclass
class ExtractionResult:
    """Candidates extracted from a single message, in extraction order."""

    memories: list[ExtractedMemory] = field(default_factory=list)

    @property
    def has_memories(self) -> bool:
        return bool(self.memories)


@dataclass(frozen=True)
class SearchResult:
    """A stored fact matched by a similarity search.

    The score is whatever the search backend reported; higher is more
    relevant.
    """

    id: str
    content: str
    category: MemoryCategory
    score: float
