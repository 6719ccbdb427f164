"""JSONL logging for observability of the memory pipeline."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    owner_id: str | None = None
    memory_id: str | None = None
    category: str | None = None
    count: int | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured pipeline events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "logs.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".factkeeper" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        """Write a log entry to the file."""
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")

    def log(
        self,
        event: str,
        *,
        owner_id: str | None = None,
        memory_id: str | None = None,
        category: str | None = None,
        count: int | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            owner_id=owner_id,
            memory_id=memory_id,
            category=category,
            count=count,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_extraction(self, owner_id: str, count: int, duration_ms: float) -> None:
        """Log how many candidates one message produced."""
        self.log(
            "memory_extracted",
            owner_id=owner_id,
            count=count,
            duration_ms=duration_ms,
        )

    def log_memory_added(self, owner_id: str, memory_id: str, category: str) -> None:
        self.log(
            "memory_added",
            owner_id=owner_id,
            memory_id=memory_id,
            category=category,
        )

    def log_memory_skipped(
        self, owner_id: str, duplicate_of: str, similarity: float
    ) -> None:
        """Log a candidate dropped as a near-duplicate."""
        self.log(
            "memory_skipped",
            owner_id=owner_id,
            memory_id=duplicate_of,
            similarity=similarity,
        )

    def log_search(
        self,
        owner_id: str,
        limit: int | None,
        count: int,
        duration_ms: float,
    ) -> None:
        self.log(
            "memory_search",
            owner_id=owner_id,
            count=count,
            duration_ms=duration_ms,
            limit=limit,
        )

    def log_failure(self, operation: str, owner_id: str, error: str, **extra: Any) -> None:
        """Log a pipeline failure absorbed at the boundary."""
        self.log(
            "memory_failure",
            owner_id=owner_id,
            error=error,
            operation=operation,
            **extra,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
