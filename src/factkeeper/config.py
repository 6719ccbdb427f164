"""Pipeline configuration loader.

Loads settings from ~/.factkeeper/config.json. API keys are never read
from the file; they come from the environment (optionally via .env).
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, TypeVar

from .llm_client import DEFAULT_MODEL
from .memory.embeddings import DEFAULT_BASE_URL, EMBEDDING_DIMS, EMBEDDING_MODEL
from .memory.search import DEFAULT_SEARCH_LIMIT

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONFIG_PATH = Path.home() / ".factkeeper" / "config.json"

GROQ_API_KEY_ENV = "GROQ_API_KEY"
EMBEDDING_API_KEY_ENV = "OPENROUTER_API_KEY"


@dataclass
class PipelineConfig:
    """Configuration for the memory pipeline.

    Attributes:
        db_path: SQLite database file (~/.factkeeper/memory.db).
        extraction_model: Groq model used for fact extraction.
        embedding_model: Embedding model name.
        embedding_base_url: Root of the OpenAI-compatible embedding API.
        embedding_dimensions: Fixed vector length of the embedding model.
        search_limit: Default number of search results.
        dedup_threshold: Skip new facts this similar to an existing one.
            None disables deduplication.
        embedding_cache: Memoize embeddings by exact text.
        log_dir: Directory for the JSONL event log (~/.factkeeper/logs).
    """

    db_path: Path | None = None
    extraction_model: str = DEFAULT_MODEL
    embedding_model: str = EMBEDDING_MODEL
    embedding_base_url: str = DEFAULT_BASE_URL
    embedding_dimensions: int = EMBEDDING_DIMS
    search_limit: int = DEFAULT_SEARCH_LIMIT
    dedup_threshold: float | None = None
    embedding_cache: bool = False
    log_dir: Path | None = None

    def __post_init__(self) -> None:
        """Validate config and set defaults."""
        if self.db_path is None:
            self.db_path = Path.home() / ".factkeeper" / "memory.db"

        if self.log_dir is None:
            self.log_dir = Path.home() / ".factkeeper" / "logs"

        if self.embedding_dimensions < 1:
            raise ValueError("embedding_dimensions must be at least 1")

        if self.search_limit < 1:
            raise ValueError("search_limit must be at least 1")

        if self.dedup_threshold is not None and not 0 < self.dedup_threshold <= 1:
            raise ValueError("dedup_threshold must be in (0, 1]")


def load_config(config_path: Path | None = None) -> PipelineConfig:
    """Load PipelineConfig from a JSON file.

    The config file should have this structure:
    ```json
    {
      "memory": {
        "db_path": "~/.factkeeper/memory.db",
        "extraction_model": "llama-3.3-70b-versatile",
        "embedding": {
          "model": "baai/bge-m3",
          "base_url": "https://openrouter.ai/api/v1",
          "dimensions": 1024,
          "cache": false
        },
        "search_limit": 5,
        "dedup_threshold": 0.95,
        "log_dir": "~/.factkeeper/logs"
      }
    }
    ```

    Args:
        config_path: Path to config file. Uses DEFAULT_CONFIG_PATH if None.

    Returns:
        PipelineConfig instance with loaded values.

    Raises:
        ValueError: If the file holds invalid values.
    """
    path = config_path or DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return PipelineConfig()

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in %s: %s. Using defaults.", path, e)
        return PipelineConfig()
    except OSError as e:
        logger.warning("Cannot read %s: %s. Using defaults.", path, e)
        return PipelineConfig()

    return _parse_config(data)


def _section(data: Any, name: str) -> dict[str, Any]:
    """Return a nested config object, {} if absent.

    Raises:
        ValueError: If the value is present but not an object.
    """
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{name}' must be an object, got {type(value).__name__}")
    return value


def _convert(section: dict[str, Any], key: str, convert: Callable[[Any], T]) -> T | None:
    """Convert an optional setting, None if absent or null.

    Raises:
        ValueError: If the value can't be converted.
    """
    value = section.get(key)
    if value is None:
        return None
    try:
        return convert(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for '{key}': {value!r}") from e


def _strict_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError("expected true or false")
    return value


def _strict_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise TypeError("expected an integer")
    return int(value)


def _path(value: Any) -> Path:
    return Path(value).expanduser()


def _parse_config(data: Any) -> PipelineConfig:
    """Parse config dictionary into PipelineConfig.

    Args:
        data: Raw config dictionary.

    Returns:
        PipelineConfig instance.

    Raises:
        ValueError: If a section or a value has the wrong type.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Config must be a JSON object, got {type(data).__name__}")

    memory = _section(data, "memory")
    embedding = _section(memory, "embedding")

    settings = {
        "db_path": _convert(memory, "db_path", _path),
        "log_dir": _convert(memory, "log_dir", _path),
        "extraction_model": _convert(memory, "extraction_model", str),
        "search_limit": _convert(memory, "search_limit", _strict_int),
        "dedup_threshold": _convert(memory, "dedup_threshold", float),
        "embedding_model": _convert(embedding, "model", str),
        "embedding_base_url": _convert(embedding, "base_url", str),
        "embedding_dimensions": _convert(embedding, "dimensions", _strict_int),
        "embedding_cache": _convert(embedding, "cache", _strict_bool),
    }

    return PipelineConfig(**{k: v for k, v in settings.items() if v is not None})


def get_api_key(name: str) -> str:
    """Read an API key from the environment.

    Raises:
        ValueError: If the variable is unset or empty.
    """
    value = os.getenv(name)
    if not value:
        raise ValueError(f"{name} environment variable is required")
    return value
