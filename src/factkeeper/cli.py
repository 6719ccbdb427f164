"""Command-line interface for the memory pipeline.

Provides subcommands to capture facts from a message, add a fact by hand,
search and list a user's memories.
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from groq import AsyncGroq

from .config import (
    EMBEDDING_API_KEY_ENV,
    GROQ_API_KEY_ENV,
    PipelineConfig,
    get_api_key,
    load_config,
)
from .llm_client import GroqLLMClient
from .logging import configure_logger
from .memory import (
    CachedEmbeddingProvider,
    EmbeddingProvider,
    Memory,
    MemoryCategory,
    MemoryExtractor,
    MemoryManager,
    MemoryPipelineError,
    MemorySearcher,
    MemoryStore,
    OpenAIEmbeddingProvider,
    StorageError,
)


@dataclass
class Pipeline:
    """The wired components, owned by one CLI invocation."""

    store: MemoryStore
    searcher: MemorySearcher
    manager: MemoryManager
    embedder: EmbeddingProvider

    async def aclose(self) -> None:
        self.store.close()
        provider = getattr(self.embedder, "provider", self.embedder)
        aclose = getattr(provider, "aclose", None)
        if aclose is not None:
            await aclose()


def build_pipeline(config: PipelineConfig, with_extractor: bool = False) -> Pipeline:
    """Create the pipeline components from config and environment.

    Args:
        config: Loaded configuration.
        with_extractor: Also create the Groq-backed extractor, which
            requires GROQ_API_KEY.

    Raises:
        ValueError: If a required API key is missing.
        StorageError: If the database can't be opened.
    """
    embedding_key = get_api_key(EMBEDDING_API_KEY_ENV)
    groq_key = get_api_key(GROQ_API_KEY_ENV) if with_extractor else None

    # No HTTP client is opened until the first embed
    embedder: EmbeddingProvider = OpenAIEmbeddingProvider(
        api_key=embedding_key,
        model=config.embedding_model,
        dimensions=config.embedding_dimensions,
        base_url=config.embedding_base_url,
    )
    if config.embedding_cache:
        embedder = CachedEmbeddingProvider(embedder)

    store = MemoryStore(config.db_path, embedder)
    try:
        store.init_db()
    except StorageError:
        store.close()
        raise

    extractor = None
    if groq_key is not None:
        groq = AsyncGroq(api_key=groq_key)
        extractor = MemoryExtractor(GroqLLMClient(groq, model=config.extraction_model))

    searcher = MemorySearcher(store, embedder, default_limit=config.search_limit)
    manager = MemoryManager(
        store,
        searcher,
        extractor=extractor,
        dedup_threshold=config.dedup_threshold,
    )
    return Pipeline(store=store, searcher=searcher, manager=manager, embedder=embedder)


def _print_memory(memory: Memory) -> None:
    print(f"[{memory.category.value}] {memory.content}")
    print(f"    id: {memory.id}  created: {memory.created_at}")


async def cmd_remember(args: argparse.Namespace, pipeline: Pipeline) -> int:
    """Extract facts from a message and store them."""
    memories = await pipeline.manager.extract_and_store(args.user, args.message)

    if not memories:
        print("Nothing worth remembering.")
        return 0

    for memory in memories:
        _print_memory(memory)
    print(f"\nStored: {len(memories)} memory(ies)")
    return 0


async def cmd_add(args: argparse.Namespace, pipeline: Pipeline) -> int:
    """Store a single fact as given."""
    memory = await pipeline.store.add_memory(args.user, args.content, args.category)
    _print_memory(memory)
    return 0


async def cmd_search(args: argparse.Namespace, pipeline: Pipeline) -> int:
    """Search a user's memories."""
    results = await pipeline.searcher.search_memories(
        args.user, args.query, limit=args.limit, category=args.category
    )

    if not results:
        print("No memories found.")
        return 0

    print(f"\n{'Score':<8} {'Category':<15} Content")
    print("-" * 80)
    for result in results:
        print(f"{result.score:<8.3f} {result.category.value:<15} {result.content}")
    return 0


async def cmd_list(args: argparse.Namespace, pipeline: Pipeline) -> int:
    """List all memories of a user, newest first."""
    memories = await pipeline.manager.load_all(args.user)

    if not memories:
        print("No memories found.")
        return 0

    for memory in memories:
        _print_memory(memory)
    print(f"\nTotal: {len(memories)} memory(ies)")
    return 0


def cmd_categories(args: argparse.Namespace) -> int:
    """Show the category taxonomy."""
    for category in MemoryCategory:
        print(f"{category.value:<15} {category.description}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="factkeeper",
        description="Extract, store and search facts about users",
    )
    parser.add_argument(
        "--config",
        type=lambda p: Path(p).expanduser(),
        help="Path to config.json (default: ~/.factkeeper/config.json)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Sub-command help")

    remember_parser = subparsers.add_parser(
        "remember", help="Extract and store facts from a message"
    )
    remember_parser.add_argument("user", help="Owner id of the message")
    remember_parser.add_argument("message", help="The message text")

    add_parser = subparsers.add_parser("add", help="Store a single fact")
    add_parser.add_argument("user", help="Owner id of the fact")
    add_parser.add_argument("category", choices=MemoryCategory.values())
    add_parser.add_argument("content", help="The fact, in third person")

    search_parser = subparsers.add_parser("search", help="Search a user's memories")
    search_parser.add_argument("user", help="Owner id to search")
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument(
        "-n", "--limit",
        type=int,
        help="Maximum number of results",
    )
    search_parser.add_argument(
        "-c", "--category",
        choices=MemoryCategory.values(),
        help="Only search this category",
    )

    list_parser = subparsers.add_parser("list", help="List a user's memories")
    list_parser.add_argument("user", help="Owner id")

    subparsers.add_parser("categories", help="Show the category taxonomy")

    return parser


async def _run_async(
    handler: Callable[[argparse.Namespace, Pipeline], Awaitable[int]],
    args: argparse.Namespace,
    pipeline: Pipeline,
) -> int:
    try:
        return await handler(args, pipeline)
    finally:
        await pipeline.aclose()


def run_cli(argv: list[str] | None = None) -> int:
    """Run the CLI with given arguments.

    Args:
        argv: Command-line arguments. Uses sys.argv[1:] if None.

    Returns:
        Exit code (0 for success, non-zero for error).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "categories":
        return cmd_categories(args)

    commands = {
        "remember": cmd_remember,
        "add": cmd_add,
        "search": cmd_search,
        "list": cmd_list,
    }

    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config)
        configure_logger(config.log_dir)
        pipeline = build_pipeline(config, with_extractor=args.command == "remember")
    except (ValueError, MemoryPipelineError) as e:
        print(f"Error: {e}")
        return 1

    try:
        return asyncio.run(_run_async(handler, args, pipeline))
    except MemoryPipelineError as e:
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(run_cli())
