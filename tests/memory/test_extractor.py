"""Tests for MemoryExtractor."""

import json
from unittest.mock import AsyncMock

import pytest

from factkeeper.memory import (
    GenerationError,
    MemoryCategory,
    MemoryExtractor,
)
from factkeeper.memory.extractor import EXTRACTION_SYSTEM_PROMPT


@pytest.fixture
def mock_llm() -> AsyncMock:
    """Create a mock text generator."""
    return AsyncMock()


@pytest.fixture
def extractor(mock_llm: AsyncMock) -> MemoryExtractor:
    """Create a MemoryExtractor with mock LLM."""
    return MemoryExtractor(mock_llm)


def make_reply(memories: list[dict], has_memories: bool | None = None) -> str:
    """Create a well-formed extraction reply."""
    if has_memories is None:
        has_memories = bool(memories)
    return json.dumps({"memories": memories, "hasMemories": has_memories})


class TestMemoryExtractorExtract:
    """Tests for the extract method."""

    @pytest.mark.asyncio
    async def test_valid_extraction(self, extractor: MemoryExtractor, mock_llm: AsyncMock):
        """Valid JSON response is parsed into candidates, in order."""
        mock_llm.complete.return_value = make_reply(
            [
                {"content": "User's name is Alice", "category": "personal_info"},
                {"content": "User prefers technical explanations", "category": "preferences"},
            ]
        )

        result = await extractor.extract("My name is Alice, I like technical answers")

        assert result.has_memories is True
        assert len(result.memories) == 2
        assert result.memories[0].content == "User's name is Alice"
        assert result.memories[0].category is MemoryCategory.PERSONAL_INFO
        assert result.memories[1].category is MemoryCategory.PREFERENCES

    @pytest.mark.asyncio
    async def test_sends_message_and_system_prompt(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        """The message is quoted in the prompt and the system prompt is set."""
        mock_llm.complete.return_value = make_reply([])

        await extractor.extract("I have a cat named Tom")

        mock_llm.complete.assert_awaited_once()
        prompt = mock_llm.complete.call_args.args[0]
        assert '"I have a cat named Tom"' in prompt
        assert mock_llm.complete.call_args.kwargs["system"] == EXTRACTION_SYSTEM_PROMPT

    def test_system_prompt_lists_every_category(self):
        for category in MemoryCategory:
            assert category.value in EXTRACTION_SYSTEM_PROMPT

    @pytest.mark.asyncio
    async def test_no_memorable_content(self, extractor: MemoryExtractor, mock_llm: AsyncMock):
        """A reply without facts gives an empty result."""
        mock_llm.complete.return_value = make_reply([])

        result = await extractor.extract("Hi! How are you?")

        assert result.has_memories is False
        assert result.memories == []

    @pytest.mark.asyncio
    async def test_blank_message_skips_llm(self, extractor: MemoryExtractor, mock_llm: AsyncMock):
        """Blank messages return empty without calling the LLM."""
        result = await extractor.extract("   \n ")

        assert result.has_memories is False
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_markdown_code_block_stripped(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        """Markdown code blocks are stripped from response."""
        mock_llm.complete.return_value = (
            "```json\n"
            + make_reply([{"content": "User is 30 years old", "category": "personal_info"}])
            + "\n```"
        )

        result = await extractor.extract("I'm 30")

        assert len(result.memories) == 1
        assert result.memories[0].content == "User is 30 years old"

    @pytest.mark.asyncio
    async def test_code_block_without_language(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        mock_llm.complete.return_value = (
            "Here you go:\n```\n"
            + make_reply([{"content": "User works at a bank", "category": "work"}])
            + "\n```\nHope it helps."
        )

        result = await extractor.extract("I work at a bank")

        assert [m.category for m in result.memories] == [MemoryCategory.WORK]

    @pytest.mark.asyncio
    async def test_json_surrounded_by_prose(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        """An unfenced JSON object inside prose is still found."""
        mock_llm.complete.return_value = (
            "Sure! "
            + make_reply([{"content": "User has a dentist appointment on Friday", "category": "events"}])
            + " Let me know if you need more."
        )

        result = await extractor.extract("Dentist on Friday")

        assert result.memories[0].category is MemoryCategory.EVENTS

    @pytest.mark.asyncio
    async def test_has_memories_derived_from_list(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        """The model's hasMemories flag is not trusted over the list itself."""
        mock_llm.complete.return_value = make_reply([], has_memories=True)

        result = await extractor.extract("hello")

        assert result.has_memories is False

    @pytest.mark.asyncio
    async def test_content_is_trimmed(self, extractor: MemoryExtractor, mock_llm: AsyncMock):
        mock_llm.complete.return_value = make_reply(
            [{"content": "  User likes jazz \n", "category": "interests"}]
        )

        result = await extractor.extract("I love jazz")

        assert result.memories[0].content == "User likes jazz"

    @pytest.mark.asyncio
    async def test_long_symbol_heavy_message(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        """Very long messages full of symbols don't crash extraction."""
        mock_llm.complete.return_value = make_reply([])
        message = ('{"}]`\\ ' * 5000) + "Меня зовут Алиса 🙂"

        result = await extractor.extract(message)

        assert result.has_memories is False
        assert message in mock_llm.complete.call_args.args[0]


class TestMemoryExtractorMalformedOutput:
    """Unparseable replies are treated as 'nothing to remember'."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            "not valid json",
            "",
            "[]",
            '{"data": []}',
            '{"memories": "none"}',
            '{"memories": [], "hasMemories": "no"}',
            '{"memories": [{"content": "User is tired"',
            "```json\n{broken\n```",
        ],
    )
    async def test_malformed_reply_returns_empty(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock, reply: str
    ):
        mock_llm.complete.return_value = reply

        result = await extractor.extract("test")

        assert result.has_memories is False
        assert result.memories == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            '{"memories": ' + "[" * 100_000 + "]" * 100_000 + "}",
            'Sure: {"memories": ' + "[" * 100_000 + "]" * 100_000 + "}",
            '{"memories": [], "hasMemories": ' + "9" * 5000 + "}",
        ],
        ids=["deep-nesting", "deep-nesting-in-prose", "huge-integer"],
    )
    async def test_pathological_json_returns_empty(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock, reply: str
    ):
        """Replies json can't decode at all are still just malformed output."""
        mock_llm.complete.return_value = reply

        result = await extractor.extract("test")

        assert result.memories == []

    @pytest.mark.asyncio
    async def test_unknown_category_rejects_reply(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        """An off-taxonomy category is not coerced; the reply is discarded."""
        mock_llm.complete.return_value = make_reply(
            [
                {"content": "User's name is Alice", "category": "personal_info"},
                {"content": "User plays chess", "category": "hobbies"},
            ]
        )

        result = await extractor.extract("I'm Alice and I play chess")

        assert result.memories == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "item",
        [
            "User likes tea",
            {"category": "preferences"},
            {"content": "", "category": "preferences"},
            {"content": "   ", "category": "preferences"},
            {"content": 42, "category": "preferences"},
            {"content": "User likes tea"},
        ],
    )
    async def test_invalid_item_rejects_reply(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock, item
    ):
        mock_llm.complete.return_value = json.dumps({"memories": [item], "hasMemories": True})

        result = await extractor.extract("I like tea")

        assert result.has_memories is False


class TestMemoryExtractorGenerationFailure:
    """Failures of the LLM call itself propagate."""

    @pytest.mark.asyncio
    async def test_llm_error_raises_generation_error(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        error = RuntimeError("rate limited")
        mock_llm.complete.side_effect = error

        with pytest.raises(GenerationError, match="rate limited") as exc_info:
            await extractor.extract("My name is Alice")

        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_timeout_raises_generation_error(
        self, extractor: MemoryExtractor, mock_llm: AsyncMock
    ):
        mock_llm.complete.side_effect = TimeoutError()

        with pytest.raises(GenerationError):
            await extractor.extract("My name is Alice")


class TestMemoryExtractorExport:
    """Tests for module exports."""

    def test_exported_from_package(self):
        """MemoryExtractor is exported from memory package."""
        from factkeeper.memory import MemoryExtractor as ExportedExtractor

        assert ExportedExtractor is MemoryExtractor
