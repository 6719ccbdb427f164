"""Fact extraction from user messages using an LLM."""

import json
import logging
import re
from typing import Any

from ..llm_client import TextGenerator
from .errors import GenerationError, MalformedExtractionOutput
from .models import ExtractedMemory, ExtractionResult, MemoryCategory

logger = logging.getLogger(__name__)

_CATEGORY_LINES = "\n".join(
    f"- {category.value}: {category.description}" for category in MemoryCategory
)

EXTRACTION_SYSTEM_PROMPT = f"""You are a memory extraction assistant. Your task is to identify important facts about the user from their message.

Extract ONLY concrete, factual information that would be useful to remember long-term.

Categories (use exactly one of these values):
{_CATEGORY_LINES}

Rules:
1. Extract only EXPLICIT facts, don't infer or assume
2. Keep each fact concise (1 sentence)
3. Use third person ("User's name is...", "User prefers...")
4. Skip greetings, small talk, questions
5. If no memorable facts, return an empty array

Respond ONLY with JSON in this format:
{{
  "memories": [
    {{"content": "fact text", "category": "category_name"}}
  ],
  "hasMemories": true/false
}}"""

# A fenced block anywhere in the reply, with an optional language tag
_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)


class MemoryExtractor:
    """Extracts categorized facts from a single user message."""

    def __init__(self, llm: TextGenerator) -> None:
        """Initialize the extractor.

        Args:
            llm: Text generator used to run the extraction prompt.
        """
        self.llm = llm

    async def extract(self, message: str) -> ExtractionResult:
        """Extract memorable facts from a message.

        A failing LLM call is raised as GenerationError. A reply that can't
        be parsed is treated as "nothing to remember".

        Args:
            message: Free-text user message.

        Returns:
            The extracted candidates, possibly empty.

        Raises:
            GenerationError: If the LLM call itself failed.
        """
        if not message or not message.strip():
            return ExtractionResult()

        prompt = f'Extract memorable facts from this user message:\n\n"{message}"'

        try:
            content = await self.llm.complete(prompt, system=EXTRACTION_SYSTEM_PROMPT)
        except Exception as e:
            raise GenerationError(f"Memory extraction call failed: {e}") from e

        try:
            return self._parse_response(content)
        except MalformedExtractionOutput as e:
            logger.warning("Discarding extraction output: %s", e)
            return ExtractionResult()

    def _parse_response(self, content: str) -> ExtractionResult:
        """Parse the raw LLM reply into an ExtractionResult.

        Raises:
            MalformedExtractionOutput: If the reply doesn't match the schema.
        """
        data = self._load_json(content)

        if not isinstance(data, dict):
            raise MalformedExtractionOutput("response is not a JSON object")

        items = data.get("memories")
        if not isinstance(items, list):
            raise MalformedExtractionOutput("'memories' must be a list")

        flag = data.get("hasMemories", data.get("has_memories"))
        if flag is not None and not isinstance(flag, bool):
            raise MalformedExtractionOutput("'hasMemories' must be a boolean")

        memories = [self._parse_item(item) for item in items]
        if flag is False and memories:
            logger.debug("Model reported no memories but listed %d", len(memories))

        return ExtractionResult(memories=memories)

    def _parse_item(self, item: Any) -> ExtractedMemory:
        if not isinstance(item, dict):
            raise MalformedExtractionOutput(f"memory item is not an object: {item!r}")

        content = item.get("content")
        if not isinstance(content, str) or not content.strip():
            raise MalformedExtractionOutput(f"memory item has no content: {item!r}")

        category = item.get("category")
        try:
            parsed = MemoryCategory(category)
        except ValueError:
            raise MalformedExtractionOutput(f"unknown category: {category!r}") from None

        return ExtractedMemory(content=content.strip(), category=parsed)

    def _load_json(self, content: str) -> Any:
        """Decode the JSON payload, unwrapping markdown fences if present."""
        text = (content or "").strip()

        # The LLM might wrap it in markdown code blocks
        match = _FENCE_RE.search(text)
        if match:
            text = match.group(1).strip()

        try:
            return _decode(text)
        except json.JSONDecodeError:
            pass

        # Fall back to the outermost object when the JSON is surrounded by prose
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            raise MalformedExtractionOutput("no JSON object in response")

        try:
            return _decode(text[start : end + 1])
        except json.JSONDecodeError as e:
            raise MalformedExtractionOutput(f"invalid JSON: {e}") from e


def _decode(text: str) -> Any:
    """json.loads that reports undecodable payloads as malformed output.

    Syntax errors are left as JSONDecodeError so the caller can try another
    span. Excessive nesting and over-long integer literals are final.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        raise
    except RecursionError:
        raise MalformedExtractionOutput("JSON nested too deeply") from None
    except ValueError as e:
        raise MalformedExtractionOutput(f"invalid JSON: {e}") from e
