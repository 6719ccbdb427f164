"""LLM client used by memory extraction.

The extractor depends only on the TextGenerator Protocol, so tests and
other providers can stand in for Groq.
"""

from typing import Any, Protocol

from groq import AsyncGroq

DEFAULT_MODEL = "llama-3.3-70b-versatile"


class TextGenerator(Protocol):
    """Anything that can turn a prompt into text."""

    async def complete(self, prompt: str, system: str | None = None) -> str:
        """Complete a prompt and return the text response."""
        ...


class GroqLLMClient:
    """TextGenerator implementation that wraps AsyncGroq.

    Example:
        from groq import AsyncGroq
        from factkeeper.llm_client import GroqLLMClient

        groq = AsyncGroq(api_key="...")
        llm = GroqLLMClient(groq, model="llama-3.3-70b-versatile")
        text = await llm.complete("Hola", system="Answer briefly")
    """

    def __init__(
        self,
        client: AsyncGroq,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.1,
        max_tokens: int = 500,
    ) -> None:
        """Initialize the Groq LLM client wrapper.

        Args:
            client: The AsyncGroq client instance to wrap.
            model: The model to use for completions.
            temperature: Sampling temperature, low for consistent output.
            max_tokens: Upper bound on the completion length.
        """
        self._client = client
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def complete(self, prompt: str, system: str | None = None) -> str:
        """Complete a prompt and return the text response.

        Args:
            prompt: The user prompt to complete.
            system: Optional system prompt to set context.

        Returns:
            The LLM's text response, empty string if it returned no content.
        """
        messages: list[dict[str, Any]] = []

        if system:
            messages.append({"role": "system", "content": system})

        messages.append({"role": "user", "content": prompt})

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        return response.choices[0].message.content or ""

    @property
    def model(self) -> str:
        """Return the model being used."""
        return self._model
