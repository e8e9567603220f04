"""Abstract chat provider interface — port for completion provider adapters."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from grounded_qa.domain.entities import ChatMessage, ChatCompletionResult, CompletionChunk


class ChatProvider(ABC):
    """Port — defines what the application layer needs from any chat provider."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique name identifying this provider (e.g. 'openrouter')."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[ChatMessage],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatCompletionResult:
        """Send a non-streaming chat completion request.

        Args:
            messages: The conversation history.
            model: The model identifier (e.g. 'openai/gpt-4o-mini').
            temperature: Sampling temperature (0.0–2.0).
            max_tokens: Maximum tokens in the response.

        Returns:
            A ChatCompletionResult with content and usage.

        Raises:
            CompletionProviderError: If the provider returns an error.
        """
        ...

    @abstractmethod
    def stream(
        self,
        messages: list[ChatMessage],
        model: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[CompletionChunk]:
        """Send a streaming chat completion request.

        Yields text fragments in order; the final usage report arrives as a
        CompletionChunk with ``usage`` set.

        Raises:
            CompletionProviderError: If the provider returns an error.
        """
        ...
