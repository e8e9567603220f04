"""Domain entities for chat messages — framework-independent."""

from dataclasses import dataclass, field


@dataclass
class ChatMessage:
    """A single role-tagged message in a conversation."""

    role: str  # "system" | "user" | "assistant"
    content: str = ""


@dataclass
class TokenUsage:
    """Token usage statistics from a completion."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost: float | None = None  # Cost in USD, if available from provider


@dataclass
class ChatCompletionResult:
    """Result from a chat completion call."""

    model: str
    content: str
    finish_reason: str  # "stop" | "length" | "error"
    usage: TokenUsage = field(default_factory=TokenUsage)
    provider: str = ""


@dataclass
class CompletionChunk:
    """One increment of a streamed completion.

    Text fragments carry ``content``; the provider's final usage report
    arrives as a chunk with ``usage`` set (and usually empty content).
    """

    content: str = ""
    usage: TokenUsage | None = None
    model: str | None = None
    finish_reason: str | None = None
