"""LLM call entities.

This module contains the value types exchanged with the provider:
- Message: A single role-tagged chat message
- CallRequest: One chat completion request (one transport call)
- CallResult: The assembled outcome of a logical call
- FinishReason: Why the provider stopped generating
- ModelMetadata: Context limits reported by the provider for a model
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

VALID_ROLES = frozenset({"system", "user", "assistant"})


class FinishReason(Enum):
    """Normalized provider finish reason."""

    STOP = "stop"
    LENGTH = "length"
    OTHER = "other"

    @classmethod
    def from_provider(cls, value: str | None) -> "FinishReason":
        """Map a provider finish_reason string onto the enum.

        Args:
            value: Raw finish_reason from the provider response

        Returns:
            STOP for "stop", LENGTH for "length"/"max_tokens", OTHER otherwise
        """
        if value is None:
            return cls.OTHER

        normalized = value.strip().lower()
        if normalized == "stop":
            return cls.STOP
        if normalized in {"length", "max_tokens"}:
            return cls.LENGTH
        return cls.OTHER


@dataclass(frozen=True)
class Message:
    """Single chat message.

    Attributes:
        role: system, user or assistant
        content: Message text
    """

    role: str
    content: str

    def __post_init__(self) -> None:
        """Validate the role."""
        if self.role not in VALID_ROLES:
            raise ValueError(
                f"Invalid role '{self.role}'. Must be one of: {sorted(VALID_ROLES)}"
            )

    def to_dict(self) -> dict[str, str]:
        """Convert to the provider wire format."""
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class CallRequest:
    """One chat completion request.

    Attributes:
        model: Provider model identifier (e.g. "google/gemini-2.0-flash-exp:free")
        messages: Ordered role-tagged messages
        max_tokens: Output token ceiling, None to let the budgeter decide
        temperature: Sampling temperature
    """

    model: str
    messages: tuple[Message, ...]
    max_tokens: int | None = None
    temperature: float = 0.3

    def __post_init__(self) -> None:
        """Validate request shape."""
        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        if not self.messages:
            raise ValueError("A request needs at least one message")
        if self.max_tokens is not None and self.max_tokens < 0:
            raise ValueError(f"max_tokens must not be negative. Got: {self.max_tokens}")

    def with_messages(
        self,
        messages: tuple[Message, ...],
        max_tokens: int | None = None,
    ) -> "CallRequest":
        """Return a copy with a different message list and token ceiling."""
        return replace(self, messages=messages, max_tokens=max_tokens)

    def wire_messages(self) -> list[dict[str, str]]:
        """Messages in the provider wire format."""
        return [m.to_dict() for m in self.messages]


@dataclass(frozen=True)
class CallResult:
    """Outcome of a logical LLM call.

    Attributes:
        content: Generated (and possibly stitched) text
        tokens_used: Total tokens reported by the provider, summed over rounds
        model: Model that produced the final round
        finish_reason: Finish reason of the final round
        rounds: Number of transport calls that contributed to the content
    """

    content: str
    tokens_used: int
    model: str
    finish_reason: FinishReason = FinishReason.STOP
    rounds: int = 1

    @property
    def is_complete(self) -> bool:
        """True unless the final round was cut off by the token limit."""
        return self.finish_reason is not FinishReason.LENGTH

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "content": self.content,
            "tokensUsed": self.tokens_used,
            "model": self.model,
            "finishReason": self.finish_reason.value,
            "rounds": self.rounds,
        }


@dataclass(frozen=True)
class ModelMetadata:
    """Context limits for a model as listed by the provider.

    Attributes:
        context_length: Total context window in tokens
        max_completion_tokens: Provider cap on output tokens, if declared
    """

    context_length: int
    max_completion_tokens: int | None = field(default=None)

    @classmethod
    def from_listing(cls, entry: dict[str, Any]) -> "ModelMetadata":
        """Build metadata from one entry of the provider's model listing.

        Args:
            entry: Dict with context_length and optional top_provider block

        Returns:
            ModelMetadata instance

        Raises:
            ValueError: If context_length is missing or not a positive integer
        """
        context_length = entry.get("context_length")
        if not isinstance(context_length, int) or context_length <= 0:
            raise ValueError(f"Invalid context_length: {context_length!r}")

        top_provider = entry.get("top_provider")
        if not isinstance(top_provider, dict):
            top_provider = {}
        max_completion = top_provider.get("max_completion_tokens")
        if not isinstance(max_completion, int) or max_completion <= 0:
            max_completion = None

        return cls(context_length=context_length, max_completion_tokens=max_completion)
