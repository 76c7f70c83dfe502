"""LLM error taxonomy.

- LLMError: Base for every failure raised by the LLM layer
- TransportError: Network failure or non-2xx response from the provider
- ExhaustedCascadeError: Every model attempt of a task failed
- InvalidResponseError: Response text holds no decodable JSON
- UnknownTaskError: Task type has no configuration
- ContinuationExhaustedWarning: Content may be incomplete (warning, never raised)
"""

from dataclasses import dataclass

# Characters of response content kept on errors for logging
CONTENT_EXCERPT_CHARS = 200


class LLMError(Exception):
    """Exception raised for LLM-related errors."""

    pass


class TransportError(LLMError):
    """A single provider request failed.

    Attributes:
        status: HTTP status code, if the provider returned one
        provider_message: Error text from the provider or the HTTP client
    """

    def __init__(self, status: int | None, provider_message: str) -> None:
        self.status = status
        self.provider_message = provider_message
        status_str = f"HTTP {status}" if status is not None else "no status"
        super().__init__(f"LLM call failed ({status_str}): {provider_message}")


@dataclass(frozen=True)
class FailedAttempt:
    """One failed model attempt inside a cascade.

    Attributes:
        model: Model that was tried
        error: Error description
    """

    model: str
    error: str


class ExhaustedCascadeError(LLMError):
    """Every primary/fallback attempt for a task failed.

    Attributes:
        task_type: Task that was being called
        attempts: Failed attempts in the order they were made
    """

    def __init__(self, task_type: str, attempts: list[FailedAttempt]) -> None:
        self.task_type = task_type
        self.attempts = list(attempts)
        models = ", ".join(a.model for a in self.attempts)
        super().__init__(
            f"All {len(self.attempts)} attempts failed for task '{task_type}' ({models})"
        )


class InvalidResponseError(LLMError):
    """No parseable JSON could be located in a response.

    Attributes:
        content_excerpt: Start of the offending content
        reason: Decoder error description
    """

    def __init__(self, content: str, reason: str) -> None:
        self.content_excerpt = content[:CONTENT_EXCERPT_CHARS]
        self.reason = reason
        super().__init__(f"Invalid JSON response from LLM: {reason}")


class UnknownTaskError(LLMError, KeyError):
    """Task type has no TaskConfig."""

    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(f"Unknown task type: {task_type}")

    def __str__(self) -> str:
        return f"Unknown task type: {self.task_type}"


class ContinuationExhaustedWarning(UserWarning):
    """Continuation rounds ran out while the output was still truncated."""

    pass
