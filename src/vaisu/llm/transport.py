"""Chat completion transport using LiteLLM.

One request in, one CallResult out. No retries and no interpretation of the
content; every failure becomes a TransportError.
"""

import logging
from typing import Any

import litellm

from vaisu.config import ProviderConfig
from vaisu.llm.errors import TransportError
from vaisu.models.llm import CallRequest, CallResult, FinishReason

logger = logging.getLogger(__name__)


class Transport:
    """Issues single chat completion requests to the provider."""

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize transport with provider settings.

        Args:
            config: Provider connection settings
        """
        self.config = config

    async def send(self, request: CallRequest) -> CallResult:
        """Send one chat completion request.

        Args:
            request: Request to send

        Returns:
            CallResult for this single call (rounds=1)

        Raises:
            TransportError: On network failure, non-2xx status or an empty response
        """
        completion_kwargs: dict[str, Any] = {
            "model": self.config.litellm_model_name(request.model),
            "messages": request.wire_messages(),
            "temperature": request.temperature,
            "api_key": self.config.api_key,
            "api_base": self.config.base_url,
            "extra_headers": {
                "HTTP-Referer": self.config.app_url,
                "X-Title": self.config.app_title,
            },
            "timeout": self.config.timeout,
        }
        if request.max_tokens is not None:
            completion_kwargs["max_tokens"] = request.max_tokens

        logger.debug(
            "Calling %s (max_tokens=%s, %d messages)",
            request.model,
            request.max_tokens,
            len(request.messages),
        )

        try:
            response = await litellm.acompletion(**completion_kwargs)
        except Exception as e:
            status = getattr(e, "status_code", None)
            logger.debug("Provider error from %s: %s", request.model, e)
            raise TransportError(
                status if isinstance(status, int) else None,
                str(e),
            ) from e

        if not response.choices:
            raise TransportError(None, f"Response from {request.model} has no choices")

        choice = response.choices[0]
        content = choice.message.content or ""
        tokens_used = 0
        usage = getattr(response, "usage", None)
        if usage:
            tokens_used = usage.total_tokens or 0

        finish_reason = FinishReason.from_provider(choice.finish_reason)
        logger.debug(
            "Success with %s: %d tokens, finish_reason=%s",
            request.model,
            tokens_used,
            finish_reason.value,
        )

        return CallResult(
            content=content,
            tokens_used=tokens_used,
            model=request.model,
            finish_reason=finish_reason,
        )
