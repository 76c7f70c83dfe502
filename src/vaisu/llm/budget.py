"""Output token budgeting.

The provider rejects requests whose input plus requested output exceed the
model's context window. The budgeter sizes max_tokens from the model's
listed context length, a coarse input estimate and a fixed safety buffer.
"""

import asyncio
import logging
import math
from collections.abc import Iterable
from typing import Any

import httpx

from vaisu.config import BudgetConfig, ProviderConfig
from vaisu.models.llm import Message, ModelMetadata

logger = logging.getLogger(__name__)


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Estimate token count from character count.

    Args:
        text: Text to measure
        chars_per_token: Characters assumed per token

    Returns:
        Estimated token count (0 for empty text)
    """
    if not text:
        return 0
    return math.ceil(len(text) / chars_per_token)


def estimate_message_tokens(messages: Iterable[Message], chars_per_token: int = 4) -> int:
    """Estimate the combined token count of message contents."""
    return sum(estimate_tokens(m.content, chars_per_token) for m in messages)


class ModelMetadataCache:
    """Lazily fetched model limits from the provider's model listing.

    The listing is fetched once and every entry is indexed by model id.
    Entries are never invalidated; a failed fetch is not cached.
    """

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the cache.

        Args:
            config: Provider connection settings (base URL and API key)
            http_client: Client to use; a short-lived one is created per fetch if None
        """
        self.config = config
        self._http_client = http_client
        self._entries: dict[str, ModelMetadata] = {}
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        """True once the model listing has been fetched successfully."""
        return self._loaded

    async def get(self, model: str) -> ModelMetadata | None:
        """Get metadata for a model, fetching the listing on first use.

        Args:
            model: Provider model identifier

        Returns:
            ModelMetadata, or None if the model is not listed

        Raises:
            httpx.HTTPError: If the listing cannot be fetched
        """
        if not self._loaded:
            async with self._lock:
                if not self._loaded:
                    self._entries = await self._fetch_listing()
                    self._loaded = True
                    logger.debug("Cached metadata for %d models", len(self._entries))

        return self._entries.get(model)

    async def _fetch_listing(self) -> dict[str, ModelMetadata]:
        """Fetch GET /models and index usable entries by id."""
        url = f"{self.config.base_url}/models"
        headers = self.config.auth_headers

        if self._http_client is not None:
            response = await self._http_client.get(url, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.get(url, headers=headers)

        response.raise_for_status()
        return index_model_listing(response.json())


def index_model_listing(payload: Any) -> dict[str, ModelMetadata]:
    """Index a /models payload ({"data": [...]} or a bare list) by model id."""
    items = payload.get("data") if isinstance(payload, dict) else payload
    entries: dict[str, ModelMetadata] = {}
    if not isinstance(items, list):
        return entries

    for item in items:
        if not isinstance(item, dict) or "id" not in item:
            continue
        try:
            entries[item["id"]] = ModelMetadata.from_listing(item)
        except ValueError as e:
            logger.debug("Skipping model %s: %s", item.get("id"), e)

    return entries


class ContextBudgeter:
    """Computes output token ceilings for requests."""

    def __init__(self, metadata: ModelMetadataCache, config: BudgetConfig | None = None) -> None:
        """Initialize the budgeter.

        Args:
            metadata: Model metadata cache
            config: Budget settings (defaults if None)
        """
        self.metadata = metadata
        self.config = config or BudgetConfig()

    async def compute_max_tokens(
        self,
        model: str,
        estimated_input_tokens: int,
        requested_max_tokens: int | None = None,
    ) -> int:
        """Compute the output token ceiling for a request.

        An explicit request is honoured as-is. Otherwise the ceiling is the
        context length minus the safety buffer and the input estimate,
        clamped to zero and to the provider's completion cap.

        Args:
            model: Provider model identifier
            estimated_input_tokens: Estimated prompt size in tokens
            requested_max_tokens: Caller-fixed ceiling, if any

        Returns:
            Output token ceiling
        """
        if requested_max_tokens is not None:
            return requested_max_tokens

        context_length = self.config.default_context_length
        completion_cap: int | None = None

        try:
            metadata = await self.metadata.get(model)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Model metadata lookup failed for %s, assuming %d context tokens: %s",
                model,
                context_length,
                e,
            )
            metadata = None
        else:
            if metadata is None:
                logger.debug(
                    "No metadata listed for %s, assuming %d context tokens",
                    model,
                    context_length,
                )

        if metadata is not None:
            context_length = metadata.context_length
            completion_cap = metadata.max_completion_tokens

        ceiling = max(0, context_length - self.config.safety_buffer - estimated_input_tokens)
        if completion_cap is not None:
            ceiling = min(ceiling, completion_cap)

        if ceiling == 0:
            logger.warning(
                "No output budget left for %s (%d input tokens, %d context)",
                model,
                estimated_input_tokens,
                context_length,
            )

        return ceiling

    def estimate(self, messages: Iterable[Message]) -> int:
        """Estimate input tokens for a message list with the configured ratio."""
        return estimate_message_tokens(messages, self.config.chars_per_token)
