"""LLM client facade.

Wires transport, budgeter, continuation engine, cascade and decoder
together. One client is built per process with create_client() and passed
explicitly to whatever needs it.
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from vaisu.config import VaisuConfig
from vaisu.llm.budget import ContextBudgeter, ModelMetadataCache
from vaisu.llm.cascade import DEFAULT_RETRY_BUDGET, FallbackCascade
from vaisu.llm.continuation import ContinuationEngine
from vaisu.llm.decoder import DecodeResult, decode_json, parse_json
from vaisu.llm.transport import Transport
from vaisu.models.llm import CallRequest, CallResult
from vaisu.models.task_config import TaskConfig

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5


class LLMClient:
    """Reliable chat completion calls against an OpenRouter-compatible API."""

    def __init__(
        self,
        transport: Transport,
        budgeter: ContextBudgeter,
        tasks: Mapping[str, TaskConfig],
        max_continuations: int = 3,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        """Initialize the client from its parts.

        Args:
            transport: Transport for single calls
            budgeter: Output token budgeter
            tasks: Task table keyed by task type
            max_continuations: Continuation rounds allowed per call
            batch_size: Concurrent requests per slice in batch_call
        """
        self.transport = transport
        self.budgeter = budgeter
        self.tasks = tasks
        self.batch_size = batch_size
        self.engine = ContinuationEngine(transport, budgeter, max_continuations)
        self.cascade = FallbackCascade(self.engine, tasks)

    @property
    def metadata(self) -> ModelMetadataCache:
        """Model metadata cache owned by this client."""
        return self.budgeter.metadata

    async def call(self, request: CallRequest) -> CallResult:
        """Run one request through budgeting and continuation.

        Raises:
            TransportError: If any round fails
        """
        return await self.engine.run(request)

    async def call_with_fallback(
        self,
        task_type: str,
        prompt: str,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
    ) -> CallResult:
        """Call a task with primary/fallback model selection.

        Raises:
            UnknownTaskError: If the task type is not configured
            ExhaustedCascadeError: If every attempt failed
        """
        return await self.cascade.call_with_fallback(task_type, prompt, retry_budget)

    def decode_json_response(self, response: CallResult) -> DecodeResult:
        """Decode JSON from a result without raising."""
        return decode_json(response.content)

    def parse_json_response(self, response: CallResult) -> Any:
        """Decode JSON from a result.

        Raises:
            InvalidResponseError: If no JSON can be decoded
        """
        return parse_json(response)

    async def batch_call(self, requests: Sequence[CallRequest]) -> list[CallResult]:
        """Run requests in concurrent slices, preserving order.

        Args:
            requests: Requests to run

        Returns:
            One CallResult per request, in request order

        Raises:
            TransportError: If any request fails
        """
        results: list[CallResult] = []
        for start in range(0, len(requests), self.batch_size):
            batch = requests[start : start + self.batch_size]
            logger.debug(
                "Running batch of %d requests (%d/%d)",
                len(batch),
                start + len(batch),
                len(requests),
            )
            results.extend(await asyncio.gather(*(self.call(r) for r in batch)))
        return results


def create_client(
    config: VaisuConfig,
    http_client: httpx.AsyncClient | None = None,
) -> LLMClient:
    """Create an LLM client from configuration.

    Factory function for creating LLM clients.

    Args:
        config: Vaisu configuration
        http_client: Optional HTTP client for the model listing

    Returns:
        Configured LLMClient instance

    Raises:
        ValueError: If no API key is configured or a task override is invalid
    """
    if not config.llm.api_key:
        raise ValueError(
            "No API key configured. Set OPENROUTER_API_KEY or llm.api_key in the config file"
        )

    metadata = ModelMetadataCache(config.llm, http_client=http_client)
    return LLMClient(
        transport=Transport(config.llm),
        budgeter=ContextBudgeter(metadata, config.budget),
        tasks=config.models.build_tasks(),
        max_continuations=config.budget.max_continuations,
        batch_size=config.pipeline.batch_size,
    )
