"""Shared pytest fixtures for Vaisu tests.

Fixtures are organized by category:
- Configuration fixtures: Provider and budget settings for tests
- Transport fixtures: Scripted stand-ins for the provider
- Document fixtures: Small documents for pipeline tests
"""

import json
import logging
from collections.abc import Callable, Iterator
from typing import Any

import pytest

from vaisu.config import BudgetConfig, ProviderConfig, VaisuConfig
from vaisu.llm.budget import ContextBudgeter
from vaisu.llm.client import LLMClient
from vaisu.llm.errors import TransportError
from vaisu.llm.prompts import SYSTEM_PROMPTS
from vaisu.models.document import Document
from vaisu.models.llm import CallRequest, CallResult, FinishReason, ModelMetadata
from vaisu.models.task_config import build_task_configs

PRIMARY = "test/primary"
FALLBACK = "test/fallback"

_TASK_BY_PROMPT = {prompt: task for task, prompt in SYSTEM_PROMPTS.items()}


# =============================================================================
# Transport Fixtures
# =============================================================================


def task_of(request: CallRequest) -> str | None:
    """Task type of a request, identified by its system prompt."""
    for message in request.messages:
        if message.role == "system":
            return _TASK_BY_PROMPT.get(message.content)
    return None


def reply(
    content: str,
    model: str = PRIMARY,
    tokens: int = 10,
    finish_reason: FinishReason = FinishReason.STOP,
) -> CallResult:
    """Build a single-round CallResult."""
    return CallResult(
        content=content,
        tokens_used=tokens,
        model=model,
        finish_reason=finish_reason,
    )


class FakeTransport:
    """Records requests and answers them with a handler or a script.

    The handler receives each CallRequest and returns a CallResult or raises.
    A list script is consumed in order; exceptions in it are raised.
    """

    def __init__(
        self,
        handler: Callable[[CallRequest], CallResult] | list[CallResult | Exception],
    ) -> None:
        self.requests: list[CallRequest] = []
        if isinstance(handler, list):
            script = list(handler)

            def scripted(request: CallRequest) -> CallResult:
                outcome = script.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome

            self._handler: Callable[[CallRequest], CallResult] = scripted
        else:
            self._handler = handler

    async def send(self, request: CallRequest) -> CallResult:
        self.requests.append(request)
        return self._handler(request)

    @property
    def models(self) -> list[str]:
        return [r.model for r in self.requests]

    def tasks(self) -> list[str | None]:
        return [task_of(r) for r in self.requests]


class StaticMetadata:
    """Metadata source returning fixed limits, or raising."""

    def __init__(
        self,
        entries: dict[str, ModelMetadata] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.entries = entries or {}
        self.error = error
        self.lookups: list[str] = []

    async def get(self, model: str) -> ModelMetadata | None:
        self.lookups.append(model)
        if self.error is not None:
            raise self.error
        return self.entries.get(model)


def transport_failure(
    message: str = "upstream unavailable", status: int | None = 503
) -> TransportError:
    return TransportError(status, message)


def build_client(
    transport: FakeTransport,
    metadata: StaticMetadata | None = None,
    max_continuations: int = 3,
    batch_size: int = 5,
    overrides: dict[str, dict[str, Any]] | None = None,
) -> LLMClient:
    """Build an LLMClient around a fake transport."""
    metadata = metadata or StaticMetadata(
        {
            PRIMARY: ModelMetadata(context_length=32768),
            FALLBACK: ModelMetadata(context_length=16384, max_completion_tokens=4096),
        }
    )
    return LLMClient(
        transport=transport,  # type: ignore[arg-type]
        budgeter=ContextBudgeter(metadata, BudgetConfig()),  # type: ignore[arg-type]
        tasks=build_task_configs(PRIMARY, FALLBACK, overrides),
        max_continuations=max_continuations,
        batch_size=batch_size,
    )


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def provider_config() -> ProviderConfig:
    """Provider settings with a fixed API key."""
    return ProviderConfig(api_key="sk-test", base_url="https://llm.example.test/api/v1")


@pytest.fixture
def vaisu_config(provider_config: ProviderConfig) -> VaisuConfig:
    """Full configuration with a fixed API key."""
    return VaisuConfig(llm=provider_config)


@pytest.fixture(autouse=True)
def _no_ambient_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's OPENROUTER_API_KEY out of the tests."""
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)


@pytest.fixture(autouse=True)
def _reset_vaisu_logger() -> Iterator[None]:
    """Undo handler and propagation changes made by setup_logging."""
    yield
    logger = logging.getLogger("vaisu")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


# =============================================================================
# Document Fixtures
# =============================================================================

SAMPLE_TEXT = """# Cloud Migration Plan

## Background

The company runs its billing platform on two ageing data centres. Hardware
support ends next year, and the operations team spends most of its time on
patching rather than on improving reliability for customers.

## Approach

We will move the billing services to AWS in three phases over nine months,
starting with the reporting workloads that have the fewest dependencies.

## Notes

Budget review in Q3.
"""


@pytest.fixture
def sample_document() -> Document:
    """Markdown document with two long sections and a short one."""
    return Document.from_text(SAMPLE_TEXT, filename="plan.md")


@pytest.fixture
def short_document() -> Document:
    """Three-sentence document without headings."""
    return Document.from_text(
        "Vaisu analyzes documents. It extracts entities and relationships. "
        "It recommends visualizations."
    )


# =============================================================================
# Canned model output
# =============================================================================

EXECUTIVE_SUMMARY_JSON = json.dumps(
    {
        "headline": "Billing moves to AWS in nine months",
        "keyIdeas": ["Hardware support ends", "Three phases", "Reporting first"],
        "kpis": [{"label": "Duration", "value": 9, "unit": "months", "confidence": 0.9}],
        "risks": ["Migration downtime"],
        "opportunities": ["Less patching"],
        "callToAction": "Approve phase one",
    }
)

ENTITIES_JSON = json.dumps(
    {
        "entities": [
            {"id": "entity-1", "text": "AWS", "type": "organization", "importance": 0.9},
            {"id": "entity-2", "text": "billing platform", "type": "product", "importance": 0.8},
        ]
    }
)

RELATIONSHIPS_JSON = json.dumps(
    {
        "relationships": [
            {
                "id": "rel-1",
                "source": "entity-2",
                "target": "entity-1",
                "type": "depends-on",
                "strength": 0.7,
            }
        ]
    }
)

SIGNALS_JSON = json.dumps(
    {
        "structural": 0.9,
        "process": 0.6,
        "quantitative": 0.4,
        "technical": 0.5,
        "argumentative": 0.3,
        "temporal": 0.7,
    }
)

RECOMMENDATIONS_JSON = json.dumps(
    {
        "recommendations": [
            {"type": "timeline", "score": 0.9, "rationale": "Phased plan"},
            {"type": "mind-map", "score": 0.6, "rationale": "Hierarchical"},
        ]
    }
)

CANNED_RESPONSES = {
    "tldr": "Billing moves to AWS in three phases.",
    "executiveSummary": f"```json\n{EXECUTIVE_SUMMARY_JSON}\n```",
    "entityExtraction": ENTITIES_JSON,
    "relationshipDetection": f"Here you go:\n{RELATIONSHIPS_JSON}\nHope this helps.",
    "signalAnalysis": SIGNALS_JSON,
    "sectionSummary": "A short section summary.",
    "vizRecommendation": RECOMMENDATIONS_JSON,
}


def canned_handler(
    overrides: dict[str, Callable[[CallRequest], CallResult] | str] | None = None,
) -> Callable[[CallRequest], CallResult]:
    """Answer each task with its canned response unless overridden."""
    overrides = overrides or {}

    def handler(request: CallRequest) -> CallResult:
        task = task_of(request)
        override = overrides.get(task)  # type: ignore[arg-type]
        if callable(override):
            return override(request)
        content = override if override is not None else CANNED_RESPONSES[task]  # type: ignore[index]
        return reply(content, model=request.model)

    return handler
