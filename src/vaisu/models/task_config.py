"""Task configuration entity for Vaisu.

Every logical LLM task (tldr, entityExtraction, ...) is bound to a primary
and a fallback model, a sampling temperature and a system prompt. The table
is static: it is built once at startup, optionally with overrides from the
configuration file, and read-only afterwards.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from vaisu.llm.prompts import SYSTEM_PROMPTS

# Provider model identifiers (OpenRouter naming)
LLM_MODELS = {
    "GROK_FAST": "x-ai/grok-4.1-fast",
    "GPT_4O": "openai/gpt-4o",
    "GEMINI_FLASH": "google/gemini-2.0-flash-exp:free",
    "MIMO_FLASH": "xiaomi/mimo-v2-flash:free",
}

DEFAULT_PRIMARY_MODEL = LLM_MODELS["GEMINI_FLASH"]
DEFAULT_FALLBACK_MODEL = LLM_MODELS["MIMO_FLASH"]

# Sampling temperature per task
TASK_TEMPERATURES = {
    "tldr": 0.3,
    "executiveSummary": 0.5,
    "entityExtraction": 0.1,
    "relationshipDetection": 0.3,
    "sectionSummary": 0.3,
    "signalAnalysis": 0.2,
    "vizRecommendation": 0.4,
    "kpiExtraction": 0.1,
    "glossary": 0.3,
    "qa": 0.6,
    "mindMapGeneration": 0.4,
}

TASK_TYPES = frozenset(TASK_TEMPERATURES)


@dataclass(frozen=True)
class TaskConfig:
    """Model selection for one task type.

    Attributes:
        primary_model: Model tried first
        fallback_model: Model tried when the primary fails
        max_tokens: Fixed output ceiling, None to size from the context budget
        temperature: Sampling temperature (0-2)
        system_prompt: System message sent with every request of this task
    """

    primary_model: str
    fallback_model: str
    system_prompt: str
    max_tokens: int | None = None
    temperature: float = field(default=0.3)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.primary_model or not self.primary_model.strip():
            raise ValueError("primary_model cannot be empty")
        if not self.fallback_model or not self.fallback_model.strip():
            raise ValueError("fallback_model cannot be empty")
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be between 0 and 2. Got: {self.temperature}")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "primary_model": self.primary_model,
            "fallback_model": self.fallback_model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system_prompt": self.system_prompt,
        }

    def with_overrides(self, overrides: Mapping[str, Any]) -> "TaskConfig":
        """Return a copy with the given fields replaced.

        Args:
            overrides: Subset of primary_model, fallback_model, max_tokens,
                temperature, system_prompt

        Returns:
            New TaskConfig

        Raises:
            ValueError: If an unknown field is given
        """
        allowed = {"primary_model", "fallback_model", "max_tokens", "temperature", "system_prompt"}
        unknown = set(overrides) - allowed
        if unknown:
            raise ValueError(f"Unknown task config fields: {sorted(unknown)}")
        return replace(self, **dict(overrides))


def build_task_configs(
    primary_model: str = DEFAULT_PRIMARY_MODEL,
    fallback_model: str = DEFAULT_FALLBACK_MODEL,
    overrides: Mapping[str, Mapping[str, Any]] | None = None,
) -> Mapping[str, TaskConfig]:
    """Build the read-only task table.

    Args:
        primary_model: Default primary model for every task
        fallback_model: Default fallback model for every task
        overrides: Per-task field overrides keyed by task type

    Returns:
        Immutable mapping of task type to TaskConfig

    Raises:
        ValueError: If an override names an unknown task type
    """
    overrides = overrides or {}
    unknown = set(overrides) - TASK_TYPES
    if unknown:
        raise ValueError(f"Unknown task types in overrides: {sorted(unknown)}")

    table: dict[str, TaskConfig] = {}
    for task_type, temperature in TASK_TEMPERATURES.items():
        config = TaskConfig(
            primary_model=primary_model,
            fallback_model=fallback_model,
            system_prompt=SYSTEM_PROMPTS[task_type],
            temperature=temperature,
        )
        if task_type in overrides:
            config = config.with_overrides(overrides[task_type])
        table[task_type] = config

    return MappingProxyType(table)
