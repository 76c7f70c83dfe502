"""Vaisu settings.

Settings come from one YAML file: the --config path, else the first of
./.vaisu/config.yaml and ./vaisu.yaml. String values may reference
environment variables as ${NAME}. Without a file every default applies and
the API key is read from $OPENROUTER_API_KEY.
"""

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from vaisu.models.task_config import (
    DEFAULT_FALLBACK_MODEL,
    DEFAULT_PRIMARY_MODEL,
    TaskConfig,
    build_task_configs,
)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
API_KEY_ENV_VAR = "OPENROUTER_API_KEY"

# =============================================================================
# Settings
# =============================================================================


@dataclass
class ProviderConfig:
    """Connection settings for the chat completion provider.

    Attributes:
        api_key: Provider API key (falls back to $OPENROUTER_API_KEY)
        base_url: OpenRouter-compatible API base URL
        app_url: Sent as HTTP-Referer for provider attribution
        app_title: Sent as X-Title for provider attribution
        timeout: Per-request timeout in seconds
        litellm_prefix: LiteLLM provider prefix prepended to model ids
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    app_url: str = "http://localhost:5173"
    app_title: str = "Vaisu"
    timeout: float = 120.0
    litellm_prefix: str = "openrouter"

    def __post_init__(self) -> None:
        """Validate provider configuration."""
        if not self.api_key:
            self.api_key = os.environ.get(API_KEY_ENV_VAR) or None

        self.base_url = self.base_url.rstrip("/")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https:// (got {self.base_url})")

        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive (got {self.timeout})")

    @property
    def auth_headers(self) -> dict[str, str]:
        """Fixed headers sent with every provider request."""
        headers = {
            "HTTP-Referer": self.app_url,
            "X-Title": self.app_title,
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def litellm_model_name(self, model: str) -> str:
        """Get the model name in LiteLLM format (e.g., openrouter/x-ai/grok-4.1-fast)."""
        if not self.litellm_prefix or model.startswith(f"{self.litellm_prefix}/"):
            return model
        return f"{self.litellm_prefix}/{model}"


@dataclass
class BudgetConfig:
    """Context budget and continuation settings.

    Attributes:
        safety_buffer: Tokens held back from the context window
        default_context_length: Context length assumed when metadata is unavailable
        chars_per_token: Divisor of the character-count token estimate
        max_continuations: Continuation rounds allowed after the first call
    """

    safety_buffer: int = 1000
    default_context_length: int = 4096
    chars_per_token: int = 4
    max_continuations: int = 3

    def __post_init__(self) -> None:
        """Validate budget configuration."""
        if self.safety_buffer < 0:
            raise ValueError(f"safety_buffer must not be negative (got {self.safety_buffer})")
        if self.default_context_length <= 0:
            raise ValueError(
                f"default_context_length must be positive (got {self.default_context_length})"
            )
        if self.chars_per_token <= 0:
            raise ValueError(f"chars_per_token must be positive (got {self.chars_per_token})")
        if self.max_continuations < 0:
            raise ValueError(
                f"max_continuations must not be negative (got {self.max_continuations})"
            )


@dataclass
class PipelineConfig:
    """Analysis pipeline settings.

    Attributes:
        retry_budget: Cascade retry budget for every pipeline task
        section_min_chars: Sections at or below this length are not sent to the LLM
        section_max_chars: Characters of a section sent for summarization
        section_fallback_chars: Characters kept when a section summary fails
        batch_size: Concurrent requests per slice in batch calls
    """

    retry_budget: int = 2
    section_min_chars: int = 100
    section_max_chars: int = 2000
    section_fallback_chars: int = 200
    batch_size: int = 5

    def __post_init__(self) -> None:
        """Validate pipeline configuration."""
        if self.retry_budget < 0:
            raise ValueError(f"retry_budget must not be negative (got {self.retry_budget})")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive (got {self.batch_size})")


@dataclass
class ModelsConfig:
    """Default models and per-task overrides.

    Attributes:
        primary: Primary model for every task
        fallback: Fallback model for every task
        tasks: Per-task overrides (primary_model, fallback_model, max_tokens, temperature)
    """

    primary: str = DEFAULT_PRIMARY_MODEL
    fallback: str = DEFAULT_FALLBACK_MODEL
    tasks: dict[str, dict[str, Any]] = field(default_factory=dict)

    def build_tasks(self) -> Mapping[str, TaskConfig]:
        """Build the read-only task table from these settings."""
        return build_task_configs(
            primary_model=self.primary,
            fallback_model=self.fallback,
            overrides=self.tasks,
        )


@dataclass
class VaisuConfig:
    """Top-level Vaisu configuration.

    Attributes:
        llm: Provider connection settings
        budget: Context budget and continuation settings
        pipeline: Pipeline settings
        models: Model selection
    """

    llm: ProviderConfig = field(default_factory=ProviderConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    models: ModelsConfig = field(default_factory=ModelsConfig)

    # File the values were read from, set by load_config
    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Config file this configuration was loaded from, if any."""
        return self._config_path


# =============================================================================
# Loading
# =============================================================================

# ${NAME} references inside YAML string values
_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}")

# Searched in order, relative to the working directory
CONFIG_LOCATIONS = (Path(".vaisu") / "config.yaml", Path("vaisu.yaml"))


def _env_value(match: re.Match[str]) -> str:
    name = match.group(1)
    try:
        return os.environ[name]
    except KeyError:
        raise ValueError(f"Environment variable not set: {name}") from None


def substitute_env_vars(value: Any) -> Any:
    """Expand ${NAME} references in a parsed YAML tree.

    Strings are expanded in place; mappings and lists are walked
    recursively, other scalars are returned unchanged.

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):
        return _ENV_REFERENCE.sub(_env_value, value)
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    return value


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Return the first existing file of CONFIG_LOCATIONS under start_path.

    Args:
        start_path: Directory to look in (current directory if None)

    Returns:
        Resolved path, or None when no config file exists
    """
    base = (start_path or Path.cwd()).resolve()
    return next(
        (base / location for location in CONFIG_LOCATIONS if (base / location).exists()),
        None,
    )


def _section(data: dict[str, Any], name: str) -> dict[str, Any] | None:
    if name not in data:
        return None
    return data[name] or {}


def load_config_from_dict(data: dict[str, Any]) -> VaisuConfig:
    """Build a VaisuConfig from parsed YAML.

    Missing sections and keys keep their defaults. Task overrides are
    validated here so that a typo fails at startup instead of on the first
    call.

    Raises:
        ValueError: If a value is invalid or a referenced env var is missing
    """
    data = substitute_env_vars(data)
    config = VaisuConfig()

    llm = _section(data, "llm")
    if llm is not None:
        defaults = config.llm
        config.llm = ProviderConfig(
            api_key=llm.get("api_key"),
            base_url=llm.get("base_url", defaults.base_url),
            app_url=llm.get("app_url", defaults.app_url),
            app_title=llm.get("app_title", defaults.app_title),
            timeout=float(llm.get("timeout", defaults.timeout)),
            litellm_prefix=llm.get("litellm_prefix", defaults.litellm_prefix),
        )

    budget = _section(data, "budget")
    if budget is not None:
        config.budget = BudgetConfig(
            **{
                name: int(budget.get(name, getattr(config.budget, name)))
                for name in BudgetConfig.__dataclass_fields__
            }
        )

    pipeline = _section(data, "pipeline")
    if pipeline is not None:
        config.pipeline = PipelineConfig(
            **{
                name: int(pipeline.get(name, getattr(config.pipeline, name)))
                for name in PipelineConfig.__dataclass_fields__
            }
        )

    models = _section(data, "models")
    if models is not None:
        overrides = models.get("tasks") or {}
        config.models = ModelsConfig(
            primary=models.get("primary", DEFAULT_PRIMARY_MODEL),
            fallback=models.get("fallback", DEFAULT_FALLBACK_MODEL),
            tasks={task: dict(values or {}) for task, values in overrides.items()},
        )
        config.models.build_tasks()

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> VaisuConfig:
    """Load the configuration file, or return defaults when there is none.

    Args:
        config_path: Explicit file (--config); must exist
        auto_discover: Look in CONFIG_LOCATIONS when no path is given

    Returns:
        VaisuConfig, with config_path set when a file was read

    Raises:
        FileNotFoundError: If config_path does not exist
        ValueError: If the file holds invalid values
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    path = config_path
    if path is None and auto_discover:
        path = find_config_file()
    if path is None:
        return VaisuConfig()

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")

    config = load_config_from_dict(data)
    config._config_path = path
    return config


def create_default_config() -> str:
    """Commented YAML written by `vaisu init`, matching the dataclass defaults."""
    return f'''# Vaisu Configuration

# Provider connection (OpenRouter-compatible API)
llm:
  # api_key: "${{{API_KEY_ENV_VAR}}}"  # Defaults to ${API_KEY_ENV_VAR}
  base_url: "{DEFAULT_BASE_URL}"
  app_url: "http://localhost:5173"   # Sent as HTTP-Referer
  app_title: "Vaisu"                 # Sent as X-Title
  timeout: 120                       # Seconds per request

# Output token budgeting
budget:
  safety_buffer: 1000            # Tokens held back from the context window
  default_context_length: 4096   # Used when model metadata is unavailable
  chars_per_token: 4             # Input token estimate = characters / 4
  max_continuations: 3           # Continuation rounds for truncated output

# Analysis pipeline
pipeline:
  retry_budget: 2                # 2 = primary, fallback, primary, fallback
  section_min_chars: 100         # Shorter sections are used verbatim
  section_max_chars: 2000        # Section excerpt sent for summarization
  section_fallback_chars: 200    # Kept when a section summary fails
  batch_size: 5

# Model selection
models:
  primary: "{DEFAULT_PRIMARY_MODEL}"
  fallback: "{DEFAULT_FALLBACK_MODEL}"
  # tasks:
  #   entityExtraction:
  #     primary_model: "openai/gpt-4o"
  #     max_tokens: 8000
'''
