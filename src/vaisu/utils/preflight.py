"""Preflight validation.

Provider credentials, the LiteLLM package and the model listing are checked
before any analysis starts, so that a misconfiguration fails with one clear
message instead of a cascade of failed calls.
"""

import importlib.util
from dataclasses import dataclass, field
from typing import Any

import httpx

from vaisu.config import API_KEY_ENV_VAR, VaisuConfig
from vaisu.llm.budget import index_model_listing
from vaisu.models.llm import ModelMetadata


@dataclass
class PreflightCheck:
    """Result of a single check.

    Attributes:
        name: Check name
        passed: Whether the check passed
        required: Whether a failure blocks analysis
        detail: Version, URL or other context when the check passed
        message: Status message (human-readable context)
    """

    name: str
    passed: bool
    required: bool = True
    detail: str | None = None
    message: str = ""


@dataclass
class PreflightResult:
    """Result of preflight validation.

    Attributes:
        success: Whether all required checks passed
        checks: Individual check results
        errors: Messages for failed required checks
        warnings: Messages for failed optional checks
    """

    success: bool = True
    checks: list[PreflightCheck] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_check(self, check: PreflightCheck) -> None:
        """Add a check result."""
        self.checks.append(check)

        if not check.passed:
            if check.required:
                self.success = False
                self.errors.append(f"{check.name}: {check.message}")
            else:
                self.warnings.append(f"{check.name}: {check.message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "success": self.success,
            "checks": [
                {
                    "name": c.name,
                    "passed": c.passed,
                    "required": c.required,
                    "detail": c.detail,
                    "message": c.message,
                }
                for c in self.checks
            ],
            "errors": self.errors,
            "warnings": self.warnings,
        }


class PreflightChecker:
    """Validates provider access before analysis.

    Usage:
        checker = PreflightChecker(config)
        result = checker.check_all()
        if not result.success:
            raise typer.Exit(1)
    """

    def __init__(self, config: VaisuConfig, http_client: httpx.Client | None = None) -> None:
        """Initialize preflight checker.

        Args:
            config: Vaisu configuration
            http_client: Client for the model listing (one is created if None)
        """
        self.config = config
        self._http_client = http_client

    def check_api_key(self) -> PreflightCheck:
        """Check that an API key is configured."""
        if self.config.llm.api_key:
            return PreflightCheck(
                name="api_key",
                passed=True,
                message="API key configured",
            )
        return PreflightCheck(
            name="api_key",
            passed=False,
            message=f"API key required. Set llm.api_key or {API_KEY_ENV_VAR} env var",
        )

    def check_litellm(self) -> PreflightCheck:
        """Check if the LiteLLM package is importable."""
        spec = importlib.util.find_spec("litellm")
        if spec is None:
            return PreflightCheck(
                name="litellm",
                passed=False,
                message="Install with: pip install litellm",
            )

        return PreflightCheck(
            name="litellm",
            passed=True,
            detail=spec.origin,
            message="Unified LLM interface (Python package)",
        )

    def fetch_model_listing(self) -> dict[str, ModelMetadata]:
        """Fetch and index the provider's model listing.

        Raises:
            httpx.HTTPError: If the listing cannot be fetched
        """
        url = f"{self.config.llm.base_url}/models"
        headers = self.config.llm.auth_headers

        if self._http_client is not None:
            response = self._http_client.get(url, headers=headers)
        else:
            with httpx.Client(timeout=self.config.llm.timeout) as client:
                response = client.get(url, headers=headers)

        response.raise_for_status()
        return index_model_listing(response.json())

    def check_models(self) -> list[PreflightCheck]:
        """Check that the listing is reachable and lists every configured model."""
        url = f"{self.config.llm.base_url}/models"
        try:
            listing = self.fetch_model_listing()
        except (httpx.HTTPError, ValueError) as e:
            return [
                PreflightCheck(
                    name="models_endpoint",
                    passed=False,
                    message=f"Model listing not reachable at {url}: {e}",
                )
            ]

        checks = [
            PreflightCheck(
                name="models_endpoint",
                passed=True,
                detail=url,
                message=f"{len(listing)} models listed",
            )
        ]

        tasks = self.config.models.build_tasks().values()
        configured = sorted(
            {task.primary_model for task in tasks} | {task.fallback_model for task in tasks}
        )
        for model in configured:
            metadata = listing.get(model)
            if metadata is None:
                checks.append(
                    PreflightCheck(
                        name=model,
                        passed=False,
                        required=False,
                        message="Not listed by provider; the default context length applies",
                    )
                )
            else:
                checks.append(
                    PreflightCheck(
                        name=model,
                        passed=True,
                        required=False,
                        detail=str(metadata.context_length),
                        message=f"Context length {metadata.context_length}",
                    )
                )
        return checks

    def check_all(self) -> PreflightResult:
        """Run all preflight checks.

        The model listing is only queried once an API key is present.

        Returns:
            PreflightResult with all check results
        """
        result = PreflightResult()

        result.add_check(self.check_litellm())

        api_key_check = self.check_api_key()
        result.add_check(api_key_check)

        if api_key_check.passed:
            for check in self.check_models():
                result.add_check(check)

        return result
