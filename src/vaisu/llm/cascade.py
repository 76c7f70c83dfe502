"""Primary/fallback model cascade.

Each task type has a primary and a fallback model. A failed primary call is
retried once on the fallback; if that fails too the whole pair is retried
while the retry budget lasts.
"""

import logging
from collections.abc import Mapping

from vaisu.llm.continuation import ContinuationEngine
from vaisu.llm.errors import ExhaustedCascadeError, FailedAttempt, LLMError, UnknownTaskError
from vaisu.models.llm import CallRequest, CallResult, Message
from vaisu.models.task_config import TaskConfig

logger = logging.getLogger(__name__)

DEFAULT_RETRY_BUDGET = 2


class FallbackCascade:
    """Selects models for a task and retries across them."""

    def __init__(self, engine: ContinuationEngine, tasks: Mapping[str, TaskConfig]) -> None:
        """Initialize the cascade.

        Args:
            engine: Continuation engine used for every attempt
            tasks: Task table keyed by task type
        """
        self.engine = engine
        self.tasks = tasks

    def task_config(self, task_type: str) -> TaskConfig:
        """Look up the configuration of a task type.

        Raises:
            UnknownTaskError: If the task type is not configured
        """
        try:
            return self.tasks[task_type]
        except KeyError:
            raise UnknownTaskError(task_type) from None

    def build_request(self, task_type: str, prompt: str, model: str | None = None) -> CallRequest:
        """Build the system + user request for a task.

        Args:
            task_type: Configured task type
            prompt: User prompt
            model: Model to address (defaults to the task's primary)

        Returns:
            CallRequest carrying the task's system prompt, temperature and max_tokens
        """
        config = self.task_config(task_type)
        return CallRequest(
            model=model or config.primary_model,
            messages=(
                Message(role="system", content=config.system_prompt),
                Message(role="user", content=prompt),
            ),
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )

    async def call_with_fallback(
        self,
        task_type: str,
        prompt: str,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
    ) -> CallResult:
        """Call a task's primary model, falling back on failure.

        Attempt order for a budget of n is primary, fallback repeated n times
        (a budget of 0 makes a single primary attempt).

        Args:
            task_type: Configured task type
            prompt: User prompt
            retry_budget: Number of primary/fallback sweeps

        Returns:
            CallResult of the first successful attempt

        Raises:
            UnknownTaskError: If the task type is not configured
            ExhaustedCascadeError: If every attempt failed
        """
        config = self.task_config(task_type)
        attempts: list[FailedAttempt] = []
        return await self._sweep(task_type, prompt, config, retry_budget, attempts)

    async def _sweep(
        self,
        task_type: str,
        prompt: str,
        config: TaskConfig,
        retry_budget: int,
        attempts: list[FailedAttempt],
    ) -> CallResult:
        try:
            return await self.engine.run(
                self.build_request(task_type, prompt, config.primary_model)
            )
        except LLMError as primary_error:
            attempts.append(FailedAttempt(config.primary_model, str(primary_error)))
            if retry_budget <= 0:
                raise ExhaustedCascadeError(task_type, attempts) from primary_error
            logger.warning(
                "Primary model %s failed for %s, trying fallback %s: %s",
                config.primary_model,
                task_type,
                config.fallback_model,
                primary_error,
            )

        try:
            return await self.engine.run(
                self.build_request(task_type, prompt, config.fallback_model)
            )
        except LLMError as fallback_error:
            attempts.append(FailedAttempt(config.fallback_model, str(fallback_error)))
            if retry_budget > 1:
                logger.warning(
                    "Fallback model %s failed for %s, retrying (%d retries left)",
                    config.fallback_model,
                    task_type,
                    retry_budget - 1,
                )
                return await self._sweep(task_type, prompt, config, retry_budget - 1, attempts)

            logger.error(
                "All models failed for %s",
                task_type,
                extra={"extra_data": {"task": task_type, "attempts": len(attempts)}},
            )
            raise ExhaustedCascadeError(task_type, attempts) from fallback_error
