"""Recovery of output truncated by the token limit.

When a response stops with finish_reason LENGTH the engine asks the same
model to continue, passing the text so far as an assistant turn, and
stitches the fragments. Models sometimes ignore the instruction and start
over; a restart ends the loop and the text already collected is kept.
"""

import logging
import re
import warnings

from vaisu.llm.budget import ContextBudgeter
from vaisu.llm.errors import ContinuationExhaustedWarning
from vaisu.llm.prompts import CONTINUE_PROMPT
from vaisu.llm.transport import Transport
from vaisu.models.llm import CallRequest, CallResult, FinishReason, Message

logger = logging.getLogger(__name__)

# Prefix of the existing text compared against a fragment for restarts
RESTART_PROBE_CHARS = 64

_WHITESPACE = re.compile(r"\s+")


def _collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def is_restart(existing: str, incoming: str) -> bool:
    """Check whether a continuation fragment restarts the response.

    Args:
        existing: Text accumulated so far
        incoming: New fragment

    Returns:
        True if the fragment begins with the existing text (exactly, after
        whitespace collapsing, or with its first 64 characters)
    """
    head = existing.strip()
    fragment = incoming.strip()
    if not head or not fragment:
        return False

    if fragment.startswith(head):
        return True

    if _collapse_whitespace(fragment).startswith(_collapse_whitespace(head)):
        return True

    if len(head) > RESTART_PROBE_CHARS and fragment.startswith(head[:RESTART_PROBE_CHARS]):
        return True

    return False


def stitch(existing: str, incoming: str) -> str:
    """Join a continuation fragment onto the accumulated text.

    Fragments are concatenated verbatim so that markdown fences split
    across rounds reassemble. A restarted fragment is discarded.

    Args:
        existing: Text accumulated so far
        incoming: New fragment

    Returns:
        The combined text
    """
    if not incoming:
        return existing
    if not existing:
        return incoming
    if is_restart(existing, incoming):
        return existing
    return existing + incoming


class ContinuationEngine:
    """Runs a request to completion across continuation rounds."""

    def __init__(
        self,
        transport: Transport,
        budgeter: ContextBudgeter,
        max_continuations: int = 3,
    ) -> None:
        """Initialize the engine.

        Args:
            transport: Transport for single calls
            budgeter: Output token budgeter
            max_continuations: Continuation rounds allowed after the first call
        """
        self.transport = transport
        self.budgeter = budgeter
        self.max_continuations = max_continuations

    async def _sized(self, request: CallRequest, fixed_max_tokens: int | None) -> CallRequest:
        max_tokens = await self.budgeter.compute_max_tokens(
            request.model,
            self.budgeter.estimate(request.messages),
            fixed_max_tokens,
        )
        return request.with_messages(request.messages, max_tokens=max_tokens)

    async def run(self, request: CallRequest) -> CallResult:
        """Send a request and continue it while the output is truncated.

        Args:
            request: Initial request; max_tokens=None lets the budgeter size
                every round

        Returns:
            CallResult with the stitched content, summed token usage and the
            number of rounds. finish_reason stays LENGTH if the rounds or the
            context ran out.

        Raises:
            TransportError: If any round fails
        """
        fixed_max_tokens = request.max_tokens
        result = await self.transport.send(await self._sized(request, fixed_max_tokens))

        content = result.content
        tokens_used = result.tokens_used
        model = result.model
        finish_reason = result.finish_reason
        rounds = 1

        while finish_reason is FinishReason.LENGTH:
            if rounds > self.max_continuations:
                message = (
                    f"Output from {model} still truncated after "
                    f"{self.max_continuations} continuations"
                )
                logger.warning(
                    message,
                    extra={"extra_data": {"model": model, "rounds": rounds}},
                )
                warnings.warn(message, ContinuationExhaustedWarning, stacklevel=2)
                break

            logger.info(
                "Response from %s truncated, requesting continuation %d/%d",
                model,
                rounds,
                self.max_continuations,
            )
            continuation = request.with_messages(
                request.messages
                + (
                    Message(role="assistant", content=content),
                    Message(role="user", content=CONTINUE_PROMPT),
                )
            )
            sized = await self._sized(continuation, fixed_max_tokens)
            if sized.max_tokens == 0:
                logger.warning(
                    "Accumulated output from %s fills the context, keeping truncated text",
                    model,
                    extra={"extra_data": {"model": model, "rounds": rounds}},
                )
                break

            fragment = await self.transport.send(sized)
            rounds += 1
            tokens_used += fragment.tokens_used
            model = fragment.model

            if not fragment.content:
                logger.debug("Empty continuation fragment from %s, stopping", model)
                finish_reason = fragment.finish_reason
                break

            if is_restart(content, fragment.content):
                logger.warning("Model %s restarted its response, keeping existing text", model)
                break

            content = stitch(content, fragment.content)
            finish_reason = fragment.finish_reason

        return CallResult(
            content=content,
            tokens_used=tokens_used,
            model=model,
            finish_reason=finish_reason,
            rounds=rounds,
        )
