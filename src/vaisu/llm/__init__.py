"""LLM integration module for Vaisu.

Turns an unreliable, token-capped chat completion endpoint into dependable
calls: context budgeting, continuation of truncated output, primary/fallback
cascades and JSON extraction. The facade lives in vaisu.llm.client; this
package root only exports the pieces that have no configuration dependency.
"""

from vaisu.llm.decoder import Decoded, DecodeFailure, decode_json, parse_json
from vaisu.llm.errors import (
    ContinuationExhaustedWarning,
    ExhaustedCascadeError,
    FailedAttempt,
    InvalidResponseError,
    LLMError,
    TransportError,
    UnknownTaskError,
)
from vaisu.llm.prompts import CONTINUE_PROMPT, SYSTEM_PROMPTS, get_system_prompt

__all__ = [
    "CONTINUE_PROMPT",
    "ContinuationExhaustedWarning",
    "DecodeFailure",
    "Decoded",
    "ExhaustedCascadeError",
    "FailedAttempt",
    "InvalidResponseError",
    "LLMError",
    "SYSTEM_PROMPTS",
    "TransportError",
    "UnknownTaskError",
    "decode_json",
    "get_system_prompt",
    "parse_json",
]
