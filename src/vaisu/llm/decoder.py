"""JSON extraction from free-form model output.

Models wrap JSON in markdown fences or surround it with prose. The decoder
takes the interior of the first fenced block if there is one. Text that
starts with a JSON value is decoded up to the end of that value, so trailing
prose is ignored; otherwise the text is sliced from the first opening
bracket to the last matching closer.
"""

import json
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from vaisu.llm.errors import CONTENT_EXCERPT_CHARS, InvalidResponseError
from vaisu.models.llm import CallResult

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_JSON_OPENERS = ("{", "[", '"')
_DECODER = json.JSONDecoder()


@dataclass(frozen=True)
class Decoded:
    """Successfully decoded JSON value."""

    value: Any


@dataclass(frozen=True)
class DecodeFailure:
    """Content that held no decodable JSON.

    Attributes:
        content_excerpt: Start of the offending content
        reason: Decoder error description
    """

    content_excerpt: str
    reason: str

    def to_error(self) -> InvalidResponseError:
        """Convert to the raising form."""
        return InvalidResponseError(self.content_excerpt, self.reason)


DecodeResult = Decoded | DecodeFailure


def _unfence(content: str) -> str:
    text = content.strip()
    match = _FENCED_BLOCK.search(text)
    return match.group(1) if match else text


def _slice_brackets(text: str) -> str:
    first_curly = text.find("{")
    first_square = text.find("[")

    start = -1
    end = -1
    if first_curly != -1 and (first_square == -1 or first_curly < first_square):
        start = first_curly
        end = text.rfind("}") + 1
    elif first_square != -1:
        start = first_square
        end = text.rfind("]") + 1

    if start != -1 and end > start:
        return text[start:end]
    return text


def extract_json_text(content: str) -> str:
    """Narrow model output down to the candidate JSON text.

    Args:
        content: Raw model output

    Returns:
        The fenced block interior, sliced to the outermost object or array
        when brackets are found; otherwise the (fenced) text unchanged
    """
    return _slice_brackets(_unfence(content))


def _candidates(text: str) -> Iterator[tuple[str, bool]]:
    """Yield (text, prefix_only) pairs in the order they are tried.

    prefix_only decodes the leading value and ignores whatever follows it.
    """
    yield text, False
    leads_with_json = text.startswith(_JSON_OPENERS)
    if leads_with_json:
        yield text, True
    sliced = _slice_brackets(text)
    if sliced != text:
        yield sliced, False
    if not leads_with_json:
        # Scalars followed by prose
        yield text, True


def decode_json(content: str) -> DecodeResult:
    """Decode JSON from model output without raising.

    Args:
        content: Raw model output

    Returns:
        Decoded with the value, or DecodeFailure with an excerpt and the
        reason the whole text failed to parse
    """
    reason = ""
    for candidate, prefix_only in _candidates(_unfence(content)):
        try:
            if prefix_only:
                value, _ = _DECODER.raw_decode(candidate)
            else:
                value = json.loads(candidate)
        except json.JSONDecodeError as e:
            reason = reason or str(e)
            continue
        return Decoded(value)

    return DecodeFailure(content_excerpt=content[:CONTENT_EXCERPT_CHARS], reason=reason)


def parse_json(response: CallResult | str) -> Any:
    """Decode JSON from a call result or raw text.

    Args:
        response: CallResult or its content

    Returns:
        The decoded value

    Raises:
        InvalidResponseError: If no JSON can be decoded
    """
    content = response.content if isinstance(response, CallResult) else response
    result = decode_json(content)

    if isinstance(result, DecodeFailure):
        logger.error("Failed to parse JSON response: %s", result.content_excerpt)
        raise result.to_error()

    return result.value
