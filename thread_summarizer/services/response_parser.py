"""Parsing of provider responses into BatchSummary objects.

Providers are asked for bare JSON but often wrap it in markdown fences,
add prose around it, or emit small syntax slips (trailing commas, missing
commas between values, raw newlines inside strings). Those are repaired;
anything still unparseable or of the wrong shape is rejected.
"""

import json
import re
from typing import Any

import logfire
from pydantic import ValidationError

from thread_summarizer.exceptions import ResponseParseError
from thread_summarizer.models.summary_models import BatchSummary, ScaledLimits

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?|\n?```")
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_MISSING_COMMA_STRINGS = re.compile(r'"(\s*\n\s*)"')
_MISSING_COMMA_OBJECTS = re.compile(r"}(\s*\n\s*){")
_MISSING_COMMA_AFTER_CLOSE = re.compile(r'([}\]])(\s*\n\s*)"(\w+)"\s*:')

# Iterative repair bound: one inserted comma per attempt
_MAX_COMMA_INSERTIONS = 20


def _escape_control_chars_in_strings(text: str) -> str:
    """Escape raw newlines/tabs that appear inside string literals."""
    out = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            elif char == "\n":
                out.append("\\n")
                continue
            elif char == "\r":
                out.append("\\r")
                continue
            elif char == "\t":
                out.append("\\t")
                continue
        elif char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def repair_json(text: str) -> str:
    """Fix the structural slips LLMs commonly make in JSON output."""
    result = _escape_control_chars_in_strings(text)
    result = _TRAILING_COMMA.sub(r"\1", result)
    result = _MISSING_COMMA_STRINGS.sub(r'",\1"', result)
    result = _MISSING_COMMA_OBJECTS.sub(r"},\1{", result)
    result = _MISSING_COMMA_AFTER_CLOSE.sub(r'\1,\2"\3":', result)
    return result


def _insert_missing_commas(text: str) -> str:
    """Insert commas where the decoder reports one is expected."""
    for _ in range(_MAX_COMMA_INSERTIONS):
        try:
            json.loads(text)
            return text
        except json.JSONDecodeError as e:
            if not e.msg.startswith("Expecting ',' delimiter"):
                return text
            text = text[: e.pos] + "," + text[e.pos :]
    return text


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Extract and decode the outermost JSON object in a provider response.

    Raises:
        ResponseParseError: If no object can be decoded
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end == -1 or start > end:
        raise ResponseParseError("No JSON object found in provider response")

    candidate = cleaned[start : end + 1]
    for attempt in (
        lambda: candidate,
        lambda: repair_json(candidate),
        lambda: _insert_missing_commas(repair_json(candidate)),
    ):
        try:
            decoded = json.loads(attempt())
        except json.JSONDecodeError:
            continue
        if not isinstance(decoded, dict):
            raise ResponseParseError("Provider response JSON is not an object")
        return decoded

    logfire.warn(
        "Failed to parse provider JSON after repair",
        response_preview=candidate[:300],
    )
    raise ResponseParseError("Provider response is not valid JSON")


def parse_batch_summary(text: str, limits: ScaledLimits) -> BatchSummary:
    """
    Parse a provider response into a BatchSummary clipped to limits.

    Raises:
        ResponseParseError: If the response is not JSON or lacks the summary shape
    """
    data = parse_json_object(text)
    try:
        summary = BatchSummary.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"Provider response has wrong shape: {e}") from e
    return summary.clipped(limits)
