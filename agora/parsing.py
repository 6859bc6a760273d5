"""JSON extraction from LLM output wrapped in markdown code fences."""

import json
import re

from agora.errors import ParseError

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` (or bare ```) fence, if present."""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    if cleaned.startswith("```"):
        # Unterminated fence: drop every fence marker.
        return re.sub(r"```[a-zA-Z]*\n?", "", cleaned).strip()
    return cleaned


def parse_json_object(text: str, context: str = "LLM response") -> dict:
    """Strip code fences and parse a JSON object.

    Raises:
        ParseError: If the text is empty, not valid JSON, or not an object.
    """
    if not text or not text.strip():
        raise ParseError(f"Empty {context}")
    cleaned = strip_code_fence(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Could not parse JSON from {context}: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object in {context}, got {type(data).__name__}")
    return data
