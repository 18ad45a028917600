"""
Pull a JSON object out of a model reply.

Models wrap JSON in markdown fences or add a sentence before or after
it. The reply is cleaned, parsed whole if possible, otherwise scanned
for the first brace-balanced object that parses.
"""

import json
import re
from typing import Optional

_FENCE_RE = re.compile(r'```(?:json)?', re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` markers and surrounding whitespace."""
    return _FENCE_RE.sub('', text).strip()


def _balanced_object(text: str, start: int) -> Optional[dict]:
    """Parse the {...} block opening at text[start], or None."""
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]

        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start:i + 1])
                except ValueError:
                    return None
                return parsed if isinstance(parsed, dict) else None

    return None


def extract_json_object(text: Optional[str]) -> Optional[dict]:
    """
    Return the first JSON object found in text.

    Args:
        text: Raw model reply

    Returns:
        Parsed dict, or None if no object could be parsed
    """
    if not text or not text.strip():
        return None

    cleaned = strip_code_fences(text)

    try:
        parsed = json.loads(cleaned)
    except ValueError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    for i, ch in enumerate(cleaned):
        if ch == '{':
            result = _balanced_object(cleaned, i)
            if result is not None:
                return result

    return None
