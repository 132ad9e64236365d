from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from ...errors import ComposerError

_OBJECT_ARRAY_RE = re.compile(r"\[{[\s\S]*}]")
_ANY_ARRAY_RE = re.compile(r"\[[\s\S]*]")


def extract_json_array(raw: str) -> str:
    """Cut the JSON array out of a model reply.

    Models tend to wrap the payload in prose or code fences. The widest
    ``[{...}]`` span wins; otherwise the widest ``[...]`` span.
    """
    if not raw or not raw.strip():
        raise ComposerError("Empty AI response")

    match = _OBJECT_ARRAY_RE.search(raw) or _ANY_ARRAY_RE.search(raw)
    if not match:
        raise ComposerError(f"No JSON array found in AI response: {raw[:200]!r}")
    return match.group(0)


def parse_json_array(raw: str) -> List[Dict[str, Any]]:
    """Extract and decode a list of JSON objects from a model reply."""
    fragment = extract_json_array(raw)
    try:
        data = json.loads(fragment)
    except json.JSONDecodeError as exc:
        raise ComposerError(f"Invalid JSON in AI response: {exc}") from exc

    if not isinstance(data, list):
        raise ComposerError("AI response is not a JSON array")
    return [row for row in data if isinstance(row, dict)]
