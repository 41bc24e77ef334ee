import json
from typing import Any


def strip_code_fence(text: str) -> str:
    """Remove an optional surrounding markdown code fence (```json ... ```)."""
    cleaned = (text or "").strip()
    for opener in ("```json", "```JSON", "```"):
        if cleaned.startswith(opener):
            cleaned = cleaned[len(opener):]
            break
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def loads_fenced(text: str) -> Any:
    """json.loads after stripping code fences. Raises ValueError on bad JSON."""
    return json.loads(strip_code_fence(text))
