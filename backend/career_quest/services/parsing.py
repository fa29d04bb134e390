import json
from typing import Any

_decoder = json.JSONDecoder()


def extract_json_object(text: Any) -> dict[str, Any] | None:
    """Returns the first well-formed JSON object embedded in free-form model output."""
    if not isinstance(text, str) or not text:
        return None
    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)
    return None


def extract_json_array(text: Any) -> list[Any] | None:
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None
