import json
import re
from typing import Any, Dict

from shared.errors import MalformedResponseError

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json_from_string(text: str) -> str:
    """
    Safely extracts a JSON object from a string, even with markdown fences
    or chatter around it.
    """
    if not text:
        return ""
    match = _FENCE_PATTERN.search(text)
    candidate = match.group(1) if match else text
    start, end = candidate.find("{"), candidate.rfind("}")
    if start == -1 or end <= start:
        return ""
    return candidate[start:end + 1]


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parses a model answer into a dict or raises MalformedResponseError."""
    json_string = extract_json_from_string(text)
    if not json_string:
        raise MalformedResponseError("Failed to extract JSON from the model's response.", raw_text=text)
    try:
        data = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Model returned invalid JSON: {e}", raw_text=text) from e
    if not isinstance(data, dict):
        raise MalformedResponseError("Model response is not a JSON object.", raw_text=text)
    return data
