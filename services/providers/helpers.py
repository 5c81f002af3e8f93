"""Helpers shared by the vendor adapters."""

import json
import re
from typing import Any, Callable, Dict, Iterable, List, Tuple, TypeVar

from utils import StreamCorruption

T = TypeVar("T")

_DATA_URL = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)

# Malformed image URLs degrade to this placeholder instead of failing the request.
PLACEHOLDER_MIME_TYPE = "image/png"
PLACEHOLDER_DATA = "EMPTY"


def parse_data_url(url: str) -> Tuple[str, str]:
    """Split ``data:<mime>;base64,<data>`` into (mime type, base64 data)."""
    match = _DATA_URL.match(url or "")
    if match is None:
        return PLACEHOLDER_MIME_TYPE, PLACEHOLDER_DATA
    return match.group(1), match.group(2)


def drop_leading(items: List[T], keep: Callable[[T], bool]) -> List[T]:
    """Drop items from the front until one satisfies ``keep``."""
    for index, item in enumerate(items):
        if keep(item):
            return items[index:]
    return []


def compact(values: Dict[str, Any]) -> Dict[str, Any]:
    """Drop unset generation parameters."""
    return {key: value for key, value in values.items() if value is not None}


def load_event_json(data: str) -> Dict[str, Any]:
    """Parse one streamed event payload, which must be a JSON object."""
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise StreamCorruption(f"Failed to parse stream data, {e}") from e
    if not isinstance(payload, dict):
        raise StreamCorruption(f"Failed to parse stream data, expected an object, got {type(payload).__name__}")
    return payload


def model_mentions(model: str, markers: Iterable[str]) -> bool:
    model = (model or "").lower()
    return any(marker in model for marker in markers)
