"""
Model response parsing.

The model is asked for bare JSON but often wraps it in Markdown fences.
"""

import json
import logging
import re
from typing import Any, Dict

from .errors import MalformedModelOutput

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```json\s*", re.IGNORECASE)
_FENCE_ANY = re.compile(r"```\s*")


def _reject_constant(name: str):
    raise ValueError(f"Non-standard JSON constant: {name}")


def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` decoration and surrounding whitespace."""
    cleaned = _FENCE_OPEN.sub("", text)
    cleaned = _FENCE_ANY.sub("", cleaned)
    return cleaned.strip()


def parse_model_json(raw_text: str) -> Dict[str, Any]:
    """Parse the model's text output as a JSON object.

    Args:
        raw_text: Text returned by the model

    Returns:
        The parsed object. Fields are not validated.

    Raises:
        MalformedModelOutput: If the text is empty, not strict JSON (NaN and
            Infinity are rejected), or not an object
    """
    if not raw_text or not raw_text.strip():
        logger.error("Model returned an empty response")
        raise MalformedModelOutput(raw_text or "")

    try:
        parsed = json.loads(strip_code_fences(raw_text), parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        logger.error("Failed to parse model response: %s", raw_text)
        raise MalformedModelOutput(raw_text) from e

    if not isinstance(parsed, dict):
        logger.error("Model response is not a JSON object: %s", raw_text)
        raise MalformedModelOutput(raw_text)

    return parsed


def read_field(result: Dict[str, Any], *path: str) -> Any:
    """Follow ``path`` through nested dicts, returning None when it breaks."""
    current: Any = result
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current
