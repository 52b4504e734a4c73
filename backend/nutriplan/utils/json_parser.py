"""
Tolerant JSON extraction for AI responses.
Handles markdown fences, commentary, smart quotes and trailing commas.
"""
import json
import re
from typing import Dict, Any, Optional
import logging

from nutriplan.core.constants import LimitsConstants
from nutriplan.core.exceptions import UnparseableAIResponseError

logger = logging.getLogger(__name__)

_SMART_QUOTES = {
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
}


def parse_ai_json(response: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of a raw AI response.

    Tries:
    1. Direct parse of the whole response
    2. The span between the first '{' and the last '}', sanitized

    Args:
        response: Raw AI response string

    Returns:
        Parsed JSON dictionary

    Raises:
        UnparseableAIResponseError: If no JSON object can be recovered
    """
    if not response or not isinstance(response, str):
        raise UnparseableAIResponseError("Empty or invalid AI response")

    result = _try_parse(response)
    if isinstance(result, dict):
        return result

    candidate = _extract_braced_span(response)
    if candidate is not None:
        result = _try_parse(_sanitize(candidate))
        if isinstance(result, dict):
            return result

    raw_prefix = response[:LimitsConstants.RAW_RESPONSE_LOG_PREFIX]
    logger.error(f"AI response could not be parsed as JSON: {raw_prefix}")
    raise UnparseableAIResponseError("Could not parse AI response as JSON", raw_prefix=raw_prefix)


def _try_parse(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        return None


def _extract_braced_span(response: str) -> Optional[str]:
    """Return the text between the first '{' and the last '}'."""
    json_start = response.find('{')
    json_end = response.rfind('}')

    if json_start == -1 or json_end == -1 or json_end <= json_start:
        return None
    return response[json_start:json_end + 1]


def _sanitize(json_str: str) -> str:
    """Strip artifacts that AI models commonly leave around JSON."""
    json_str = re.sub(r'```(?:json)?', '', json_str)

    # Comments; '//' only at line start or after whitespace so URLs survive
    json_str = re.sub(r'/\*.*?\*/', '', json_str, flags=re.DOTALL)
    json_str = re.sub(r'(^|\s)//[^\n]*', r'\1', json_str)

    for smart, plain in _SMART_QUOTES.items():
        json_str = json_str.replace(smart, plain)

    return _fix_common_json_errors(json_str)


def _fix_common_json_errors(json_str: str) -> str:
    """
    Fix common JSON errors that AI models make.

    Common issues:
    - Range values like 2-3 instead of numbers
    - Trailing commas
    """
    original_len = len(json_str)

    # "calories": 400-450, -> "calories": 400,
    json_str = re.sub(r':\s*(\d+)-\d+\s*,', r': \1,', json_str)
    json_str = re.sub(r':\s*(\d+)-\d+\s*}', r': \1}', json_str)

    # Remove trailing commas before } or ]
    json_str = re.sub(r',(\s*[}\]])', r'\1', json_str)

    if len(json_str) != original_len:
        logger.debug(f"Fixed JSON errors: {original_len} -> {len(json_str)} chars")

    return json_str


def safe_json_parse(json_str: str, fallback: Any = None) -> Any:
    """
    Safely parse JSON string with fallback.

    Args:
        json_str: JSON string to parse
        fallback: Value to return if parsing fails

    Returns:
        Parsed JSON or fallback value
    """
    try:
        return json.loads(json_str)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.debug(f"JSON parse failed: {e}")
        return fallback
