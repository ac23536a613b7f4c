"""
Parsing and validation of model responses.
"""

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from toolscout.classifier.models import TemplateDecision
from toolscout.utils.error_handling import ResponseParseError, ResponseValidationError

logger = logging.getLogger(__name__)


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced top-level ``{...}`` substring, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:index + 1]
    return None


def parse_model_response(text: str, provider: str = "unknown") -> Dict[str, Any]:
    """
    Parse the model's text into a JSON object.

    Tries a strict parse first, then the first embedded object. Never
    guesses a value when both fail.

    Raises:
        ResponseParseError: if no JSON object can be read
    """
    if text is None:
        raise ResponseParseError(provider, None, message=f"Empty response from {provider}")

    stripped = text.strip()
    try:
        data = json.loads(stripped)
    except ValueError:
        candidate = extract_json_object(stripped)
        if candidate is None:
            raise ResponseParseError(provider, text)
        try:
            data = json.loads(candidate)
        except ValueError as e:
            raise ResponseParseError(provider, text) from e

    if not isinstance(data, dict):
        raise ResponseParseError(provider, text, message=f"AI response from {provider} is not a JSON object")
    return data


def validate_decision(data: Dict[str, Any], raw_response: Optional[str] = None) -> TemplateDecision:
    """
    Validate a parsed object as a TemplateDecision.

    Raises:
        ResponseValidationError: with the pydantic errors and the raw text
    """
    try:
        return TemplateDecision.model_validate(data)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        logger.debug(f"Decision validation failed: {errors}")
        raise ResponseValidationError(
            f"AI response does not match the template decision schema ({e.error_count()} errors)",
            raw_response=raw_response,
            errors=errors,
        ) from e
