"""
LLM Response Parser
===================

Turns a raw chat reply into the `{"meals": [...]}` object the pipeline
expects. Models wrap JSON in prose and ``` fences, and sometimes leave
trailing commas or comments behind; all of that is absorbed here.

Strategy chain:
    extractors (in order): fenced_block, balanced_braces, greedy_braces
    decoders (in order):   strict json.loads, lenient (trailing commas, comments)

The first candidate that decodes to an object with a `meals` list wins. When
every strategy fails, ParseError carries each strategy's reason.
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from meal_models import Meal
from planner_errors import ParseError
from tools.logging_utils import get_logger

logger = get_logger(__name__)

_FENCE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)
# string literal | block comment | line comment | trailing comma
_LENIENT_TOKENS = re.compile(r'("(?:\\.|[^"\\])*")|/\*.*?\*/|//[^\n]*|,(\s*[}\]])', re.DOTALL)


def strip_markdown_json(text: str) -> str:
    """Remove a surrounding ```json fence if present."""
    if not text:
        return ""
    match = _FENCE.search(text)
    return match.group(1).strip() if match else text.strip()


# =============================================================================
# EXTRACTORS
# =============================================================================

def _extract_fenced_block(text: str) -> Optional[str]:
    match = _FENCE.search(text)
    if not match:
        return None
    body = match.group(1).strip()
    return body if body.startswith("{") else None


def _extract_balanced_braces(text: str) -> Optional[str]:
    """First top-level {...} span, brace-matched and string-aware."""
    start = text.find("{")
    while start != -1:
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
        # unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def _extract_greedy_braces(text: str) -> Optional[str]:
    """First '{' through last '}'."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start:end + 1]


EXTRACTORS: Tuple[Tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("fenced_block", _extract_fenced_block),
    ("balanced_braces", _extract_balanced_braces),
    ("greedy_braces", _extract_greedy_braces),
)


# =============================================================================
# DECODERS
# =============================================================================

def _decode_strict(candidate: str) -> Any:
    return json.loads(candidate)


def _lenient_token(match: "re.Match[str]") -> str:
    if match.group(1) is not None:
        return match.group(1)
    if match.group(2) is not None:
        return match.group(2)
    return ""


def _decode_lenient(candidate: str) -> Any:
    """Drop comments and trailing commas outside string values, then decode."""
    return json.loads(_LENIENT_TOKENS.sub(_lenient_token, candidate))


DECODERS: Tuple[Tuple[str, Callable[[str], Any]], ...] = (
    ("strict", _decode_strict),
    ("lenient", _decode_lenient),
)


# =============================================================================
# PUBLIC API
# =============================================================================

def parse_meal_response(text: str) -> Dict[str, Any]:
    """
    Extract the meal-plan object from a model reply.

    Args:
        text: Raw reply text

    Returns:
        Parsed object containing a `meals` list

    Raises:
        ParseError: No object-shaped text, invalid JSON, or no `meals` array
    """
    if not text or not text.strip():
        raise ParseError("Empty response from model; expected a JSON object with a 'meals' array")

    failures: List[str] = []
    tried = set()
    for extractor_name, extract in EXTRACTORS:
        candidate = extract(text)
        if candidate is None:
            failures.append(f"{extractor_name}: no JSON object found")
            continue
        if candidate in tried:
            continue
        tried.add(candidate)

        decode_errors = []
        for decoder_name, decode in DECODERS:
            try:
                data = decode(candidate)
            except json.JSONDecodeError as e:
                decode_errors.append(f"{decoder_name} {e.msg} at line {e.lineno} col {e.colno}")
                continue
            if not isinstance(data, dict):
                decode_errors.append(f"{decoder_name} decoded a {type(data).__name__}, not an object")
                continue
            if not isinstance(data.get("meals"), list):
                decode_errors.append(f"{decoder_name} object has no 'meals' array")
                continue
            if extractor_name != EXTRACTORS[0][0] or decoder_name != DECODERS[0][0]:
                logger.debug(f"🔍 Parsed reply via {extractor_name}/{decoder_name}")
            return data
        failures.append(f"{extractor_name}: " + ", ".join(decode_errors))

    if not tried:
        raise ParseError("Response contained no JSON object. Reply with pure JSON only, "
                         "a single object with a 'meals' array.")
    raise ParseError("Could not parse a JSON object with a 'meals' array (" + "; ".join(failures) + ")")


def parse_meals(text: str, default_day: Optional[int] = None) -> List[Meal]:
    """
    Parse a reply straight into Meal records.

    Args:
        text: Raw reply text
        default_day: Day assigned to entries that omit `day`

    Raises:
        ParseError: Unparseable reply or a meal entry with invalid fields
    """
    data = parse_meal_response(text)
    meals = []
    for index, entry in enumerate(data["meals"]):
        try:
            meals.append(Meal.from_dict(entry, default_day=default_day))
        except ValueError as e:
            raise ParseError(f"Meal #{index + 1} is invalid: {e}") from e
    return meals
