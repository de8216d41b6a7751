"""
Defensive JSON extraction from model responses.

Model output may wrap JSON in prose or markdown fences, leave trailing
commas, or inline comments. Strategies run in a FIXED order, most
conservative first, and the first success wins:

1. Strip code fences and trailing commas, parse as-is.
2. Extract the first bracketed substring and parse that.
3. Additionally strip /* ... */ block comments, then extract and parse.

Each strategy is a pure function that either returns the parsed value or
raises. Failures are collected so the caller can report every attempt.
"""

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

_CODE_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*")
_TRAILING_COMMA = re.compile(r",\s*([\]}])")
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_ARRAY = re.compile(r"\[[\s\S]*\]")
_OBJECT = re.compile(r"\{[\s\S]*\}")


class JsonExtractionError(ValueError):
    """No strategy produced JSON of the expected shape."""

    def __init__(self, attempts: list[tuple[str, str]]):
        self.attempts = attempts
        summary = "; ".join(f"{name}: {reason}" for name, reason in attempts)
        super().__init__(f"All JSON parsing strategies failed ({summary})")


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text)


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def strip_block_comments(text: str) -> str:
    return _BLOCK_COMMENT.sub("", text)


def _pattern_for(expected: type) -> re.Pattern[str]:
    return _ARRAY if expected is list else _OBJECT


def _loads(text: str, expected: type) -> Any:
    value = json.loads(text)
    if not isinstance(value, expected):
        raise ValueError(f"expected {expected.__name__}, got {type(value).__name__}")
    return value


def parse_cleaned(text: str, expected: type) -> Any:
    """Strategy 1: fence and trailing-comma cleanup, whole text."""
    cleaned = strip_trailing_commas(strip_code_fences(text)).strip()
    return _loads(cleaned, expected)


def parse_extracted(text: str, expected: type) -> Any:
    """Strategy 2: parse the first bracketed substring."""
    match = _pattern_for(expected).search(strip_code_fences(text))
    if match is None:
        raise ValueError("no bracketed substring found")
    return _loads(strip_trailing_commas(match.group(0)), expected)


def parse_without_comments(text: str, expected: type) -> Any:
    """Strategy 3: remove block comments, then extract."""
    return parse_extracted(strip_block_comments(text), expected)


ParseStrategy = Callable[[str, type], Any]

PARSE_STRATEGIES: tuple[tuple[str, ParseStrategy], ...] = (
    ("cleaned", parse_cleaned),
    ("extracted", parse_extracted),
    ("without_comments", parse_without_comments),
)


@dataclass(frozen=True, slots=True)
class ParsedJson:
    """Parsed value plus the strategy that produced it."""

    value: Any
    strategy: str


def parse_llm_json(text: str, expected: type = list) -> ParsedJson:
    """
    Run the strategies in order and return the first success.

    Args:
        text: Raw model response
        expected: list or dict, the required top-level JSON type

    Raises:
        JsonExtractionError: If every strategy fails
    """
    attempts: list[tuple[str, str]] = []
    for name, strategy in PARSE_STRATEGIES:
        try:
            return ParsedJson(value=strategy(text, expected), strategy=name)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError subclass
            attempts.append((name, str(e)))
    raise JsonExtractionError(attempts)
