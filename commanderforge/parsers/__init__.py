from commanderforge.parsers.llm_json import (
    PARSE_STRATEGIES,
    JsonExtractionError,
    ParsedJson,
    parse_llm_json,
)

__all__ = [
    "PARSE_STRATEGIES",
    "JsonExtractionError",
    "ParsedJson",
    "parse_llm_json",
]
