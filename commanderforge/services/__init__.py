"""
CommanderForge services.

Legality engine and the generate / validate / replace / assemble pipeline.
"""

from commanderforge.services.card_resolver import (
    CardDataSource,
    CardResolver,
    ScryfallClient,
    get_fallback_card,
)
from commanderforge.services.deck_generator import DeckGenerator, build_generation_prompt
from commanderforge.services.deck_pipeline import DeckBuildPipeline
from commanderforge.services.legality import (
    COMMANDER_BANNED_CARDS,
    DECK_SIZE,
    ColorIdentityCache,
    format_validation_results,
    is_card_banned,
    validate_card,
    validate_color_identity,
    validate_deck,
    validate_format_legality,
    validate_land_count,
)
from commanderforge.services.llm_client import (
    AnthropicCompletionService,
    TextCompletionService,
    create_completion_service,
)
from commanderforge.services.replacement import ReplacementGenerator, apply_replacements
from commanderforge.services.validation_scanner import (
    ScanResult,
    ScanSummary,
    ValidationScanner,
    merge_violations,
)

__all__ = [
    # Legality engine
    "COMMANDER_BANNED_CARDS",
    "DECK_SIZE",
    "ColorIdentityCache",
    "format_validation_results",
    "is_card_banned",
    "validate_card",
    "validate_color_identity",
    "validate_deck",
    "validate_format_legality",
    "validate_land_count",
    # Card data
    "CardDataSource",
    "CardResolver",
    "ScryfallClient",
    "get_fallback_card",
    # Model access
    "AnthropicCompletionService",
    "TextCompletionService",
    "create_completion_service",
    # Pipeline stages
    "DeckBuildPipeline",
    "DeckGenerator",
    "ReplacementGenerator",
    "ScanResult",
    "ScanSummary",
    "ValidationScanner",
    "apply_replacements",
    "build_generation_prompt",
    "merge_violations",
]
