from commanderforge.models.archetype import (
    ARCHETYPE_PRESETS,
    BUDGET_RULES,
    CASUAL_RULES,
    COMPETITIVE_RULES,
    ArchetypeRules,
    CategoryRange,
    get_archetype_rules,
)
from commanderforge.models.budget import (
    MAX_LLM_CALLS_PER_REQUEST,
    MAX_TOKENS_PER_REQUEST,
    BudgetExceededError,
    RequestBudget,
)
from commanderforge.models.build import BuildResult, BuildStage, LookupGap
from commanderforge.models.card import Card
from commanderforge.models.failure import (
    ApiResponse,
    BuildCancelledError,
    ConfigurationError,
    FailureDetail,
    FailureKind,
    GenerationError,
    InsufficientCardsError,
    KnownError,
    OutcomeType,
    ParseError,
    ValidationFallback,
    create_success,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from commanderforge.models.replacement import Replacement, SuggestedCard
from commanderforge.models.violation import (
    CardValidation,
    DeckSummary,
    DeckValidation,
    LegalityCheck,
    Severity,
    Violation,
    ViolationType,
)

__all__ = [
    "ARCHETYPE_PRESETS",
    "BUDGET_RULES",
    "CASUAL_RULES",
    "COMPETITIVE_RULES",
    "MAX_LLM_CALLS_PER_REQUEST",
    "MAX_TOKENS_PER_REQUEST",
    "ApiResponse",
    "ArchetypeRules",
    "BudgetExceededError",
    "BuildCancelledError",
    "BuildResult",
    "BuildStage",
    "Card",
    "CardValidation",
    "CategoryRange",
    "ConfigurationError",
    "DeckSummary",
    "DeckValidation",
    "FailureDetail",
    "FailureKind",
    "GenerationError",
    "InsufficientCardsError",
    "KnownError",
    "LegalityCheck",
    "LookupGap",
    "OutcomeType",
    "ParseError",
    "Replacement",
    "RequestBudget",
    "Severity",
    "SuggestedCard",
    "ValidationFallback",
    "Violation",
    "ViolationType",
    "create_success",
    "create_unknown_failure",
    "finalize_response",
    "get_archetype_rules",
    "is_finalized",
]
