"""
Request Budget: hard limits on model usage per deck build.

One build makes at most one generation call, one scan call and one
replacement call. The budget makes that ceiling explicit and caps tokens.

INVARIANTS:
- Checks happen BEFORE each LLM call, accounting happens AFTER
- Exceedance finalizes the budget; no further calls are allowed
- A fresh budget is created per build request (no cross-request state)

Whether exceedance is fatal depends on the stage: generation propagates
it, scanning and replacement degrade to deterministic fallbacks.
"""

from dataclasses import dataclass, field

from commanderforge.models.failure import FailureKind, KnownError

# =============================================================================
# HARD LIMITS
# =============================================================================

MAX_LLM_CALLS_PER_REQUEST = 3
MAX_TOKENS_PER_REQUEST = 30_000


class BudgetExceededError(KnownError):
    """Raised when a build's LLM budget is exhausted."""

    def __init__(self, limit_type: str, used: int, limit: int):
        self.limit_type = limit_type
        self.used = used
        self.limit = limit
        super().__init__(
            kind=FailureKind.BUDGET_EXCEEDED,
            message=f"Request budget exceeded: {limit_type}",
            detail=f"{limit_type}: {used}/{limit}",
            suggestion="Retry the build.",
            status_code=429,
        )


@dataclass
class RequestBudget:
    """Tracks and enforces LLM limits for a single build."""

    max_llm_calls: int = MAX_LLM_CALLS_PER_REQUEST
    max_tokens: int = MAX_TOKENS_PER_REQUEST
    llm_calls_used: int = 0
    tokens_used: int = 0
    _finalized: bool = field(default=False, repr=False)

    def check_call_budget(self) -> None:
        """
        Check if another LLM call is allowed.

        Raises:
            BudgetExceededError: If the call or token limit is exhausted
        """
        if self.tokens_used > self.max_tokens:
            self._finalized = True
            raise BudgetExceededError(
                limit_type="tokens",
                used=self.tokens_used,
                limit=self.max_tokens,
            )
        if self._finalized or self.llm_calls_used >= self.max_llm_calls:
            self._finalized = True
            raise BudgetExceededError(
                limit_type="LLM calls",
                used=self.llm_calls_used,
                limit=self.max_llm_calls,
            )

    def record_call(self, input_tokens: int, output_tokens: int) -> None:
        """
        Record an LLM call and its token usage.

        The response that pushed usage over the limit is still usable;
        only subsequent calls are refused.
        """
        self.llm_calls_used += 1
        self.tokens_used += input_tokens + output_tokens
        if self.tokens_used > self.max_tokens:
            self._finalized = True

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def remaining_calls(self) -> int:
        if self._finalized:
            return 0
        return max(0, self.max_llm_calls - self.llm_calls_used)
