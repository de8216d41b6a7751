"""
Failure taxonomy and response envelope.

Every deck-build failure is classified. Two families exist:

- FATAL (required preconditions): ConfigurationError, GenerationError,
  ParseError, InsufficientCardsError, BuildCancelledError. These abort the
  whole build and surface to the caller. No partial deck is returned.
- NON-FATAL (optional enhancements): ValidationFallback. Raised and caught
  inside a stage, which then degrades to deterministic results.

INVARIANT: No raw 500 errors reach API callers. All responses pass through
`finalize_response()`.
"""

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    # Input failures
    MISSING_REQUIRED = "missing_required"

    # Constraint violations
    BUDGET_EXCEEDED = "budget_exceeded"
    DECK_SIZE_VIOLATION = "deck_size_violation"

    # Service failures
    SERVICE_UNAVAILABLE = "service_unavailable"
    EXTERNAL_API_ERROR = "external_api_error"

    # Caller abandoned the request
    CANCELLED = "cancelled"

    UNKNOWN = "unknown"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    SUCCESS = "success"
    KNOWN_FAILURE = "known_failure"
    UNKNOWN_FAILURE = "unknown_failure"


T = TypeVar("T")


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(..., description="Classification of the failure")
    message: str = Field(..., description="User-appropriate explanation")
    detail: str | None = Field(default=None, description="Technical detail")
    suggestion: str | None = Field(default=None, description="Suggested next step")


class ApiResponse(BaseModel, Generic[T]):
    """Response envelope for all API endpoints."""

    outcome: OutcomeType
    data: T | None = None
    failure: FailureDetail | None = None

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
    ) -> "ApiResponse[Any]":
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse[Any]:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
        )


# =============================================================================
# FATAL BUILD ERRORS
# =============================================================================


class ConfigurationError(KnownError):
    """
    A required external credential is missing.

    Fatal and not retryable until configuration changes.
    """

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message=message,
            detail=detail,
            suggestion="Configure ANTHROPIC_API_KEY and retry.",
            status_code=503,
        )


class GenerationError(KnownError):
    """The build request is missing a commander or is otherwise malformed."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            kind=FailureKind.MISSING_REQUIRED,
            message=message,
            detail=detail,
            suggestion="Choose a valid commander and deck style.",
            status_code=400,
        )


class ParseError(KnownError):
    """
    Every parsing strategy failed on a model response.

    Safe to retry the whole generation stage. Carries the raw response
    length and a short preview for diagnostics.
    """

    PREVIEW_LENGTH = 200

    def __init__(self, raw_response: str, detail: str | None = None):
        self.raw_length = len(raw_response)
        self.preview = raw_response[: self.PREVIEW_LENGTH]
        super().__init__(
            kind=FailureKind.EXTERNAL_API_ERROR,
            message="Could not parse the generated card list.",
            detail=detail or f"Response length {self.raw_length}: {self.preview!r}",
            suggestion="Retry the generation.",
            status_code=502,
        )


class InsufficientCardsError(KnownError):
    """
    Too few usable cards survived filtering.

    Undersized candidate lists are never repaired piecemeal; the caller
    should retry generation from scratch.
    """

    def __init__(self, count: int, minimum: int):
        self.count = count
        self.minimum = minimum
        super().__init__(
            kind=FailureKind.DECK_SIZE_VIOLATION,
            message=(
                f"Only {count} usable cards were generated; at least {minimum} are required."
            ),
            detail=f"cards: {count}/{minimum}",
            suggestion="Retry the generation.",
            status_code=422,
        )


class BuildCancelledError(KnownError):
    """The caller cancelled the build between stages."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(
            kind=FailureKind.CANCELLED,
            message="Deck build was cancelled.",
            detail=f"Cancelled before stage: {stage}",
            status_code=499,
        )


# =============================================================================
# NON-FATAL (caught inside a stage)
# =============================================================================


class ValidationFallback(KnownError):
    """The LLM scan was unavailable; deterministic results are used alone."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(
            kind=FailureKind.SERVICE_UNAVAILABLE,
            message="AI validation unavailable; using rule-based validation only.",
            detail=reason,
            status_code=503,
        )


# =============================================================================
# RESPONSE AUTHORITY BOUNDARY
# =============================================================================

STANDARD_UNKNOWN_MESSAGE = "I failed and I don't know why. Try simplifying the request or retrying."

_finalized_responses: set[int] = set()


def finalize_response(response: ApiResponse[Any]) -> ApiResponse[Any]:
    """
    Finalize a response through the authority boundary.

    Raises:
        ValueError: If response structure is invalid
    """
    if response.outcome == OutcomeType.SUCCESS:
        if response.failure is not None:
            raise ValueError("Success response must not have failure details")
    elif response.failure is None:
        raise ValueError(f"{response.outcome.value} response must have failure details")

    _finalized_responses.add(id(response))
    return response


def is_finalized(response: ApiResponse[Any]) -> bool:
    """Check if a response has passed through the authority boundary."""
    return id(response) in _finalized_responses


def create_unknown_failure(exception: Exception) -> ApiResponse[Any]:
    """Create a finalized unknown failure. The message is fixed."""
    response: ApiResponse[Any] = ApiResponse(
        outcome=OutcomeType.UNKNOWN_FAILURE,
        failure=FailureDetail(
            kind=FailureKind.UNKNOWN,
            message=STANDARD_UNKNOWN_MESSAGE,
            detail=type(exception).__name__,
            suggestion="If this persists, please report the issue.",
        ),
    )
    return finalize_response(response)


def create_success(data: T) -> ApiResponse[T]:
    """Create a finalized success response."""
    response = ApiResponse[T](outcome=OutcomeType.SUCCESS, data=data)
    return finalize_response(response)
