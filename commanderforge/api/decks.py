"""
Deck API endpoints.

Validates submitted Commander decks and runs the AI build pipeline.
Every response is an ApiResponse envelope that has passed through
finalize_response; typed pipeline errors keep their status codes.
"""

import logging
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from commanderforge.models.archetype import get_archetype_rules
from commanderforge.models.budget import RequestBudget
from commanderforge.models.card import Card, normalize_colors
from commanderforge.models.failure import (
    ApiResponse,
    KnownError,
    create_success,
    create_unknown_failure,
    finalize_response,
)
from commanderforge.services.card_resolver import CardResolver, ScryfallClient
from commanderforge.services.deck_pipeline import DeckBuildPipeline
from commanderforge.services.legality import (
    format_validation_results,
    validate_deck,
    validate_land_count,
)
from commanderforge.services.llm_client import create_completion_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/decks", tags=["decks"])


class CardPayload(BaseModel):
    """A card as submitted by or returned to a client."""

    name: str = Field(..., min_length=1)
    color_identity: list[str] | None = None
    type_line: str = ""
    oracle_text: str = ""
    mana_cost: str = ""
    mana_value: float = Field(default=0.0, ge=0)
    commander_legality: Literal["legal", "banned", "not_legal"] | None = None
    category: str | None = None
    quantity: int = Field(default=1, ge=1)

    def to_card(self) -> Card:
        return Card(
            name=self.name.strip(),
            color_identity=normalize_colors(self.color_identity),
            type_line=self.type_line,
            oracle_text=self.oracle_text,
            mana_cost=self.mana_cost,
            mana_value=self.mana_value,
            commander_legality=self.commander_legality,
            category=self.category,
            quantity=self.quantity,
        )

    @classmethod
    def from_card(cls, card: Card) -> "CardPayload":
        return cls(
            name=card.name,
            color_identity=list(card.color_identity) if card.color_identity is not None else None,
            type_line=card.type_line,
            oracle_text=card.oracle_text,
            mana_cost=card.mana_cost,
            mana_value=card.mana_value,
            commander_legality=_legality(card.commander_legality),
            category=card.category,
            quantity=card.quantity,
        )


def _legality(value: str | None) -> Literal["legal", "banned", "not_legal"] | None:
    if value == "legal":
        return "legal"
    if value == "banned":
        return "banned"
    if value == "not_legal":
        return "not_legal"
    return None


class ValidateDeckRequest(BaseModel):
    """A deck to validate."""

    commander: CardPayload
    cards: list[CardPayload] = Field(default_factory=list)
    deck_style: str | None = Field(
        default=None,
        description="Archetype preset used for the land count check",
    )


class BuildDeckRequest(BaseModel):
    """Commander and archetype for an AI build."""

    commander: CardPayload
    deck_style: str = "casual"


class BuildDeckResponse(BaseModel):
    """The assembled deck."""

    cards: list[CardPayload]
    commander: CardPayload
    build_log: list[str]
    is_valid: bool
    violation_count: int


def get_pipeline() -> DeckBuildPipeline:
    """Fresh pipeline per request: its own budget, resolver and cache."""
    completion = create_completion_service(budget=RequestBudget())
    resolver = CardResolver(ScryfallClient())
    return DeckBuildPipeline(completion, resolver)


def _failure(exc: KnownError) -> JSONResponse:
    response = finalize_response(exc.to_response())
    return JSONResponse(status_code=exc.status_code, content=response.model_dump(mode="json"))


def _unknown_failure(exc: Exception) -> JSONResponse:
    response = create_unknown_failure(exc)
    return JSONResponse(status_code=500, content=response.model_dump(mode="json"))


@router.post("/validate", response_model=ApiResponse[dict[str, Any]])
async def validate(request: ValidateDeckRequest) -> ApiResponse[dict[str, Any]] | JSONResponse:
    """
    Validate a deck against Commander rules.

    Checks the commander, deck size, singleton rule, banned list and color
    identity. When a deck style is given, the land count is checked
    against that archetype too.
    """
    try:
        commander = request.commander.to_card()
        cards = [card.to_card() for card in request.cards]
        validation = validate_deck(cards, commander)
        result = format_validation_results(validation)

        if request.deck_style:
            rules = get_archetype_rules(request.deck_style)
            result["land_violations"] = [
                {
                    "card": violation.card,
                    "severity": violation.severity.value,
                    "reason": violation.reason,
                    "suggested_replacement": violation.suggested_replacement,
                }
                for violation in validate_land_count(cards, rules)
            ]
        return create_success(result)
    except KnownError as e:
        return _failure(e)


@router.post("/build", response_model=ApiResponse[BuildDeckResponse])
async def build(
    request: BuildDeckRequest,
    pipeline: Annotated[DeckBuildPipeline, Depends(get_pipeline)],
) -> ApiResponse[BuildDeckResponse] | JSONResponse:
    """
    Build a 99-card deck for a commander with the AI pipeline.

    Returns the assembled cards, the resolved commander and a build log.
    Configuration, generation and parsing failures come back as known
    failures with their own status codes.
    """
    try:
        rules = get_archetype_rules(request.deck_style)
        result = await pipeline.build(request.commander.to_card(), rules)
    except KnownError as e:
        logger.warning(
            "BUILD_FAILED",
            extra={"kind": e.kind.value, "status_code": e.status_code},
        )
        return _failure(e)
    except Exception as e:
        logger.exception("BUILD_FAILED_UNKNOWN")
        return _unknown_failure(e)

    return create_success(
        BuildDeckResponse(
            cards=[CardPayload.from_card(card) for card in result.cards],
            commander=CardPayload.from_card(result.commander),
            build_log=list(result.build_log),
            is_valid=result.validation.is_valid,
            violation_count=len(result.validation.violations),
        )
    )
