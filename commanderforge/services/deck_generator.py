"""
AI decklist generation.

Builds a structured prompt from a commander and archetype rules, asks the
model for a 99-card list, and defensively parses the reply.

Failures here are FATAL for the build (required precondition):
- ConfigurationError: no completion service (missing credential)
- GenerationError: no commander, or the model call itself failed
- ParseError: every parsing strategy failed, or the list was empty
- InsufficientCardsError: fewer than MIN_GENERATED_CARDS usable cards

A partial or empty list is never returned as success.
"""

import logging
import math
from collections.abc import Sequence
from typing import Any

from commanderforge.config import MIN_GENERATED_CARDS, settings
from commanderforge.models.archetype import CATEGORY_LABELS, ArchetypeRules, normalize_category
from commanderforge.models.card import Card, normalize_name
from commanderforge.models.failure import (
    ConfigurationError,
    GenerationError,
    InsufficientCardsError,
    ParseError,
)
from commanderforge.parsers.llm_json import JsonExtractionError, parse_llm_json
from commanderforge.services.legality import (
    DECK_SIZE,
    commander_identity,
    count_cards,
    is_card_banned,
    validate_color_identity,
)
from commanderforge.services.llm_client import COMPLETION_ERRORS, TextCompletionService

logger = logging.getLogger(__name__)


GENERATION_SYSTEM_PROMPT = (
    "You are a Magic: The Gathering deck building expert specializing in optimized "
    "Commander decks. You have deep knowledge of all MTG cards, their synergies, and "
    "deck construction principles. Your most important job is to create EXACTLY "
    f"{DECK_SIZE} cards for a Commander deck."
)

GENERATION_PROMPT_TEMPLATE = """Build a Commander deck for this commander.

Commander: {name}
Color identity: {colors}
Type: {type_line}
Rules text: {oracle_text}
Deck style: {deck_style}
Target power bracket: {min_bracket}-{max_bracket}
{budget_lines}
IMPORTANT RULES:
1. The deck MUST contain EXACTLY {deck_size} cards TOTAL. Do NOT include the commander.
2. Every card must be within the commander's color identity ({colors}).
3. Follow Commander format rules: singleton (basic lands excepted), no banned cards.
4. Ensure a proper mana curve with adequate low-cost cards.

Card distribution:
{distribution}

Respond ONLY with a JSON array of card objects, no prose, in this shape:
[{{"name": "Exact Card Name", "quantity": 1, "category": "Ramp"}}]

Valid categories: Lands, Ramp, Card Draw, Removal, Board Wipes, Protection, Strategy, \
Utility, Finisher.
Basic lands may have quantity > 1; every other card must have quantity 1.
Count all quantities and make sure the total is EXACTLY {deck_size}."""


def format_colors(colors: Sequence[str]) -> str:
    return "".join(colors) if colors else "Colorless"


def build_generation_prompt(commander: Card, rules: ArchetypeRules) -> str:
    """Render the generation prompt for one commander and archetype."""
    distribution = "\n".join(
        f"- {card_range} {CATEGORY_LABELS.get(key, key.replace('_', ' ').title())}"
        for key, card_range in rules.distribution.items()
    )

    budget_lines = ""
    if rules.has_budget:
        budget_lines = f"Total budget: ${rules.max_budget:,.0f} USD\n"
    if math.isfinite(rules.max_card_price):
        budget_lines += f"Maximum price per card: ${rules.max_card_price:,.0f} USD\n"

    return GENERATION_PROMPT_TEMPLATE.format(
        name=commander.name,
        colors=format_colors(commander_identity(commander)),
        type_line=commander.type_line or "Unknown",
        oracle_text=commander.oracle_text or "None",
        deck_style=rules.deck_style,
        min_bracket=rules.min_bracket,
        max_bracket=rules.max_bracket,
        budget_lines=budget_lines,
        deck_size=DECK_SIZE,
        distribution=distribution,
    )


def parse_card_list(raw_response: str) -> list[Any]:
    """
    Extract the card array from a model response.

    Raises:
        ParseError: If no strategy yields a non-empty JSON array
    """
    try:
        parsed = parse_llm_json(raw_response, expected=list)
    except JsonExtractionError as e:
        raise ParseError(raw_response, detail=str(e)) from e

    if not parsed.value:
        raise ParseError(raw_response, detail="Response contained an empty card list")

    logger.debug(
        "CARD_LIST_PARSED",
        extra={"strategy": parsed.strategy, "entries": len(parsed.value)},
    )
    return list(parsed.value)


def _quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return max(quantity, 1)


def filter_generated_cards(entries: Sequence[Any], commander: Card) -> list[Card]:
    """
    Turn raw entries into cards, dropping anything unusable.

    Dropped: entries without a non-empty string name, the commander itself,
    known-banned cards, and known color identity violations. Quantity is
    forced to 1 for everything except basic lands.
    """
    allowed = commander_identity(commander)
    cards: list[Card] = []

    for entry in entries:
        if not isinstance(entry, dict):
            continue
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        name = name.strip()

        if normalize_name(name) == commander.key:
            continue
        if is_card_banned(name):
            logger.info("GENERATED_CARD_DROPPED", extra={"card_name": name, "reason": "banned"})
            continue
        color_check = validate_color_identity(name, allowed)
        if not color_check.is_valid:
            logger.info(
                "GENERATED_CARD_DROPPED",
                extra={"card_name": name, "reason": color_check.reason},
            )
            continue

        card = Card(
            name=name,
            category=normalize_category(entry.get("category")),
            quantity=_quantity(entry.get("quantity", 1)),
        )
        if card.quantity > 1 and not card.is_basic_land:
            card = Card(name=card.name, category=card.category, quantity=1)
        cards.append(card)

    return cards


class DeckGenerator:
    """Produces a candidate decklist for a commander and archetype."""

    def __init__(
        self,
        completion: TextCompletionService | None,
        max_tokens: int | None = None,
        min_cards: int = MIN_GENERATED_CARDS,
    ) -> None:
        self.completion = completion
        self.max_tokens = max_tokens or settings.generation_max_tokens
        self.min_cards = min_cards

    def check_configured(self) -> TextCompletionService:
        """
        Return the completion service.

        Raises:
            ConfigurationError: If no completion service is available
        """
        if self.completion is None:
            raise ConfigurationError(
                "AI service configuration error",
                detail="Deck generation requires an Anthropic API key",
            )
        return self.completion

    async def generate(self, commander: Card | None, rules: ArchetypeRules) -> list[Card]:
        """
        Generate a candidate list.

        Raises:
            ConfigurationError: If no completion service is available
            GenerationError: If the commander is missing or the model call fails
            ParseError: If the response cannot be parsed into a card list
            InsufficientCardsError: If too few cards survive filtering
        """
        completion = self.check_configured()
        if commander is None or not commander.name.strip():
            raise GenerationError("A commander is required to generate a deck")

        prompt = build_generation_prompt(commander, rules)
        try:
            raw_response = await completion.complete(
                GENERATION_SYSTEM_PROMPT, prompt, self.max_tokens
            )
        except COMPLETION_ERRORS as e:
            raise GenerationError(
                "The AI service failed to generate a deck",
                detail=f"{type(e).__name__}: {e}",
            ) from e

        entries = parse_card_list(raw_response)
        cards = filter_generated_cards(entries, commander)

        total = count_cards(cards)
        if total < self.min_cards:
            raise InsufficientCardsError(count=total, minimum=self.min_cards)

        logger.info(
            "DECK_GENERATED",
            extra={
                "commander": commander.name,
                "entries": len(entries),
                "cards": total,
            },
        )
        return cards
