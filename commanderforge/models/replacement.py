from dataclasses import dataclass

from commanderforge.models.card import Card


@dataclass(frozen=True, slots=True)
class SuggestedCard:
    """
    One candidate replacement for a flagged card.

    Attributes:
        name: Suggested card name
        reason: Why this card fits
        synergy_score: 1-10 fit with the commander's plan
        category: Role the card fills
        mana_value: Converted mana cost
        card: Resolved card data, when the suggestion was looked up
    """

    name: str
    reason: str
    synergy_score: int = 5
    category: str | None = None
    mana_value: float = 0.0
    card: Card | None = None


@dataclass(frozen=True, slots=True)
class Replacement:
    """Ordered replacement candidates for one flagged card."""

    original_card: str
    suggested_cards: tuple[SuggestedCard, ...]
    reasoning: str
