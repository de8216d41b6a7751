"""Tests for the card and violation models."""

import pytest

from commanderforge.models.card import (
    Card,
    compute_color_identity,
    front_face_name,
    normalize_colors,
    normalize_name,
)
from commanderforge.models.violation import (
    CARD_LEVEL_TYPES,
    DeckSummary,
    DeckValidation,
    Severity,
    Violation,
    ViolationType,
)
from commanderforge.services.legality import count_lands


class TestComputeColorIdentity:
    """Color identity from mana symbols."""

    def test_cost_only(self) -> None:
        """Colors come back in WUBRG order."""
        assert compute_color_identity("{G}{W}{U}{B}") == ("W", "U", "B", "G")

    def test_rules_text_counts(self) -> None:
        """Activated ability costs add to the identity."""
        assert compute_color_identity("{3}", "{U}, {T}: Draw a card.") == ("U",)

    def test_hybrid_and_phyrexian(self) -> None:
        """Every color inside a hybrid or Phyrexian symbol counts."""
        assert compute_color_identity("{R/W}{G/P}") == ("W", "R", "G")

    def test_colorless(self) -> None:
        """Generic and colorless symbols add nothing."""
        assert compute_color_identity("{1}", "{T}: Add {C}{C}.") == ()

    def test_empty(self) -> None:
        """Missing cost and text give an empty identity."""
        assert compute_color_identity(None) == ()


class TestNormalization:
    """Name and color normalization."""

    def test_normalize_name(self) -> None:
        """Names are trimmed and casefolded."""
        assert normalize_name("  Sol RING ") == "sol ring"
        assert normalize_name(None) == ""

    def test_normalize_colors(self) -> None:
        """Lists are upper-cased, de-duplicated and ordered."""
        assert normalize_colors(["g", "w", "G"]) == ("W", "G")
        assert normalize_colors(None) is None
        assert normalize_colors([]) == ()

    def test_front_face_name(self) -> None:
        """The front face of a split name is returned."""
        assert front_face_name("Delver of Secrets // Insectile Aberration") == "Delver of Secrets"
        assert front_face_name("Sol Ring") == "Sol Ring"


class TestCard:
    """Card properties."""

    def test_key_is_normalized(self) -> None:
        """Keys compare case-insensitively."""
        assert Card(name=" Sol Ring").key == Card(name="sol ring").key

    def test_land_by_type_or_category(self) -> None:
        """A card is a land by its type line or its category."""
        assert Card(name="Command Tower", type_line="Land").is_land
        assert Card(name="Unresolved", category="Lands").is_land
        assert not Card(name="Sol Ring", type_line="Artifact").is_land

    def test_resolved_type_line_overrides_category(self) -> None:
        """A resolved nonland tagged 'Lands' is still not a land."""
        card = Card(name="Sol Ring", type_line="Artifact", color_identity=(), category="Lands")
        assert not card.is_land
        assert count_lands([card]) == 0

    def test_landfall_text_is_not_land_type(self) -> None:
        """Only the type line word 'Land' counts, not creature subtypes."""
        assert not Card(name="Lotus Cobra", type_line="Creature — Snake").is_land

    def test_basic_land_by_name_or_type(self) -> None:
        """Basics are detected without resolved data."""
        assert Card(name="Forest").is_basic_land
        assert Card(name="Snow-Covered Island").is_basic_land
        assert Card(name="X", type_line="Basic Land — Plains").is_basic_land
        assert not Card(name="Command Tower", type_line="Land").is_basic_land

    def test_unknown_and_colorless_are_distinct(self) -> None:
        """None means unknown; an empty tuple means colorless."""
        assert Card(name="Mystery").color_identity is None
        assert Card(name="Sol Ring", color_identity=()).color_identity == ()


class TestFromScryfall:
    """Building cards from Scryfall payloads."""

    def test_single_faced(self) -> None:
        """Top-level fields map directly."""
        card = Card.from_scryfall(
            {
                "name": "Swords to Plowshares",
                "type_line": "Instant",
                "mana_cost": "{W}",
                "cmc": 1.0,
                "oracle_text": "Exile target creature.",
                "color_identity": ["W"],
                "legalities": {"commander": "legal"},
            },
            category="Removal",
        )
        assert card.name == "Swords to Plowshares"
        assert card.color_identity == ("W",)
        assert card.mana_value == 1.0
        assert card.commander_legality == "legal"
        assert card.category == "Removal"

    def test_double_faced_uses_faces(self) -> None:
        """Faces supply type line and text when the top level lacks them."""
        card = Card.from_scryfall(
            {
                "name": "Delver of Secrets // Insectile Aberration",
                "cmc": 1.0,
                "color_identity": ["U"],
                "card_faces": [
                    {"type_line": "Creature — Human Wizard", "mana_cost": "{U}", "oracle_text": "A"},
                    {"type_line": "Creature — Human Insect", "mana_cost": "", "oracle_text": "B"},
                ],
                "legalities": {"commander": "legal"},
            }
        )
        assert card.type_line == "Creature — Human Wizard // Creature — Human Insect"
        assert card.mana_cost == "{U}"
        assert card.oracle_text == "A\nB"

    def test_identity_computed_when_missing(self) -> None:
        """Without color_identity the cost and text are used."""
        card = Card.from_scryfall({"name": "Test", "mana_cost": "{B}{R}"})
        assert card.color_identity == ("B", "R")
        assert card.commander_legality is None


class TestViolationModels:
    """Violation containers."""

    def test_card_level_types(self) -> None:
        """Banned, color and singleton are card-level; the rest are deck-level."""
        assert CARD_LEVEL_TYPES == {
            ViolationType.BANNED_CARD,
            ViolationType.COLOR_IDENTITY,
            ViolationType.SINGLETON_VIOLATION,
        }
        deck_size = Violation("Deck", ViolationType.DECK_SIZE, Severity.CRITICAL, "size")
        assert not deck_size.is_card_level

    def test_critical_violations(self) -> None:
        """Only critical entries are returned."""
        critical = Violation("Mana Crypt", ViolationType.BANNED_CARD, Severity.CRITICAL, "banned")
        moderate = Violation("Deck", ViolationType.DECK_SIZE, Severity.MODERATE, "size")
        validation = DeckValidation(
            is_valid=False,
            violations=(critical, moderate),
            summary=DeckSummary(total_cards=98, land_count=36),
        )
        assert validation.critical_violations == [critical]

    @pytest.mark.parametrize("value", ["banned_card", "color_identity", "land_count"])
    def test_violation_types_are_strings(self, value: str) -> None:
        """Enum values serialize as their wire names."""
        assert ViolationType(value).value == value
