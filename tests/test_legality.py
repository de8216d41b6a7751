"""
Tests for the Commander legality engine.

Covers the ban list, two-tier color identity, singleton counting, deck
size, commander eligibility and display formatting.
"""

import pytest
from conftest import basic, make_card

from commanderforge.models.archetype import BUDGET_RULES
from commanderforge.models.card import Card
from commanderforge.models.violation import Severity, ViolationType
from commanderforge.services.legality import (
    COMMANDER_BANNED_CARDS,
    DECK_SIZE,
    ColorIdentityCache,
    check_color_subset,
    copy_limit,
    find_singleton_violations,
    format_validation_results,
    get_banned_card_replacements,
    get_known_color_identity,
    is_card_banned,
    is_commander_eligible,
    validate_card,
    validate_color_identity,
    validate_deck,
    validate_format_legality,
    validate_land_count,
)

# =============================================================================
# BAN LIST
# =============================================================================


class TestIsCardBanned:
    """Ban list matching."""

    def test_mana_crypt_is_banned(self) -> None:
        """Mana Crypt was banned in 2024."""
        assert is_card_banned("Mana Crypt") is True

    @pytest.mark.parametrize(
        "name",
        ["mana crypt", "MANA CRYPT", "  Mana Crypt  ", "\tmAnA cRyPt\n"],
    )
    def test_invariant_to_case_and_whitespace(self, name: str) -> None:
        """Ban check ignores letter case and surrounding whitespace."""
        assert is_card_banned(name) is True

    def test_every_listed_card_matches_itself(self) -> None:
        """Every entry in the ban list is recognized in upper case too."""
        for name in COMMANDER_BANNED_CARDS:
            assert is_card_banned(name.upper())

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_empty_input_is_not_banned(self, name: str | None) -> None:
        """Empty or missing names are not an error and are not banned."""
        assert is_card_banned(name) is False

    def test_near_miss_is_not_banned(self) -> None:
        """No fuzzy matching: a near-miss name is legal."""
        assert is_card_banned("Mana Crypts") is False
        assert is_card_banned("Sol Ring") is False

    def test_unbanned_cards_are_legal(self) -> None:
        """Cards unbanned in April 2025 are not on the list."""
        assert is_card_banned("Gifts Ungiven") is False
        assert is_card_banned("Coalition Victory") is False


class TestFormatLegality:
    """validate_format_legality."""

    def test_ban_list_overrides_supplied_legality(self) -> None:
        """The internal list wins even if card data says legal."""
        card = Card(name="Mana Crypt", commander_legality="legal")
        assert validate_format_legality(card).is_valid is False

    def test_supplied_banned_legality_is_respected(self) -> None:
        """Card data marking a card banned fails the check."""
        card = Card(name="Some Future Ban", commander_legality="banned")
        result = validate_format_legality(card)
        assert result.is_valid is False
        assert "banned" in (result.reason or "")

    def test_missing_legality_is_legal(self) -> None:
        """Absent legality data is treated as legal."""
        assert validate_format_legality(Card(name="Sol Ring")).is_valid is True

    def test_none_card_is_invalid(self) -> None:
        """No card supplied is invalid, not an exception."""
        assert validate_format_legality(None).is_valid is False


# =============================================================================
# COLOR IDENTITY
# =============================================================================


class TestValidateColorIdentity:
    """Known-traps tier of the color identity check."""

    def test_triome_outside_mono_red(self) -> None:
        """Raugrin Triome is R,U,W and illegal under a mono-red commander."""
        result = validate_color_identity("Raugrin Triome", ["R"])
        assert result.is_valid is False
        assert result.card_color_identity == ("R", "U", "W")

    def test_triome_inside_matching_identity(self) -> None:
        """A Jeskai commander can play Raugrin Triome."""
        assert validate_color_identity("Raugrin Triome", ["U", "R", "W"]).is_valid is True

    def test_unknown_card_is_provisionally_accepted(self) -> None:
        """Cards absent from the table pass until real data arrives."""
        assert validate_color_identity("Llanowar Elves", ["R"]).is_valid is True

    def test_commander_identity_must_be_a_list(self) -> None:
        """A non-list commander identity is invalid input."""
        result = validate_color_identity("Sol Ring", "R")
        assert result.is_valid is False
        assert result.reason == "Commander color identity is required"

    def test_lookup_is_case_insensitive(self) -> None:
        """Table lookup uses the same name normalization as the ban list."""
        assert validate_color_identity("  raugrin triome ", ["R"]).is_valid is False

    def test_known_identity_table(self) -> None:
        """Listed cards return their identity; unlisted ones return None."""
        assert get_known_color_identity("Sacred Foundry") == ("R", "W")
        assert get_known_color_identity("Command Tower") == ()
        assert get_known_color_identity("Llanowar Elves") is None
        assert get_known_color_identity(None) is None


class TestCheckColorSubset:
    """Authoritative tier of the color identity check."""

    def test_subset_is_valid(self) -> None:
        """A card inside the commander's colors passes."""
        result = check_color_subset("Boros Charm", ("R", "W"), ["R", "W", "B"])
        assert result.is_valid is True
        assert result.card_color_identity == ("R", "W")

    def test_outside_color_is_reported(self) -> None:
        """The reason names the card and the commander's colors."""
        result = check_color_subset("Boros Charm", ("R", "W"), ["R"])
        assert result.is_valid is False
        assert result.reason is not None
        assert "Boros Charm" in result.reason
        assert "(R)" in result.reason

    def test_colorless_commander(self) -> None:
        """Only colorless cards fit a colorless commander."""
        assert check_color_subset("Sol Ring", (), []).is_valid is True
        assert check_color_subset("Shock", ("R",), []).is_valid is False


class TestValidateCard:
    """Single-card validation."""

    def test_resolved_identity_is_authoritative(self, krenko: Card) -> None:
        """Resolved data catches cards the trap table does not know."""
        elves = make_card("Llanowar Elves", ("G",), type_line="Creature — Elf Druid")
        result = validate_card(elves, krenko)
        assert result.is_valid is False
        assert result.violations[0].type == ViolationType.COLOR_IDENTITY

    def test_unresolved_card_uses_trap_table(self, krenko: Card) -> None:
        """Without resolved data only known traps are flagged."""
        assert validate_card(Card(name="Llanowar Elves"), krenko).is_valid is True
        assert validate_card(Card(name="Raugrin Triome"), krenko).is_valid is False

    def test_cache_is_used_for_unresolved_cards(self, krenko: Card) -> None:
        """A learned identity applies to a later name-only card."""
        cache = ColorIdentityCache()
        cache.learn(make_card("Llanowar Elves", ("G",)))
        result = validate_card(Card(name="llanowar elves"), krenko, cache)
        assert result.is_valid is False

    def test_banned_and_off_color_collects_both(self, krenko: Card) -> None:
        """A card can violate several rules at once."""
        card = make_card("Dockside Extortionist", ("R",))
        assert validate_card(card, krenko).is_valid is False

        off_color = make_card("Mana Crypt", ("U",))
        result = validate_card(off_color, krenko)
        types = {v.type for v in result.violations}
        assert types == {ViolationType.BANNED_CARD, ViolationType.COLOR_IDENTITY}

    def test_banned_violation_suggests_replacement(self, atraxa: Card) -> None:
        """Banned violations carry the first known substitute."""
        result = validate_card(Card(name="Mana Crypt"), atraxa)
        assert result.violations[0].suggested_replacement == "Sol Ring"

    def test_colorless_card_is_always_in_identity(self, krenko: Card) -> None:
        """An empty identity is a subset of any commander's identity."""
        assert validate_card(make_card("Sol Ring"), krenko).is_valid is True


class TestColorIdentityCache:
    """ColorIdentityCache behavior."""

    def test_fallback_cards_are_not_learned(self) -> None:
        """Synthetic data never becomes authoritative."""
        cache = ColorIdentityCache()
        cache.learn(Card(name="Plains", color_identity=("W",), is_fallback=True))
        assert "Plains" not in cache
        assert len(cache) == 0

    def test_unresolved_cards_are_not_learned(self) -> None:
        """Cards with unknown identity are skipped."""
        cache = ColorIdentityCache()
        cache.learn_all([Card(name="Mystery"), make_card("Sol Ring")])
        assert cache.get("Mystery") is None
        assert cache.get("SOL RING") == ()

    def test_clear(self) -> None:
        """clear forgets everything."""
        cache = ColorIdentityCache()
        cache.learn(make_card("Sol Ring"))
        cache.clear()
        assert len(cache) == 0


# =============================================================================
# SINGLETON
# =============================================================================


class TestSingleton:
    """Singleton rule and its exceptions."""

    def test_one_violation_per_extra_copy(self) -> None:
        """Three copies of one card give exactly two violations."""
        cards = [make_card("Sol Ring"), make_card("Sol Ring"), make_card("sol ring")]
        violations = find_singleton_violations(cards)
        assert len(violations) == 2
        assert all(v.type == ViolationType.SINGLETON_VIOLATION for v in violations)

    def test_quantity_counts_as_copies(self) -> None:
        """A single entry with quantity 3 is the same as three entries."""
        violations = find_singleton_violations([make_card("Sol Ring", quantity=3)])
        assert len(violations) == 2

    def test_basic_lands_are_exempt(self) -> None:
        """Basic lands may repeat freely."""
        assert find_singleton_violations([basic("Forest", 30), basic("Forest")]) == []

    def test_any_number_cards_are_exempt(self) -> None:
        """'A deck can have any number of cards named' lifts the limit."""
        rats = make_card(
            "Relentless Rats",
            ("B",),
            oracle_text="A deck can have any number of cards named Relentless Rats.",
            quantity=20,
        )
        assert copy_limit(rats) is None
        assert find_singleton_violations([rats]) == []

    def test_limited_copy_cards(self) -> None:
        """Seven Dwarves allows seven copies, no more."""
        dwarves = make_card(
            "Seven Dwarves",
            ("R",),
            oracle_text="A deck can have up to seven cards named Seven Dwarves.",
            quantity=8,
        )
        assert copy_limit(dwarves) == 7
        assert len(find_singleton_violations([dwarves])) == 1


# =============================================================================
# DECK VALIDATION
# =============================================================================


class TestValidateDeck:
    """Whole-deck validation."""

    def test_basic_lands_and_unique_spells_are_valid(
        self, atraxa: Card, valid_atraxa_deck: list[Card]
    ) -> None:
        """Basics plus unique in-identity legal spells form a valid deck."""
        validation = validate_deck(valid_atraxa_deck, atraxa)
        assert validation.is_valid is True
        assert validation.violations == ()
        assert validation.summary.total_cards == DECK_SIZE
        assert validation.summary.land_count == 36

    def test_banned_card_is_reported(self, atraxa: Card, valid_atraxa_deck: list[Card]) -> None:
        """A deck with Mana Crypt gets a banned_card violation for it."""
        deck = valid_atraxa_deck[:-1] + [Card(name="Mana Crypt", category="Ramp")]
        validation = validate_deck(deck, atraxa)

        assert is_card_banned("Mana Crypt")
        banned = [v for v in validation.violations if v.type == ViolationType.BANNED_CARD]
        assert [v.card for v in banned] == ["Mana Crypt"]
        assert validation.is_valid is False

    def test_oversized_deck_reports_deck_size(
        self, atraxa: Card, valid_atraxa_deck: list[Card]
    ) -> None:
        """105 cards is a deck_size violation; 99 is not."""
        deck = valid_atraxa_deck + [make_card(f"Extra Relic {i}") for i in range(6)]
        validation = validate_deck(deck, atraxa)
        size = [v for v in validation.violations if v.type == ViolationType.DECK_SIZE]
        assert len(size) == 1
        assert size[0].severity == Severity.CRITICAL

        ok = validate_deck(valid_atraxa_deck, atraxa)
        assert not [v for v in ok.violations if v.type == ViolationType.DECK_SIZE]

    def test_slightly_off_size_is_moderate(
        self, atraxa: Card, valid_atraxa_deck: list[Card]
    ) -> None:
        """Off by no more than the tolerance is moderate."""
        validation = validate_deck(valid_atraxa_deck[:-2], atraxa)
        size = [v for v in validation.violations if v.type == ViolationType.DECK_SIZE]
        assert size[0].severity == Severity.MODERATE

    def test_duplicates_reported_per_extra_copy(
        self, atraxa: Card, valid_atraxa_deck: list[Card]
    ) -> None:
        """Two duplicates of one card give two singleton violations."""
        deck = valid_atraxa_deck[:-2] + [make_card("Test Relic 0"), make_card("Test Relic 0")]
        validation = validate_deck(deck, atraxa)
        singles = [v for v in validation.violations if v.type == ViolationType.SINGLETON_VIOLATION]
        assert len(singles) == 2
        assert {v.card for v in singles} == {"Test Relic 0"}

    def test_idempotent(self, atraxa: Card, valid_atraxa_deck: list[Card]) -> None:
        """Validating the same deck twice gives identical results."""
        deck = valid_atraxa_deck[:-1] + [Card(name="Mana Crypt")]
        assert validate_deck(deck, atraxa) == validate_deck(deck, atraxa)

    def test_valid_deck_round_trips_through_validate_card(
        self, atraxa: Card, valid_atraxa_deck: list[Card]
    ) -> None:
        """Every card of a valid deck passes validate_card on its own."""
        assert validate_deck(valid_atraxa_deck, atraxa).is_valid
        for card in valid_atraxa_deck:
            assert validate_card(card, atraxa).violations == ()

    def test_missing_commander(self, valid_atraxa_deck: list[Card]) -> None:
        """No commander is an invalid_commander violation, not an exception."""
        validation = validate_deck(valid_atraxa_deck, None)
        assert validation.is_valid is False
        assert validation.violations[0].type == ViolationType.INVALID_COMMANDER

    def test_non_legendary_commander(self, valid_atraxa_deck: list[Card]) -> None:
        """A non-legendary creature cannot lead a deck."""
        bears = Card(name="Grizzly Bears", color_identity=("G",), type_line="Creature — Bear")
        validation = validate_deck(valid_atraxa_deck, bears)
        assert any(v.type == ViolationType.INVALID_COMMANDER for v in validation.violations)

    def test_provisional_cards_produce_warning(self, atraxa: Card) -> None:
        """Cards without any identity data are flagged in warnings."""
        deck = [basic("Plains", 98), Card(name="Mystery Card")]
        validation = validate_deck(deck, atraxa)
        assert any("provisionally accepted" in w for w in validation.warnings)

    def test_low_land_warning(self, atraxa: Card) -> None:
        """Fewer than 30 lands is a warning."""
        deck = [basic("Plains", 10)] + [make_card(f"Relic {i}") for i in range(89)]
        validation = validate_deck(deck, atraxa)
        assert any("Low land count" in w for w in validation.warnings)


class TestCommanderEligibility:
    """is_commander_eligible."""

    def test_legendary_creature(self, atraxa: Card) -> None:
        """Legendary creatures are eligible."""
        assert is_commander_eligible(atraxa)

    def test_planeswalker_with_commander_text(self) -> None:
        """Planeswalkers that say so are eligible."""
        teferi = Card(
            name="Teferi, Temporal Archmage",
            type_line="Legendary Planeswalker — Teferi",
            oracle_text="Teferi, Temporal Archmage can be your commander.",
        )
        assert is_commander_eligible(teferi)

    def test_plain_planeswalker(self) -> None:
        """Other planeswalkers are not."""
        jace = Card(name="Jace Beleren", type_line="Legendary Planeswalker — Jace")
        assert not is_commander_eligible(jace)


class TestLandCount:
    """Archetype land count checks."""

    def test_too_few_lands_for_budget_is_critical(self) -> None:
        """Budget decks need 36-38 lands."""
        violations = validate_land_count([basic("Swamp", 33)], BUDGET_RULES)
        assert len(violations) == 1
        assert violations[0].severity == Severity.CRITICAL
        assert violations[0].suggested_replacement == "Add 3 lands"

    def test_too_many_lands_is_moderate(self) -> None:
        """Above the range is a moderate violation."""
        violations = validate_land_count([basic("Swamp", 40)], BUDGET_RULES)
        assert violations[0].severity == Severity.MODERATE

    def test_in_range(self) -> None:
        """Inside the range there is nothing to report."""
        assert validate_land_count([basic("Swamp", 37)], BUDGET_RULES) == []

    def test_without_rules_uses_minimum(self) -> None:
        """Without archetype rules only the 30-land floor applies."""
        assert len(validate_land_count([basic("Swamp", 29)])) == 1
        assert validate_land_count([basic("Swamp", 30)]) == []


class TestFormatValidationResults:
    """Display formatting."""

    def test_valid_deck_message(self, atraxa: Card, valid_atraxa_deck: list[Card]) -> None:
        """A legal deck says so."""
        result = format_validation_results(validate_deck(valid_atraxa_deck, atraxa))
        assert result["is_valid"] is True
        assert result["display_message"] == "Deck is Commander format legal"
        assert result["quick_fixes"] == []

    def test_banned_card_gets_quick_fix(
        self, atraxa: Card, valid_atraxa_deck: list[Card]
    ) -> None:
        """Banned cards come with substitution suggestions."""
        deck = valid_atraxa_deck[:-1] + [Card(name="Mana Crypt")]
        result = format_validation_results(validate_deck(deck, atraxa))

        assert result["is_valid"] is False
        assert result["grouped_violations"]["critical"][0]["card"] == "Mana Crypt"
        assert result["quick_fixes"] == [
            {
                "problem": "Mana Crypt is banned",
                "suggestions": get_banned_card_replacements("Mana Crypt"),
            }
        ]


class TestBannedReplacements:
    """Substitution table."""

    def test_known_substitutes(self) -> None:
        """Mana Crypt has a specific list."""
        assert get_banned_card_replacements("mana crypt") == [
            "Sol Ring",
            "Arcane Signet",
            "Mana Vault",
        ]

    def test_defaults_for_unlisted_card(self) -> None:
        """Unlisted cards fall back to generic staples."""
        assert get_banned_card_replacements("Flash") == [
            "Sol Ring",
            "Command Tower",
            "Arcane Signet",
        ]
