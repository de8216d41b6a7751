"""
Commander legality rules engine.

Pure, deterministic checks of single cards and whole decks against
Commander format rules: ban list, color identity, singleton, deck size and
commander eligibility.

INVARIANTS:
- No function in this module raises on bad input. Missing structurally
  required data (no commander) degrades to is_valid=False; unknown but
  plausible data (a card absent from every table) degrades to valid.
- Ban-list matching is exact after trimming and casefolding. No fuzzy
  matching, so near-miss names are never falsely flagged.

TWO-TIER COLOR IDENTITY:
Cards without resolved data are checked only against a small table of
known traps (triomes, talismans, ...). Anything absent from that table is
PROVISIONALLY ACCEPTED. The authoritative subset check runs once the card
carries real color identity from the card data source.
"""

import re
from collections.abc import Iterable, Sequence
from typing import Any

from commanderforge.models.archetype import ArchetypeRules
from commanderforge.models.card import Card, compute_color_identity, normalize_name
from commanderforge.models.violation import (
    CardValidation,
    DeckSummary,
    DeckValidation,
    LegalityCheck,
    Severity,
    Violation,
    ViolationType,
)

# =============================================================================
# FORMAT CONSTANTS
# =============================================================================

# Non-commander cards in a legal deck
DECK_SIZE = 99

# Off-count beyond this is critical; within it the deck is nearly there
DECK_SIZE_TOLERANCE = 5

# Below this many lands a deck gets an advisory warning
MIN_RECOMMENDED_LANDS = 30

# Placeholder card names for deck-level violations
DECK_LEVEL_CARD = "Deck"
INSUFFICIENT_LANDS = "Insufficient Lands"
EXCESSIVE_LANDS = "Excessive Lands"


# =============================================================================
# BAN LIST
# =============================================================================

COMMANDER_BANNED_CARDS: tuple[str, ...] = (
    # Power Nine and fast mana
    "Ancestral Recall",
    "Black Lotus",
    "Mox Emerald",
    "Mox Jet",
    "Mox Pearl",
    "Mox Ruby",
    "Mox Sapphire",
    "Time Vault",
    "Time Walk",
    "Library of Alexandria",
    "Karakas",
    "Channel",
    "Fastbond",
    "Tolarian Academy",
    "Mana Crypt",
    "Dockside Extortionist",
    "Jeweled Lotus",
    # Symmetrical lock and wipe effects
    "Balance",
    "Biorhythm",
    "Limited Resources",
    "Upheaval",
    "Trade Secrets",
    # Creatures
    "Emrakul, the Aeons Torn",
    "Griselbrand",
    "Iona, Shield of Emeria",
    "Leovold, Emissary of Trest",
    "Hullbreacher",
    "Golos, Tireless Pilgrim",
    "Rofellos, Llanowar Emissary",
    "Lutri, the Spellchaser",
    "Nadu, Winged Wisdom",
    "Erayo, Soratami Ascendant",
    "Sundering Titan",
    "Sylvan Primordial",
    "Primeval Titan",
    # Combo enablers
    "Flash",
    "Tinker",
    "Paradox Engine",
    "Prophet of Kruphix",
    "Recurring Nightmare",
    "Yawgmoth's Bargain",
    # Dexterity and subgame cards
    "Chaos Orb",
    "Falling Star",
    "Shahrazad",
)

_BANNED_BY_KEY: dict[str, str] = {normalize_name(name): name for name in COMMANDER_BANNED_CARDS}


# =============================================================================
# KNOWN COLOR IDENTITY TRAPS
# =============================================================================

# Cards whose identity is easy to get wrong from the name or frame alone.
# Identity tuples keep the order the card prints its colors in.
KNOWN_COLOR_IDENTITIES: dict[str, tuple[str, ...]] = {
    # Triomes
    "Raugrin Triome": ("R", "U", "W"),
    "Savai Triome": ("R", "W", "B"),
    "Zagoth Triome": ("B", "G", "U"),
    "Ketria Triome": ("G", "U", "R"),
    "Indatha Triome": ("W", "B", "G"),
    # Talismans
    "Talisman of Dominance": ("B", "U"),
    "Talisman of Creativity": ("U", "R"),
    "Talisman of Progress": ("W", "U"),
    "Talisman of Indulgence": ("B", "R"),
    "Talisman of Impulse": ("R", "G"),
    # Artifacts with colored activations
    "Thopter Foundry": ("B", "U", "W"),
    "Time Sieve": ("B", "U"),
    "Enthusiastic Mechanaut": ("R", "U"),
    "Cranial Plating": ("B",),
    "Birthing Pod": ("G",),
    "Scuttlemutt": ("W", "U", "B", "R", "G"),
    # Charms
    "Esper Charm": ("W", "U", "B"),
    "Grixis Charm": ("U", "B", "R"),
    "Jeskai Charm": ("U", "R", "W"),
    "Abzan Charm": ("W", "B", "G"),
    # Shocklands
    "Hallowed Fountain": ("W", "U"),
    "Watery Grave": ("U", "B"),
    "Sacred Foundry": ("R", "W"),
    "Breeding Pool": ("G", "U"),
    # Colorless despite producing any color
    "Command Tower": (),
}

_KNOWN_IDENTITY_BY_KEY: dict[str, tuple[str, ...]] = {
    normalize_name(name): identity for name, identity in KNOWN_COLOR_IDENTITIES.items()
}


# =============================================================================
# BANNED CARD SUBSTITUTIONS
# =============================================================================

DEFAULT_BANNED_REPLACEMENTS: tuple[str, ...] = ("Sol Ring", "Command Tower", "Arcane Signet")

BANNED_CARD_REPLACEMENTS: dict[str, tuple[str, ...]] = {
    "Mana Crypt": ("Sol Ring", "Arcane Signet", "Mana Vault"),
    "Dockside Extortionist": ("Treasure Map", "Goldspan Dragon", "Smothering Tithe"),
    "Jeweled Lotus": ("Sol Ring", "Arcane Signet", "Commander's Sphere"),
    "Black Lotus": ("Sol Ring", "Mana Vault", "Grim Monolith"),
    "Ancestral Recall": ("Divination", "Rhystic Study", "Mystic Remora"),
    "Time Walk": ("Time Warp", "Temporal Manipulation", "Capture of Jingzhou"),
    "Library of Alexandria": ("Reliquary Tower", "Thought Vessel", "Spellbook"),
    "Karakas": ("Command Tower", "Exotic Orchard", "City of Brass"),
    "Tolarian Academy": ("Command Tower", "Ancient Tomb", "City of Traitors"),
    "Emrakul, the Aeons Torn": (
        "Ulamog, the Infinite Gyre",
        "Kozilek, Butcher of Truth",
        "Blightsteel Colossus",
    ),
    "Griselbrand": ("Razaketh, the Foulblooded", "Vilis, Broker of Blood", "Rune-Scarred Demon"),
    "Primeval Titan": ("Sakura-Tribe Elder", "Wood Elves", "Farhaven Elf"),
}

_REPLACEMENTS_BY_KEY: dict[str, tuple[str, ...]] = {
    normalize_name(name): subs for name, subs in BANNED_CARD_REPLACEMENTS.items()
}

_UNLIMITED_COPIES = re.compile(r"any number of cards named")
_LIMITED_COPIES = re.compile(r"a deck can have up to (\w+) cards named")
_NUMBER_WORDS = {
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}


# =============================================================================
# SINGLE-CARD CHECKS
# =============================================================================


def find_banned_card_match(name: str | None) -> str | None:
    """Return the canonical ban-list name for `name`, or None if not banned."""
    if not isinstance(name, str):
        return None
    return _BANNED_BY_KEY.get(normalize_name(name))


def is_card_banned(name: str | None) -> bool:
    """
    Check a name against the Commander ban list.

    Case-insensitive and whitespace-trimmed. Empty or None input is not
    banned.
    """
    return find_banned_card_match(name) is not None


def get_known_color_identity(name: str | None) -> tuple[str, ...] | None:
    """Return the identity from the known-traps table, or None if unlisted."""
    if not isinstance(name, str):
        return None
    return _KNOWN_IDENTITY_BY_KEY.get(normalize_name(name))


def _coerce_identity(colors: Any) -> set[str] | None:
    if not isinstance(colors, list | tuple | set | frozenset):
        return None
    return {str(color).strip().upper() for color in colors}


def check_color_subset(
    card_name: str,
    card_identity: Sequence[str],
    commander_color_identity: Any,
) -> LegalityCheck:
    """Authoritative identity check: card identity must be within the commander's."""
    allowed = _coerce_identity(commander_color_identity)
    if allowed is None:
        return LegalityCheck(
            is_valid=False,
            reason="Commander color identity is required",
            card_color_identity=tuple(card_identity),
        )

    outside = [color for color in card_identity if color not in allowed]
    if outside:
        commander_colors = "".join(sorted(allowed)) or "colorless"
        return LegalityCheck(
            is_valid=False,
            reason=(
                f"{card_name} has color identity {','.join(card_identity)}, "
                f"outside the commander's identity ({commander_colors})"
            ),
            card_color_identity=tuple(card_identity),
        )
    return LegalityCheck(is_valid=True, card_color_identity=tuple(card_identity))


def validate_color_identity(name: str | None, commander_color_identity: Any) -> LegalityCheck:
    """
    Check a card name against the known color identity traps.

    Cards absent from the table are assumed valid; the real check happens
    once authoritative card data is resolved. A commander identity that is
    not a list is invalid input.
    """
    if _coerce_identity(commander_color_identity) is None:
        return LegalityCheck(is_valid=False, reason="Commander color identity is required")

    known = get_known_color_identity(name)
    if known is None:
        return LegalityCheck(is_valid=True)

    return check_color_subset(str(name).strip(), known, commander_color_identity)


def validate_format_legality(card: Card | None) -> LegalityCheck:
    """
    Check a card's Commander legality.

    The internal ban list takes precedence over supplied legality data.
    Missing legality data is treated as legal.
    """
    if card is None:
        return LegalityCheck(is_valid=False, reason="No card supplied")

    banned_name = find_banned_card_match(card.name)
    if banned_name is not None:
        return LegalityCheck(is_valid=False, reason=f"{banned_name} is banned in Commander")

    if card.commander_legality == "banned":
        return LegalityCheck(is_valid=False, reason=f"{card.name} is banned in Commander")

    return LegalityCheck(is_valid=True)


def commander_identity(commander: Card) -> tuple[str, ...]:
    """The commander's color identity, derived from its text when unresolved."""
    if commander.color_identity is not None:
        return commander.color_identity
    return compute_color_identity(commander.mana_cost, commander.oracle_text)


def validate_card(
    card: Card | None,
    commander: Card | None,
    identity_cache: "ColorIdentityCache | None" = None,
) -> CardValidation:
    """
    Validate one card: ban check plus color identity check.

    A card may collect several violations (banned AND off-color). Color
    identity uses the card's own resolved data first, then the learned
    cache, then the known-traps table.
    """
    if card is None:
        return CardValidation(is_valid=False)

    violations: list[Violation] = []

    legality = validate_format_legality(card)
    if not legality.is_valid:
        replacements = get_banned_card_replacements(card.name)
        violations.append(
            Violation(
                card=card.name,
                type=ViolationType.BANNED_CARD,
                severity=Severity.CRITICAL,
                reason=legality.reason or f"{card.name} is banned in Commander",
                suggested_replacement=replacements[0] if replacements else None,
            )
        )

    if commander is not None:
        allowed = commander_identity(commander)
        identity = card.color_identity
        if identity is None and identity_cache is not None:
            identity = identity_cache.get(card.name)

        if identity is not None:
            color_check = check_color_subset(card.name, identity, allowed)
        else:
            color_check = validate_color_identity(card.name, allowed)

        if not color_check.is_valid:
            violations.append(
                Violation(
                    card=card.name,
                    type=ViolationType.COLOR_IDENTITY,
                    severity=Severity.CRITICAL,
                    reason=color_check.reason or "Color identity violation",
                )
            )

    return CardValidation(is_valid=not violations, violations=tuple(violations))


# =============================================================================
# DECK-LEVEL CHECKS
# =============================================================================


def is_commander_eligible(card: Card | None) -> bool:
    """
    Legendary creatures are eligible; so is anything whose text says it
    "can be your commander" (certain planeswalkers).
    """
    if card is None:
        return False
    type_line = card.type_line.lower()
    if "legendary" not in type_line:
        return False
    return "creature" in type_line or "can be your commander" in card.oracle_text.lower()


def copy_limit(card: Card) -> int | None:
    """
    Maximum copies allowed in one deck, or None for unlimited.

    Basic lands and "any number of cards named" cards are unlimited.
    Seven Dwarves style cards carry their own cap.
    """
    if card.is_basic_land:
        return None

    text = card.oracle_text.lower()
    if _UNLIMITED_COPIES.search(text):
        return None

    limited = _LIMITED_COPIES.search(text)
    if limited:
        word = limited.group(1)
        if word.isdigit():
            return int(word)
        if word in _NUMBER_WORDS:
            return _NUMBER_WORDS[word]

    return 1


def can_have_multiple_copies(card: Card | None) -> bool:
    if card is None:
        return False
    limit = copy_limit(card)
    return limit is None or limit > 1


def _copies(card: Card) -> int:
    return max(card.quantity, 1)


def count_cards(cards: Iterable[Card]) -> int:
    return sum(_copies(card) for card in cards)


def count_lands(cards: Iterable[Card]) -> int:
    return sum(_copies(card) for card in cards if card.is_land)


def find_singleton_violations(cards: Sequence[Card]) -> list[Violation]:
    """
    One violation per copy beyond the allowed count.

    The first occurrences are kept; every later copy is flagged in order.
    """
    seen: dict[str, int] = {}
    violations: list[Violation] = []

    for card in cards:
        limit = copy_limit(card)
        if limit is None:
            continue
        for _ in range(_copies(card)):
            seen[card.key] = seen.get(card.key, 0) + 1
            count = seen[card.key]
            if count > limit:
                violations.append(
                    Violation(
                        card=card.name,
                        type=ViolationType.SINGLETON_VIOLATION,
                        severity=Severity.CRITICAL,
                        reason=f"{card.name} appears {count} times (maximum {limit} allowed)",
                    )
                )

    return violations


def _deck_size_violation(total: int) -> Violation | None:
    if total == DECK_SIZE:
        return None
    off_by = abs(total - DECK_SIZE)
    severity = Severity.CRITICAL if off_by > DECK_SIZE_TOLERANCE else Severity.MODERATE
    direction = "too many" if total > DECK_SIZE else "too few"
    return Violation(
        card=DECK_LEVEL_CARD,
        type=ViolationType.DECK_SIZE,
        severity=severity,
        reason=(
            f"Deck has {total} cards besides the commander ({off_by} {direction}); "
            f"Commander decks need exactly {DECK_SIZE}"
        ),
    )


def _commander_violations(commander: Card | None) -> list[Violation]:
    if commander is None:
        return [
            Violation(
                card="Commander",
                type=ViolationType.INVALID_COMMANDER,
                severity=Severity.CRITICAL,
                reason="No commander selected",
            )
        ]

    violations: list[Violation] = []
    if not is_commander_eligible(commander):
        violations.append(
            Violation(
                card=commander.name,
                type=ViolationType.INVALID_COMMANDER,
                severity=Severity.CRITICAL,
                reason=(
                    f"{commander.name} cannot be a commander: it must be a legendary "
                    "creature or say it can be your commander"
                ),
            )
        )

    legality = validate_format_legality(commander)
    if not legality.is_valid:
        violations.append(
            Violation(
                card=commander.name,
                type=ViolationType.BANNED_CARD,
                severity=Severity.CRITICAL,
                reason=legality.reason or f"{commander.name} is banned as a commander",
            )
        )
    return violations


def validate_deck(
    cards: Sequence[Card] | None,
    commander: Card | None,
    identity_cache: "ColorIdentityCache | None" = None,
) -> DeckValidation:
    """
    Validate a full deck (non-commander cards) against its commander.

    Checks commander eligibility, exact deck size, the singleton rule and
    every per-card violation. The deck is valid iff no violations exist.
    """
    cards = list(cards or [])
    violations: list[Violation] = []
    warnings: list[str] = []

    violations.extend(_commander_violations(commander))

    total = count_cards(cards)
    size_violation = _deck_size_violation(total)
    if size_violation is not None:
        violations.append(size_violation)

    violations.extend(find_singleton_violations(cards))

    provisional = 0
    for card in cards:
        violations.extend(validate_card(card, commander, identity_cache).violations)
        if (
            card.color_identity is None
            and get_known_color_identity(card.name) is None
            and (identity_cache is None or identity_cache.get(card.name) is None)
        ):
            provisional += 1

    land_count = count_lands(cards)
    if land_count < MIN_RECOMMENDED_LANDS:
        warnings.append(
            f"Low land count: {land_count} (recommended at least {MIN_RECOMMENDED_LANDS})"
        )
    if provisional:
        warnings.append(
            f"{provisional} card(s) provisionally accepted without color identity data"
        )

    summary = DeckSummary(
        total_cards=total,
        land_count=land_count,
        critical_count=sum(1 for v in violations if v.severity == Severity.CRITICAL),
        moderate_count=sum(1 for v in violations if v.severity == Severity.MODERATE),
    )

    return DeckValidation(
        is_valid=not violations,
        violations=tuple(violations),
        summary=summary,
        warnings=tuple(warnings),
    )


def validate_land_count(
    cards: Sequence[Card],
    rules: ArchetypeRules | None = None,
) -> list[Violation]:
    """
    Check land count against the archetype's land range.

    Too few lands is critical (the deck cannot cast its spells); too many
    is moderate. Without archetype rules, fewer than 30 lands is critical.
    """
    land_count = count_lands(cards)
    land_range = rules.land_range if rules is not None else None

    if land_range is None:
        if land_count < MIN_RECOMMENDED_LANDS:
            return [
                Violation(
                    card=INSUFFICIENT_LANDS,
                    type=ViolationType.LAND_COUNT,
                    severity=Severity.CRITICAL,
                    reason=(
                        f"Deck has {land_count} lands; at least {MIN_RECOMMENDED_LANDS} "
                        "are needed for a functional mana base"
                    ),
                    suggested_replacement=f"Add {MIN_RECOMMENDED_LANDS - land_count} lands",
                )
            ]
        return []

    style = rules.deck_style if rules is not None else "this"
    if land_count < land_range.min:
        return [
            Violation(
                card=INSUFFICIENT_LANDS,
                type=ViolationType.LAND_COUNT,
                severity=Severity.CRITICAL,
                reason=(
                    f"Deck has {land_count} lands; {style} decks need "
                    f"{land_range.min}-{land_range.max}"
                ),
                suggested_replacement=f"Add {land_range.min - land_count} lands",
            )
        ]
    if land_count > land_range.max:
        return [
            Violation(
                card=EXCESSIVE_LANDS,
                type=ViolationType.LAND_COUNT,
                severity=Severity.MODERATE,
                reason=(
                    f"Deck has {land_count} lands; {style} decks need "
                    f"{land_range.min}-{land_range.max}"
                ),
                suggested_replacement=f"Remove {land_count - land_range.max} lands",
            )
        ]
    return []


# =============================================================================
# REPLACEMENTS AND REPORTING
# =============================================================================


def get_banned_card_replacements(name: str | None) -> list[str]:
    """Known substitutes for a banned card, or generic staples."""
    subs = _REPLACEMENTS_BY_KEY.get(normalize_name(name))
    return list(subs if subs is not None else DEFAULT_BANNED_REPLACEMENTS)


def format_validation_results(validation: DeckValidation) -> dict[str, Any]:
    """Group a deck validation for display, with quick fixes for banned cards."""
    grouped: dict[str, list[dict[str, Any]]] = {severity.value: [] for severity in Severity}
    for violation in validation.violations:
        grouped[violation.severity.value].append(
            {
                "card": violation.card,
                "type": violation.type.value,
                "reason": violation.reason,
                "suggested_replacement": violation.suggested_replacement,
            }
        )

    if validation.is_valid:
        display_message = "Deck is Commander format legal"
    else:
        display_message = f"{len(validation.violations)} violations found that need to be fixed"

    return {
        "is_valid": validation.is_valid,
        "grouped_violations": grouped,
        "warnings": list(validation.warnings),
        "summary": {
            "total_cards": validation.summary.total_cards,
            "land_count": validation.summary.land_count,
            "critical_count": validation.summary.critical_count,
            "moderate_count": validation.summary.moderate_count,
        },
        "display_message": display_message,
        "quick_fixes": [
            {
                "problem": f"{violation.card} is banned",
                "suggestions": get_banned_card_replacements(violation.card),
            }
            for violation in validation.violations
            if violation.type == ViolationType.BANNED_CARD
        ],
    }


class ColorIdentityCache:
    """
    Color identities learned from resolved card data.

    Lets later checks in the same build use authoritative identity for
    cards that reappear by name only (e.g., an LLM-suggested replacement).
    Synthetic fallback cards are never learned.
    """

    def __init__(self) -> None:
        self._identities: dict[str, tuple[str, ...]] = {}

    def learn(self, card: Card) -> None:
        if card.color_identity is None or card.is_fallback:
            return
        self._identities[card.key] = card.color_identity

    def learn_all(self, cards: Iterable[Card]) -> None:
        for card in cards:
            self.learn(card)

    def get(self, name: str) -> tuple[str, ...] | None:
        return self._identities.get(normalize_name(name))

    def clear(self) -> None:
        self._identities.clear()

    def __len__(self) -> int:
        return len(self._identities)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._identities
