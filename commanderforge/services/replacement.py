"""
Smart replacement generation and application.

Proposes legal, on-theme substitutes for flagged cards and swaps them into
the deck.

Proposal runs in two buckets:
1. Banned cards get instant candidates from a fixed substitution table.
2. Everything else goes to the model with full deck context. Every model
   suggestion is re-validated (ban check + resolved color identity) and
   rejected suggestions are discarded.

INVARIANTS:
- A violation never ends with zero candidates while any deterministic
  fallback card is available.
- Applying replacements never introduces a duplicate non-basic card name.
  The used-names set is EXPLICIT: pass it in to share it across calls,
  otherwise each call starts fresh.
"""

import dataclasses
import json
import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from commanderforge.config import settings
from commanderforge.models.archetype import ArchetypeRules, normalize_category
from commanderforge.models.budget import BudgetExceededError
from commanderforge.models.card import Card, normalize_name
from commanderforge.models.replacement import Replacement, SuggestedCard
from commanderforge.models.violation import Violation, ViolationType
from commanderforge.parsers.llm_json import JsonExtractionError, parse_llm_json
from commanderforge.services.card_resolver import CardResolver
from commanderforge.services.legality import (
    ColorIdentityCache,
    commander_identity,
    get_banned_card_replacements,
    is_card_banned,
    validate_card,
)
from commanderforge.services.llm_client import COMPLETION_ERRORS, TextCompletionService

logger = logging.getLogger(__name__)

# Deck context sent to the model is capped to bound prompt size
MAX_CONTEXT_CARDS = 30

# Candidates offered per violation from deterministic fallbacks
MAX_FALLBACK_CANDIDATES = 5

BANNED_SYNERGY_SCORE = 8
FALLBACK_SYNERGY_SCORE = 5


# =============================================================================
# DETERMINISTIC FALLBACK TABLES
# =============================================================================


@dataclass(frozen=True, slots=True)
class FallbackCard:
    """A staple with its known color identity; premium cards skip budget decks."""

    name: str
    identity: tuple[str, ...] = ()
    premium: bool = False


_F = FallbackCard

CATEGORY_FALLBACKS: dict[str, tuple[FallbackCard, ...]] = {
    "Lands": (
        _F("Command Tower"),
        _F("Exotic Orchard"),
        _F("Evolving Wilds"),
        _F("Terramorphic Expanse"),
        _F("Myriad Landscape"),
        _F("Path of Ancestry"),
        _F("Reliquary Tower"),
    ),
    "Ramp": (
        _F("Sol Ring"),
        _F("Arcane Signet"),
        _F("Commander's Sphere"),
        _F("Mind Stone"),
        _F("Fellwar Stone"),
        _F("Worn Powerstone"),
        _F("Rampant Growth", ("G",)),
        _F("Cultivate", ("G",)),
        _F("Kodama's Reach", ("G",)),
        _F("Farseek", ("G",)),
        _F("Nature's Lore", ("G",)),
        _F("Chromatic Lantern", premium=True),
        _F("Gilded Lotus", premium=True),
    ),
    "Card Draw": (
        _F("Skullclamp"),
        _F("Mind's Eye"),
        _F("Divination", ("U",)),
        _F("Rhystic Study", ("U",), premium=True),
        _F("Mystic Remora", ("U",)),
        _F("Phyrexian Arena", ("B",)),
        _F("Sign in Blood", ("B",)),
        _F("Night's Whisper", ("B",)),
        _F("Harmonize", ("G",)),
        _F("Beast Whisperer", ("G",)),
        _F("Esper Sentinel", ("W",), premium=True),
        _F("Faithless Looting", ("R",)),
    ),
    "Removal": (
        _F("Meteor Golem"),
        _F("Swords to Plowshares", ("W",)),
        _F("Path to Exile", ("W",)),
        _F("Generous Gift", ("W",)),
        _F("Pongify", ("U",)),
        _F("Rapid Hybridization", ("U",)),
        _F("Murder", ("B",)),
        _F("Hero's Downfall", ("B",)),
        _F("Ravenous Chupacabra", ("B",)),
        _F("Lightning Bolt", ("R",)),
        _F("Chaos Warp", ("R",)),
        _F("Beast Within", ("G",)),
        _F("Krosan Grip", ("G",)),
    ),
    "Board Wipes": (
        _F("Oblivion Stone"),
        _F("Nevinyrral's Disk"),
        _F("Wrath of God", ("W",)),
        _F("Day of Judgment", ("W",)),
        _F("Evacuation", ("U",)),
        _F("Cyclonic Rift", ("U",), premium=True),
        _F("Toxic Deluge", ("B",), premium=True),
        _F("Blasphemous Act", ("R",)),
        _F("Pyroclasm", ("R",)),
        _F("Bane of Progress", ("G",)),
    ),
    "Protection": (
        _F("Swiftfoot Boots"),
        _F("Lightning Greaves"),
        _F("Darksteel Plate"),
        _F("Teferi's Protection", ("W",), premium=True),
        _F("Counterspell", ("U",)),
        _F("Swan Song", ("U",)),
        _F("Deflecting Swat", ("R",), premium=True),
        _F("Heroic Intervention", ("G",)),
        _F("Tamiyo's Safekeeping", ("G",)),
    ),
    "Strategy": (
        _F("Solemn Simulacrum"),
        _F("Burnished Hart"),
        _F("Sun Titan", ("W",)),
        _F("Archaeomancer", ("U",)),
        _F("Gray Merchant of Asphodel", ("B",)),
        _F("Goldspan Dragon", ("R",), premium=True),
        _F("Eternal Witness", ("G",)),
        _F("Reclamation Sage", ("G",)),
        _F("Wood Elves", ("G",)),
    ),
    "Utility": (
        _F("Sol Ring"),
        _F("Arcane Signet"),
        _F("Commander's Sphere"),
        _F("Swiftfoot Boots"),
        _F("Lightning Greaves"),
    ),
}
CATEGORY_FALLBACKS["Finisher"] = CATEGORY_FALLBACKS["Strategy"]

# Last deterministic source before the extended list
UNIQUE_FALLBACKS: tuple[FallbackCard, ...] = (
    _F("Thought Vessel"),
    _F("Pristine Talisman"),
    _F("Opaline Unicorn"),
    _F("Pyramid of the Pantheon"),
    _F("Rupture Spire"),
    _F("Transguild Promenade"),
    _F("Gateway Plaza"),
    _F("Ash Barrens"),
    _F("Meteor Golem"),
    _F("Duplicant"),
    _F("Steel Hellkite"),
    _F("Burnished Hart"),
    _F("Solemn Simulacrum"),
    _F("Pilgrim's Eye"),
    _F("Treasure Hunter", ("W",)),
    _F("Scrap Trawler"),
)

# Walked by apply_replacements when every candidate collides
EXTENDED_FALLBACKS: tuple[FallbackCard, ...] = (
    _F("Sol Ring"),
    _F("Arcane Signet"),
    _F("Commander's Sphere"),
    _F("Mind Stone"),
    _F("Fellwar Stone"),
    _F("Command Tower"),
    _F("Evolving Wilds"),
    _F("Terramorphic Expanse"),
    _F("Myriad Landscape"),
    _F("Swiftfoot Boots"),
    _F("Lightning Greaves"),
    _F("Worn Powerstone"),
    _F("Hedron Archive"),
    _F("Thran Dynamo"),
    _F("Gilded Lotus"),
    _F("Chromatic Lantern"),
    _F("Wayfarer's Bauble"),
    _F("Rampant Growth", ("G",)),
    _F("Cultivate", ("G",)),
    _F("Kodama's Reach", ("G",)),
    _F("Farseek", ("G",)),
)

CATEGORY_SEARCH_QUERIES: dict[str, str] = {
    "Lands": "t:land -t:basic",
    "Ramp": "otag:ramp",
    "Card Draw": "otag:draw",
    "Removal": "otag:removal",
    "Board Wipes": "otag:board-wipe",
    "Protection": "otag:protection",
}

GENERIC_PLACEHOLDER = "Generic Replacement"


def _fits(fallback: FallbackCard, identity: Sequence[str], budget_only: bool) -> bool:
    if budget_only and fallback.premium:
        return False
    return all(color in identity for color in fallback.identity)


def category_fallbacks(
    category: str | None,
    identity: Sequence[str],
    rules: ArchetypeRules | None = None,
) -> list[str]:
    """Color-aware staples for a category; budget decks skip premium cards."""
    budget_only = rules is not None and rules.deck_style == "budget"
    table = CATEGORY_FALLBACKS.get(normalize_category(category), CATEGORY_FALLBACKS["Utility"])
    return [f.name for f in table if _fits(f, identity, budget_only)]


def get_commander_strategy(commander: Card) -> str:
    """Keyword heuristic describing the commander's plan."""
    oracle = commander.oracle_text.lower()
    if "counter" in oracle or "+1/+1" in oracle:
        return "Counters and +1/+1 synergy"
    if "graveyard" in oracle or "exile" in oracle:
        return "Graveyard value and recursion"
    if "token" in oracle or "create" in oracle:
        return "Token generation and go-wide"
    if "artifact" in oracle:
        return "Artifact synergy and value"
    if "equipment" in oracle or "equipped" in oracle:
        return "Voltron and equipment"
    if "instant" in oracle or "sorcery" in oracle or "spells" in oracle:
        return "Spellslinger and instant/sorcery value"
    return "Midrange value and synergy"


# =============================================================================
# PROMPT
# =============================================================================

REPLACEMENT_SYSTEM_PROMPT = (
    "You are a Magic: The Gathering deck building expert specializing in the Commander "
    "format. You know card synergies, mana curves and the April 2025 banned list. "
    "Return only valid JSON."
)

REPLACEMENT_PROMPT_TEMPLATE = """Suggest replacements for problematic cards in this Commander deck.

Commander: {name}
Color identity: [{colors}]
Commander strategy: {strategy}
{style_lines}
Current deck context ({total} cards{truncated}):
{deck_context}

Cards needing replacement:
{needs}

REPLACEMENT CRITERIA:
1. Must be legal in Commander (April 2025 banned list)
2. Must fit the commander's color identity exactly
3. Should keep a similar function and mana value
4. Prefer cards that support the commander's strategy
5. Must not already be in the deck

Respond ONLY with JSON in this shape:
{{
  "replacements": [
    {{
      "original_card": "Problematic Card Name",
      "suggested_cards": [
        {{"name": "Card", "reason": "Why it fits", "synergy_score": 9, "category": "Ramp", "cmc": 2}}
      ],
      "replacement_reasoning": "Overall approach"
    }}
  ]
}}"""


def build_replacement_prompt(
    needs: Sequence[tuple[Card, str]],
    commander: Card,
    current_deck: Sequence[Card],
    rules: ArchetypeRules | None = None,
) -> str:
    style_lines = ""
    if rules is not None:
        style_lines = f"Deck style: {rules.deck_style}\n"
        if rules.deck_style == "budget" and rules.max_card_price != float("inf"):
            style_lines += f"Individual cards must cost under ${rules.max_card_price:,.0f}\n"

    context = [
        {"name": card.name, "category": card.category, "cmc": card.mana_value}
        for card in current_deck[:MAX_CONTEXT_CARDS]
    ]
    problems = [
        {
            "name": card.name,
            "category": card.category,
            "cmc": card.mana_value,
            "reason": reason,
        }
        for card, reason in needs
    ]
    return REPLACEMENT_PROMPT_TEMPLATE.format(
        name=commander.name,
        colors=", ".join(commander_identity(commander)) or "Colorless",
        strategy=get_commander_strategy(commander),
        style_lines=style_lines,
        total=len(current_deck),
        truncated=(
            f", first {MAX_CONTEXT_CARDS} shown" if len(current_deck) > MAX_CONTEXT_CARDS else ""
        ),
        deck_context=json.dumps(context, indent=2),
        needs=json.dumps(problems, indent=2),
    )


def _suggestions_from_response(raw_response: str) -> dict[str, list[dict[str, Any]]]:
    """Map original card key -> raw suggestion entries."""
    parsed = parse_llm_json(raw_response, expected=dict)
    entries = parsed.value.get("replacements") or []
    by_card: dict[str, list[dict[str, Any]]] = {}
    if not isinstance(entries, list):
        return by_card

    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("original_card"), str):
            continue
        suggestions = entry.get("suggested_cards") or []
        if not isinstance(suggestions, list):
            continue
        key = normalize_name(entry["original_card"])
        by_card.setdefault(key, []).extend(s for s in suggestions if isinstance(s, dict))
    return by_card


def _score(value: Any, default: int) -> int:
    try:
        return max(1, min(10, int(value)))
    except (TypeError, ValueError):
        return default


def _mana_value(value: Any, default: float) -> float:
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return default


# =============================================================================
# PROPOSAL
# =============================================================================


@dataclass
class _Slot:
    """One deck slot that needs a new card."""

    card: Card
    reason: str
    banned: bool


class ReplacementGenerator:
    """
    Proposes replacement candidates for card-level violations.

    Deck-level violations (deck size, land count, commander) are repaired
    at assembly time and are ignored here.
    """

    def __init__(
        self,
        completion: TextCompletionService | None,
        resolver: CardResolver | None = None,
        identity_cache: ColorIdentityCache | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.completion = completion
        self.resolver = resolver
        self.identity_cache = identity_cache
        self.max_tokens = max_tokens or settings.replacement_max_tokens

    async def propose(
        self,
        violations: Sequence[Violation],
        commander: Card,
        current_deck: Sequence[Card],
        rules: ArchetypeRules | None = None,
    ) -> list[Replacement]:
        """
        One Replacement per deck slot that must change.

        A banned or off-color card needs every copy replaced; a singleton
        violation needs one slot per violation.
        """
        slots = self._slots_for(violations, current_deck)
        if not slots:
            return []

        identity = commander_identity(commander)
        deck_keys = {card.key for card in current_deck}
        replacements: list[Replacement] = []

        llm_slots = [slot for slot in slots if not slot.banned]
        suggested: dict[str, list[SuggestedCard]] = {}
        if llm_slots:
            suggested = await self._suggest_with_llm(llm_slots, commander, current_deck, rules)

        for slot in slots:
            if slot.banned:
                candidates = [
                    SuggestedCard(
                        name=name,
                        reason=f"Pre-validated replacement for banned card {slot.card.name}",
                        synergy_score=BANNED_SYNERGY_SCORE,
                        category=slot.card.category,
                        mana_value=slot.card.mana_value,
                    )
                    for name in get_banned_card_replacements(slot.card.name)
                    if self._passes_static_checks(name, commander)
                ]
                reasoning = "Known substitutes for a banned card"
            else:
                candidates = suggested.get(slot.card.key, [])
                reasoning = "AI-suggested replacements, re-validated"

            if not candidates:
                candidates = await self._fallback_candidates(slot, commander, identity, deck_keys, rules)
                reasoning = "Category-based fallback replacements"

            replacements.append(
                Replacement(
                    original_card=slot.card.name,
                    suggested_cards=tuple(candidates),
                    reasoning=reasoning,
                )
            )

        return replacements

    def _slots_for(self, violations: Sequence[Violation], deck: Sequence[Card]) -> list[_Slot]:
        by_key: dict[str, Card] = {}
        copies: Counter[str] = Counter()
        for card in deck:
            by_key.setdefault(card.key, card)
            copies[card.key] += max(card.quantity, 1)

        whole_card: dict[str, _Slot] = {}
        singleton_slots: Counter[str] = Counter()
        reasons: dict[str, str] = {}

        for violation in violations:
            if not violation.is_card_level:
                continue
            key = normalize_name(violation.card)
            if key not in by_key:
                continue
            reasons.setdefault(key, violation.reason)
            if violation.type == ViolationType.SINGLETON_VIOLATION:
                singleton_slots[key] += 1
            else:
                banned = violation.type == ViolationType.BANNED_CARD or is_card_banned(
                    violation.card
                )
                existing = whole_card.get(key)
                whole_card[key] = _Slot(
                    card=by_key[key],
                    reason=violation.reason,
                    banned=banned or (existing is not None and existing.banned),
                )

        slots: list[_Slot] = []
        for key, slot in whole_card.items():
            slots.extend(dataclasses.replace(slot) for _ in range(copies[key]))
        for key, count in singleton_slots.items():
            if key in whole_card:
                continue
            slots.extend(
                _Slot(card=by_key[key], reason=reasons[key], banned=False) for _ in range(count)
            )
        return slots

    def _passes_static_checks(self, name: str, commander: Card) -> bool:
        return validate_card(Card(name=name), commander, self.identity_cache).is_valid

    async def _suggest_with_llm(
        self,
        slots: Sequence[_Slot],
        commander: Card,
        current_deck: Sequence[Card],
        rules: ArchetypeRules | None,
    ) -> dict[str, list[SuggestedCard]]:
        """Model suggestions keyed by original card; empty on any failure."""
        if self.completion is None:
            logger.info("REPLACEMENT_FALLBACK", extra={"reason": "no completion service"})
            return {}

        unique: dict[str, _Slot] = {}
        for slot in slots:
            unique.setdefault(slot.card.key, slot)
        needs = [(slot.card, slot.reason) for slot in unique.values()]

        prompt = build_replacement_prompt(needs, commander, current_deck, rules)
        try:
            raw_response = await self.completion.complete(
                REPLACEMENT_SYSTEM_PROMPT, prompt, self.max_tokens
            )
            raw_suggestions = _suggestions_from_response(raw_response)
        except (BudgetExceededError, JsonExtractionError, *COMPLETION_ERRORS) as e:
            logger.warning(
                "REPLACEMENT_FALLBACK",
                extra={"reason": f"{type(e).__name__}: {e}"},
            )
            return {}

        return await self._validate_suggestions(raw_suggestions, unique, commander, current_deck)

    async def _validate_suggestions(
        self,
        raw_suggestions: dict[str, list[dict[str, Any]]],
        slots: dict[str, _Slot],
        commander: Card,
        current_deck: Sequence[Card],
    ) -> dict[str, list[SuggestedCard]]:
        deck_keys = {card.key for card in current_deck}

        names: list[str] = []
        for key, entries in raw_suggestions.items():
            if key not in slots:
                continue
            for entry in entries:
                name = entry.get("name")
                if isinstance(name, str) and name.strip():
                    names.append(name.strip())

        resolved: dict[str, Card] = {}
        if self.resolver is not None and names:
            resolved = {
                normalize_name(name): card
                for name, card in (await self.resolver.fetch_batch(names)).items()
            }

        accepted: dict[str, list[SuggestedCard]] = {}
        for key, entries in raw_suggestions.items():
            slot = slots.get(key)
            if slot is None:
                continue
            seen: set[str] = set()
            for entry in entries:
                name = entry.get("name")
                if not isinstance(name, str) or not name.strip():
                    continue
                name = name.strip()
                name_key = normalize_name(name)
                if name_key in seen or name_key in deck_keys or is_card_banned(name):
                    continue

                card = resolved.get(name_key) if self.resolver is not None else Card(name=name)
                if card is None or card.commander_legality == "not_legal":
                    logger.debug("SUGGESTION_REJECTED", extra={"card_name": name})
                    continue
                if not validate_card(card, commander, self.identity_cache).is_valid:
                    logger.debug("SUGGESTION_REJECTED", extra={"card_name": name})
                    continue

                seen.add(name_key)
                accepted.setdefault(key, []).append(
                    SuggestedCard(
                        name=card.name,
                        reason=str(entry.get("reason") or "AI-suggested replacement"),
                        synergy_score=_score(entry.get("synergy_score"), FALLBACK_SYNERGY_SCORE),
                        category=normalize_category(entry.get("category") or slot.card.category),
                        mana_value=_mana_value(entry.get("cmc"), card.mana_value),
                        card=card if self.resolver is not None else None,
                    )
                )
        return accepted

    async def _fallback_candidates(
        self,
        slot: _Slot,
        commander: Card,
        identity: Sequence[str],
        deck_keys: set[str],
        rules: ArchetypeRules | None,
    ) -> list[SuggestedCard]:
        """Category staples, then a category search, then the unique list."""
        category = normalize_category(slot.card.category)

        def usable(name: str) -> bool:
            return normalize_name(name) not in deck_keys and not is_card_banned(name)

        names = [n for n in category_fallbacks(category, identity, rules) if usable(n)]
        reason = f"Category fallback for {slot.card.name}"

        if not names and self.resolver is not None:
            colors = "".join(identity).lower() or "c"
            base = CATEGORY_SEARCH_QUERIES.get(category, "")
            query = f"{base} id<={colors} f:commander".strip()
            for card in await self.resolver.search(query):
                if usable(card.name) and validate_card(card, commander).is_valid:
                    names.append(card.name)
                if len(names) >= MAX_FALLBACK_CANDIDATES:
                    break
            reason = f"Category search result for {slot.card.name}"

        if not names:
            names = [f.name for f in UNIQUE_FALLBACKS if _fits(f, identity, False) and usable(f.name)]
            reason = f"Unique fallback replacement for {slot.card.name}"

        return [
            SuggestedCard(
                name=name,
                reason=reason,
                synergy_score=FALLBACK_SYNERGY_SCORE,
                category=category,
                mana_value=slot.card.mana_value,
            )
            for name in names[:MAX_FALLBACK_CANDIDATES]
        ]


# =============================================================================
# APPLICATION
# =============================================================================


def _find_slot(deck: Sequence[Card], key: str, replaced: set[int]) -> int | None:
    """Last not-yet-replaced copy, so the first occurrence of a duplicate stays."""
    for index in range(len(deck) - 1, -1, -1):
        if index not in replaced and deck[index].key == key:
            return index
    return None


def _placeholder_name(taken: set[str], remaining: Counter[str]) -> str:
    n = 1
    while True:
        name = f"{GENERIC_PLACEHOLDER} {n}"
        key = normalize_name(name)
        if key not in taken and remaining[key] <= 0:
            return name
        n += 1


def apply_replacements(
    deck: Sequence[Card],
    replacements: Sequence[Replacement],
    used_names: set[str] | None = None,
    commander: Card | None = None,
) -> list[Card]:
    """
    Swap replacement picks into a copy of the deck.

    For each replacement, the first candidate whose name is neither in the
    remaining deck nor already used in this pass is chosen. If every
    candidate collides, an extended generic list is walked; the last resort
    is a uniquely named placeholder.

    Args:
        deck: Current deck (not mutated)
        replacements: Proposals, one per slot to change
        used_names: Casefolded names already introduced. Updated in place
            when provided; a fresh set is used otherwise.
        commander: Used to keep the extended list within color identity

    Returns:
        The new deck, same length as the input
    """
    result = list(deck)
    used = used_names if used_names is not None else set()
    remaining: Counter[str] = Counter(card.key for card in deck)
    replaced: set[int] = set()
    identity = commander_identity(commander) if commander is not None else None

    def available(name: str) -> bool:
        candidate = Card(name=name)
        if candidate.is_basic_land:
            return True
        key = candidate.key
        return key not in used and remaining[key] <= 0 and not is_card_banned(name)

    for replacement in replacements:
        index = _find_slot(result, normalize_name(replacement.original_card), replaced)
        if index is None:
            logger.debug("REPLACEMENT_SKIPPED", extra={"card_name": replacement.original_card})
            continue

        original = result[index]
        remaining[original.key] -= 1

        new_card: Card | None = None
        for suggestion in replacement.suggested_cards:
            if not available(suggestion.name):
                continue
            if suggestion.card is not None:
                new_card = dataclasses.replace(
                    suggestion.card,
                    category=original.category or suggestion.category,
                    quantity=1,
                )
            else:
                new_card = Card(
                    name=suggestion.name,
                    category=original.category or suggestion.category,
                    mana_value=suggestion.mana_value,
                )
            break

        if new_card is None:
            for fallback in EXTENDED_FALLBACKS:
                if identity is not None and not _fits(fallback, identity, False):
                    continue
                if available(fallback.name):
                    new_card = Card(name=fallback.name, category=original.category)
                    break

        if new_card is None:
            new_card = Card(
                name=_placeholder_name(used, remaining),
                category=original.category,
                is_fallback=True,
            )

        result[index] = new_card
        replaced.add(index)
        remaining[new_card.key] += 1
        used.add(new_card.key)
        logger.info(
            "CARD_REPLACED",
            extra={"original": original.name, "replacement": new_card.name},
        )

    return result
