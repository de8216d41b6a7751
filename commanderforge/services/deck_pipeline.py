"""
Three-stage deck build pipeline.

Generating -> Validating -> (if violations) Replacing -> Re-validating
-> Resolving -> Assembling -> Complete

Terminal failures (ConfigurationError, GenerationError, ParseError,
InsufficientCardsError, BuildCancelledError) propagate out of `build`;
no partial deck is returned for them. Model failures inside scanning and
replacement degrade to deterministic results and are only logged.

Assembly always re-checks the final count and legality. A deck that still
has violations is returned with them in `BuildResult.validation` and in
the build log, never hidden.
"""

import asyncio
import dataclasses
import logging
from collections.abc import Callable, Sequence

from commanderforge.models.archetype import ArchetypeRules, normalize_category
from commanderforge.models.build import BuildResult, BuildStage, LookupGap
from commanderforge.models.card import COLOR_TO_BASIC_LAND, Card, normalize_name
from commanderforge.models.failure import BuildCancelledError, GenerationError
from commanderforge.services.card_resolver import CardResolver, get_fallback_card
from commanderforge.services.deck_generator import DeckGenerator
from commanderforge.services.legality import (
    DECK_SIZE,
    ColorIdentityCache,
    can_have_multiple_copies,
    commander_identity,
    count_lands,
    validate_card,
    validate_deck,
)
from commanderforge.services.llm_client import TextCompletionService
from commanderforge.services.replacement import ReplacementGenerator, apply_replacements
from commanderforge.services.validation_scanner import ValidationScanner

logger = logging.getLogger(__name__)

# Higher priority survives trimming longer; lands are never trimmed first
CATEGORY_PRIORITY: dict[str, int] = {
    "Ramp": 5,
    "Card Draw": 5,
    "Removal": 4,
    "Protection": 4,
    "Strategy": 3,
    "Utility": 2,
    "Finisher": 2,
    "Board Wipes": 1,
}
DEFAULT_PRIORITY = 3

COLORLESS_BASIC = "Wastes"


def category_priority(card: Card) -> int:
    return CATEGORY_PRIORITY.get(normalize_category(card.category), DEFAULT_PRIORITY)


def expand_quantities(cards: Sequence[Card]) -> list[Card]:
    """One entry per copy, each with quantity 1."""
    expanded: list[Card] = []
    for card in cards:
        single = card if card.quantity == 1 else dataclasses.replace(card, quantity=1)
        expanded.extend(single for _ in range(max(card.quantity, 1)))
    return expanded


def basic_land_plan(identity: Sequence[str], count: int) -> list[str]:
    """Basic land names for `count` slots, split evenly across the colors."""
    if count <= 0:
        return []
    basics = [COLOR_TO_BASIC_LAND[color] for color in identity if color in COLOR_TO_BASIC_LAND]
    if not basics:
        basics = [COLORLESS_BASIC]
    return [basics[i % len(basics)] for i in range(count)]


def trim_nonlands(cards: Sequence[Card], max_nonlands: int) -> tuple[list[Card], list[Card]]:
    """
    Drop the lowest-priority nonland cards until at most `max_nonlands` remain.

    Among equal priorities the latest entries go first. Returns
    (kept, removed) with the kept list in original order.
    """
    nonland_indexes = [i for i, card in enumerate(cards) if not card.is_land]
    excess = len(nonland_indexes) - max(max_nonlands, 0)
    if excess <= 0:
        return list(cards), []

    ranked = sorted(nonland_indexes, key=lambda i: (category_priority(cards[i]), -i))
    drop = set(ranked[:excess])
    kept = [card for i, card in enumerate(cards) if i not in drop]
    removed = [cards[i] for i in sorted(drop)]
    return kept, removed


def trim_to_size(cards: Sequence[Card], size: int = DECK_SIZE) -> tuple[list[Card], list[Card]]:
    """
    Cut a list down to `size` entries.

    Nonlands go first by category priority, then basic lands from the end,
    then anything from the end.
    """
    kept = list(cards)
    excess = len(kept) - size
    if excess <= 0:
        return kept, []

    nonlands = sum(1 for card in kept if not card.is_land)
    kept, removed = trim_nonlands(kept, nonlands - excess)

    while len(kept) > size:
        basic_index = next(
            (i for i in range(len(kept) - 1, -1, -1) if kept[i].is_basic_land),
            len(kept) - 1,
        )
        removed.append(kept.pop(basic_index))
    return kept, removed


class DeckBuildPipeline:
    """
    Orchestrates one deck build from commander to assembled decklist.

    A pipeline instance may be reused across builds; budgets and used-name
    sets are per build and never shared.
    """

    def __init__(
        self,
        completion: TextCompletionService | None,
        resolver: CardResolver,
        identity_cache: ColorIdentityCache | None = None,
    ) -> None:
        self.resolver = resolver
        self.identity_cache = identity_cache if identity_cache is not None else ColorIdentityCache()
        self.generator = DeckGenerator(completion)
        self.scanner = ValidationScanner(completion, identity_cache=self.identity_cache)
        self.replacer = ReplacementGenerator(
            completion, resolver=resolver, identity_cache=self.identity_cache
        )

    async def build(
        self,
        commander: Card | None,
        rules: ArchetypeRules,
        cancel_event: asyncio.Event | None = None,
    ) -> BuildResult:
        """
        Run every stage for one commander and archetype.

        Args:
            commander: The commander card (name required, data optional)
            rules: Archetype rules for this build
            cancel_event: Checked at each stage boundary when provided

        Raises:
            ConfigurationError: No completion service configured
            GenerationError: Missing commander or model call failure
            ParseError: Generation output could not be parsed
            InsufficientCardsError: Too few usable cards generated
            BuildCancelledError: cancel_event was set between stages
        """
        build_log: list[str] = []

        def log(message: str) -> None:
            build_log.append(message)
            logger.info("BUILD_LOG", extra={"message": message})

        self.generator.check_configured()
        if commander is None or not commander.name.strip():
            raise GenerationError("A commander is required to generate a deck")

        self._checkpoint(BuildStage.GENERATING, cancel_event)
        commander = await self._resolve_commander(commander)
        identity = commander_identity(commander)
        log(f"Building {rules.deck_style} deck for {commander.name} ({''.join(identity) or 'C'})")

        deck = await self.generator.generate(commander, rules)
        log(f"Generated {sum(card.quantity for card in deck)} cards")

        self._checkpoint(BuildStage.VALIDATING, cancel_event)
        scan = await self.scanner.scan(deck, commander, rules)
        log(
            f"Validation ({scan.summary.source}): {scan.summary.total_violations} violations, "
            f"{scan.summary.critical} critical"
        )
        for warning in scan.warnings:
            log(f"Warning: {warning}")

        card_level = [v for v in scan.violations if v.is_card_level]
        if card_level:
            self._checkpoint(BuildStage.REPLACING, cancel_event)
            replacements = await self.replacer.propose(card_level, commander, deck, rules)
            used_names: set[str] = set()
            deck = apply_replacements(deck, replacements, used_names, commander)
            log(f"Applied {len(replacements)} replacements")

            self._checkpoint(BuildStage.REVALIDATING, cancel_event)
            remaining, _ = self.scanner.deterministic_violations(deck, commander, rules)
            remaining_card_level = [v for v in remaining if v.is_card_level]
            log(f"Re-validation: {len(remaining_card_level)} card-level violations remain")

        self._checkpoint(BuildStage.RESOLVING, cancel_event)
        resolved, gaps = await self._resolve(deck)
        for gap in gaps:
            log(f"Lookup gap: {gap.name} ({gap.reason})")

        self._checkpoint(BuildStage.ASSEMBLING, cancel_event)
        cards = await self._assemble(resolved, commander, rules, log)

        validation = validate_deck(cards, commander, self.identity_cache)
        if validation.is_valid:
            log(f"Deck complete: {len(cards)} cards, {validation.summary.land_count} lands")
        else:
            for violation in validation.violations:
                log(
                    f"Unresolved violation: {violation.card} "
                    f"({violation.type.value}): {violation.reason}"
                )
            logger.warning(
                "DECK_ASSEMBLED_WITH_VIOLATIONS",
                extra={"commander": commander.name, "violations": len(validation.violations)},
            )
        if len(cards) < DECK_SIZE:
            log(f"Shortfall: deck has {len(cards)} of {DECK_SIZE} cards")

        self._checkpoint(BuildStage.COMPLETE, cancel_event)
        return BuildResult(
            cards=tuple(cards),
            commander=commander,
            build_log=tuple(build_log),
            validation=validation,
        )

    def _checkpoint(self, stage: BuildStage, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info("BUILD_CANCELLED", extra={"stage": stage.value})
            raise BuildCancelledError(stage.value)
        logger.info("BUILD_STAGE", extra={"stage": stage.value})

    async def _resolve_commander(self, commander: Card) -> Card:
        """Fill in commander data when its identity or type line is missing."""
        if commander.color_identity is not None and commander.type_line:
            return commander
        resolved = await self.resolver.fetch_batch([commander.name])
        card = next(iter(resolved.values()), None)
        if card is None:
            logger.warning("COMMANDER_UNRESOLVED", extra={"commander": commander.name})
            return commander
        self.identity_cache.learn(card)
        return card

    async def _resolve(self, deck: Sequence[Card]) -> tuple[list[Card], list[LookupGap]]:
        """
        Fetch authoritative data for every entry.

        Resolved data replaces the entry's fields; its category and quantity
        are kept. Unresolved entries become lookup gaps.
        """
        fetched = await self.resolver.fetch_batch([card.name for card in deck])
        by_key = {normalize_name(name): card for name, card in fetched.items()}
        self.identity_cache.learn_all(by_key.values())

        resolved: list[Card] = []
        gaps: list[LookupGap] = []
        for entry in deck:
            card = by_key.get(entry.key)
            if card is None:
                gaps.append(LookupGap(name=entry.name, reason="not found in card data source"))
                continue
            resolved.append(
                dataclasses.replace(card, category=entry.category, quantity=entry.quantity)
            )
        return resolved, gaps

    async def _assemble(
        self,
        resolved: Sequence[Card],
        commander: Card,
        rules: ArchetypeRules,
        log: Callable[[str], None],
    ) -> list[Card]:
        cards: list[Card] = []
        seen: set[str] = set()
        for card in expand_quantities(resolved):
            check = validate_card(card, commander, self.identity_cache)
            if not check.is_valid:
                log(f"Dropped {card.name}: {check.violations[0].reason}")
                continue
            if card.key in seen and not can_have_multiple_copies(card):
                log(f"Dropped duplicate {card.name}")
                continue
            seen.add(card.key)
            cards.append(card)

        land_range = rules.land_range
        if land_range is not None:
            land_count = count_lands(cards)
            if land_count < land_range.min:
                max_nonlands = DECK_SIZE - land_range.min
                cards, removed = trim_nonlands(cards, max_nonlands)
                if removed:
                    log(
                        f"Land rebalance: removed {len(removed)} nonland cards to make room "
                        f"for {land_range.min} lands"
                    )

        cards, removed = trim_to_size(cards)
        if removed:
            log(f"Trimmed {len(removed)} cards: {', '.join(card.name for card in removed)}")

        shortfall = DECK_SIZE - len(cards)
        if shortfall > 0:
            cards.extend(await self._basic_lands(commander_identity(commander), shortfall))
            log(f"Padded with {shortfall} basic lands")

        return cards

    async def _basic_lands(self, identity: Sequence[str], count: int) -> list[Card]:
        plan = basic_land_plan(identity, count)
        fetched = await self.resolver.fetch_batch(sorted(set(plan)))
        by_key = {normalize_name(name): card for name, card in fetched.items()}

        lands: list[Card] = []
        for name in plan:
            card = by_key.get(normalize_name(name)) or get_fallback_card(name)
            if card is None:
                card = Card(name=name, type_line="Basic Land", is_fallback=True)
            lands.append(dataclasses.replace(card, category="Lands", quantity=1))
        return lands
