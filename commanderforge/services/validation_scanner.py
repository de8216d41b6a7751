"""
AI validation scanner.

Finds rule violations in a candidate list. Deterministic rules always run
first; the model is consulted only when they find nothing critical, to
catch edge cases the local tables do not know about.

INVARIANTS:
- Deterministic critical findings are trusted fully: the model is skipped.
- The merge never drops a deterministic finding.
- Scanning never fails the build. Any model failure degrades to
  deterministic-only results.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from commanderforge.config import settings
from commanderforge.models.archetype import ArchetypeRules
from commanderforge.models.budget import BudgetExceededError
from commanderforge.models.card import Card, normalize_name
from commanderforge.models.failure import ValidationFallback
from commanderforge.models.violation import (
    CARD_LEVEL_TYPES,
    Severity,
    Violation,
    ViolationType,
)
from commanderforge.parsers.llm_json import JsonExtractionError, parse_llm_json
from commanderforge.services.legality import (
    ColorIdentityCache,
    commander_identity,
    count_lands,
    validate_deck,
    validate_land_count,
)
from commanderforge.services.llm_client import COMPLETION_ERRORS, TextCompletionService

logger = logging.getLogger(__name__)

# Only the first cards are sent to the model to bound prompt size
MAX_SCANNED_CARDS = 50

SCAN_SYSTEM_PROMPT = (
    "You are a Magic: The Gathering rules expert specializing in Commander format "
    "validation. You know the current banned list, color identity rules and format "
    "restrictions, including the April 2025 ban list update. Return only valid JSON."
)

SCAN_PROMPT_TEMPLATE = """Scan this Commander deck for rule violations.

Commander: {name}
Color identity: [{colors}]
{style_lines}
SCAN FOR VIOLATIONS:
1. Color identity: cards with mana symbols outside the commander's colors
2. Format legality: cards banned in Commander
3. Singleton rule: duplicates, EXCEPT basic lands and cards whose text says
   "A deck can have any number of cards named ..."

SINGLETON EXCEPTIONS (never flag these as duplicates):
- Basic lands (Plains, Island, Swamp, Mountain, Forest, Wastes)
- Cards such as Relentless Rats, Shadowborn Apostle, Persistent Petitioners

Deck list ({total} cards{truncated}):
{card_list}

Current land count: {land_count}

KNOWN PROBLEM CARDS (check for these specifically):
- Recently banned: Mana Crypt, Dockside Extortionist, Jeweled Lotus, Nadu, Winged Wisdom
- Color identity traps: Triomes, Talismans, hybrid and Phyrexian mana
- Recently UNBANNED (April 2025, now legal): Gifts Ungiven, Sway of the Stars,
  Braids, Cabal Minion, Coalition Victory, Panoptic Mirror

Respond ONLY with JSON in this shape:
{{
  "violations": [
    {{
      "card": "Card Name",
      "violation_type": "color_identity|banned_card|singleton_violation",
      "severity": "critical|moderate|minor",
      "reason": "Specific explanation",
      "suggested_replacement": "Replacement Card Name"
    }}
  ],
  "summary": {{"deck_assessment": "One sentence assessment"}}
}}"""

_TYPE_ALIASES: dict[str, ViolationType] = {
    "banned": ViolationType.BANNED_CARD,
    "banned_card": ViolationType.BANNED_CARD,
    "format_legality": ViolationType.BANNED_CARD,
    "color_identity": ViolationType.COLOR_IDENTITY,
    "singleton": ViolationType.SINGLETON_VIOLATION,
    "singleton_violation": ViolationType.SINGLETON_VIOLATION,
    "duplicate": ViolationType.SINGLETON_VIOLATION,
    "deck_size": ViolationType.DECK_SIZE,
    "invalid_commander": ViolationType.INVALID_COMMANDER,
    "land_count": ViolationType.LAND_COUNT,
}


@dataclass(frozen=True, slots=True)
class ScanSummary:
    """
    Counts and provenance for a scan.

    source is "deterministic" (early return on critical findings),
    "merged" (model consulted), or "fallback" (model unavailable).
    """

    total_violations: int
    critical: int
    moderate: int
    minor: int
    source: str
    assessment: str | None = None


@dataclass(frozen=True, slots=True)
class ScanResult:
    violations: tuple[Violation, ...]
    summary: ScanSummary
    warnings: tuple[str, ...] = ()


def _summarize(
    violations: Sequence[Violation],
    source: str,
    assessment: str | None = None,
) -> ScanSummary:
    return ScanSummary(
        total_violations=len(violations),
        critical=sum(1 for v in violations if v.severity == Severity.CRITICAL),
        moderate=sum(1 for v in violations if v.severity == Severity.MODERATE),
        minor=sum(1 for v in violations if v.severity == Severity.MINOR),
        source=source,
        assessment=assessment,
    )


def _merge_key(violation: Violation) -> tuple[str, ViolationType]:
    return normalize_name(violation.card), violation.type


def merge_violations(
    llm_violations: Sequence[Violation],
    deterministic: Sequence[Violation],
) -> list[Violation]:
    """
    Merge model and rule findings keyed by (card, type).

    Model entries come first, de-duplicated per key, and each one stands in
    for the FIRST deterministic entry with the same key. Further
    deterministic entries for that key (extra singleton copies) are kept,
    as is every deterministic entry the model did not report.
    """
    merged: list[Violation] = []
    covered: set[tuple[str, ViolationType]] = set()

    for violation in llm_violations:
        key = _merge_key(violation)
        if key not in covered:
            covered.add(key)
            merged.append(violation)

    for violation in deterministic:
        key = _merge_key(violation)
        if key in covered:
            covered.discard(key)
            continue
        merged.append(violation)

    return merged


def build_scan_prompt(
    cards: Sequence[Card],
    commander: Card,
    rules: ArchetypeRules | None = None,
) -> str:
    style_lines = ""
    if rules is not None:
        style_lines = f"Deck style: {rules.deck_style}\n"
        if rules.has_budget:
            style_lines += f"Budget constraint: ${rules.max_budget:,.0f}\n"

    shown = [{"name": card.name, "category": card.category} for card in cards[:MAX_SCANNED_CARDS]]
    return SCAN_PROMPT_TEMPLATE.format(
        name=commander.name,
        colors=", ".join(commander_identity(commander)) or "Colorless",
        style_lines=style_lines,
        total=len(cards),
        truncated=f", first {MAX_SCANNED_CARDS} shown" if len(cards) > MAX_SCANNED_CARDS else "",
        card_list=json.dumps(shown, indent=2),
        land_count=count_lands(cards),
    )


def _to_violation(entry: Any, deck_names: set[str]) -> Violation | None:
    """Convert one model entry, or None if it is unusable."""
    if not isinstance(entry, dict):
        return None

    card = entry.get("card")
    raw_type = entry.get("violation_type") or entry.get("type")
    if not isinstance(card, str) or not card.strip() or not isinstance(raw_type, str):
        return None

    violation_type = _TYPE_ALIASES.get(raw_type.strip().lower())
    if violation_type is None:
        return None
    # Card-level findings about cards not in the deck are hallucinations
    if violation_type in CARD_LEVEL_TYPES and normalize_name(card) not in deck_names:
        return None

    try:
        severity = Severity(str(entry.get("severity", "critical")).strip().lower())
    except ValueError:
        severity = Severity.CRITICAL

    suggested = entry.get("suggested_replacement")
    return Violation(
        card=card.strip(),
        type=violation_type,
        severity=severity,
        reason=str(entry.get("reason") or f"{card} flagged by AI validation"),
        suggested_replacement=suggested.strip() if isinstance(suggested, str) else None,
    )


def parse_scan_response(
    raw_response: str,
    cards: Sequence[Card],
) -> tuple[list[Violation], str | None]:
    """
    Extract violations and the assessment from a scan response.

    Raises:
        ValidationFallback: If the response cannot be parsed
    """
    try:
        parsed = parse_llm_json(raw_response, expected=dict)
    except JsonExtractionError as e:
        raise ValidationFallback(f"Unparseable scan response: {e}") from e

    entries = parsed.value.get("violations") or []
    if not isinstance(entries, list):
        raise ValidationFallback("Scan response 'violations' is not a list")

    deck_names = {card.key for card in cards}
    violations = [v for v in (_to_violation(e, deck_names) for e in entries) if v is not None]

    summary = parsed.value.get("summary")
    assessment = None
    if isinstance(summary, dict) and isinstance(summary.get("deck_assessment"), str):
        assessment = summary["deck_assessment"]
    return violations, assessment


class ValidationScanner:
    """Deterministic-first deck scanner with an optional model pass."""

    def __init__(
        self,
        completion: TextCompletionService | None,
        identity_cache: ColorIdentityCache | None = None,
        max_tokens: int | None = None,
    ) -> None:
        self.completion = completion
        self.identity_cache = identity_cache
        self.max_tokens = max_tokens or settings.validation_max_tokens

    def deterministic_violations(
        self,
        cards: Sequence[Card],
        commander: Card | None,
        rules: ArchetypeRules | None = None,
    ) -> tuple[list[Violation], tuple[str, ...]]:
        validation = validate_deck(cards, commander, self.identity_cache)
        violations = list(validation.violations)
        if rules is not None:
            violations.extend(validate_land_count(cards, rules))
        return violations, validation.warnings

    async def scan(
        self,
        cards: Sequence[Card],
        commander: Card | None,
        rules: ArchetypeRules | None = None,
    ) -> ScanResult:
        """
        Scan a candidate list. Never raises for model failures.

        Only critical rules-engine findings skip the model pass; archetype
        land findings are reported either way.
        """
        validation = validate_deck(cards, commander, self.identity_cache)
        land_violations = validate_land_count(cards, rules) if rules is not None else []
        deterministic = [*validation.violations, *land_violations]
        warnings = validation.warnings

        if commander is None or any(
            v.severity == Severity.CRITICAL for v in validation.violations
        ):
            return ScanResult(
                violations=tuple(deterministic),
                summary=_summarize(deterministic, "deterministic"),
                warnings=warnings,
            )

        try:
            llm_violations, assessment = await self._scan_with_llm(cards, commander, rules)
        except ValidationFallback as e:
            logger.warning("VALIDATION_FALLBACK", extra={"reason": e.reason})
            return ScanResult(
                violations=tuple(deterministic),
                summary=_summarize(deterministic, "fallback"),
                warnings=warnings,
            )

        merged = merge_violations(llm_violations, deterministic)
        logger.info(
            "DECK_SCANNED",
            extra={
                "llm_violations": len(llm_violations),
                "deterministic_violations": len(deterministic),
                "merged_violations": len(merged),
            },
        )
        return ScanResult(
            violations=tuple(merged),
            summary=_summarize(merged, "merged", assessment),
            warnings=warnings,
        )

    async def _scan_with_llm(
        self,
        cards: Sequence[Card],
        commander: Card,
        rules: ArchetypeRules | None,
    ) -> tuple[list[Violation], str | None]:
        if self.completion is None:
            raise ValidationFallback("No completion service configured")

        prompt = build_scan_prompt(cards, commander, rules)
        try:
            raw_response = await self.completion.complete(
                SCAN_SYSTEM_PROMPT, prompt, self.max_tokens
            )
        except BudgetExceededError as e:
            raise ValidationFallback(e.message) from e
        except COMPLETION_ERRORS as e:
            raise ValidationFallback(f"{type(e).__name__}: {e}") from e

        return parse_scan_response(raw_response, cards)
