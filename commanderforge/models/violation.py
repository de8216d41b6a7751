"""
Validation result models.

Violations are created fresh on every validation pass and never persisted.
They are consumed immediately by the replacement stage.
"""

from dataclasses import dataclass, field
from enum import Enum


class ViolationType(str, Enum):
    """Kind of Commander rule infraction."""

    BANNED_CARD = "banned_card"
    COLOR_IDENTITY = "color_identity"
    SINGLETON_VIOLATION = "singleton_violation"
    DECK_SIZE = "deck_size"
    INVALID_COMMANDER = "invalid_commander"
    LAND_COUNT = "land_count"


class Severity(str, Enum):
    """How badly a violation breaks the deck."""

    CRITICAL = "critical"
    MODERATE = "moderate"
    MINOR = "minor"


# Violations tied to a specific card slot; the rest describe the deck as a whole
CARD_LEVEL_TYPES = frozenset(
    {
        ViolationType.BANNED_CARD,
        ViolationType.COLOR_IDENTITY,
        ViolationType.SINGLETON_VIOLATION,
    }
)


@dataclass(frozen=True, slots=True)
class Violation:
    """A single detected rule infraction."""

    card: str
    type: ViolationType
    severity: Severity
    reason: str
    suggested_replacement: str | None = None

    @property
    def is_card_level(self) -> bool:
        return self.type in CARD_LEVEL_TYPES


@dataclass(frozen=True, slots=True)
class LegalityCheck:
    """Outcome of a single-rule check (format legality, color identity)."""

    is_valid: bool
    reason: str | None = None
    card_color_identity: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True)
class CardValidation:
    """All violations for one card."""

    is_valid: bool
    violations: tuple[Violation, ...] = ()


@dataclass(frozen=True, slots=True)
class DeckSummary:
    """Counts reported alongside deck validation."""

    total_cards: int
    land_count: int
    critical_count: int = 0
    moderate_count: int = 0


@dataclass(frozen=True, slots=True)
class DeckValidation:
    """
    Whole-deck validation result.

    is_valid is True iff there are zero violations. Warnings are advisory
    and never affect validity.
    """

    is_valid: bool
    violations: tuple[Violation, ...]
    summary: DeckSummary
    warnings: tuple[str, ...] = field(default=())

    @property
    def critical_violations(self) -> list[Violation]:
        return [v for v in self.violations if v.severity == Severity.CRITICAL]
