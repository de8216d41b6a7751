from dataclasses import dataclass
from enum import Enum

from commanderforge.models.card import Card
from commanderforge.models.violation import DeckValidation


class BuildStage(str, Enum):
    """Stages of a single deck build, in order."""

    GENERATING = "generating"
    VALIDATING = "validating"
    REPLACING = "replacing"
    REVALIDATING = "revalidating"
    RESOLVING = "resolving"
    ASSEMBLING = "assembling"
    COMPLETE = "complete"


@dataclass(frozen=True, slots=True)
class LookupGap:
    """A card name the data source could not resolve. Non-fatal."""

    name: str
    reason: str


@dataclass(frozen=True, slots=True)
class BuildResult:
    """
    The single success shape of a deck build.

    Attributes:
        cards: Exactly the assembled non-commander entries, one per copy
        commander: The commander card
        build_log: Human-readable record of every stage decision
        validation: Final legality check of the assembled deck
    """

    cards: tuple[Card, ...]
    commander: Card
    build_log: tuple[str, ...]
    validation: DeckValidation
