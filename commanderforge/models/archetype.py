"""
Archetype rules: per-build configuration for the deck pipeline.

ArchetypeRules are constructed once per build request and are immutable
thereafter. The three presets mirror the deck styles offered to users.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from commanderforge.models.failure import GenerationError

# Category keys used in distribution tables and prompts
CATEGORY_LABELS: dict[str, str] = {
    "lands": "Lands",
    "ramp": "Ramp",
    "draw": "Card Draw",
    "removal": "Removal",
    "board_wipes": "Board Wipes",
    "protection": "Protection",
    "strategy": "Strategy",
}


_CATEGORY_ALIASES: dict[str, str] = {
    "land": "Lands",
    "lands": "Lands",
    "ramp": "Ramp",
    "mana": "Ramp",
    "draw": "Card Draw",
    "card draw": "Card Draw",
    "card advantage": "Card Draw",
    "removal": "Removal",
    "board wipe": "Board Wipes",
    "board wipes": "Board Wipes",
    "wipe": "Board Wipes",
    "protection": "Protection",
    "interaction": "Protection",
    "strategy": "Strategy",
    "synergy": "Strategy",
    "utility": "Utility",
    "finisher": "Finisher",
    "wincon": "Finisher",
}


def normalize_category(category: object) -> str:
    """Map a free-form category tag to its canonical label (default Strategy)."""
    if not isinstance(category, str) or not category.strip():
        return "Strategy"
    key = category.strip().lower()
    if key in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[key]
    # "Land, Ramp" and similar multi-tags: first recognized tag wins
    for part in key.replace("/", ",").split(","):
        part = part.strip()
        if part in _CATEGORY_ALIASES:
            return _CATEGORY_ALIASES[part]
    return category.strip().title()


@dataclass(frozen=True, slots=True)
class CategoryRange:
    """Inclusive min/max card count for one category."""

    min: int
    max: int

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < self.min:
            raise ValueError(f"Invalid category range: {self.min}-{self.max}")

    def __str__(self) -> str:
        return f"{self.min}-{self.max}"


def _frozen(mapping: Mapping[str, CategoryRange]) -> Mapping[str, CategoryRange]:
    return MappingProxyType(dict(mapping))


DEFAULT_DISTRIBUTION: Mapping[str, CategoryRange] = _frozen(
    {
        "lands": CategoryRange(33, 38),
        "ramp": CategoryRange(10, 12),
        "draw": CategoryRange(10, 12),
        "removal": CategoryRange(8, 10),
        "board_wipes": CategoryRange(3, 5),
        "protection": CategoryRange(5, 8),
        "strategy": CategoryRange(25, 30),
    }
)


@dataclass(frozen=True, slots=True)
class ArchetypeRules:
    """
    Build configuration for one deck request.

    Attributes:
        deck_style: "budget", "casual", "competitive", or a custom label
        min_bracket: Lowest acceptable power bracket (1-5)
        max_bracket: Highest acceptable power bracket (1-5)
        max_budget: Total budget in USD; math.inf means no cap
        max_card_price: Per-card price ceiling in USD; math.inf means no cap
        distribution: Category key -> allowed card count range
        land_pools: Named pools of preferred nonbasic lands
    """

    deck_style: str = "casual"
    min_bracket: int = 2
    max_bracket: int = 3
    max_budget: float = math.inf
    max_card_price: float = math.inf
    distribution: Mapping[str, CategoryRange] = field(default_factory=lambda: DEFAULT_DISTRIBUTION)
    land_pools: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def has_budget(self) -> bool:
        return math.isfinite(self.max_budget)

    @property
    def land_range(self) -> CategoryRange | None:
        return self.distribution.get("lands")


def _rules(
    deck_style: str,
    brackets: tuple[int, int],
    max_budget: float,
    overrides: dict[str, CategoryRange],
    land_pools: dict[str, tuple[str, ...]],
    max_card_price: float = math.inf,
) -> ArchetypeRules:
    distribution = dict(DEFAULT_DISTRIBUTION)
    distribution.update(overrides)
    return ArchetypeRules(
        deck_style=deck_style,
        min_bracket=brackets[0],
        max_bracket=brackets[1],
        max_budget=max_budget,
        max_card_price=max_card_price,
        distribution=_frozen(distribution),
        land_pools=MappingProxyType(land_pools),
    )


# =============================================================================
# PRESETS
# =============================================================================

BUDGET_RULES = _rules(
    "budget",
    (1, 2),
    max_budget=100,
    max_card_price=10,
    overrides={
        "lands": CategoryRange(36, 38),
        "ramp": CategoryRange(8, 10),
        "draw": CategoryRange(8, 12),
        "removal": CategoryRange(6, 10),
        "protection": CategoryRange(4, 6),
        "strategy": CategoryRange(25, 30),
    },
    land_pools={
        "utility": ("Command Tower", "Exotic Orchard", "Terramorphic Expanse"),
        "budget": ("Evolving Wilds", "Myriad Landscape"),
    },
)

CASUAL_RULES = _rules(
    "casual",
    (2, 3),
    max_budget=1000,
    overrides={
        "lands": CategoryRange(35, 39),
        "ramp": CategoryRange(8, 10),
        "draw": CategoryRange(8, 12),
        "removal": CategoryRange(6, 10),
        "protection": CategoryRange(4, 6),
        "strategy": CategoryRange(25, 30),
    },
    land_pools={
        "utility": ("Command Tower", "Exotic Orchard", "Reflecting Pool"),
        "mid_tier": ("Temple of Enlightenment", "Selesnya Sanctuary"),
    },
)

COMPETITIVE_RULES = _rules(
    "competitive",
    (4, 5),
    max_budget=5000,
    overrides={
        "lands": CategoryRange(35, 38),
        "ramp": CategoryRange(10, 12),
        "draw": CategoryRange(10, 15),
        "removal": CategoryRange(8, 12),
        "protection": CategoryRange(5, 8),
        "strategy": CategoryRange(20, 25),
    },
    land_pools={
        "utility": ("Command Tower", "City of Brass", "Mana Confluence"),
        "premium": ("Scalding Tarn", "Polluted Delta", "Windswept Heath"),
    },
)

ARCHETYPE_PRESETS: dict[str, ArchetypeRules] = {
    "budget": BUDGET_RULES,
    "casual": CASUAL_RULES,
    "competitive": COMPETITIVE_RULES,
}


def get_archetype_rules(deck_style: str) -> ArchetypeRules:
    """
    Look up a preset by deck style (case-insensitive).

    Raises:
        GenerationError: If the style is not a known preset
    """
    rules = ARCHETYPE_PRESETS.get(deck_style.strip().lower())
    if rules is None:
        raise GenerationError(
            f"Unknown deck style: {deck_style!r}",
            detail=f"Valid styles: {sorted(ARCHETYPE_PRESETS)}",
        )
    return rules
