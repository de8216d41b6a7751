"""
Card model and color identity helpers.

A Card is the unit that flows through every pipeline stage. Early stages
only know a name and a category (straight out of the LLM); later stages
attach authoritative data from the card data source.

INVARIANT: color_identity is None when identity is UNKNOWN. An empty tuple
means the card is genuinely colorless. Callers must not conflate the two.
"""

import re
from dataclasses import dataclass
from typing import Any

WUBRG = ("W", "U", "B", "R", "G")

COLOR_TO_BASIC_LAND = {
    "W": "Plains",
    "U": "Island",
    "B": "Swamp",
    "R": "Mountain",
    "G": "Forest",
}

BASIC_LAND_NAMES = frozenset(
    {
        "plains",
        "island",
        "swamp",
        "mountain",
        "forest",
        "wastes",
        "snow-covered plains",
        "snow-covered island",
        "snow-covered swamp",
        "snow-covered mountain",
        "snow-covered forest",
        "snow-covered wastes",
    }
)

# {W}, {2/U}, {W/P}, {G/W/P}: every color letter inside braces counts
_MANA_SYMBOL = re.compile(r"\{([^}]+)\}")
_LAND_TYPE = re.compile(r"\bland\b", re.IGNORECASE)


def compute_color_identity(
    mana_cost: str | None,
    oracle_text: str | None = None,
) -> tuple[str, ...]:
    """
    Derive color identity from mana symbols in cost and rules text.

    Returns colors in WUBRG order. Reminder text is not stripped, which
    matches how Scryfall reports identity for hybrid and Phyrexian symbols.
    """
    found: set[str] = set()
    for source in (mana_cost or "", oracle_text or ""):
        for symbol in _MANA_SYMBOL.findall(source):
            for part in symbol.upper().split("/"):
                if part in WUBRG:
                    found.add(part)
    return tuple(color for color in WUBRG if color in found)


def normalize_colors(colors: Any) -> tuple[str, ...] | None:
    """Normalize a color list into WUBRG order, or None if not a list."""
    if not isinstance(colors, list | tuple | set | frozenset):
        return None
    upper = {str(color).strip().upper() for color in colors}
    return tuple(color for color in WUBRG if color in upper)


@dataclass(frozen=True, slots=True)
class Card:
    """
    A single card entry in a Commander deck.

    Attributes:
        name: Card name (unique within a deck, compared case-insensitively)
        color_identity: Colors in WUBRG order, or None when not yet resolved
        type_line: Full type line (e.g., "Legendary Creature — Phyrexian Angel")
        oracle_text: Rules text, faces joined for double-faced cards
        mana_cost: Printed mana cost (e.g., "{G}{W}{U}{B}")
        mana_value: Converted mana cost
        commander_legality: "legal", "banned", "not_legal", or None if unknown
        category: Role tag (Lands, Ramp, Card Draw, Removal, ...)
        quantity: Number of copies (only basic lands may exceed 1)
        is_fallback: True for synthetic or placeholder data
    """

    name: str
    color_identity: tuple[str, ...] | None = None
    type_line: str = ""
    oracle_text: str = ""
    mana_cost: str = ""
    mana_value: float = 0.0
    commander_legality: str | None = None
    category: str | None = None
    quantity: int = 1
    is_fallback: bool = False

    @property
    def key(self) -> str:
        """Case-insensitive identity used for all name comparisons."""
        return normalize_name(self.name)

    @property
    def is_land(self) -> bool:
        """Type line decides once resolved; the category tag only before that."""
        if self.type_line:
            return bool(_LAND_TYPE.search(self.type_line))
        return (self.category or "").strip().lower() in {"land", "lands"}

    @property
    def is_basic_land(self) -> bool:
        type_line = self.type_line.lower()
        if "basic" in type_line and "land" in type_line:
            return True
        return self.key in BASIC_LAND_NAMES

    @classmethod
    def from_scryfall(cls, payload: dict[str, Any], category: str | None = None) -> "Card":
        """
        Build a Card from a Scryfall card object.

        Double-faced cards keep their full "Front // Back" name; type line
        and oracle text fall back to the faces when absent at the top level.
        """
        faces = payload.get("card_faces") or []

        type_line = payload.get("type_line") or " // ".join(
            face.get("type_line", "") for face in faces if face.get("type_line")
        )
        oracle_text = payload.get("oracle_text") or "\n".join(
            face.get("oracle_text", "") for face in faces if face.get("oracle_text")
        )
        mana_cost = payload.get("mana_cost") or " // ".join(
            face.get("mana_cost", "") for face in faces if face.get("mana_cost")
        )

        color_identity = normalize_colors(payload.get("color_identity"))
        if color_identity is None:
            color_identity = compute_color_identity(mana_cost, oracle_text)

        legalities = payload.get("legalities") or {}

        return cls(
            name=str(payload["name"]),
            color_identity=color_identity,
            type_line=type_line,
            oracle_text=oracle_text,
            mana_cost=mana_cost,
            mana_value=float(payload.get("cmc") or 0.0),
            commander_legality=legalities.get("commander"),
            category=category,
        )


def normalize_name(name: str | None) -> str:
    """Trim and casefold a card name for comparison."""
    return (name or "").strip().casefold()


def front_face_name(name: str) -> str:
    """Return the front face of a double-faced name ("A // B" -> "A")."""
    return name.split("//")[0].strip()
