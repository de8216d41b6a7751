"""
Card resolution: names in, authoritative card data out.

The card data source is an external collaborator. Production uses the
Scryfall API; anything implementing `CardDataSource` works.

INVARIANTS:
- `CardResolver.fetch_batch` and `fetch_individually` NEVER raise. A name
  that cannot be resolved is simply absent from the returned mapping.
- Synthetic fallback cards are always commander-legal and carry
  `is_fallback=True` so callers can tell best-effort data from real data.
- Requests proceed sequentially, chunk by chunk, with a fixed delay
  between per-card lookups.
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from typing import Protocol

import httpx

from commanderforge.config import (
    SCRYFALL_BATCH_SIZE,
    SCRYFALL_REQUEST_DELAY,
    settings,
)
from commanderforge.models.card import Card, front_face_name, normalize_name

logger = logging.getLogger(__name__)

# Transport failures and malformed payloads both mean "not resolved"
LOOKUP_ERRORS: tuple[type[Exception], ...] = (httpx.HTTPError, ValueError, KeyError, TypeError)


class CardDataSource(Protocol):
    """Interface the resolver needs from a card data provider."""

    async def lookup_by_name(self, name: str) -> Card | None: ...

    async def lookup_batch(self, names: Sequence[str]) -> list[Card]: ...

    async def search_by_query(self, query: str) -> list[Card]: ...


# =============================================================================
# SCRYFALL
# =============================================================================


class ScryfallClient:
    """
    Card data source backed by the Scryfall REST API.

    https://scryfall.com/docs/api
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        self.base_url = (base_url or settings.scryfall_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self.headers = {
            "User-Agent": settings.scryfall_user_agent,
            "Accept": "application/json",
        }

    async def lookup_by_name(self, name: str) -> Card | None:
        """
        Exact-name lookup.

        Returns:
            The card, or None if Scryfall has no card by that name

        Raises:
            httpx.HTTPError: If the request fails for any other reason
        """
        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            response = await client.get(f"{self.base_url}/cards/named", params={"exact": name})
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return Card.from_scryfall(response.json())

    async def lookup_batch(self, names: Sequence[str]) -> list[Card]:
        """
        Resolve up to SCRYFALL_BATCH_SIZE names in one request.

        Names Scryfall reports as not found are omitted from the result.

        Raises:
            ValueError: If more names are passed than one request accepts
            httpx.HTTPError: If the request fails
        """
        if not names:
            return []
        if len(names) > SCRYFALL_BATCH_SIZE:
            raise ValueError(f"Batch of {len(names)} exceeds limit of {SCRYFALL_BATCH_SIZE}")

        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            response = await client.post(
                f"{self.base_url}/cards/collection",
                json={"identifiers": [{"name": name} for name in names]},
            )
            response.raise_for_status()
            data = response.json()

        return [Card.from_scryfall(payload) for payload in data.get("data", [])]

    async def search_by_query(self, query: str) -> list[Card]:
        """
        Full-text search using Scryfall query syntax (first page only).

        A 404 from Scryfall means no matches and yields an empty list.
        """
        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            response = await client.get(
                f"{self.base_url}/cards/search",
                params={"q": query, "order": "edhrec"},
            )
            if response.status_code == 404:
                return []
            response.raise_for_status()
            data = response.json()

        return [Card.from_scryfall(payload) for payload in data.get("data", [])]


# =============================================================================
# SYNTHETIC FALLBACK CARDS
# =============================================================================


def _fallback(
    name: str,
    type_line: str,
    color_identity: tuple[str, ...] = (),
    mana_cost: str = "",
    mana_value: float = 0.0,
    oracle_text: str = "",
) -> Card:
    return Card(
        name=name,
        color_identity=color_identity,
        type_line=type_line,
        oracle_text=oracle_text,
        mana_cost=mana_cost,
        mana_value=mana_value,
        commander_legality="legal",
        is_fallback=True,
    )


FALLBACK_CARDS: dict[str, Card] = {
    card.key: card
    for card in (
        _fallback(
            "Sol Ring",
            "Artifact",
            mana_cost="{1}",
            mana_value=1,
            oracle_text="{T}: Add {C}{C}.",
        ),
        _fallback(
            "Command Tower",
            "Land",
            oracle_text=(
                "{T}: Add one mana of any color in your commander's color identity."
            ),
        ),
        _fallback(
            "Arcane Signet",
            "Artifact",
            mana_cost="{2}",
            mana_value=2,
            oracle_text=(
                "{T}: Add one mana of any color in your commander's color identity."
            ),
        ),
        _fallback("Plains", "Basic Land — Plains", ("W",)),
        _fallback("Island", "Basic Land — Island", ("U",)),
        _fallback("Swamp", "Basic Land — Swamp", ("B",)),
        _fallback("Mountain", "Basic Land — Mountain", ("R",)),
        _fallback("Forest", "Basic Land — Forest", ("G",)),
        _fallback("Wastes", "Basic Land"),
    )
}


def get_fallback_card(name: str) -> Card | None:
    """Synthetic stand-in for a handful of staple cards, or None."""
    return FALLBACK_CARDS.get(normalize_name(name))


# =============================================================================
# RESOLVER
# =============================================================================


def _unique(names: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        key = normalize_name(name)
        if key and key not in seen:
            seen.add(key)
            result.append(name.strip())
    return result


def _index_by_name(cards: Iterable[Card]) -> dict[str, Card]:
    """Index cards by full name and by front face for double-faced cards."""
    index: dict[str, Card] = {}
    for card in cards:
        index.setdefault(card.key, card)
        index.setdefault(normalize_name(front_face_name(card.name)), card)
    return index


class CardResolver:
    """
    Batch-first card resolution with per-card and synthetic fallbacks.

    Returned mappings are keyed by the requested name as passed in.
    """

    def __init__(
        self,
        source: CardDataSource,
        batch_size: int = SCRYFALL_BATCH_SIZE,
        request_delay: float = SCRYFALL_REQUEST_DELAY,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.source = source
        self.batch_size = batch_size
        self.request_delay = request_delay

    async def fetch_batch(self, names: Sequence[str]) -> dict[str, Card]:
        """
        Resolve names in chunks of `batch_size`.

        A chunk whose request fails is retried one name at a time. Names a
        successful chunk reports as not found are also retried one at a time.
        """
        requested = _unique(names)
        resolved: dict[str, Card] = {}

        for start in range(0, len(requested), self.batch_size):
            chunk = requested[start : start + self.batch_size]
            try:
                cards = await self.source.lookup_batch(chunk)
            except LOOKUP_ERRORS as e:
                logger.warning(
                    "BATCH_LOOKUP_FAILED",
                    extra={"chunk_size": len(chunk), "error": str(e)},
                )
                resolved.update(await self.fetch_individually(chunk))
                continue

            index = _index_by_name(cards)
            missing: list[str] = []
            for name in chunk:
                card = index.get(normalize_name(name))
                if card is None:
                    missing.append(name)
                else:
                    resolved[name] = card

            if missing:
                resolved.update(await self.fetch_individually(missing))

        return resolved

    async def fetch_individually(self, names: Sequence[str]) -> dict[str, Card]:
        """
        Resolve names one at a time, spaced by `request_delay`.

        Misses fall back to the synthetic table; anything else is dropped
        and logged as a lookup gap.
        """
        resolved: dict[str, Card] = {}

        for i, name in enumerate(_unique(names)):
            if i > 0 and self.request_delay > 0:
                await asyncio.sleep(self.request_delay)

            card: Card | None = None
            try:
                card = await self.source.lookup_by_name(name)
            except LOOKUP_ERRORS as e:
                logger.warning("CARD_LOOKUP_FAILED", extra={"card_name": name, "error": str(e)})

            if card is None:
                card = get_fallback_card(name)
                if card is not None:
                    logger.info("SYNTHETIC_CARD_USED", extra={"card_name": name})

            if card is None:
                logger.warning("LOOKUP_GAP", extra={"card_name": name})
                continue

            resolved[name] = card

        return resolved

    async def search(self, query: str) -> list[Card]:
        """Run a category search; failures yield an empty list."""
        try:
            return await self.source.search_by_query(query)
        except LOOKUP_ERRORS as e:
            logger.warning("CARD_SEARCH_FAILED", extra={"query": query, "error": str(e)})
            return []

