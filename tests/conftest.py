from collections.abc import Sequence

import pytest

from commanderforge.models import failure as failure_module
from commanderforge.models.card import Card


@pytest.fixture(autouse=True)
def clear_finalized_responses():
    """Clear the finalized responses set between tests.

    This prevents test isolation issues where Python reuses memory
    addresses for new objects, causing id() collisions with previously
    finalized responses.
    """
    failure_module._finalized_responses.clear()
    yield
    failure_module._finalized_responses.clear()


class FakeCompletion:
    """Scripted TextCompletionService; records every call."""

    def __init__(self, responses: Sequence[str | Exception] = ()) -> None:
        self.responses = list(responses)
        self.calls: list[tuple[str, str, int]] = []

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        self.calls.append((system_prompt, user_prompt, max_tokens))
        if not self.responses:
            raise AssertionError("FakeCompletion ran out of scripted responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeCardSource:
    """In-memory CardDataSource keyed by case-insensitive name."""

    def __init__(
        self,
        cards: Sequence[Card] = (),
        fail_batch: bool = False,
        search_results: Sequence[Card] = (),
    ) -> None:
        self.cards = {card.key: card for card in cards}
        self.fail_batch = fail_batch
        self.search_results = list(search_results)
        self.batch_calls: list[list[str]] = []
        self.single_calls: list[str] = []
        self.queries: list[str] = []

    async def lookup_by_name(self, name: str) -> Card | None:
        self.single_calls.append(name)
        return self.cards.get(name.strip().casefold())

    async def lookup_batch(self, names: Sequence[str]) -> list[Card]:
        self.batch_calls.append(list(names))
        if self.fail_batch:
            raise ValueError("batch endpoint unavailable")
        found = (self.cards.get(name.strip().casefold()) for name in names)
        return [card for card in found if card is not None]

    async def search_by_query(self, query: str) -> list[Card]:
        self.queries.append(query)
        return list(self.search_results)


def make_card(
    name: str,
    identity: tuple[str, ...] | None = (),
    type_line: str = "Artifact",
    category: str | None = "Strategy",
    commander_legality: str | None = "legal",
    **kwargs,
) -> Card:
    return Card(
        name=name,
        color_identity=identity,
        type_line=type_line,
        commander_legality=commander_legality,
        category=category,
        **kwargs,
    )


def basic(name: str, quantity: int = 1) -> Card:
    colors = {"Plains": "W", "Island": "U", "Swamp": "B", "Mountain": "R", "Forest": "G"}
    identity = (colors[name],) if name in colors else ()
    return Card(
        name=name,
        color_identity=identity,
        type_line=f"Basic Land — {name}",
        commander_legality="legal",
        category="Lands",
        quantity=quantity,
    )


@pytest.fixture
def atraxa() -> Card:
    """Four-color commander (WUBG)."""
    return Card(
        name="Atraxa, Praetors' Voice",
        color_identity=("W", "U", "B", "G"),
        type_line="Legendary Creature — Phyrexian Angel Horror",
        oracle_text=(
            "Flying, vigilance, deathtouch, lifelink\n"
            "At the beginning of your end step, proliferate."
        ),
        mana_cost="{G}{W}{U}{B}",
        mana_value=4,
        commander_legality="legal",
    )


@pytest.fixture
def krenko() -> Card:
    """Mono-red commander."""
    return Card(
        name="Krenko, Mob Boss",
        color_identity=("R",),
        type_line="Legendary Creature — Goblin Warrior",
        oracle_text=(
            "{T}: Create X 1/1 red Goblin creature tokens, "
            "where X is the number of Goblins you control."
        ),
        mana_cost="{2}{R}{R}",
        mana_value=4,
        commander_legality="legal",
    )


@pytest.fixture
def valid_atraxa_deck() -> list[Card]:
    """99 legal cards for Atraxa: 36 basics plus 63 unique colorless artifacts."""
    lands = [basic("Plains", 9), basic("Island", 9), basic("Swamp", 9), basic("Forest", 9)]
    spells = [make_card(f"Test Relic {i}") for i in range(63)]
    return lands + spells
