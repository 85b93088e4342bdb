# gamedeals/models/deal.py

"""Game and deal value objects produced by the API client."""

import math
from dataclasses import dataclass
from datetime import datetime

from gamedeals.models.errors import MalformedResponse
from gamedeals.models.store import Store


@dataclass(frozen=True)
class Game:
    """A game, identified by its stable upstream ID."""

    id: str
    title: str

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise MalformedResponse("Game id must not be empty")
        if not self.title.strip():
            raise MalformedResponse(f"Game {self.id} has an empty title")


@dataclass(frozen=True)
class Price:
    """A monetary amount in a given currency."""

    amount: float
    currency: str

    def __post_init__(self) -> None:
        if not math.isfinite(self.amount):
            raise MalformedResponse(
                f"Non-finite price {self.amount} {self.currency}"
            )
        if self.amount < 0:
            raise MalformedResponse(
                f"Negative price {self.amount} {self.currency}"
            )
        if not self.currency:
            raise MalformedResponse("Price is missing its currency")


@dataclass(frozen=True)
class Deal:
    """A single storefront offer for a game."""

    game: Game
    store: Store
    price: Price
    regular_price: Price | None
    discount: int
    url: str
    expiry: datetime | None = None
    history_low: float | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.discount <= 100:
            raise MalformedResponse(
                f"Discount {self.discount}% for '{self.game.title}' "
                "is outside 0-100"
            )
        if (
            self.regular_price is not None
            and self.price.amount > self.regular_price.amount
        ):
            raise MalformedResponse(
                f"Price {self.price.amount} for '{self.game.title}' "
                f"exceeds regular price {self.regular_price.amount}"
            )
        if self.history_low is not None and not (
            math.isfinite(self.history_low) and self.history_low >= 0
        ):
            raise MalformedResponse(
                f"Invalid historical low for '{self.game.title}'"
            )

    @property
    def key(self) -> tuple[str, int]:
        """Identity of the offer inside a listing: one per game and store."""
        return (self.game.id, self.store.id)

    @property
    def currency(self) -> str:
        return self.price.currency
