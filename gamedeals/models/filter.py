# gamedeals/models/filter.py

"""User-selected query constraints and their cache fingerprint."""

import math
from dataclasses import dataclass, field, replace
from enum import Enum

from gamedeals.models.deal import Deal


class SortOrder(Enum):
    """Listing order; the value is the upstream ``sort`` parameter."""

    PRICE_ASC = "price"
    PRICE_DESC = "-price"
    DISCOUNT_DESC = "-cut"
    TITLE = "title"
    HOTTEST = "-hot"
    NEWEST = "-release-date"
    EXPIRING = "expiry"
    POPULAR = "rank"

    @property
    def label(self) -> str:
        return _SORT_LABELS[self]

    @property
    def upstream(self) -> str | None:
        """The deals endpoint parameter, or ``None`` for local-only orders."""
        if self is SortOrder.TITLE:
            return None
        return self.value

    @classmethod
    def parse(cls, raw: str) -> "SortOrder":
        """Look up an order by value or member name (case-insensitive)."""
        for order in cls:
            if raw in (order.value, order.name.lower(), order.name):
                return order
        raise ValueError(f"Unknown sort order: {raw!r}")


_SORT_LABELS: dict[SortOrder, str] = {
    SortOrder.PRICE_ASC: "Price ↑",
    SortOrder.PRICE_DESC: "Price ↓",
    SortOrder.DISCOUNT_DESC: "Discount ↓",
    SortOrder.TITLE: "Title",
    SortOrder.HOTTEST: "Hottest",
    SortOrder.NEWEST: "Newest",
    SortOrder.EXPIRING: "Expiring",
    SortOrder.POPULAR: "Popular",
}


def normalize_query(text: str) -> str:
    """Case-fold and collapse whitespace so equivalent searches collide."""
    return " ".join(text.casefold().split())


@dataclass(frozen=True)
class QueryFingerprint:
    """Order-independent key for a (filter, offset) pair.

    Used both as the cache key and as the token deciding whether a
    completed request still matches what the user is looking at.
    """

    query: str
    store_ids: tuple[int, ...]
    min_discount: int
    min_price: float | None
    max_price: float | None
    sort: str
    country: str
    offset: int

    @property
    def filter_key(self) -> tuple[object, ...]:
        """Everything but the offset: identifies the list being paged."""
        return (
            self.query,
            self.store_ids,
            self.min_discount,
            self.min_price,
            self.max_price,
            self.sort,
            self.country,
        )

    def __str__(self) -> str:
        stores = ",".join(str(s) for s in self.store_ids) or "*"
        low = "" if self.min_price is None else f"{self.min_price:g}"
        high = "" if self.max_price is None else f"{self.max_price:g}"
        return (
            f"q={self.query!r} stores={stores} min={self.min_discount} "
            f"price={low}..{high} "
            f"sort={self.sort} cc={self.country} offset={self.offset}"
        )


@dataclass(frozen=True)
class Filter:
    """Constraints chosen in the UI; hashable so it can key caches."""

    query: str = ""
    store_ids: frozenset[int] = field(default_factory=frozenset)
    min_discount: int = 0
    sort: SortOrder = SortOrder.PRICE_ASC
    country: str = "US"
    min_price: float | None = None
    max_price: float | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.min_discount <= 100:
            raise ValueError(
                f"min_discount must be within 0-100, got {self.min_discount}"
            )
        for bound in (self.min_price, self.max_price):
            if bound is not None and not (math.isfinite(bound) and bound >= 0):
                raise ValueError(f"Price bound must be a non-negative number, got {bound}")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError(
                f"min_price {self.min_price} exceeds max_price {self.max_price}"
            )

    @property
    def has_price_range(self) -> bool:
        return self.min_price is not None or self.max_price is not None

    @property
    def normalized_query(self) -> str:
        return normalize_query(self.query)

    @property
    def is_search(self) -> bool:
        """True when a free-text search replaces the browse listing."""
        return bool(self.normalized_query)

    def fingerprint(self, offset: int = 0) -> QueryFingerprint:
        return QueryFingerprint(
            query=self.normalized_query,
            store_ids=tuple(sorted(self.store_ids)),
            min_discount=self.min_discount,
            min_price=self.min_price,
            max_price=self.max_price,
            sort=self.sort.value,
            country=self.country.upper(),
            offset=offset,
        )

    def accepts(self, deal: Deal) -> bool:
        """Local check for constraints the upstream cannot express."""
        if deal.discount < self.min_discount:
            return False
        if self.store_ids and deal.store.id not in self.store_ids:
            return False
        price = deal.price.amount
        if self.min_price is not None and price < self.min_price:
            return False
        if self.max_price is not None and price > self.max_price:
            return False
        return True

    # ── Derivations used by the coordinator ──────────────

    def with_query(self, text: str) -> "Filter":
        return replace(self, query=text)

    def toggle_store(self, store_id: int) -> "Filter":
        if store_id in self.store_ids:
            return replace(self, store_ids=self.store_ids - {store_id})
        return replace(self, store_ids=self.store_ids | {store_id})

    def with_min_discount(self, pct: int) -> "Filter":
        return replace(self, min_discount=pct)

    def with_price_range(
        self, min_price: float | None, max_price: float | None,
    ) -> "Filter":
        return replace(self, min_price=min_price, max_price=max_price)

    def with_sort(self, order: SortOrder) -> "Filter":
        return replace(self, sort=order)

    def cleared(self, sort: SortOrder = SortOrder.PRICE_ASC) -> "Filter":
        """Drop every constraint except the region; order falls back to *sort*."""
        return Filter(sort=sort, country=self.country)
