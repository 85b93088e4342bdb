# gamedeals/services/intents.py

"""Discrete user intents accepted by the query coordinator."""

from dataclasses import dataclass

from gamedeals.models.filter import SortOrder


@dataclass(frozen=True)
class SetSearchText:
    """The search box now holds *text* (debounced)."""

    text: str


@dataclass(frozen=True)
class ToggleStore:
    """Add or remove a storefront from the selected subset."""

    store_id: int


@dataclass(frozen=True)
class SetMinDiscount:
    """Only show deals cut by at least *pct* percent."""

    pct: int


@dataclass(frozen=True)
class SetPriceRange:
    """Keep deals priced within the bounds; ``None`` leaves a side open."""

    min_price: float | None = None
    max_price: float | None = None


@dataclass(frozen=True)
class SetSort:
    order: SortOrder


@dataclass(frozen=True)
class ClearFilters:
    pass


@dataclass(frozen=True)
class NextPage:
    """Append the page following the last one displayed."""


@dataclass(frozen=True)
class Refresh:
    """Re-run the active query from the start, bypassing the cache."""


Intent = (
    SetSearchText
    | ToggleStore
    | SetMinDiscount
    | SetPriceRange
    | SetSort
    | ClearFilters
    | NextPage
    | Refresh
)
