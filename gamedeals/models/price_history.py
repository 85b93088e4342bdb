# gamedeals/models/price_history.py

"""Historical price observation for a single game."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PriceHistoryPoint:
    """A recorded deal price at a point in time."""

    timestamp: datetime
    price: float
    store_name: str
