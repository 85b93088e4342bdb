# gamedeals/api/parsers.py

"""Strict conversion of upstream JSON payloads into domain objects.

Every accessor here checks presence *and* type of the fields it reads.
A missing required field, a wrong type, or a value breaking a domain
invariant raises :class:`MalformedResponse`; nothing is silently
defaulted.  Optional fields (``expiry``, ``historyLow``, ``hasMore``,
``nextOffset``) may be absent or ``null``.
"""

import json
import logging
import math
from datetime import datetime
from typing import Any

from gamedeals.models.deal import Deal, Game, Price
from gamedeals.models.errors import MalformedResponse
from gamedeals.models.filter import Filter, SortOrder
from gamedeals.models.page import Page
from gamedeals.models.price_history import PriceHistoryPoint
from gamedeals.models.store import resolve_store

logger = logging.getLogger("gamedeals.parsers")


# ── Primitive accessors ──────────────────────────────────


def decode_json(text: str) -> Any:
    """Decode a response body, mapping syntax errors to the taxonomy."""
    try:
        return json.loads(text)
    except ValueError as exc:
        raise MalformedResponse(f"Response is not valid JSON: {exc}") from exc


def _obj(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedResponse(
            f"{where}: expected an object, got {type(value).__name__}"
        )
    return value


def _list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise MalformedResponse(
            f"{where}: expected a list, got {type(value).__name__}"
        )
    return value


def _field(data: dict[str, Any], key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise MalformedResponse(f"{where}: missing required field '{key}'")
    return data[key]


def _str(data: dict[str, Any], key: str, where: str) -> str:
    value = _field(data, key, where)
    if not isinstance(value, str):
        raise MalformedResponse(f"{where}.{key}: expected a string")
    return value


def _number(data: dict[str, Any], key: str, where: str) -> float:
    value = _field(data, key, where)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedResponse(f"{where}.{key}: expected a number")
    if not math.isfinite(value):
        raise MalformedResponse(f"{where}.{key}: expected a finite number")
    return float(value)


def _int(data: dict[str, Any], key: str, where: str) -> int:
    value = _field(data, key, where)
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedResponse(f"{where}.{key}: expected an integer")
    return value


def _timestamp(raw: Any, where: str) -> datetime:
    if not isinstance(raw, str):
        raise MalformedResponse(f"{where}: expected an ISO 8601 string")
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MalformedResponse(f"{where}: bad timestamp {raw!r}") from exc


def _price(data: dict[str, Any], key: str, where: str) -> Price:
    raw = _obj(_field(data, key, where), f"{where}.{key}")
    return Price(
        amount=_number(raw, "amount", f"{where}.{key}"),
        currency=_str(raw, "currency", f"{where}.{key}"),
    )


# ── Deals ────────────────────────────────────────────────


def parse_deal_info(
    game: Game,
    info: Any,
    history_low: float | None = None,
) -> Deal:
    """Build a :class:`Deal` from an upstream ``deal`` object."""
    where = f"deal[{game.id}]"
    data = _obj(info, where)
    shop = _obj(_field(data, "shop", where), f"{where}.shop")

    expiry_raw = data.get("expiry")
    expiry = (
        _timestamp(expiry_raw, f"{where}.expiry")
        if expiry_raw is not None
        else None
    )
    if history_low is None and data.get("historyLow") is not None:
        history_low = _price(data, "historyLow", where).amount

    return Deal(
        game=game,
        store=resolve_store(
            _int(shop, "id", f"{where}.shop"),
            _str(shop, "name", f"{where}.shop"),
        ),
        price=_price(data, "price", where),
        regular_price=_price(data, "regular", where),
        discount=_int(data, "cut", where),
        url=_str(data, "url", where),
        expiry=expiry,
        history_low=history_low,
    )


def _game(data: dict[str, Any], where: str) -> Game:
    return Game(id=_str(data, "id", where), title=_str(data, "title", where))


def sort_deals(
    deals: list[Deal], order: SortOrder, search_mode: bool,
) -> list[Deal]:
    """Apply the orders the upstream does not handle for us.

    Browse listings arrive pre-sorted except for ``TITLE``.  Search
    results arrive in relevance order and are sorted locally when the
    order is price-, discount- or title-based.
    """
    if order is SortOrder.TITLE:
        return sorted(deals, key=lambda d: d.game.title.casefold())
    if not search_mode:
        return deals
    if order is SortOrder.PRICE_ASC:
        return sorted(deals, key=lambda d: d.price.amount)
    if order is SortOrder.PRICE_DESC:
        return sorted(deals, key=lambda d: d.price.amount, reverse=True)
    if order is SortOrder.DISCOUNT_DESC:
        return sorted(deals, key=lambda d: d.discount, reverse=True)
    return deals


def parse_deals_page(
    payload: Any,
    offset: int,
    limit: int,
    flt: Filter,
) -> Page:
    """Parse a ``/deals/v2`` response into a :class:`Page`."""
    data = _obj(payload, "deals")
    items = _list(_field(data, "list", "deals"), "deals.list")

    deals: list[Deal] = []
    for idx, raw in enumerate(items):
        item = _obj(raw, f"deals.list[{idx}]")
        game = _game(item, f"deals.list[{idx}]")
        deals.append(
            parse_deal_info(game, _field(item, "deal", f"deals.list[{idx}]"))
        )

    has_more_raw = data.get("hasMore")
    if has_more_raw is None:
        has_more = len(items) >= limit
    elif isinstance(has_more_raw, bool):
        has_more = has_more_raw
    else:
        raise MalformedResponse("deals.hasMore: expected a boolean")

    next_offset = (
        _int(data, "nextOffset", "deals")
        if data.get("nextOffset") is not None
        else offset + len(items)
    )
    if next_offset < offset:
        raise MalformedResponse(
            f"deals.nextOffset {next_offset} precedes offset {offset}"
        )

    accepted = [d for d in deals if flt.accepts(d)]
    if len(accepted) != len(deals):
        logger.debug(
            "Local filter kept %d of %d deals at offset %d",
            len(accepted),
            len(deals),
            offset,
        )

    return Page(
        deals=tuple(sort_deals(accepted, flt.sort, search_mode=False)),
        offset=offset,
        next_offset=next_offset,
        has_more=has_more and bool(items),
    )


# ── Search (two-step) ────────────────────────────────────


def parse_search_results(payload: Any) -> list[Game]:
    """Parse ``/games/search/v1``, keeping the first hit per game ID."""
    items = _list(payload, "search")
    games: list[Game] = []
    seen: set[str] = set()
    for idx, raw in enumerate(items):
        game = _game(_obj(raw, f"search[{idx}]"), f"search[{idx}]")
        if game.id in seen:
            continue
        seen.add(game.id)
        games.append(game)
    return games


def _best_deal(deals: list[Deal]) -> Deal | None:
    """Lowest price wins; on equal price the deeper cut wins."""
    if not deals:
        return None
    return min(deals, key=lambda d: (d.price.amount, -d.discount))


def parse_game_prices(
    payload: Any, games: list[Game],
) -> dict[str, Deal]:
    """Parse ``/games/prices/v3`` into the best deal per game ID."""
    items = _list(payload, "prices")
    by_id = {g.id: g for g in games}
    best: dict[str, Deal] = {}

    for idx, raw in enumerate(items):
        where = f"prices[{idx}]"
        item = _obj(raw, where)
        game_id = _str(item, "id", where)
        game = by_id.get(game_id)
        if game is None:
            logger.debug("Ignoring prices for unrequested game %s", game_id)
            continue

        history_low: float | None = None
        low_raw = item.get("historyLow")
        if low_raw is not None:
            low = _obj(low_raw, f"{where}.historyLow")
            if low.get("all") is not None:
                history_low = _price(low, "all", f"{where}.historyLow").amount

        offers = [
            parse_deal_info(game, d, history_low)
            for d in _list(_field(item, "deals", where), f"{where}.deals")
        ]
        chosen = _best_deal(offers)
        if chosen is not None:
            best[game_id] = chosen

    return best


def build_search_page(
    games: list[Game], best: dict[str, Deal], flt: Filter,
) -> Page:
    """Assemble search hits into a single, final page."""
    deals = [
        best[g.id] for g in games if g.id in best and flt.accepts(best[g.id])
    ]
    return Page(
        deals=tuple(sort_deals(deals, flt.sort, search_mode=True)),
        offset=0,
        next_offset=0,
        has_more=False,
    )


# ── Price history ────────────────────────────────────────


def parse_price_history(payload: Any) -> list[PriceHistoryPoint]:
    """Parse ``/games/history/v2``; entries without a deal are skipped."""
    items = _list(payload, "history")
    points: list[PriceHistoryPoint] = []
    for idx, raw in enumerate(items):
        where = f"history[{idx}]"
        item = _obj(raw, where)
        if item.get("deal") is None:
            continue
        deal = _obj(item["deal"], f"{where}.deal")
        shop = _obj(_field(item, "shop", where), f"{where}.shop")
        price = _price(deal, "price", f"{where}.deal")
        points.append(
            PriceHistoryPoint(
                timestamp=_timestamp(
                    _field(item, "timestamp", where), f"{where}.timestamp"
                ),
                price=price.amount,
                store_name=_str(shop, "name", f"{where}.shop"),
            )
        )
    points.sort(key=lambda p: p.timestamp)
    return points
