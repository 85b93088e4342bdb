# gamedeals/api/itad_client.py

"""Rate-limited client for the IsThereAnyDeal deals API."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from curl_cffi import CurlError
from curl_cffi import requests as curl_requests

from gamedeals.api.parsers import (
    build_search_page,
    decode_json,
    parse_deals_page,
    parse_game_prices,
    parse_price_history,
    parse_search_results,
)
from gamedeals.api.rate_limiter import SlidingWindowRateLimiter
from gamedeals.config.settings import Settings
from gamedeals.models.errors import (
    ApiError,
    MalformedResponse,
    RateLimited,
    Unreachable,
)
from gamedeals.models.filter import Filter
from gamedeals.models.page import Page
from gamedeals.models.price_history import PriceHistoryPoint

logger = logging.getLogger("gamedeals.client")

_DEALS_PATH = "/deals/v2"
_SEARCH_PATH = "/games/search/v1"
_PRICES_PATH = "/games/prices/v3"
_HISTORY_PATH = "/games/history/v2"

_DEFAULT_RETRY_AFTER = 5.0  # seconds, when a 429 carries no Retry-After


def _server_message(text: str) -> str:
    """Best-effort extraction of an error message from a response body."""
    try:
        body = decode_json(text)
    except MalformedResponse:
        return text.strip()[:200]
    if isinstance(body, dict):
        for key in ("error", "message", "detail", "reason_phrase"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return text.strip()[:200]


def _retry_after(headers: Any) -> float:
    """Parse a numeric ``Retry-After`` header, if present."""
    raw = headers.get("Retry-After") if headers is not None else None
    try:
        return max(0.0, float(raw)) if raw is not None else _DEFAULT_RETRY_AFTER
    except (TypeError, ValueError):
        return _DEFAULT_RETRY_AFTER


def _shops_param(store_ids: frozenset[int]) -> str:
    return ",".join(str(s) for s in sorted(store_ids))


class ItadClient:
    """Issues deals queries and translates every outcome into domain terms.

    ``fetch`` either returns a :class:`Page` or raises one of the
    :class:`~gamedeals.models.errors.DealsError` subclasses.  The client
    never retries on its own; every HTTP attempt, successful or not,
    consumes one unit of the shared rate budget.
    """

    def __init__(
        self,
        api_key: str,
        *,
        session: Any = None,
        limiter: SlidingWindowRateLimiter | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
    ) -> None:
        if not api_key:
            msg = "An IsThereAnyDeal API key is required (set ITAD_API_KEY)"
            raise ValueError(msg)
        self._api_key = api_key
        self._session = session
        self._owns_session = session is None
        self.limiter = limiter or SlidingWindowRateLimiter()
        self.base_url = (base_url or Settings.API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else Settings.REQUEST_TIMEOUT
        self.page_size = page_size or Settings.PAGE_SIZE

    async def __aenter__(self) -> "ItadClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> Any:
        if self._session is None:
            self._session = curl_requests.AsyncSession(
                headers=Settings.DEFAULT_HEADERS
            )
        return self._session

    # ── Transport ────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str],
        *,
        allow_wait: bool,
        json_body: Any = None,
    ) -> Any:
        """Perform one HTTP attempt and return the decoded JSON body."""
        await self.limiter.acquire(allow_wait=allow_wait)

        url = f"{self.base_url}{path}"
        logger.debug("%s %s %s", method, path, params)
        try:
            resp = await asyncio.wait_for(
                self._get_session().request(
                    method,
                    url,
                    params={"key": self._api_key, **params},
                    json=json_body,
                    headers=Settings.DEFAULT_HEADERS,
                    timeout=self.timeout,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.warning("%s %s timed out after %.1fs", method, path, self.timeout)
            raise Unreachable(
                f"Request timed out after {self.timeout:.0f}s"
            ) from exc
        except CurlError as exc:
            logger.warning("%s %s transport error: %s", method, path, exc)
            raise Unreachable(str(exc) or "Connection failed") from exc

        status: int = resp.status_code
        if status == 429:
            wait = _retry_after(resp.headers)
            self.limiter.penalize(wait)
            raise RateLimited(
                f"Upstream rate limit, retry in {wait:.0f}s",
                retry_after=wait,
                upstream=True,
            )
        if not 200 <= status < 300:
            message = _server_message(resp.text)
            logger.warning("%s %s returned HTTP %d: %s", method, path, status, message)
            raise ApiError(status, message)

        return decode_json(resp.text)

    # ── Deals ────────────────────────────────────────────

    async def fetch(
        self,
        flt: Filter,
        offset: int = 0,
        *,
        allow_wait: bool = True,
    ) -> Page:
        """Fetch one page of deals matching *flt*, starting at *offset*.

        An empty query pages through ``/deals/v2``; any other query runs
        the two-step title search, which yields a single final page.
        """
        if flt.is_search:
            if offset > 0:
                return Page(deals=(), offset=offset, next_offset=offset, has_more=False)
            return await self._search(flt, allow_wait=allow_wait)

        params: dict[str, str] = {
            "country": flt.country,
            "limit": str(self.page_size),
            "offset": str(offset),
        }
        if flt.store_ids:
            params["shops"] = _shops_param(flt.store_ids)
        if flt.sort.upstream is not None:
            params["sort"] = flt.sort.upstream

        payload = await self._request(
            "GET", _DEALS_PATH, params, allow_wait=allow_wait
        )
        page = parse_deals_page(payload, offset, self.page_size, flt)
        logger.info(
            "Fetched %d deals at offset %d (has_more=%s)",
            len(page),
            offset,
            page.has_more,
        )
        return page

    async def _search(self, flt: Filter, *, allow_wait: bool) -> Page:
        """Title search followed by a price lookup for the hits."""
        results = min(self.page_size, Settings.MAX_SEARCH_RESULTS)
        payload = await self._request(
            "GET",
            _SEARCH_PATH,
            {"title": flt.query.strip(), "results": str(results)},
            allow_wait=allow_wait,
        )
        games = parse_search_results(payload)
        if not games:
            logger.info("Search '%s' matched no games", flt.normalized_query)
            return build_search_page([], {}, flt)

        params: dict[str, str] = {"country": flt.country, "deals": "true"}
        if flt.store_ids:
            params["shops"] = _shops_param(flt.store_ids)
            if len(flt.store_ids) == 1:
                params["capacity"] = "1"

        prices = await self._request(
            "POST",
            _PRICES_PATH,
            params,
            allow_wait=allow_wait,
            json_body=[g.id for g in games],
        )
        page = build_search_page(games, parse_game_prices(prices, games), flt)
        logger.info(
            "Search '%s' matched %d games, %d with deals",
            flt.normalized_query,
            len(games),
            len(page),
        )
        return page

    # ── Extras ───────────────────────────────────────────

    async def fetch_price_history(
        self,
        game_id: str,
        country: str | None = None,
        *,
        allow_wait: bool = True,
    ) -> list[PriceHistoryPoint]:
        """Return up to one year of recorded deal prices, oldest first."""
        since = datetime.now(timezone.utc) - timedelta(days=365)
        payload = await self._request(
            "GET",
            _HISTORY_PATH,
            {
                "id": game_id,
                "country": country or Settings.COUNTRY,
                "since": since.strftime("%Y-%m-%dT%H:%M:%SZ"),
            },
            allow_wait=allow_wait,
        )
        return parse_price_history(payload)

    async def validate_api_key(self) -> None:
        """Check the key against the deals endpoint with a one-item request.

        Raises :class:`ApiError` with "Invalid API key" on 401/403.
        """
        try:
            await self._request(
                "GET",
                _DEALS_PATH,
                {"country": Settings.COUNTRY, "limit": "1"},
                allow_wait=True,
            )
        except ApiError as exc:
            if exc.status in (401, 403):
                raise ApiError(exc.status, "Invalid API key") from exc
            raise
