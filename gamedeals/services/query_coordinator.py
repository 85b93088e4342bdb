# gamedeals/services/query_coordinator.py

"""Couples user intents to cached, rate-limited, cancellable fetches."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from gamedeals.config.settings import Settings
from gamedeals.models.deal import Deal
from gamedeals.models.errors import DealsError, Unreachable
from gamedeals.models.filter import Filter, QueryFingerprint, SortOrder
from gamedeals.models.page import Page
from gamedeals.services.browse_state import (
    BrowseStateMachine,
    LoadFailed,
    LoadStarted,
    PageLoaded,
)
from gamedeals.services.intents import (
    ClearFilters,
    Intent,
    NextPage,
    Refresh,
    SetMinDiscount,
    SetPriceRange,
    SetSearchText,
    SetSort,
    ToggleStore,
)
from gamedeals.storage.result_cache import ResultCache

logger = logging.getLogger("gamedeals.coordinator")


class DealsSource(Protocol):
    """Anything able to fetch one page of deals (``ItadClient`` in prod)."""

    async def fetch(
        self, flt: Filter, offset: int = 0, *, allow_wait: bool = True,
    ) -> Page: ...


@dataclass(frozen=True)
class FetchOutcome:
    """Completion message a fetch task posts back to the coordinator."""

    generation: int
    fingerprint: QueryFingerprint
    filter: Filter
    append: bool
    page: Page | None = None
    error: DealsError | None = None


@dataclass
class _InFlight:
    generation: int
    fingerprint: QueryFingerprint
    append: bool
    task: "asyncio.Task[None]"


def default_filter() -> Filter:
    return Filter(
        sort=SortOrder.parse(Settings.DEFAULT_SORT),
        country=Settings.COUNTRY,
    )


class QueryCoordinator:
    """Owns the active filter and decides which results reach the screen.

    Every user intent bumps a generation counter.  Fetches run as
    background tasks tagged with the generation that issued them and
    report back through a completion queue; a completion whose
    generation is no longer current is dropped, whatever order the
    responses arrive in.  Free-text changes are debounced, discrete
    toggles and pagination act immediately, and pages served from the
    result cache never touch the network.
    """

    def __init__(
        self,
        client: DealsSource,
        cache: ResultCache | None = None,
        machine: BrowseStateMachine | None = None,
        *,
        initial_filter: Filter | None = None,
        debounce_seconds: float | None = None,
        allow_wait: bool | None = None,
        abort_superseded: bool = True,
    ) -> None:
        self._client = client
        self.cache = cache or ResultCache()
        self.machine = machine or BrowseStateMachine()
        self.debounce_seconds = (
            debounce_seconds
            if debounce_seconds is not None
            else Settings.DEBOUNCE_SECONDS
        )
        self.allow_wait = (
            allow_wait
            if allow_wait is not None
            else Settings.RATE_LIMIT_POLICY == "wait"
        )
        self.abort_superseded = abort_superseded

        self._filter = initial_filter or default_filter()
        self._default_sort = self._filter.sort
        self._generation = 0

        self._debounce_task: asyncio.Task[None] | None = None
        self._inflight: _InFlight | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._completions: asyncio.Queue[FetchOutcome] = asyncio.Queue()
        self._runner: asyncio.Task[None] | None = None

        # What is currently on screen
        self._displayed: tuple[Deal, ...] = ()
        self._displayed_key: tuple[Any, ...] | None = None
        self._next_offset = 0
        self._has_more = False

    # ── Read-only views ──────────────────────────────────

    @property
    def filter(self) -> Filter:
        return self._filter

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def displayed(self) -> tuple[Deal, ...]:
        return self._displayed

    # ── Lifecycle ────────────────────────────────────────

    def start(self) -> None:
        """Start consuming fetch completions on the running loop."""
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self.run())

    async def run(self) -> None:
        """Process completion messages in arrival order, forever."""
        while True:
            outcome = await self._completions.get()
            try:
                self._on_completed(outcome)
            except Exception:
                logger.error(
                    "Failed to apply completion for %s",
                    outcome.fingerprint,
                    exc_info=True,
                )
            finally:
                self._completions.task_done()

    async def settle(self) -> None:
        """Wait until no timer, fetch or completion is outstanding."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._runner is None:
            while not self._completions.empty():
                self._on_completed(self._completions.get_nowait())
                self._completions.task_done()
        else:
            await self._completions.join()

    async def aclose(self) -> None:
        """Cancel timers, fetches and the completion consumer."""
        tasks = list(self._pending)
        if self._runner is not None:
            tasks.append(self._runner)
            self._runner = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight = None
        self._debounce_task = None

    # ── Intents ──────────────────────────────────────────

    def handle(self, intent: Intent) -> None:
        """Apply one user intent.  Must be called from the event loop."""
        if isinstance(intent, NextPage):
            self._next_page()
            return

        if isinstance(intent, SetSearchText):
            self._filter = self._filter.with_query(intent.text)
            generation = self._bump(intent)
            self._schedule_debounce(generation)
            return

        use_cache = True
        if isinstance(intent, ToggleStore):
            self._filter = self._filter.toggle_store(intent.store_id)
        elif isinstance(intent, SetMinDiscount):
            self._filter = self._filter.with_min_discount(intent.pct)
        elif isinstance(intent, SetPriceRange):
            self._filter = self._filter.with_price_range(
                intent.min_price, intent.max_price
            )
        elif isinstance(intent, SetSort):
            self._filter = self._filter.with_sort(intent.order)
        elif isinstance(intent, ClearFilters):
            self._filter = self._filter.cleared(self._default_sort)
        elif isinstance(intent, Refresh):
            use_cache = False
            self._forget_displayed()
        else:
            raise TypeError(f"Unsupported intent: {intent!r}")

        generation = self._bump(intent)
        self._cancel_debounce()
        self._dispatch(generation, offset=0, append=False, use_cache=use_cache)

    def _next_page(self) -> None:
        active_key = self._filter.fingerprint().filter_key
        if self._displayed_key != active_key:
            # Nothing of the active filter on screen: start of list
            generation = self._bump(NextPage())
            self._cancel_debounce()
            self._dispatch(generation, offset=0, append=False)
            return

        if not self._has_more:
            logger.debug("Next page ignored: listing is complete")
            return

        target = self._filter.fingerprint(self._next_offset)
        inflight = self._inflight
        if (
            inflight is not None
            and inflight.append
            and inflight.fingerprint == target
            and not inflight.task.done()
        ):
            logger.debug("Next page ignored: %s already in flight", target)
            return

        generation = self._bump(NextPage())
        self._cancel_debounce()
        self._dispatch(generation, offset=self._next_offset, append=True)

    # ── Internals ────────────────────────────────────────

    def _bump(self, intent: Intent) -> int:
        self._generation += 1
        logger.debug("Generation %d: %s", self._generation, intent)
        return self._generation

    def _track(self, task: "asyncio.Task[Any]") -> None:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _forget_displayed(self) -> None:
        self._displayed = ()
        self._displayed_key = None
        self._next_offset = 0
        self._has_more = False

    def _schedule_debounce(self, generation: int) -> None:
        self._cancel_debounce()
        task = asyncio.create_task(self._debounced(generation))
        self._debounce_task = task
        self._track(task)

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    async def _debounced(self, generation: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if generation != self._generation:
            return
        self._debounce_task = None
        self._dispatch(generation, offset=0, append=False)

    def _cancel_inflight(self) -> None:
        inflight = self._inflight
        self._inflight = None
        if inflight is None or inflight.task.done():
            return
        if self.abort_superseded:
            logger.debug(
                "Aborting superseded fetch %s (generation %d)",
                inflight.fingerprint,
                inflight.generation,
            )
            inflight.task.cancel()

    def _dispatch(
        self,
        generation: int,
        offset: int,
        append: bool,
        use_cache: bool = True,
    ) -> None:
        """Serve (filter, offset) from the cache or start a live fetch."""
        flt = self._filter
        fingerprint = flt.fingerprint(offset)
        self._cancel_inflight()

        if use_cache:
            cached = self.cache.lookup(fingerprint)
            if cached is not None:
                self._show(flt, fingerprint, cached, append)
                return

        self.machine.apply(
            LoadStarted(flt, self._displayed if append else (), append)
        )
        task = asyncio.create_task(
            self._fetch(generation, flt, fingerprint, append)
        )
        self._inflight = _InFlight(generation, fingerprint, append, task)
        self._track(task)

    async def _fetch(
        self,
        generation: int,
        flt: Filter,
        fingerprint: QueryFingerprint,
        append: bool,
    ) -> None:
        """Background unit of work: one fetch, one completion message."""
        try:
            page = await self._client.fetch(
                flt, fingerprint.offset, allow_wait=self.allow_wait
            )
            outcome = FetchOutcome(generation, fingerprint, flt, append, page=page)
        except DealsError as exc:
            outcome = FetchOutcome(generation, fingerprint, flt, append, error=exc)
        except Exception as exc:
            logger.error("Unexpected failure fetching %s", fingerprint, exc_info=True)
            outcome = FetchOutcome(
                generation, fingerprint, flt, append, error=Unreachable(str(exc))
            )
        self._completions.put_nowait(outcome)

    def _on_completed(self, outcome: FetchOutcome) -> None:
        inflight = self._inflight
        if inflight is not None and inflight.generation == outcome.generation:
            self._inflight = None

        if outcome.generation != self._generation:
            logger.debug(
                "Discarding stale result for %s (generation %d, current %d)",
                outcome.fingerprint,
                outcome.generation,
                self._generation,
            )
            return

        if outcome.error is not None:
            logger.warning(
                "Fetch for %s failed: %s", outcome.fingerprint, outcome.error
            )
            self.machine.apply(
                LoadFailed(outcome.filter, outcome.error.kind, str(outcome.error))
            )
            return

        page = outcome.page
        if page is None:
            return
        self.cache.store(outcome.fingerprint, page)
        self._show(outcome.filter, outcome.fingerprint, page, outcome.append)

    def _show(
        self,
        flt: Filter,
        fingerprint: QueryFingerprint,
        page: Page,
        append: bool,
    ) -> None:
        """Merge *page* into the displayed listing and emit ``Loaded``."""
        if (
            append
            and self._displayed_key == fingerprint.filter_key
            and fingerprint.offset == self._next_offset
        ):
            seen = {d.key for d in self._displayed}
            deals = self._displayed + tuple(
                d for d in page.deals if d.key not in seen
            )
        else:
            deals = page.deals

        self._displayed = deals
        self._displayed_key = fingerprint.filter_key
        self._next_offset = page.next_offset
        self._has_more = page.has_more
        self.machine.apply(PageLoaded(flt, deals, page.has_more))
