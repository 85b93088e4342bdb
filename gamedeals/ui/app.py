# gamedeals/ui/app.py

"""Terminal UI for browsing game deals."""

import asyncio
import logging
import webbrowser
from typing import Protocol, cast

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import (
    Checkbox,
    DataTable,
    Footer,
    Header,
    Input,
    Select,
    Static,
)

from gamedeals.api.itad_client import ItadClient
from gamedeals.config.settings import Settings
from gamedeals.models.deal import Deal
from gamedeals.models.errors import DealsError
from gamedeals.models.filter import SortOrder
from gamedeals.models.price_history import PriceHistoryPoint
from gamedeals.models.store import FEATURED_STORE_IDS, store_by_id
from gamedeals.services.browse_state import (
    BrowseState,
    Error,
    Idle,
    Loaded,
    Loading,
)
from gamedeals.services.intents import (
    ClearFilters,
    NextPage,
    Refresh,
    SetMinDiscount,
    SetPriceRange,
    SetSearchText,
    SetSort,
    ToggleStore,
)
from gamedeals.services.query_coordinator import DealsSource, QueryCoordinator

logger = logging.getLogger("gamedeals.ui")

DISCOUNT_CHOICES: tuple[int, ...] = (0, 25, 50, 75, 90)


def _format_price(amount: float, currency: str) -> str:
    return f"{amount:,.2f} {currency}"


def _parse_price(text: str) -> float | None:
    """Read a price bound from an input box; blank means unbounded."""
    text = text.strip()
    if not text:
        return None
    return float(text)


class HistorySource(DealsSource, Protocol):
    """A deals source that can also look up a game's price history."""

    async def fetch_price_history(
        self, game_id: str, country: str | None = None, *, allow_wait: bool = True,
    ) -> list[PriceHistoryPoint]: ...


class DealsBrowserApp(App[object]):
    """Terminal UI for browsing and filtering game deals."""

    CSS_PATH = "styles.css"
    TITLE = "gamedeals"

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+n", "next_page", "More"),
        Binding("ctrl+r", "refresh", "Refresh"),
        Binding("ctrl+o", "open_url", "Open"),
        Binding("ctrl+y", "copy_url", "Copy URL"),
        Binding("ctrl+x", "clear_filters", "Clear filters"),
    ]

    def __init__(self, client: HistorySource | None = None) -> None:
        super().__init__()
        self.deals: list[Deal] = []
        self.history_task: asyncio.Task[None] | None = None
        self._history: dict[str, list[PriceHistoryPoint]] = {}
        self.settings = Settings()
        self.coordinator: QueryCoordinator | None = None
        self._client = client
        self._owns_client = client is None
        self._unsubscribe = None

    def compose(self) -> ComposeResult:
        """Build the widget tree for the TUI."""
        store_checkboxes = []
        for store_id in FEATURED_STORE_IDS:
            store = store_by_id(store_id)
            label = store.name if store else str(store_id)
            store_checkboxes.append(
                Checkbox(label, value=False, id=f"store_{store_id}")
            )

        yield Header()
        yield Container(
            Horizontal(
                Input(placeholder="Search games...", id="search_input"),
                Select(
                    [(f"≥ {pct}% off", pct) for pct in DISCOUNT_CHOICES],
                    value=0,
                    allow_blank=False,
                    id="discount_select",
                ),
                Input(placeholder="Min price", type="number", id="min_price_input"),
                Input(placeholder="Max price", type="number", id="max_price_input"),
                Select(
                    [(order.label, order.value) for order in SortOrder],
                    value=SortOrder.parse(self.settings.DEFAULT_SORT).value,
                    allow_blank=False,
                    id="sort_select",
                ),
                id="search_bar",
            ),
            Horizontal(*store_checkboxes, id="store_toggles"),
            Static("Ready", id="status"),
            Horizontal(
                cast(
                    DataTable[str | Text],
                    DataTable(
                        id="results_table",
                        zebra_stripes=True,
                        cursor_type="row",
                    ),
                ),
                Vertical(
                    Static("Highlight a deal to see its price history", id="details_title"),
                    DataTable(id="history_table", cursor_type="none"),
                    id="details_panel",
                ),
                id="results_area",
            ),
            id="main_container",
        )
        yield Footer()

    def on_mount(self) -> None:
        """Configure the table and start the query pipeline."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#results_table", DataTable),
        )
        table.add_columns("Title", "Price", "Regular", "Cut", "Store", "Low")
        self.query_one("#history_table", DataTable).add_columns(
            "Date", "Price", "Store"
        )

        if self._client is None:
            if not self.settings.API_KEY:
                logger.error("No API key configured")
                self.query_one("#status", Static).update(
                    "❌ No API key: set ITAD_API_KEY in your environment or .env"
                )
                self.notify("ITAD_API_KEY is not set", severity="error")
                return
            self._client = ItadClient(self.settings.API_KEY)

        self.coordinator = QueryCoordinator(self._client)
        self._unsubscribe = self.coordinator.machine.subscribe(self.render_state)
        self.coordinator.start()
        self.coordinator.handle(Refresh())

    async def on_unmount(self) -> None:
        """Stop background work and release the HTTP session."""
        if self._unsubscribe is not None:
            self._unsubscribe()
        if self.history_task is not None:
            self.history_task.cancel()
        if self.coordinator is not None:
            await self.coordinator.aclose()
        if self._owns_client and isinstance(self._client, ItadClient):
            await self._client.close()
        logger.info("gamedeals TUI shutting down")

    # ── Input → intents ──────────────────────────────────

    def on_input_changed(self, event: Input.Changed) -> None:
        """Forward every edit of the search box (debounced downstream)."""
        if self.coordinator is None or event.input.id != "search_input":
            return
        if event.value != self.coordinator.filter.query:
            self.coordinator.handle(SetSearchText(event.value))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Enter in either price box applies the range."""
        if event.input.id in ("min_price_input", "max_price_input"):
            self.apply_price_range()

    def apply_price_range(self) -> None:
        """Validate both price boxes and forward the range if it changed."""
        if self.coordinator is None:
            return
        try:
            low = _parse_price(self.query_one("#min_price_input", Input).value)
            high = _parse_price(self.query_one("#max_price_input", Input).value)
            flt = self.coordinator.filter.with_price_range(low, high)
        except ValueError as e:
            logger.warning("Rejected price range: %s", e)
            self.notify(f"Invalid price range: {e}", severity="warning")
            return
        current = self.coordinator.filter
        if (flt.min_price, flt.max_price) != (current.min_price, current.max_price):
            self.coordinator.handle(SetPriceRange(low, high))

    def on_checkbox_changed(self, event: Checkbox.Changed) -> None:
        """Toggle a storefront when its checkbox flips."""
        checkbox_id = event.checkbox.id or ""
        if self.coordinator is None or not checkbox_id.startswith("store_"):
            return
        store_id = int(checkbox_id.removeprefix("store_"))
        selected = store_id in self.coordinator.filter.store_ids
        if event.value != selected:
            self.coordinator.handle(ToggleStore(store_id))

    def on_select_changed(self, event: Select.Changed) -> None:
        """Apply discount threshold and sort order changes."""
        if self.coordinator is None or event.value is Select.BLANK:
            return
        flt = self.coordinator.filter
        if event.select.id == "discount_select":
            pct = int(cast(int, event.value))
            if pct != flt.min_discount:
                self.coordinator.handle(SetMinDiscount(pct))
        elif event.select.id == "sort_select":
            order = SortOrder(event.value)
            if order is not flt.sort:
                self.coordinator.handle(SetSort(order))

    # ── State → widgets ──────────────────────────────────

    def render_state(self, state: BrowseState) -> None:
        """Re-render status line and table for a browse state."""
        status = self.query_one("#status", Static)

        if isinstance(state, Idle):
            self.deals = []
            status.update("Ready")
        elif isinstance(state, Loading):
            self.deals = list(state.deals)
            label = "more deals" if state.appending else "deals"
            status.update(f"⏳ Loading {label}...")
        elif isinstance(state, Loaded):
            self.deals = list(state.deals)
            if not self.deals:
                status.update("❌ No deals found")
            else:
                more = "  (Ctrl+N for more)" if state.has_more else ""
                status.update(f"✅ {len(self.deals)} deals{more}")
        elif isinstance(state, Error):
            self.deals = []
            hint = "  (Ctrl+R to retry)" if state.kind.retriable else ""
            status.update(f"❌ {state.kind.label}{hint}")
            self.notify(state.message or state.kind.label, severity="error")

        self.populate_table()

    def populate_table(self) -> None:
        """Fill the DataTable with the current deals."""
        table = cast(
            DataTable[str | Text],
            self.query_one("#results_table", DataTable),
        )
        table.clear()
        if not self.deals:
            return

        min_price = min(d.price.amount for d in self.deals)

        for d in self.deals:
            is_cheapest = d.price.amount == min_price
            price_style = "bold green" if is_cheapest else ""
            regular = (
                _format_price(d.regular_price.amount, d.regular_price.currency)
                if d.regular_price
                else ""
            )
            low = (
                _format_price(d.history_low, d.currency)
                if d.history_low is not None
                else ""
            )
            table.add_row(
                d.game.title[:60],
                Text(_format_price(d.price.amount, d.currency), style=price_style),
                regular,
                f"-{d.discount}%",
                d.store.name,
                low,
            )

    def _selected_deal(self) -> Deal | None:
        table = cast(
            DataTable[str | Text],
            self.query_one("#results_table", DataTable),
        )
        row = table.cursor_row
        if 0 <= row < len(self.deals):
            return self.deals[row]
        return None

    # ── Actions ──────────────────────────────────────────

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Open the selected deal's store page in the default browser."""
        if 0 <= event.cursor_row < len(self.deals):
            webbrowser.open(self.deals[event.cursor_row].url)

    # ── Details panel ────────────────────────────────────

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        """Load price history for the deal under the cursor."""
        if event.data_table.id != "results_table":
            return
        if 0 <= event.cursor_row < len(self.deals):
            self.show_history(self.deals[event.cursor_row])

    def show_history(self, deal: Deal) -> None:
        """Show *deal*'s history, fetching it after a short pause if unknown.

        Only the most recent highlight is fetched; moving the cursor
        again cancels a pending lookup before it spends a request.
        """
        if self.history_task is not None:
            self.history_task.cancel()
            self.history_task = None

        title = self.query_one("#details_title", Static)
        cached = self._history.get(deal.game.id)
        if cached is not None:
            self._render_history(deal, cached)
            return
        if self._client is None:
            return

        title.update(f"⏳ {deal.game.title}: loading price history...")
        self._history_table().clear()
        self.history_task = asyncio.create_task(
            self._load_history(self._client, deal)
        )

    async def _load_history(self, client: HistorySource, deal: Deal) -> None:
        await asyncio.sleep(self.settings.DEBOUNCE_SECONDS)
        allow_wait = self.coordinator.allow_wait if self.coordinator else True
        try:
            points = await client.fetch_price_history(
                deal.game.id, allow_wait=allow_wait
            )
        except DealsError as e:
            logger.warning("Price history for %s failed: %s", deal.game.id, e)
            self.query_one("#details_title", Static).update(
                f"❌ {deal.game.title}: {e.kind.label}"
            )
            return
        self._history[deal.game.id] = points
        self._render_history(deal, points)

    def _history_table(self) -> DataTable[str | Text]:
        return cast(
            DataTable[str | Text],
            self.query_one("#history_table", DataTable),
        )

    def _render_history(self, deal: Deal, points: list[PriceHistoryPoint]) -> None:
        title = self.query_one("#details_title", Static)
        table = self._history_table()
        table.clear()
        if not points:
            title.update(f"{deal.game.title}: no recorded deals")
            return

        lowest = min(p.price for p in points)
        title.update(
            f"{deal.game.title}: {len(points)} recorded prices, "
            f"low {_format_price(lowest, deal.currency)}"
        )
        # Newest first
        for point in reversed(points):
            style = "bold green" if point.price == lowest else ""
            table.add_row(
                point.timestamp.strftime("%Y-%m-%d"),
                Text(_format_price(point.price, deal.currency), style=style),
                point.store_name,
            )

    def action_next_page(self) -> None:
        if self.coordinator is not None:
            self.coordinator.handle(NextPage())

    def action_refresh(self) -> None:
        if self.coordinator is not None:
            self.coordinator.handle(Refresh())

    def action_open_url(self) -> None:
        deal = self._selected_deal()
        if deal is not None:
            webbrowser.open(deal.url)

    def action_clear_filters(self) -> None:
        """Reset every filter widget and re-query."""
        if self.coordinator is None:
            return
        self.coordinator.handle(ClearFilters())
        self.query_one("#search_input", Input).value = ""
        for store_id in FEATURED_STORE_IDS:
            self.query_one(f"#store_{store_id}", Checkbox).value = False
        self.query_one("#discount_select", Select).value = 0
        self.query_one("#min_price_input", Input).value = ""
        self.query_one("#max_price_input", Input).value = ""
        self.query_one("#sort_select", Select).value = (
            self.coordinator.filter.sort.value
        )

    def action_copy_url(self) -> None:
        """Copy the selected deal's URL to the clipboard."""
        deal = self._selected_deal()
        if deal is None:
            self.notify("No deal selected", severity="warning")
            return
        try:
            import pyperclip  # type: ignore[import-untyped]

            pyperclip.copy(deal.url)
            self.notify("URL Copied")
        except Exception:
            logger.error("Failed to copy URL to clipboard", exc_info=True)
            self.notify("Clipboard unavailable", severity="warning")
