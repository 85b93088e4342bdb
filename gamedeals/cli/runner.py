# gamedeals/cli/runner.py

"""Headless CLI runner: one query, printed as JSON or a table."""

import json
import logging
import sys

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from gamedeals.api.itad_client import ItadClient
from gamedeals.config.settings import Settings
from gamedeals.models.deal import Deal
from gamedeals.models.errors import DealsError
from gamedeals.models.filter import Filter, SortOrder
from gamedeals.models.store import STORES

logger = logging.getLogger("gamedeals.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


def resolve_stores(store_csv: str | None) -> frozenset[int]:
    """Map a comma-separated list of store IDs or names to store IDs.

    Returns an empty set (all stores) when *store_csv* is ``None``.
    Raises ``SystemExit`` on unknown entries.
    """
    if store_csv is None:
        return frozenset()

    by_name = {s.name.casefold(): s.id for s in STORES}
    known_ids = {s.id for s in STORES}
    resolved: set[int] = set()
    unknown: list[str] = []

    for raw in (part.strip() for part in store_csv.split(",")):
        if not raw:
            continue
        if raw.isdigit() and int(raw) in known_ids:
            resolved.add(int(raw))
        elif raw.casefold() in by_name:
            resolved.add(by_name[raw.casefold()])
        else:
            unknown.append(raw)

    if unknown:
        valid = ", ".join(f"{s.id}={s.name}" for s in STORES)
        _err.print(f"[red]Unknown store(s): {escape(', '.join(unknown))}[/red]")
        _err.print(f"[dim]Available: {valid}[/dim]")
        raise SystemExit(1)

    return frozenset(resolved)


def _deals_to_dicts(deals: tuple[Deal, ...]) -> list[dict[str, object]]:
    """Serialise deals to plain dicts for JSON output."""
    return [
        {
            "game_id": d.game.id,
            "title": d.game.title,
            "store": d.store.name,
            "store_id": d.store.id,
            "price": d.price.amount,
            "regular_price": (
                d.regular_price.amount if d.regular_price else None
            ),
            "currency": d.currency,
            "discount": d.discount,
            "history_low": d.history_low,
            "expiry": d.expiry.isoformat() if d.expiry else None,
            "url": d.url,
        }
        for d in deals
    ]


def _print_table(deals: tuple[Deal, ...]) -> None:
    """Render a Rich table of deals to stdout."""
    table = Table(
        title="Game Deals",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", max_width=50)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Cut", justify="right")
    table.add_column("Store", style="magenta")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, d in enumerate(deals, 1):
        table.add_row(
            str(idx),
            d.game.title[:50],
            f"{d.currency} {d.price.amount:,.2f}",
            f"-{d.discount}%",
            d.store.name,
            d.url,
        )

    Console().print(table)


def _make_client() -> ItadClient | None:
    if not Settings.API_KEY:
        _err.print(
            "[red]No API key: set ITAD_API_KEY in your environment or .env[/red]"
        )
        return None
    return ItadClient(Settings.API_KEY)


async def cli_fetch(
    query: str,
    store_csv: str | None,
    min_discount: int,
    sort: str,
    offset: int,
    output_format: str,
    *,
    min_price: float | None = None,
    max_price: float | None = None,
) -> int:
    """Run one deals query and return an exit code (0=ok, 1=fail)."""
    stores = resolve_stores(store_csv)
    try:
        flt = Filter(
            query=query,
            store_ids=stores,
            min_discount=min_discount,
            sort=SortOrder.parse(sort),
            country=Settings.COUNTRY,
            min_price=min_price,
            max_price=max_price,
        )
    except ValueError as exc:
        _err.print(f"[red]{escape(str(exc))}[/red]")
        return 1

    client = _make_client()
    if client is None:
        return 1

    mode = f"search '{escape(query)}'" if flt.is_search else "latest deals"
    _err.print(
        f"[bold]Fetching:[/bold] {mode}  "
        f"[dim]{escape(str(flt.fingerprint(offset)))}[/dim]"
    )

    try:
        async with client:
            page = await client.fetch(flt, offset)
    except DealsError as exc:
        logger.error("CLI fetch failed: %s", exc)
        _err.print(f"[red]{exc.kind.label}: {escape(str(exc))}[/red]")
        return 1

    if not page.deals:
        _err.print("[yellow]No deals found.[/yellow]")
        return 1

    more = f", next offset {page.next_offset}" if page.has_more else ""
    _err.print(f"[green]✓ {len(page)} deals{more}[/green]")

    if output_format == "table":
        _print_table(page.deals)
    else:
        json.dump(
            _deals_to_dicts(page.deals),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")

    return 0


async def run_price_history(game_id: str) -> int:
    """Print a year of recorded prices for one game."""
    client = _make_client()
    if client is None:
        return 1

    try:
        async with client:
            points = await client.fetch_price_history(game_id)
    except DealsError as exc:
        logger.error("Price history fetch failed: %s", exc)
        _err.print(f"[red]{exc.kind.label}: {escape(str(exc))}[/red]")
        return 1

    if not points:
        _err.print("[yellow]No price history recorded.[/yellow]")
        return 1

    table = Table(
        title=f"Price History ({game_id})",
        title_style="bold cyan",
    )
    table.add_column("Date", style="dim")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Store", style="magenta")
    lowest = min(p.price for p in points)
    for p in points:
        style = "bold green" if p.price == lowest else ""
        table.add_row(
            p.timestamp.strftime("%Y-%m-%d"),
            Text(f"{p.price:,.2f}", style=style),
            p.store_name,
        )
    Console().print(table)
    return 0


async def run_check_key() -> int:
    """Validate the configured API key against the live service."""
    client = _make_client()
    if client is None:
        return 1

    _err.print("[bold]Checking API key...[/bold]")
    try:
        async with client:
            await client.validate_api_key()
    except DealsError as exc:
        _err.print(f"[red]❌ {escape(str(exc))}[/red]")
        return 1

    _err.print("[green]✅ API key accepted[/green]")
    return 0
