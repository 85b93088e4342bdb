# main.py

"""Entry point for the gamedeals application (TUI or headless CLI)."""

import argparse
import asyncio
import logging
import sys

from gamedeals.config.logging_config import setup_logging
from gamedeals.config.settings import Settings
from gamedeals.models.filter import SortOrder

logger = logging.getLogger("gamedeals.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    sort_values = ", ".join(o.value for o in SortOrder)

    parser = argparse.ArgumentParser(
        prog="gamedeals",
        description="Browse video game deals from IsThereAnyDeal.",
        epilog=f"Sort orders: {sort_values}",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help='Search query ("" for the latest deals). Omit to launch the TUI.',
    )
    parser.add_argument(
        "-s",
        "--stores",
        default=None,
        help="Comma-separated store IDs or names (default: all).",
    )
    parser.add_argument(
        "-d",
        "--min-discount",
        type=int,
        default=0,
        dest="min_discount",
        help="Minimum discount percentage (0-100).",
    )
    parser.add_argument(
        "--min-price",
        type=float,
        default=None,
        dest="min_price",
        help="Only show deals priced at or above this amount.",
    )
    parser.add_argument(
        "--max-price",
        type=float,
        default=None,
        dest="max_price",
        help="Only show deals priced at or below this amount.",
    )
    parser.add_argument(
        "--sort",
        default=Settings.DEFAULT_SORT,
        help="Sort order (default: %(default)s).",
    )
    parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Listing offset for the latest deals.",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--history",
        default=None,
        metavar="GAME_ID",
        help="Print one year of price history for a game ID.",
    )
    parser.add_argument(
        "--check-key",
        action="store_true",
        default=False,
        dest="check_key",
        help="Validate the configured API key and exit.",
    )
    return parser


def _run_tui() -> None:
    """Launch the interactive Textual TUI."""
    from gamedeals.ui.app import DealsBrowserApp

    try:
        app = DealsBrowserApp()
        app.run()
    except Exception:
        logger.critical("Fatal error during TUI run", exc_info=True)
        raise
    finally:
        logger.info("gamedeals TUI shutting down")


def _run_cli(args: argparse.Namespace) -> None:
    """Run a single headless query and exit."""
    from gamedeals.cli.runner import cli_fetch

    exit_code = asyncio.run(
        cli_fetch(
            query=args.query,
            store_csv=args.stores,
            min_discount=args.min_discount,
            sort=args.sort,
            offset=args.offset,
            output_format=args.output_format,
            min_price=args.min_price,
            max_price=args.max_price,
        )
    )
    sys.exit(exit_code)


def _run_history(game_id: str) -> None:
    from gamedeals.cli.runner import run_price_history

    sys.exit(asyncio.run(run_price_history(game_id)))


def _run_check_key() -> None:
    from gamedeals.cli.runner import run_check_key

    sys.exit(asyncio.run(run_check_key()))


def main() -> None:
    """Route to TUI (no args) or headless CLI (query provided)."""
    parser = _build_parser()
    args = parser.parse_args()

    tui = not (args.check_key or args.history is not None or args.query is not None)
    log_file = setup_logging(console=not tui)
    logger.info("gamedeals starting, log file: %s", log_file)

    if args.check_key:
        _run_check_key()
    elif args.history is not None:
        _run_history(args.history)
    elif tui:
        _run_tui()
    else:
        _run_cli(args)


if __name__ == "__main__":
    main()
