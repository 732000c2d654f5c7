#!/usr/bin/env python3
"""
DOM Simulator - multi-venue order book depth with order rehearsal.

Usage:
    python -m dom_sim.main okx
    python -m dom_sim.main deribit --once

Controls:
    F1/F2/F3 - Switch venue (OKX / Bybit / Deribit)
    Ctrl+B   - Simulate buy with the entered price/quantity/delay
    Ctrl+S   - Simulate sell
    Ctrl+T   - Toggle limit/market
    Ctrl+L   - Clear error
    Ctrl+Q   - Quit
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import DEFAULT_LOG_PATH, DEFAULT_VENUE, VENUES

logger = logging.getLogger("dom_sim")


async def print_snapshot(venue_id: str) -> int:
    """Fetch one REST snapshot and print its aggregated summary."""
    import aiohttp
    from rich.console import Console

    from .datafeed.rest_client import fetch_snapshot
    from .engine.depth import aggregate

    async with aiohttp.ClientSession() as session:
        snapshot = await fetch_snapshot(session, VENUES[venue_id])

    console = Console()
    if snapshot is None:
        console.print(f"[red]No order book available from {venue_id}[/red]")
        return 1

    view = aggregate(snapshot)
    console.print(f"[bold]{VENUES[venue_id].name}[/bold] {snapshot.symbol}")
    console.print(f"  Best bid: {snapshot.bids[0].price if snapshot.bids else '-'}")
    console.print(f"  Best ask: {snapshot.asks[0].price if snapshot.asks else '-'}")
    console.print(f"  Mid: {view.mid_price:.2f}")
    console.print(f"  Spread: {view.spread.absolute:.2f} ({view.spread.percent:.4f}%)")
    console.print(
        f"  Imbalance: {view.imbalance.ratio:.3f} "
        f"{view.imbalance.direction.value}/{view.imbalance.strength.value}"
    )
    console.print(f"  Depth: bids {view.volume.bids:.4f}, asks {view.volume.asks:.4f}")
    return 0


async def main(venue_id: str) -> None:
    """Main entry point - runs the feed controller and UI on one event loop."""

    # Import here to avoid slow startup for --help
    from .datafeed.connection import FeedController
    from .store import MarketStateStore
    from .ui.dom_view import run_ui

    store = MarketStateStore(selected_venue=venue_id)
    controller = FeedController(store)

    logger.info("Starting DOM Simulator on %s", venue_id)
    try:
        # The UI selects the venue on mount and closes the controller on unmount
        await run_ui(store, controller)
    finally:
        await controller.close()


def cli() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="DOM Simulator - multi-venue order book depth with order rehearsal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m dom_sim.main okx
    python -m dom_sim.main bybit --log-level DEBUG
    python -m dom_sim.main deribit --once
        """
    )

    parser.add_argument(
        "venue",
        nargs="?",
        default=DEFAULT_VENUE,
        choices=sorted(VENUES),
        help=f"Venue to open first (default: {DEFAULT_VENUE})"
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Fetch a single REST snapshot, print a summary and exit"
    )

    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_PATH,
        help=f"Log file path (default: {DEFAULT_LOG_PATH})"
    )

    args = parser.parse_args()

    from .utils.logger import setup_logger

    # The TUI owns the terminal, so logs only go to the file there
    setup_logger(
        "dom_sim",
        log_path=args.log_file,
        level=getattr(logging, args.log_level),
        console=args.once,
    )

    try:
        if args.once:
            sys.exit(asyncio.run(print_snapshot(args.venue)))
        asyncio.run(main(args.venue))
    except KeyboardInterrupt:
        print("\nShutdown requested.")
        sys.exit(0)


if __name__ == "__main__":
    cli()
