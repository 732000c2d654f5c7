"""
DOM Ladder + order rehearsal TUI using Textual.

Displays:
- Top: venue, connection state, spread, mid, imbalance, last error
- Middle: ask ladder over bid ladder with cumulative depth bars
- Bottom: order entry fields and the simulated order history

Notes:
- Polls the store at ~10 FPS instead of reacting to every feed frame
- All analytics come from one snapshot read per frame
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.console import RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.widgets import Footer, Input, Static

from ..engine.depth import aggregate
from ..engine.simulation import simulate_order
from ..types import ConnectionState, ImbalanceDirection, OrderKind, OrderSide
from .forms import build_order_request

if TYPE_CHECKING:
    from ..datafeed.connection import FeedController
    from ..store import MarketStateStore
    from ..types import AggregatedView, SimulatedOrder

logger = logging.getLogger(__name__)

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
PRICE_COLOR = "#f8fafc"
HEADER_COLOR = "#94a3b8"
BAR_BG = "#1e293b"

STATE_COLORS = {
    ConnectionState.CONNECTED: BID_COLOR,
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.DISCONNECTED: HEADER_COLOR,
    ConnectionState.ERROR: ASK_COLOR,
}

BAR_WIDTH = 16
REFRESH_SEC = 0.1


def format_qty(qty: float) -> str:
    """Format quantity for display."""
    if qty >= 1000:
        return f"{qty/1000:.1f}K"
    elif qty >= 1:
        return f"{qty:.2f}"
    else:
        return f"{qty:.4f}"


def make_bar(value: float, max_value: float, width: int, color: str) -> Text:
    """Create a horizontal bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_ratio = min(1.0, value / max_value)
    fill_width = int(fill_ratio * width)

    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


class DepthTable(Static):
    """Ask ladder (worst on top) over bid ladder, with cumulative depth bars."""

    DEFAULT_CSS = """
    DepthTable {
        width: 100%;
        height: auto;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._depth_view: AggregatedView | None = None

    def update_view(self, view: AggregatedView | None) -> None:
        self._depth_view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._depth_view is None:
            return Text("Waiting for order book...", style="dim")

        snap = self._depth_view.snapshot
        max_total = max(self._depth_view.volume.bids, self._depth_view.volume.asks)

        table = Table(
            show_header=True,
            header_style=HEADER_COLOR,
            box=None,
            padding=(0, 1),
            collapse_padding=True,
        )
        table.add_column("Depth", justify="left", width=BAR_WIDTH, no_wrap=True)
        table.add_column("Total", justify="right", width=10)
        table.add_column("Size", justify="right", width=10)
        table.add_column("Price", justify="right", width=12)

        for level in reversed(snap.asks):
            table.add_row(
                make_bar(level.cumulative_total, max_total, BAR_WIDTH, ASK_COLOR),
                Text(format_qty(level.cumulative_total), style=ASK_COLOR),
                Text(format_qty(level.size), style=ASK_COLOR),
                Text(f"{level.price:.2f}", style=ASK_COLOR),
            )

        spread = self._depth_view.spread
        table.add_row(
            Text(""),
            Text("spread", style="dim"),
            Text(f"{spread.absolute:.2f}", style=PRICE_COLOR),
            Text(f"{spread.percent:.4f}%", style="yellow"),
        )

        for level in snap.bids:
            table.add_row(
                make_bar(level.cumulative_total, max_total, BAR_WIDTH, BID_COLOR),
                Text(format_qty(level.cumulative_total), style=BID_COLOR),
                Text(format_qty(level.size), style=BID_COLOR),
                Text(f"{level.price:.2f}", style=BID_COLOR),
            )

        return table


class StatusBar(Static):
    """Venue, connection state and top-of-book statistics."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._status_line = Text("Connecting...", style="dim")

    def update_status(
        self,
        venue_name: str,
        state: ConnectionState,
        view: AggregatedView | None,
        error: str | None,
    ) -> None:
        line = Text()
        line.append(f" {venue_name} ", style="bold white on #1e40af")
        line.append("  ")
        line.append(state.value, style=STATE_COLORS[state])

        if view is not None:
            imbalance = view.imbalance
            if imbalance.direction == ImbalanceDirection.BUY:
                imb_color = BID_COLOR
            elif imbalance.direction == ImbalanceDirection.SELL:
                imb_color = ASK_COLOR
            else:
                imb_color = HEADER_COLOR
            line.append("  Mid: ", style="dim")
            line.append(f"{view.mid_price:.2f}", style=PRICE_COLOR)
            line.append("  Spread: ", style="dim")
            line.append(f"{view.spread.absolute:.2f} ({view.spread.percent:.4f}%)", style="yellow")
            line.append("  Imbalance: ", style="dim")
            line.append(
                f"{imbalance.ratio:.2f} {imbalance.direction.value}/{imbalance.strength.value}",
                style=imb_color,
            )

        if error:
            line.append("  │  ", style="dim")
            line.append(error, style=ASK_COLOR)

        self._status_line = line
        self.refresh()

    def render(self) -> RenderableType:
        return self._status_line


class OrdersTable(Static):
    """Simulated order history, newest last."""

    def __init__(self) -> None:
        super().__init__()
        self._order_rows: tuple[SimulatedOrder, ...] = ()

    def update_orders(self, orders: tuple[SimulatedOrder, ...]) -> None:
        if orders is self._order_rows:
            return
        self._order_rows = orders
        self.refresh()

    def render(self) -> RenderableType:
        if not self._order_rows:
            return Text("No simulated orders", style="dim")

        table = Table(show_header=True, header_style=HEADER_COLOR, box=None, padding=(0, 1))
        for column in ("Type", "Side", "Price", "Qty", "Fill", "Impact", "Slippage", "ETA", "Level"):
            table.add_column(column, justify="right")

        for order in self._order_rows:
            side_color = BID_COLOR if order.side == OrderSide.BUY else ASK_COLOR
            level = order.queue_position.level
            table.add_row(
                order.kind.value,
                Text(order.side.value, style=side_color),
                f"{order.price:.2f}",
                format_qty(order.quantity),
                f"{order.estimated_fill_pct:.1f}%",
                f"{order.market_impact_pct:.4f}%",
                f"{order.slippage_pct:.4f}%",
                f"{order.time_to_fill_sec:.1f}s",
                "mkt" if level < 0 else str(level),
            )
        return table


class DOMApp(App):
    """Multi-venue depth viewer with order rehearsal."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 1fr;
        padding: 1 2;
    }

    #order-entry {
        height: 3;
        padding: 0 2;
    }

    #order-entry Input {
        width: 1fr;
    }

    #orders {
        height: auto;
        max-height: 12;
        padding: 0 2;
    }
    """

    BINDINGS = [
        Binding("f1", "select_venue('okx')", "OKX", priority=True),
        Binding("f2", "select_venue('bybit')", "Bybit", priority=True),
        Binding("f3", "select_venue('deribit')", "Deribit", priority=True),
        Binding("ctrl+b", "simulate('buy')", "Sim Buy", priority=True),
        Binding("ctrl+s", "simulate('sell')", "Sim Sell", priority=True),
        Binding("ctrl+t", "toggle_kind", "Limit/Market", priority=True),
        Binding("ctrl+l", "clear_error", "Clear Error", priority=True),
        Binding("ctrl+q", "quit", "Quit", priority=True),
    ]

    def __init__(self, store: MarketStateStore, controller: FeedController) -> None:
        super().__init__()
        self.store = store
        self.controller = controller
        self.order_kind = OrderKind.LIMIT
        self._status_bar: StatusBar | None = None
        self._depth_table: DepthTable | None = None
        self._orders_table: OrdersTable | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar()
        self._depth_table = DepthTable()
        self._orders_table = OrdersTable()

        yield self._status_bar
        yield Container(self._depth_table, id="main-container")
        yield Horizontal(
            Input(placeholder="Price", id="price"),
            Input(placeholder="Quantity", id="quantity"),
            Input(placeholder="Delay (s)", id="delay"),
            id="order-entry",
        )
        yield Container(self._orders_table, id="orders")
        yield Footer()

    async def on_mount(self) -> None:
        self._update_title()
        self.set_interval(REFRESH_SEC, self._refresh_view)
        await self.controller.select(self.store.selected_venue)

    async def on_unmount(self) -> None:
        await self.controller.close()

    def _update_title(self) -> None:
        self.title = f"DOM Simulator - {self.order_kind.value}"

    def _refresh_view(self) -> None:
        """Render from exactly one snapshot read."""
        venue_id = self.store.selected_venue
        venue = self.store.selected_venue_identity
        snapshot = self.store.snapshot(venue_id)
        view = aggregate(snapshot) if snapshot is not None else None

        if self._status_bar:
            self._status_bar.update_status(
                venue.name if venue else venue_id,
                self.store.connection_state(venue_id),
                view,
                self.store.error,
            )
        if self._depth_table:
            self._depth_table.update_view(view)
        if self._orders_table:
            self._orders_table.update_orders(self.store.simulated_orders)

    async def action_select_venue(self, venue_id: str) -> None:
        if venue_id == self.store.selected_venue:
            return
        await self.controller.select(venue_id)

    def action_toggle_kind(self) -> None:
        self.order_kind = OrderKind.MARKET if self.order_kind == OrderKind.LIMIT else OrderKind.LIMIT
        self._update_title()

    def action_clear_error(self) -> None:
        self.store.clear_error()

    def action_simulate(self, side: str) -> None:
        snapshot = self.store.snapshot(self.store.selected_venue)
        if snapshot is None:
            self.notify("No order book yet", severity="warning")
            return

        request, errors = build_order_request(
            self.order_kind,
            OrderSide(side),
            self.query_one("#price", Input).value,
            self.query_one("#quantity", Input).value,
            self.query_one("#delay", Input).value,
        )
        if request is None:
            self.notify("; ".join(errors.values()), severity="error")
            return

        order = simulate_order(snapshot, request)
        self.store.append_simulated_order(order)
        logger.info(
            "Simulated %s %s %.4f @ %.2f: fill=%.1f%% impact=%.4f%%",
            order.kind.value, order.side.value, order.quantity, order.price,
            order.estimated_fill_pct, order.market_impact_pct,
        )


async def run_ui(store: MarketStateStore, controller: FeedController) -> None:
    """Run the TUI application."""
    app = DOMApp(store, controller)
    await app.run_async()
