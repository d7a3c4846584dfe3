"""Snapshot command: inspect what the pipeline has cached for a symbol."""

import asyncio

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from tickfeed.config import Settings
from tickfeed.errors import CacheError
from tickfeed.models import SymbolSnapshot

console = Console()


async def _load(settings: Settings, symbol: str) -> SymbolSnapshot:
    from tickfeed.cache import MarketCache
    from tickfeed.tools.snapshot import load_snapshot

    cache = MarketCache.from_settings(settings.cache)
    try:
        return await load_snapshot(cache, symbol)
    finally:
        await cache.close()


def _fmt(value, digits: int = 4) -> str:
    return "-" if value is None else f"{value:,.{digits}f}"


def _candle_table(snap: SymbolSnapshot, rows: int) -> Table:
    table = Table(
        title=f"{snap.symbol} - klines ({len(snap.candles)} cached)",
        show_header=True,
        header_style="bold cyan",
    )
    table.add_column("Open time", style="dim")
    table.add_column("Open", justify="right")
    table.add_column("High", justify="right", style="green")
    table.add_column("Low", justify="right", style="red")
    table.add_column("Close", justify="right")
    table.add_column("Volume", justify="right", style="dim")
    table.add_column("SMA10", justify="right")
    table.add_column("RSI14", justify="right")
    table.add_column("Return %", justify="right")

    for candle in snap.candles[-rows:]:
        if candle.returns is None:
            change = "[dim]-[/dim]"
        else:
            style = "green" if candle.returns >= 0 else "red"
            change = f"[{style}]{candle.returns:+.2f}[/{style}]"
        table.add_row(
            candle.open_time.strftime("%Y-%m-%d %H:%M"),
            _fmt(candle.open),
            _fmt(candle.high),
            _fmt(candle.low),
            _fmt(candle.close),
            _fmt(candle.volume, 2),
            _fmt(candle.sma10),
            _fmt(candle.rsi14, 2),
            change,
        )
    return table


def _indicator_table(snap: SymbolSnapshot) -> Table:
    table = Table(title="Indicators", show_header=True, header_style="bold cyan")
    table.add_column("Indicator", style="bold")
    table.add_column("Value", justify="right")
    for name, value in snap.indicators.items():
        table.add_row(name, _fmt(value))
    return table


def _book_table(snap: SymbolSnapshot) -> Table:
    depth = snap.depth
    table = Table(title="Book top", show_header=True, header_style="bold cyan")
    table.add_column("Side", style="bold")
    table.add_column("Price", justify="right")
    table.add_column("Quantity", justify="right", style="dim")

    bid, ask = depth.best_bid, depth.best_ask
    table.add_row("[green]bid[/green]", _fmt(bid.price if bid else None), _fmt(bid.quantity if bid else None))
    table.add_row("[red]ask[/red]", _fmt(ask.price if ask else None), _fmt(ask.quantity if ask else None))
    return table


@click.command()
@click.argument("symbol")
@click.option("--rows", "-n", default=10, show_default=True, help="Number of candles to show.")
@click.pass_context
def snapshot(ctx: click.Context, symbol: str, rows: int) -> None:
    """Show the cached candles, indicators and book top for SYMBOL.

    \b
    Examples:
      tickfeed snapshot BTCUSDT
      tickfeed snapshot ethusdt -n 30
    """
    settings: Settings = ctx.obj["settings"]

    try:
        snap = asyncio.run(_load(settings, symbol))
    except CacheError as e:
        console.print(Panel(
            f"[red]Failed to read the cache:[/red]\n\n{escape(str(e))}",
            title="[bold red]Error[/bold red]",
            border_style="red",
        ))
        raise SystemExit(1)

    if not snap.candles and not snap.trades and snap.depth is None:
        console.print(Panel(
            f"[yellow]Nothing cached for {snap.symbol}[/yellow]\n\n"
            "[dim]Is the pipeline running, and is the symbol a USDT pair?[/dim]",
            title="[bold yellow]No Data[/bold yellow]",
            border_style="yellow",
        ))
        return

    if snap.candles:
        console.print(_candle_table(snap, rows))
        console.print(_indicator_table(snap))
    if snap.trades:
        last = snap.trades[-1]
        console.print(
            f"[dim]{len(snap.trades)} trades cached, last {_fmt(last.price)} x {_fmt(last.quantity)} "
            f"at {last.time:%H:%M:%S}[/dim]"
        )
    if snap.depth is not None:
        console.print(_book_table(snap))
