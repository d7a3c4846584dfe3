"""Main CLI entry point for tickfeed.

Running ``tickfeed`` with no subcommand starts the ingestion pipeline
and keeps it running until SIGINT or SIGTERM.
"""

import asyncio
import signal
from pathlib import Path
from typing import Optional

import click
import toml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from tickfeed.cli.snapshot import snapshot
from tickfeed.config import Settings, load_settings
from tickfeed.errors import StartupError
from tickfeed.log import get_logger, setup_logging

console = Console(stderr=True)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


async def serve(settings: Settings) -> None:
    """Run the pipeline until the current task is cancelled.

    Raises:
        StartupError: If the cache or symbol discovery is unavailable.
    """
    from tickfeed.cache import MarketCache
    from tickfeed.feeds import BinanceFeed
    from tickfeed.pipeline import Supervisor

    cache = MarketCache.from_settings(settings.cache)
    feed = BinanceFeed(settings.binance)
    supervisor = Supervisor(feed, cache, settings.pipeline)

    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, main_task.cancel)
        except NotImplementedError:
            # Not available on Windows event loops; Ctrl+C still raises KeyboardInterrupt
            break

    try:
        await supervisor.run()
    finally:
        await supervisor.stop()
        await feed.close()
        await cache.close()


def run_pipeline(settings: Settings) -> int:
    """Run the pipeline to completion.

    Returns:
        Process exit code: 0 on clean shutdown, 1 on startup failure.
    """
    logger = get_logger("main")
    try:
        asyncio.run(serve(settings))
    except StartupError as e:
        logger.error("startup failed: %s", e)
        return 1
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    logger.info("shut down")
    return 0


@click.group(invoke_without_command=True, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="tickfeed")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="TOML config file (default: ~/.config/tickfeed/config.toml).",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Override the configured log level.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_level: Optional[str]) -> None:
    """tickfeed - Binance USDT market data into redis.

    With no command, streams trades, klines and depth for every USDT
    pair into the cache until interrupted.

    \b
    Quick Start:
      tickfeed                   # Run the ingestion pipeline
      tickfeed snapshot BTCUSDT  # Show what is cached for a symbol
    """
    ctx.ensure_object(dict)

    try:
        settings = load_settings(config_path)
    except (toml.TomlDecodeError, ValidationError) as e:
        console.print(f"[red]Invalid configuration:[/red] {escape(str(e))}")
        ctx.exit(1)

    setup_logging(log_level or settings.log_level, console=console)
    ctx.obj["settings"] = settings

    if ctx.invoked_subcommand is None:
        ctx.exit(run_pipeline(settings))


cli.add_command(snapshot)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
