"""Logging setup.

Console output goes through rich; pipeline loggers tag every record
with the subsystem and symbol they belong to.
"""

import logging
from typing import Any, MutableMapping, Optional

from rich.console import Console
from rich.logging import RichHandler


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Configure the root logger with a rich console handler."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())

    # Connection chatter from the transport libraries
    logging.getLogger("websockets").setLevel(logging.WARNING)


class SymbolLogger(logging.LoggerAdapter):
    """Prefix messages with ``[subsystem] SYMBOL:`` and attach both as extras."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        subsystem = self.extra.get("subsystem", "-")
        symbol = self.extra.get("symbol")
        prefix = f"[{subsystem}] {symbol}: " if symbol else f"[{subsystem}] "
        kwargs.setdefault("extra", {}).update(self.extra)
        return prefix + str(msg), kwargs


def get_logger(subsystem: str, symbol: Optional[str] = None) -> SymbolLogger:
    """Get a logger tagged with ``subsystem`` and, optionally, ``symbol``."""
    return SymbolLogger(logging.getLogger(f"tickfeed.{subsystem}"), {"subsystem": subsystem, "symbol": symbol})
