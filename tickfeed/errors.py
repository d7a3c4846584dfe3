"""Error kinds raised across the pipeline."""


class TickfeedError(Exception):
    """Base class for tickfeed errors."""


class ParseError(TickfeedError):
    """An upstream record could not be converted to a canonical type.

    Attributes:
        field: Name of the offending field (e.g. "close", "trade_qty").
        value: The raw value that failed to parse.
    """

    def __init__(self, field: str, value: object, reason: str = ""):
        self.field = field
        self.value = value
        message = f"failed to parse {field} value {value!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class TransportError(TickfeedError):
    """Transient network failure; the caller retries or reconnects."""


class SubscribeError(TickfeedError):
    """A stream subscription was rejected; fatal for the worker."""


class CacheError(TickfeedError):
    """The cache could not encode, decode, read or write a value."""


class StartupError(TickfeedError):
    """Symbol discovery or the cache connection failed at startup."""
