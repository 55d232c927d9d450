from __future__ import annotations


class ScraperError(Exception):
    """Base error; keeps the wrapped library exception around."""

    def __init__(self, message: str, original: BaseException | None = None) -> None:
        super().__init__(message)
        self.original = original


class ClosedError(ScraperError):
    """Raised by scrape_pair on a closed scraper."""


class AlreadyClosedError(ScraperError):
    """Raised by a second close()."""


class DecodeError(ScraperError):
    """Swap event could not be turned into a trade."""


class FetchError(ScraperError):
    """RPC/explorer call failed."""


class StorageError(ScraperError):
    """Catalog or cursor store failure."""


class CursorRegressionError(StorageError):
    """Attempt to move a polling cursor backwards."""


class ChannelClosedError(ScraperError):
    pass


class ChannelFullError(ScraperError):
    pass


class ConfigError(ScraperError):
    pass
