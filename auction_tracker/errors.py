# auction_tracker/errors.py
"""Exception types raised by the scraping and backfill layers."""
from typing import Optional


class ScraperError(Exception):
    """Base class for scraping failures."""


class FetchError(ScraperError):
    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status = status
        super().__init__(f"{reason} for {url}")


class RateLimitedError(FetchError):
    def __init__(self, url: str, attempts: int):
        self.attempts = attempts
        super().__init__(url, f"Rate limited after {attempts} retries", status=429)


class UnsupportedPlatformError(ScraperError):
    def __init__(self, value: str):
        self.value = value
        super().__init__(
            f'Unknown platform: "{value}". '
            "Supported: BRING_A_TRAILER, CARS_AND_BIDS, COLLECTING_CARS"
        )


class BackfillError(Exception):
    """A model's historical scrape could not make any progress."""


class ConfigError(RuntimeError):
    pass
