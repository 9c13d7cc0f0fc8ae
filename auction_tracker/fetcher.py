# auction_tracker/fetcher.py
"""Polite HTTP GET shared by the live scrapers and the historical backfill."""
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from .errors import FetchError, RateLimitedError
from .utils import logger

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


@dataclass
class Fetcher:
    """Retrying GET with a fixed wait on HTTP 429 and exponential backoff otherwise.

    `sleep` and `rand` are injectable so tests never actually wait.
    """
    session: requests.Session = field(default_factory=requests.Session)
    timeout: float = 10.0
    max_attempts: int = 3
    rate_limit_retries: int = 3
    rate_limit_backoff: float = 60.0
    request_delay: float = 2.5
    jitter: float = 1.0
    sleep: Callable[[float], None] = time.sleep
    rand: Callable[[], float] = random.random

    def fetch(self, url: str, timeout: Optional[float] = None) -> str:
        timeout = timeout or self.timeout
        attempt = 0
        rate_limited = 0
        while True:
            try:
                resp = self.session.get(url, headers=DEFAULT_HEADERS, timeout=timeout)
            except requests.RequestException as e:
                attempt += 1
                if attempt >= self.max_attempts:
                    raise FetchError(url, f"Request failed after {attempt} attempts: {e}") from e
                logger.warning("Fetch error for %s (%s), retry %d/%d", url, e, attempt, self.max_attempts - 1)
                self.sleep(2 ** attempt)
                continue

            if resp.status_code == 429:
                rate_limited += 1
                if rate_limited > self.rate_limit_retries:
                    raise RateLimitedError(url, self.rate_limit_retries)
                logger.warning("Rate limited on %s, waiting %ss", url, self.rate_limit_backoff)
                self.sleep(self.rate_limit_backoff)
                continue

            if 200 <= resp.status_code < 300:
                return resp.text

            attempt += 1
            if attempt >= self.max_attempts:
                raise FetchError(url, f"HTTP {resp.status_code}", status=resp.status_code)
            logger.warning("HTTP %s for %s, retry %d/%d", resp.status_code, url, attempt, self.max_attempts - 1)
            self.sleep(2 ** attempt)

    def pause(self, base: Optional[float] = None, jitter: Optional[float] = None):
        """Inter-request delay: base plus a random share of the jitter."""
        base = self.request_delay if base is None else base
        jitter = self.jitter if jitter is None else jitter
        wait = base + self.rand() * jitter
        if wait > 0:
            self.sleep(wait)

    def close(self):
        self.session.close()
