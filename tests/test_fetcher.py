# tests/test_fetcher.py
from types import SimpleNamespace

import pytest
import requests

from auction_tracker.errors import FetchError, RateLimitedError
from auction_tracker.fetcher import Fetcher

URL = "https://bringatrailer.com/auctions"


class ScriptedSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, headers=None, timeout=None):
        self.requests.append((url, headers, timeout))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        pass


def ok(text="<html></html>"):
    return SimpleNamespace(status_code=200, text=text)


def status(code):
    return SimpleNamespace(status_code=code, text="")


def make_fetcher(session, **kwargs):
    sleeps = []
    fetcher = Fetcher(session=session, sleep=sleeps.append, rand=lambda: 0.5, **kwargs)
    return fetcher, sleeps


def test_fetch_sends_browser_headers_and_timeout():
    session = ScriptedSession(ok("hello"))
    fetcher, sleeps = make_fetcher(session)
    assert fetcher.fetch(URL) == "hello"
    _, headers, timeout = session.requests[0]
    assert "Mozilla" in headers["User-Agent"]
    assert headers["Accept-Language"]
    assert timeout == 10.0
    assert sleeps == []


def test_per_call_timeout_override():
    session = ScriptedSession(ok())
    fetcher, _ = make_fetcher(session)
    fetcher.fetch(URL, timeout=30)
    assert session.requests[0][2] == 30


def test_rate_limit_waits_fixed_backoff():
    session = ScriptedSession(status(429), ok("after"))
    fetcher, sleeps = make_fetcher(session)
    assert fetcher.fetch(URL) == "after"
    assert sleeps == [60.0]


def test_rate_limit_gives_up_after_three_retries():
    session = ScriptedSession(status(429), status(429), status(429), status(429))
    fetcher, sleeps = make_fetcher(session)
    with pytest.raises(RateLimitedError) as exc:
        fetcher.fetch(URL)
    assert exc.value.status == 429
    assert sleeps == [60.0, 60.0, 60.0]


def test_server_errors_back_off_exponentially():
    session = ScriptedSession(status(500), status(502), status(503))
    fetcher, sleeps = make_fetcher(session)
    with pytest.raises(FetchError) as exc:
        fetcher.fetch(URL)
    assert exc.value.status == 503
    assert exc.value.url == URL
    assert sleeps == [2, 4]


def test_transport_error_then_success():
    session = ScriptedSession(requests.ConnectionError("reset"), ok("fine"))
    fetcher, sleeps = make_fetcher(session)
    assert fetcher.fetch(URL) == "fine"
    assert sleeps == [2]


def test_transport_errors_exhaust_attempts():
    session = ScriptedSession(*[requests.Timeout("slow")] * 3)
    fetcher, _ = make_fetcher(session)
    with pytest.raises(FetchError):
        fetcher.fetch(URL)
    assert len(session.requests) == 3


def test_pause_adds_jitter():
    fetcher, sleeps = make_fetcher(ScriptedSession())
    fetcher.pause()
    fetcher.pause(2.5, 0)
    assert sleeps == [3.0, 2.5]
