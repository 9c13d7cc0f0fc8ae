# tests/conftest.py
import os

# must be set before auction_tracker.db builds its engine
os.environ["POSTGRES_URL"] = "sqlite://"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SUPABASE_URL", None)

from datetime import datetime, timedelta, timezone

import pytest

from auction_tracker import models  # noqa: F401
from auction_tracker.db import Base, SessionLocal, engine
from auction_tracker.errors import FetchError


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeFetcher:
    """Serves canned HTML by URL; anything unknown is a fetch error."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls = []
        self.pauses = []

    def fetch(self, url, timeout=None):
        self.calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if page is None:
            raise FetchError(url, "HTTP 404", status=404)
        return page

    def pause(self, base=None, jitter=None):
        self.pauses.append(base)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)
