# auction_tracker/db.py
"""Database engine and session utilities.

Centralized SQLAlchemy engine creation and session dependency helper for FastAPI.
PostgreSQL is the production target; SQLite URLs are accepted for local runs
and the test-suite.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .config import settings
from .errors import ConfigError


def normalize_database_url(url: str) -> str:
    # SQLAlchemy 2.x doesn't accept 'postgres://'
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg2://", 1)
    return url


def make_engine(url, pool_size=5, max_overflow=10):
    if not url:
        raise ConfigError("POSTGRES_URL not set")
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    # tuned pool settings for cloud DB
    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True
    )


engine = make_engine(
    settings.database_url,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
