"""Database engine and session factory."""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from deal_finder.config import settings
from deal_finder.db.models import Base


def get_engine(db_url=None, db_path=None):
    """Create a SQLAlchemy engine for the configured database.

    Args:
        db_url: Optional database URL (PostgreSQL, SQLite, etc.)
        db_path: Optional SQLite database path

    Returns:
        SQLAlchemy engine

    Note:
        If db_url is provided, it takes precedence over db_path.
        If neither is provided, uses settings.db_url or settings.db_path.
    """
    url = db_url or settings.db_url
    path = db_path or settings.db_path

    if url:
        if url.startswith("postgresql://") or url.startswith("postgres://"):
            return create_engine(url, echo=False, pool_pre_ping=True)
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database
            return create_engine(
                url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, echo=False)

    if path:
        path.parent.mkdir(parents=True, exist_ok=True)
        return create_engine(f"sqlite:///{path}", echo=False)

    return create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


_engine = None
_SessionLocal = None


def _get_default_engine():
    """Return the lazily-initialised default engine (singleton)."""
    global _engine
    if _engine is None:
        _engine = get_engine()
    return _engine


def _get_session_factory():
    """Return the lazily-initialised session factory (singleton)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=_get_default_engine())
    return _SessionLocal


class _LazySessionLocal:
    """Proxy so that ``SessionLocal(...)`` works without eager engine creation."""

    def __call__(self, *args, **kwargs):
        return _get_session_factory()(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(_get_session_factory(), name)


SessionLocal = _LazySessionLocal()


def init_db() -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=_get_default_engine())


def clear_db() -> None:
    """Delete all rows from every table, keeping the schema."""
    engine = _get_default_engine()
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


def reset_engine() -> None:
    """Dispose the default engine so the next access creates a fresh one."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_db() -> Generator[Session, None, None]:
    """Yield a database session, closing it when done.

    Intended for use as a FastAPI dependency.
    """
    db = _get_session_factory()()
    try:
        yield db
    finally:
        db.close()
