"""Database engine setup.

For test runs (ENV=test) we fall back to an in-memory SQLite database when
DATABASE_URL is unset so logic tests do not need a PostgreSQL driver.
"""

from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings

raw_url = settings.DATABASE_URL

if settings.ENV.lower() == "test" and (not raw_url or raw_url.startswith("sqlite")):
    engine = create_engine(
        "sqlite:///file:test_db?mode=memory&cache=shared&uri=true",
        future=True,
        connect_args={"check_same_thread": False},
    )
elif raw_url and raw_url.startswith("postgresql"):
    # Pool pre-ping: verify connection health before use (processor calls can
    # hold a request open for several seconds)
    engine = create_engine(
        raw_url,
        future=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_pre_ping=True,
    )
else:
    engine = create_engine(raw_url or "sqlite:///./gymstack.db", future=True)
SessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: Callable[[], Session] | None = None) -> Generator[Session, None, None]:
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
