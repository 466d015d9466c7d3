from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from giftdraw.db.models import Base

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine(database_url: str, create_schema: bool = False):
    """Bind ``SessionLocal`` to a new engine.

    Production databases are migrated with Alembic; ``create_schema`` is for
    throwaway SQLite databases.
    """
    engine = create_engine(database_url, pool_pre_ping=True, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    if create_schema:
        Base.metadata.create_all(engine)
    SessionLocal.configure(bind=engine)
    return engine


def _ensure_initialized() -> None:
    if SessionLocal.kw.get("bind") is None:
        raise RuntimeError("Database engine not initialized. Call init_engine() before use.")


@contextmanager
def get_session():
    _ensure_initialized()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
