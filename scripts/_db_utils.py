from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.campus.db import build_engine


def create_script_engine(db_url: str) -> Engine:
    """Engine with the web app's settings (pool sizing on Postgres, FK enforcement on SQLite)."""
    return build_engine(db_url)


@contextmanager
def script_session(db_url: str) -> Iterator[Session]:
    """One transaction per script run. Commits on success; the engine is disposed either way."""
    engine = create_script_engine(db_url)
    s = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
