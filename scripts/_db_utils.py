from __future__ import annotations

import os
from contextlib import contextmanager

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from app.ehs.config import load_config
from app.ehs.db import make_engine, make_sessionmaker
from app.ehs.modules.module_registry.state import SqlStateStore


def script_db_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or "sqlite:///ehs.db").strip()


def write_timeout() -> float:
    """MODULE_STATE_WRITE_TIMEOUT as the app reads it."""
    return load_config()["MODULE_STATE_WRITE_TIMEOUT"]


def create_script_engine(db_url: str) -> Engine:
    return make_engine(db_url, lock_timeout=write_timeout())


def script_state_store(engine: Engine) -> SqlStateStore:
    return SqlStateStore(make_sessionmaker(engine), write_timeout=write_timeout())


@contextmanager
def script_session(db_url: str):
    engine = create_script_engine(db_url)
    s: Session = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
