from __future__ import annotations

from typing import Any, Dict, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from relief_app.core.config import Settings, get_settings

settings = get_settings()


def engine_options(s: Settings) -> Dict[str, Any]:
    """sqlite (local dev) gets no pool sizing; postgres gets pre-ping and pool limits."""
    if s.is_sqlite:
        return {"echo": s.database_echo, "connect_args": {"check_same_thread": False}}
    return {
        "echo": s.database_echo,
        "pool_pre_ping": True,
        "pool_size": s.database_pool_size,
        "max_overflow": s.database_max_overflow,
    }


engine = create_engine(settings.database_url, **engine_options(settings))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=True,
)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
