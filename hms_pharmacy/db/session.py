# hms_pharmacy/db/session.py
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from hms_pharmacy.core.config import settings


def build_engine(db_uri: str, *, echo: bool = False) -> Engine:
    kwargs: Dict[str, Any] = {"pool_pre_ping": True, "future": True, "echo": echo}
    if db_uri.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_recycle=280, pool_size=10, max_overflow=20)
    return create_engine(db_uri, **kwargs)


engine: Engine = build_engine(settings.SQLALCHEMY_DATABASE_URI,
                              echo=settings.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)
