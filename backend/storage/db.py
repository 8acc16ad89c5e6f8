from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from utils.config import config


def make_engine(database_url: Optional[str] = None) -> Engine:
    url = database_url or config.storage.database_url
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database.
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=config.storage.echo, **kwargs)
    return create_engine(url, echo=config.storage.echo)


def init_db(engine: Engine) -> None:
    # Import models inside to avoid circular imports.
    from storage import records  # noqa: F401

    SQLModel.metadata.create_all(engine)


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    with Session(engine, expire_on_commit=False) as session:
        yield session
