"""SQLAlchemy engine factory, session class, and unit-of-work helper.

This module provides:

* ``create_dao_engine``   -- Create a SA engine from a URL or ``DaoSettings``.
* ``DaoSession``          -- A pre-configured ``Session`` subclass.
* ``dao_session_factory`` -- ``sessionmaker`` producing ``DaoSession``.
* ``unit_of_work``        -- Commit-or-rollback scope around one session.

daospine never commits on its own; ``unit_of_work`` is the small piece of
transaction demarcation applications (and tests) can use when they do not
already have a framework-managed session.

Tags:
    daospine, orm, sqlalchemy, session, engine, unit-of-work
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from daospine.core.errors import DatabaseConnectionError
from daospine.core.logging import get_logger
from daospine.core.settings import DaoSettings

logger = get_logger(__name__)


def create_dao_engine(
    url: str | DaoSettings = "sqlite:///:memory:",
    *,
    echo: bool = False,
    pool_size: int | None = None,
    max_overflow: int | None = None,
    **kwargs: Any,
) -> Engine:
    """Create a SQLAlchemy engine with sane defaults.

    Parameters
    ----------
    url:
        Database URL (``sqlite:///…``, ``postgresql://…``) or a
        :class:`DaoSettings` whose ``database_*`` fields are used.
    echo:
        If ``True``, log all SQL through the engine logger.
    pool_size, max_overflow:
        Connection pool parameters (ignored for SQLite).
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if isinstance(url, DaoSettings):
        settings = url
        url = settings.database_url
        echo = echo or settings.database_echo
        pool_size = pool_size if pool_size is not None else settings.database_pool_size
        max_overflow = max_overflow if max_overflow is not None else settings.database_max_overflow

    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        if in_memory:
            # One shared connection, otherwise every checkout sees an empty database.
            from sqlalchemy.pool import StaticPool

            kwargs.setdefault("poolclass", StaticPool)
        engine = _sa_create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection: Any, _rec: Any) -> None:
            cursor = dbapi_connection.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        logger.debug("engine_created", url=url, dialect="sqlite")
        return engine

    pool_kwargs: dict[str, Any] = {}
    if pool_size is not None:
        pool_kwargs["pool_size"] = pool_size
    if max_overflow is not None:
        pool_kwargs["max_overflow"] = max_overflow

    engine = _sa_create_engine(url, echo=echo, **pool_kwargs, **kwargs)
    logger.debug("engine_created", url=engine.url.render_as_string(hide_password=True))
    return engine


class DaoSession(Session):
    """Pre-configured session with ``expire_on_commit=False``.

    Prevents lazy-load surprises when entities are used after commit.
    """

    def __init__(self, bind: Engine | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def dao_session_factory(engine: Engine) -> sessionmaker[DaoSession]:
    """Return a ``sessionmaker`` bound to *engine* that produces ``DaoSession`` instances."""
    return sessionmaker(bind=engine, class_=DaoSession)


@contextmanager
def unit_of_work(factory: sessionmaker[Any]) -> Iterator[Session]:
    """Open a session, commit on success, roll back on any exception.

    Example::

        with unit_of_work(factory) as session:
            BaseDAO(session, Person).save(person)
    """
    session = factory()
    try:
        session.connection()
    except OperationalError as exc:
        session.close()
        raise DatabaseConnectionError("Could not open a database session", cause=exc) from exc
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def raw_connection(session: Session) -> Any:
    """Return the DB-API connection behind *session*'s current transaction.

    Raises:
        DatabaseConnectionError: the pool could not hand out a connection.
    """
    try:
        return session.connection().connection.dbapi_connection
    except OperationalError as exc:
        raise DatabaseConnectionError("Could not obtain a database connection", cause=exc) from exc
