"""SQLAlchemy 2.0 ORM layer for daospine.

Modules
-------
base        DaoBase (declarative base)
session     Engine factory, DaoSession, unit_of_work, raw_connection
tables      AuditRecordTable (``daospine_audit``)

Tags:
    daospine, orm, sqlalchemy, declarative
"""

from __future__ import annotations

from daospine.orm.base import DaoBase
from daospine.orm.session import (
    DaoSession,
    create_dao_engine,
    dao_session_factory,
    raw_connection,
    unit_of_work,
)
from daospine.orm.tables import AuditRecordTable

__all__ = [
    "DaoBase",
    "DaoSession",
    "AuditRecordTable",
    "create_dao_engine",
    "dao_session_factory",
    "raw_connection",
    "unit_of_work",
]
