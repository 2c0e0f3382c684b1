"""Declarative base and type-map for daospine ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map``
that maps Python built-in types to portable SA column types.  Applications
may derive their entities from :class:`DaoBase` or from their own base; the
DAO only needs a mapped class.
"""

from __future__ import annotations

import datetime

from sqlalchemy import JSON, DateTime, Integer, Text
from sqlalchemy.orm import DeclarativeBase


class DaoBase(DeclarativeBase):
    """Shared declarative base for daospine tables.

    * ``str``   → ``Text``
    * ``int``   → ``Integer``
    * ``datetime.datetime`` → ``DateTime``
    * ``dict``  → ``JSON``
    * ``list``  → ``JSON``
    """

    type_annotation_map = {
        str: Text,
        int: Integer,
        datetime.datetime: DateTime,
        dict: JSON,
        list: JSON,
    }
