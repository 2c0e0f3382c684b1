"""
daospine - generic data access over SQLAlchemy.

Restriction algebra, a fluent query builder, an executor that compiles plans
to SQLAlchemy statements, and a persistence dispatcher that chooses insert,
update or merge from an entity's identifier state, with an audit trail.

Example:
    >>> from daospine import BaseDAO, Restriction
    >>> dao = BaseDAO(session, Person)
    >>> dao.list(Restriction.eq("age", 30))
"""

__version__ = "0.1.0"

from daospine.core.errors import (  # noqa: E402
    DaoError,
    DeleteError,
    DeleteException,
    IllegalStateError,
    InvalidRestrictionError,
    NonUniqueResultError,
    NotFoundError,
)
from daospine.core.settings import DaoSettings, get_settings  # noqa: E402
from daospine.dao import BaseDAO  # noqa: E402
from daospine.mapping import EntityRegistry, default_registry  # noqa: E402
from daospine.persistence.audit import AuditPolicy  # noqa: E402
from daospine.persistence.lazy import LazyRef, get_initialized  # noqa: E402
from daospine.query.builder import QueryBuilder  # noqa: E402
from daospine.query.order import OrderBy  # noqa: E402
from daospine.query.restriction import Operator, Restriction, RestrictionGroup  # noqa: E402

__all__ = [
    "__version__",
    "AuditPolicy",
    "BaseDAO",
    "DaoError",
    "DaoSettings",
    "DeleteError",
    "DeleteException",
    "EntityRegistry",
    "IllegalStateError",
    "InvalidRestrictionError",
    "LazyRef",
    "NonUniqueResultError",
    "NotFoundError",
    "Operator",
    "OrderBy",
    "QueryBuilder",
    "Restriction",
    "RestrictionGroup",
    "default_registry",
    "get_initialized",
    "get_settings",
]
