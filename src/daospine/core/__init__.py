"""daospine core -- errors, structured logging and settings.

Modules
-------
errors      DaoError hierarchy (InvalidRestrictionError, NonUniqueResultError, ...)
logging     structlog configuration + get_logger
settings    DaoSettings (pydantic-settings) + get_settings()

Tags:
    daospine, core, cross-cutting
"""

from daospine.core.errors import (
    AuditError,
    DaoError,
    DatabaseConnectionError,
    DeleteError,
    DeleteException,
    EntityMappingError,
    ErrorCategory,
    ErrorContext,
    IllegalStateError,
    InvalidPaginationError,
    InvalidProjectionError,
    InvalidRestrictionError,
    NonUniqueResultError,
    NotFoundError,
    UnknownEntityError,
)
from daospine.core.logging import configure_logging, get_logger
from daospine.core.settings import DaoSettings, get_settings

__all__ = [
    "AuditError",
    "DaoError",
    "DatabaseConnectionError",
    "DeleteError",
    "DeleteException",
    "EntityMappingError",
    "ErrorCategory",
    "ErrorContext",
    "IllegalStateError",
    "InvalidPaginationError",
    "InvalidProjectionError",
    "InvalidRestrictionError",
    "NonUniqueResultError",
    "NotFoundError",
    "UnknownEntityError",
    "configure_logging",
    "get_logger",
    "DaoSettings",
    "get_settings",
]
