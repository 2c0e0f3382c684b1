"""
Structured error types for daospine.

Provides a hierarchy of typed errors carrying the metadata a caller needs to
decide what went wrong with a data-access call: which entity type, which
identifier, which operation, and whether retrying could help.

Manifesto:
    - **Typed Error Hierarchy:** Build-time query mistakes, ambiguous reads,
      missing rows and failed deletes are different failures with different
      handling, so they are different classes
    - **Explicit Retry Semantics:** Only connection failures are retryable;
      daospine itself never retries
    - **Rich Context:** Errors carry entity / id / operation for logging
    - **Error Chaining:** The underlying SQLAlchemy exception is kept as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                          DaoError                                │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError          QueryError          PersistenceError   │
        │   QueryDefinitionError     NonUniqueResult     IllegalStateError │
        │    InvalidRestriction                          DeleteError       │
        │    InvalidProjection      NotFoundError        AuditError        │
        │    InvalidPagination                                             │
        │                                                                  │
        │  ConfigError              TransientError                         │
        │   UnknownEntityError       DatabaseConnectionError               │
        │   EntityMappingError                                             │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = NotFoundError.for_entity("Person", 42)
    >>> error.context.entity_id
    42
    >>> error.to_dict()["category"]
    'NOT_FOUND'

    >>> DeleteError("constraint violated").with_context(entity="Person", entity_id=7)
    DeleteError('constraint violated', category=PERSISTENCE)

Guardrails:
    ❌ DON'T: Raise InvalidRestrictionError from the executor
    ✅ DO: Validate restrictions and paths when the plan is built

    ❌ DON'T: Treat "no row" on find()/unique() as an error
    ✅ DO: Return None; raise NotFoundError only where a row is required

Tags:
    error-handling, exception-hierarchy, error-context, daospine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure (usually transient)
    DATABASE = "DATABASE"  # Connection, pool exhaustion

    # Caller mistakes (never retryable)
    VALIDATION = "VALIDATION"  # Malformed restriction, projection, pagination
    CONFIG = "CONFIG"  # Unknown entity, unsupported mapping

    # Runtime outcomes
    QUERY = "QUERY"  # Ambiguous unique() result
    NOT_FOUND = "NOT_FOUND"  # Identifier required but missing
    PERSISTENCE = "PERSISTENCE"  # Write rejected

    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        entity: Name of the entity type involved
        entity_id: Identifier value involved, when known
        operation: DAO operation that failed (``save``, ``delete``, ...)
        property: Attribute path that failed to resolve
        metadata: Additional key-value pairs
    """

    entity: str | None = None
    entity_id: Any = None
    operation: str | None = None
    property: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["entity", "entity_id", "operation", "property"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class DaoError(Exception):
    """
    Base exception for all daospine errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    rarely pass them explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> DaoError:
        """
        Add context to this error (fluent API).

        Usage:
            raise IllegalStateError("already persistent").with_context(
                entity="Person", operation="save"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS
# =============================================================================


class TransientError(DaoError):
    """Temporary error that may succeed on retry. daospine never retries itself."""

    default_category = ErrorCategory.DATABASE
    default_retryable = True


class DatabaseConnectionError(TransientError):
    """Failure to obtain the underlying store connection."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# VALIDATION ERRORS (build time)
# =============================================================================


class ValidationError(DaoError):
    """Caller supplied something that can never execute."""

    default_category = ErrorCategory.VALIDATION
    default_retryable = False


class QueryDefinitionError(ValidationError):
    """A query plan could not be built."""


class InvalidRestrictionError(QueryDefinitionError):
    """Malformed predicate: operand arity mismatch or unknown property path."""

    def __init__(self, message: str, *, property: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if property is not None:
            self.context.property = property


class InvalidProjectionError(QueryDefinitionError):
    """Empty projection or a projected path that is not a column."""

    def __init__(self, message: str, *, property: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        if property is not None:
            self.context.property = property


class InvalidPaginationError(QueryDefinitionError):
    """Negative ``first_result`` or ``max_results``."""


# =============================================================================
# READ OUTCOMES
# =============================================================================


class QueryError(DaoError):
    """A query executed but its result violates the caller's contract."""

    default_category = ErrorCategory.QUERY
    default_retryable = False


class NonUniqueResultError(QueryError):
    """A ``unique(...)`` call matched more than one row."""


class NotFoundError(DaoError):
    """An id-based read, update or delete found no row where one was required."""

    default_category = ErrorCategory.NOT_FOUND
    default_retryable = False

    @classmethod
    def for_entity(cls, entity: str, entity_id: Any, operation: str | None = None) -> NotFoundError:
        error = cls(f"{entity} with id {entity_id!r} not found")
        error.with_context(entity=entity, entity_id=entity_id, operation=operation)
        return error


# =============================================================================
# PERSISTENCE ERRORS
# =============================================================================


class PersistenceError(DaoError):
    """A write was rejected."""

    default_category = ErrorCategory.PERSISTENCE
    default_retryable = False


class IllegalStateError(PersistenceError):
    """Operation not allowed for the entity's identifier or session state."""


class DeleteError(PersistenceError):
    """
    A delete failed: constraint violation, missing row, or store rejection.

    Always carries the entity type and identifier of the offending row.
    """

    def __init__(
        self,
        message: str,
        *,
        entity: str | None = None,
        entity_id: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.entity = entity
        self.entity_id = entity_id
        self.context.entity = entity
        self.context.entity_id = entity_id
        self.context.operation = self.context.operation or "delete"


# Alias for callers that catch DeleteException.
DeleteException = DeleteError


class AuditError(PersistenceError):
    """The audit collaborator failed before the unit of work committed."""


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(DaoError):
    """Invalid configuration or entity registration."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnknownEntityError(ConfigError):
    """An entity name was used that was never registered."""


class EntityMappingError(ConfigError):
    """A class is not mapped, or does not expose exactly one identifier attribute."""


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, DaoError):
        return error.retryable
    return isinstance(error, (ConnectionError, ConnectionResetError, ConnectionRefusedError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "DaoError",
    # Transient
    "TransientError",
    "DatabaseConnectionError",
    # Validation
    "ValidationError",
    "QueryDefinitionError",
    "InvalidRestrictionError",
    "InvalidProjectionError",
    "InvalidPaginationError",
    # Reads
    "QueryError",
    "NonUniqueResultError",
    "NotFoundError",
    # Writes
    "PersistenceError",
    "IllegalStateError",
    "DeleteError",
    "DeleteException",
    "AuditError",
    # Config
    "ConfigError",
    "UnknownEntityError",
    "EntityMappingError",
    # Utilities
    "is_retryable",
]
