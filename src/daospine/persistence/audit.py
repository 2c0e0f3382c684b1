"""
Audit trail for DAO writes.

Manifesto:
    Every successful write can be mirrored to an audit collaborator.  Whether
    that happens, and when, is a policy of the unit of work rather than a
    boolean threaded through every signature:

    - **Immediate** (default): the record is written inside the caller's
      unit of work.  If the auditor fails the write fails with it and the
      caller rolls back both.
    - **Deferred** (``defer_until_commit=True``): records queue on the
      session and are emitted once it commits.  The data is already
      durable at that point, so an auditor failure is logged and
      swallowed.  Each record belongs to the transaction or savepoint that
      was open when it was queued: rolling a savepoint back drops only its
      records, releasing one hands them to the enclosing transaction, and
      only the outermost commit emits.

Architecture::

    PersistenceDispatcher ──► AuditTrail.emit(record, audit=None)
                                 │
                  policy.applies(audit)? ── no ──► drop
                                 │
               defer_until_commit? ── no ──► auditor.record(record)
                                 │                 (failure → AuditError)
                                yes
                                 ▼
          session.info["daospine.audit_queue"]
              (record, owning transaction)
                 │  outermost after_commit      ──► auditor.record
                 │  savepoint released          ──► owner = parent
                 │  after_soft_rollback(tx)     ──► drop records owned by tx or below
                 └─ root transaction ends       ──► cleared

Auditors:
    SessionAuditor   row in ``daospine_audit`` through the caller's session
    EngineAuditor    row in ``daospine_audit`` in its own short transaction
    LoggingAuditor   structlog ``audit_recorded`` event
    NullAuditor      discards

Tags:
    audit, unit-of-work, policy, sqlalchemy-events, daospine
"""

from __future__ import annotations

import datetime
import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import event, insert
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, SessionTransaction

from daospine.core.errors import AuditError
from daospine.core.logging import get_logger
from daospine.core.settings import DaoSettings
from daospine.orm.tables import AuditRecordTable

logger = get_logger(__name__)

_QUEUE_KEY = "daospine.audit_queue"


class AuditOperation(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    MERGE = "merge"
    DELETE = "delete"


@dataclass
class AuditRecord:
    """One audited write.

    Attributes:
        entity: Registered entity name
        entity_id: Identifier of the written row
        operation: Kind of write
        before: Column snapshot before the write (``None`` for inserts)
        after: Column snapshot after the write (``None`` for deletes)
        actor: Who performed the write, when known
    """

    entity: str
    entity_id: Any
    operation: AuditOperation
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    actor: str | None = None
    recorded_at: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity": self.entity,
            "entity_id": self.entity_id,
            "operation": self.operation.value,
            "before": self.before,
            "after": self.after,
            "actor": self.actor,
            "recorded_at": self.recorded_at.isoformat(),
        }


@dataclass(frozen=True)
class AuditPolicy:
    """When audit records are produced and emitted."""

    enabled: bool = True
    defer_until_commit: bool = False
    actor: str | None = None

    @classmethod
    def from_settings(cls, settings: DaoSettings) -> AuditPolicy:
        return cls(
            enabled=settings.audit_enabled,
            defer_until_commit=settings.audit_defer_until_commit,
            actor=settings.audit_actor,
        )

    def applies(self, audit: bool | None) -> bool:
        """Per-call override wins; ``None`` falls back to ``enabled``."""
        return self.enabled if audit is None else audit


# =============================================================================
# Snapshots
# =============================================================================


def json_safe(value: Any) -> Any:
    """Coerce a column value into something the JSON column accepts."""
    match value:
        case None | bool() | int() | float() | str():
            return value
        case datetime.datetime() | datetime.date() | datetime.time():
            return value.isoformat()
        case Decimal() | uuid.UUID():
            return str(value)
        case enum.Enum():
            return json_safe(value.value)
        case bytes():
            return value.hex()
        case dict():
            return {str(k): json_safe(v) for k, v in value.items()}
        case list() | tuple():
            return [json_safe(v) for v in value]
        case _:
            return str(value)


def snapshot(obj: Any) -> dict[str, Any]:
    """Loaded column values of a mapped instance, without emitting SQL."""
    state = sa_inspect(obj)
    loaded = state.dict
    return {
        attr.key: json_safe(loaded[attr.key])
        for attr in state.mapper.column_attrs
        if attr.key in loaded
    }


# =============================================================================
# Auditors
# =============================================================================


@runtime_checkable
class Auditor(Protocol):
    """Receives one record per audited write."""

    def record(self, record: AuditRecord) -> None: ...


def _row(record: AuditRecord) -> dict[str, Any]:
    return {
        "entity_type": record.entity,
        "entity_id": None if record.entity_id is None else str(record.entity_id),
        "operation": record.operation.value,
        "before_state": record.before,
        "after_state": record.after,
        "actor": record.actor,
        "recorded_at": record.recorded_at.replace(tzinfo=None),
    }


class SessionAuditor:
    """Writes audit rows through the caller's session (same unit of work)."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def record(self, record: AuditRecord) -> None:
        self.session.execute(insert(AuditRecordTable).values(**_row(record)))


class EngineAuditor:
    """Writes each audit row in its own transaction on *engine*.

    Suited to deferred emission, where the caller's transaction has
    already committed.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(self, record: AuditRecord) -> None:
        with self.engine.begin() as conn:
            conn.execute(insert(AuditRecordTable).values(**_row(record)))


class LoggingAuditor:
    """Emits each record as a structured log event."""

    def __init__(self, event_name: str = "audit_recorded") -> None:
        self.event_name = event_name
        self._logger = get_logger("daospine.audit")

    def record(self, record: AuditRecord) -> None:
        self._logger.info(self.event_name, **record.to_dict())


class NullAuditor:
    def record(self, record: AuditRecord) -> None:
        return None


# =============================================================================
# Emission
# =============================================================================


class AuditTrail:
    """Applies an :class:`AuditPolicy` to records produced by one session's writes."""

    def __init__(self, session: Session, auditor: Auditor, policy: AuditPolicy | None = None) -> None:
        self.session = session
        self.auditor = auditor
        self.policy = policy or AuditPolicy()

    def wants(self, audit: bool | None) -> bool:
        return self.policy.applies(audit)

    def emit(self, record: AuditRecord, audit: bool | None = None) -> None:
        if not self.policy.applies(audit):
            return
        if record.actor is None:
            record.actor = self.policy.actor
        if self.policy.defer_until_commit:
            _enqueue(self.session, self.auditor, record)
            return
        try:
            self.auditor.record(record)
        except Exception as exc:
            raise AuditError(
                f"Audit of {record.operation.value} on {record.entity} failed", cause=exc
            ).with_context(
                entity=record.entity, entity_id=record.entity_id, operation=record.operation.value
            ) from exc
        logger.debug(
            "audit_emitted", entity=record.entity, entity_id=record.entity_id, operation=record.operation.value
        )


def pending(session: Session) -> list[tuple[Auditor, AuditRecord]]:
    """Records queued on *session* and not yet emitted."""
    return [(entry.auditor, entry.record) for entry in session.info.get(_QUEUE_KEY, ())]


@dataclass
class _Queued:
    """A deferred record and the transaction whose fate it shares.

    ``owner`` is the innermost savepoint (or the root transaction) open when
    the record was queued; ``None`` means no transaction had begun yet.
    """

    owner: SessionTransaction | None
    auditor: Auditor
    record: AuditRecord


def _current_transaction(session: Session) -> SessionTransaction | None:
    return session.get_nested_transaction() or session.get_transaction()


def _boundary(transaction: SessionTransaction) -> SessionTransaction:
    """The savepoint or root transaction that actually rolls back for *transaction*."""
    while transaction.parent is not None and not transaction.nested:
        transaction = transaction.parent
    return transaction


def _within(owner: SessionTransaction | None, transaction: SessionTransaction) -> bool:
    if owner is None:
        return transaction.parent is None
    node: SessionTransaction | None = owner
    while node is not None:
        if node is transaction:
            return True
        node = node.parent
    return False


def _enqueue(session: Session, auditor: Auditor, record: AuditRecord) -> None:
    if not event.contains(session, "after_commit", _on_commit):
        event.listen(session, "after_commit", _on_commit)
        event.listen(session, "after_soft_rollback", _on_rollback)
        event.listen(session, "after_transaction_end", _on_transaction_end)
    queue = session.info.setdefault(_QUEUE_KEY, [])
    queue.append(_Queued(_current_transaction(session), auditor, record))


def _on_commit(session: Session) -> None:
    savepoint = session.get_nested_transaction()
    if savepoint is None:
        _flush_queue(session)
        return
    # Released savepoint: its records now live or die with the enclosing transaction.
    for entry in session.info.get(_QUEUE_KEY, ()):
        if entry.owner is savepoint:
            entry.owner = savepoint.parent


def _on_rollback(session: Session, previous_transaction: SessionTransaction) -> None:
    boundary = _boundary(previous_transaction)
    queue = session.info.get(_QUEUE_KEY)
    if not queue:
        return
    kept = [entry for entry in queue if not _within(entry.owner, boundary)]
    dropped = len(queue) - len(kept)
    queue[:] = kept
    if dropped:
        logger.debug("deferred_audit_discarded", records=dropped, savepoint=boundary.nested)


def _on_transaction_end(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is None:
        _discard_queue(session)


def _flush_queue(session: Session) -> None:
    queue = session.info.pop(_QUEUE_KEY, None) or []
    for entry in queue:
        record = entry.record
        try:
            entry.auditor.record(record)
        except Exception as exc:
            logger.error(
                "deferred_audit_failed",
                entity=record.entity,
                entity_id=record.entity_id,
                operation=record.operation.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )


def _discard_queue(session: Session) -> None:
    queue = session.info.pop(_QUEUE_KEY, None)
    if queue:
        logger.debug("deferred_audit_discarded", records=len(queue), savepoint=False)


__all__ = [
    "AuditOperation",
    "AuditPolicy",
    "AuditRecord",
    "AuditTrail",
    "Auditor",
    "EngineAuditor",
    "LoggingAuditor",
    "NullAuditor",
    "SessionAuditor",
    "json_safe",
    "pending",
    "snapshot",
]
