"""
Persistence dispatcher -- insert, update, merge and delete by identifier state.

Manifesto:
    Whether a write inserts, updates or reconciles depends on two things:
    the identifier state of the instance (``Unassigned | Assigned``) and the
    session state SQLAlchemy tracks for it (transient, pending, persistent,
    detached).  The dispatcher matches on both, flushes so identifiers and
    constraint violations surface immediately, and never commits: the
    transaction belongs to the caller.

Architecture::

    save            Unassigned        → add + flush                  (insert)
                    Assigned          → IllegalStateError if persistent
                                        or strict_insert, else insert
    update          Unassigned        → IllegalStateError
                    Assigned          → row must exist (NotFoundError),
                                        then flush in place / reattach
    save_or_update  Unassigned → save, Assigned → update
    save_or_merge   Unassigned → save, Assigned → merge
    merge           any               → Session.merge + flush, returns the
                                        managed instance
    delete(id)      bulk DELETE by identifier, DeleteError on missing row
                    or constraint violation
    remove(obj)     Session.delete(obj) + flush, DeleteError on failure

Guardrails:
    ❌ DON'T: Commit inside a DAO write
    ✅ DO: Flush, and leave commit / rollback to the unit of work

    ❌ DON'T: Let an IntegrityError escape a delete unlabelled
    ✅ DO: Raise DeleteError carrying entity type and identifier

Tags:
    persistence, dispatcher, identifier-state, sqlalchemy, audit, daospine
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InvalidRequestError
from sqlalchemy.orm import Session, make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.orm.util import identity_key

from daospine.core.errors import DeleteError, IllegalStateError, NotFoundError
from daospine.core.logging import get_logger
from daospine.mapping import EntityDescriptor
from daospine.persistence.audit import AuditOperation, AuditRecord, AuditTrail, json_safe, snapshot
from daospine.persistence.identity import Assigned, Unassigned, identifier_state

logger = get_logger(__name__)


class PersistenceDispatcher:
    """Writes for one session.

    Parameters:
        session: Caller-owned unit of work.
        trail: Audit emission for this session.
        strict_insert: ``save`` refuses any assigned identifier.
    """

    def __init__(self, session: Session, trail: AuditTrail, *, strict_insert: bool = False) -> None:
        self.session = session
        self.trail = trail
        self.strict_insert = strict_insert

    # -- helpers -----------------------------------------------------------

    def _stored_row(self, descriptor: EntityDescriptor, entity_id: Any) -> dict[str, Any] | None:
        """Column values currently in the store for *entity_id*, or ``None``."""
        columns = [getattr(descriptor.entity, key) for key in descriptor.column_keys]
        with self.session.no_autoflush:
            row = self.session.execute(
                select(*columns).where(descriptor.id_column == entity_id)
            ).first()
        if row is None:
            return None
        return {key: json_safe(value) for key, value in zip(descriptor.column_keys, row)}

    def _audit(
        self,
        descriptor: EntityDescriptor,
        operation: AuditOperation,
        entity_id: Any,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
        audit: bool | None,
    ) -> None:
        self.trail.emit(
            AuditRecord(
                entity=descriptor.name,
                entity_id=entity_id,
                operation=operation,
                before=before,
                after=after,
            ),
            audit,
        )

    # -- inserts / updates -------------------------------------------------

    def save(self, descriptor: EntityDescriptor, obj: Any, *, audit: bool | None = None) -> Any:
        """Insert *obj*; the store assigns the identifier when it is unassigned."""
        match identifier_state(descriptor, obj):
            case Assigned(value) if sa_inspect(obj).has_identity:
                raise IllegalStateError(
                    f"{descriptor.name} {value!r} is already persistent; use update or merge"
                ).with_context(entity=descriptor.name, entity_id=value, operation="save")
            case Assigned(value) if self.strict_insert:
                raise IllegalStateError(
                    f"{descriptor.name} already has identifier {value!r}; save only inserts new entities"
                ).with_context(entity=descriptor.name, entity_id=value, operation="save")
            case _:
                pass

        self.session.add(obj)
        self.session.flush()
        entity_id = descriptor.identifier_of(obj)
        logger.debug("entity_saved", entity=descriptor.name, entity_id=entity_id)
        self._audit(descriptor, AuditOperation.INSERT, entity_id, None, snapshot(obj), audit)
        return obj

    def update(self, descriptor: EntityDescriptor, obj: Any, *, audit: bool | None = None) -> Any:
        """Write *obj*'s state onto its existing row.

        Persistent instances are flushed in place; detached ones are
        re-attached; a transient instance carrying an identifier is treated
        as a full replacement of the row's loaded columns.
        """
        match identifier_state(descriptor, obj):
            case Unassigned():
                raise IllegalStateError(
                    f"Cannot update a {descriptor.name} without an identifier; use save"
                ).with_context(entity=descriptor.name, operation="update")
            case Assigned(value):
                entity_id = value

        before = self._stored_row(descriptor, entity_id)
        if before is None:
            raise NotFoundError.for_entity(descriptor.name, entity_id, "update")

        state = sa_inspect(obj)
        if not state.persistent:
            resident = self.session.identity_map.get(identity_key(descriptor.entity, entity_id))
            if resident is not None and resident is not obj:
                raise IllegalStateError(
                    f"Another {descriptor.name} instance with id {entity_id!r} is already in the session; use merge"
                ).with_context(entity=descriptor.name, entity_id=entity_id, operation="update")
        if state.transient:
            loaded = [
                key for key in descriptor.column_keys if key in state.dict and key != descriptor.id_attribute
            ]
            make_transient_to_detached(obj)
            for key in loaded:
                flag_modified(obj, key)
        if state.detached:
            self.session.add(obj)
        self.session.flush()
        logger.debug("entity_updated", entity=descriptor.name, entity_id=entity_id)
        self._audit(descriptor, AuditOperation.UPDATE, entity_id, before, snapshot(obj), audit)
        return obj

    def save_or_update(self, descriptor: EntityDescriptor, obj: Any, *, audit: bool | None = None) -> Any:
        match identifier_state(descriptor, obj):
            case Unassigned():
                return self.save(descriptor, obj, audit=audit)
            case Assigned():
                return self.update(descriptor, obj, audit=audit)

    def save_or_merge(self, descriptor: EntityDescriptor, obj: Any, *, audit: bool | None = None) -> Any:
        match identifier_state(descriptor, obj):
            case Unassigned():
                return self.save(descriptor, obj, audit=audit)
            case Assigned():
                return self.merge(descriptor, obj, audit=audit)

    def merge(self, descriptor: EntityDescriptor, obj: Any, *, audit: bool | None = None) -> Any:
        """Reconcile *obj*'s state into the session; returns the managed instance."""
        before = None
        match identifier_state(descriptor, obj):
            case Assigned(value):
                before = self._stored_row(descriptor, value)
            case Unassigned():
                pass

        managed = self.session.merge(obj)
        self.session.flush()
        entity_id = descriptor.identifier_of(managed)
        operation = AuditOperation.MERGE if before is not None else AuditOperation.INSERT
        logger.debug("entity_merged", entity=descriptor.name, entity_id=entity_id, inserted=before is None)
        self._audit(descriptor, operation, entity_id, before, snapshot(managed), audit)
        return managed

    # -- deletes -----------------------------------------------------------

    def delete(self, descriptor: EntityDescriptor, entity_id: Any, *, audit: bool | None = None) -> None:
        """Delete the row identified by *entity_id*."""
        if entity_id is None:
            raise DeleteError(
                f"Cannot delete a {descriptor.name} without an identifier",
                entity=descriptor.name,
                entity_id=None,
            )
        before = self._stored_row(descriptor, entity_id)
        if before is None:
            raise DeleteError(
                f"{descriptor.name} with id {entity_id!r} does not exist",
                entity=descriptor.name,
                entity_id=entity_id,
            )

        stmt = (
            sa_delete(descriptor.entity)
            .where(descriptor.id_column == entity_id)
            .execution_options(synchronize_session="auto")
        )
        try:
            result = self.session.execute(stmt)
        except IntegrityError as exc:
            raise DeleteError(
                f"Deleting {descriptor.name} {entity_id!r} violates a constraint",
                entity=descriptor.name,
                entity_id=entity_id,
                cause=exc,
            ) from exc
        if result.rowcount == 0:
            raise DeleteError(
                f"{descriptor.name} with id {entity_id!r} was not deleted",
                entity=descriptor.name,
                entity_id=entity_id,
            )
        logger.debug("entity_deleted", entity=descriptor.name, entity_id=entity_id)
        self._audit(descriptor, AuditOperation.DELETE, entity_id, before, None, audit)

    def remove(self, descriptor: EntityDescriptor, obj: Any, *, audit: bool | None = None) -> None:
        """Delete exactly *obj* through the session (cascades apply)."""
        entity_id = descriptor.identifier_of(obj)
        before = snapshot(obj)
        try:
            self.session.delete(obj)
            self.session.flush()
        except InvalidRequestError as exc:
            raise DeleteError(
                f"{descriptor.name} {entity_id!r} is not persisted", entity=descriptor.name, entity_id=entity_id, cause=exc
            ) from exc
        except StaleDataError as exc:
            raise DeleteError(
                f"{descriptor.name} {entity_id!r} no longer exists", entity=descriptor.name, entity_id=entity_id, cause=exc
            ) from exc
        except IntegrityError as exc:
            raise DeleteError(
                f"Removing {descriptor.name} {entity_id!r} violates a constraint",
                entity=descriptor.name,
                entity_id=entity_id,
                cause=exc,
            ) from exc
        logger.debug("entity_removed", entity=descriptor.name, entity_id=entity_id)
        self._audit(descriptor, AuditOperation.DELETE, entity_id, before, None, audit)


__all__ = ["PersistenceDispatcher"]
