"""Generic data-access object over a SQLAlchemy session.

Provides :class:`BaseDAO` -- one object per entity type that exposes the
whole read / write surface: fluent queries, convenience reads, identifier
state dispatch for writes, audit, lazy references and native SQL.

Architecture::

    ┌────────────────────────────────────────────────────────────────────┐
    │                          BaseDAO[T]                                │
    │                                                                    │
    │   session: Session         ← caller's unit of work (never committed)│
    │   entity_class: type[T]    ← resolved once through EntityRegistry  │
    │                                                                    │
    │   query()                  → QueryBuilder[T] bound to the executor │
    │   find / unique / list / list_attributes / list_all / count        │
    │   find_attribute / find_list                                       │
    │   save / update / save_or_update / save_or_merge / merge           │
    │   delete(id) / remove(obj)                                         │
    │   get_initialized(ref)     → LazyRef or instance, loaded once      │
    │   native_query(path)       → text() / select().from_statement()    │
    │   connection()             → DB-API connection                     │
    └────────────────────────────────────────────────────────────────────┘

Every read accepts the same filter forms: nothing, ``(property, value)``,
a mapping of property to value, one ``Restriction`` or ``RestrictionGroup``,
or a list of them (AND).  ``order``, ``first_result``, ``max_results``,
``attributes`` and ``entity`` are keyword arguments.

Usage:
    >>> dao = BaseDAO(session, Person)
    >>> dao.list("age", 30, order="name")
    [Person(id=1, name='Ann'), Person(id=3, name='Cid')]
    >>> dao.count({"department.name": "Sales"})
    2
    >>> dao.save(Person(name="Dee", age=25)).id
    4

Tags:
    dao, repository, sqlalchemy, generic, daospine
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Generic, TypeVar

from sqlalchemy.orm import Session

from daospine.core.settings import DaoSettings, get_settings
from daospine.mapping import EntityDescriptor, EntityRegistry, default_registry
from daospine.orm.session import raw_connection
from daospine.persistence.audit import AuditPolicy, AuditTrail, Auditor, EngineAuditor, SessionAuditor
from daospine.persistence.dispatcher import PersistenceDispatcher
from daospine.persistence.lazy import get_initialized
from daospine.query.builder import QueryBuilder
from daospine.query.executor import QueryExecutor
from daospine.query.native import FileNativeQueryProvider, NativeQueryProvider
from daospine.query.order import OrderSpec
from daospine.query.projection import ProjectionLike
from daospine.query.restriction import UNSET

T = TypeVar("T")


class BaseDAO(Generic[T]):
    """Data access for one entity type.

    Parameters:
        session: Caller-owned SQLAlchemy session.  The DAO flushes but never
                 commits, rolls back or closes it.
        entity: Default entity type (mapped class or registered name).
        registry: Entity registry; defaults to the process-wide one.
        auditor: Audit collaborator.  Defaults to :class:`SessionAuditor`,
                 or :class:`EngineAuditor` when audit is deferred.
        audit_policy: When to audit; defaults from settings.
        settings: Defaults to :func:`get_settings`.
        native_queries: Native SQL provider; defaults to a
                 :class:`FileNativeQueryProvider` on ``native_query_dir``.
    """

    def __init__(
        self,
        session: Session,
        entity: type[T] | str,
        *,
        registry: EntityRegistry | None = None,
        auditor: Auditor | None = None,
        audit_policy: AuditPolicy | None = None,
        settings: DaoSettings | None = None,
        native_queries: NativeQueryProvider | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._registry = registry or default_registry
        self._descriptor = self._registry.resolve(entity)
        self.audit_policy = audit_policy or AuditPolicy.from_settings(self._settings)
        if auditor is None:
            if self.audit_policy.defer_until_commit:
                auditor = EngineAuditor(session.get_bind())
            else:
                auditor = SessionAuditor(session)
        self.auditor = auditor
        self._native = native_queries or FileNativeQueryProvider(self._settings.native_query_dir)
        self._executor = QueryExecutor(session)
        self._dispatcher = PersistenceDispatcher(
            session,
            AuditTrail(session, auditor, self.audit_policy),
            strict_insert=self._settings.strict_insert,
        )

    # -- configuration -----------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def entity_class(self) -> type[T]:
        return self._descriptor.entity

    @entity_class.setter
    def entity_class(self, entity: type[T] | str) -> None:
        self._descriptor = self._registry.resolve(entity)

    @property
    def descriptor(self) -> EntityDescriptor:
        return self._descriptor

    def with_audit(self, enabled: bool) -> BaseDAO[T]:
        """A DAO on the same session whose writes are (or are not) audited by default."""
        return BaseDAO(
            self._session,
            self._descriptor.entity,
            registry=self._registry,
            auditor=self.auditor,
            audit_policy=replace(self.audit_policy, enabled=enabled),
            settings=self._settings,
            native_queries=self._native,
        )

    def _descriptor_for(self, entity: type | str | None) -> EntityDescriptor:
        if entity is None:
            return self._descriptor
        return self._registry.resolve(entity)

    def _descriptor_of(self, obj: Any) -> EntityDescriptor:
        if isinstance(obj, self._descriptor.entity):
            return self._descriptor
        return self._registry.resolve(type(obj))

    # -- reads -------------------------------------------------------------

    def query(self, entity: type | str | None = None) -> QueryBuilder[T]:
        """Fluent builder bound to this DAO's session."""
        builder: QueryBuilder[T] = QueryBuilder(
            self._descriptor.entity, executor=self._executor, registry=self._registry
        )
        return builder.for_entity(entity)

    def _build(
        self,
        criteria: Any,
        value: Any,
        *,
        order: OrderSpec = None,
        first_result: int | None = None,
        max_results: int | None = None,
        attributes: ProjectionLike | None = None,
        entity: type | str | None = None,
    ) -> QueryBuilder[Any]:
        return (
            self.query(entity)
            .where(criteria, value)
            .order_by(order)
            .attributes(attributes)
            .paginate(first_result, max_results)
        )

    def find(self, entity_id: Any, *, entity: type | str | None = None) -> T | None:
        """Entity by identifier, or ``None``."""
        return self._executor.find(self._descriptor_for(entity), entity_id)

    def list(
        self,
        criteria: Any = None,
        value: Any = UNSET,
        *,
        order: OrderSpec = None,
        first_result: int | None = None,
        max_results: int | None = None,
        attributes: ProjectionLike | None = None,
        entity: type | str | None = None,
    ) -> list[Any]:
        """Entities (or projected rows) matching every restriction."""
        return self._build(
            criteria,
            value,
            order=order,
            first_result=first_result,
            max_results=max_results,
            attributes=attributes,
            entity=entity,
        ).list()

    def unique(
        self,
        criteria: Any = None,
        value: Any = UNSET,
        *,
        attributes: ProjectionLike | None = None,
        entity: type | str | None = None,
    ) -> Any:
        """The single match, ``None`` when nothing matches.

        Raises:
            NonUniqueResultError: more than one row matched.
        """
        return self._build(criteria, value, attributes=attributes, entity=entity).unique()

    def list_attributes(
        self,
        attributes: ProjectionLike,
        criteria: Any = None,
        value: Any = UNSET,
        *,
        order: OrderSpec = None,
        first_result: int | None = None,
        max_results: int | None = None,
        entity: type | str | None = None,
    ) -> list[Any]:
        """Rows holding only *attributes*, addressable by path (``row._mapping["department.name"]``)."""
        return self.list(
            criteria,
            value,
            order=order,
            first_result=first_result,
            max_results=max_results,
            attributes=attributes,
            entity=entity,
        )

    def list_all(
        self,
        *,
        order: OrderSpec = None,
        first_result: int | None = None,
        max_results: int | None = None,
        entity: type | str | None = None,
    ) -> list[Any]:
        return self.list(order=order, first_result=first_result, max_results=max_results, entity=entity)

    def count(self, criteria: Any = None, value: Any = UNSET, *, entity: type | str | None = None) -> int:
        return self._build(criteria, value, entity=entity).count()

    def find_attribute(self, attribute: str, target: Any, *, entity: type | str | None = None) -> Any:
        """One attribute of the entity identified by *target* (identifier or instance).

        Raises:
            NotFoundError: *target* does not resolve to a row.
        """
        return self._executor.find_attribute(self._descriptor_for(entity), attribute, target)

    def find_list(self, attribute: str, target: Any, *, entity: type | str | None = None) -> list[Any]:
        """Collection reached through *attribute*, flattened into a list.

        Raises:
            NotFoundError: *target* does not resolve to a row.
        """
        return self._executor.find_list(self._descriptor_for(entity), attribute, target)

    def get_initialized(self, ref: Any) -> Any:
        return get_initialized(self._session, ref)

    # -- writes ------------------------------------------------------------

    def save(self, obj: T, *, audit: bool | None = None) -> T:
        return self._dispatcher.save(self._descriptor_of(obj), obj, audit=audit)

    def update(self, obj: T, *, audit: bool | None = None) -> T:
        return self._dispatcher.update(self._descriptor_of(obj), obj, audit=audit)

    def save_or_update(self, obj: T, *, audit: bool | None = None) -> T:
        return self._dispatcher.save_or_update(self._descriptor_of(obj), obj, audit=audit)

    def save_or_merge(self, obj: T, *, audit: bool | None = None) -> T:
        return self._dispatcher.save_or_merge(self._descriptor_of(obj), obj, audit=audit)

    def merge(self, obj: T, *, audit: bool | None = None) -> T:
        """Reconcile *obj* into the session; use the returned instance afterwards."""
        return self._dispatcher.merge(self._descriptor_of(obj), obj, audit=audit)

    def delete(self, entity_id: Any, *, entity: type | str | None = None, audit: bool | None = None) -> None:
        """Delete by identifier.

        Raises:
            DeleteError: no such row, or a constraint prevents the delete.
        """
        self._dispatcher.delete(self._descriptor_for(entity), entity_id, audit=audit)

    def remove(self, obj: T, *, audit: bool | None = None) -> None:
        self._dispatcher.remove(self._descriptor_of(obj), obj, audit=audit)

    # -- escape hatches ----------------------------------------------------

    def connection(self) -> Any:
        """Raw DB-API connection of the current transaction."""
        return raw_connection(self._session)

    def native_query(self, path: str | Path, entity: type | str | None = None) -> Any:
        """Statement loaded from a SQL file, ready for ``session.execute(stmt, params)``."""
        target = None if entity is None else self._registry.resolve(entity).entity
        return self._native.get(path, target)


__all__ = ["BaseDAO"]
