"""
Query executor -- compiles plans to SQLAlchemy ``Select`` and runs them.

Manifesto:
    A plan says *what* to fetch; the executor decides *how* to ask the
    store.  Restrictions become SQL expressions, dotted paths become LEFT
    OUTER joins (one alias per relationship path, shared by restrictions,
    order and projection), pagination becomes ``OFFSET``/``LIMIT`` so the
    store does the slicing.

Architecture::

    QueryPlan ──compile()──────► Select(entity | labelled columns)
              ──compile_count()► Select(count(*))  (no order / pagination)

    list(plan)    → [] when nothing matches, never None
    unique(plan)  → None | the one row | NonUniqueResultError
    count(plan)   → int, consistent with unpaginated list(plan)

Guardrails:
    ❌ DON'T: Pick the "first" row when unique() matches several
    ✅ DO: Raise NonUniqueResultError -- ambiguity is the caller's bug

    ❌ DON'T: Truncate results client-side
    ✅ DO: Push first_result / max_results into the SQL

Tags:
    query-executor, sqlalchemy, compilation, pagination, projection, daospine
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.exc import MultipleResultsFound
from sqlalchemy.orm import Session, aliased
from sqlalchemy.sql.elements import ColumnElement

from daospine.core.errors import InvalidRestrictionError, NonUniqueResultError, NotFoundError
from daospine.core.logging import get_logger
from daospine.mapping import EntityDescriptor, ResolvedPath, mapper_for, resolve_path
from daospine.query.order import Direction
from daospine.query.plan import QueryPlan
from daospine.query.restriction import Criterion, Logic, Operator, Restriction, RestrictionGroup

logger = get_logger(__name__)


class _Joins:
    """Outer joins discovered while compiling one statement."""

    def __init__(self, entity: type) -> None:
        self.entity = entity
        self._aliases: dict[str, Any] = {}
        self._joins: list[Any] = []

    def attribute(self, resolved: ResolvedPath) -> Any:
        owner: Any = self.entity
        for prefix, key in zip(resolved.join_path, resolved.relationships):
            alias = self._aliases.get(prefix)
            if alias is None:
                relationship = getattr(owner, key)
                alias = aliased(relationship.property.mapper.class_)
                self._aliases[prefix] = alias
                self._joins.append(relationship.of_type(alias))
            owner = alias
        return getattr(owner, resolved.attribute)

    def apply(self, stmt: Select[Any]) -> Select[Any]:
        for target in self._joins:
            stmt = stmt.outerjoin(target)
        return stmt


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def _compile_column_restriction(restriction: Restriction, column: Any) -> ColumnElement[bool]:
    value = restriction.operand
    if restriction.ignore_case:
        column = func.lower(column)
        value = tuple(_lower(v) for v in value) if isinstance(value, tuple) else _lower(value)

    match restriction.operator:
        case Operator.EQ:
            return column == value
        case Operator.NE:
            return column != value
        case Operator.GT:
            return column > value
        case Operator.GE:
            return column >= value
        case Operator.LT:
            return column < value
        case Operator.LE:
            return column <= value
        case Operator.LIKE:
            return column.like(value)
        case Operator.NOT_LIKE:
            return column.not_like(value)
        case Operator.STARTS_WITH:
            return column.startswith(value, autoescape=True)
        case Operator.ENDS_WITH:
            return column.endswith(value, autoescape=True)
        case Operator.IN:
            return column.in_(value)
        case Operator.NOT_IN:
            return column.not_in(value)
        case Operator.IS_NULL:
            return column.is_(None)
        case Operator.IS_NOT_NULL:
            return column.is_not(None)
        case Operator.BETWEEN:
            return column.between(value[0], value[1])
    raise InvalidRestrictionError(f"Unsupported operator {restriction.operator!r}", property=restriction.property)


def _compile_relationship_restriction(
    restriction: Restriction, resolved: ResolvedPath, relationship: Any
) -> ColumnElement[bool]:
    if resolved.is_collection:
        if restriction.operator is Operator.IS_NULL:
            return ~relationship.any()
        return relationship.any()
    match restriction.operator:
        case Operator.EQ:
            return relationship == restriction.operand
        case Operator.NE:
            return relationship != restriction.operand
        case Operator.IS_NULL:
            return relationship == None  # noqa: E711
        case _:
            return relationship != None  # noqa: E711


class QueryExecutor:
    """Binds query plans to one SQLAlchemy session.

    Parameters:
        session: The caller's unit-of-work handle.  The executor never
                 commits, flushes explicitly or closes it.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    # -- compilation -------------------------------------------------------

    def _criterion(self, criterion: Criterion, joins: _Joins, entity: type) -> ColumnElement[bool]:
        if isinstance(criterion, RestrictionGroup):
            parts = [self._criterion(member, joins, entity) for member in criterion.restrictions]
            return or_(*parts) if criterion.logic is Logic.OR else and_(*parts)
        resolved = resolve_path(entity, criterion.property)
        target = joins.attribute(resolved)
        if resolved.is_relationship:
            return _compile_relationship_restriction(criterion, resolved, target)
        return _compile_column_restriction(criterion, target)

    def compile(self, plan: QueryPlan) -> Select[Any]:
        """SQL statement returning entities or projected rows."""
        entity = plan.entity
        joins = _Joins(entity)
        where = [self._criterion(c, joins, entity) for c in plan.restrictions]

        if plan.projection is not None:
            columns = [
                joins.attribute(resolve_path(entity, path)).label(path) for path in plan.projection.paths
            ]
            stmt: Select[Any] = select(*columns).select_from(entity)
        else:
            stmt = select(entity)
            if plan.joins_collection():
                stmt = stmt.distinct()

        ordering = []
        for order in plan.order:
            column = joins.attribute(resolve_path(entity, order.property))
            ordering.append(column.desc() if order.direction is Direction.DESC else column.asc())

        stmt = joins.apply(stmt)
        if where:
            stmt = stmt.where(*where)
        if ordering:
            stmt = stmt.order_by(*ordering)
        if plan.first_result:
            stmt = stmt.offset(plan.first_result)
        if plan.max_results is not None:
            stmt = stmt.limit(plan.max_results)
        return stmt

    def compile_count(self, plan: QueryPlan) -> Select[Any]:
        """``COUNT`` over the plan's restrictions, ignoring order, projection and pagination."""
        plan = plan.for_count()
        entity = plan.entity
        joins = _Joins(entity)
        where = [self._criterion(c, joins, entity) for c in plan.restrictions]

        if plan.joins_collection():
            inner = joins.apply(select(plan.descriptor.id_column).select_from(entity))
            if where:
                inner = inner.where(*where)
            return select(func.count()).select_from(inner.distinct().subquery())

        stmt = joins.apply(select(func.count()).select_from(entity))
        if where:
            stmt = stmt.where(*where)
        return stmt

    # -- execution ---------------------------------------------------------

    def list(self, plan: QueryPlan) -> list[Any]:
        result = self.session.execute(self.compile(plan))
        rows = result.all() if plan.is_projection else result.scalars().all()
        logger.debug("query_listed", entity=plan.descriptor.name, rows=len(rows))
        return list(rows)

    def unique(self, plan: QueryPlan) -> Any:
        result = self.session.execute(self.compile(plan))
        try:
            if plan.is_projection:
                return result.one_or_none()
            return result.scalars().one_or_none()
        except MultipleResultsFound as exc:
            raise NonUniqueResultError(
                f"Query on {plan.descriptor.name} matched more than one row", cause=exc
            ).with_context(entity=plan.descriptor.name, operation="unique") from exc

    def count(self, plan: QueryPlan) -> int:
        total = self.session.execute(self.compile_count(plan)).scalar_one()
        return int(total)

    def find(self, descriptor: EntityDescriptor, entity_id: Any) -> Any:
        """Entity by identifier, or ``None``."""
        if entity_id is None:
            return None
        return self.session.get(descriptor.entity, entity_id)

    # -- attribute resolution ----------------------------------------------

    def _load_owner(self, descriptor: EntityDescriptor, target: Any, operation: str) -> Any:
        if isinstance(target, descriptor.entity):
            entity_id = descriptor.identifier_of(target)
        else:
            entity_id = target
        instance = self.find(descriptor, entity_id)
        if instance is None:
            raise NotFoundError.for_entity(descriptor.name, entity_id, operation)
        return instance

    def find_attribute(self, descriptor: EntityDescriptor, attribute: str, target: Any) -> Any:
        """Value of one dotted attribute of the entity identified by *target*.

        *target* is an identifier or an instance of the entity.  A path that
        ends on a collection relationship returns the loaded collection as a
        list; a ``None`` along the path yields ``None``.
        """
        resolved = resolve_path(descriptor.entity, attribute)
        if resolved.through_collection:
            raise InvalidRestrictionError(
                f"{attribute!r} passes through a collection; use find_list", property=attribute
            )
        value = self._load_owner(descriptor, target, "find_attribute")
        for key in (*resolved.relationships, resolved.attribute):
            if value is None:
                return None
            value = getattr(value, key)
        if resolved.is_collection:
            return list(value)
        return value

    def find_list(self, descriptor: EntityDescriptor, attribute: str, target: Any) -> list[Any]:
        """Values reached through *attribute*, flattened across collections.

        Collection relationships along the path are loaded, so the result
        is fully materialized.
        """
        resolved = resolve_path(descriptor.entity, attribute)
        values: list[Any] = [self._load_owner(descriptor, target, "find_list")]
        for key in (*resolved.relationships, resolved.attribute):
            values = list(_step(values, key))
        return values


def _step(values: Iterable[Any], key: str) -> Iterable[Any]:
    for value in values:
        if value is None:
            continue
        attr = getattr(value, key)
        relationship = mapper_for(type(value)).relationships.get(key)
        if relationship is not None and relationship.uselist:
            yield from attr
        else:
            yield attr


__all__ = ["QueryExecutor"]
