"""
Fluent query builder -- one configuration object instead of N overloads.

Manifesto:
    A generic DAO traditionally grows dozens of ``list``/``count``/``unique``
    overloads: with a property/value pair, with a map, with one restriction,
    with a list, with an order, with pagination, with attributes, with a
    different class...  Every one of those is the same query with one field
    filled in.  ``QueryBuilder`` holds those fields, the DAO's convenience
    methods are sugar over it, and ``build()`` freezes them into a
    :class:`~daospine.query.plan.QueryPlan`.

Architecture::

    dao.query()                       QueryBuilder(descriptor, executor)
       .where("age", 30)              → filter (exactly one form per builder)
       .order_by("name desc")         → order
       .attributes("id, name")        → projection
       .paginate(0, 20)               → window
       .build()                       → QueryPlan (validated, immutable)
       .list() / .unique() / .count() → QueryExecutor

Guardrails:
    ❌ DON'T: Share one builder between concurrent callers
    ✅ DO: Create a fresh builder per call -- they are cheap

    ❌ DON'T: Call where() twice expecting the filters to merge
    ✅ DO: Pass a list of restrictions (AND) or a RestrictionGroup

Tags:
    query-builder, fluent-api, criteria, pagination, projection, daospine
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from daospine.core.errors import IllegalStateError
from daospine.core.logging import get_logger
from daospine.mapping import EntityDescriptor, EntityRegistry, default_registry
from daospine.query.order import OrderBy, OrderSpec, parse_order
from daospine.query.plan import QueryPlan
from daospine.query.projection import ProjectionLike, ProjectionSpec
from daospine.query.restriction import UNSET, Criterion, normalize_criteria

if TYPE_CHECKING:
    from daospine.query.executor import QueryExecutor

T = TypeVar("T")

logger = get_logger(__name__)


class QueryBuilder(Generic[T]):
    """Collects filter, order, projection and pagination for one query.

    Parameters:
        entity: Default target type (class or registered name).
        executor: Optional executor enabling ``list()``/``unique()``/``count()``.
        registry: Registry used to resolve entity names.
    """

    def __init__(
        self,
        entity: type[T] | str,
        *,
        executor: QueryExecutor | None = None,
        registry: EntityRegistry | None = None,
    ) -> None:
        self._registry = registry or default_registry
        self._descriptor = self._registry.resolve(entity)
        self._executor = executor
        self._criteria: tuple[Criterion, ...] = ()
        self._filtered = False
        self._order: tuple[OrderBy, ...] = ()
        self._projection: ProjectionSpec | None = None
        self._first_result: int | None = None
        self._max_results: int | None = None

    # -- setters -----------------------------------------------------------

    def for_entity(self, entity: type | str | None) -> QueryBuilder[Any]:
        """Query a different (e.g. related) entity type; ``None`` keeps the default."""
        if entity is not None:
            self._descriptor = self._registry.resolve(entity)
        return self

    def where(self, criteria: Any = None, value: Any = UNSET) -> QueryBuilder[T]:
        """Set the filter: a restriction list, one restriction, a property and
        value, or a mapping.  A builder accepts one filter."""
        if self._filtered:
            raise IllegalStateError("This query already has a filter; pass all restrictions in one call")
        self._criteria = normalize_criteria(criteria, value)
        self._filtered = True
        return self

    def order_by(self, order: OrderSpec) -> QueryBuilder[T]:
        self._order = parse_order(order)
        return self

    def attributes(self, spec: ProjectionLike | None) -> QueryBuilder[T]:
        self._projection = None if spec is None else ProjectionSpec.parse(spec)
        return self

    def paginate(self, first_result: int | None = None, max_results: int | None = None) -> QueryBuilder[T]:
        self._first_result = first_result
        self._max_results = max_results
        return self

    # -- terminal ----------------------------------------------------------

    @property
    def descriptor(self) -> EntityDescriptor:
        return self._descriptor

    def build(self) -> QueryPlan:
        """Freeze the builder into a validated :class:`QueryPlan`."""
        plan = QueryPlan(
            descriptor=self._descriptor,
            restrictions=self._criteria,
            projection=self._projection,
            order=self._order,
            first_result=self._first_result,
            max_results=self._max_results,
        )
        logger.debug(
            "query_plan_built",
            entity=plan.descriptor.name,
            restrictions=len(plan.restrictions),
            projection=str(plan.projection) if plan.projection else None,
            order=[str(o) for o in plan.order],
            first_result=plan.first_result,
            max_results=plan.max_results,
        )
        return plan

    def list(self) -> list[Any]:
        return self._require_executor().list(self.build())

    def unique(self) -> Any:
        return self._require_executor().unique(self.build())

    def count(self) -> int:
        return self._require_executor().count(self.build())

    def _require_executor(self) -> QueryExecutor:
        if self._executor is None:
            raise IllegalStateError("This builder is not bound to an executor; call build() instead")
        return self._executor


__all__ = ["QueryBuilder"]
