"""The immutable query plan a builder produces and an executor runs.

A plan is validated in full when it is created: pagination bounds, every
restriction path, every order path and every projected path are checked
against the entity mapping.  An executor therefore never sees a plan that
can fail for a reason the caller could have caught earlier.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from daospine.core.errors import InvalidPaginationError, InvalidRestrictionError
from daospine.mapping import EntityDescriptor, ResolvedPath, mapper_for, resolve_path
from daospine.query.order import OrderBy
from daospine.query.projection import ProjectionSpec
from daospine.query.restriction import Criterion, Operator, Restriction, RestrictionGroup

# Operators that make sense when the path ends on a relationship.
_RELATIONSHIP_OPERATORS = frozenset({Operator.EQ, Operator.NE, Operator.IS_NULL, Operator.IS_NOT_NULL})
_COLLECTION_OPERATORS = frozenset({Operator.IS_NULL, Operator.IS_NOT_NULL})


def _check_bound(name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidPaginationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidPaginationError(f"{name} must be >= 0, got {value}")


@dataclass(frozen=True)
class QueryPlan:
    """Target entity, restrictions, projection, order and pagination window."""

    descriptor: EntityDescriptor
    restrictions: tuple[Criterion, ...] = ()
    projection: ProjectionSpec | None = None
    order: tuple[OrderBy, ...] = ()
    first_result: int | None = None
    max_results: int | None = None

    def __post_init__(self) -> None:
        _check_bound("first_result", self.first_result)
        _check_bound("max_results", self.max_results)
        object.__setattr__(self, "restrictions", tuple(self.restrictions))
        object.__setattr__(self, "order", tuple(self.order))
        self._validate_paths()

    def _validate_paths(self) -> None:
        entity = self.descriptor.entity
        for restriction in _flatten(self.restrictions):
            resolved = resolve_path(entity, restriction.property)
            _check_restriction_target(restriction, resolved)
        for order in self.order:
            resolved = resolve_path(entity, order.property)
            if resolved.is_relationship:
                raise InvalidRestrictionError(
                    f"Cannot order by relationship {order.property!r}", property=order.property
                )
            if resolved.through_collection:
                raise InvalidRestrictionError(
                    f"Cannot order by {order.property!r}: the path passes through a collection",
                    property=order.property,
                )
        if self.projection is not None:
            self.projection.validate(entity)

    # -- derived -----------------------------------------------------------

    @property
    def entity(self) -> type:
        return self.descriptor.entity

    @property
    def is_projection(self) -> bool:
        return self.projection is not None

    @property
    def is_paginated(self) -> bool:
        return self.first_result is not None or self.max_results is not None

    def resolved_paths(self) -> list[ResolvedPath]:
        """All restriction, order and projection paths, resolved."""
        paths = [r.property for r in _flatten(self.restrictions)]
        paths += [o.property for o in self.order]
        if self.projection is not None:
            paths += list(self.projection.paths)
        return [resolve_path(self.entity, p) for p in paths]

    def joins_collection(self) -> bool:
        """Whether a restriction walks a one-to-many / many-to-many relationship."""
        return any(
            resolve_path(self.entity, r.property).through_collection for r in _flatten(self.restrictions)
        )

    def for_count(self) -> QueryPlan:
        """Same restrictions; no projection, order or pagination."""
        return replace(self, projection=None, order=(), first_result=None, max_results=None)


def _flatten(criteria: tuple[Criterion, ...]) -> list[Restriction]:
    flat: list[Restriction] = []
    for criterion in criteria:
        if isinstance(criterion, RestrictionGroup):
            flat.extend(_flatten(criterion.restrictions))
        else:
            flat.append(criterion)
    return flat


def _check_restriction_target(restriction: Restriction, resolved: ResolvedPath) -> None:
    if not resolved.is_relationship:
        return
    allowed = _COLLECTION_OPERATORS if resolved.is_collection else _RELATIONSHIP_OPERATORS
    if restriction.operator not in allowed or restriction.ignore_case:
        raise InvalidRestrictionError(
            f"{restriction.operator.value} is not supported on relationship {restriction.property!r}",
            property=restriction.property,
        )
    if resolved.is_collection or restriction.operator not in (Operator.EQ, Operator.NE):
        return
    target = mapper_for(resolved.owner).relationships[resolved.attribute].mapper.class_
    if restriction.operand is not None and not isinstance(restriction.operand, target):
        raise InvalidRestrictionError(
            f"{restriction.property!r} compares to a {target.__name__} instance, got {restriction.operand!r}",
            property=restriction.property,
        )


__all__ = ["QueryPlan"]
