"""Tests for QueryPlan validation and the fluent QueryBuilder."""

from __future__ import annotations

import pytest

from daospine.core.errors import (
    IllegalStateError,
    InvalidPaginationError,
    InvalidProjectionError,
    InvalidRestrictionError,
    UnknownEntityError,
)
from daospine.mapping import EntityDescriptor, EntityRegistry
from daospine.query.builder import QueryBuilder
from daospine.query.order import OrderBy
from daospine.query.plan import QueryPlan
from daospine.query.projection import ProjectionSpec
from daospine.query.restriction import Restriction
from tests._support.models import Department, Person


@pytest.fixture
def person() -> EntityDescriptor:
    return EntityDescriptor.describe(Person)


class TestQueryPlan:
    def test_defaults(self, person):
        plan = QueryPlan(person)
        assert plan.restrictions == ()
        assert not plan.is_projection
        assert not plan.is_paginated
        assert plan.entity is Person

    @pytest.mark.parametrize(
        ("first", "maximum"),
        [(-1, None), (None, -5), (True, None), (None, 2.5), ("3", None)],
    )
    def test_invalid_pagination(self, person, first, maximum):
        with pytest.raises(InvalidPaginationError):
            QueryPlan(person, first_result=first, max_results=maximum)

    def test_zero_bounds_allowed(self, person):
        plan = QueryPlan(person, first_result=0, max_results=0)
        assert plan.is_paginated

    def test_unknown_restriction_path(self, person):
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(person, restrictions=(Restriction.eq("department.nme", "x"),))

    def test_unknown_path_inside_group(self, person):
        group = Restriction.eq("age", 1) | Restriction.eq("salary", 2)
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(person, restrictions=(group,))

    def test_order_by_relationship_rejected(self, person):
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(person, order=(OrderBy("department"),))

    def test_order_through_collection_rejected(self):
        dept = EntityDescriptor.describe(Department)
        with pytest.raises(InvalidRestrictionError) as exc_info:
            QueryPlan(dept, order=(OrderBy("people.name"),))
        assert exc_info.value.context.property == "people.name"

    def test_many_to_one_operand_must_be_entity(self, person):
        QueryPlan(person, restrictions=(Restriction.eq("department", Department(id=1, name="Sales")),))
        QueryPlan(person, restrictions=(Restriction.ne("department", Department(id=1, name="Sales")),))
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(person, restrictions=(Restriction.eq("department", 1),))
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(person, restrictions=(Restriction.ne("department", Person(id=1, name="Ann", age=30)),))

    def test_projection_validated(self, person):
        with pytest.raises(InvalidProjectionError):
            QueryPlan(person, projection=ProjectionSpec(("department",)))

    def test_relationship_operators(self, person):
        QueryPlan(person, restrictions=(Restriction.is_null("department"),))
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(person, restrictions=(Restriction.gt("department", 1),))

    def test_collection_only_nullness(self):
        dept = EntityDescriptor.describe(Department)
        QueryPlan(dept, restrictions=(Restriction.is_not_null("people"),))
        with pytest.raises(InvalidRestrictionError):
            QueryPlan(dept, restrictions=(Restriction.eq("people", 1),))

    def test_joins_collection(self):
        dept = EntityDescriptor.describe(Department)
        assert QueryPlan(dept, restrictions=(Restriction.eq("people.age", 30),)).joins_collection()
        assert not QueryPlan(dept, restrictions=(Restriction.eq("name", "x"),)).joins_collection()

    def test_for_count_drops_window(self, person):
        plan = QueryPlan(
            person,
            restrictions=(Restriction.eq("age", 30),),
            projection=ProjectionSpec(("id",)),
            order=(OrderBy("name"),),
            first_result=1,
            max_results=1,
        )
        counted = plan.for_count()
        assert counted.restrictions == plan.restrictions
        assert counted.projection is None
        assert counted.order == ()
        assert not counted.is_paginated

    def test_resolved_paths(self, person):
        plan = QueryPlan(
            person,
            restrictions=(Restriction.eq("age", 30),),
            order=(OrderBy("department.name"),),
        )
        assert [p.path for p in plan.resolved_paths()] == ["age", "department.name"]


class TestQueryBuilder:
    def test_build_all_fields(self):
        plan = (
            QueryBuilder(Person, registry=EntityRegistry())
            .where({"age": 30})
            .order_by("name desc")
            .attributes("id, name")
            .paginate(0, 10)
            .build()
        )
        assert plan.restrictions == (Restriction.eq("age", 30),)
        assert plan.order == (OrderBy.desc("name"),)
        assert plan.projection.paths == ("id", "name")
        assert (plan.first_result, plan.max_results) == (0, 10)

    def test_where_twice(self):
        builder = QueryBuilder(Person, registry=EntityRegistry()).where("age", 30)
        with pytest.raises(IllegalStateError):
            builder.where("name", "Ann")

    def test_invalid_path_fails_at_build(self):
        builder = QueryBuilder(Person, registry=EntityRegistry()).where("nickname", "x")
        with pytest.raises(InvalidRestrictionError):
            builder.build()

    def test_for_entity_by_name(self):
        registry = EntityRegistry()
        registry.register(Department)
        plan = QueryBuilder(Person, registry=registry).for_entity("Department").build()
        assert plan.entity is Department

    def test_for_entity_none_keeps_default(self):
        builder = QueryBuilder(Person, registry=EntityRegistry()).for_entity(None)
        assert builder.descriptor.entity is Person

    def test_unknown_entity_name(self):
        with pytest.raises(UnknownEntityError):
            QueryBuilder("Ghost", registry=EntityRegistry())

    def test_unbound_builder_cannot_execute(self):
        with pytest.raises(IllegalStateError):
            QueryBuilder(Person, registry=EntityRegistry()).list()

    def test_attributes_none_clears(self):
        plan = QueryBuilder(Person, registry=EntityRegistry()).attributes("id").attributes(None).build()
        assert plan.projection is None
