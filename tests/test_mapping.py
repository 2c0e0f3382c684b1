"""Tests for daospine.mapping (entity registry and attribute paths)."""

from __future__ import annotations

import pytest

from daospine.core.errors import EntityMappingError, InvalidRestrictionError, UnknownEntityError
from daospine.mapping import EntityDescriptor, EntityRegistry, mapper_for, resolve_path
from tests._support.models import Department, Membership, Person, Tag, Unmapped


class TestMapperFor:
    def test_mapped_class(self):
        assert mapper_for(Person).class_ is Person

    def test_unmapped_class(self):
        with pytest.raises(EntityMappingError):
            mapper_for(Unmapped)

    def test_instance_is_not_a_class(self):
        with pytest.raises(EntityMappingError):
            mapper_for(Person(name="x", age=1))


class TestEntityDescriptor:
    def test_describe(self):
        d = EntityDescriptor.describe(Person)
        assert d.name == "Person"
        assert d.id_attribute == "id"
        assert "bio" in d.column_keys
        assert d.id_column is Person.id

    def test_natural_key(self):
        assert EntityDescriptor.describe(Tag).id_attribute == "code"

    def test_composite_key_rejected(self):
        with pytest.raises(EntityMappingError, match="exactly one identifier"):
            EntityDescriptor.describe(Membership)

    def test_identifier_of(self):
        d = EntityDescriptor.describe(Person)
        assert d.identifier_of(Person(id=4, name="Dee", age=1)) == 4
        assert d.identifier_of(Person(name="Eve", age=1)) is None

    def test_identifier_of_wrong_type(self):
        with pytest.raises(EntityMappingError):
            EntityDescriptor.describe(Person).identifier_of(Department(name="x"))


class TestEntityRegistry:
    def test_resolve_class_registers_once(self):
        registry = EntityRegistry()
        first = registry.resolve(Person)
        assert registry.resolve(Person) is first
        assert Person in registry
        assert "Person" in registry

    def test_resolve_by_name(self):
        registry = EntityRegistry()
        registry.register(Department, name="dept")
        assert registry.resolve("dept").entity is Department
        assert registry.names() == ["dept"]

    def test_unknown_name(self):
        with pytest.raises(UnknownEntityError):
            EntityRegistry().resolve("Nope")

    def test_name_collision(self):
        registry = EntityRegistry()
        registry.register(Person, name="thing")
        with pytest.raises(EntityMappingError):
            registry.register(Department, name="thing")

    def test_clear(self):
        registry = EntityRegistry()
        registry.register(Person)
        registry.clear()
        assert registry.names() == []


class TestResolvePath:
    def test_column(self):
        resolved = resolve_path(Person, "age")
        assert resolved.relationships == ()
        assert resolved.attribute == "age"
        assert not resolved.is_relationship
        assert resolved.owner is Person

    def test_many_to_one_column(self):
        resolved = resolve_path(Person, "department.name")
        assert resolved.relationships == ("department",)
        assert resolved.join_path == ("department",)
        assert resolved.owner is Department
        assert not resolved.through_collection

    def test_through_collection(self):
        resolved = resolve_path(Department, "people.name")
        assert resolved.through_collection

    def test_relationship_endpoint(self):
        resolved = resolve_path(Department, "people")
        assert resolved.is_relationship
        assert resolved.is_collection

    def test_nested_join_path(self):
        resolved = resolve_path(Person, "department.people.age")
        assert resolved.join_path == ("department", "department.people")

    def test_unknown_attribute(self):
        with pytest.raises(InvalidRestrictionError) as exc_info:
            resolve_path(Person, "department.nme")
        assert exc_info.value.context.property == "department.nme"

    def test_column_in_middle_of_path(self):
        with pytest.raises(InvalidRestrictionError, match="not a relationship"):
            resolve_path(Person, "name.length")
