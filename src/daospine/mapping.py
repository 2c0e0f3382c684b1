"""
Entity registry and attribute-path resolution over the SQLAlchemy mapper.

Manifesto:
    The DAO is generic: it never knows an entity's table, columns or key
    until runtime.  Everything it needs is read from the SQLAlchemy mapper
    once, when the entity type is registered, and kept in an
    :class:`EntityDescriptor`.  Per-call entity overrides look the
    descriptor up by class or by registered name; nothing is reflected on
    the hot path.

Architecture::

    EntityRegistry
      register(Person)          → EntityDescriptor(entity, name, id_attribute)
      resolve("Person")         → same descriptor
      resolve(Person)           → same descriptor (auto-registers once)

    resolve_path(Person, "department.name")
      → ResolvedPath(relationships=("department",), attribute="name", ...)

Guardrails:
    ❌ DON'T: Accept composite primary keys -- dispatch needs one identifier
    ✅ DO: Raise EntityMappingError at registration time

    ❌ DON'T: Defer unknown-path errors to SQL execution
    ✅ DO: Resolve paths while the query plan is built

Tags:
    mapping, registry, sqlalchemy, mapper, attribute-path, daospine
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper

from daospine.core.errors import EntityMappingError, InvalidRestrictionError, UnknownEntityError
from daospine.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Entity descriptors
# =============================================================================


def mapper_for(entity: Any) -> Mapper[Any]:
    """Return the mapper of a mapped class, or raise ``EntityMappingError``."""
    insp = sa_inspect(entity, raiseerr=False) if isinstance(entity, type) else None
    if not isinstance(insp, Mapper):
        raise EntityMappingError(f"{entity!r} is not a mapped entity class")
    return insp


@dataclass(frozen=True)
class EntityDescriptor:
    """What the DAO needs to know about one mapped entity type."""

    entity: type
    name: str
    id_attribute: str

    @classmethod
    def describe(cls, entity: type, name: str | None = None) -> EntityDescriptor:
        mapper = mapper_for(entity)
        primary_key = mapper.primary_key
        if len(primary_key) != 1:
            raise EntityMappingError(
                f"{entity.__name__} must expose exactly one identifier attribute, "
                f"found {len(primary_key)}"
            ).with_context(entity=entity.__name__)
        id_attribute = mapper.get_property_by_column(primary_key[0]).key
        return cls(entity=entity, name=name or entity.__name__, id_attribute=id_attribute)

    @property
    def id_column(self) -> Any:
        """The instrumented identifier attribute (``Person.id``)."""
        return getattr(self.entity, self.id_attribute)

    @property
    def column_keys(self) -> tuple[str, ...]:
        return tuple(prop.key for prop in mapper_for(self.entity).column_attrs)

    def identifier_of(self, obj: Any) -> Any:
        """Current identifier value of *obj* (``None`` when unassigned)."""
        if not isinstance(obj, self.entity):
            raise EntityMappingError(
                f"Expected a {self.name} instance, got {type(obj).__name__}"
            ).with_context(entity=self.name)
        return getattr(obj, self.id_attribute, None)


class EntityRegistry:
    """Name ↔ descriptor registry, resolved once per entity type."""

    def __init__(self) -> None:
        self._by_class: dict[type, EntityDescriptor] = {}
        self._by_name: dict[str, EntityDescriptor] = {}

    def register(self, entity: type, name: str | None = None) -> EntityDescriptor:
        existing = self._by_class.get(entity)
        if existing is not None and (name is None or name == existing.name):
            return existing
        descriptor = EntityDescriptor.describe(entity, name)
        other = self._by_name.get(descriptor.name)
        if other is not None and other.entity is not entity:
            raise EntityMappingError(
                f"Entity name {descriptor.name!r} is already registered for {other.entity.__name__}"
            )
        self._by_class[entity] = descriptor
        self._by_name[descriptor.name] = descriptor
        logger.debug("entity_registered", entity=descriptor.name, id_attribute=descriptor.id_attribute)
        return descriptor

    def resolve(self, entity: type | str) -> EntityDescriptor:
        """Descriptor for a class (auto-registered) or a registered name."""
        if isinstance(entity, str):
            try:
                return self._by_name[entity]
            except KeyError:
                raise UnknownEntityError(f"No entity registered under {entity!r}") from None
        descriptor = self._by_class.get(entity)
        if descriptor is None:
            descriptor = self.register(entity)
        return descriptor

    def names(self) -> list[str]:
        return sorted(self._by_name)

    def __contains__(self, entity: object) -> bool:
        if isinstance(entity, str):
            return entity in self._by_name
        return entity in self._by_class

    def clear(self) -> None:
        self._by_class.clear()
        self._by_name.clear()


default_registry = EntityRegistry()


# =============================================================================
# Attribute paths
# =============================================================================


@dataclass(frozen=True)
class ResolvedPath:
    """A dotted attribute path checked against the mapper.

    Attributes:
        path: The original dotted path
        relationships: Relationship keys walked before the final attribute
        attribute: Key of the final attribute
        is_relationship: Final attribute is a relationship, not a column
        is_collection: Final attribute is a collection relationship
        through_collection: A walked relationship is one-to-many / many-to-many
        owner: Mapped class that owns the final attribute
    """

    path: str
    relationships: tuple[str, ...]
    attribute: str
    is_relationship: bool
    is_collection: bool
    through_collection: bool
    owner: type

    @property
    def join_path(self) -> tuple[str, ...]:
        """Cumulative dotted prefixes, one per join: ``("a", "a.b")``."""
        return tuple(".".join(self.relationships[: i + 1]) for i in range(len(self.relationships)))


def resolve_path(entity: type, path: str) -> ResolvedPath:
    """Resolve *path* against *entity* or raise ``InvalidRestrictionError``."""
    return _resolve(entity, path)


@lru_cache(maxsize=1024)
def _resolve(entity: type, path: str) -> ResolvedPath:
    mapper = mapper_for(entity)
    segments = path.split(".")
    walked: list[str] = []
    through_collection = False

    for segment in segments[:-1]:
        relationship = mapper.relationships.get(segment)
        if relationship is None:
            raise InvalidRestrictionError(
                f"{mapper.class_.__name__}.{segment} is not a relationship (in path {path!r})",
                property=path,
            )
        walked.append(segment)
        through_collection = through_collection or bool(relationship.uselist)
        mapper = relationship.mapper

    last = segments[-1]
    if last in mapper.column_attrs:
        return ResolvedPath(path, tuple(walked), last, False, False, through_collection, mapper.class_)
    relationship = mapper.relationships.get(last)
    if relationship is not None:
        return ResolvedPath(
            path, tuple(walked), last, True, bool(relationship.uselist), through_collection, mapper.class_
        )
    raise InvalidRestrictionError(
        f"{mapper.class_.__name__} has no attribute {last!r} (in path {path!r})", property=path
    )


__all__ = [
    "EntityDescriptor",
    "EntityRegistry",
    "ResolvedPath",
    "default_registry",
    "mapper_for",
    "resolve_path",
]
