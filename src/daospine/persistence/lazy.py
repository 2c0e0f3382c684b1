"""Explicit lazy references and ``get_initialized``.

A :class:`LazyRef` names a row without loading it.  Its state is a tagged
variant, ``Unloaded(entity, entity_id)`` until the first resolution and
``Loaded(value)`` afterwards, so "has this been fetched?" is a ``match``
rather than a question about proxy internals.

``get_initialized`` accepts either a ``LazyRef`` or a mapped instance:

* ``LazyRef`` unloaded   → one ``Session.get``, the ref becomes ``Loaded``
* ``LazyRef`` loaded     → its value, no SQL
* instance with expired or deferred columns → one refresh of those columns
* anything else          → returned unchanged, no SQL

Calling it twice is the same as calling it once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import InstanceState, Session

from daospine.core.errors import NotFoundError
from daospine.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


@dataclass(frozen=True)
class Unloaded:
    entity: type
    entity_id: Any


@dataclass(frozen=True)
class Loaded:
    value: Any


RefState = Union[Unloaded, Loaded]


class LazyRef(Generic[T]):
    """Reference to one entity row, materialized on demand."""

    __slots__ = ("_state",)

    def __init__(self, entity: type[T], entity_id: Any) -> None:
        self._state: RefState = Unloaded(entity, entity_id)

    @classmethod
    def of(cls, value: T) -> LazyRef[T]:
        """A reference that is already loaded."""
        ref = cls.__new__(cls)
        ref._state = Loaded(value)
        return ref

    @property
    def state(self) -> RefState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return isinstance(self._state, Loaded)

    def resolve(self, session: Session) -> T:
        match self._state:
            case Loaded(value):
                return value
            case Unloaded(entity, entity_id):
                value = session.get(entity, entity_id)
                if value is None:
                    raise NotFoundError.for_entity(entity.__name__, entity_id, "get_initialized")
                self._state = Loaded(value)
                logger.debug("lazy_ref_loaded", entity=entity.__name__, entity_id=entity_id)
                return value

    def __repr__(self) -> str:
        return f"LazyRef({self._state!r})"


def get_initialized(session: Session, ref: Any) -> Any:
    """Return *ref* fully materialized, loading it at most once."""
    if ref is None:
        return None
    if isinstance(ref, LazyRef):
        return ref.resolve(session)

    state = sa_inspect(ref, raiseerr=False)
    if not isinstance(state, InstanceState) or not state.has_identity:
        return ref
    unloaded = [key for key in state.unloaded if key in state.mapper.column_attrs]
    if not unloaded:
        return ref

    if state.detached:
        resident = session.identity_map.get(state.key)
        if resident is not None:
            return get_initialized(session, resident)
        session.add(ref)
    session.refresh(ref, attribute_names=unloaded)
    logger.debug("instance_refreshed", entity=type(ref).__name__, attributes=unloaded)
    return ref


__all__ = ["LazyRef", "Loaded", "RefState", "Unloaded", "get_initialized"]
