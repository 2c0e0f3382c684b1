"""Identifier state of an entity instance.

Writes branch on whether an instance already carries an identifier.  The
state is made explicit as ``Unassigned | Assigned(value)`` so dispatch is a
``match`` over two cases instead of scattered ``is None`` checks::

    match identifier_state(descriptor, person):
        case Unassigned():
            ...insert
        case Assigned(value):
            ...update / merge
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from daospine.mapping import EntityDescriptor


@dataclass(frozen=True)
class Unassigned:
    """The instance has no identifier yet; the store will assign one."""


@dataclass(frozen=True)
class Assigned:
    value: Any


IdentifierState = Union[Unassigned, Assigned]

UNASSIGNED = Unassigned()


def identifier_state(descriptor: EntityDescriptor, obj: Any) -> IdentifierState:
    value = descriptor.identifier_of(obj)
    if value is None:
        return UNASSIGNED
    return Assigned(value)


__all__ = ["UNASSIGNED", "Assigned", "IdentifierState", "Unassigned", "identifier_state"]
