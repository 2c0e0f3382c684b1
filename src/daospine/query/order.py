"""Order clauses: ``OrderBy(property, direction)`` and their text form.

Order text follows the familiar ``"name desc, department.name"`` shape:
comma-separated paths, each optionally followed by ``asc`` or ``desc``.
Without an explicit order the store's natural order applies, which is not
guaranteed to be stable between calls.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Union

from daospine.core.errors import InvalidRestrictionError


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class OrderBy:
    property: str
    direction: Direction = Direction.ASC

    def __post_init__(self) -> None:
        if not isinstance(self.property, str) or not self.property.strip():
            raise InvalidRestrictionError("Order property must be a non-empty string")
        object.__setattr__(self, "property", self.property.strip())
        if isinstance(self.direction, Direction):
            return
        try:
            object.__setattr__(self, "direction", Direction(str(self.direction).strip().lower()))
        except ValueError as exc:
            raise InvalidRestrictionError(
                f"Unknown order direction {self.direction!r}", property=self.property, cause=exc
            ) from exc

    @classmethod
    def asc(cls, prop: str) -> OrderBy:
        return cls(prop, Direction.ASC)

    @classmethod
    def desc(cls, prop: str) -> OrderBy:
        return cls(prop, Direction.DESC)

    def __str__(self) -> str:
        return f"{self.property} {self.direction.value}"


OrderSpec = Union[str, OrderBy, Iterable[Union[str, OrderBy]], None]


def parse_order(order: OrderSpec) -> tuple[OrderBy, ...]:
    """Normalize an order argument to a tuple of ``OrderBy``.

    >>> parse_order("name desc, age")
    (OrderBy(property='name', direction=<Direction.DESC: 'desc'>), OrderBy(property='age', direction=<Direction.ASC: 'asc'>))
    """
    if order is None:
        return ()
    if isinstance(order, OrderBy):
        return (order,)
    if isinstance(order, str):
        return tuple(_parse_item(item) for item in order.split(",") if item.strip())
    result: list[OrderBy] = []
    for item in order:
        result.extend(parse_order(item))
    return tuple(result)


def _parse_item(text: str) -> OrderBy:
    parts = text.split()
    if len(parts) == 1:
        return OrderBy(parts[0])
    if len(parts) == 2:
        return OrderBy(parts[0], parts[1])
    raise InvalidRestrictionError(f"Cannot parse order clause {text.strip()!r}")


__all__ = ["Direction", "OrderBy", "OrderSpec", "parse_order"]
