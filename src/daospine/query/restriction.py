"""
Restriction algebra -- the predicates every daospine query is built from.

A :class:`Restriction` is a single ``(property, operator, operand)``
predicate over one attribute path of the target entity.  A
:class:`RestrictionGroup` combines restrictions (or nested groups) with AND
or OR.  A plain sequence of restrictions is always AND-ed; there is no
implicit OR.

Operand arity is validated when the restriction is constructed, so a
malformed predicate can never reach the database:

============  ==========================================
operator      operand
============  ==========================================
is_null       none
is_not_null   none
between       exactly two values ``(low, high)``
in / not_in   a non-string collection of values
others        one value that is neither ``None`` nor a collection
============  ==========================================

Examples:
    >>> Restriction("age", Operator.EQ, 30)
    Restriction(property='age', operator=<Operator.EQ: 'eq'>, operand=30, ignore_case=False)
    >>> Restriction.between("age", 18, 65).operand
    (18, 65)
    >>> group = Restriction.eq("name", "Ann") | Restriction.eq("name", "Bob")
    >>> group.logic
    <Logic.OR: 'or'>
    >>> [r.property for r in restrictions_from_mapping({"name": "Ann", "age": 30})]
    ['age', 'name']

Tags:
    restriction, predicate, criteria, query, daospine
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from daospine.core.errors import InvalidRestrictionError


class _Unset:
    """Marker for an operand that was not supplied."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class Arity(str, Enum):
    NONE = "none"
    ONE = "one"
    PAIR = "pair"
    MANY = "many"


class Operator(str, Enum):
    """Comparison operators understood by the query compiler."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"
    LIKE = "like"
    NOT_LIKE = "not_like"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    BETWEEN = "between"

    @property
    def arity(self) -> Arity:
        return _ARITY.get(self, Arity.ONE)

    @property
    def is_textual(self) -> bool:
        return self in (Operator.LIKE, Operator.NOT_LIKE, Operator.STARTS_WITH, Operator.ENDS_WITH)

    @classmethod
    def parse(cls, value: Operator | str) -> Operator:
        """Accept an ``Operator``, its value (``"ge"``) or a symbol (``">="``)."""
        if isinstance(value, Operator):
            return value
        if isinstance(value, str):
            key = value.strip().lower()
            if key in _SYMBOLS:
                return _SYMBOLS[key]
            try:
                return cls(key.replace("-", "_").replace(" ", "_"))
            except ValueError:
                pass
        raise InvalidRestrictionError(f"Unknown restriction operator: {value!r}")


_ARITY = {
    Operator.IS_NULL: Arity.NONE,
    Operator.IS_NOT_NULL: Arity.NONE,
    Operator.BETWEEN: Arity.PAIR,
    Operator.IN: Arity.MANY,
    Operator.NOT_IN: Arity.MANY,
}

_SYMBOLS = {
    "=": Operator.EQ,
    "==": Operator.EQ,
    "!=": Operator.NE,
    "<>": Operator.NE,
    ">": Operator.GT,
    ">=": Operator.GE,
    "<": Operator.LT,
    "<=": Operator.LE,
}


class Logic(str, Enum):
    AND = "and"
    OR = "or"


def _is_collection(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, bytearray, Mapping))


@dataclass(frozen=True)
class Restriction:
    """A single normalized filter predicate over one entity attribute path."""

    property: str
    operator: Operator = Operator.EQ
    operand: Any = UNSET
    ignore_case: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.property, str) or not self.property.strip():
            raise InvalidRestrictionError("Restriction property must be a non-empty string")
        prop = self.property.strip()
        if any(not part for part in prop.split(".")):
            raise InvalidRestrictionError(f"Malformed property path: {self.property!r}", property=self.property)
        object.__setattr__(self, "property", prop)

        op = Operator.parse(self.operator)
        object.__setattr__(self, "operator", op)
        object.__setattr__(self, "operand", self._check_operand(op, self.operand))

        if self.ignore_case and op.arity is Arity.NONE:
            raise InvalidRestrictionError(
                f"ignore_case has no meaning for {op.value}", property=prop
            )

    def _check_operand(self, op: Operator, operand: Any) -> Any:
        prop = self.property
        match op.arity:
            case Arity.NONE:
                if operand is not UNSET:
                    raise InvalidRestrictionError(f"{op.value} takes no operand", property=prop)
                return UNSET
            case Arity.PAIR:
                if not _is_collection(operand):
                    raise InvalidRestrictionError(f"{op.value} requires exactly two operands", property=prop)
                pair = tuple(operand)
                if len(pair) != 2:
                    raise InvalidRestrictionError(
                        f"{op.value} requires exactly two operands, got {len(pair)}", property=prop
                    )
                if pair[0] is None or pair[1] is None:
                    raise InvalidRestrictionError(f"{op.value} bounds must not be None", property=prop)
                return pair
            case Arity.MANY:
                if not _is_collection(operand):
                    raise InvalidRestrictionError(f"{op.value} requires a collection of operands", property=prop)
                return tuple(operand)
            case _:
                if operand is UNSET:
                    raise InvalidRestrictionError(f"{op.value} requires one operand", property=prop)
                if operand is None:
                    raise InvalidRestrictionError(
                        f"{op.value} cannot compare with None; use is_null / is_not_null", property=prop
                    )
                if _is_collection(operand):
                    raise InvalidRestrictionError(
                        f"{op.value} requires a single operand, got a collection", property=prop
                    )
                if op.is_textual and not isinstance(operand, str):
                    raise InvalidRestrictionError(f"{op.value} requires a string operand", property=prop)
                return operand

    # -- shorthands --------------------------------------------------------

    @classmethod
    def eq(cls, prop: str, value: Any, *, ignore_case: bool = False) -> Restriction:
        return cls(prop, Operator.EQ, value, ignore_case)

    @classmethod
    def ne(cls, prop: str, value: Any, *, ignore_case: bool = False) -> Restriction:
        return cls(prop, Operator.NE, value, ignore_case)

    @classmethod
    def gt(cls, prop: str, value: Any) -> Restriction:
        return cls(prop, Operator.GT, value)

    @classmethod
    def ge(cls, prop: str, value: Any) -> Restriction:
        return cls(prop, Operator.GE, value)

    @classmethod
    def lt(cls, prop: str, value: Any) -> Restriction:
        return cls(prop, Operator.LT, value)

    @classmethod
    def le(cls, prop: str, value: Any) -> Restriction:
        return cls(prop, Operator.LE, value)

    @classmethod
    def like(cls, prop: str, pattern: str, *, ignore_case: bool = False) -> Restriction:
        return cls(prop, Operator.LIKE, pattern, ignore_case)

    @classmethod
    def in_(cls, prop: str, values: Iterable[Any]) -> Restriction:
        return cls(prop, Operator.IN, values)

    @classmethod
    def not_in(cls, prop: str, values: Iterable[Any]) -> Restriction:
        return cls(prop, Operator.NOT_IN, values)

    @classmethod
    def between(cls, prop: str, low: Any, high: Any) -> Restriction:
        return cls(prop, Operator.BETWEEN, (low, high))

    @classmethod
    def is_null(cls, prop: str) -> Restriction:
        return cls(prop, Operator.IS_NULL)

    @classmethod
    def is_not_null(cls, prop: str) -> Restriction:
        return cls(prop, Operator.IS_NOT_NULL)

    # -- composition -------------------------------------------------------

    def __and__(self, other: Criterion) -> RestrictionGroup:
        return RestrictionGroup((self, other), Logic.AND)

    def __or__(self, other: Criterion) -> RestrictionGroup:
        return RestrictionGroup((self, other), Logic.OR)

    def paths(self) -> tuple[str, ...]:
        return (self.property,)


@dataclass(frozen=True)
class RestrictionGroup:
    """Restrictions (or nested groups) combined by one logical operator."""

    restrictions: tuple[Criterion, ...] = field(default_factory=tuple)
    logic: Logic = Logic.AND
    name: str | None = None

    def __post_init__(self) -> None:
        members = tuple(self.restrictions)
        if not members:
            raise InvalidRestrictionError("A restriction group must contain at least one restriction")
        for member in members:
            if not isinstance(member, (Restriction, RestrictionGroup)):
                raise InvalidRestrictionError(f"Not a restriction: {member!r}")
        object.__setattr__(self, "restrictions", members)
        try:
            object.__setattr__(self, "logic", Logic(self.logic))
        except ValueError as exc:
            raise InvalidRestrictionError(f"Unknown group logic: {self.logic!r}", cause=exc) from exc

    def __and__(self, other: Criterion) -> RestrictionGroup:
        return RestrictionGroup((self, other), Logic.AND)

    def __or__(self, other: Criterion) -> RestrictionGroup:
        return RestrictionGroup((self, other), Logic.OR)

    def paths(self) -> tuple[str, ...]:
        found: list[str] = []
        for member in self.restrictions:
            found.extend(member.paths())
        return tuple(found)


Criterion = Union[Restriction, RestrictionGroup]


def restrictions_from_mapping(mapping: Mapping[str, Any]) -> tuple[Restriction, ...]:
    """One equals-restriction per entry, sorted by property name.

    A ``None`` value becomes ``is_null`` and a collection becomes ``in``.
    Sorting makes the compiled SQL independent of the mapping's insertion
    order.
    """
    for prop in mapping:
        if not isinstance(prop, str):
            raise InvalidRestrictionError(f"Filter keys must be property names, got {prop!r}")
    return tuple(_equals(prop, mapping[prop]) for prop in sorted(mapping))


def _equals(prop: str, value: Any) -> Restriction:
    if value is None:
        return Restriction.is_null(prop)
    if _is_collection(value):
        return Restriction.in_(prop, value)
    return Restriction.eq(prop, value)


def normalize_criteria(criteria: Any = None, value: Any = UNSET) -> tuple[Criterion, ...]:
    """Turn any accepted filter form into a canonical tuple of criteria.

    Forms are classified in this order, and exactly one applies per call:

    1. a list or tuple of ``Restriction`` / ``RestrictionGroup``
    2. a single ``Restriction`` or ``RestrictionGroup``
    3. a property name plus *value* (equals; ``is_null`` for ``None``,
       ``in`` for a collection)
    4. a ``Mapping`` of property name to value

    ``None`` with no value means "no filter".
    """
    if criteria is None:
        if value is not UNSET:
            raise InvalidRestrictionError("A value was given without a property name")
        return ()

    if isinstance(criteria, (list, tuple)):
        _reject_value(value, "a restriction list")
        for item in criteria:
            if not isinstance(item, (Restriction, RestrictionGroup)):
                raise InvalidRestrictionError(f"Not a restriction: {item!r}")
        return tuple(criteria)

    if isinstance(criteria, (Restriction, RestrictionGroup)):
        _reject_value(value, "a restriction")
        return (criteria,)

    if isinstance(criteria, str):
        if value is UNSET:
            raise InvalidRestrictionError(
                f"Property {criteria!r} was given without a value", property=criteria
            )
        return (_equals(criteria, value),)

    if isinstance(criteria, Mapping):
        _reject_value(value, "a mapping")
        return restrictions_from_mapping(criteria)

    raise InvalidRestrictionError(f"Unsupported filter: {criteria!r}")


def _reject_value(value: Any, form: str) -> None:
    if value is not UNSET:
        raise InvalidRestrictionError(f"A separate value cannot be combined with {form}")


__all__ = [
    "UNSET",
    "Arity",
    "Operator",
    "Logic",
    "Restriction",
    "RestrictionGroup",
    "Criterion",
    "restrictions_from_mapping",
    "normalize_criteria",
]
