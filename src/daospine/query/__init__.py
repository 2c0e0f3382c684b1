"""Restriction algebra, query plans, builder and executor.

Modules
-------
restriction Restriction, RestrictionGroup, Operator, normalize_criteria
order       OrderBy, parse_order
projection  ProjectionSpec
plan        QueryPlan (immutable, validated)
builder     QueryBuilder (fluent)
executor    QueryExecutor (SQLAlchemy compilation + execution)
native      FileNativeQueryProvider

Tags:
    daospine, query, criteria
"""

from daospine.query.builder import QueryBuilder
from daospine.query.executor import QueryExecutor
from daospine.query.native import FileNativeQueryProvider, NativeQueryProvider
from daospine.query.order import Direction, OrderBy, parse_order
from daospine.query.plan import QueryPlan
from daospine.query.projection import ProjectionSpec
from daospine.query.restriction import (
    UNSET,
    Logic,
    Operator,
    Restriction,
    RestrictionGroup,
    normalize_criteria,
    restrictions_from_mapping,
)

__all__ = [
    "UNSET",
    "Direction",
    "FileNativeQueryProvider",
    "Logic",
    "NativeQueryProvider",
    "Operator",
    "OrderBy",
    "ProjectionSpec",
    "QueryBuilder",
    "QueryExecutor",
    "QueryPlan",
    "Restriction",
    "RestrictionGroup",
    "normalize_criteria",
    "parse_order",
    "restrictions_from_mapping",
]
