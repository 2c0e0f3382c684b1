"""Tests for order clauses."""

import pytest

from daospine.core.errors import InvalidRestrictionError
from daospine.query.order import Direction, OrderBy, parse_order


class TestOrderBy:
    def test_default_ascending(self):
        assert OrderBy("name").direction is Direction.ASC

    def test_direction_from_text(self):
        assert OrderBy("name", " DESC ").direction is Direction.DESC

    def test_unknown_direction(self):
        with pytest.raises(InvalidRestrictionError):
            OrderBy("name", "sideways")

    def test_empty_property(self):
        with pytest.raises(InvalidRestrictionError):
            OrderBy(" ")

    def test_str(self):
        assert str(OrderBy.desc("age")) == "age desc"


class TestParseOrder:
    def test_none(self):
        assert parse_order(None) == ()

    def test_text(self):
        assert parse_order("name desc, department.name") == (
            OrderBy("name", Direction.DESC),
            OrderBy("department.name", Direction.ASC),
        )

    def test_mixed_iterable(self):
        assert parse_order(["age desc", OrderBy.asc("name")]) == (OrderBy.desc("age"), OrderBy.asc("name"))

    def test_blank_segments_skipped(self):
        assert parse_order("age,, ") == (OrderBy("age"),)

    def test_too_many_tokens(self):
        with pytest.raises(InvalidRestrictionError, match="Cannot parse"):
            parse_order("age desc nulls")
