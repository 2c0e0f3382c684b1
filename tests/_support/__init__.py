"""
Test support utilities for daospine tests.

Helpers that are not fixtures but are shared across test modules.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import Engine


class StatementLog:
    """SQL statements seen by an engine while a ``count_statements`` block is open."""

    def __init__(self) -> None:
        self.statements: list[str] = []

    def __len__(self) -> int:
        return len(self.statements)

    def selects(self) -> list[str]:
        return [s for s in self.statements if s.lstrip().upper().startswith("SELECT")]


@contextmanager
def count_statements(engine: Engine) -> Iterator[StatementLog]:
    """
    Record every statement *engine* sends to the database.

    Usage:
        with count_statements(engine) as log:
            dao.find(1)
        assert len(log) == 1
    """
    log = StatementLog()

    def _before(conn: Any, cursor: Any, statement: str, *args: Any) -> None:
        log.statements.append(statement)

    event.listen(engine, "before_cursor_execute", _before)
    try:
        yield log
    finally:
        event.remove(engine, "before_cursor_execute", _before)


def assert_dict_subset(actual: dict, expected: dict, path: str = "") -> None:
    """
    Assert that expected is a subset of actual (recursive).

    Args:
        actual: The full dictionary
        expected: The expected subset
        path: Current path (for error messages)
    """
    for key, expected_value in expected.items():
        current_path = f"{path}.{key}" if path else key

        assert key in actual, f"Missing key at {current_path}"
        actual_value = actual[key]

        if isinstance(expected_value, dict) and isinstance(actual_value, dict):
            assert_dict_subset(actual_value, expected_value, current_path)
        else:
            assert actual_value == expected_value, (
                f"Mismatch at {current_path}: expected {expected_value!r}, got {actual_value!r}"
            )


class RecordingAuditor:
    """Keeps every audit record it is given."""

    def __init__(self) -> None:
        self.records: list[Any] = []

    def record(self, record: Any) -> None:
        self.records.append(record)


class FailingAuditor:
    """Raises on every record."""

    def __init__(self, exc: Exception | None = None) -> None:
        self.exc = exc or RuntimeError("audit store unavailable")
        self.calls = 0

    def record(self, record: Any) -> None:
        self.calls += 1
        raise self.exc
