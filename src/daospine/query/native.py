"""Native SQL queries loaded from files.

The DAO treats the provider as an opaque factory: given a path (relative to
``DaoSettings.native_query_dir`` unless absolute) and optionally a mapped
entity, it returns something ready to bind and execute on the session.

* without an entity: ``sqlalchemy.text(sql)``
* with an entity:   ``select(entity).from_statement(text(sql))`` so rows
  come back as entity instances

Example::

    query = dao.native_query("people/adults.sql", Person)
    adults = session.execute(query, {"min_age": 18}).scalars().all()
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import TextClause, select, text

from daospine.core.errors import NotFoundError
from daospine.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class NativeQueryProvider(Protocol):
    def get(self, path: str | Path, entity: type | None = None) -> Any: ...


class FileNativeQueryProvider:
    """Reads ``.sql`` files once and hands out bindable statements."""

    def __init__(self, base_dir: str | Path | None = None, *, encoding: str = "utf-8") -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else None
        self.encoding = encoding
        self._cache: dict[Path, str] = {}

    def _resolve(self, path: str | Path) -> Path:
        candidate = Path(path)
        if not candidate.is_absolute() and self.base_dir is not None:
            candidate = self.base_dir / candidate
        return candidate

    def read(self, path: str | Path) -> str:
        resolved = self._resolve(path)
        sql = self._cache.get(resolved)
        if sql is None:
            if not resolved.is_file():
                raise NotFoundError(f"Native query file not found: {resolved}").with_context(
                    operation="native_query"
                )
            sql = resolved.read_text(encoding=self.encoding).strip().rstrip(";")
            self._cache[resolved] = sql
            logger.debug("native_query_loaded", path=str(resolved))
        return sql

    def get(self, path: str | Path, entity: type | None = None) -> Any:
        clause: TextClause = text(self.read(path))
        if entity is None:
            return clause
        return select(entity).from_statement(clause)


__all__ = ["NativeQueryProvider", "FileNativeQueryProvider"]
