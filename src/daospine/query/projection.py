"""Projection specs -- the attribute paths fetched instead of whole entities.

``ProjectionSpec.parse("id, name, department.name")`` keeps the order the
caller asked for and drops repeated paths.  Paths are checked against the
entity mapping when the query plan is built: each must end on a column.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from daospine.core.errors import InvalidProjectionError, InvalidRestrictionError
from daospine.mapping import resolve_path


@dataclass(frozen=True)
class ProjectionSpec:
    paths: tuple[str, ...]

    def __post_init__(self) -> None:
        cleaned: list[str] = []
        for path in self.paths:
            if not isinstance(path, str) or not path.strip():
                raise InvalidProjectionError(f"Invalid projection path: {path!r}")
            path = path.strip()
            if path not in cleaned:
                cleaned.append(path)
        if not cleaned:
            raise InvalidProjectionError("A projection needs at least one attribute path")
        object.__setattr__(self, "paths", tuple(cleaned))

    @classmethod
    def parse(cls, spec: ProjectionLike) -> ProjectionSpec:
        """Build a spec from comma-delimited text, an iterable of paths, or a spec."""
        if isinstance(spec, ProjectionSpec):
            return spec
        if isinstance(spec, str):
            return cls(tuple(part for part in spec.split(",") if part.strip()))
        if spec is None:
            raise InvalidProjectionError("A projection needs at least one attribute path")
        return cls(tuple(spec))

    def validate(self, entity: type) -> None:
        """Every path must resolve to a column of *entity* or a related entity."""
        for path in self.paths:
            try:
                resolved = resolve_path(entity, path)
            except InvalidRestrictionError as exc:
                raise InvalidProjectionError(exc.message, property=path, cause=exc) from exc
            if resolved.is_relationship:
                raise InvalidProjectionError(
                    f"{path!r} is a relationship; project its columns instead", property=path
                )

    def __iter__(self):
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self.paths)

    def __str__(self) -> str:
        return ", ".join(self.paths)


ProjectionLike = Union[str, Iterable[str], ProjectionSpec]


__all__ = ["ProjectionSpec", "ProjectionLike"]
