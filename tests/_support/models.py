"""Mapped entities used across the daospine test suite."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from daospine.orm.base import DaoBase


class Department(DaoBase):
    __tablename__ = "department"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(unique=True)
    people: Mapped[list[Person]] = relationship(back_populates="department", order_by="Person.id")

    def __repr__(self) -> str:
        return f"Department(id={self.id!r}, name={self.name!r})"


class Person(DaoBase):
    __tablename__ = "person"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str]
    age: Mapped[int]
    email: Mapped[str | None]
    bio: Mapped[str | None] = mapped_column(Text, deferred=True)
    department_id: Mapped[int | None] = mapped_column(ForeignKey("department.id"))
    department: Mapped[Department | None] = relationship(back_populates="people")

    def __repr__(self) -> str:
        return f"Person(id={self.id!r}, name={self.name!r}, age={self.age!r})"


class Tag(DaoBase):
    """Natural string key assigned by the caller."""

    __tablename__ = "tag"

    code: Mapped[str] = mapped_column(primary_key=True)
    label: Mapped[str | None]


class Membership(DaoBase):
    """Composite key; the DAO refuses it."""

    __tablename__ = "membership"

    person_id: Mapped[int] = mapped_column(ForeignKey("person.id"), primary_key=True)
    department_id: Mapped[int] = mapped_column(ForeignKey("department.id"), primary_key=True)


class Unmapped:
    pass


def seed(session) -> None:
    """Two departments and the three reference people; committed."""
    sales = Department(id=1, name="Sales")
    research = Department(id=2, name="Research")
    session.add_all(
        [
            sales,
            research,
            Person(id=1, name="Ann", age=30, email="ann@example.com", bio="Likes maps", department=sales),
            Person(id=2, name="Bob", age=40, email=None, bio=None, department=research),
            Person(id=3, name="Cid", age=30, email="cid@example.com", bio="Plays oboe", department=sales),
        ]
    )
    session.commit()
