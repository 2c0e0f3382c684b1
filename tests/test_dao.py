"""End-to-end tests for BaseDAO over the seeded in-memory database."""

from __future__ import annotations

import sqlite3

import pytest
from sqlalchemy import func, select

from daospine import (
    BaseDAO,
    DeleteError,
    IllegalStateError,
    InvalidRestrictionError,
    NonUniqueResultError,
    NotFoundError,
    OrderBy,
    Restriction,
)
from daospine.core.errors import UnknownEntityError
from daospine.orm.tables import AuditRecordTable
from daospine.persistence import AuditPolicy, EngineAuditor, LazyRef, SessionAuditor
from tests._support.models import Department, Person


def names(people) -> list[str]:
    return [p.name for p in people]


def audit_rows(session) -> list[AuditRecordTable]:
    return list(session.scalars(select(AuditRecordTable).order_by(AuditRecordTable.id)))


class TestReads:
    def test_reference_scenario(self, dao):
        assert names(dao.list("age", 30, order="id")) == ["Ann", "Cid"]
        assert dao.unique("age", 40).name == "Bob"
        with pytest.raises(NonUniqueResultError):
            dao.unique("age", 30)
        assert dao.count("age", 99) == 0

    def test_unique_without_match(self, dao):
        assert dao.unique("name", "Zed") is None

    def test_find(self, dao):
        assert dao.find(1).name == "Ann"
        assert dao.find(99) is None
        assert dao.find(None) is None

    @pytest.mark.parametrize(
        ("criteria", "expected"),
        [
            (None, ["Ann", "Bob", "Cid"]),
            ({"age": 30, "department.name": "Sales"}, ["Ann", "Cid"]),
            ({"email": None}, ["Bob"]),
            ({"age": [40, 41]}, ["Bob"]),
            (Restriction.gt("age", 35), ["Bob"]),
            (Restriction.eq("name", "ann", ignore_case=True) | Restriction.eq("name", "Bob"), ["Ann", "Bob"]),
            ([Restriction.eq("age", 30), Restriction.like("email", "cid%")], ["Cid"]),
        ],
    )
    def test_filter_forms(self, dao, criteria, expected):
        assert names(dao.list(criteria, order="id")) == expected

    def test_invalid_property(self, dao):
        with pytest.raises(InvalidRestrictionError):
            dao.list("salary", 1)

    def test_ordering_and_pagination(self, dao):
        assert names(dao.list_all(order="age desc, name")) == ["Bob", "Ann", "Cid"]
        assert names(dao.list_all(order=[OrderBy.desc("id")], first_result=1, max_results=1)) == ["Bob"]

    def test_count_ignores_pagination(self, dao):
        assert dao.count("age", 30) == 2
        assert dao.count({"department.name": "Sales"}) == 2
        assert dao.count() == len(dao.list_all())

    def test_list_attributes(self, dao):
        rows = dao.list_attributes("name, department.name", "age", 30, order="id")
        assert [row._mapping["name"] for row in rows] == ["Ann", "Cid"]
        assert rows[0]._mapping["department.name"] == "Sales"

    def test_fluent_query(self, dao):
        query = dao.query().where({"department.name": "Sales"}).order_by("id desc")
        assert names(query.list()) == ["Cid", "Ann"]
        assert query.count() == 2

    def test_find_attribute(self, dao):
        assert dao.find_attribute("department.name", 1) == "Sales"
        assert dao.find_attribute("email", dao.find(2)) is None
        with pytest.raises(NotFoundError):
            dao.find_attribute("name", 99)

    def test_find_list(self, dao):
        assert names(dao.find_list("people", 1, entity=Department)) == ["Ann", "Cid"]
        assert dao.find_list("department.people", 2) == [dao.find(2)]

    def test_entity_override(self, dao, registry):
        registry.register(Department)
        assert [d.name for d in dao.list(order="name", entity="Department")] == ["Research", "Sales"]
        assert dao.count(entity=Department) == 2
        assert dao.find(2, entity="Department").name == "Research"

    def test_order_through_collection_rejected(self, dao):
        with pytest.raises(InvalidRestrictionError):
            dao.list(order="people.name", entity=Department)

    def test_relationship_compared_to_identifier_rejected(self, dao):
        with pytest.raises(InvalidRestrictionError):
            dao.list("department", 1)
        sales = dao.find(1, entity=Department)
        assert names(dao.list("department", sales, order="id")) == ["Ann", "Cid"]

    def test_unknown_entity_name(self, dao):
        with pytest.raises(UnknownEntityError):
            dao.list(entity="Invoice")


class TestEntityClass:
    def test_switch_default_entity(self, dao):
        assert dao.entity_class is Person
        dao.entity_class = Department
        assert dao.entity_class is Department
        assert dao.find(1).name == "Sales"


class TestWrites:
    def test_save_then_find(self, dao):
        dee = dao.save(Person(name="Dee", age=25))
        assert dao.find(dee.id) is dee
        assert dao.count() == 4

    def test_audit_row_written_in_transaction(self, dao, seeded):
        assert isinstance(dao.auditor, SessionAuditor)
        dee = dao.save(Person(name="Dee", age=25))
        (row,) = audit_rows(seeded)
        assert (row.entity_type, row.entity_id, row.operation) == ("Person", str(dee.id), "insert")
        assert row.after_state["name"] == "Dee"

        seeded.rollback()
        assert audit_rows(seeded) == []
        assert dao.count() == 3

    def test_update_records_before_and_after(self, dao, seeded):
        bob = dao.find(2)
        bob.age = 41
        dao.update(bob)
        (row,) = audit_rows(seeded)
        assert row.before_state["age"] == 40
        assert row.after_state["age"] == 41

    def test_save_persistent_rejected(self, dao):
        with pytest.raises(IllegalStateError):
            dao.save(dao.find(1))

    def test_save_or_update_and_merge(self, dao):
        dao.save_or_update(Person(id=2, name="Bob", age=42))
        managed = dao.save_or_merge(Person(id=3, name="Cid", age=33))
        assert dao.find(2).age == 42
        assert managed is dao.find(3)
        assert managed.age == 33

    def test_merge_returns_managed(self, dao):
        managed = dao.merge(Person(id=1, name="Ann", age=31))
        assert managed is dao.find(1)

    def test_delete_then_find(self, dao, seeded):
        dao.delete(3)
        assert dao.find(3) is None
        assert audit_rows(seeded)[-1].operation == "delete"

    def test_delete_referenced_department(self, dao):
        with pytest.raises(DeleteError):
            dao.delete(2, entity=Department)

    def test_delete_missing(self, dao):
        with pytest.raises(DeleteError):
            dao.delete(42)

    def test_remove(self, dao):
        dao.remove(dao.find(2))
        assert dao.count() == 2

    def test_audit_disabled_per_call(self, dao, seeded):
        dao.save(Person(name="Dee", age=25), audit=False)
        assert audit_rows(seeded) == []

    def test_with_audit(self, dao, seeded):
        quiet = dao.with_audit(False)
        assert quiet.session is dao.session
        quiet.save(Person(name="Dee", age=25))
        quiet.save(Person(name="Eve", age=26), audit=True)
        assert [row.after_state["name"] for row in audit_rows(seeded)] == ["Eve"]


class TestDeferredAudit:
    def test_emitted_on_commit(self, seeded, settings, registry):
        dao = BaseDAO(
            seeded, Person, registry=registry, settings=settings, audit_policy=AuditPolicy(defer_until_commit=True)
        )
        assert isinstance(dao.auditor, EngineAuditor)
        dao.save(Person(name="Dee", age=25))
        assert audit_rows(seeded) == []

        seeded.commit()
        assert [row.operation for row in audit_rows(seeded)] == ["insert"]

    def test_discarded_on_rollback(self, seeded, settings, registry):
        dao = BaseDAO(
            seeded, Person, registry=registry, settings=settings, audit_policy=AuditPolicy(defer_until_commit=True)
        )
        dao.save(Person(name="Dee", age=25))
        seeded.rollback()
        seeded.commit()
        assert audit_rows(seeded) == []

    def test_savepoint_rollback_keeps_earlier_writes(self, seeded, settings, registry, recorder):
        dao = BaseDAO(
            seeded,
            Person,
            registry=registry,
            settings=settings,
            auditor=recorder,
            audit_policy=AuditPolicy(defer_until_commit=True),
        )
        dao.save(Person(name="Dee", age=25))
        savepoint = seeded.begin_nested()
        dao.save(Person(name="Eve", age=26))
        savepoint.rollback()
        seeded.commit()
        assert [r.after["name"] for r in recorder.records] == ["Dee"]

    def test_released_savepoint_not_emitted_before_commit(self, seeded, settings, registry, recorder):
        dao = BaseDAO(
            seeded,
            Person,
            registry=registry,
            settings=settings,
            auditor=recorder,
            audit_policy=AuditPolicy(defer_until_commit=True),
        )
        dao.save(Person(name="Cal", age=20))
        with seeded.begin_nested():
            dao.save(Person(name="Dee", age=25))
        assert recorder.records == []
        seeded.rollback()
        assert recorder.records == []


class TestEscapeHatches:
    def test_connection(self, dao):
        conn = dao.connection()
        assert isinstance(conn, sqlite3.Connection)
        assert conn.execute("SELECT count(*) FROM person").fetchone()[0] == 3

    def test_native_query(self, dao, settings, seeded):
        (settings.native_query_dir / "by_age.sql").write_text(
            "SELECT id, name, age, email, department_id FROM person WHERE age = :age ORDER BY id",
            encoding="utf-8",
        )
        stmt = dao.native_query("by_age.sql", Person)
        assert names(seeded.execute(stmt, {"age": 30}).scalars()) == ["Ann", "Cid"]

    def test_native_scalar_query(self, dao, settings, seeded):
        (settings.native_query_dir / "total.sql").write_text("SELECT count(*) FROM person;", encoding="utf-8")
        assert seeded.execute(dao.native_query("total.sql")).scalar() == 3

    def test_get_initialized(self, dao):
        ref = LazyRef(Person, 2)
        assert dao.get_initialized(ref).name == "Bob"
        assert ref.is_loaded
        assert dao.get_initialized(None) is None

    def test_person_count_matches_raw_sql(self, dao, seeded):
        assert seeded.scalar(select(func.count()).select_from(Person)) == dao.count()
