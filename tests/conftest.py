"""Pytest configuration and shared fixtures.

The destination PostgreSQL database is replaced by an in-memory fake that
speaks the subset of SQL the loader issues. It is plugged in behind the real
DatabaseConnection pool, so commit/rollback handling is exercised as in
production.
"""

import copy
from datetime import date, datetime, time

import psycopg2
import pytest

from db.connection import DatabaseConnection
from etl.load import INSERT_APPOINTMENT_SERVICE_SQL, INSERT_APPOINTMENT_SQL
from etl.resolver import (
    INSERT_PATIENT_SQL,
    INSERT_SERVICE_SQL,
    SELECT_PATIENT_SQL,
    SELECT_SERVICE_SQL,
)
from etl.transform import SERVICE_SLOTS, FlatRecord


def _squash(sql: str) -> str:
    return " ".join(sql.split())


class FakeDatabase:
    """Committed and working copies of the analytics tables."""

    def __init__(self):
        self.committed = {"tables": {}, "sequences": {}}
        self.working = copy.deepcopy(self.committed)
        self.statements = []
        self.fail_when = None
        self.commits = 0
        self.rollbacks = 0

    # Helpers used by tests

    def rows(self, table):
        return self.committed["tables"].get(table, [])

    def seed(self, table, rows):
        """Put pre-existing committed content in the destination."""
        self.committed["tables"][table] = [dict(r) for r in rows]
        self.committed["sequences"][table] = len(rows)
        self.working = copy.deepcopy(self.committed)

    def executed(self, sql):
        target = _squash(sql)
        return [params for stmt, params in self.statements if stmt == target]


class FakeCursor:
    def __init__(self, db: FakeDatabase, conn):
        self.db = db
        self.conn = conn
        self._result = []
        self.closed = False

    def execute(self, sql, params=None):
        stmt = _squash(sql)
        self.db.statements.append((stmt, params))

        if self.db.fail_when and self.db.fail_when(stmt, params):
            raise psycopg2.DatabaseError(f"injected failure: {stmt[:40]}")

        state = self.db.working
        self._result = []

        if stmt.startswith("SAVEPOINT"):
            self.conn.savepoints.append(copy.deepcopy(state))
        elif stmt.startswith("RELEASE SAVEPOINT"):
            self.conn.savepoints.pop()
        elif stmt.startswith("ROLLBACK TO SAVEPOINT"):
            self.db.working = copy.deepcopy(self.conn.savepoints[-1])
        elif stmt.startswith("DROP SCHEMA"):
            state["tables"].clear()
            state["sequences"].clear()
        elif stmt.startswith("CREATE TABLE"):
            table = stmt.split()[2]
            state["tables"][table] = []
            state["sequences"][table] = 0
        elif stmt.startswith(("CREATE SCHEMA", "GRANT", "CREATE INDEX")):
            pass
        elif stmt == _squash(SELECT_PATIENT_SQL):
            self._select(state, "patient", "identity_document", params[0])
        elif stmt == _squash(SELECT_SERVICE_SQL):
            self._select(state, "service", "name", params[0])
        elif stmt == _squash(INSERT_PATIENT_SQL):
            given, family, document, sex = params
            if given is None or family is None:
                raise psycopg2.IntegrityError("null value in patient name")
            self._insert(state, "patient", {
                "given_name": given,
                "family_name": family,
                "identity_document": document,
                "inferred_sex": sex,
            })
        elif stmt == _squash(INSERT_SERVICE_SQL):
            if any(r["name"] == params[0] for r in self._table(state, "service")):
                raise psycopg2.IntegrityError("duplicate key value violates unique constraint")
            self._insert(state, "service", {"name": params[0]})
        elif stmt == _squash(INSERT_APPOINTMENT_SQL):
            patient_id = params[0]
            if not any(r["id"] == patient_id for r in self._table(state, "patient")):
                raise psycopg2.IntegrityError("violates foreign key constraint fk_appointment_patient")
            keys = ["patient_id", "date", "time", "duration_minutes", "overbooked",
                    "status", "created_at", "created_by"]
            self._insert(state, "appointment", dict(zip(keys, params)))
        elif stmt == _squash(INSERT_APPOINTMENT_SERVICE_SQL):
            self._insert(state, "appointment_service", {
                "appointment_id": params[0],
                "service_id": params[1],
            }, returning=False)
        else:
            raise AssertionError(f"Unexpected SQL: {stmt}")

    def fetchone(self):
        return self._result[0] if self._result else None

    def close(self):
        self.closed = True

    @staticmethod
    def _table(state, name):
        if name not in state["tables"]:
            raise psycopg2.ProgrammingError(f'relation "{name}" does not exist')
        return state["tables"][name]

    def _select(self, state, table, column, value):
        self._result = [(r["id"],) for r in self._table(state, table) if r[column] == value]

    def _insert(self, state, table, row, returning=True):
        rows = self._table(state, table)
        state["sequences"][table] += 1
        row = dict(row, id=state["sequences"][table])
        rows.append(row)
        if returning:
            self._result = [(row["id"],)]


class FakeConnection:
    def __init__(self, db: FakeDatabase):
        self.db = db
        self.savepoints = []
        self.closed = 0

    def cursor(self):
        return FakeCursor(self.db, self)

    def commit(self):
        self.db.committed = copy.deepcopy(self.db.working)
        self.savepoints = []
        self.db.commits += 1

    def rollback(self):
        self.db.working = copy.deepcopy(self.db.committed)
        self.savepoints = []
        self.db.rollbacks += 1


class FakePool:
    def __init__(self, db: FakeDatabase):
        self.conn = FakeConnection(db)
        self.checked_out = 0
        self.discarded = 0
        self.closed = False

    def getconn(self):
        self.checked_out += 1
        return self.conn

    def putconn(self, conn, close=False):
        self.checked_out -= 1
        if close:
            self.discarded += 1

    def closeall(self):
        self.closed = True


@pytest.fixture
def fake_db():
    """In-memory destination installed behind DatabaseConnection."""
    db = FakeDatabase()
    DatabaseConnection._pool = FakePool(db)
    yield db
    DatabaseConnection._pool = None


def make_record(document="123", given="Juan", family="Perez", services=(), **overrides):
    """Build a FlatRecord; services fill slots from 0, the rest are None."""
    slots = list(services) + [None] * (SERVICE_SLOTS - len(services))
    values = {
        "patient_given_name": given,
        "patient_family_name": family,
        "patient_document": document,
        "appointment_date": date(2024, 5, 6),
        "appointment_time": time(9, 30),
        "duration_minutes": 20,
        "overbooked": False,
        "status": "ASIGNADO",
        "created_at": datetime(2024, 5, 1, 8, 0, 0),
        "created_by": "jgomez",
        "services": tuple(slots),
    }
    values.update(overrides)
    return FlatRecord(**values)


@pytest.fixture
def record_factory():
    return make_record
