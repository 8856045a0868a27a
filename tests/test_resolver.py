"""Unit tests for patient and service deduplication."""

import pytest

from db.schema import PostgresSchemaBuilder
from etl.exceptions import MissingIdentifierError
from etl.resolver import (
    EntityResolver,
    INSERT_PATIENT_SQL,
    INSERT_SERVICE_SQL,
    SELECT_PATIENT_SQL,
    SELECT_SERVICE_SQL,
)
from tests.conftest import FakeConnection, FakeDatabase


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def cursor(db):
    cur = FakeConnection(db).cursor()
    PostgresSchemaBuilder().recreate(cur)
    return cur


def patients(db):
    return db.working["tables"]["patient"]


class TestResolvePatient:
    """Tests for resolve_patient."""

    def test_creates_patient_with_normalized_names(self, db, cursor):
        """Test names are trimmed, single-spaced and uppercased before insert."""
        resolver = EntityResolver(cursor, infer=lambda name: "male")

        patient_id = resolver.resolve_patient(" 123 ", "  juan   carlos ", "pérez\tgómez")

        assert patient_id == 1
        assert patients(db) == [{
            "id": 1,
            "given_name": "JUAN CARLOS",
            "family_name": "PÉREZ GÓMEZ",
            "identity_document": "123",
            "inferred_sex": "male",
        }]

    def test_inference_receives_first_normalized_token(self, cursor):
        """Test only the first token of the cleaned given name is inferred."""
        seen = []
        resolver = EntityResolver(cursor, infer=lambda name: seen.append(name))

        resolver.resolve_patient("1", "  maria   jose ", "lopez")

        assert seen == ["MARIA"]

    def test_same_document_created_once(self, db, cursor):
        """Test repeated documents resolve to one row and one lookup."""
        resolver = EntityResolver(cursor, infer=lambda name: None)

        ids = {resolver.resolve_patient("123", "Ana", "Diaz") for _ in range(5)}

        assert ids == {1}
        assert len(patients(db)) == 1
        assert len(db.executed(SELECT_PATIENT_SQL)) == 1
        assert len(db.executed(INSERT_PATIENT_SQL)) == 1

    def test_document_key_is_trimmed_only(self, db, cursor):
        """Test surrounding whitespace is ignored but nothing else is normalized."""
        resolver = EntityResolver(cursor, infer=lambda name: None)

        first = resolver.resolve_patient("ab1", "Ana", "Diaz")
        second = resolver.resolve_patient("  ab1\n", "Ana", "Diaz")
        third = resolver.resolve_patient("AB1", "Ana", "Diaz")

        assert first == second
        assert third != first
        assert len(patients(db)) == 2

    def test_existing_row_is_reused(self, db, cursor):
        """Test a patient already in the destination is found, not re-inserted."""
        cursor.execute(INSERT_PATIENT_SQL, ("ANA", "DIAZ", "77", None))
        resolver = EntityResolver(cursor, infer=lambda name: None)

        assert resolver.resolve_patient("77", "Other", "Name") == 1
        assert len(patients(db)) == 1
        assert resolver.created["patients"] == 0

    def test_inference_failure_stores_null(self, db, cursor):
        """Test a raising inference function degrades to NULL."""
        def broken(name):
            raise RuntimeError("dataset unavailable")

        resolver = EntityResolver(cursor, infer=broken)

        resolver.resolve_patient("9", "X", "Y")

        assert patients(db)[0]["inferred_sex"] is None

    def test_missing_id_raises(self, cursor, monkeypatch):
        """Test an insert without a returned id is fatal."""
        resolver = EntityResolver(cursor, infer=lambda name: None)
        monkeypatch.setattr(cursor, "fetchone", lambda: None)

        with pytest.raises(MissingIdentifierError, match="patient"):
            resolver.resolve_patient("1", "A", "B")


class TestResolveService:
    """Tests for resolve_service."""

    def test_creates_and_caches_service(self, db, cursor):
        """Test each distinct service name is looked up and inserted once."""
        resolver = EntityResolver(cursor)

        a1 = resolver.resolve_service("RX TORAX")
        b = resolver.resolve_service("ECOGRAFIA")
        a2 = resolver.resolve_service("  RX TORAX ")

        assert a1 == a2 == 1
        assert b == 2
        assert len(db.executed(SELECT_SERVICE_SQL)) == 2
        assert len(db.executed(INSERT_SERVICE_SQL)) == 2
        assert resolver.cache_stats() == {"patients": 0, "services": 2}

    def test_service_name_case_is_preserved(self, db, cursor):
        """Test service names are not uppercased or collapsed."""
        resolver = EntityResolver(cursor)

        resolver.resolve_service("Rx  torax")
        resolver.resolve_service("RX TORAX")

        names = [r["name"] for r in db.working["tables"]["service"]]
        assert names == ["Rx  torax", "RX TORAX"]

    def test_caches_are_per_resolver(self, db, cursor):
        """Test a new resolver starts with empty caches."""
        EntityResolver(cursor).resolve_service("LAB")
        fresh = EntityResolver(cursor)

        assert fresh.cache_stats() == {"patients": 0, "services": 0}
        assert fresh.resolve_service("LAB") == 1
        assert len(db.executed(SELECT_SERVICE_SQL)) == 2
