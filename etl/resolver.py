"""
Entity Resolution

Deduplicates patients (by identity document) and services (by name) while a
batch is loaded, creating destination rows only the first time an entity is
seen. Lookups are cached in memory for the lifetime of one resolver, which
is one load run.
"""

import logging
from typing import Callable, Dict, Optional

from etl.exceptions import MissingIdentifierError
from etl.inference import infer_sex
from etl.transform import first_token, normalize_key, normalize_name

logger = logging.getLogger(__name__)


SELECT_PATIENT_SQL = "SELECT id FROM patient WHERE identity_document = %s;"

INSERT_PATIENT_SQL = """
    INSERT INTO patient (given_name, family_name, identity_document, inferred_sex)
    VALUES (%s, %s, %s, %s)
    RETURNING id;
"""

SELECT_SERVICE_SQL = "SELECT id FROM service WHERE name = %s;"

INSERT_SERVICE_SQL = """
    INSERT INTO service (name)
    VALUES (%s)
    RETURNING id;
"""


class EntityResolver:
    """
    Finds or creates patient and service rows on the load transaction's cursor.

    Caches are plain dicts with no eviction. Never share a resolver across
    runs: the destination schema is rebuilt at the start of every run, so
    cached ids from a previous run would point at rows that no longer exist.
    """

    def __init__(self, cursor, infer: Callable[[str], Optional[str]] = infer_sex):
        """
        Args:
            cursor: psycopg2 cursor of the open load transaction
            infer: Sex inference function taking a first name
        """
        self.cursor = cursor
        self.infer = infer
        self._patients: Dict[str, int] = {}
        self._services: Dict[str, int] = {}
        self.created = {"patients": 0, "services": 0}

    def resolve_patient(
        self,
        identity_document: str,
        given_name: Optional[str],
        family_name: Optional[str],
    ) -> int:
        """
        Return the patient id for an identity document, inserting the patient if needed.

        Args:
            identity_document: External identity code; trimmed and used as key
            given_name: Raw given name(s)
            family_name: Raw family name(s)

        Returns:
            Destination patient id

        Raises:
            MissingIdentifierError: If the insert returned no id
        """
        document = normalize_key(identity_document)

        if document in self._patients:
            return self._patients[document]

        patient_id = self._fetch_id(SELECT_PATIENT_SQL, (document,))

        if patient_id is None:
            clean_given = normalize_name(given_name)
            clean_family = normalize_name(family_name)
            inferred = self._infer(first_token(clean_given))

            patient_id = self._insert(
                "patient",
                INSERT_PATIENT_SQL,
                (clean_given, clean_family, document, inferred),
            )
            self.created["patients"] += 1
            logger.debug(f"Created patient {patient_id} for document {document}")

        self._patients[document] = patient_id
        return patient_id

    def resolve_service(self, name: str) -> int:
        """
        Return the service id for a service name, inserting the service if needed.

        Args:
            name: Service name; trimmed and used as key

        Returns:
            Destination service id

        Raises:
            MissingIdentifierError: If the insert returned no id
        """
        service_name = normalize_key(name)

        if service_name in self._services:
            return self._services[service_name]

        service_id = self._fetch_id(SELECT_SERVICE_SQL, (service_name,))

        if service_id is None:
            service_id = self._insert("service", INSERT_SERVICE_SQL, (service_name,))
            self.created["services"] += 1
            logger.debug(f"Created service {service_id}: {service_name}")

        self._services[service_name] = service_id
        return service_id

    def cache_stats(self) -> Dict[str, int]:
        """Number of distinct patients and services seen in this run."""
        return {"patients": len(self._patients), "services": len(self._services)}

    def _infer(self, first_name: str) -> Optional[str]:
        try:
            return self.infer(first_name)
        except Exception as e:
            logger.warning(f"Sex inference failed for '{first_name}', storing NULL: {e}")
            return None

    def _fetch_id(self, query: str, params: tuple) -> Optional[int]:
        self.cursor.execute(query, params)
        row = self.cursor.fetchone()
        return row[0] if row else None

    def _insert(self, table: str, query: str, params: tuple) -> int:
        new_id = self._fetch_id(query, params)
        if new_id is None:
            raise MissingIdentifierError(table)
        return new_id
