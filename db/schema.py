"""
Destination Schema Builder

Drops and recreates the analytics schema in PostgreSQL before each load.

WARNING: recreate() runs DROP SCHEMA public CASCADE. Every table and row in
the destination database is destroyed. Point it only at the analytics
database.
"""

import logging
from typing import List

from etl.exceptions import SchemaBuildError

logger = logging.getLogger(__name__)


PATIENT_TABLE = """
    CREATE TABLE patient (
        id SERIAL PRIMARY KEY,
        given_name VARCHAR(255) NOT NULL,
        family_name VARCHAR(255) NOT NULL,
        identity_document VARCHAR(255) NOT NULL,
        inferred_sex VARCHAR(255)
    );
"""

APPOINTMENT_TABLE = """
    CREATE TABLE appointment (
        id SERIAL PRIMARY KEY,
        patient_id INTEGER NOT NULL,
        date DATE NOT NULL,
        time TIME(0) WITHOUT TIME ZONE NOT NULL,
        duration_minutes INTEGER NOT NULL,
        overbooked BOOLEAN NOT NULL,
        status VARCHAR(255) NOT NULL,
        created_at TIMESTAMP(0) WITHOUT TIME ZONE NOT NULL,
        created_by VARCHAR(255) NOT NULL,
        CONSTRAINT fk_appointment_patient FOREIGN KEY (patient_id)
            REFERENCES patient (id) ON DELETE RESTRICT
    );
"""

SERVICE_TABLE = """
    CREATE TABLE service (
        id SERIAL PRIMARY KEY,
        name VARCHAR(255) NOT NULL UNIQUE
    );
"""

APPOINTMENT_SERVICE_TABLE = """
    CREATE TABLE appointment_service (
        id SERIAL PRIMARY KEY,
        appointment_id INTEGER NOT NULL,
        service_id INTEGER NOT NULL,
        CONSTRAINT fk_as_appointment FOREIGN KEY (appointment_id)
            REFERENCES appointment (id) ON DELETE CASCADE,
        CONSTRAINT fk_as_service FOREIGN KEY (service_id)
            REFERENCES service (id) ON DELETE RESTRICT
    );
"""


class PostgresSchemaBuilder:
    """
    (Re)creates the four-table analytics schema.

    Runs on the caller's cursor inside a savepoint, so it can be nested in
    the load transaction: a failure here rolls back only the schema work and
    is reported as SchemaBuildError, while the caller's transaction decides
    whether anything is finally committed.
    """

    SAVEPOINT = "schema_reset"

    def statements(self) -> List[str]:
        """
        Ordered DDL for a full reset.

        Returns:
            List of SQL statements
        """
        return [
            "DROP SCHEMA IF EXISTS public CASCADE;",
            "CREATE SCHEMA public;",
            "GRANT ALL ON SCHEMA public TO PUBLIC;",
            PATIENT_TABLE,
            "CREATE INDEX idx_patient_document ON patient (identity_document);",
            APPOINTMENT_TABLE,
            "CREATE INDEX idx_appointment_patient ON appointment (patient_id);",
            "CREATE INDEX idx_appointment_date ON appointment (date);",
            "CREATE INDEX idx_appointment_status ON appointment (status);",
            SERVICE_TABLE,
            APPOINTMENT_SERVICE_TABLE,
            "CREATE INDEX idx_as_appointment ON appointment_service (appointment_id);",
            "CREATE INDEX idx_as_service ON appointment_service (service_id);",
        ]

    def recreate(self, cursor) -> None:
        """
        Drop every object in the public schema and rebuild the analytics tables.

        Args:
            cursor: psycopg2 cursor of the enclosing transaction

        Raises:
            SchemaBuildError: If any DDL statement fails
        """
        logger.info("Recreating destination schema")
        cursor.execute(f"SAVEPOINT {self.SAVEPOINT};")

        try:
            for statement in self.statements():
                cursor.execute(statement)
        except Exception as e:
            logger.error(f"Schema reset failed: {e}")
            try:
                cursor.execute(f"ROLLBACK TO SAVEPOINT {self.SAVEPOINT};")
            except Exception:
                logger.exception("Rollback to savepoint failed")
            raise SchemaBuildError(f"Failed to recreate destination schema: {e}") from e

        cursor.execute(f"RELEASE SAVEPOINT {self.SAVEPOINT};")
        logger.info("Destination schema recreated")
