"""
Data Loading into PostgreSQL

Loads a batch of flat appointment records into the analytics schema in a
single all-or-nothing transaction: schema reset, patients, appointments,
services and the appointment/service junction.
"""

import logging
from typing import Callable, Dict, List, Optional

from tqdm import tqdm

from db.connection import DatabaseConnection
from db.schema import PostgresSchemaBuilder
from etl.exceptions import MissingIdentifierError
from etl.inference import infer_sex
from etl.resolver import EntityResolver
from etl.transform import SERVICE_SLOTS, FlatRecord, is_blank

logger = logging.getLogger(__name__)


INSERT_APPOINTMENT_SQL = """
    INSERT INTO appointment (
        patient_id, date, time, duration_minutes, overbooked,
        status, created_at, created_by
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING id;
"""

INSERT_APPOINTMENT_SERVICE_SQL = """
    INSERT INTO appointment_service (appointment_id, service_id)
    VALUES (%s, %s);
"""


class AppointmentLoader:
    """
    Loads appointment records into PostgreSQL.

    The whole batch is one transaction. The destination schema is dropped and
    recreated inside it, so a failure at any record rolls back the reset too
    and leaves the destination exactly as it was before the run.
    """

    def __init__(
        self,
        schema_builder: Optional[PostgresSchemaBuilder] = None,
        infer: Callable[[str], Optional[str]] = infer_sex,
        show_progress: bool = True,
    ):
        """
        Args:
            schema_builder: Builder used for the destructive reset
            infer: Sex inference function handed to the entity resolver
            show_progress: Display a progress bar while loading
        """
        self.schema_builder = schema_builder or PostgresSchemaBuilder()
        self.infer = infer
        self.show_progress = show_progress
        self.metrics: Dict[str, int] = self._empty_metrics()

    def load(self, records: List[FlatRecord]) -> int:
        """
        Reset the destination and load every record.

        An empty batch is a no-op: no connection is used and the schema is
        not reset.

        Args:
            records: Flat records in source order

        Returns:
            Number of appointments loaded

        Raises:
            SchemaBuildError: If the schema reset fails
            MissingIdentifierError: If an insert returns no id
            psycopg2.Error: On any database failure
        """
        self.metrics = self._empty_metrics()

        if not records:
            logger.info("No records to load")
            return 0

        logger.info(f"Loading {len(records)} appointment records")

        index = -1
        try:
            with DatabaseConnection.get_cursor() as cursor:
                logger.info("Transaction started on destination database")
                self.schema_builder.recreate(cursor)

                resolver = EntityResolver(cursor, infer=self.infer)

                with tqdm(
                    records,
                    total=len(records),
                    desc="Loading appointments",
                    unit="rec",
                    disable=not self.show_progress,
                ) as progress:
                    for index, record in enumerate(progress):
                        self._load_record(cursor, resolver, record)
                        self.metrics["appointments"] += 1

                self.metrics["patients"] = resolver.created["patients"]
                self.metrics["services"] = resolver.created["services"]

        except Exception as e:
            where = "schema reset" if index < 0 else f"record {index}"
            logger.error(f"Failed to load appointments at {where}; transaction rolled back: {e}")
            raise

        logger.info(
            f"Successfully loaded {self.metrics['appointments']} appointments, "
            f"{self.metrics['patients']} patients, {self.metrics['services']} services, "
            f"{self.metrics['appointment_services']} appointment services"
        )

        return self.metrics["appointments"]

    def _load_record(self, cursor, resolver: EntityResolver, record: FlatRecord) -> None:
        """
        Load one record: patient, appointment row and its service links.

        Args:
            cursor: Cursor of the load transaction
            resolver: Run-scoped entity resolver
            record: Flat source record
        """
        patient_id = resolver.resolve_patient(
            record.patient_document,
            record.patient_given_name,
            record.patient_family_name,
        )

        cursor.execute(
            INSERT_APPOINTMENT_SQL,
            (
                patient_id,
                record.appointment_date,
                record.appointment_time,
                record.duration_minutes,
                record.overbooked,
                record.status,
                record.created_at,
                record.created_by,
            ),
        )
        row = cursor.fetchone()
        if not row:
            raise MissingIdentifierError("appointment")
        appointment_id = row[0]

        for slot in range(SERVICE_SLOTS):
            name = record.services[slot]
            if is_blank(name):
                continue

            service_id = resolver.resolve_service(name.strip())
            cursor.execute(INSERT_APPOINTMENT_SERVICE_SQL, (appointment_id, service_id))
            self.metrics["appointment_services"] += 1

    @staticmethod
    def _empty_metrics() -> Dict[str, int]:
        return {"appointments": 0, "patients": 0, "services": 0, "appointment_services": 0}

