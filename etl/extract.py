"""
SQL Server Data Extraction

Reads the HIS appointment ("turnos") view from SQL Server into a pandas
DataFrame and converts it to flat records.

Extraction never raises: the outcome is reported as an ExtractionResult
tagged "ok", "empty" or "failed", so the caller can treat "no data" and
"source broken" the same way while still telling them apart in logs.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from db.source import SourceConnection
from etl.transform import FlatRecord, to_flat_records

logger = logging.getLogger(__name__)


STATUS_OK = "ok"
STATUS_EMPTY = "empty"
STATUS_FAILED = "failed"


# Source tables and columns belong to the HIS and keep their Spanish names.
# The service columns are the assigned service plus up to ten performable ones.
APPOINTMENTS_QUERY = """
SELECT
    t.Id AS appointment_id,

    -- patient
    p.Nombres AS patient_given_name,
    p.Apellido AS patient_family_name,
    p.Documento_Numero AS patient_document,

    -- appointment
    t.FechaTurno AS appointment_date,
    t.HoraTurno AS appointment_time,
    t.DuracionMinutos AS duration_minutes,
    t.EsSobreTurno AS overbooked,
    te.Nombre AS status,

    -- audit
    t.FechaAlta AS created_at,
    usu.NombreInicioSesion AS created_by,

    -- services
    pres0.Nombre AS service_0,
    pres1.Nombre AS service_1,
    pres2.Nombre AS service_2,
    pres3.Nombre AS service_3,
    pres4.Nombre AS service_4,
    pres5.Nombre AS service_5,
    pres6.Nombre AS service_6,
    pres7.Nombre AS service_7,
    pres8.Nombre AS service_8,
    pres9.Nombre AS service_9,
    pres10.Nombre AS service_10

FROM turnos t
    JOIN Recursos r ON r.Id = t.IdRecurso
    JOIN Recurso_Tipos rt ON rt.Id = r.IdRecurso_Tipo
    JOIN Servicios s ON s.Id = t.IdServicio
    JOIN CentrosAtencion ca ON ca.Id = t.IdCentroAtencion
    JOIN Personas p ON p.Id = t.IdPersona
    JOIN Turno_Estados te ON te.Id = t.IdTurno_Estado
    JOIN Usuarios usu ON usu.Id = t.IdUsuario_Otorgo
    JOIN Personas per ON per.Id = usu.IdPersona
    JOIN Turno_Tipos ttprevisto ON ttprevisto.Id = t.IdTurno_TipoPrevisto
    LEFT JOIN RIS.OrdenDeTrabajo ot ON ot.IdTurno = t.Id
    LEFT JOIN RIS.Informes inf ON inf.IdOrdenDeTrabajo = ot.Id
    LEFT JOIN Prestaciones pres0 ON pres0.Id = t.IdPrestacionAsignada
    LEFT JOIN Prestaciones pres1 ON pres1.Id = t.IdPrestacionRealizable01
    LEFT JOIN Prestaciones pres2 ON pres2.Id = t.IdPrestacionRealizable02
    LEFT JOIN Prestaciones pres3 ON pres3.Id = t.IdPrestacionRealizable03
    LEFT JOIN Prestaciones pres4 ON pres4.Id = t.IdPrestacionRealizable04
    LEFT JOIN Prestaciones pres5 ON pres5.Id = t.IdPrestacionRealizable05
    LEFT JOIN Prestaciones pres6 ON pres6.Id = t.IdPrestacionRealizable06
    LEFT JOIN Prestaciones pres7 ON pres7.Id = t.IdPrestacionRealizable07
    LEFT JOIN Prestaciones pres8 ON pres8.Id = t.IdPrestacionRealizable08
    LEFT JOIN Prestaciones pres9 ON pres9.Id = t.IdPrestacionRealizable09
    LEFT JOIN Prestaciones pres10 ON pres10.Id = t.IdPrestacionRealizable10

ORDER BY t.FechaAlta DESC
"""


@dataclass
class ExtractionResult:
    """Outcome of one extraction: the records, or why there are none."""
    status: str
    records: List[FlatRecord] = field(default_factory=list)
    error: Optional[Exception] = None

    @classmethod
    def success(cls, records: List[FlatRecord]) -> "ExtractionResult":
        return cls(status=STATUS_OK if records else STATUS_EMPTY, records=list(records))

    @classmethod
    def failure(cls, error: Exception) -> "ExtractionResult":
        return cls(status=STATUS_FAILED, error=error)

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    @property
    def has_data(self) -> bool:
        return self.status == STATUS_OK


class SQLServerExtractor:
    """
    Extracts appointment rows from the HIS SQL Server database.
    """

    def __init__(self, source: SourceConnection, query: str = APPOINTMENTS_QUERY):
        """
        Initialize SQL Server extractor.

        Args:
            source: Connection factory for the source database
            query: Read query; must produce the flat record columns
        """
        self.source = source
        self.query = query

    def extract(self) -> ExtractionResult:
        """
        Run the read query and convert the rows to flat records.

        Returns:
            ExtractionResult tagged ok, empty or failed
        """
        try:
            logger.info(f"Extracting appointments from {self.source}")

            with self.source.connect() as conn:
                df = pd.read_sql(self.query, conn)

            records = to_flat_records(df)

        except Exception as e:
            logger.error(f"Failed to extract data from SQL Server: {e}")
            return ExtractionResult.failure(e)

        if records:
            logger.info(f"Successfully extracted {len(records)} rows")
        else:
            logger.warning("Extraction query returned no rows")

        return ExtractionResult.success(records)


def fetch_appointments(settings) -> ExtractionResult:
    """
    Convenience function to extract data using settings.

    Args:
        settings: Settings object with the SQLSRV_* values

    Returns:
        ExtractionResult
    """
    source = SourceConnection(
        host=settings.SQLSRV_HOST,
        database=settings.SQLSRV_DB,
        user=settings.SQLSRV_USER,
        password=settings.SQLSRV_PASSWORD,
        driver=settings.SQLSRV_DRIVER,
    )
    extractor = SQLServerExtractor(source)
    return extractor.extract()
