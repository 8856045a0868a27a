"""
Data Transformation

Converts the extracted source DataFrame into flat appointment records and
provides the normalization rules applied to names, identity documents and
service names.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

# The source stores services as fixed denormalized columns service_0..service_10.
SERVICE_SLOTS = 11

SERVICE_COLUMNS = [f"service_{i}" for i in range(SERVICE_SLOTS)]

REQUIRED_COLUMNS = [
    "patient_given_name",
    "patient_family_name",
    "patient_document",
    "appointment_date",
    "appointment_time",
    "duration_minutes",
    "overbooked",
    "status",
    "created_at",
    "created_by",
] + SERVICE_COLUMNS

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FlatRecord:
    """One denormalized appointment row as read from the source."""
    patient_given_name: Optional[str]
    patient_family_name: Optional[str]
    patient_document: str
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    overbooked: bool
    status: str
    created_at: datetime
    created_by: str
    services: Tuple[Optional[str], ...] = (None,) * SERVICE_SLOTS


def normalize_name(value: Optional[str]) -> Optional[str]:
    """
    Clean a given or family name.

    Trims, collapses internal whitespace runs to a single space and uppercases.
    None is passed through.
    """
    if value is None:
        return None

    return _WHITESPACE.sub(" ", value.strip()).upper()


def normalize_key(value: Optional[str]) -> Optional[str]:
    """Trim an identity document or service name. No other change is made."""
    if value is None:
        return None
    return value.strip()


def is_blank(value: Optional[str]) -> bool:
    """True for None, empty and whitespace-only values."""
    return value is None or not str(value).strip()


def first_token(name: Optional[str]) -> str:
    """First space-delimited token of an already normalized name."""
    if not name:
        return ""
    return name.split(" ")[0]


class RecordTransformer:
    """
    Turns the raw source DataFrame into FlatRecord objects.

    Operations:
    - Column name normalization (lowercase, trim)
    - Required column check
    - NULL/NaN to None
    - pandas/numpy scalars to plain Python values
    """

    def transform(self, df: pd.DataFrame) -> List[FlatRecord]:
        """
        Convert a source DataFrame into flat records, keeping row order.

        Args:
            df: Raw DataFrame returned by the extraction query

        Returns:
            List of FlatRecord in source order

        Raises:
            ValueError: If required columns are missing
        """
        if df.empty:
            logger.warning("Input DataFrame is empty")
            return []

        df = self._normalize_columns(df)
        self._check_columns(df)

        # NaN/NaT -> None, numpy scalars -> Python objects
        df = df.astype(object).where(pd.notna(df), None)

        records = [self._to_record(row) for row in df.to_dict(orient="records")]

        logger.debug(f"Converted {len(records)} rows to flat records")

        return records

    def _normalize_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Normalize column names to lowercase.

        Args:
            df: DataFrame with raw column names

        Returns:
            DataFrame with normalized column names
        """
        df = df.copy()
        df.columns = df.columns.str.strip().str.lower()
        return df

    def _check_columns(self, df: pd.DataFrame) -> None:
        missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
        if missing:
            raise ValueError(f"Source data is missing columns: {', '.join(missing)}")

    def _to_record(self, row: dict) -> FlatRecord:
        services = tuple(self._text(row[col]) for col in SERVICE_COLUMNS)

        return FlatRecord(
            patient_given_name=self._text(row["patient_given_name"]),
            patient_family_name=self._text(row["patient_family_name"]),
            patient_document=self._text(row["patient_document"]),
            appointment_date=self._plain(row["appointment_date"]),
            appointment_time=self._plain(row["appointment_time"]),
            duration_minutes=None if row["duration_minutes"] is None else int(row["duration_minutes"]),
            overbooked=None if row["overbooked"] is None else bool(row["overbooked"]),
            status=self._text(row["status"]),
            created_at=self._plain(row["created_at"]),
            created_by=self._text(row["created_by"]),
            services=services,
        )

    @staticmethod
    def _text(value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @staticmethod
    def _plain(value: Any) -> Any:
        if isinstance(value, pd.Timestamp):
            return value.to_pydatetime()
        return value


def to_flat_records(df: pd.DataFrame) -> List[FlatRecord]:
    """
    Convenience function to transform extracted data.

    Args:
        df: Raw DataFrame from extraction

    Returns:
        List of FlatRecord
    """
    transformer = RecordTransformer()
    return transformer.transform(df)
