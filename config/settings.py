"""
Configuration Management

Loads environment variables and provides settings for the appointment ETL.
Uses python-dotenv for local development and environment variables for production.
"""

import os
from dotenv import load_dotenv

# Load .env file for local development
load_dotenv()


class Settings:
    """
    Application settings loaded from environment variables.

    Covers the destination (PostgreSQL) and the source (SQL Server) databases.
    """

    # Destination database (PostgreSQL)
    DB_HOST: str = os.getenv("DB_HOST", "localhost")
    DB_PORT: int = int(os.getenv("DB_PORT", "5432"))
    DB_NAME: str = os.getenv("DB_NAME", "his_analytics")
    DB_USER: str = os.getenv("DB_USER")
    DB_PASSWORD: str = os.getenv("DB_PASSWORD")

    # Source database (SQL Server)
    SQLSRV_HOST: str = os.getenv("SQLSRV_HOST")
    SQLSRV_DB: str = os.getenv("SQLSRV_DB")
    SQLSRV_USER: str = os.getenv("SQLSRV_USER")
    SQLSRV_PASSWORD: str = os.getenv("SQLSRV_PASSWORD")
    SQLSRV_DRIVER: str = os.getenv("SQLSRV_DRIVER", "ODBC Driver 18 for SQL Server")

    # Name-based sex inference
    INFERENCE_COUNTRY: str = os.getenv("INFERENCE_COUNTRY", "spain")

    # Logging Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "logs/etl.log")

    REQUIRED_FIELDS = [
        "DB_USER",
        "DB_PASSWORD",
        "SQLSRV_HOST",
        "SQLSRV_DB",
        "SQLSRV_USER",
        "SQLSRV_PASSWORD",
    ]

    def __init__(self):
        """Validate required settings on initialization."""
        self._validate_settings()

    def _validate_settings(self) -> None:
        """
        Validate that all required settings are provided.

        Raises:
            ValueError: If required settings are missing
        """
        missing_fields = [
            field for field in self.REQUIRED_FIELDS
            if not getattr(self, field, None)
        ]

        if missing_fields:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing_fields)}. "
                f"Please check your .env file."
            )

    def __repr__(self) -> str:
        """Return string representation (excluding sensitive data)."""
        return (
            f"Settings("
            f"DB_HOST={self.DB_HOST}, "
            f"DB_NAME={self.DB_NAME}, "
            f"SQLSRV_HOST={self.SQLSRV_HOST}, "
            f"SQLSRV_DB={self.SQLSRV_DB}"
            f")"
        )
