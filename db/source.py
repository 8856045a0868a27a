"""
SQL Server Connection Helper

Opens read-only connections to the HIS scheduling database (source).
"""

import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class SourceConnection:
    """
    Builds pyodbc connections to the source SQL Server.

    The connection is encrypted and trusts the server certificate, as the
    HIS server uses a self-signed one.
    """

    def __init__(
        self,
        host: str,
        database: str,
        user: str,
        password: str,
        driver: str = "ODBC Driver 18 for SQL Server",
        timeout: int = 30,
    ):
        self.host = host
        self.database = database
        self.user = user
        self.password = password
        self.driver = driver
        self.timeout = timeout

    @property
    def connection_string(self) -> str:
        """ODBC connection string for the source server."""
        return (
            f"DRIVER={{{self.driver}}};"
            f"SERVER={self.host};"
            f"DATABASE={self.database};"
            f"UID={self.user};"
            f"PWD={self.password};"
            f"Encrypt=yes;"
            f"TrustServerCertificate=yes;"
        )

    @contextmanager
    def connect(self):
        """
        Context manager yielding an open pyodbc connection.

        Yields:
            pyodbc connection object

        Raises:
            pyodbc.Error: If the server is unreachable or login fails
        """
        import pyodbc

        logger.info(f"Connecting to SQL Server {self.host}/{self.database}")
        conn = pyodbc.connect(self.connection_string, timeout=self.timeout, readonly=True)
        try:
            yield conn
        finally:
            conn.close()
            logger.debug("SQL Server connection closed")

    def __repr__(self) -> str:
        return f"SourceConnection(host={self.host}, database={self.database})"
