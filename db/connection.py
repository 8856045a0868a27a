"""
PostgreSQL Connection Helper

Provides connection pooling and transaction scoping for the destination
(analytics) database. A connection checked out through get_connection()
is one transaction: committed when the block exits normally, rolled back
on any exception.
"""

from psycopg2 import pool, OperationalError
from contextlib import contextmanager
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Manages PostgreSQL connections with connection pooling.
    """

    _instance = None
    _pool: Optional[pool.SimpleConnectionPool] = None

    def __new__(cls):
        """Ensure singleton pattern for connection pool."""
        if cls._instance is None:
            cls._instance = super(DatabaseConnection, cls).__new__(cls)
        return cls._instance

    @classmethod
    def initialize(
        cls,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_connections: int = 1,
        max_connections: int = 2,
    ) -> None:
        """
        Initialize the connection pool.

        Args:
            host: PostgreSQL server host
            port: PostgreSQL server port
            database: Database name
            user: Database user
            password: Database password
            min_connections: Minimum pool connections
            max_connections: Maximum pool connections

        Raises:
            OperationalError: If connection fails
        """
        try:
            cls._pool = pool.SimpleConnectionPool(
                min_connections,
                max_connections,
                host=host,
                port=port,
                database=database,
                user=user,
                password=password,
                connect_timeout=10,
            )
            logger.info(f"Database pool initialized with {min_connections}-{max_connections} connections")
        except OperationalError as e:
            logger.error(f"Failed to initialize database pool: {e}")
            raise

    @classmethod
    def close_all(cls) -> None:
        """Close all connections in the pool."""
        if cls._pool:
            cls._pool.closeall()
            cls._pool = None
            logger.info("Database pool closed")

    @classmethod
    @contextmanager
    def get_connection(cls):
        """
        Context manager to get a connection from the pool.

        Everything executed on the connection inside the block is a single
        transaction.

        Yields:
            psycopg2 connection object

        Raises:
            OperationalError: If pool is not initialized or connection fails
        """
        if cls._pool is None:
            raise OperationalError("Database pool not initialized. Call initialize() first.")

        conn = None
        broken = False
        try:
            conn = cls._pool.getconn()
            yield conn
            conn.commit()
            logger.debug("Transaction committed successfully")
        except Exception as e:
            logger.error(f"Database error: {e}")
            if conn:
                broken = not cls._rollback(conn)
            raise
        finally:
            if conn:
                cls._pool.putconn(conn, close=broken or bool(conn.closed))

    @staticmethod
    def _rollback(conn) -> bool:
        """
        Roll back the open transaction without masking the error that caused it.

        Returns:
            False if the connection is closed or the rollback itself failed
        """
        if conn.closed:
            logger.warning("Connection closed; the server discards the open transaction")
            return False

        try:
            conn.rollback()
        except Exception:
            logger.exception("Rollback failed")
            return False

        logger.warning("Transaction rolled back")
        return True

    @classmethod
    @contextmanager
    def get_cursor(cls):
        """
        Context manager to get a cursor bound to one transaction.

        Yields:
            psycopg2 cursor object

        Example:
            with DatabaseConnection.get_cursor() as cursor:
                cursor.execute("SELECT id FROM service WHERE name = %s", ("RX",))
                row = cursor.fetchone()
        """
        with cls.get_connection() as conn:
            cursor = conn.cursor()
            try:
                yield cursor
            finally:
                cursor.close()
