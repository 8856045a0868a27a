"""
ETL Exceptions

Run-fatal errors raised by the load phase. Any of these aborts the run and
rolls back the destination transaction.
"""


class ETLError(Exception):
    """Base class for errors raised by the appointment ETL."""


class SchemaBuildError(ETLError):
    """The destination schema could not be dropped and recreated."""


class MissingIdentifierError(ETLError):
    """An INSERT ... RETURNING id produced no identifier."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(f"Could not obtain the id of the row inserted into '{table}'")
