"""
HIS Appointments ETL Package

Moves appointment scheduling records from the HIS SQL Server database into a
normalized PostgreSQL analytics schema.

Modules:
- extract: Data extraction from SQL Server
- transform: Flat records and name normalization
- inference: Name-based sex inference
- resolver: Patient and service deduplication
- load: All-or-nothing load into PostgreSQL
- run_etl: Pipeline orchestration
"""

__version__ = "1.0.0"
__author__ = "Data Engineering Team"
