"""
ETL Pipeline Orchestrator

Coordinates one appointment ETL run:
- Extract appointments from the HIS SQL Server database
- Confirm the destructive reset of the analytics database
- Recreate the schema and load everything in one transaction
- Report the outcome
"""

import argparse
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.connection import DatabaseConnection
from config.settings import Settings
from etl.extract import ExtractionResult, fetch_appointments
from etl.inference import infer_sex
from etl.load import AppointmentLoader

logger = logging.getLogger(__name__)

CONFIRM_MESSAGE = (
    "WARNING: this will delete ALL existing data in the analytics database "
    "and recreate its structure. Continue? [y/N] "
)


def build_loader(settings: Settings, show_progress: bool = True) -> AppointmentLoader:
    """Loader whose sex inference uses the configured country."""
    infer = functools.partial(infer_sex, country=settings.INFERENCE_COUNTRY)
    return AppointmentLoader(infer=infer, show_progress=show_progress)


def ask_confirmation() -> bool:
    """Prompt on stdin; anything other than y/yes declines."""
    try:
        answer = input(CONFIRM_MESSAGE)
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


class ETLOrchestrator:
    """
    Orchestrates the complete ETL pipeline.

    Workflow:
    1. Extract appointments from SQL Server
    2. Stop successfully if there is nothing to load
    3. Ask for confirmation before wiping the destination
    4. Initialize destination connection
    5. Reset schema and load all records in one transaction
    """

    def __init__(
        self,
        settings: Settings,
        extractor: Optional[Callable[[Settings], ExtractionResult]] = None,
        loader: Optional[AppointmentLoader] = None,
        confirm: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize ETL orchestrator.

        Args:
            settings: Configuration object with database credentials
            extractor: Function returning the ExtractionResult for the settings
            loader: Loader used for the destination
            confirm: Returns True when the destructive reset may proceed
        """
        self.settings = settings
        self.extractor = extractor or fetch_appointments
        self.loader = loader or build_loader(settings)
        self.confirm = confirm or ask_confirmation
        self.start_time: datetime = None
        self.end_time: datetime = None
        self.metrics: Dict[str, Any] = {
            "extraction_status": None,
            "extracted_rows": 0,
            "loaded_rows": 0,
        }

    def run(self) -> bool:
        """
        Execute the complete ETL pipeline.

        Returns:
            True if successful (including "nothing to do"), False otherwise
        """
        self.start_time = datetime.now(timezone.utc)

        try:
            logger.info("=" * 60)
            logger.info("Starting HIS appointments ETL")
            logger.info("=" * 60)

            logger.info("Step 1: Extracting data from SQL Server...")
            result = self.extractor(self.settings)
            self.metrics["extraction_status"] = result.status
            self.metrics["extracted_rows"] = len(result.records)

            if result.failed:
                logger.warning(
                    f"Extraction failed, nothing will be loaded: {result.error}"
                )
                return True

            if not result.has_data:
                logger.warning("No data found to process, nothing will be loaded")
                return True

            logger.info(f"{len(result.records)} records extracted")

            logger.info("Step 2: Transforming and loading data...")
            if not self.confirm():
                logger.warning("Operation cancelled by user")
                return True

            self._initialize_database()

            self.metrics["loaded_rows"] = self.loader.load(result.records)

            self.end_time = datetime.now(timezone.utc)
            logger.info("=" * 60)
            logger.info("ETL Pipeline Completed Successfully")
            logger.info("=" * 60)
            self._log_summary()

            return True

        except Exception as e:
            logger.error(f"ETL Pipeline failed, destination left unchanged: {e}", exc_info=True)
            return False

        finally:
            DatabaseConnection.close_all()

    def _initialize_database(self) -> None:
        """Initialize database connection pool."""
        logger.info("Initializing database connection...")
        try:
            DatabaseConnection.initialize(
                host=self.settings.DB_HOST,
                port=self.settings.DB_PORT,
                database=self.settings.DB_NAME,
                user=self.settings.DB_USER,
                password=self.settings.DB_PASSWORD,
            )
            logger.info("Database connection established")
        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    def _log_summary(self) -> None:
        """Log ETL execution summary with all metrics."""
        duration = (self.end_time - self.start_time).total_seconds()
        load_metrics = self.loader.metrics
        logger.info(f"Duration: {duration:.2f} seconds")
        logger.info(f"Rows extracted: {self.metrics['extracted_rows']}")
        logger.info(f"Appointments loaded: {self.metrics['loaded_rows']}")
        logger.info(f"Patients created: {load_metrics.get('patients', 0)}")
        logger.info(f"Services created: {load_metrics.get('services', 0)}")
        logger.info(f"Appointment services linked: {load_metrics.get('appointment_services', 0)}")


def setup_logging(log_file: str = "logs/etl.log", level: str = "INFO") -> None:
    """
    Configure logging for ETL pipeline.

    Args:
        log_file: Path to log file
        level: Console log level
    """
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # File handler
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level.upper())
    console_handler.setFormatter(formatter)

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Load HIS appointments from SQL Server into the PostgreSQL analytics database."
    )
    parser.add_argument("--yes", action="store_true", help="Skip the destructive reset confirmation")
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    """Main entry point for ETL pipeline."""
    args = parse_args(argv)
    setup_logging(Settings.LOG_FILE, Settings.LOG_LEVEL)

    try:
        settings = Settings()
        orchestrator = ETLOrchestrator(
            settings,
            loader=build_loader(settings, show_progress=not args.no_progress),
            confirm=(lambda: True) if args.yes else None,
        )
        success = orchestrator.run()
        sys.exit(0 if success else 1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
