"""
Database Manager

Persistence for monthly price records, scraping sessions and scrape
errors. Inserts are idempotent: a record whose (month, postal code) pair
already exists is reported as a duplicate instead of raising.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set

from sqlalchemy import create_engine, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import DATABASE_ECHO, DATABASE_URL
from core.errors import PersistenceFailure
from models.base import Base
from models.price_models import MonthlyPrice, ScrapingError, ScrapingSession
from models.target import DataSource, PriceRecord

logger = logging.getLogger(__name__)


class InsertOutcome(Enum):
    """Result of an idempotent insert."""
    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class DatabaseManager:
    """Manages database operations for the price scraper"""

    def __init__(self, database_url: str = None, echo: bool = None):
        self.database_url = database_url or DATABASE_URL
        self.echo = DATABASE_ECHO if echo is None else echo
        self.engine = None
        self.SessionLocal = None
        self._initialize_engine()

    def _initialize_engine(self):
        """Initialize the database engine and session factory"""
        engine_kwargs = {'pool_pre_ping': True, 'echo': self.echo}

        if self.database_url.startswith('sqlite'):
            # Worker threads share the engine
            engine_kwargs['connect_args'] = {'check_same_thread': False}

        self.engine = create_engine(self.database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"Database engine initialized for {self.engine.url.render_as_string(hide_password=True)}")

    def create_tables(self) -> None:
        """Create all tables if they don't exist"""
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Get a database session with automatic commit, rollback and cleanup"""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """
        Verify the database is reachable and the schema exists.

        Raises:
            PersistenceFailure: If the database cannot be reached
        """
        try:
            self.create_tables()
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Database connection failed: {e}") from e
        return True

    # Price records

    def existing_postal_codes(self, period: date) -> Set[str]:
        """All postal codes that already have a record for a month."""
        try:
            with self.get_session() as session:
                rows = session.execute(select(MonthlyPrice.plz).where(MonthlyPrice.data_month == period))
                return {row[0] for row in rows}
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load existing postal codes for {period}: {e}") from e

    def exists(self, period: date, postal_code: str) -> bool:
        try:
            with self.get_session() as session:
                return self._exists(session, period, postal_code)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Existence check failed for {postal_code}: {e}") from e

    @staticmethod
    def _exists(session: Session, period: date, postal_code: str) -> bool:
        found = session.execute(
            select(MonthlyPrice.id).where(MonthlyPrice.data_month == period, MonthlyPrice.plz == postal_code)
        ).first()
        return found is not None

    def insert(self, record: PriceRecord) -> InsertOutcome:
        """
        Insert a price record unless one already exists for its month and postal code.

        Args:
            record: The record to store

        Returns:
            InsertOutcome.INSERTED or InsertOutcome.DUPLICATE

        Raises:
            PersistenceFailure: For any database error other than a duplicate key
        """
        if self.exists(record.period, record.postal_code):
            logger.debug(f"Record for {record.postal_code} in {record.period} already exists, skipping")
            return InsertOutcome.DUPLICATE

        try:
            with self.get_session() as session:
                session.add(self._to_model(record))
        except IntegrityError as e:
            # Another worker may have inserted the same pair in between
            if self.exists(record.period, record.postal_code):
                logger.debug(f"Duplicate key for {record.postal_code} in {record.period}, skipping")
                return InsertOutcome.DUPLICATE
            raise PersistenceFailure(f"Failed to insert record for {record.postal_code}: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to insert record for {record.postal_code}: {e}") from e

        return InsertOutcome.INSERTED

    @staticmethod
    def _to_model(record: PriceRecord) -> MonthlyPrice:
        return MonthlyPrice(
            data_month=record.period,
            plz=record.postal_code,
            city_name=record.display_name,
            latitude=record.latitude,
            longitude=record.longitude,
            lokaler_versorger_price=record.price_a,
            oekostrom_price=record.price_b,
            average_price=record.average,
            is_outlier=record.is_outlier,
            outlier_severity=record.outlier_severity,
            data_source=record.data_source.value,
            source_url=record.source_url,
            source_plz=record.source_postal_code,
            distance_km=record.distance_km,
            extraction_method=record.extraction_method,
            structural_class=record.structural_class,
            expected_class=record.expected_class,
            elapsed_ms=record.elapsed_ms,
            extraction_details=record.extraction_details or None,
            scraped_at=record.scraped_at,
        )

    @staticmethod
    def _from_model(row: MonthlyPrice) -> PriceRecord:
        return PriceRecord(
            period=row.data_month,
            postal_code=row.plz,
            display_name=row.city_name,
            price_a=row.lokaler_versorger_price,
            price_b=row.oekostrom_price,
            latitude=row.latitude,
            longitude=row.longitude,
            is_outlier=row.is_outlier,
            outlier_severity=row.outlier_severity,
            source_url=row.source_url,
            extraction_method=row.extraction_method,
            structural_class=row.structural_class,
            expected_class=row.expected_class,
            elapsed_ms=row.elapsed_ms,
            data_source=DataSource(row.data_source),
            source_postal_code=row.source_plz,
            distance_km=row.distance_km,
            extraction_details=row.extraction_details or {},
            scraped_at=row.scraped_at,
        )

    def fetch_records(self, period: date, data_source: Optional[DataSource] = None) -> List[PriceRecord]:
        """Load the records of a month, optionally filtered by data source."""
        try:
            with self.get_session() as session:
                query = select(MonthlyPrice).where(MonthlyPrice.data_month == period).order_by(MonthlyPrice.plz)
                if data_source is not None:
                    query = query.where(MonthlyPrice.data_source == data_source.value)
                return [self._from_model(row) for row in session.scalars(query)]
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to load records for {period}: {e}") from e

    # Sessions

    def start_session(self, period: date, planned_count: int, config: Optional[Dict[str, Any]] = None) -> str:
        """
        Create a running session.

        Returns:
            The new session id

        Raises:
            PersistenceFailure: If the session row cannot be written
        """
        try:
            with self.get_session() as session:
                row = ScrapingSession(
                    data_month=period,
                    status="running",
                    total_cities=planned_count,
                    scraper_config=config,
                    started_at=datetime.now(),
                )
                session.add(row)
                session.flush()
                session_id = row.id
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to start session: {e}") from e

        logger.info(f"Started scraping session {session_id} for {period} with {planned_count} targets")
        return session_id

    def update_session_progress(self, session_id: str, stats: Dict[str, Any]) -> None:
        """Write running counters; failures are logged, not raised."""
        try:
            with self.get_session() as session:
                row = session.get(ScrapingSession, session_id)
                if row is not None:
                    self._apply_stats(row, stats)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update progress of session {session_id}: {e}")

    def complete_session(self, session_id: str, stats: Dict[str, Any]) -> None:
        self._finish_session(session_id, "completed", stats)

    def fail_session(self, session_id: str, error: str, stats: Dict[str, Any]) -> None:
        self._finish_session(session_id, "failed", stats, error)

    def _finish_session(self, session_id: str, status: str, stats: Dict[str, Any],
                        error: Optional[str] = None) -> None:
        try:
            with self.get_session() as session:
                row = session.get(ScrapingSession, session_id)
                if row is None:
                    raise PersistenceFailure(f"Unknown session {session_id}")
                if row.status != "running":
                    logger.warning(f"Session {session_id} already {row.status}, not marking {status}")
                    return
                self._apply_stats(row, stats)
                row.status = status
                row.completed_at = datetime.now()
                row.notes = stats
                if error:
                    row.error_summary = error
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to finalize session {session_id}: {e}") from e

        logger.info(f"Session {session_id} {status}: {stats.get('success', 0)} successful, "
                    f"{stats.get('failure', 0)} failed")

    @staticmethod
    def _apply_stats(row: ScrapingSession, stats: Dict[str, Any]) -> None:
        row.processed_cities = stats.get('processed', row.processed_cities)
        row.successful_cities = stats.get('success', row.successful_cities)
        row.failed_cities = stats.get('failure', row.failed_cities)
        row.outliers_detected = stats.get('outliers', row.outliers_detected)

    def get_session_record(self, session_id: str) -> Optional[Dict[str, Any]]:
        with self.get_session() as session:
            row = session.get(ScrapingSession, session_id)
            if row is None:
                return None
            return {
                'id': row.id,
                'data_month': row.data_month,
                'status': row.status,
                'total_cities': row.total_cities,
                'processed_cities': row.processed_cities,
                'successful_cities': row.successful_cities,
                'failed_cities': row.failed_cities,
                'outliers_detected': row.outliers_detected,
                'error_summary': row.error_summary,
                'notes': row.notes,
                'started_at': row.started_at,
                'completed_at': row.completed_at,
            }

    # Errors

    def log_error(self, session_id: Optional[str], postal_code: Optional[str], display_name: Optional[str],
                  error_kind: str, error_message: str, source_url: Optional[str] = None,
                  retry_count: int = 0, context: Optional[Dict[str, Any]] = None) -> None:
        """Store a scrape error row; failures are logged, not raised."""
        try:
            with self.get_session() as session:
                session.add(ScrapingError(
                    session_id=session_id,
                    plz=postal_code,
                    city_name=display_name,
                    error_type=error_kind,
                    error_message=error_message,
                    source_url=source_url,
                    retry_count=retry_count,
                    context_data=context,
                    occurred_at=datetime.now(),
                ))
        except SQLAlchemyError as e:
            logger.error(f"Failed to store error for {postal_code}: {e}")

    def count_errors(self, session_id: str) -> int:
        with self.get_session() as session:
            return session.query(ScrapingError).filter(ScrapingError.session_id == session_id).count()
