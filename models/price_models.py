"""
Database models for monthly prices, scraping sessions and scrape errors.
"""

import uuid

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, JSON, Numeric,
    String, Text, UniqueConstraint,
)
from sqlalchemy.sql import func

from models.base import Base


class MonthlyPrice(Base):
    """One price record per postal code and month."""

    __tablename__ = "monthly_electricity_prices"
    __table_args__ = (
        UniqueConstraint("data_month", "plz", name="uq_monthly_prices_month_plz"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    data_month = Column(Date, nullable=False, index=True)  # first day of the month
    plz = Column(String(5), nullable=False, index=True)
    city_name = Column(String(255), nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    lokaler_versorger_price = Column(Numeric(6, 4, asdecimal=False), nullable=True)  # EUR/kWh
    oekostrom_price = Column(Numeric(6, 4, asdecimal=False), nullable=True)          # EUR/kWh
    average_price = Column(Numeric(6, 4, asdecimal=False), nullable=True)

    is_outlier = Column(Boolean, nullable=False, default=False)
    outlier_severity = Column(String(20), nullable=False, default="normal")  # normal, high, very_high, extreme

    data_source = Column(String(10), nullable=False, default="ORIGINAL")  # ORIGINAL, FALLBACK
    source_url = Column(String(2048), nullable=True)
    source_plz = Column(String(5), nullable=True)
    distance_km = Column(Float, nullable=True)

    extraction_method = Column(String(50), nullable=True)
    structural_class = Column(String(10), nullable=True)
    expected_class = Column(String(10), nullable=True)
    elapsed_ms = Column(Integer, nullable=True)
    extraction_details = Column(JSON, nullable=True)

    scraped_at = Column(DateTime, nullable=False, default=func.now())
    created_at = Column(DateTime, default=func.now())

    def __repr__(self):
        return f"<MonthlyPrice {self.plz} {self.data_month} a={self.lokaler_versorger_price} b={self.oekostrom_price}>"


class ScrapingSession(Base):
    """Bookkeeping for one run across many targets."""

    __tablename__ = "scraping_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    data_month = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="running")  # running, completed, failed
    total_cities = Column(Integer, nullable=False, default=0)
    processed_cities = Column(Integer, nullable=False, default=0)
    successful_cities = Column(Integer, nullable=False, default=0)
    failed_cities = Column(Integer, nullable=False, default=0)
    outliers_detected = Column(Integer, nullable=False, default=0)
    scraper_config = Column(JSON, nullable=True)
    notes = Column(JSON, nullable=True)
    error_summary = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=False, default=func.now())
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<ScrapingSession {self.id} ({self.status})>"


class ScrapingError(Base):
    """One failed or skipped target within a session."""

    __tablename__ = "scraping_errors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(36), ForeignKey("scraping_sessions.id"), nullable=True, index=True)
    plz = Column(String(5), nullable=True)
    city_name = Column(String(255), nullable=True)
    error_type = Column(String(50), nullable=False)
    error_message = Column(Text, nullable=True)
    source_url = Column(String(2048), nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    context_data = Column(JSON, nullable=True)
    occurred_at = Column(DateTime, nullable=False, default=func.now())

    def __repr__(self):
        return f"<ScrapingError {self.plz} {self.error_type}>"
