"""
Models package for price records, run sessions and scrape errors.
"""

from models.base import Base
from models.price_models import MonthlyPrice, ScrapingSession, ScrapingError
from models.target import Target, PriceRecord, DataSource

__all__ = [
    'Base',
    'MonthlyPrice',
    'ScrapingSession',
    'ScrapingError',
    'Target',
    'PriceRecord',
    'DataSource',
]
