"""
Extraction package.

Price parsing, page classification, strategy orchestration and outlier
validation for fetched city pages.
"""

from extraction.price_parser import PriceParser, parse_price
from extraction.page_classifier import PageClass, classify_by_name, classify_by_structure

__all__ = [
    'PriceParser',
    'parse_price',
    'PageClass',
    'classify_by_name',
    'classify_by_structure',
]
