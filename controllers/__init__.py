"""
Controllers Module

Coordinates fetching, extraction, validation and persistence across a
whole scraping run.
"""

__all__ = ['scrape_coordinator']
