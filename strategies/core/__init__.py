"""
Core strategy pattern components for price extraction.

This package contains the foundational components for the strategy pattern:
- Strategy interface and result type
- Strategy kinds and metadata
- Strategy context
- Strategy factory and the class -> strategy order table
"""
