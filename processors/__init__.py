"""Post-run processors operating on persisted price records."""

from processors.geographic_completion import GeographicCompleter, haversine_km

__all__ = ['GeographicCompleter', 'haversine_km']
