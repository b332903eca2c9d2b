"""
API routes.

- zone_aggregates.py: zone aggregate reads, batch reads, plugin listing

All endpoints share zone_aggregates_bp, registered at /api.
"""

from zonestats.routes.zone_aggregates import zone_aggregates_bp

__all__ = ['zone_aggregates_bp']
