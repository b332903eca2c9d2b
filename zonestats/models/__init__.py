"""
Models package - SQLAlchemy models
"""
from zonestats.models.database import db
from zonestats.models.zone_aggregates import ZoneAggregate, GeoAggregateEntry, ZoneGeoMapEntry

__all__ = [
    'db',
    'ZoneAggregate',
    'GeoAggregateEntry',
    'ZoneGeoMapEntry',
]
