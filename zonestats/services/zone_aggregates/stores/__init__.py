"""
Store adapters for the zone aggregates engine.
"""
from zonestats.services.zone_aggregates.stores.memory import (
    InMemoryGeoAggregateStore,
    InMemoryZoneAggregateStore,
    InMemoryZoneGeoMapStore,
)
from zonestats.services.zone_aggregates.stores.sql import (
    SqlGeoAggregateStore,
    SqlZoneAggregateStore,
    SqlZoneGeoMapStore,
)

__all__ = [
    'InMemoryGeoAggregateStore',
    'InMemoryZoneAggregateStore',
    'InMemoryZoneGeoMapStore',
    'SqlGeoAggregateStore',
    'SqlZoneAggregateStore',
    'SqlZoneGeoMapStore',
]
