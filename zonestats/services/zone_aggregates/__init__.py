"""
Zone Aggregates Engine.

Usage:
    from zonestats.services.zone_aggregates import build_zone_aggregates_service

    service = build_zone_aggregates_service(db.session)
    result = service.get_aggregate("paris", "rent.v1", {"year": "latest"})
"""

import logging
from typing import Optional

from zonestats.services.zone_aggregates.errors import (
    PluginRegistrationError,
    ZoneAggregateError,
    no_data,
    unknown_aggregate,
)
from zonestats.services.zone_aggregates.params_hash import (
    canonical_json,
    hash_aggregate_params,
    hash_aggregate_params_family,
)
from zonestats.services.zone_aggregates.registry import ZoneAggregateRegistry
from zonestats.services.zone_aggregates.service import ZoneAggregatesService
from zonestats.services.zone_aggregates.types import (
    AggregateParams,
    GeoAggregateValue,
    ZoneAggregateBase,
    ZoneAggregateBatchRequest,
    ZoneAggregateComputeContext,
    ZoneAggregateDisplay,
    ZoneAggregatePlugin,
    ZoneAggregateRecord,
    ZoneAggregateResult,
    ZoneGeoMapRecord,
    ZoneGeoWeight,
)


def build_default_registry() -> ZoneAggregateRegistry:
    """Registry holding every built-in plugin."""
    from zonestats.services.zone_aggregates.plugins import BUILTIN_PLUGINS
    return ZoneAggregateRegistry(BUILTIN_PLUGINS)


def build_zone_aggregates_service(
    session,
    registry: Optional[ZoneAggregateRegistry] = None,
    logger: Optional[logging.Logger] = None,
    default_geo_level: Optional[str] = None,
) -> ZoneAggregatesService:
    """Wire the SQL store adapters around one SQLAlchemy session."""
    from zonestats.services.zone_aggregates.stores.sql import (
        SqlGeoAggregateStore,
        SqlZoneAggregateStore,
        SqlZoneGeoMapStore,
    )

    return ZoneAggregatesService(
        registry=registry or build_default_registry(),
        aggregate_store=SqlZoneAggregateStore(session),
        geo_aggregate_store=SqlGeoAggregateStore(session),
        zone_geo_map_store=SqlZoneGeoMapStore(session),
        logger=logger,
        default_geo_level=default_geo_level,
    )


__all__ = [
    'AggregateParams',
    'GeoAggregateValue',
    'PluginRegistrationError',
    'ZoneAggregateBase',
    'ZoneAggregateBatchRequest',
    'ZoneAggregateComputeContext',
    'ZoneAggregateDisplay',
    'ZoneAggregateError',
    'ZoneAggregatePlugin',
    'ZoneAggregateRecord',
    'ZoneAggregateRegistry',
    'ZoneAggregateResult',
    'ZoneAggregatesService',
    'ZoneGeoMapRecord',
    'ZoneGeoWeight',
    'build_default_registry',
    'build_zone_aggregates_service',
    'canonical_json',
    'hash_aggregate_params',
    'hash_aggregate_params_family',
    'no_data',
    'unknown_aggregate',
]
