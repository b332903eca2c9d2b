"""
Shared pytest fixtures for zone aggregate tests.

Provides:
- In-memory stores + a service wired around them
- rent_value(): builds rent.v1 geo values hashed exactly like requests
- Flask app / test client with the in-memory service injected
"""

import pytest

from zonestats.config import TestConfig
from zonestats.services.zone_aggregates import (
    GeoAggregateValue,
    ZoneAggregatesService,
    ZoneGeoMapRecord,
    build_default_registry,
    hash_aggregate_params,
    hash_aggregate_params_family,
)
from zonestats.services.zone_aggregates.plugins.rent_v1 import RentParams
from zonestats.services.zone_aggregates.stores import (
    InMemoryGeoAggregateStore,
    InMemoryZoneAggregateStore,
    InMemoryZoneGeoMapStore,
)


def build_rent_value(geo_code, period_year, median, segment_key="ALL_ALL", geo_level="commune",
                     source="fixture.rent", source_version=None, **fields):
    """rent.v1 geo value with a payload built from camelCase field kwargs."""
    hash_params = RentParams(period_year=period_year, segment_key=segment_key).to_hash_params()
    payload = {"rentMedianPerM2": median}
    payload.update(fields)
    return GeoAggregateValue(
        aggregate_id="rent.v1",
        period_year=period_year,
        geo_level=geo_level,
        geo_code=geo_code,
        params_hash=hash_aggregate_params(hash_params),
        params_family_hash=hash_aggregate_params_family(hash_params),
        payload=payload,
        source=source,
        source_version=source_version or str(period_year),
    )


def zone_weights(zone_id, weights, geo_level="commune"):
    return [ZoneGeoMapRecord(zone_id=zone_id, geo_level=geo_level, geo_code=code, weight=w)
            for code, w in weights.items()]


@pytest.fixture
def rent_value():
    return build_rent_value


@pytest.fixture
def weight_records():
    return zone_weights


@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def aggregate_store():
    return InMemoryZoneAggregateStore()


@pytest.fixture
def geo_store():
    return InMemoryGeoAggregateStore()


@pytest.fixture
def zone_map_store():
    return InMemoryZoneGeoMapStore()


@pytest.fixture
def service(registry, aggregate_store, geo_store, zone_map_store):
    return ZoneAggregatesService(
        registry=registry,
        aggregate_store=aggregate_store,
        geo_aggregate_store=geo_store,
        zone_geo_map_store=zone_map_store,
    )


@pytest.fixture
def paris_west(geo_store, zone_map_store):
    """Zone split 60/40 across two communes with 2024 rent values."""
    geo_store.upsert_geo_values_batch([
        build_rent_value("75056", 2024, 30.0, rentMinPerM2=18.0, rentMaxPerM2=50.0),
        build_rent_value("92012", 2024, 40.0, rentMinPerM2=15.5, rentMaxPerM2=36.0),
    ])
    zone_map_store.upsert_zone_geo_weights_batch(
        zone_weights("paris-west", {"75056": 0.6, "92012": 0.4})
    )
    return "paris-west"


@pytest.fixture
def app(service):
    """Create test Flask application around the in-memory service."""
    from zonestats.app import create_app

    return create_app(TestConfig, service=service)


@pytest.fixture
def client(app):
    return app.test_client()
