"""
Tests for ZoneAggregatesService.get_aggregate.

Covers the request pipeline end to end on in-memory stores:
period resolution, caching, NO_DATA / UNKNOWN_AGGREGATE and param validation.

Run with: pytest tests/test_zone_aggregates_service.py -v
"""

import math
from dataclasses import replace
from datetime import datetime
from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from zonestats.services.zone_aggregates import (
    ZoneAggregateError,
    ZoneAggregateRecord,
    ZoneAggregateRegistry,
    ZoneAggregatesService,
    hash_aggregate_params,
)
from zonestats.services.zone_aggregates.plugins.rent_v1 import PLUGIN as RENT_PLUGIN
from zonestats.services.zone_aggregates.service import strip_latest_sentinel

RENT_2024_HASH = hash_aggregate_params({"periodYear": 2024, "segmentKey": "ALL_ALL"})


@pytest.fixture
def multi_year(geo_store, zone_map_store, rent_value, weight_records):
    """One commune zone with values for 2023, 2024 and 2025."""
    geo_store.upsert_geo_values_batch([
        rent_value("75056", 2023, 28.0),
        rent_value("75056", 2024, 30.0),
        rent_value("75056", 2025, 31.5),
    ])
    zone_map_store.upsert_zone_geo_weights_batch(weight_records("paris", {"75056": 1.0}))
    return "paris"


# =============================================================================
# PERIOD RESOLUTION
# =============================================================================

class TestLatestResolution:
    """A missing or "latest" year resolves to the newest year in the family."""

    @pytest.mark.parametrize("params", [
        None,
        {},
        {"year": "latest"},
        {"periodYear": "latest"},
        {"year": "LATEST"},
        {"year": ""},
        {"year": None},
    ])
    def test_resolves_to_max_year(self, service, multi_year, params):
        result = service.get_aggregate(multi_year, "rent.v1", params)

        assert result.base.period_year == 2025
        assert result.payload["rentMedianPerM2"] == 31.5

    def test_explicit_year_is_used(self, service, multi_year):
        result = service.get_aggregate(multi_year, "rent.v1", {"year": 2023})
        assert result.base.period_year == 2023
        assert result.payload["rentMedianPerM2"] == 28.0

    def test_numeric_string_year_coerced(self, service, multi_year):
        result = service.get_aggregate(multi_year, "rent.v1", {"periodYear": "2024"})
        assert result.base.period_year == 2024

    def test_latest_is_per_family(self, service, geo_store, multi_year, rent_value):
        # A newer year under another segment must not leak into ALL_ALL
        geo_store.upsert_geo_values_batch([rent_value("75056", 2026, 12.0, segment_key="APT_T1T2")])

        assert service.get_aggregate(multi_year, "rent.v1", {}).base.period_year == 2025
        other = service.get_aggregate(multi_year, "rent.v1", {"segmentKey": "APT_T1T2"})
        assert other.base.period_year == 2026

    def test_latest_with_no_values_is_no_data(self, service):
        with pytest.raises(ZoneAggregateError) as exc_info:
            service.get_aggregate("paris", "rent.v1", {"year": "latest"})

        assert exc_info.value.code == "NO_DATA"
        assert exc_info.value.message == "No geo values available for aggregate."


class TestStripLatestSentinel:
    """Sentinel removal before schema validation."""

    def test_removes_sentinels_only_from_year_keys(self):
        params = {"year": "latest", "periodYear": " Latest ", "segmentKey": "latest"}
        assert strip_latest_sentinel(params) == {"segmentKey": "latest"}

    def test_none_becomes_empty_dict(self):
        assert strip_latest_sentinel(None) == {}

    def test_does_not_mutate_input(self):
        params = {"year": "latest"}
        strip_latest_sentinel(params)
        assert params == {"year": "latest"}

    def test_non_mapping_passes_through(self):
        assert strip_latest_sentinel(["year"]) == ["year"]


# =============================================================================
# ERRORS
# =============================================================================

class TestErrors:
    """Domain errors and validation failures."""

    def test_unknown_aggregate(self, service):
        with pytest.raises(ZoneAggregateError) as exc_info:
            service.get_aggregate("paris", "does.not.exist", {})

        error = exc_info.value
        assert error.code == "UNKNOWN_AGGREGATE"
        assert error.message == "Aggregate does.not.exist is not registered."
        assert error.details == {"aggregateId": "does.not.exist"}

    @pytest.mark.parametrize("params", [
        {"year": "soon"},
        {"year": 1800},
        {"periodYear": 2500},
        {"segmentKey": "   "},
        ["not", "a", "mapping"],
    ])
    def test_invalid_params_raise_validation_error(self, service, multi_year, params):
        with pytest.raises(ValidationError):
            service.get_aggregate(multi_year, "rent.v1", params)

    def test_zone_without_weights_is_no_data(self, service, multi_year):
        with pytest.raises(ZoneAggregateError) as exc_info:
            service.get_aggregate("nowhere", "rent.v1", {"year": 2024})
        assert exc_info.value.code == "NO_DATA"

    def test_year_without_values_is_no_data(self, service, multi_year):
        with pytest.raises(ZoneAggregateError) as exc_info:
            service.get_aggregate(multi_year, "rent.v1", {"year": 2019})
        assert exc_info.value.code == "NO_DATA"

    def test_zero_coverage_result_is_no_data(self, aggregate_store, geo_store, zone_map_store, multi_year):
        def zero_coverage(ctx):
            result = RENT_PLUGIN.compute(ctx)
            result.base.coverage = 0.0
            return result

        service = ZoneAggregatesService(
            registry=ZoneAggregateRegistry([replace(RENT_PLUGIN, compute=zero_coverage)]),
            aggregate_store=aggregate_store,
            geo_aggregate_store=geo_store,
            zone_geo_map_store=zone_map_store,
        )

        with pytest.raises(ZoneAggregateError) as exc_info:
            service.get_aggregate(multi_year, "rent.v1", {"year": 2024})
        assert exc_info.value.code == "NO_DATA"
        assert aggregate_store.records == {}


# =============================================================================
# CACHING
# =============================================================================

class TestReadThroughCache:
    """Computed results are stored and served back without recomputation."""

    @pytest.fixture
    def spy_service(self, aggregate_store, geo_store, zone_map_store):
        compute = Mock(wraps=RENT_PLUGIN.compute)
        geo_store.get_geo_values = Mock(wraps=geo_store.get_geo_values)
        service = ZoneAggregatesService(
            registry=ZoneAggregateRegistry([replace(RENT_PLUGIN, compute=compute)]),
            aggregate_store=aggregate_store,
            geo_aggregate_store=geo_store,
            zone_geo_map_store=zone_map_store,
        )
        return service, compute

    def test_result_is_persisted(self, service, aggregate_store, multi_year):
        result = service.get_aggregate(multi_year, "rent.v1", {"year": 2024})

        record = aggregate_store.get_aggregate(
            zone_id=multi_year, aggregate_id="rent.v1", period_year=2024, params_hash=RENT_2024_HASH,
        )
        assert record is not None
        assert record.payload == result.payload
        assert record.coverage == 1.0

    def test_non_finite_geo_value_never_cached(self, service, aggregate_store, geo_store, zone_map_store,
                                               rent_value, weight_records):
        geo_store.upsert_geo_values_batch([
            rent_value("75056", 2024, 30.0),
            rent_value("92012", 2024, float("nan")),
        ])
        zone_map_store.upsert_zone_geo_weights_batch(weight_records("z", {"75056": 0.6, "92012": 0.4}))

        result = service.get_aggregate("z", "rent.v1", {"year": 2024})

        assert math.isfinite(result.payload["rentMedianPerM2"])
        assert result.payload["rentMedianPerM2"] == 30.0
        assert result.base.coverage == 0.6
        record = aggregate_store.get_aggregate(
            zone_id="z", aggregate_id="rent.v1", period_year=2024, params_hash=RENT_2024_HASH,
        )
        assert record.payload == result.payload

    def test_second_call_hits_cache(self, spy_service, geo_store, multi_year):
        service, compute = spy_service

        first = service.get_aggregate(multi_year, "rent.v1", {"year": 2024})
        second = service.get_aggregate(multi_year, "rent.v1", {"year": 2024, "segmentKey": "ALL_ALL"})

        assert compute.call_count == 1
        assert geo_store.get_geo_values.call_count == 1
        assert second.to_dict() == first.to_dict()

    def test_latest_and_explicit_year_share_cache(self, spy_service, multi_year):
        service, compute = spy_service

        service.get_aggregate(multi_year, "rent.v1", {"year": "latest"})
        service.get_aggregate(multi_year, "rent.v1", {"year": 2025})

        assert compute.call_count == 1

    def test_different_params_miss_cache(self, spy_service, multi_year):
        service, compute = spy_service

        service.get_aggregate(multi_year, "rent.v1", {"year": 2024})
        service.get_aggregate(multi_year, "rent.v1", {"year": 2025})

        assert compute.call_count == 2

    def test_cached_record_returned_verbatim(self, service, aggregate_store, multi_year):
        computed_at = datetime(2024, 6, 1, 12, 0, 0)
        aggregate_store.upsert_aggregate(ZoneAggregateRecord(
            zone_id=multi_year,
            aggregate_id="rent.v1",
            period_year=2024,
            params_hash=RENT_2024_HASH,
            coverage=0.75,
            source="cached.source",
            source_version="v9",
            computed_at=computed_at,
            payload={"rentMedianPerM2": 99.0},
        ))

        result = service.get_aggregate(multi_year, "rent.v1", {"year": 2024})

        assert result.payload == {"rentMedianPerM2": 99.0}
        assert result.base.coverage == 0.75
        assert result.base.source == "cached.source"
        assert result.base.computed_at == computed_at

    def test_invalid_cached_payload_is_recomputed(self, service, aggregate_store, multi_year):
        aggregate_store.upsert_aggregate(ZoneAggregateRecord(
            zone_id=multi_year,
            aggregate_id="rent.v1",
            period_year=2024,
            params_hash=RENT_2024_HASH,
            coverage=1.0,
            source="stale",
            source_version="old",
            computed_at=datetime(2020, 1, 1),
            payload={"median": "not a rent payload"},
        ))

        result = service.get_aggregate(multi_year, "rent.v1", {"year": 2024})

        assert result.payload["rentMedianPerM2"] == 30.0
        stored = aggregate_store.records[(multi_year, "rent.v1", 2024, RENT_2024_HASH)]
        assert stored.payload["rentMedianPerM2"] == 30.0


# =============================================================================
# RESULT SHAPE
# =============================================================================

class TestResultShape:
    """Serialized result uses camelCase keys."""

    def test_to_dict(self, service, paris_west):
        result = service.get_aggregate(paris_west, "rent.v1", {"year": 2024}).to_dict()

        assert set(result) == {"base", "payload"}
        assert result["base"]["zoneId"] == "paris-west"
        assert result["base"]["aggregateId"] == "rent.v1"
        assert result["base"]["periodYear"] == 2024
        assert result["base"]["coverage"] == 1.0
        assert result["base"]["sourceVersion"] == "2024"
        datetime.fromisoformat(result["base"]["computedAt"])
        assert result["payload"]["rentMedianPerM2"] == 34.0

    def test_list_aggregates(self, service):
        assert service.list_aggregates() == [{
            "id": "rent.v1",
            "version": 1,
            "display": {"label": "Rent", "unit": "EUR/m2", "category": "housing"},
        }]
