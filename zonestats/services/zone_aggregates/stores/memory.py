"""
In-memory store adapters.

Same semantics as the SQL adapters (upsert = last write wins, latest period
= max year per family hash). Used by tests and for local experiments without
a database.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from zonestats.services.zone_aggregates.types import (
    GeoAggregateValue,
    ZoneAggregateRecord,
    ZoneGeoMapRecord,
    ZoneGeoWeight,
)


class InMemoryZoneAggregateStore:

    def __init__(self):
        self.records: Dict[Tuple[str, str, int, str], ZoneAggregateRecord] = {}

    def get_aggregate(self, *, zone_id, aggregate_id, period_year, params_hash) -> Optional[ZoneAggregateRecord]:
        return self.records.get((zone_id, aggregate_id, period_year, params_hash))

    def upsert_aggregate(self, record: ZoneAggregateRecord) -> None:
        key = (record.zone_id, record.aggregate_id, record.period_year, record.params_hash)
        self.records[key] = record


class InMemoryGeoAggregateStore:

    def __init__(self, records: Iterable[GeoAggregateValue] = ()):
        self.values: Dict[Tuple[str, int, str, str, str], GeoAggregateValue] = {}
        self.upsert_geo_values_batch(records)

    def get_geo_values(self, *, aggregate_id, period_year, geo_level, geo_codes,
                       params_hash) -> List[GeoAggregateValue]:
        found = []
        for code in dict.fromkeys(geo_codes):
            value = self.values.get((aggregate_id, period_year, geo_level, code, params_hash))
            if value is not None:
                found.append(value)
        return found

    def get_latest_period_year(self, *, aggregate_id, params_family_hash) -> Optional[int]:
        years = [
            v.period_year for v in self.values.values()
            if v.aggregate_id == aggregate_id and v.params_family_hash == params_family_hash
        ]
        return max(years) if years else None

    def upsert_geo_values_batch(self, records: Iterable[GeoAggregateValue]) -> int:
        count = 0
        for r in records:
            self.values[(r.aggregate_id, r.period_year, r.geo_level, r.geo_code, r.params_hash)] = r
            count += 1
        return count


class InMemoryZoneGeoMapStore:

    def __init__(self, records: Iterable[ZoneGeoMapRecord] = ()):
        self.entries: Dict[Tuple[str, str, str], float] = {}
        self.upsert_zone_geo_weights_batch(records)

    def get_zone_geo_weights(self, *, zone_id, geo_level=None) -> List[ZoneGeoWeight]:
        return [
            ZoneGeoWeight(geo_code=code, weight=weight, geo_level=level)
            for (zone, level, code), weight in self.entries.items()
            if zone == zone_id and (not geo_level or level == geo_level)
        ]

    def upsert_zone_geo_weights_batch(self, records: Iterable[ZoneGeoMapRecord]) -> int:
        count = 0
        for r in records:
            if r.weight < 0:
                raise ValueError(f"Negative weight for zone {r.zone_id} geo {r.geo_level}:{r.geo_code}")
            self.entries[(r.zone_id, r.geo_level, r.geo_code)] = r.weight
            count += 1
        return count
