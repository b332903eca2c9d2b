"""
Fixture seeding for zone aggregates.

Loads two JSON files from a fixtures directory:
- rent_geo_values.json: [{aggregateId, periodYear, geoLevel, geoCode, params, payload,
                          source?, sourceVersion?}]
- zone_geo_map.json:    [{zoneId, geoLevel, geoCode, weight}]

Params are normalized through the owning plugin's schema before hashing, so
seeded rows hash exactly like request-time params.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from zonestats.constants import PERIOD_YEAR_KEYS
from zonestats.services.zone_aggregates.params_hash import (
    hash_aggregate_params,
    hash_aggregate_params_family,
)
from zonestats.services.zone_aggregates.registry import ZoneAggregateRegistry
from zonestats.services.zone_aggregates.types import GeoAggregateValue, ZoneGeoMapRecord

logger = logging.getLogger('zone_aggregates.importers')

GEO_VALUES_FILE = 'rent_geo_values.json'
ZONE_GEO_MAP_FILE = 'zone_geo_map.json'


def load_json_file(file_path: Path) -> Any:
    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def resolve_hash_params(registry: ZoneAggregateRegistry, aggregate_id: str, period_year: int,
                        params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Build the params dict that request-time hashing will produce.

    Unregistered aggregates fall back to the raw params with periodYear set.
    """
    raw = {k: v for k, v in (params or {}).items() if k not in PERIOD_YEAR_KEYS}
    raw['periodYear'] = period_year

    plugin = registry.get(aggregate_id)
    if plugin is None:
        logger.warning(f"Aggregate {aggregate_id} not registered, hashing raw fixture params")
        return raw
    return plugin.params_schema.model_validate(raw).to_hash_params()


def build_geo_values(registry: ZoneAggregateRegistry, rows: List[Dict[str, Any]]) -> List[GeoAggregateValue]:
    records = []
    for row in rows:
        period_year = int(row['periodYear'])
        hash_params = resolve_hash_params(registry, row['aggregateId'], period_year, row.get('params'))
        records.append(GeoAggregateValue(
            aggregate_id=row['aggregateId'],
            period_year=period_year,
            geo_level=row['geoLevel'],
            geo_code=str(row['geoCode']),
            params_hash=hash_aggregate_params(hash_params),
            params_family_hash=hash_aggregate_params_family(hash_params),
            payload=row['payload'],
            source=row.get('source'),
            source_version=row.get('sourceVersion'),
        ))
    return records


def build_zone_geo_map(rows: List[Dict[str, Any]]) -> List[ZoneGeoMapRecord]:
    return [
        ZoneGeoMapRecord(
            zone_id=row['zoneId'],
            geo_level=row['geoLevel'],
            geo_code=str(row['geoCode']),
            weight=float(row['weight']),
        )
        for row in rows
    ]


def seed_fixtures(fixtures_dir, registry: ZoneAggregateRegistry, geo_store, zone_geo_map_store) -> Tuple[int, int]:
    """
    Upsert fixture geo values and zone weights.

    Returns:
        (geo_value_count, zone_weight_count)
    """
    fixtures_dir = Path(fixtures_dir)
    geo_values_file = fixtures_dir / GEO_VALUES_FILE
    zone_geo_map_file = fixtures_dir / ZONE_GEO_MAP_FILE

    for path in (geo_values_file, zone_geo_map_file):
        if not path.exists():
            raise FileNotFoundError(f"Missing fixture file: {path}")

    geo_values = build_geo_values(registry, load_json_file(geo_values_file))
    zone_weights = build_zone_geo_map(load_json_file(zone_geo_map_file))

    geo_store.upsert_geo_values_batch(geo_values)
    zone_geo_map_store.upsert_zone_geo_weights_batch(zone_weights)

    logger.info(f"Zone aggregate fixtures loaded: {len(geo_values)} geo values, {len(zone_weights)} weights")
    return len(geo_values), len(zone_weights)
