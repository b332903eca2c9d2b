"""
SQL store adapters for zone aggregates.

All three stores share one SQLAlchemy session (Flask-SQLAlchemy's db.session
inside the app, a plain Session in scripts/tests).

Upserts use INSERT ... ON CONFLICT DO UPDATE (PostgreSQL; SQLite for tests)
so concurrent identical computations are last-write-wins instead of errors.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func, select

from zonestats.constants import UPSERT_CHUNK_SIZE
from zonestats.models.zone_aggregates import GeoAggregateEntry, ZoneAggregate, ZoneGeoMapEntry
from zonestats.services.zone_aggregates.types import (
    GeoAggregateValue,
    ZoneAggregateRecord,
    ZoneGeoMapRecord,
    ZoneGeoWeight,
)

logger = logging.getLogger('zone_aggregates.stores.sql')


def _dialect_insert(session, model):
    """Dialect-specific INSERT supporting on_conflict_do_update()."""
    dialect = session.get_bind().dialect.name
    if dialect == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upsert not supported for dialect: {dialect}")
    return insert(model)


def _upsert_rows(session, model, rows: List[Dict[str, Any]], key_columns: Sequence[str],
                 update_columns: Sequence[str]) -> int:
    """
    Upsert rows in chunks.

    Duplicate keys within the input keep the last row; PostgreSQL refuses to
    update the same row twice in one statement.
    """
    if not rows:
        return 0

    deduped: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        deduped[tuple(row[c] for c in key_columns)] = row
    unique_rows = list(deduped.values())

    for i in range(0, len(unique_rows), UPSERT_CHUNK_SIZE):
        chunk = unique_rows[i:i + UPSERT_CHUNK_SIZE]
        stmt = _dialect_insert(session, model).values(chunk)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(key_columns),
            set_={c: stmt.excluded[c] for c in update_columns},
        )
        session.execute(stmt)

    session.commit()
    return len(unique_rows)


# =============================================================================
# ZONE AGGREGATES (cache)
# =============================================================================

class SqlZoneAggregateStore:
    KEY_COLUMNS = ('zone_id', 'aggregate_id', 'period_year', 'params_hash')
    UPDATE_COLUMNS = ('coverage', 'source', 'source_version', 'computed_at', 'payload')

    def __init__(self, session):
        self.session = session

    def get_aggregate(self, *, zone_id, aggregate_id, period_year, params_hash) -> Optional[ZoneAggregateRecord]:
        row = self.session.execute(
            select(ZoneAggregate).where(
                ZoneAggregate.zone_id == zone_id,
                ZoneAggregate.aggregate_id == aggregate_id,
                ZoneAggregate.period_year == period_year,
                ZoneAggregate.params_hash == params_hash,
            )
        ).scalar_one_or_none()

        if row is None:
            return None

        return ZoneAggregateRecord(
            zone_id=row.zone_id,
            aggregate_id=row.aggregate_id,
            period_year=row.period_year,
            params_hash=row.params_hash,
            coverage=row.coverage,
            source=row.source,
            source_version=row.source_version,
            computed_at=row.computed_at,
            payload=row.payload,
        )

    def upsert_aggregate(self, record: ZoneAggregateRecord) -> None:
        _upsert_rows(
            self.session,
            ZoneAggregate,
            [{
                'zone_id': record.zone_id,
                'aggregate_id': record.aggregate_id,
                'period_year': record.period_year,
                'params_hash': record.params_hash,
                'coverage': record.coverage,
                'source': record.source,
                'source_version': record.source_version,
                'computed_at': record.computed_at,
                'payload': record.payload,
            }],
            self.KEY_COLUMNS,
            self.UPDATE_COLUMNS,
        )


# =============================================================================
# GEO AGGREGATE VALUES (inputs)
# =============================================================================

class SqlGeoAggregateStore:
    KEY_COLUMNS = ('aggregate_id', 'period_year', 'geo_level', 'geo_code', 'params_hash')
    UPDATE_COLUMNS = ('params_family_hash', 'source', 'source_version', 'payload')

    def __init__(self, session):
        self.session = session

    def get_geo_values(self, *, aggregate_id, period_year, geo_level, geo_codes,
                       params_hash) -> List[GeoAggregateValue]:
        geo_codes = list(geo_codes)
        if not geo_codes:
            return []

        rows = self.session.execute(
            select(GeoAggregateEntry).where(
                GeoAggregateEntry.aggregate_id == aggregate_id,
                GeoAggregateEntry.period_year == period_year,
                GeoAggregateEntry.geo_level == geo_level,
                GeoAggregateEntry.params_hash == params_hash,
                GeoAggregateEntry.geo_code.in_(geo_codes),
            )
        ).scalars().all()

        return [
            GeoAggregateValue(
                aggregate_id=row.aggregate_id,
                period_year=row.period_year,
                geo_level=row.geo_level,
                geo_code=row.geo_code,
                params_hash=row.params_hash,
                params_family_hash=row.params_family_hash,
                payload=row.payload,
                source=row.source,
                source_version=row.source_version,
            )
            for row in rows
        ]

    def get_latest_period_year(self, *, aggregate_id, params_family_hash) -> Optional[int]:
        return self.session.execute(
            select(func.max(GeoAggregateEntry.period_year)).where(
                GeoAggregateEntry.aggregate_id == aggregate_id,
                GeoAggregateEntry.params_family_hash == params_family_hash,
            )
        ).scalar()

    def upsert_geo_values_batch(self, records: Iterable[GeoAggregateValue]) -> int:
        rows = [
            {
                'aggregate_id': r.aggregate_id,
                'period_year': r.period_year,
                'geo_level': r.geo_level,
                'geo_code': r.geo_code,
                'params_hash': r.params_hash,
                'params_family_hash': r.params_family_hash,
                'source': r.source,
                'source_version': r.source_version,
                'payload': r.payload,
            }
            for r in records
        ]
        count = _upsert_rows(self.session, GeoAggregateEntry, rows, self.KEY_COLUMNS, self.UPDATE_COLUMNS)
        if count:
            logger.info(f"Upserted {count} geo aggregate values")
        return count


# =============================================================================
# ZONE GEO MAP (weights)
# =============================================================================

class SqlZoneGeoMapStore:
    KEY_COLUMNS = ('zone_id', 'geo_level', 'geo_code')
    UPDATE_COLUMNS = ('weight',)

    def __init__(self, session):
        self.session = session

    def get_zone_geo_weights(self, *, zone_id, geo_level=None) -> List[ZoneGeoWeight]:
        query = select(ZoneGeoMapEntry).where(ZoneGeoMapEntry.zone_id == zone_id)
        if geo_level:
            query = query.where(ZoneGeoMapEntry.geo_level == geo_level)
        query = query.order_by(ZoneGeoMapEntry.geo_level, ZoneGeoMapEntry.geo_code)

        return [
            ZoneGeoWeight(geo_code=row.geo_code, weight=row.weight, geo_level=row.geo_level)
            for row in self.session.execute(query).scalars().all()
        ]

    def upsert_zone_geo_weights_batch(self, records: Iterable[ZoneGeoMapRecord]) -> int:
        rows = []
        for r in records:
            if r.weight < 0:
                raise ValueError(f"Negative weight for zone {r.zone_id} geo {r.geo_level}:{r.geo_code}")
            rows.append({
                'zone_id': r.zone_id,
                'geo_level': r.geo_level,
                'geo_code': r.geo_code,
                'weight': r.weight,
            })
        count = _upsert_rows(self.session, ZoneGeoMapEntry, rows, self.KEY_COLUMNS, self.UPDATE_COLUMNS)
        if count:
            logger.info(f"Upserted {count} zone geo weights")
        return count
