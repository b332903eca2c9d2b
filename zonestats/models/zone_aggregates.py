"""
Zone aggregate tables.

- zone_aggregates: cached zone-level results, one row per
  (zone, aggregate, period, params hash)
- geo_aggregate_values: raw geo-level inputs written by importers
- zone_geo_map: precomputed zone -> geo code weights

IMPORTANT: params_hash / params_family_hash are content addresses computed by
services.zone_aggregates.params_hash. Never compute them any other way.
"""
from zonestats.models.database import db
from datetime import datetime


class ZoneAggregate(db.Model):
    __tablename__ = 'zone_aggregates'

    zone_id = db.Column(db.String(64), primary_key=True)
    aggregate_id = db.Column(db.String(64), primary_key=True)
    period_year = db.Column(db.Integer, primary_key=True)
    params_hash = db.Column(db.String(64), primary_key=True)

    coverage = db.Column(db.Float, nullable=False)  # 0..1, < 1 means partial
    source = db.Column(db.String(255), nullable=False)
    source_version = db.Column(db.String(64), nullable=False)
    computed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    payload = db.Column(db.JSON, nullable=False)

    def __repr__(self):
        return f"<ZoneAggregate {self.zone_id} {self.aggregate_id} {self.period_year}>"


class GeoAggregateEntry(db.Model):
    __tablename__ = 'geo_aggregate_values'

    aggregate_id = db.Column(db.String(64), primary_key=True)
    period_year = db.Column(db.Integer, primary_key=True)
    geo_level = db.Column(db.String(32), primary_key=True)
    geo_code = db.Column(db.String(32), primary_key=True)
    params_hash = db.Column(db.String(64), primary_key=True)

    # Secondary index: "latest year for this param shape"
    params_family_hash = db.Column(db.String(64), nullable=False, default='')

    source = db.Column(db.String(255))
    source_version = db.Column(db.String(64))
    payload = db.Column(db.JSON, nullable=False)

    __table_args__ = (
        db.Index('geo_aggregate_values_latest_idx', 'aggregate_id', 'params_family_hash', 'period_year'),
    )

    def __repr__(self):
        return f"<GeoAggregateEntry {self.aggregate_id} {self.period_year} {self.geo_level}:{self.geo_code}>"


class ZoneGeoMapEntry(db.Model):
    __tablename__ = 'zone_geo_map'

    zone_id = db.Column(db.String(64), primary_key=True)
    geo_level = db.Column(db.String(32), primary_key=True)
    geo_code = db.Column(db.String(32), primary_key=True)
    weight = db.Column(db.Float, nullable=False)  # non-negative, need not sum to 1

    __table_args__ = (
        db.CheckConstraint('weight >= 0', name='zone_geo_map_weight_non_negative'),
    )

    def __repr__(self):
        return f"<ZoneGeoMapEntry {self.zone_id} {self.geo_level}:{self.geo_code} w={self.weight}>"
