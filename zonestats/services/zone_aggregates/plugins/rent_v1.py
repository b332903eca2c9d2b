"""
Aggregate: rent.v1 - Rent per m2 for a zone

Combines geo-level rent estimates (typically commune level) into a zone
value using the zone's precomputed geo weights.

Methodology:
- Weighted mean per field: sum(value * weight) / sum(weight), accumulated
  independently per field, since optional fields may be missing for some
  geo codes
- Min/max: unweighted min/max across contributing geo codes
- Coverage: weight of geo codes with a median / total zone weight
- Provenance: first contributing geo code wins (in weight-list order);
  disagreement is logged, never averaged

Numeric outputs are rounded to 2 decimals so cached values stay stable.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from zonestats.constants import COVERAGE_DECIMALS, DEFAULT_GEO_LEVEL, VALUE_DECIMALS
from zonestats.services.zone_aggregates.errors import no_data
from zonestats.services.zone_aggregates.types import (
    AggregateParams,
    ZoneAggregateBase,
    ZoneAggregateComputeContext,
    ZoneAggregateDisplay,
    ZoneAggregatePlugin,
    ZoneAggregateResult,
    ZoneGeoWeight,
)

AGGREGATE_ID = "rent.v1"

DEFAULT_SOURCE = "fixture.rent"
DEFAULT_SOURCE_VERSION = "unknown"
DEFAULT_SEGMENT_KEY = "ALL_ALL"

# Primary field: drives coverage and NO_DATA
PRIMARY_FIELD = "rent_median_per_m2"

WEIGHTED_FIELDS = (
    "rent_median_per_m2",
    "rent_p25_per_m2",
    "rent_p75_per_m2",
    "rent_pred_lower_per_m2",
    "rent_pred_upper_per_m2",
)


# =============================================================================
# SCHEMAS
# =============================================================================

class RentParams(AggregateParams):
    segment_key: str = Field(
        default=DEFAULT_SEGMENT_KEY,
        min_length=1,
        validation_alias=AliasChoices('segmentKey', 'segment_key'),
        serialization_alias='segmentKey',
        description="Housing segment (e.g. ALL_ALL, APT_T1T2)",
    )


class RentMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='allow')

    attribution: Optional[str] = None


class RentPayload(BaseModel):
    """Rent payload, shared by geo-level inputs and zone-level outputs."""
    model_config = ConfigDict(populate_by_name=True, extra='ignore', allow_inf_nan=False)

    rent_median_per_m2: float = Field(alias='rentMedianPerM2')
    rent_p25_per_m2: Optional[float] = Field(default=None, alias='rentP25PerM2')
    rent_p75_per_m2: Optional[float] = Field(default=None, alias='rentP75PerM2')
    rent_min_per_m2: Optional[float] = Field(default=None, alias='rentMinPerM2')
    rent_max_per_m2: Optional[float] = Field(default=None, alias='rentMaxPerM2')
    rent_pred_lower_per_m2: Optional[float] = Field(default=None, alias='rentPredLowerPerM2')
    rent_pred_upper_per_m2: Optional[float] = Field(default=None, alias='rentPredUpperPerM2')
    meta: Optional[RentMeta] = Field(default=None, alias='_meta')


# =============================================================================
# ACCUMULATION
# =============================================================================

@dataclass
class _WeightedField:
    total: float = 0.0
    weight: float = 0.0

    def add(self, value: float, weight: float) -> None:
        self.total += value * weight
        self.weight += weight

    def mean(self) -> Optional[float]:
        if self.weight <= 0:
            return None
        return round(self.total / self.weight, VALUE_DECIMALS)


@dataclass
class _Provenance:
    source: Optional[str] = None
    source_version: Optional[str] = None
    attribution: Optional[str] = None
    conflicts: int = 0

    def observe(self, source, source_version, attribution) -> None:
        observed = (source, source_version, attribution)
        current = (self.source, self.source_version, self.attribution)
        if current == (None, None, None):
            self.source, self.source_version, self.attribution = observed
        elif observed != current:
            self.conflicts += 1


def resolve_geo_level(weights: List[ZoneGeoWeight], default: Optional[str] = None) -> str:
    """The first geo level present on the weights, else the default."""
    for item in weights:
        if item.geo_level:
            return item.geo_level
    return default or DEFAULT_GEO_LEVEL


def _round_optional(value: Optional[float]) -> Optional[float]:
    return round(value, VALUE_DECIMALS) if value is not None else None


# =============================================================================
# COMPUTE
# =============================================================================

def compute(ctx: ZoneAggregateComputeContext) -> ZoneAggregateResult:
    logger = ctx.logger
    geo_level = resolve_geo_level(ctx.zone_geo_weights, ctx.default_geo_level)

    # One request reads one geo level
    weights = [w for w in ctx.zone_geo_weights if not w.geo_level or w.geo_level == geo_level]
    skipped_levels = len(ctx.zone_geo_weights) - len(weights)
    if skipped_levels:
        logger.warning(
            f"rent.v1 zone {ctx.zone_id}: ignoring {skipped_levels} weights outside geo level {geo_level}"
        )

    total_weight = sum(w.weight for w in weights)
    if total_weight <= 0:
        raise no_data("No geo weights available for rent.", {"zoneId": ctx.zone_id})

    values = ctx.geo_store.get_geo_values(
        aggregate_id=AGGREGATE_ID,
        period_year=ctx.period_year,
        geo_level=geo_level,
        geo_codes=[w.geo_code for w in weights],
        params_hash=ctx.params_hash,
    )

    by_code: Dict[str, Tuple[RentPayload, Any]] = {}
    for value in values:
        try:
            parsed = RentPayload.model_validate(value.payload)
        except ValidationError as e:
            logger.warning(
                f"Invalid rent payload for geo value {value.geo_code}: {e.error_count()} issues",
                extra={"geo_code": value.geo_code, "zone_id": ctx.zone_id},
            )
            continue
        by_code[value.geo_code] = (parsed, value)

    weighted = {name: _WeightedField() for name in WEIGHTED_FIELDS}
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    provenance = _Provenance()

    for w in weights:
        entry = by_code.get(w.geo_code)
        if entry is None:
            continue
        payload, value = entry

        for name in WEIGHTED_FIELDS:
            field_value = getattr(payload, name)
            if field_value is not None:
                weighted[name].add(field_value, w.weight)

        if payload.rent_min_per_m2 is not None:
            minimum = payload.rent_min_per_m2 if minimum is None else min(minimum, payload.rent_min_per_m2)
        if payload.rent_max_per_m2 is not None:
            maximum = payload.rent_max_per_m2 if maximum is None else max(maximum, payload.rent_max_per_m2)

        attribution = payload.meta.attribution if payload.meta else None
        provenance.observe(value.source, value.source_version, attribution)

    covered_weight = weighted[PRIMARY_FIELD].weight
    if covered_weight <= 0:
        raise no_data("No rent data available for zone.", {
            "zoneId": ctx.zone_id,
            "periodYear": ctx.period_year,
            "geoLevel": geo_level,
        })

    if provenance.conflicts:
        logger.warning(
            f"rent.v1 zone {ctx.zone_id}: {provenance.conflicts} geo values disagree on provenance, "
            f"keeping {provenance.source}/{provenance.source_version}"
        )

    payload = {
        "rentMedianPerM2": weighted["rent_median_per_m2"].mean(),
        "rentP25PerM2": weighted["rent_p25_per_m2"].mean(),
        "rentP75PerM2": weighted["rent_p75_per_m2"].mean(),
        "rentMinPerM2": _round_optional(minimum),
        "rentMaxPerM2": _round_optional(maximum),
        "rentPredLowerPerM2": weighted["rent_pred_lower_per_m2"].mean(),
        "rentPredUpperPerM2": weighted["rent_pred_upper_per_m2"].mean(),
    }
    if provenance.attribution:
        payload["_meta"] = {"attribution": provenance.attribution}

    return ZoneAggregateResult(
        base=ZoneAggregateBase(
            zone_id=ctx.zone_id,
            aggregate_id=AGGREGATE_ID,
            period_year=ctx.period_year,
            coverage=round(covered_weight / total_weight, COVERAGE_DECIMALS),
            source=provenance.source or DEFAULT_SOURCE,
            source_version=provenance.source_version or DEFAULT_SOURCE_VERSION,
            computed_at=datetime.utcnow(),
        ),
        payload=payload,
    )


PLUGIN = ZoneAggregatePlugin(
    id=AGGREGATE_ID,
    version=1,
    display=ZoneAggregateDisplay(label="Rent", unit="EUR/m2", category="housing"),
    params_schema=RentParams,
    output_schema=RentPayload,
    compute=compute,
)
