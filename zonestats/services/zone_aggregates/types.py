"""
Zone aggregate data types.

Core components:
- AggregateParams: pydantic base for every plugin's parameter schema
- ZoneGeoWeight / GeoAggregateValue / ZoneAggregateRecord: stored shapes
- ZoneAggregateBase / ZoneAggregateResult: what callers receive
- ZoneAggregatePlugin: a registered computation
- *Store protocols: the persistence boundary (SQL or in-memory adapters)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from zonestats.constants import MAX_PERIOD_YEAR, MIN_PERIOD_YEAR

AggregateId = str


# =============================================================================
# PARAMETER SCHEMAS
# =============================================================================

class AggregateParams(BaseModel):
    """
    Base model for all aggregate parameter schemas.

    - Frozen after creation (immutable)
    - Whitespace stripped from strings
    - Both alias and field name accepted
    - Unknown fields ignored

    A missing period_year means "latest"; the service resolves it before
    the plugin runs, so compute() always sees a concrete year.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
        extra='ignore',
    )

    period_year: Optional[int] = Field(
        default=None,
        ge=MIN_PERIOD_YEAR,
        le=MAX_PERIOD_YEAR,
        validation_alias=AliasChoices('periodYear', 'year', 'period_year'),
        serialization_alias='periodYear',
        description="Concrete period year; omitted means latest available",
    )

    def to_hash_params(self) -> Dict[str, Any]:
        """The camelCase dict that is hashed and stored as params."""
        return self.model_dump(by_alias=True, mode='json')


# =============================================================================
# STORED SHAPES
# =============================================================================

@dataclass
class ZoneGeoWeight:
    """Fractional contribution of one geo code to a zone."""
    geo_code: str
    weight: float
    geo_level: Optional[str] = None


@dataclass
class ZoneGeoMapRecord:
    """Offline import shape for zone -> geo code weights."""
    zone_id: str
    geo_level: str
    geo_code: str
    weight: float


@dataclass
class GeoAggregateValue:
    """Raw geo-level input value, upserted by importers."""
    aggregate_id: AggregateId
    period_year: int
    geo_level: str
    geo_code: str
    params_hash: str
    params_family_hash: str
    payload: Any
    source: Optional[str] = None
    source_version: Optional[str] = None


@dataclass
class ZoneAggregateRecord:
    """Cached zone-level result."""
    zone_id: str
    aggregate_id: AggregateId
    period_year: int
    params_hash: str
    coverage: float
    source: str
    source_version: str
    computed_at: datetime
    payload: Any


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ZoneAggregateBase:
    zone_id: str
    aggregate_id: AggregateId
    period_year: int
    coverage: float
    source: str
    source_version: str
    computed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "zoneId": self.zone_id,
            "aggregateId": self.aggregate_id,
            "periodYear": self.period_year,
            "coverage": self.coverage,
            "source": self.source,
            "sourceVersion": self.source_version,
            "computedAt": self.computed_at.isoformat() if self.computed_at else None,
        }


@dataclass
class ZoneAggregateResult:
    base: ZoneAggregateBase
    payload: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"base": self.base.to_dict(), "payload": self.payload}


@dataclass
class ZoneAggregateDisplay:
    label: str
    unit: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "unit": self.unit, "category": self.category}


# =============================================================================
# STORE PROTOCOLS
# =============================================================================

class ZoneAggregateStore(Protocol):
    def get_aggregate(self, *, zone_id: str, aggregate_id: AggregateId, period_year: int,
                      params_hash: str) -> Optional[ZoneAggregateRecord]: ...

    def upsert_aggregate(self, record: ZoneAggregateRecord) -> None: ...


class GeoAggregateStore(Protocol):
    def get_geo_values(self, *, aggregate_id: AggregateId, period_year: int, geo_level: str,
                       geo_codes: Sequence[str], params_hash: str) -> List[GeoAggregateValue]: ...

    def get_latest_period_year(self, *, aggregate_id: AggregateId,
                               params_family_hash: str) -> Optional[int]: ...

    def upsert_geo_values_batch(self, records: Sequence[GeoAggregateValue]) -> int: ...


class ZoneGeoMapStore(Protocol):
    def get_zone_geo_weights(self, *, zone_id: str,
                             geo_level: Optional[str] = None) -> List[ZoneGeoWeight]: ...

    def upsert_zone_geo_weights_batch(self, records: Sequence[ZoneGeoMapRecord]) -> int: ...


# =============================================================================
# PLUGINS
# =============================================================================

@dataclass
class ZoneAggregateComputeContext:
    """Everything a plugin needs to compute one zone result."""
    zone_id: str
    period_year: int
    params: AggregateParams
    params_hash: str
    zone_geo_weights: List[ZoneGeoWeight]
    geo_store: GeoAggregateStore
    logger: logging.Logger
    default_geo_level: Optional[str] = None


@dataclass
class ZoneAggregatePlugin:
    """
    A self-contained aggregate computation.

    Each plugin module exports one of these. A new computation shape needs a
    new id or version bump, never a silent redefinition.
    """
    id: AggregateId
    version: int
    display: ZoneAggregateDisplay
    params_schema: Type[AggregateParams]
    output_schema: Type[BaseModel]
    compute: Callable[[ZoneAggregateComputeContext], ZoneAggregateResult]


# =============================================================================
# BATCH
# =============================================================================

@dataclass
class ZoneAggregateBatchRequest:
    aggregate_id: AggregateId
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ZoneAggregateBatchResult:
    aggregate_id: AggregateId
    params: Dict[str, Any]
    result: ZoneAggregateResult

    def to_dict(self) -> Dict[str, Any]:
        return {"aggregateId": self.aggregate_id, "params": self.params, "result": self.result.to_dict()}


@dataclass
class ZoneAggregateBatchError:
    aggregate_id: AggregateId
    params: Dict[str, Any]
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        error = {
            "aggregateId": self.aggregate_id,
            "params": self.params,
            "code": self.code,
            "message": self.message,
        }
        if self.details is not None:
            error["details"] = self.details
        return error


@dataclass
class ZoneAggregateBatchResponse:
    results: List[ZoneAggregateBatchResult] = field(default_factory=list)
    errors: List[ZoneAggregateBatchError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "errors": [e.to_dict() for e in self.errors],
        }
