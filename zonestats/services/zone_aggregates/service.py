"""
Zone Aggregates Service - orchestrates validation, period resolution,
caching and plugin invocation.

Pipeline for getAggregate(zone_id, aggregate_id, raw_params):
    1. Look up plugin (UNKNOWN_AGGREGATE if missing)
    2. Strip "latest" sentinels, validate params with the plugin schema
    3. Resolve a missing period year via the params family hash (NO_DATA if none)
    4. Hash the fully-resolved params
    5. Read-through cache: return the stored record if present
    6. Load zone geo weights
    7. plugin.compute(ctx)
    8. Validate + persist the result, then return it

The service holds no state besides its injected stores and registry.
"""

import json
import logging
from collections.abc import Mapping
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from zonestats.constants import (
    ERROR_INTERNAL,
    ERROR_VALIDATION,
    LATEST_SENTINEL,
    PERIOD_YEAR_KEYS,
)
from zonestats.services.zone_aggregates.errors import ZoneAggregateError, no_data, unknown_aggregate
from zonestats.services.zone_aggregates.params_hash import (
    hash_aggregate_params,
    hash_aggregate_params_family,
)
from zonestats.services.zone_aggregates.registry import ZoneAggregateRegistry
from zonestats.services.zone_aggregates.types import (
    AggregateId,
    AggregateParams,
    GeoAggregateStore,
    ZoneAggregateBase,
    ZoneAggregateBatchError,
    ZoneAggregateBatchRequest,
    ZoneAggregateBatchResponse,
    ZoneAggregateBatchResult,
    ZoneAggregateComputeContext,
    ZoneAggregatePlugin,
    ZoneAggregateRecord,
    ZoneAggregateResult,
    ZoneAggregateStore,
    ZoneGeoMapStore,
)


class ZoneAggregatesService:

    def __init__(
        self,
        registry: ZoneAggregateRegistry,
        aggregate_store: ZoneAggregateStore,
        geo_aggregate_store: GeoAggregateStore,
        zone_geo_map_store: ZoneGeoMapStore,
        logger: Optional[logging.Logger] = None,
        default_geo_level: Optional[str] = None,
    ):
        self.registry = registry
        self.aggregate_store = aggregate_store
        self.geo_aggregate_store = geo_aggregate_store
        self.zone_geo_map_store = zone_geo_map_store
        self.logger = logger if logger is not None else logging.getLogger('zone_aggregates.service')
        self.default_geo_level = default_geo_level

    # =========================================================================
    # SINGLE ITEM
    # =========================================================================

    def get_aggregate(
        self,
        zone_id: str,
        aggregate_id: AggregateId,
        raw_params: Optional[Dict[str, Any]] = None,
    ) -> ZoneAggregateResult:
        """
        Compute (or read from cache) one aggregate for one zone.

        Raises:
            ZoneAggregateError: UNKNOWN_AGGREGATE or NO_DATA
            pydantic.ValidationError: params rejected by the plugin schema
        """
        plugin = self.registry.get(aggregate_id)
        if plugin is None:
            raise unknown_aggregate(aggregate_id)

        params = plugin.params_schema.model_validate(strip_latest_sentinel(raw_params))
        params, period_year = self._resolve_period_year(plugin, params)
        params_hash = hash_aggregate_params(params.to_hash_params())

        cached = self.aggregate_store.get_aggregate(
            zone_id=zone_id,
            aggregate_id=aggregate_id,
            period_year=period_year,
            params_hash=params_hash,
        )
        if cached is not None:
            result = self._result_from_cache(plugin, cached)
            if result is not None:
                return result

        zone_geo_weights = self.zone_geo_map_store.get_zone_geo_weights(zone_id=zone_id)

        ctx = ZoneAggregateComputeContext(
            zone_id=zone_id,
            period_year=period_year,
            params=params,
            params_hash=params_hash,
            zone_geo_weights=zone_geo_weights,
            geo_store=self.geo_aggregate_store,
            logger=self.logger,
            default_geo_level=self.default_geo_level,
        )
        computed = plugin.compute(ctx)

        payload = plugin.output_schema.model_validate(computed.payload).model_dump(
            by_alias=True, mode='json', exclude_unset=True
        )
        if computed.base.coverage <= 0:
            raise no_data("Aggregate coverage is zero.", {
                "zoneId": zone_id,
                "aggregateId": aggregate_id,
                "periodYear": period_year,
            })

        base = ZoneAggregateBase(
            zone_id=zone_id,
            aggregate_id=aggregate_id,
            period_year=period_year,
            coverage=computed.base.coverage,
            source=computed.base.source,
            source_version=computed.base.source_version,
            computed_at=computed.base.computed_at,
        )

        self.aggregate_store.upsert_aggregate(ZoneAggregateRecord(
            zone_id=zone_id,
            aggregate_id=aggregate_id,
            period_year=period_year,
            params_hash=params_hash,
            coverage=base.coverage,
            source=base.source,
            source_version=base.source_version,
            computed_at=base.computed_at,
            payload=payload,
        ))

        self.logger.info(
            f"Computed {aggregate_id} for zone {zone_id} "
            f"(period={period_year}, coverage={base.coverage})"
        )
        return ZoneAggregateResult(base=base, payload=payload)

    def _resolve_period_year(
        self,
        plugin: ZoneAggregatePlugin,
        params: AggregateParams,
    ) -> Tuple[AggregateParams, int]:
        """Absence of a concrete year means latest: look it up by params family."""
        if params.period_year is not None:
            return params, params.period_year

        params_family_hash = hash_aggregate_params_family(params.to_hash_params())
        latest = self.geo_aggregate_store.get_latest_period_year(
            aggregate_id=plugin.id,
            params_family_hash=params_family_hash,
        )
        if latest is None:
            raise no_data("No geo values available for aggregate.", {
                "aggregateId": plugin.id,
                "paramsFamilyHash": params_family_hash,
            })

        latest = int(latest)
        self.logger.debug(f"Resolved latest period for {plugin.id}: {latest}")
        return params.model_copy(update={'period_year': latest}), latest

    def _result_from_cache(
        self,
        plugin: ZoneAggregatePlugin,
        cached: ZoneAggregateRecord,
    ) -> Optional[ZoneAggregateResult]:
        try:
            plugin.output_schema.model_validate(cached.payload)
        except ValidationError:
            self.logger.warning(
                f"Cached payload for {cached.aggregate_id} zone {cached.zone_id} "
                f"failed validation, recomputing."
            )
            return None

        base = ZoneAggregateBase(
            zone_id=cached.zone_id,
            aggregate_id=cached.aggregate_id,
            period_year=cached.period_year,
            coverage=cached.coverage,
            source=cached.source,
            source_version=cached.source_version,
            computed_at=cached.computed_at,
        )
        return ZoneAggregateResult(base=base, payload=cached.payload)

    # =========================================================================
    # BATCH
    # =========================================================================

    def get_many(self, zone_id: str, requests: Iterable[Any]) -> ZoneAggregateBatchResponse:
        """
        Run each request through get_aggregate independently.

        One item's failure never aborts the batch; every raised error becomes
        a structured entry in ``errors``.
        """
        response = ZoneAggregateBatchResponse()

        for item in requests:
            try:
                request = _coerce_batch_request(item)
            except TypeError as e:
                response.errors.append(_malformed_item_error(item, e))
                continue

            try:
                result = self.get_aggregate(zone_id, request.aggregate_id, request.params)
                response.results.append(ZoneAggregateBatchResult(
                    aggregate_id=request.aggregate_id,
                    params=request.params,
                    result=result,
                ))
            except Exception as e:
                response.errors.append(self._map_error(request, e))

        if response.errors:
            self.logger.warning(
                f"Batch for zone {zone_id} completed with {len(response.errors)} errors: "
                f"{[(err.aggregate_id, err.code) for err in response.errors]}"
            )
        return response

    def _map_error(self, request: ZoneAggregateBatchRequest, error: Exception) -> ZoneAggregateBatchError:
        if isinstance(error, ZoneAggregateError):
            return ZoneAggregateBatchError(
                aggregate_id=request.aggregate_id,
                params=request.params,
                code=error.code,
                message=error.message,
                details=error.details,
            )

        if isinstance(error, ValidationError):
            return ZoneAggregateBatchError(
                aggregate_id=request.aggregate_id,
                params=request.params,
                code=ERROR_VALIDATION,
                message="Invalid request parameters.",
                details={"issues": validation_issues(error)},
            )

        self.logger.error(f"Aggregate {request.aggregate_id} failed: {error}", exc_info=error)
        return ZoneAggregateBatchError(
            aggregate_id=request.aggregate_id,
            params=request.params,
            code=ERROR_INTERNAL,
            message="Unexpected aggregate error.",
        )

    # =========================================================================
    # METADATA
    # =========================================================================

    def list_aggregates(self) -> List[Dict[str, Any]]:
        return [
            {"id": plugin.id, "version": plugin.version, "display": plugin.display.to_dict()}
            for plugin in self.registry.list()
        ]


def strip_latest_sentinel(raw_params: Any) -> Any:
    """
    Drop period-year fields holding the "latest" sentinel (or nothing at all)
    so the schema default applies. Non-mapping input is returned untouched
    and left for the schema to reject.
    """
    if raw_params is None:
        return {}
    if not isinstance(raw_params, Mapping):
        return raw_params

    params = dict(raw_params)
    for key in PERIOD_YEAR_KEYS:
        if key not in params:
            continue
        value = params[key]
        if value is None:
            params.pop(key)
        elif isinstance(value, str) and value.strip().lower() in (LATEST_SENTINEL, ''):
            params.pop(key)
    return params


def validation_issues(error: ValidationError) -> List[Dict[str, Any]]:
    """JSON-safe issue list for a pydantic ValidationError."""
    return json.loads(error.json(include_url=False))


def _coerce_batch_request(item: Any) -> ZoneAggregateBatchRequest:
    if isinstance(item, ZoneAggregateBatchRequest):
        return item
    if not isinstance(item, Mapping):
        raise TypeError(f"Batch item must be an object, got {type(item).__name__}")
    params = item.get('params')
    if params is not None and not isinstance(params, Mapping):
        raise TypeError(f"Batch item params must be an object, got {type(params).__name__}")
    return ZoneAggregateBatchRequest(
        aggregate_id=item.get('aggregateId') or item.get('aggregate_id'),
        params=dict(params or {}),
    )


def _malformed_item_error(item: Any, error: TypeError) -> ZoneAggregateBatchError:
    aggregate_id = None
    if isinstance(item, Mapping):
        aggregate_id = item.get('aggregateId') or item.get('aggregate_id')
    return ZoneAggregateBatchError(
        aggregate_id=aggregate_id,
        params={},
        code=ERROR_VALIDATION,
        message="Invalid batch item.",
        details={"reason": str(error)},
    )
