"""
Zone Aggregate Endpoints - Thin Controller

Endpoints:
- GET  /api/zones/<zone_id>/aggregates/<aggregate_id>  - one aggregate
- POST /api/zones/<zone_id>/aggregates:batch           - many aggregates
- GET  /api/aggregates                                 - registered plugins

Query string / body parsing only; all logic lives in ZoneAggregatesService.
Domain and validation errors propagate to the error envelope handlers.
"""

import time
from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from zonestats.routes._route_utils import log_error, log_success, route_logger
from zonestats.services.zone_aggregates.errors import ZoneAggregateError
from zonestats.services.zone_aggregates.types import ZoneAggregateBatchRequest

SERVICE_EXTENSION_KEY = 'zone_aggregates_service'

zone_aggregates_bp = Blueprint('zone_aggregates', __name__)

logger = route_logger('zone_aggregates')


class BatchItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    aggregate_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices('aggregateId', 'aggregate_id'),
    )
    params: Dict[str, Any] = Field(default_factory=dict)


class BatchBody(BaseModel):
    model_config = ConfigDict(extra='ignore')

    requests: List[BatchItem] = Field(min_length=1)


def get_service():
    return current_app.extensions[SERVICE_EXTENSION_KEY]


@zone_aggregates_bp.route("/zones/<zone_id>/aggregates/<aggregate_id>", methods=["GET"])
def get_zone_aggregate(zone_id: str, aggregate_id: str):
    """
    Compute or read one aggregate for a zone.

    Query string keys are the plugin's params, e.g.
    ?year=latest&segmentKey=ALL_ALL
    """
    start = time.perf_counter()
    params = request.args.to_dict()

    try:
        result = get_service().get_aggregate(zone_id, aggregate_id, params)
    except (ZoneAggregateError, ValidationError):
        raise
    except Exception as e:
        log_error(logger, "get_zone_aggregate", start, e, {"zone_id": zone_id, "aggregate_id": aggregate_id})
        raise

    log_success(logger, "get_zone_aggregate", start, {
        "zone_id": zone_id,
        "aggregate_id": aggregate_id,
        "period_year": result.base.period_year,
    })
    return jsonify(result.to_dict())


@zone_aggregates_bp.route("/zones/<zone_id>/aggregates:batch", methods=["POST"])
def get_zone_aggregates_batch(zone_id: str):
    """
    Batch read. Always 200 once the body is valid; per-item failures are
    reported in "errors".

    Body: {"requests": [{"aggregateId": "rent.v1", "params": {...}}, ...]}
    """
    start = time.perf_counter()
    body = BatchBody.model_validate(request.get_json(silent=True))

    requests = [
        ZoneAggregateBatchRequest(aggregate_id=item.aggregate_id, params=item.params)
        for item in body.requests
    ]
    response = get_service().get_many(zone_id, requests)

    log_success(logger, "get_zone_aggregates_batch", start, {
        "zone_id": zone_id,
        "requests": len(requests),
        "errors": len(response.errors),
    })
    return jsonify(response.to_dict())


@zone_aggregates_bp.route("/aggregates", methods=["GET"])
def list_aggregates():
    return jsonify({"aggregates": get_service().list_aggregates()})
