"""
Canonical parameter hashing.

Provides stable content addresses for parameter sets:
- hash_aggregate_params(): cache/storage key for a fully-resolved param set
- hash_aggregate_params_family(): same hash with the period year erased,
  used to find the newest year available for a parameter shape

Object keys are sorted before serialization, so two param dicts that only
differ by insertion order hash identically. List order is preserved.
"""

import hashlib
import json
from datetime import date, datetime
from typing import Any, Dict, Mapping

from pydantic import BaseModel

from zonestats.constants import FAMILY_PLACEHOLDER_YEAR, PERIOD_YEAR_FIELD, PERIOD_YEAR_KEYS


def _canonicalize(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return _canonicalize(value.model_dump(by_alias=True, mode="json"))
    if isinstance(value, Mapping):
        return {str(k): _canonicalize(v) for k, v in sorted(value.items(), key=lambda item: str(item[0]))}
    if isinstance(value, (list, tuple)):
        return [_canonicalize(v) for v in value]
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def canonical_json(value: Any) -> str:
    """Serialize ``value`` to a single deterministic JSON string."""
    return json.dumps(_canonicalize(value), separators=(",", ":"), ensure_ascii=False)


def hash_aggregate_params(value: Any) -> str:
    """
    Compute the SHA-256 content address of a parameter object.

    Returns:
        64-character lowercase hex digest
    """
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def family_params(params: Any) -> Dict[str, Any]:
    """Return a copy of ``params`` with the period year replaced by the placeholder."""
    if isinstance(params, BaseModel):
        params = params.model_dump(by_alias=True, mode="json")
    family = {k: v for k, v in dict(params or {}).items() if k not in PERIOD_YEAR_KEYS}
    family[PERIOD_YEAR_FIELD] = FAMILY_PLACEHOLDER_YEAR
    return family


def hash_aggregate_params_family(params: Any) -> str:
    """
    Hash a parameter set with its period year erased.

    All requests that differ only by explicit year (or omit it) collapse to
    the same family hash.
    """
    return hash_aggregate_params(family_params(params))
