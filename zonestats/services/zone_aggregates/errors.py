"""
Zone aggregate error taxonomy.

One error type tagged by ``code``:
- UNKNOWN_AGGREGATE: the id was never registered (never retried)
- NO_DATA: the id is known but no geo values / zero coverage (retriable
  once upstream data is imported)

Parameter validation failures are NOT wrapped; they surface as pydantic's
ValidationError.
"""

from typing import Any, Dict, Optional

from zonestats.constants import ERROR_NO_DATA, ERROR_UNKNOWN_AGGREGATE


class ZoneAggregateError(Exception):
    """Domain error raised by the zone aggregates engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details

    def __repr__(self):
        return f"ZoneAggregateError(code={self.code!r}, message={self.message!r})"


class PluginRegistrationError(ValueError):
    """Raised at startup when a plugin is malformed or its id is already taken."""


def unknown_aggregate(aggregate_id: str) -> ZoneAggregateError:
    return ZoneAggregateError(
        ERROR_UNKNOWN_AGGREGATE,
        f"Aggregate {aggregate_id} is not registered.",
        {"aggregateId": aggregate_id},
    )


def no_data(message: str, details: Optional[Dict[str, Any]] = None) -> ZoneAggregateError:
    return ZoneAggregateError(ERROR_NO_DATA, message, details)
