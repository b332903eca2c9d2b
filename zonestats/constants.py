"""
Shared constants for zone aggregates.

Single source of truth for sentinels, placeholders and precision used by the
engine, the importers and the HTTP layer.
"""

# =============================================================================
# PERIOD RESOLUTION
# =============================================================================

# Literal accepted in place of a concrete year ("give me the newest data")
LATEST_SENTINEL = "latest"

# Raw param keys that may carry the period year
PERIOD_YEAR_KEYS = ("periodYear", "year", "period_year")

# Canonical (hashed) key for the period year
PERIOD_YEAR_FIELD = "periodYear"

# Stable placeholder substituted for the year when hashing a params family.
# Changing it invalidates every stored params_family_hash.
FAMILY_PLACEHOLDER_YEAR = 2000

MIN_PERIOD_YEAR = 1900
MAX_PERIOD_YEAR = 2100


# =============================================================================
# GEO LEVELS
# =============================================================================

GEO_LEVEL_COMMUNE = "commune"

DEFAULT_GEO_LEVEL = GEO_LEVEL_COMMUNE


# =============================================================================
# ERROR CODES
# =============================================================================

ERROR_UNKNOWN_AGGREGATE = "UNKNOWN_AGGREGATE"
ERROR_NO_DATA = "NO_DATA"
ERROR_VALIDATION = "VALIDATION_ERROR"
ERROR_INTERNAL = "INTERNAL_ERROR"


# =============================================================================
# NUMERIC PRECISION
# =============================================================================

VALUE_DECIMALS = 2
COVERAGE_DECIMALS = 4


# =============================================================================
# STORAGE
# =============================================================================

UPSERT_CHUNK_SIZE = 1000
