"""
Rent CSV importer - geo-level rent values for rent.v1.

Accepts the published rent indicator CSVs (comma, semicolon or tab
separated; decimal commas; varying column names) and upserts one
GeoAggregateValue per geo code.

Steps:
    1. Sniff delimiter from the header line
    2. Map headers to canonical fields via COLUMN_CANDIDATES
    3. Parse + validate each row (pydantic RentRow)
    4. Upsert in chunks, counting inserted vs updated codes

Invalid rows are counted and sampled, never fatal. Quartile order
violations (p25 > median or median > p75) are warnings.
"""

import csv
import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from zonestats.constants import DEFAULT_GEO_LEVEL, UPSERT_CHUNK_SIZE
from zonestats.services.zone_aggregates.params_hash import (
    hash_aggregate_params,
    hash_aggregate_params_family,
)
from zonestats.services.zone_aggregates.plugins.rent_v1 import (
    AGGREGATE_ID,
    DEFAULT_SEGMENT_KEY,
    RentParams,
)
from zonestats.services.zone_aggregates.types import GeoAggregateValue

logger = logging.getLogger('zone_aggregates.importers.rent')

MAX_INVALID_SAMPLES = 20

# Normalized header (lowercase alphanumerics) candidates per canonical field
COLUMN_CANDIDATES: Dict[str, List[str]] = {
    'geo_code': [
        'geocode', 'codeinsee', 'insee', 'inseecode', 'codgeo', 'codecommune',
        'codecommuneinsee', 'inseec', 'inseecom',
    ],
    'rent_median_per_m2': [
        'rentmedianperm2', 'rentmedianm2', 'rentmedian', 'loyermedianm2', 'loyermedian',
        'median', 'mediane', 'loypredm2',
    ],
    'rent_p25_per_m2': ['rentp25perm2', 'rentp25', 'p25', 'loyerp25', 'loyerp25m2', 'p25m2'],
    'rent_p75_per_m2': ['rentp75perm2', 'rentp75', 'p75', 'loyerp75', 'loyerp75m2', 'p75m2'],
    'rent_min_per_m2': ['rentminperm2', 'rentmin', 'min', 'loyermin'],
    'rent_max_per_m2': ['rentmaxperm2', 'rentmax', 'max', 'loyermax'],
    'rent_pred_lower_per_m2': ['rentpredlowerperm2', 'lwripm2', 'loweripm2'],
    'rent_pred_upper_per_m2': ['rentpredupperperm2', 'rentpredupperm2', 'upripm2', 'upperipm2'],
    'nbobs_com': ['nbobscom'],
    'nbobs_mail': ['nbobsmail'],
    'r2_adj': ['r2adj'],
    'typ_pred': ['typpred'],
}

REQUIRED_FIELDS = ('geo_code', 'rent_median_per_m2')

PAYLOAD_FIELDS = {
    'rent_median_per_m2': 'rentMedianPerM2',
    'rent_p25_per_m2': 'rentP25PerM2',
    'rent_p75_per_m2': 'rentP75PerM2',
    'rent_min_per_m2': 'rentMinPerM2',
    'rent_max_per_m2': 'rentMaxPerM2',
    'rent_pred_lower_per_m2': 'rentPredLowerPerM2',
    'rent_pred_upper_per_m2': 'rentPredUpperPerM2',
}


class RentRow(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    geo_code: str = Field(pattern=r'^[0-9A-Z]{5}$')
    rent_median_per_m2: float = Field(gt=0)
    rent_p25_per_m2: Optional[float] = Field(default=None, gt=0)
    rent_p75_per_m2: Optional[float] = Field(default=None, gt=0)
    rent_min_per_m2: Optional[float] = Field(default=None, gt=0)
    rent_max_per_m2: Optional[float] = Field(default=None, gt=0)
    rent_pred_lower_per_m2: Optional[float] = Field(default=None, gt=0)
    rent_pred_upper_per_m2: Optional[float] = Field(default=None, gt=0)

    nbobs_com: Optional[int] = Field(default=None, ge=0)
    nbobs_mail: Optional[int] = Field(default=None, ge=0)
    r2_adj: Optional[float] = Field(default=None, ge=0, le=1)
    typ_pred: Optional[str] = None


@dataclass
class RentImportStats:
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    invalid: int = 0
    warnings: int = 0
    invalid_samples: List[str] = field(default_factory=list)
    seen_codes: Set[str] = field(default_factory=set, repr=False)

    def summary(self) -> str:
        return (
            f"processed={self.processed} inserted={self.inserted} updated={self.updated} "
            f"invalid={self.invalid} warnings={self.warnings}"
        )


# =============================================================================
# PARSING HELPERS
# =============================================================================

def normalize_header(header: str) -> str:
    return re.sub(r'[^a-z0-9]', '', (header or '').lower())


def detect_delimiter(header_line: str) -> str:
    counts = [(header_line.count(d), d) for d in (',', ';', '\t')]
    best_count, best = max(counts, key=lambda item: item[0])
    return best if best_count > 0 else ','


def resolve_column_map(headers: List[str]) -> Dict[str, str]:
    """
    Map canonical field -> actual CSV header.

    Raises:
        ValueError if geo code or median columns are missing
    """
    normalized = {normalize_header(h): h for h in headers}

    column_map = {}
    for key, candidates in COLUMN_CANDIDATES.items():
        for candidate in candidates:
            if candidate in normalized:
                column_map[key] = normalized[candidate]
                break

    missing = [f for f in REQUIRED_FIELDS if f not in column_map]
    if missing:
        raise ValueError(
            f"Missing required columns {missing}. Detected columns: {', '.join(headers)}"
        )
    return column_map


def normalize_geo_code(value: Optional[str]) -> str:
    if not value:
        return ''
    code = value.strip().upper()
    # Leading zero lost by spreadsheet exports
    if re.fullmatch(r'\d{4}', code):
        return code.zfill(5)
    return code


def parse_number_optional(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    cleaned = re.sub(r'\s', '', str(value)).replace(',', '.')
    if cleaned == '':
        return None
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def parse_record(record: Dict[str, str], column_map: Dict[str, str]) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {'geo_code': normalize_geo_code(record.get(column_map['geo_code']))}
    for key in COLUMN_CANDIDATES:
        if key == 'geo_code' or key not in column_map:
            continue
        raw = record.get(column_map[key])
        if key == 'typ_pred':
            parsed[key] = raw.strip() if raw and raw.strip() else None
        else:
            parsed[key] = parse_number_optional(raw)
    # Median is required: keep the key so validation reports it
    parsed.setdefault('rent_median_per_m2', None)
    return parsed


def is_quartile_order_valid(row: RentRow) -> bool:
    if row.rent_p25_per_m2 is None or row.rent_p75_per_m2 is None:
        return True
    return row.rent_p25_per_m2 <= row.rent_median_per_m2 <= row.rent_p75_per_m2


def build_payload(row: RentRow, attribution: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {alias: getattr(row, name) for name, alias in PAYLOAD_FIELDS.items()}

    meta: Dict[str, Any] = {}
    if attribution:
        meta['attribution'] = attribution
    if row.nbobs_com is not None:
        meta['nbobs_com'] = row.nbobs_com
    if row.nbobs_mail is not None:
        meta['nbobs_mail'] = row.nbobs_mail
    if row.r2_adj is not None:
        meta['r2_adj'] = row.r2_adj
    if row.typ_pred:
        meta['typPred'] = row.typ_pred
    if meta:
        payload['_meta'] = meta
    return payload


def _format_issues(error: ValidationError) -> str:
    return '; '.join(
        f"{'.'.join(str(p) for p in issue['loc'])}: {issue['msg']}" for issue in error.errors()
    )


# =============================================================================
# IMPORT
# =============================================================================

def import_rent_csv(
    file_path,
    geo_store,
    *,
    year: int,
    geo_level: str = DEFAULT_GEO_LEVEL,
    segment_key: str = DEFAULT_SEGMENT_KEY,
    source: str = 'public.rent',
    source_version: Optional[str] = None,
    attribution: Optional[str] = None,
    dry_run: bool = False,
) -> RentImportStats:
    """
    Import one rent CSV for one period year.

    Args:
        file_path: CSV path
        geo_store: GeoAggregateStore receiving the upserts
        year: period year of the dataset
        dry_run: parse and validate only, write nothing

    Returns:
        RentImportStats
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Missing rent dataset at {file_path}")

    hash_params = RentParams(period_year=year, segment_key=segment_key).to_hash_params()
    params_hash = hash_aggregate_params(hash_params)
    params_family_hash = hash_aggregate_params_family(hash_params)
    source_version = source_version or str(year)

    stats = RentImportStats()
    batch: List[GeoAggregateValue] = []

    with open(file_path, 'r', encoding='utf-8-sig', newline='') as f:
        delimiter = detect_delimiter(f.readline())
        f.seek(0)
        reader = csv.DictReader(f, delimiter=delimiter)
        column_map = resolve_column_map([h.strip() for h in reader.fieldnames or []])
        reader.fieldnames = [h.strip() for h in reader.fieldnames]
        logger.info(f"Import columns: {column_map}")

        for record in reader:
            stats.processed += 1
            try:
                row = RentRow.model_validate(parse_record(record, column_map))
            except ValidationError as e:
                stats.invalid += 1
                if len(stats.invalid_samples) < MAX_INVALID_SAMPLES:
                    stats.invalid_samples.append(f"Row {stats.processed}: {_format_issues(e)}")
                continue

            if not is_quartile_order_valid(row):
                stats.warnings += 1
                logger.warning(
                    f"Quartile mismatch for {row.geo_code}: p25={row.rent_p25_per_m2}, "
                    f"median={row.rent_median_per_m2}, p75={row.rent_p75_per_m2}"
                )

            batch.append(GeoAggregateValue(
                aggregate_id=AGGREGATE_ID,
                period_year=year,
                geo_level=geo_level,
                geo_code=row.geo_code,
                params_hash=params_hash,
                params_family_hash=params_family_hash,
                payload=build_payload(row, attribution),
                source=source,
                source_version=source_version,
            ))

            if len(batch) >= UPSERT_CHUNK_SIZE:
                _flush(batch, geo_store, stats, dry_run)
                batch = []

    if batch:
        _flush(batch, geo_store, stats, dry_run)

    logger.info(f"Rent {year} import complete. {stats.summary()}")
    if stats.invalid_samples:
        logger.warning("Invalid samples:\n- " + "\n- ".join(stats.invalid_samples))
    return stats


def _flush(batch: List[GeoAggregateValue], geo_store, stats: RentImportStats, dry_run: bool) -> None:
    first = batch[0]
    codes = list(dict.fromkeys(v.geo_code for v in batch))
    # Codes from earlier chunks count as updates even when a dry run never wrote them
    repeated = [code for code in codes if code in stats.seen_codes]
    fresh = [code for code in codes if code not in stats.seen_codes]
    existing = set()
    if fresh:
        existing = {
            v.geo_code for v in geo_store.get_geo_values(
                aggregate_id=first.aggregate_id,
                period_year=first.period_year,
                geo_level=first.geo_level,
                geo_codes=fresh,
                params_hash=first.params_hash,
            )
        }
    stats.updated += len(repeated) + len(existing)
    stats.inserted += len(fresh) - len(existing)
    stats.seen_codes.update(codes)

    if not dry_run:
        geo_store.upsert_geo_values_batch(batch)
