"""
Tests for canonical parameter hashing.

Run with: pytest tests/test_params_hash.py -v
"""

import json
from datetime import date

from zonestats.services.zone_aggregates.params_hash import (
    canonical_json,
    family_params,
    hash_aggregate_params,
    hash_aggregate_params_family,
)
from zonestats.services.zone_aggregates.plugins.rent_v1 import RentParams


class TestCanonicalJson:
    """Key order must never change the serialized form."""

    def test_sorts_nested_keys(self):
        value = {"b": 1, "a": {"y": 2, "x": [3, {"d": 4, "c": 5}]}}
        assert canonical_json(value) == '{"a":{"x":[3,{"c":5,"d":4}],"y":2},"b":1}'

    def test_list_order_is_preserved(self):
        assert canonical_json({"codes": ["b", "a"]}) == '{"codes":["b","a"]}'

    def test_dates_render_as_iso(self):
        assert canonical_json({"when": date(2024, 1, 2)}) == '{"when":"2024-01-02"}'

    def test_non_ascii_is_kept(self):
        assert canonical_json({"city": "Orléans"}) == '{"city":"Orléans"}'

    def test_pydantic_models_dump_by_alias(self):
        params = RentParams(period_year=2024, segment_key="APT_T1T2")
        assert json.loads(canonical_json(params)) == {"periodYear": 2024, "segmentKey": "APT_T1T2"}


class TestHashAggregateParams:
    """Content address for fully-resolved params."""

    def test_hex_digest_shape(self):
        digest = hash_aggregate_params({"periodYear": 2024})
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    def test_insertion_order_does_not_matter(self):
        a = {"periodYear": 2024, "segmentKey": "ALL_ALL"}
        b = {"segmentKey": "ALL_ALL", "periodYear": 2024}
        assert hash_aggregate_params(a) == hash_aggregate_params(b)

    def test_different_values_differ(self):
        assert hash_aggregate_params({"periodYear": 2023}) != hash_aggregate_params({"periodYear": 2024})

    def test_model_and_dict_hash_identically(self):
        params = RentParams(period_year=2024)
        assert hash_aggregate_params(params) == hash_aggregate_params(params.to_hash_params())


class TestParamsFamily:
    """Family hashes erase the period year."""

    def test_years_collapse_to_one_family(self):
        hashes = {
            hash_aggregate_params_family({"periodYear": year, "segmentKey": "ALL_ALL"})
            for year in (2023, 2024, 2025)
        }
        assert len(hashes) == 1

    def test_missing_year_joins_the_family(self):
        with_year = hash_aggregate_params_family({"periodYear": 2024, "segmentKey": "ALL_ALL"})
        without_year = hash_aggregate_params_family({"segmentKey": "ALL_ALL"})
        assert with_year == without_year

    def test_year_alias_keys_are_removed(self):
        assert family_params({"year": 2024, "segmentKey": "X"}) == {"periodYear": 2000, "segmentKey": "X"}

    def test_family_equals_hash_of_placeholder_params(self):
        params = {"periodYear": 2031, "segmentKey": "ALL_ALL"}
        expected = hash_aggregate_params({"periodYear": 2000, "segmentKey": "ALL_ALL"})
        assert hash_aggregate_params_family(params) == expected

    def test_other_params_still_separate_families(self):
        a = hash_aggregate_params_family({"periodYear": 2024, "segmentKey": "ALL_ALL"})
        b = hash_aggregate_params_family({"periodYear": 2024, "segmentKey": "APT_T1T2"})
        assert a != b

    def test_family_hash_is_idempotent(self):
        family = family_params({"periodYear": 2024, "segmentKey": "ALL_ALL"})
        assert hash_aggregate_params_family(family) == hash_aggregate_params(family)
