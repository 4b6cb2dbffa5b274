"""Tests for goldwatch.extraction.rules."""

from __future__ import annotations

import pytest

from goldwatch.core.models import Source
from goldwatch.extraction.rules import (
    BRAND_PROFILE,
    JD_FINANCE_PROFILE,
    SGE_PROFILE,
    SHUIBEI_PROFILE,
    profile_for,
)


class TestProfileFor:
    def test_fixed_profiles(self):
        assert profile_for(Source.JD_FINANCE) is JD_FINANCE_PROFILE
        assert profile_for(Source.SHUIBEI) is SHUIBEI_PROFILE
        assert profile_for(Source.SGE) is SGE_PROFILE

    @pytest.mark.parametrize(
        "source",
        [s for s in Source if s.brand_keyword is not None],
    )
    def test_brand_sources_share_one_profile(self, source):
        assert profile_for(source) is BRAND_PROFILE


class TestProfiles:
    def test_jd_path(self):
        assert JD_FINANCE_PROFILE.json_path == ("resultData", "datas", "price")
        assert not JD_FINANCE_PROFILE.is_table

    def test_shuibei_rule_order(self):
        names = [r.name for r in SHUIBEI_PROFILE.rules]
        assert len(names) == 5
        assert names[0] == "headline_id"
        assert names[-1] == "any_per_gram"

    def test_shuibei_bounds_are_three_digit(self):
        assert 612 in SHUIBEI_PROFILE.bounds
        assert 1612 not in SHUIBEI_PROFILE.bounds
        assert 61 not in SHUIBEI_PROFILE.bounds

    def test_sge_is_table(self):
        assert SGE_PROFILE.is_table
        assert {"label", "price", "ts"} <= set(SGE_PROFILE.table_pattern.groupindex)
