"""
Tests for quota resolution (target levels, monthly overrides, soft max)
"""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall_roster.models import MonthPreference
from oncall_roster.quotas import (
    DerivedQuota,
    ExplicitQuota,
    declare_quota,
    group_month_preferences,
    monthly_basis,
    resolve_quota,
    resolve_quotas,
)

QUARTER = ["2025-10", "2025-11", "2025-12"]


class TestMonthlyBasis:

    @pytest.mark.parametrize("level,expected", [(1, 1), (2, 2), (3, 3), (4, 4)])
    def test_hard_levels(self, level, expected):
        assert monthly_basis(level) == expected

    def test_level_five_uses_soft_max(self):
        assert monthly_basis(5) == 1
        assert monthly_basis(5, soft_max=2) == 2

    def test_unset_uses_soft_max(self):
        assert monthly_basis(None) == 1

    def test_out_of_range_is_clamped(self):
        assert monthly_basis(0) == 1
        assert monthly_basis(9) == 4


class TestDeclareQuota:

    def test_positive_override_is_explicit(self):
        quota = declare_quota(2, {"2025-10": 3, "2025-11": 0})
        assert isinstance(quota, ExplicitQuota)
        assert quota.by_month == {"2025-10": 3, "2025-11": 0}

    def test_all_zero_overrides_fall_back_to_level(self):
        quota = declare_quota(2, {"2025-10": 0})
        assert quota == DerivedQuota(basis=2)

    def test_no_override(self):
        assert declare_quota(None) == DerivedQuota(basis=1)


class TestResolveQuota:

    def test_derived_zero_without_availability(self):
        caps = resolve_quota(DerivedQuota(basis=3), QUARTER, {"2025-10": 4, "2025-12": 1})
        assert caps == {"2025-10": 3, "2025-11": 0, "2025-12": 3}

    def test_explicit_ignores_availability(self):
        caps = resolve_quota(ExplicitQuota({"2025-11": 2}), QUARTER, {})
        assert caps == {"2025-10": 0, "2025-11": 2, "2025-12": 0}


class TestResolveQuotas:

    def test_quarter_totals(self):
        table = resolve_quotas(
            target_levels={"a": 2, "b": 5, "c": None},
            avail_by_user_month={
                "a": {m: 5 for m in QUARTER},
                "b": {m: 5 for m in QUARTER},
                "c": {"2025-10": 1},
            },
            months=QUARTER,
        )
        assert table.total("a") == 6
        assert table.total("b") == 3
        assert table.total("c") == 1
        assert table.monthly("c", "2025-11") == 0

    def test_user_with_availability_but_no_preference(self):
        table = resolve_quotas({}, {"x": {"2025-10": 2}}, ["2025-10"])
        assert table.monthly("x", "2025-10") == 1

    def test_soft_max_override(self):
        table = resolve_quotas({"b": 5}, {"b": {"2025-10": 4}}, ["2025-10"], soft_max=3)
        assert table.monthly("b", "2025-10") == 3

    def test_month_overrides_win(self):
        table = resolve_quotas(
            {"a": 4},
            {"a": {m: 5 for m in QUARTER}},
            QUARTER,
            month_overrides={"a": {"2025-10": 1}},
        )
        assert table.by_user_month["a"] == {"2025-10": 1, "2025-11": 0, "2025-12": 0}
        assert table.total("a") == 1

    def test_unknown_user_has_zero(self):
        table = resolve_quotas({}, {}, QUARTER)
        assert table.monthly("nobody", "2025-10") == 0
        assert table.total("nobody") == 0


class TestGroupMonthPreferences:

    def test_groups_by_user(self):
        rows = [
            MonthPreference("u1", "P", "2025-10", 2),
            MonthPreference("u1", "P", "2025-11", 1),
            MonthPreference("u2", "P", "2025-10", 0),
        ]
        assert group_month_preferences(rows) == {
            "u1": {"2025-10": 2, "2025-11": 1},
            "u2": {"2025-10": 0},
        }

    def test_from_row_truncates_month(self):
        row = MonthPreference.from_row(
            {"user_id": "u1", "period_id": "P", "month": "2025-10-01", "target_total": None}
        )
        assert row.month == "2025-10"
        assert row.target_total == 0
