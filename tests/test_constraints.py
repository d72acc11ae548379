"""
Tests for ConstraintChecker (hard / soft violations, input validation)
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall_roster.availability import build_availability_summary, build_summary
from oncall_roster.constraints import ConstraintChecker, ConstraintSeverity, ConstraintViolation
from oncall_roster.models import Assignment, AvailabilityRow, Hole, PeriodPreference
from oncall_roster.planner import run_planning
from oncall_roster.quotas import QuotaTable

from conftest import PERIOD, make_slot


@pytest.fixture
def weekend():
    """Fri night, Sat day + night, Sun morning; A and B available everywhere."""
    slots = [
        make_slot("fri", date(2025, 10, 3), "WEEKDAY_20_00"),
        make_slot("sat_day", date(2025, 10, 4), "SAT_12_18"),
        make_slot("sat_night", date(2025, 10, 4), "SAT_18_00"),
        make_slot("sun_am", date(2025, 10, 5), "SUN_08_14"),
    ]
    rows = [AvailabilityRow(u, s.id, True) for s in slots for u in ("A", "B")]
    return build_summary("P", slots, rows)


def types(violations):
    return sorted(v.constraint_type for v in violations)


class TestHardConstraints:

    def test_clean_run(self, memory_store):
        run = run_planning(memory_store, PERIOD)
        hard, soft = ConstraintChecker(run.summary, run.quotas).check_all(
            run.engine.assignments, run.engine.holes
        )
        assert hard == []
        assert types(soft) == ["UNFILLED_SLOT", "UNFILLED_SLOT"]

    def test_slot_double_filled(self, weekend):
        checker = ConstraintChecker(weekend)
        found = checker.check_slot_double_filled([Assignment("fri", "A"), Assignment("fri", "B")])
        assert types(found) == ["SLOT_DOUBLE_FILLED"]

    def test_double_booking(self, weekend):
        checker = ConstraintChecker(weekend)
        found = checker.check_double_booking([Assignment("sat_day", "A"), Assignment("sat_night", "A")])
        assert len(found) == 1
        assert found[0].date == "2025-10-04"
        assert found[0].details == {"first_slot": "sat_day"}

    def test_night_adjacency(self, weekend):
        checker = ConstraintChecker(weekend)
        found = checker.check_night_adjacency([Assignment("fri", "A"), Assignment("sat_night", "A")])
        assert types(found) == ["NIGHT_ADJACENCY"]
        assert found[0].date == "2025-10-03"

    def test_night_into_morning(self, weekend):
        checker = ConstraintChecker(weekend)
        found = checker.check_night_into_morning([Assignment("sat_night", "B"), Assignment("sun_am", "B")])
        assert types(found) == ["NIGHT_INTO_MORNING"]
        assert checker.check_night_into_morning([Assignment("sat_day", "B"), Assignment("sun_am", "B")]) == []

    def test_quotas(self, weekend):
        quotas = QuotaTable(by_user_month={"A": {"2025-10": 1}}, total_cap={"A": 1})
        checker = ConstraintChecker(weekend, quotas)
        found = checker.check_quotas([Assignment("fri", "A"), Assignment("sun_am", "A")])
        assert types(found) == ["MONTHLY_QUOTA", "TOTAL_QUOTA"]

    def test_quotas_skipped_without_table(self, weekend):
        assert ConstraintChecker(weekend).check_quotas([Assignment("fri", "A")] * 3) == []

    def test_not_available(self, weekend):
        found = ConstraintChecker(weekend).check_availability([Assignment("fri", "Z")])
        assert types(found) == ["NOT_AVAILABLE"]

    def test_accounting(self, weekend):
        checker = ConstraintChecker(weekend)
        holes = [Hole("fri", date(2025, 10, 3), "WEEKDAY_20_00", 2)]
        found = checker.check_accounting([Assignment("fri", "A")], holes)
        # fri is both, the other three are neither
        assert len(found) == 4
        assert {v.slot for v in found} == {"fri", "sat_day", "sat_night", "sun_am"}

    def test_hole_counts(self, weekend):
        holes = [Hole("fri", date(2025, 10, 3), "WEEKDAY_20_00", 1)]
        assert types(ConstraintChecker(weekend).check_hole_counts(holes)) == ["HOLE_COUNT"]


class TestViolationFormatting:

    def test_str(self):
        v = ConstraintViolation(ConstraintSeverity.HARD, "DOUBLE_BOOKING", "two slots",
                                date="2025-10-04", staff="A", slot="s3")
        assert str(v) == "[HARD] DOUBLE_BOOKING | date=2025-10-04 | staff=A | slot=s3 | → two slots"

    def test_unfilled_is_soft(self, weekend):
        holes = [Hole("fri", date(2025, 10, 3), "WEEKDAY_20_00", 2)]
        (v,) = ConstraintChecker(weekend).check_unfilled(holes)
        assert v.severity is ConstraintSeverity.SOFT
        assert v.details == {"candidate_count": 2}


class TestValidateInputs:

    def test_sample_warnings(self, memory_store):
        summary = build_availability_summary(memory_store, PERIOD)
        errors, warnings = ConstraintChecker(summary).validate_inputs()
        assert errors == []
        assert "2025-10-05 SUN_14_20: nobody available" in warnings
        assert any(w.startswith("Emma Roux:") for w in warnings)

    def test_target_without_availability(self):
        slot = make_slot("s1", date(2025, 10, 6), "WEEKDAY_20_00")
        summary = build_summary("P", [slot], [], [PeriodPreference("x", "P", 2)])
        errors, warnings = ConstraintChecker(summary).validate_inputs()
        assert errors == []
        assert len(warnings) == 2
