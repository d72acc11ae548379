"""
Shared fixtures: a small Q4 2025 period, an in-memory row store and the same
data written as a CSV snapshot directory.

Sample period "2025-Q4" (label "T4 2025"):

  s1  Wed 2025-10-01  WEEKDAY_20_00   u1 u2        (u3 explicitly unavailable)
  s2  Thu 2025-10-02  WEEKDAY_20_00   u1
  s3  Sat 2025-10-04  SAT_12_18       u2 u3
  s4  Sat 2025-10-04  SAT_18_00       u1 u2 u3
  s5  Sun 2025-10-05  SUN_08_14       u1
  s6  Sun 2025-10-05  SUN_14_20       (nobody)
  s7  Sun 2025-10-05  SUN_20_24       u2 u3 u4
  s8  Mon 2025-11-03  WEEKDAY_20_00   u1 u2

Preferences: u1 level 2, u2 level unset (row with null), u3 level 3 with an
explicit October target of 1, u5 level 1 without any availability.
u4 has availability but neither preference nor profile.
"""

import csv
import sys
from copy import deepcopy
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall_roster.errors import PersistenceError
from oncall_roster.models import (
    AvailabilityRow, MonthPreference, PeriodPreference, Profile, Slot,
)

PERIOD = "2025-Q4"

KIND_HOURS = {
    "WEEKDAY_20_00": (20, 0),
    "SAT_12_18":     (12, 18),
    "SAT_18_00":     (18, 0),
    "SUN_08_14":     (8, 14),
    "SUN_14_20":     (14, 20),
    "SUN_20_24":     (20, 0),
}


def make_slot(slot_id: str, d: date, kind: str, period_id: str = PERIOD) -> Slot:
    start_h, end_h = KIND_HOURS[kind]
    start = datetime(d.year, d.month, d.day, start_h)
    end = datetime(d.year, d.month, d.day, end_h) if end_h else None
    return Slot(id=slot_id, period_id=period_id, date=d, kind=kind, start=start, end=end)


SAMPLE_TABLES: Dict[str, List[Dict[str, Any]]] = {
    "periods": [
        {"id": PERIOD, "label": "T4 2025"},
        {"id": "2026-Q1", "label": "T1 2026"},
    ],
    "slots": [
        {"id": "s1", "period_id": PERIOD, "date": "2025-10-01", "kind": "WEEKDAY_20_00",
         "start_ts": "2025-10-01 20:00:00", "end_ts": "2025-10-02 00:00:00"},
        {"id": "s2", "period_id": PERIOD, "date": "2025-10-02", "kind": "WEEKDAY_20_00",
         "start_ts": "2025-10-02 20:00:00", "end_ts": "2025-10-03 00:00:00"},
        {"id": "s3", "period_id": PERIOD, "date": "2025-10-04", "kind": "SAT_12_18",
         "start_ts": "2025-10-04 12:00:00", "end_ts": "2025-10-04 18:00:00"},
        {"id": "s4", "period_id": PERIOD, "date": "2025-10-04", "kind": "SAT_18_00",
         "start_ts": "2025-10-04 18:00:00", "end_ts": "2025-10-05 00:00:00"},
        {"id": "s5", "period_id": PERIOD, "date": "2025-10-05", "kind": "SUN_08_14",
         "start_ts": "2025-10-05 08:00:00", "end_ts": "2025-10-05 14:00:00"},
        {"id": "s6", "period_id": PERIOD, "date": "2025-10-05", "kind": "SUN_14_20",
         "start_ts": "2025-10-05 14:00:00", "end_ts": "2025-10-05 20:00:00"},
        {"id": "s7", "period_id": PERIOD, "date": "2025-10-05", "kind": "SUN_20_24",
         "start_ts": "2025-10-05 20:00:00", "end_ts": "2025-10-06 00:00:00"},
        {"id": "s8", "period_id": PERIOD, "date": "2025-11-03", "kind": "WEEKDAY_20_00",
         "start_ts": "2025-11-03 20:00:00", "end_ts": "2025-11-04 00:00:00"},
        {"id": "x1", "period_id": "2026-Q1", "date": "2026-01-05", "kind": "WEEKDAY_20_00",
         "start_ts": "2026-01-05 20:00:00", "end_ts": "2026-01-06 00:00:00"},
    ],
    "availability": [
        {"user_id": "u1", "slot_id": "s1", "available": "true"},
        {"user_id": "u2", "slot_id": "s1", "available": "true"},
        {"user_id": "u3", "slot_id": "s1", "available": "false"},
        {"user_id": "u1", "slot_id": "s2", "available": "true"},
        {"user_id": "u2", "slot_id": "s3", "available": "true"},
        {"user_id": "u3", "slot_id": "s3", "available": "true"},
        {"user_id": "u1", "slot_id": "s4", "available": "true"},
        {"user_id": "u2", "slot_id": "s4", "available": "true"},
        {"user_id": "u3", "slot_id": "s4", "available": "true"},
        {"user_id": "u1", "slot_id": "s5", "available": "true"},
        {"user_id": "u2", "slot_id": "s7", "available": "true"},
        {"user_id": "u3", "slot_id": "s7", "available": "true"},
        {"user_id": "u4", "slot_id": "s7", "available": "true"},
        {"user_id": "u1", "slot_id": "s8", "available": "true"},
        {"user_id": "u2", "slot_id": "s8", "available": "true"},
        {"user_id": "u1", "slot_id": "x1", "available": "true"},
    ],
    "preferences_period": [
        {"user_id": "u1", "period_id": PERIOD, "target_level": "2"},
        {"user_id": "u2", "period_id": PERIOD, "target_level": None},
        {"user_id": "u3", "period_id": PERIOD, "target_level": "3"},
        {"user_id": "u5", "period_id": PERIOD, "target_level": "1"},
    ],
    "preferences_month": [
        {"user_id": "u3", "period_id": PERIOD, "month": "2025-10", "target_total": "1"},
    ],
    "profiles": [
        {"user_id": "u1", "first_name": "Alice", "last_name": "Martin", "email": "alice@example.org"},
        {"user_id": "u2", "first_name": "Bruno", "last_name": "Petit", "email": "bruno@example.org"},
        {"user_id": "u3", "first_name": "Chloé", "last_name": "Durand", "email": None},
        {"user_id": "u5", "first_name": "Emma", "last_name": "Roux", "email": "emma@example.org"},
    ],
    "assignments": [
        {"period_id": PERIOD, "slot_id": "s1", "user_id": "u3", "score": "1"},
        {"period_id": "2026-Q1", "slot_id": "x1", "user_id": "u1", "score": "1"},
    ],
}

# Result of planning the sample period with the default soft max of 1.
EXPECTED_ASSIGNMENTS = {
    "s1": "u2",
    "s2": "u1",
    "s3": "u3",
    "s5": "u1",
    "s7": "u4",
    "s8": "u2",
}
EXPECTED_HOLES = {"s4": 3, "s6": 0}


class InMemoryStore:
    """Row store over plain lists, with optional injected insert failures."""

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None, fail_inserts: int = 0):
        self.tables = deepcopy(tables if tables is not None else SAMPLE_TABLES)
        self.fail_inserts = fail_inserts
        self.insert_calls = 0

    def fetch_period(self, period_id):
        for row in self.tables.get("periods", []):
            if row["id"] == period_id:
                return dict(row)
        return None

    def fetch_slots(self, period_id):
        slots = [Slot.from_row(r) for r in self.tables.get("slots", []) if r["period_id"] == period_id]
        return sorted(slots, key=lambda s: (s.start, s.id))

    def fetch_availability(self, slot_ids):
        wanted = set(slot_ids)
        return [AvailabilityRow.from_row(r) for r in self.tables.get("availability", [])
                if r["slot_id"] in wanted]

    def fetch_period_preferences(self, period_id):
        return [PeriodPreference.from_row(r) for r in self.tables.get("preferences_period", [])
                if r["period_id"] == period_id]

    def fetch_month_preferences(self, period_id):
        return [MonthPreference.from_row(r) for r in self.tables.get("preferences_month", [])
                if r["period_id"] == period_id]

    def fetch_profiles(self, user_ids):
        wanted = set(user_ids)
        return {r["user_id"]: Profile.from_row(r) for r in self.tables.get("profiles", [])
                if r["user_id"] in wanted}

    def fetch_assignments(self, period_id):
        return [dict(r) for r in self.tables.get("assignments", []) if r["period_id"] == period_id]

    def delete_assignments(self, period_id):
        self.tables["assignments"] = [
            r for r in self.tables.get("assignments", []) if r["period_id"] != period_id
        ]

    def insert_assignments(self, rows):
        self.insert_calls += 1
        if self.fail_inserts > 0:
            self.fail_inserts -= 1
            raise PersistenceError("insert rejected")
        self.tables.setdefault("assignments", []).extend(dict(r) for r in rows)


def write_snapshot(data_dir: Path, tables: Dict[str, List[Dict[str, Any]]]) -> Path:
    data_dir.mkdir(parents=True, exist_ok=True)
    for table, rows in tables.items():
        if not rows:
            continue
        with open(data_dir / f"{table}.csv", "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
            writer.writeheader()
            for row in rows:
                writer.writerow({k: ("" if v is None else v) for k, v in row.items()})
    return data_dir


@pytest.fixture
def memory_store():
    return InMemoryStore()


@pytest.fixture
def failing_store():
    """First insert fails, the restore succeeds."""
    return InMemoryStore(fail_inserts=1)


@pytest.fixture
def snapshot_dir(tmp_path):
    return write_snapshot(tmp_path / "data", SAMPLE_TABLES)
