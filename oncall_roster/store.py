"""
store.py — CSV Snapshot Store

Offline stand-in for the hosted row store: a directory of CSV files (see
config.py for the layout) exposing the same read/write methods as
SupabaseClient, so the planner and notifier run unchanged against either.

Writes replace assignments.csv atomically; a crash mid-write leaves the
previous file in place.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import DEFAULT_DATA_DIR, load_table, write_table
from .errors import PersistenceError
from .models import AvailabilityRow, MonthPreference, PeriodPreference, Profile, Slot

logger = logging.getLogger(__name__)

ASSIGNMENT_COLUMNS = ["period_id", "slot_id", "user_id", "score"]


def _score(value: Any) -> float:
    if value is None or value == "":
        return 0
    number = float(value)
    return int(number) if number.is_integer() else number


class SnapshotStore:
    """Row store backed by a CSV snapshot directory."""

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir or DEFAULT_DATA_DIR)

    def __repr__(self) -> str:
        return f"SnapshotStore({str(self.data_dir)!r})"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_period(self, period_id: str) -> Optional[Dict[str, Any]]:
        for row in load_table(self.data_dir, "periods"):
            if row.get("id") == period_id:
                return {"id": row["id"], "label": row.get("label") or row["id"]}
        return None

    def fetch_slots(self, period_id: str) -> List[Slot]:
        rows = load_table(self.data_dir, "slots", required=True)
        slots = [Slot.from_row(r) for r in rows if r.get("period_id") == period_id]
        slots.sort(key=lambda s: (s.start, s.id))
        return slots

    def fetch_availability(self, slot_ids: List[str]) -> List[AvailabilityRow]:
        wanted = set(slot_ids)
        return [
            AvailabilityRow.from_row(r)
            for r in load_table(self.data_dir, "availability")
            if r.get("slot_id") in wanted
        ]

    def fetch_period_preferences(self, period_id: str) -> List[PeriodPreference]:
        return [
            PeriodPreference.from_row(r)
            for r in load_table(self.data_dir, "preferences_period")
            if r.get("period_id") == period_id
        ]

    def fetch_month_preferences(self, period_id: str) -> List[MonthPreference]:
        return [
            MonthPreference.from_row(r)
            for r in load_table(self.data_dir, "preferences_month")
            if r.get("period_id") == period_id
        ]

    def fetch_profiles(self, user_ids: List[str]) -> Dict[str, Profile]:
        wanted = set(user_ids)
        out: Dict[str, Profile] = {}
        for r in load_table(self.data_dir, "profiles"):
            profile = Profile.from_row(r)
            if profile.user_id in wanted:
                out[profile.user_id] = profile
        return out

    def fetch_assignments(self, period_id: str) -> List[Dict[str, Any]]:
        return [
            {
                "period_id": r["period_id"],
                "slot_id": r["slot_id"],
                "user_id": r.get("user_id"),
                "score": _score(r.get("score")),
            }
            for r in load_table(self.data_dir, "assignments")
            if r.get("period_id") == period_id
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _all_assignments(self) -> List[Dict[str, Any]]:
        return load_table(self.data_dir, "assignments")

    def delete_assignments(self, period_id: str) -> None:
        kept = [r for r in self._all_assignments() if r.get("period_id") != period_id]
        try:
            write_table(self.data_dir, "assignments", kept, ASSIGNMENT_COLUMNS)
        except OSError as e:
            logger.error(f"Error deleting assignments of period {period_id}: {e}")
            raise PersistenceError(f"Delete from assignments failed: {e}") from e

    def insert_assignments(self, rows: List[Dict[str, Any]]) -> None:
        if not rows:
            return
        merged = self._all_assignments() + [
            {col: row.get(col) for col in ASSIGNMENT_COLUMNS} for row in rows
        ]
        try:
            write_table(self.data_dir, "assignments", merged, ASSIGNMENT_COLUMNS)
        except OSError as e:
            logger.error(f"Error inserting assignments: {e}")
            raise PersistenceError(f"Insert into assignments failed: {e}") from e
