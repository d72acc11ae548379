"""
planner.py — Planning orchestration (dry run / commit / manual save)

Pipeline for one period:

  1. build_availability_summary   (one read of slots, availability, prefs, profiles)
  2. resolve_quotas               (period target levels + monthly overrides)
  3. assign_from_summary          (tiered greedy pass)
  4. build_planning_report
  5. commit only: replace the period's persisted assignments

Dry run and commit go through exactly the same steps 1-4, so a dry run
previews what a commit would write.

Replacing assignments is all-or-nothing: the previous rows are kept in
memory, and if the insert fails they are written back before the error is
raised. Commits for the same period are serialised with an in-process lock.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple

from .availability import AvailabilitySummary, build_availability_summary
from .engine import EngineResult, assign_from_summary
from .errors import InvalidInputError, PersistenceError
from .quotas import QuotaTable, group_month_preferences, resolve_quotas
from .reporting import PlanningResult, build_planning_report
from .schedule_config import SOFT_MAX_PER_MONTH

logger = logging.getLogger(__name__)

_PERIOD_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def period_lock(period_id: str) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _PERIOD_LOCKS.get(period_id)
        if lock is None:
            lock = _PERIOD_LOCKS[period_id] = threading.Lock()
        return lock


# ---------------------------------------------------------------------------
# Compute
# ---------------------------------------------------------------------------

@dataclass
class PlanningRun:
    summary: AvailabilitySummary
    quotas: QuotaTable
    engine: EngineResult
    report: PlanningResult


def compute_planning(
    store: Any,
    period_id: str,
    soft_max_per_month: int = SOFT_MAX_PER_MONTH,
) -> Tuple[AvailabilitySummary, QuotaTable, EngineResult]:
    summary = build_availability_summary(store, period_id)
    month_rows = store.fetch_month_preferences(period_id) if summary.slots else []

    quotas = resolve_quotas(
        target_levels={uid: info.target_level for uid, info in summary.users_index.items()},
        avail_by_user_month=summary.avail_count_by_month(),
        months=summary.months,
        month_overrides=group_month_preferences(month_rows),
        soft_max=soft_max_per_month,
    )
    result = assign_from_summary(summary, quotas)
    return summary, quotas, result


def run_planning(
    store: Any,
    period_id: str,
    dry_run: bool = True,
    include_candidates: bool = True,
    soft_max_per_month: int = SOFT_MAX_PER_MONTH,
) -> PlanningRun:
    """Same as generate_planning, keeping the intermediate structures."""
    if not period_id:
        raise ValueError("period_id is required")

    summary, quotas, result = compute_planning(store, period_id, soft_max_per_month)
    report = build_planning_report(summary, result, dry_run=dry_run,
                                   include_candidates=include_candidates)

    logger.info(
        f"Period {period_id}: {report.total_score} assignments, {report.holes} holes "
        f"({'dry run' if dry_run else 'commit'})"
    )

    if not dry_run:
        rows = [a.to_row(period_id) for a in result.assignments]
        report.inserted = replace_assignments(store, period_id, rows)

    return PlanningRun(summary=summary, quotas=quotas, engine=result, report=report)


def generate_planning(
    store: Any,
    period_id: str,
    dry_run: bool = True,
    include_candidates: bool = True,
    soft_max_per_month: int = SOFT_MAX_PER_MONTH,
) -> PlanningResult:
    """
    Compute the roster for a period and, unless dry_run, persist it.

    Args:
        store:              SupabaseClient or SnapshotStore
        period_id:          Period to plan
        dry_run:            True = preview only, nothing is written
        include_candidates: add candidates_by_slot to the result
        soft_max_per_month: monthly cap for target level 5 / unset

    Raises:
        ValueError:        period_id missing
        InvalidInputError: malformed slot data
        PersistenceError:  read failure, or commit failure (previous rows restored)
    """
    return run_planning(store, period_id, dry_run, include_candidates, soft_max_per_month).report


# ---------------------------------------------------------------------------
# Persist
# ---------------------------------------------------------------------------

def replace_assignments(store: Any, period_id: str, rows: List[Dict[str, Any]]) -> int:
    """
    Replace every persisted assignment of `period_id` with `rows`.

    Returns the number of rows inserted.
    """
    with period_lock(period_id):
        previous = store.fetch_assignments(period_id)
        store.delete_assignments(period_id)
        try:
            store.insert_assignments(rows)
        except Exception as e:
            logger.error(
                f"Insert failed for period {period_id}; restoring {len(previous)} previous rows"
            )
            try:
                store.insert_assignments(previous)
            except Exception as restore_error:
                logger.error(f"Restore failed for period {period_id}: {restore_error}")
            raise PersistenceError(f"Commit failed for period {period_id}: {e}") from e

    logger.info(f"Period {period_id}: replaced {len(previous)} rows with {len(rows)}")
    return len(rows)


def save_assignments(store: Any, period_id: str, rows: Iterable[Dict[str, Any]]) -> int:
    """
    Manual save path: persist operator-edited rows [{slot_id, user_id, score?}]
    with the same replace-all semantics as a commit. A missing score is 0.
    """
    if not period_id:
        raise ValueError("period_id is required")
    if rows is None:
        raise ValueError("rows is required")

    insert_rows = []
    seen = set()
    for r in rows:
        slot_id = r.get("slot_id")
        user_id = r.get("user_id", r.get("physician_id"))
        if not slot_id or not user_id:
            raise InvalidInputError(f"Assignment row needs slot_id and user_id: {r}")
        if slot_id in seen:
            raise InvalidInputError(f"Slot {slot_id} assigned more than once")
        seen.add(slot_id)
        score = r.get("score")
        insert_rows.append({
            "period_id": period_id,
            "slot_id": slot_id,
            "user_id": user_id,
            "score": 0 if score is None else score,
        })

    return replace_assignments(store, period_id, insert_rows)
