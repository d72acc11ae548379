"""
engine.py — On-call Roster Assignment Engine

Core algorithm: forward-only, tiered greedy pass.

  For each month (chronological):
    Split the month's slots into scarcity buckets by raw candidate count:
      [<=1 candidate], [2 candidates], [3+ candidates]
    For each bucket (scarcest first), for each slot (by start instant):
      eligible = candidates
                 - monthly quota exhausted
                 - total quota exhausted
                 - already on duty that date
                 - night on the day before/after (for a night slot)
                 - midnight-ending slot the day before (for SUN_08_14)
      eligible empty -> hole (never retried)
      otherwise pick from the minimal tier (fewest assignments so far),
      tie-break: fewer availabilities overall, then name, then id.

Scarce slots are locked in before flexible ones consume shared candidates,
and the tier rule gives an implicit round-robin: nobody gets a second duty
while an eligible colleague has none.

There is no backtracking. Adversarial availability patterns can produce
holes that a bipartite matching would avoid.

All mutable bookkeeping lives in a SolverState owned by one run.
"""

import logging
import math
import unicodedata
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .models import Assignment, Hole, PhysicianInfo, Slot
from .quotas import QuotaTable
from .schedule_config import (
    BUCKET_LIMITS,
    DEFAULT_ASSIGNMENT_SCORE,
    MORNING_AFTER_NIGHT_KIND,
    ends_at_midnight,
    is_night,
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


# ---------------------------------------------------------------------------
# Solver state
# ---------------------------------------------------------------------------

@dataclass
class SolverState:
    """Counters and per-date markers mutated while the pass runs."""

    assigned_total: Dict[str, int] = field(default_factory=dict)
    assigned_by_month: Dict[str, Dict[str, int]] = field(default_factory=dict)
    users_by_date: Dict[date, Set[str]] = field(default_factory=dict)
    kinds_by_user_date: Dict[str, Dict[date, Set[str]]] = field(default_factory=dict)
    night_dates: Dict[str, Set[date]] = field(default_factory=dict)
    taken: Set[str] = field(default_factory=set)

    def total(self, user_id: str) -> int:
        return self.assigned_total.get(user_id, 0)

    def month_count(self, user_id: str, month: str) -> int:
        return self.assigned_by_month.get(user_id, {}).get(month, 0)

    def has_same_day(self, user_id: str, d: date) -> bool:
        return user_id in self.users_by_date.get(d, set())

    def kinds_on(self, user_id: str, d: date) -> Set[str]:
        return self.kinds_by_user_date.get(user_id, {}).get(d, set())

    def violates_adjacency(self, user_id: str, slot: Slot) -> bool:
        # Buckets are not chronological, so both neighbours are checked.
        if is_night(slot.kind):
            nights = self.night_dates.get(user_id, set())
            if slot.date - ONE_DAY in nights or slot.date + ONE_DAY in nights:
                return True
        if slot.kind == MORNING_AFTER_NIGHT_KIND:
            if any(ends_at_midnight(k) for k in self.kinds_on(user_id, slot.date - ONE_DAY)):
                return True
        if ends_at_midnight(slot.kind):
            if MORNING_AFTER_NIGHT_KIND in self.kinds_on(user_id, slot.date + ONE_DAY):
                return True
        return False

    def commit(self, user_id: str, slot: Slot) -> None:
        self.assigned_total[user_id] = self.total(user_id) + 1
        per_month = self.assigned_by_month.setdefault(user_id, {})
        per_month[slot.month] = per_month.get(slot.month, 0) + 1
        self.users_by_date.setdefault(slot.date, set()).add(user_id)
        self.kinds_by_user_date.setdefault(user_id, {}).setdefault(slot.date, set()).add(slot.kind)
        if is_night(slot.kind):
            self.night_dates.setdefault(user_id, set()).add(slot.date)
        self.taken.add(slot.id)


@dataclass
class EngineResult:
    assignments: List[Assignment]
    holes: List[Hole]
    state: SolverState


# ---------------------------------------------------------------------------
# Eligibility & pick
# ---------------------------------------------------------------------------

def eligible_candidates(
    candidates: Sequence[str],
    slot: Slot,
    quotas: QuotaTable,
    state: SolverState,
) -> List[str]:
    """Candidates of `slot` that pass quota, same-day and adjacency rules."""
    out = []
    for uid in candidates:
        if quotas.monthly(uid, slot.month) - state.month_count(uid, slot.month) <= 0:
            continue
        if quotas.total(uid) - state.total(uid) <= 0:
            continue
        if state.has_same_day(uid, slot.date):
            continue
        if state.violates_adjacency(uid, slot):
            continue
        out.append(uid)
    return out


def collation_key(name: str) -> str:
    """'Élodie' -> 'elodie': accents dropped, case folded."""
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(c for c in decomposed if not unicodedata.combining(c)).casefold()


def _pick_by_tiers(
    eligible: Sequence[str],
    state: SolverState,
    avail_count: Mapping[str, int],
    names: Mapping[str, str],
) -> Optional[str]:
    """
    Pick from the minimal tier (fewest assignments so far).

    Tie-break: fewer availabilities overall first (fewer chances later),
    then display name (accent- and case-insensitive), then id.
    """
    if not eligible:
        return None
    min_tier = min(state.total(uid) for uid in eligible)
    pool = [uid for uid in eligible if state.total(uid) == min_tier]

    def key(uid: str):
        name = names.get(uid, uid)
        return (avail_count.get(uid, 0), collation_key(name), name, uid)

    return min(pool, key=key)


def _bucket_index(candidate_count: int) -> int:
    for idx, limit in enumerate(BUCKET_LIMITS):
        if candidate_count <= limit:
            return idx
    return len(BUCKET_LIMITS)


# ---------------------------------------------------------------------------
# Core: assign_roster
# ---------------------------------------------------------------------------

def assign_roster(
    slots: Iterable[Slot],
    candidates_by_slot: Mapping[str, Iterable[str]],
    quotas: QuotaTable,
    avail_count: Optional[Mapping[str, int]] = None,
    names: Optional[Mapping[str, str]] = None,
    score: float = DEFAULT_ASSIGNMENT_SCORE,
) -> EngineResult:
    """
    Assign at most one physician per slot.

    Args:
        slots:              Slots of the period (any order).
        candidates_by_slot: {slot_id: physician ids marked available}.
        quotas:             Resolved QuotaTable (monthly + total caps).
        avail_count:        {physician: raw availability count over the period}.
                            Defaults to counting `candidates_by_slot`.
        names:              {physician: display name} for tie-breaking.
        score:              Score stored on every assignment.

    Returns:
        EngineResult(assignments in commit order, holes in discovery order, state)
    """
    ordered = sorted(slots, key=lambda s: (s.start, s.id))
    raw: Dict[str, List[str]] = {
        s.id: sorted(set(candidates_by_slot.get(s.id, ()))) for s in ordered
    }
    if avail_count is None:
        counts: Dict[str, int] = defaultdict(int)
        for ids in raw.values():
            for uid in ids:
                counts[uid] += 1
        avail_count = counts
    names = names or {}

    state = SolverState()
    assignments: List[Assignment] = []
    holes: List[Hole] = []

    months = sorted({s.month for s in ordered})
    for month in months:
        buckets: List[List[Slot]] = [[] for _ in range(len(BUCKET_LIMITS) + 1)]
        for s in ordered:
            if s.month != month or s.id in state.taken:
                continue
            buckets[_bucket_index(len(raw[s.id]))].append(s)

        month_filled = 0
        month_holes = 0
        for bucket in buckets:
            for s in bucket:
                candidates = raw[s.id]
                if not candidates:
                    holes.append(Hole(slot_id=s.id, date=s.date, kind=s.kind, candidate_count=0))
                    month_holes += 1
                    logger.warning(f"Hole {s.date} {s.kind}: nobody available")
                    continue

                eligible = eligible_candidates(candidates, s, quotas, state)
                chosen = _pick_by_tiers(eligible, state, avail_count, names)
                if chosen is None:
                    holes.append(Hole(slot_id=s.id, date=s.date, kind=s.kind,
                                      candidate_count=len(candidates)))
                    month_holes += 1
                    logger.warning(
                        f"Hole {s.date} {s.kind}: {len(candidates)} available, "
                        f"all excluded by quota/adjacency"
                    )
                    continue

                assignments.append(Assignment(slot_id=s.id, physician_id=chosen, score=score))
                state.commit(chosen, s)
                month_filled += 1
                logger.debug(
                    f"{s.date} {s.kind} → {names.get(chosen, chosen)} "
                    f"(tier={state.total(chosen) - 1}, eligible={len(eligible)})"
                )

        logger.info(f"Month {month}: {month_filled} assigned, {month_holes} holes")

    return EngineResult(assignments=assignments, holes=holes, state=state)


def assign_from_summary(summary: Any, quotas: QuotaTable, score: float = DEFAULT_ASSIGNMENT_SCORE) -> EngineResult:
    """Run assign_roster on an AvailabilitySummary."""
    return assign_roster(
        slots=summary.slots,
        candidates_by_slot={s.id: summary.candidate_ids(s.id) for s in summary.slots},
        quotas=quotas,
        avail_count={uid: info.avail_count for uid, info in summary.users_index.items()},
        names={uid: info.name for uid, info in summary.users_index.items()},
        score=score,
    )


# ---------------------------------------------------------------------------
# Fairness Metrics
# ---------------------------------------------------------------------------

def calculate_fairness_metrics(
    assignments: Sequence[Assignment],
    slots_by_id: Mapping[str, Slot],
    users_index: Mapping[str, PhysicianInfo],
    holes: int = 0,
) -> Dict[str, Any]:
    """
    Per-physician duty counts, spread statistics and per-kind breakdown.

    Physicians in `users_index` with no duty count as 0 so the spread reflects
    everyone who could have been scheduled.

    Returns:
        {
          mean, std, cv, min, max,
          counts: {user_id: int},
          per_kind: {kind: {user_id: int}},
          per_month: {month: {user_id: int}},
          holes: int,
        }
    """
    counts: Dict[str, int] = {uid: 0 for uid in users_index}
    per_kind: Dict[str, Dict[str, int]] = {}
    per_month: Dict[str, Dict[str, int]] = {}

    for a in assignments:
        counts[a.physician_id] = counts.get(a.physician_id, 0) + 1
        slot = slots_by_id.get(a.slot_id)
        if slot is None:
            continue
        kind_counts = per_kind.setdefault(slot.kind, {})
        kind_counts[a.physician_id] = kind_counts.get(a.physician_id, 0) + 1
        month_counts = per_month.setdefault(slot.month, {})
        month_counts[a.physician_id] = month_counts.get(a.physician_id, 0) + 1

    values = list(counts.values())
    mean_val = sum(values) / len(values) if values else 0.0
    variance = sum((v - mean_val) ** 2 for v in values) / len(values) if values else 0.0
    std_val = math.sqrt(variance)
    cv = (std_val / mean_val * 100) if mean_val > 0 else 0.0

    return {
        "mean": mean_val,
        "std": std_val,
        "cv": cv,
        "min": min(values) if values else 0,
        "max": max(values) if values else 0,
        "counts": counts,
        "per_kind": per_kind,
        "per_month": per_month,
        "holes": holes,
    }
