"""
constraints.py — Post-run constraint checker for on-call rosters

Hard constraints (a finished run must NOT violate):
  - SLOT_DOUBLE_FILLED: at most one physician per slot
  - DOUBLE_BOOKING: no physician on two slots of the same date
  - NIGHT_ADJACENCY: no physician on night slots of consecutive dates
  - NIGHT_INTO_MORNING: no SUN_08_14 the day after a slot ending at midnight
  - MONTHLY_QUOTA / TOTAL_QUOTA: assignments within the resolved caps
  - NOT_AVAILABLE: assigned physician marked the slot available
  - ACCOUNTING: every slot is either assigned or a hole, never both or neither
  - HOLE_COUNT: a hole's candidate_count equals the slot's raw candidate count

Soft constraints (reported, expected on thin availability):
  - UNFILLED_SLOT: one per hole

Usage:
  checker = ConstraintChecker(summary, quotas)
  hard, soft = checker.check_all(result.assignments, result.holes)
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .availability import AvailabilitySummary
from .models import Assignment, Hole, Slot
from .quotas import QuotaTable
from .schedule_config import MORNING_AFTER_NIGHT_KIND, ends_at_midnight, is_night

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    date: Optional[str] = None
    staff: Optional[str] = None
    slot: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.date:
            parts.append(f"date={self.date}")
        if self.staff:
            parts.append(f"staff={self.staff}")
        if self.slot:
            parts.append(f"slot={self.slot}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


class ConstraintChecker:
    """
    Validates a finished run (assignments + holes) against the availability
    snapshot and resolved quotas it was computed from.
    """

    def __init__(self, summary: AvailabilitySummary, quotas: Optional[QuotaTable] = None):
        self.summary = summary
        self.quotas = quotas
        self._slot_by_id: Dict[str, Slot] = {s.id: s for s in summary.slots}

    def _hard(self, constraint_type: str, description: str, **kwargs) -> ConstraintViolation:
        return ConstraintViolation(ConstraintSeverity.HARD, constraint_type, description, **kwargs)

    def _assigned_slots(self, assignments: Sequence[Assignment]) -> List[Tuple[Slot, str]]:
        out = []
        for a in assignments:
            slot = self._slot_by_id.get(a.slot_id)
            if slot is not None:
                out.append((slot, a.physician_id))
        return out

    # -----------------------------------------------------------------------
    # HARD: one physician per slot, one slot per physician per date
    # -----------------------------------------------------------------------

    def check_slot_double_filled(self, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
        violations = []
        seen: Dict[str, str] = {}
        for a in assignments:
            if a.slot_id in seen:
                violations.append(self._hard(
                    "SLOT_DOUBLE_FILLED",
                    f"Slot filled by both {seen[a.slot_id]} and {a.physician_id}",
                    staff=a.physician_id,
                    slot=a.slot_id,
                ))
            else:
                seen[a.slot_id] = a.physician_id
        return violations

    def check_double_booking(self, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
        """Hard: No physician assigned more than once on the same date."""
        violations = []
        seen: Dict[Tuple[str, Any], Slot] = {}
        for slot, uid in self._assigned_slots(assignments):
            key = (uid, slot.date)
            if key in seen:
                violations.append(self._hard(
                    "DOUBLE_BOOKING",
                    f"{self.summary.name_of(uid)} assigned to both {seen[key].kind} and {slot.kind}",
                    date=slot.date.isoformat(),
                    staff=uid,
                    slot=slot.id,
                    details={"first_slot": seen[key].id},
                ))
            else:
                seen[key] = slot
        return violations

    # -----------------------------------------------------------------------
    # HARD: rest rules
    # -----------------------------------------------------------------------

    def check_night_adjacency(self, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
        """Hard: No night slots on consecutive dates for one physician."""
        nights: Dict[str, Set[Any]] = {}
        for slot, uid in self._assigned_slots(assignments):
            if is_night(slot.kind):
                nights.setdefault(uid, set()).add(slot.date)

        violations = []
        for uid, dates in sorted(nights.items()):
            for d in sorted(dates):
                if d + timedelta(days=1) in dates:
                    violations.append(self._hard(
                        "NIGHT_ADJACENCY",
                        f"{self.summary.name_of(uid)} on nights of {d} and {d + timedelta(days=1)}",
                        date=d.isoformat(),
                        staff=uid,
                    ))
        return violations

    def check_night_into_morning(self, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
        """Hard: No SUN_08_14 the morning after a slot that ended at midnight."""
        midnight_ends: Dict[str, Set[Any]] = {}
        mornings: List[Tuple[Slot, str]] = []
        for slot, uid in self._assigned_slots(assignments):
            if ends_at_midnight(slot.kind):
                midnight_ends.setdefault(uid, set()).add(slot.date)
            if slot.kind == MORNING_AFTER_NIGHT_KIND:
                mornings.append((slot, uid))

        violations = []
        for slot, uid in mornings:
            if slot.date - timedelta(days=1) in midnight_ends.get(uid, set()):
                violations.append(self._hard(
                    "NIGHT_INTO_MORNING",
                    f"{self.summary.name_of(uid)} on {slot.kind} after a slot ending at midnight",
                    date=slot.date.isoformat(),
                    staff=uid,
                    slot=slot.id,
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: quotas & availability
    # -----------------------------------------------------------------------

    def check_quotas(self, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
        if self.quotas is None:
            return []
        by_month: Dict[Tuple[str, str], int] = {}
        totals: Dict[str, int] = {}
        for slot, uid in self._assigned_slots(assignments):
            by_month[(uid, slot.month)] = by_month.get((uid, slot.month), 0) + 1
            totals[uid] = totals.get(uid, 0) + 1

        violations = []
        for (uid, month), count in sorted(by_month.items()):
            cap = self.quotas.monthly(uid, month)
            if count > cap:
                violations.append(self._hard(
                    "MONTHLY_QUOTA",
                    f"{self.summary.name_of(uid)} has {count} duties in {month}, cap {cap}",
                    staff=uid,
                    details={"month": month, "count": count, "cap": cap},
                ))
        for uid, count in sorted(totals.items()):
            cap = self.quotas.total(uid)
            if count > cap:
                violations.append(self._hard(
                    "TOTAL_QUOTA",
                    f"{self.summary.name_of(uid)} has {count} duties in the period, cap {cap}",
                    staff=uid,
                    details={"count": count, "cap": cap},
                ))
        return violations

    def check_availability(self, assignments: Sequence[Assignment]) -> List[ConstraintViolation]:
        violations = []
        for a in assignments:
            if a.physician_id not in self.summary.candidate_ids(a.slot_id):
                slot = self._slot_by_id.get(a.slot_id)
                violations.append(self._hard(
                    "NOT_AVAILABLE",
                    f"{self.summary.name_of(a.physician_id)} did not mark this slot available",
                    date=slot.date.isoformat() if slot else None,
                    staff=a.physician_id,
                    slot=a.slot_id,
                ))
        return violations

    # -----------------------------------------------------------------------
    # HARD: accounting
    # -----------------------------------------------------------------------

    def check_accounting(
        self,
        assignments: Sequence[Assignment],
        holes: Sequence[Hole],
    ) -> List[ConstraintViolation]:
        """Hard: every slot is exactly one of assigned / hole."""
        assigned = {a.slot_id for a in assignments}
        holed = {h.slot_id for h in holes}
        violations = []
        for slot in self.summary.slots:
            in_a, in_h = slot.id in assigned, slot.id in holed
            if in_a and in_h:
                problem = "both assigned and reported as a hole"
            elif not in_a and not in_h:
                problem = "neither assigned nor reported as a hole"
            else:
                continue
            violations.append(self._hard(
                "ACCOUNTING",
                f"{slot.kind} is {problem}",
                date=slot.date.isoformat(),
                slot=slot.id,
            ))
        return violations

    def check_hole_counts(self, holes: Sequence[Hole]) -> List[ConstraintViolation]:
        violations = []
        for h in holes:
            raw = len(self.summary.candidate_ids(h.slot_id))
            if h.candidate_count != raw:
                violations.append(self._hard(
                    "HOLE_COUNT",
                    f"Hole reports {h.candidate_count} candidates, slot has {raw}",
                    date=h.date.isoformat(),
                    slot=h.slot_id,
                ))
        return violations

    # -----------------------------------------------------------------------
    # SOFT: Unfilled slots
    # -----------------------------------------------------------------------

    def check_unfilled(self, holes: Sequence[Hole]) -> List[ConstraintViolation]:
        """Soft: Flag every hole."""
        return [
            ConstraintViolation(
                severity=ConstraintSeverity.SOFT,
                constraint_type="UNFILLED_SLOT",
                description=(
                    f"{h.kind} could not be filled "
                    f"({h.candidate_count} available)"
                ),
                date=h.date.isoformat(),
                slot=h.slot_id,
                details={"candidate_count": h.candidate_count},
            )
            for h in holes
        ]

    # -----------------------------------------------------------------------
    # Run all checks
    # -----------------------------------------------------------------------

    def check_all(
        self,
        assignments: Sequence[Assignment],
        holes: Sequence[Hole],
    ) -> Tuple[List[ConstraintViolation], List[ConstraintViolation]]:
        """
        Run all hard and soft constraint checks.

        Returns:
            (hard_violations, soft_violations)
        """
        hard: List[ConstraintViolation] = []
        soft: List[ConstraintViolation] = []

        hard.extend(self.check_slot_double_filled(assignments))
        hard.extend(self.check_double_booking(assignments))
        hard.extend(self.check_night_adjacency(assignments))
        hard.extend(self.check_night_into_morning(assignments))
        hard.extend(self.check_quotas(assignments))
        hard.extend(self.check_availability(assignments))
        hard.extend(self.check_accounting(assignments, holes))
        hard.extend(self.check_hole_counts(holes))
        soft.extend(self.check_unfilled(holes))

        if hard:
            logger.warning(f"{len(hard)} hard constraint violations")
        return hard, soft

    # -----------------------------------------------------------------------
    # Input validation (availability snapshot)
    # -----------------------------------------------------------------------

    def validate_inputs(self) -> Tuple[List[str], List[str]]:
        """
        Inspect the snapshot before trusting a run.

        Returns:
            (errors, warnings) as lists of strings
        """
        errors = []
        warnings = []

        for slot in self.summary.slots:
            if not self.summary.candidate_ids(slot.id):
                warnings.append(f"{slot.date} {slot.kind}: nobody available")

        for uid, info in self.summary.users_index.items():
            if info.avail_count == 0:
                warnings.append(f"{info.name}: declared a target but marked no slot available")

        unknown = set(self.summary.candidates_by_slot) - set(self._slot_by_id)
        if unknown:
            errors.append(f"Candidates listed for unknown slots: {sorted(unknown)}")

        return errors, warnings
