"""
reporting.py — Planning result payload

Turns an EngineResult into the payload returned to operators:

  holes          number of unfilled slots
  total_score    number of assignments (every assignment scores 1)
  assignments    enriched with display_name / date / kind, sorted by (date, kind)
  holes_list     [{slot_id, date, kind, candidate_count}]
  candidates_by_slot   optional, per slot [{user_id, name}]
  users_index    {uid: {name, target_level, avail_count, assigned_count}}
  availability_summary
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .availability import AvailabilitySummary
from .engine import EngineResult


@dataclass
class PlanningResult:
    period_id: str
    dry_run: bool
    assignments: List[Dict[str, Any]] = field(default_factory=list)
    holes_list: List[Dict[str, Any]] = field(default_factory=list)
    users_index: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    availability_summary: Dict[str, Any] = field(default_factory=dict)
    candidates_by_slot: Optional[Dict[str, List[Dict[str, str]]]] = None
    inserted: Optional[int] = None

    @property
    def holes(self) -> int:
        return len(self.holes_list)

    @property
    def total_score(self) -> int:
        return len(self.assignments)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "period_id": self.period_id,
            "dry_run": self.dry_run,
            "holes": self.holes,
            "total_score": self.total_score,
            "assignments": self.assignments,
            "holes_list": self.holes_list,
            "users_index": self.users_index,
            "availability_summary": self.availability_summary,
        }
        if self.candidates_by_slot is not None:
            out["candidates_by_slot"] = self.candidates_by_slot
        if self.inserted is not None:
            out["inserted"] = self.inserted
        return out


def build_planning_report(
    summary: AvailabilitySummary,
    result: EngineResult,
    dry_run: bool = True,
    include_candidates: bool = True,
) -> PlanningResult:
    slot_by_id = {s.id: s for s in summary.slots}

    enriched = []
    for a in result.assignments:
        slot = slot_by_id.get(a.slot_id)
        enriched.append({
            "slot_id": a.slot_id,
            "user_id": a.physician_id,
            "score": a.score,
            "display_name": summary.name_of(a.physician_id),
            "date": slot.date.isoformat() if slot else None,
            "kind": slot.kind if slot else None,
        })
    enriched.sort(key=lambda r: (r["date"] or "", r["kind"] or ""))

    assigned_count: Dict[str, int] = {}
    for a in result.assignments:
        assigned_count[a.physician_id] = assigned_count.get(a.physician_id, 0) + 1

    users_index = {}
    for uid, info in summary.users_index.items():
        users_index[uid] = {
            "name": info.name,
            "target_level": info.target_level,
            "avail_count": info.avail_count,
            "assigned_count": assigned_count.get(uid, 0),
        }

    candidates_by_slot = None
    if include_candidates:
        candidates_by_slot = {
            s.id: [{"user_id": c.user_id, "name": c.name}
                   for c in summary.candidates_by_slot.get(s.id, [])]
            for s in summary.slots
        }

    return PlanningResult(
        period_id=summary.period_id,
        dry_run=dry_run,
        assignments=enriched,
        holes_list=[h.as_dict() for h in result.holes],
        users_index=users_index,
        availability_summary=summary.as_dict(),
        candidates_by_slot=candidates_by_slot,
    )
