"""
availability.py — Availability Summary Builder

Collects, for one duty period:
  - every slot, ordered by start instant
  - the candidates (available=true) of each slot, with display names
  - a per-physician index {name, target_level, avail_count}

The physician universe is the union of physicians with at least one
available=true row on a slot of the period and physicians who declared a
preference for the period. A physician who declared a target but ticked
nothing still shows up (avail_count=0) so the gap is visible to operators.

A period with no slots yields empty structures, not an error.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from .errors import InvalidInputError
from .models import AvailabilityRow, Candidate, PeriodPreference, PhysicianInfo, Profile, Slot
from .schedule_config import SOFT_TARGET_LEVEL

logger = logging.getLogger(__name__)


@dataclass
class AvailabilitySummary:
    period_id: str
    slots: List[Slot] = field(default_factory=list)
    candidates_by_slot: Dict[str, List[Candidate]] = field(default_factory=dict)
    users_index: Dict[str, PhysicianInfo] = field(default_factory=dict)

    @property
    def months(self) -> List[str]:
        return sorted({s.month for s in self.slots})

    def candidate_ids(self, slot_id: str) -> List[str]:
        return [c.user_id for c in self.candidates_by_slot.get(slot_id, [])]

    def name_of(self, user_id: str) -> str:
        info = self.users_index.get(user_id)
        return info.name if info else user_id

    def avail_count_by_month(self) -> Dict[str, Dict[str, int]]:
        """{user_id: {month: number of slots marked available}}"""
        out: Dict[str, Dict[str, int]] = defaultdict(dict)
        for slot in self.slots:
            for uid in self.candidate_ids(slot.id):
                out[uid][slot.month] = out[uid].get(slot.month, 0) + 1
        return dict(out)

    def availability_by_slot(self) -> Dict[str, Dict[str, Any]]:
        return {
            s.id: {
                "date": s.date.isoformat(),
                "kind": s.kind,
                "candidates": [{"user_id": c.user_id, "name": c.name}
                               for c in self.candidates_by_slot.get(s.id, [])],
            }
            for s in self.slots
        }

    def as_dict(self) -> Dict[str, Any]:
        return {
            "period_id": self.period_id,
            "slots_count": len(self.slots),
            "availability_by_slot": self.availability_by_slot(),
            "users_index": {
                uid: {"name": info.name, "target_level": info.target_level,
                      "avail_count": info.avail_count}
                for uid, info in self.users_index.items()
            },
        }


def build_summary(
    period_id: str,
    slots: Iterable[Slot],
    availability: Iterable[AvailabilityRow],
    preferences: Iterable[PeriodPreference] = (),
    profiles: Optional[Dict[str, Profile]] = None,
) -> AvailabilitySummary:
    """
    Pure aggregation over already-fetched rows.

    Rows for slots outside `slots` are ignored. Candidates are listed by user
    id so identical input always yields identical output.
    """
    ordered = sorted(slots, key=lambda s: (s.start, s.id))
    if not ordered:
        logger.info(f"Period {period_id}: no slots")
        return AvailabilitySummary(period_id=period_id)

    seen: Set[str] = set()
    for s in ordered:
        if s.id in seen:
            raise InvalidInputError(f"Duplicate slot id {s.id} in period {period_id}")
        seen.add(s.id)

    avail_by_slot: Dict[str, Set[str]] = defaultdict(set)
    users_from_availability: Set[str] = set()
    for row in availability:
        if not row.available or row.slot_id not in seen:
            continue
        avail_by_slot[row.slot_id].add(row.physician_id)
        users_from_availability.add(row.physician_id)

    target_by_user: Dict[str, int] = {}
    for pref in preferences:
        level = pref.target_level
        target_by_user[pref.physician_id] = SOFT_TARGET_LEVEL if level is None else level

    all_users = users_from_availability | set(target_by_user)
    profiles = profiles or {}

    def full_name_of(uid: str) -> str:
        profile = profiles.get(uid)
        return profile.full_name if profile else uid

    avail_count: Dict[str, int] = {uid: 0 for uid in all_users}
    candidates_by_slot: Dict[str, List[Candidate]] = {}
    for s in ordered:
        ids = sorted(avail_by_slot.get(s.id, set()))
        for uid in ids:
            avail_count[uid] += 1
        candidates_by_slot[s.id] = [Candidate(user_id=uid, name=full_name_of(uid)) for uid in ids]

    users_index = {
        uid: PhysicianInfo(
            name=full_name_of(uid),
            target_level=target_by_user.get(uid),
            avail_count=avail_count.get(uid, 0),
        )
        for uid in sorted(all_users)
    }

    logger.info(
        f"Period {period_id}: {len(ordered)} slots, {len(users_index)} physicians, "
        f"{sum(avail_count.values())} availabilities"
    )
    return AvailabilitySummary(
        period_id=period_id,
        slots=ordered,
        candidates_by_slot=candidates_by_slot,
        users_index=users_index,
    )


def build_availability_summary(store: Any, period_id: str) -> AvailabilitySummary:
    """
    Read slots, availability, period preferences and profiles from a store
    (SupabaseClient or SnapshotStore) and aggregate them.
    """
    slots = store.fetch_slots(period_id)
    if not slots:
        logger.info(f"Period {period_id}: no slots")
        return AvailabilitySummary(period_id=period_id)

    availability = store.fetch_availability([s.id for s in slots])
    preferences = store.fetch_period_preferences(period_id)

    user_ids = {r.physician_id for r in availability if r.available}
    user_ids |= {p.physician_id for p in preferences}
    profiles = store.fetch_profiles(sorted(user_ids)) if user_ids else {}

    return build_summary(period_id, slots, availability, preferences, profiles)
