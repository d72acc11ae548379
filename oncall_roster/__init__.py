"""
On-call Roster Assignment Engine

Modules:
- schedule_config: slot kinds, quota and dispatch constants
- models: slots, availability, preferences, assignments, holes
- availability: per-period availability summary
- quotas: monthly / total caps from declared preferences
- engine: tiered greedy assignment, fairness metrics
- planner: dry run / commit / manual save
- supabase_client, store: hosted row store and CSV snapshot store
- notifier: planning emails
"""

from .availability import AvailabilitySummary, build_availability_summary, build_summary
from .engine import assign_roster, calculate_fairness_metrics
from .errors import InvalidInputError, PersistenceError, PlanningError
from .planner import generate_planning, save_assignments
from .quotas import resolve_quotas
from .reporting import PlanningResult
from .store import SnapshotStore
from .supabase_client import SupabaseClient

__all__ = [
    "AvailabilitySummary",
    "build_availability_summary",
    "build_summary",
    "assign_roster",
    "calculate_fairness_metrics",
    "InvalidInputError",
    "PersistenceError",
    "PlanningError",
    "generate_planning",
    "save_assignments",
    "resolve_quotas",
    "PlanningResult",
    "SnapshotStore",
    "SupabaseClient",
]
