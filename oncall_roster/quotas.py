"""
quotas.py — Quota Resolver

Turns declared preferences into a concrete cap per physician per month.

A physician's quota is declared as one of two shapes:

  ExplicitQuota(by_month)   per-month targets entered by the physician;
                            used as-is once any month is positive
  DerivedQuota(basis)       monthly basis derived from target_level:
                            1..4 -> itself, 5/None -> SOFT_MAX_PER_MONTH

Both are resolved into {month: cap} before the solver runs, so the solver
never has to know whether a cap is "soft". A derived quota is forced to 0
for every month in which the physician ticked no slot at all.

Total cap = sum of monthly caps, so a level-5 physician over a three-month
quarter gets a total of 3 with the default soft max.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .models import MonthPreference
from .schedule_config import HARD_TARGET_LEVELS, SOFT_MAX_PER_MONTH, SOFT_TARGET_LEVEL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExplicitQuota:
    by_month: Mapping[str, int]


@dataclass(frozen=True)
class DerivedQuota:
    basis: int


Quota = Union[ExplicitQuota, DerivedQuota]


@dataclass
class QuotaTable:
    by_user_month: Dict[str, Dict[str, int]] = field(default_factory=dict)
    total_cap: Dict[str, int] = field(default_factory=dict)

    def monthly(self, user_id: str, month: str) -> int:
        return self.by_user_month.get(user_id, {}).get(month, 0)

    def total(self, user_id: str) -> int:
        return self.total_cap.get(user_id, 0)


def monthly_basis(target_level: Optional[int], soft_max: int = SOFT_MAX_PER_MONTH) -> int:
    """Map a declared target level to the monthly cap basis."""
    if target_level is None or target_level == SOFT_TARGET_LEVEL:
        return soft_max
    low, high = HARD_TARGET_LEVELS
    return max(low, min(high, int(target_level)))


def declare_quota(
    target_level: Optional[int],
    month_overrides: Optional[Mapping[str, int]] = None,
    soft_max: int = SOFT_MAX_PER_MONTH,
) -> Quota:
    if month_overrides and any((v or 0) > 0 for v in month_overrides.values()):
        return ExplicitQuota(by_month={m: max(0, int(v or 0)) for m, v in month_overrides.items()})
    return DerivedQuota(basis=monthly_basis(target_level, soft_max))


def resolve_quota(
    quota: Quota,
    months: List[str],
    avail_by_month: Optional[Mapping[str, int]] = None,
) -> Dict[str, int]:
    """Concrete {month: cap} for every month of the period."""
    if isinstance(quota, ExplicitQuota):
        return {m: max(0, quota.by_month.get(m, 0)) for m in months}
    avail_by_month = avail_by_month or {}
    return {m: quota.basis if avail_by_month.get(m, 0) > 0 else 0 for m in months}


def group_month_preferences(rows: Iterable[MonthPreference]) -> Dict[str, Dict[str, int]]:
    out: Dict[str, Dict[str, int]] = {}
    for r in rows:
        out.setdefault(r.physician_id, {})[r.month] = max(0, r.target_total)
    return out


def resolve_quotas(
    target_levels: Mapping[str, Optional[int]],
    avail_by_user_month: Mapping[str, Mapping[str, int]],
    months: List[str],
    month_overrides: Optional[Mapping[str, Mapping[str, int]]] = None,
    soft_max: int = SOFT_MAX_PER_MONTH,
) -> QuotaTable:
    """
    Resolve quotas for every physician appearing in `target_levels` or
    `avail_by_user_month`.

    Args:
        target_levels:       {user_id: target_level or None}
        avail_by_user_month: {user_id: {month: raw availability count}}
        months:              months spanned by the period's slots ('YYYY-MM')
        month_overrides:     {user_id: {month: target_total}} explicit targets
        soft_max:            monthly cap used for level 5 / unset

    Returns:
        QuotaTable(by_user_month, total_cap)
    """
    month_overrides = month_overrides or {}
    users = sorted(set(target_levels) | set(avail_by_user_month))
    table = QuotaTable()

    for uid in users:
        quota = declare_quota(target_levels.get(uid), month_overrides.get(uid), soft_max)
        per_month = resolve_quota(quota, months, avail_by_user_month.get(uid))
        table.by_user_month[uid] = per_month
        table.total_cap[uid] = sum(per_month.values())
        logger.debug(f"Quota {uid}: {quota} -> {per_month} (total {table.total_cap[uid]})")

    logger.info(
        f"Resolved quotas for {len(users)} physicians over {len(months)} months "
        f"(soft max {soft_max}/month)"
    )
    return table
