"""
schedule_config.py — Slot Kinds & Tuning Constants

SLOT KINDS
──────────
  Every duty day produces a fixed set of slots, determined by weekday only
  (a public holiday is laid out like a Sunday):

    Mon–Fri          WEEKDAY_20_00   20:00 → 00:00   night
    Saturday         SAT_12_18       12:00 → 18:00
                     SAT_18_00       18:00 → 00:00   night
    Sunday/holiday   SUN_08_14       08:00 → 14:00
                     SUN_14_20       14:00 → 20:00
                     SUN_20_24       20:00 → 00:00   night

  "Night" slots run into the next calendar day. A physician may not take
  two nights on consecutive dates, and may not take SUN_08_14 the morning
  after any slot that ended at midnight.

TARGET LEVELS
─────────────
  1..4  hard monthly cap of that many shifts
  5     "max": soft cap of SOFT_MAX_PER_MONTH per month, so that willing
        physicians are spread evenly instead of absorbing scarce slots
  None  treated as 5
"""

from typing import Any, Dict, FrozenSet, Tuple

# ---------------------------------------------------------------------------
# Slot kinds
# ---------------------------------------------------------------------------

SLOT_KINDS: Dict[str, Dict[str, Any]] = {
    "WEEKDAY_20_00": {"start": "20:00", "end": "00:00", "night": True,  "day_type": "weekday"},
    "SAT_12_18":     {"start": "12:00", "end": "18:00", "night": False, "day_type": "saturday"},
    "SAT_18_00":     {"start": "18:00", "end": "00:00", "night": True,  "day_type": "saturday"},
    "SUN_08_14":     {"start": "08:00", "end": "14:00", "night": False, "day_type": "sunday"},
    "SUN_14_20":     {"start": "14:00", "end": "20:00", "night": False, "day_type": "sunday"},
    "SUN_20_24":     {"start": "20:00", "end": "00:00", "night": True,  "day_type": "sunday"},
}

NIGHT_KINDS: FrozenSet[str] = frozenset(k for k, v in SLOT_KINDS.items() if v["night"])
ENDS_AT_MIDNIGHT: FrozenSet[str] = frozenset(
    k for k, v in SLOT_KINDS.items() if v["end"] == "00:00"
)

# Morning slot that may not follow a slot ending at midnight the day before
MORNING_AFTER_NIGHT_KIND = "SUN_08_14"


def is_night(kind: str) -> bool:
    return kind in NIGHT_KINDS


def ends_at_midnight(kind: str) -> bool:
    return kind in ENDS_AT_MIDNIGHT


def kind_range_label(kind: str) -> str:
    """'WEEKDAY_20_00' -> '20h00 - 00h00' (unknown kinds are returned as is)."""
    info = SLOT_KINDS.get(kind)
    if info is None:
        return kind
    return f"{info['start'].replace(':', 'h')} - {info['end'].replace(':', 'h')}"


# ---------------------------------------------------------------------------
# Quota tuning
# ---------------------------------------------------------------------------

# Monthly cap used for target level 5 / unset during the tiered pass.
SOFT_MAX_PER_MONTH = 1

SOFT_TARGET_LEVEL = 5
HARD_TARGET_LEVELS: Tuple[int, int] = (1, 4)   # inclusive clamp range

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

# Scarcity buckets by raw candidate count: <=1, ==2, >=3
BUCKET_LIMITS: Tuple[int, int] = (1, 2)

DEFAULT_ASSIGNMENT_SCORE = 1

# ---------------------------------------------------------------------------
# Row store paging
# ---------------------------------------------------------------------------

AVAILABILITY_ID_BATCH = 200
AVAILABILITY_PAGE_SIZE = 1000

# ---------------------------------------------------------------------------
# Email dispatch
# ---------------------------------------------------------------------------

EMAIL_THROTTLE_SECONDS = 0.65
EMAIL_MAX_RETRIES = 3
EMAIL_BACKOFF_BASE_SECONDS = 0.6
EMAIL_BACKOFF_CAP_SECONDS = 4.0

FRENCH_WEEKDAYS = ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"]
FRENCH_MONTHS = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]
