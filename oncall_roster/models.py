"""
models.py — Data model for on-call roster planning

Row shapes follow the hosted tables (slots, availability, preferences_period,
preferences_month, profiles, assignments). `from_row` accepts the raw dicts
returned by the row store or the CSV snapshot loaders.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from .errors import InvalidInputError
from .schedule_config import DEFAULT_ASSIGNMENT_SCORE, SLOT_KINDS


def month_of(d: date) -> str:
    """date -> 'YYYY-MM'"""
    return f"{d.year:04d}-{d.month:02d}"


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def parse_timestamp(value: Any) -> datetime:
    """
    Parse 'YYYY-MM-DD HH:MM:SS', ISO-8601 with offset, or a trailing 'Z'.
    Aware values are normalised to naive UTC so slots from one source always
    compare cleanly.
    """
    if isinstance(value, datetime):
        ts = value
    else:
        raw = str(value).strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        ts = datetime.fromisoformat(raw)
    if ts.tzinfo is not None:
        ts = ts.astimezone(timezone.utc).replace(tzinfo=None)
    return ts


def _first(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


@dataclass(frozen=True)
class Slot:
    id: str
    period_id: Optional[str]
    date: date
    kind: str
    start: datetime
    end: Optional[datetime] = None

    @property
    def month(self) -> str:
        return month_of(self.date)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Slot":
        slot_id = row.get("id")
        if slot_id is None or str(slot_id).strip() == "":
            raise InvalidInputError(f"Slot row without id: {row}")
        kind = str(row.get("kind") or "").strip()
        if kind not in SLOT_KINDS:
            raise InvalidInputError(f"Slot {slot_id}: unknown kind {kind!r}")
        raw_date = row.get("date")
        raw_start = _first(row, "start_ts", "start")
        if raw_date is None or raw_start is None:
            raise InvalidInputError(f"Slot {slot_id}: date and start are required")
        raw_end = _first(row, "end_ts", "end")
        try:
            return cls(
                id=str(slot_id),
                period_id=None if row.get("period_id") is None else str(row["period_id"]),
                date=parse_date(raw_date),
                kind=kind,
                start=parse_timestamp(raw_start),
                end=parse_timestamp(raw_end) if raw_end is not None else None,
            )
        except ValueError as e:
            raise InvalidInputError(f"Slot {slot_id}: {e}") from e


@dataclass(frozen=True)
class AvailabilityRow:
    physician_id: str
    slot_id: str
    available: bool

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "AvailabilityRow":
        return cls(
            physician_id=str(_first(row, "user_id", "physician_id")),
            slot_id=str(row["slot_id"]),
            available=_as_bool(row.get("available")),
        )


@dataclass(frozen=True)
class PeriodPreference:
    physician_id: str
    period_id: Optional[str]
    target_level: Optional[int]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PeriodPreference":
        level = row.get("target_level")
        return cls(
            physician_id=str(_first(row, "user_id", "physician_id")),
            period_id=None if row.get("period_id") is None else str(row["period_id"]),
            target_level=None if level is None else int(level),
        )


@dataclass(frozen=True)
class MonthPreference:
    physician_id: str
    period_id: Optional[str]
    month: str
    target_total: int

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MonthPreference":
        return cls(
            physician_id=str(_first(row, "user_id", "physician_id")),
            period_id=None if row.get("period_id") is None else str(row["period_id"]),
            month=str(row["month"])[:7],
            target_total=max(0, int(row.get("target_total") or 0)),
        )


@dataclass(frozen=True)
class Profile:
    user_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def full_name(self) -> str:
        full = f"{(self.first_name or '').strip()} {(self.last_name or '').strip()}".strip()
        return full or self.user_id

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            user_id=str(_first(row, "user_id", "id")),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            email=row.get("email"),
        )


@dataclass(frozen=True)
class Candidate:
    user_id: str
    name: str


@dataclass
class PhysicianInfo:
    name: str
    target_level: Optional[int]
    avail_count: int = 0


@dataclass(frozen=True)
class Assignment:
    slot_id: str
    physician_id: str
    score: float = DEFAULT_ASSIGNMENT_SCORE

    def to_row(self, period_id: str) -> Dict[str, Any]:
        return {
            "period_id": period_id,
            "slot_id": self.slot_id,
            "user_id": self.physician_id,
            "score": self.score,
        }


@dataclass(frozen=True)
class Hole:
    slot_id: str
    date: date
    kind: str
    candidate_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "slot_id": self.slot_id,
            "date": self.date.isoformat(),
            "kind": self.kind,
            "candidate_count": self.candidate_count,
        }


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "y", "t")
