"""
config.py — Configuration Module for the On-call Roster Engine

Loads deployment settings from the environment and the CSV snapshot tables
used for offline runs.

Snapshot directory layout (one CSV per hosted table, same column names):

    periods.csv             id, label
    slots.csv               id, period_id, date, kind, start_ts, end_ts
    availability.csv        user_id, slot_id, available
    preferences_period.csv  user_id, period_id, target_level
    preferences_month.csv   user_id, period_id, month, target_total
    profiles.csv            user_id, first_name, last_name, email
    assignments.csv         period_id, slot_id, user_id, score

Only slots.csv is required; every other table may be absent.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .schedule_config import SOFT_MAX_PER_MONTH

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR   = PROJECT_ROOT / "data"
DEFAULT_OUTPUT_DIR = PROJECT_ROOT / "outputs"

DEFAULT_FROM_EMAIL = "MMG <no-reply@example.com>"

SNAPSHOT_TABLES = (
    "periods",
    "slots",
    "availability",
    "preferences_period",
    "preferences_month",
    "profiles",
    "assignments",
)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    resend_api_key: Optional[str] = None
    from_email: str = DEFAULT_FROM_EMAIL
    soft_max_per_month: int = SOFT_MAX_PER_MONTH


def _env(env: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return None


def get_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    SUPABASE_URL (or NEXT_PUBLIC_SUPABASE_URL), SUPABASE_SERVICE_ROLE_KEY,
    RESEND_API_KEY, PLANNING_FROM_EMAIL (or EMAIL_FROM), SOFT_MAX_PER_MONTH.
    """
    env = os.environ if env is None else env

    raw_soft_max = _env(env, "SOFT_MAX_PER_MONTH")
    soft_max = SOFT_MAX_PER_MONTH
    if raw_soft_max is not None:
        try:
            soft_max = int(raw_soft_max)
        except ValueError:
            raise ValueError(f"SOFT_MAX_PER_MONTH must be an integer, got {raw_soft_max!r}") from None
        if soft_max < 0:
            raise ValueError(f"SOFT_MAX_PER_MONTH must be >= 0, got {soft_max}")

    return Settings(
        supabase_url=_env(env, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL"),
        supabase_service_key=_env(env, "SUPABASE_SERVICE_ROLE_KEY"),
        resend_api_key=_env(env, "RESEND_API_KEY"),
        from_email=_env(env, "PLANNING_FROM_EMAIL", "EMAIL_FROM") or DEFAULT_FROM_EMAIL,
        soft_max_per_month=soft_max,
    )


def require_supabase(settings: Settings) -> None:
    missing = []
    if not settings.supabase_url:
        missing.append("SUPABASE_URL")
    if not settings.supabase_service_key:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise ValueError(f"Missing environment variables: {', '.join(missing)}")


# ---------------------------------------------------------------------------
# CSV snapshot loaders
# ---------------------------------------------------------------------------

def table_path(data_dir: Path, table: str) -> Path:
    return Path(data_dir) / f"{table}.csv"


def load_table(
    data_dir: Path,
    table: str,
    required: bool = False,
) -> List[Dict[str, Any]]:
    """
    Load one snapshot table as a list of row dicts.

    Every cell is read as text; empty cells become None so the model
    `from_row` constructors see the same shapes as the hosted API returns.
    """
    import pandas as pd

    path = table_path(data_dir, table)
    if not path.exists():
        if required:
            raise FileNotFoundError(f"Snapshot table not found: {path}")
        logger.warning(f"{path.name} not found in {data_dir}. Treating as empty.")
        return []

    df = pd.read_csv(path, dtype=str)
    df = df.astype(object).where(pd.notna(df), None)

    rows: List[Dict[str, Any]] = []
    for record in df.to_dict(orient="records"):
        rows.append({k: (v.strip() if isinstance(v, str) else v) for k, v in record.items()})

    logger.info(f"Loaded {len(rows)} rows from {path}")
    return rows


def write_table(
    data_dir: Path,
    table: str,
    rows: List[Dict[str, Any]],
    columns: List[str],
) -> Path:
    """
    Replace a snapshot table. The new content is written next to the target
    and renamed over it, so readers never see a half-written file.
    """
    import pandas as pd

    path = table_path(data_dir, table)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")

    df = pd.DataFrame(rows, columns=columns)
    df.to_csv(tmp, index=False)
    os.replace(tmp, path)

    logger.info(f"Wrote {len(rows)} rows to {path}")
    return path
