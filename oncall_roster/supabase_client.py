"""
Supabase Row Store Client
Handles reads and writes against the hosted PostgREST API

Documentation: https://postgrest.org/en/stable/references/api.html
"""

import requests
import logging
from typing import Any, Dict, Iterable, List, Optional

from .errors import PersistenceError
from .models import AvailabilityRow, MonthPreference, PeriodPreference, Profile, Slot
from .schedule_config import AVAILABILITY_ID_BATCH, AVAILABILITY_PAGE_SIZE

logger = logging.getLogger(__name__)


def _in_filter(values: Iterable[str]) -> str:
    quoted = ','.join(f'"{v}"' for v in values)
    return f'in.({quoted})'


class SupabaseClient:
    """
    Client for the slots / availability / preferences / assignments tables
    """

    def __init__(
        self,
        url: str,
        service_key: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize Supabase client

        Args:
            url: Project URL (https://<ref>.supabase.co)
            service_key: Service-role key (bypasses row level security)
            timeout: Per-request timeout in seconds
            session: Pre-built session (tests inject a mock)
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': service_key,
            'Authorization': f'Bearer {service_key}',
            'Content-Type': 'application/json'
        })

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    def _select(
        self,
        table: str,
        params: Dict[str, str],
        page_size: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        GET rows from a table, following limit/offset pages when page_size is set

        Args:
            table: Table name
            params: PostgREST query params (select, filters, order)
            page_size: Rows per page; None reads a single response

        Returns:
            List of row dicts
        """
        endpoint = f"{self.base_url}/{table}"
        rows: List[Dict[str, Any]] = []
        offset = 0

        try:
            while True:
                query = dict(params)
                if page_size:
                    query['limit'] = str(page_size)
                    query['offset'] = str(offset)
                response = self.session.get(endpoint, params=query, timeout=self.timeout)
                response.raise_for_status()

                data = response.json() or []
                rows.extend(data)
                if not page_size or len(data) < page_size:
                    break
                offset += page_size

        except requests.exceptions.RequestException as e:
            logger.error(f"Error reading {table}: {e}")
            raise PersistenceError(f"Read from {table} failed: {e}") from e

        return rows

    def _delete(self, table: str, params: Dict[str, str]) -> None:
        endpoint = f"{self.base_url}/{table}"
        try:
            response = self.session.delete(endpoint, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error deleting from {table}: {e}")
            raise PersistenceError(f"Delete from {table} failed: {e}") from e

    def _insert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        endpoint = f"{self.base_url}/{table}"
        try:
            response = self.session.post(
                endpoint,
                json=rows,
                headers={'Prefer': 'return=minimal'},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Error inserting into {table}: {e}")
            raise PersistenceError(f"Insert into {table} failed: {e}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_period(self, period_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a period row

        Returns:
            {id, label} or None when the period does not exist
        """
        rows = self._select('periods', {'select': 'id,label', 'id': f'eq.{period_id}'})
        return rows[0] if rows else None

    def fetch_slots(self, period_id: str) -> List[Slot]:
        """
        Retrieve the slots of a period ordered by start instant

        Args:
            period_id: Period id

        Returns:
            List of Slot
        """
        logger.info(f"Fetching slots for period {period_id}")
        rows = self._select(
            'slots',
            {
                'select': 'id,kind,period_id,date,start_ts,end_ts',
                'period_id': f'eq.{period_id}',
                'order': 'start_ts.asc',
            },
            page_size=AVAILABILITY_PAGE_SIZE,
        )
        logger.info(f"Retrieved {len(rows)} slots")
        return [Slot.from_row(r) for r in rows]

    def fetch_availability(
        self,
        slot_ids: List[str],
        id_batch: int = AVAILABILITY_ID_BATCH,
        page_size: int = AVAILABILITY_PAGE_SIZE
    ) -> List[AvailabilityRow]:
        """
        Retrieve availability rows for the given slots

        Slot ids are sent in batches of `id_batch` (URL length) and each batch
        is read in pages of `page_size` rows (server row cap).
        """
        out: List[AvailabilityRow] = []
        for i in range(0, len(slot_ids), id_batch):
            chunk = slot_ids[i:i + id_batch]
            rows = self._select(
                'availability',
                {'select': 'user_id,slot_id,available', 'slot_id': _in_filter(chunk)},
                page_size=page_size,
            )
            out.extend(AvailabilityRow.from_row(r) for r in rows)
        logger.info(f"Retrieved {len(out)} availability rows for {len(slot_ids)} slots")
        return out

    def fetch_period_preferences(self, period_id: str) -> List[PeriodPreference]:
        rows = self._select(
            'preferences_period',
            {'select': 'user_id,period_id,target_level', 'period_id': f'eq.{period_id}'},
        )
        return [PeriodPreference.from_row(r) for r in rows]

    def fetch_month_preferences(self, period_id: str) -> List[MonthPreference]:
        rows = self._select(
            'preferences_month',
            {'select': 'user_id,period_id,month,target_total', 'period_id': f'eq.{period_id}'},
        )
        return [MonthPreference.from_row(r) for r in rows]

    def fetch_profiles(self, user_ids: List[str]) -> Dict[str, Profile]:
        """
        Retrieve profiles for the given users

        Returns:
            {user_id: Profile}
        """
        out: Dict[str, Profile] = {}
        for i in range(0, len(user_ids), AVAILABILITY_ID_BATCH):
            chunk = user_ids[i:i + AVAILABILITY_ID_BATCH]
            rows = self._select(
                'profiles',
                {'select': 'user_id,first_name,last_name,email', 'user_id': _in_filter(chunk)},
            )
            for r in rows:
                profile = Profile.from_row(r)
                out[profile.user_id] = profile
        return out

    def fetch_assignments(self, period_id: str) -> List[Dict[str, Any]]:
        """Persisted assignment rows {period_id, slot_id, user_id, score}"""
        return self._select(
            'assignments',
            {'select': 'period_id,slot_id,user_id,score', 'period_id': f'eq.{period_id}'},
            page_size=AVAILABILITY_PAGE_SIZE,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def delete_assignments(self, period_id: str) -> None:
        logger.info(f"Deleting assignments of period {period_id}")
        self._delete('assignments', {'period_id': f'eq.{period_id}'})

    def insert_assignments(self, rows: List[Dict[str, Any]]) -> None:
        """
        Insert assignment rows in one request

        Args:
            rows: [{period_id, slot_id, user_id, score}]
        """
        if not rows:
            return
        logger.info(f"Inserting {len(rows)} assignments")
        self._insert('assignments', rows)
