"""
Tests for the Supabase row store client (mocked HTTP session)
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from oncall_roster.errors import PersistenceError
from oncall_roster.planner import generate_planning
from oncall_roster.supabase_client import SupabaseClient, _in_filter


def json_response(rows):
    resp = MagicMock()
    resp.json.return_value = rows
    resp.raise_for_status.return_value = None
    return resp


@pytest.fixture
def session():
    s = MagicMock()
    s.headers = {}
    return s


@pytest.fixture
def client(session):
    return SupabaseClient("https://abc.supabase.co/", "service-key", session=session)


class TestSetup:

    def test_headers(self, client, session):
        assert client.base_url == "https://abc.supabase.co/rest/v1"
        assert session.headers["apikey"] == "service-key"
        assert session.headers["Authorization"] == "Bearer service-key"

    def test_real_session(self):
        c = SupabaseClient("https://abc.supabase.co", "k")
        assert isinstance(c.session, requests.Session)
        assert c.session.headers["apikey"] == "k"

    def test_in_filter(self):
        assert _in_filter(["a", "b"]) == 'in.("a","b")'


class TestReads:

    def test_fetch_period(self, client, session):
        session.get.return_value = json_response([{"id": "P", "label": "T4 2025"}])
        assert client.fetch_period("P") == {"id": "P", "label": "T4 2025"}
        url = session.get.call_args.args[0]
        params = session.get.call_args.kwargs["params"]
        assert url == "https://abc.supabase.co/rest/v1/periods"
        assert params == {"select": "id,label", "id": "eq.P"}

    def test_fetch_period_missing(self, client, session):
        session.get.return_value = json_response([])
        assert client.fetch_period("P") is None

    def test_fetch_slots(self, client, session):
        session.get.return_value = json_response([
            {"id": "s1", "kind": "WEEKDAY_20_00", "period_id": "P", "date": "2025-10-06",
             "start_ts": "2025-10-06T18:00:00+00:00", "end_ts": "2025-10-06T22:00:00+00:00"},
        ])
        slots = client.fetch_slots("P")
        assert [s.id for s in slots] == ["s1"]
        params = session.get.call_args.kwargs["params"]
        assert params["order"] == "start_ts.asc"
        assert params["period_id"] == "eq.P"

    def test_pagination(self, client, session):
        session.get.side_effect = [
            json_response([{"user_id": "a", "slot_id": "s1", "available": True}] * 2),
            json_response([{"user_id": "b", "slot_id": "s1", "available": False}]),
        ]
        rows = client.fetch_availability(["s1"], page_size=2)
        assert len(rows) == 3
        offsets = [c.kwargs["params"]["offset"] for c in session.get.call_args_list]
        limits = {c.kwargs["params"]["limit"] for c in session.get.call_args_list}
        assert offsets == ["0", "2"]
        assert limits == {"2"}

    def test_availability_batches_ids(self, client, session):
        session.get.return_value = json_response([])
        client.fetch_availability([f"s{i}" for i in range(5)], id_batch=2)
        filters = [c.kwargs["params"]["slot_id"] for c in session.get.call_args_list]
        assert filters == ['in.("s0","s1")', 'in.("s2","s3")', 'in.("s4")']

    def test_fetch_profiles(self, client, session):
        session.get.return_value = json_response([
            {"user_id": "u1", "first_name": "Alice", "last_name": "Martin", "email": "a@x.org"},
        ])
        profiles = client.fetch_profiles(["u1"])
        assert profiles["u1"].full_name == "Alice Martin"

    def test_read_error(self, client, session):
        resp = json_response([])
        resp.raise_for_status.side_effect = requests.exceptions.HTTPError("500 Server Error")
        session.get.return_value = resp
        with pytest.raises(PersistenceError):
            client.fetch_period_preferences("P")


class TestWrites:

    def test_delete(self, client, session):
        session.delete.return_value = json_response(None)
        client.delete_assignments("P")
        assert session.delete.call_args.kwargs["params"] == {"period_id": "eq.P"}

    def test_insert(self, client, session):
        session.post.return_value = json_response(None)
        rows = [{"period_id": "P", "slot_id": "s1", "user_id": "u1", "score": 1}]
        client.insert_assignments(rows)
        kwargs = session.post.call_args.kwargs
        assert kwargs["json"] == rows
        assert kwargs["headers"] == {"Prefer": "return=minimal"}

    def test_insert_nothing(self, client, session):
        client.insert_assignments([])
        session.post.assert_not_called()

    def test_insert_error(self, client, session):
        session.post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(PersistenceError):
            client.insert_assignments([{"slot_id": "s1"}])


class TestPlanningOverHttp:

    def test_dry_run_issues_no_writes(self, client, session):
        slot_row = {"id": "s1", "kind": "WEEKDAY_20_00", "period_id": "P", "date": "2025-10-06",
                    "start_ts": "2025-10-06 20:00:00", "end_ts": "2025-10-07 00:00:00"}
        tables = {
            "slots": [slot_row],
            "availability": [{"user_id": "u1", "slot_id": "s1", "available": True}],
            "preferences_period": [],
            "preferences_month": [],
            "profiles": [],
        }

        def fake_get(url, params=None, timeout=None):
            return json_response(tables[url.rsplit("/", 1)[1]])

        session.get.side_effect = fake_get
        result = generate_planning(client, "P")
        assert [(a["slot_id"], a["user_id"]) for a in result.assignments] == [("s1", "u1")]
        session.post.assert_not_called()
        session.delete.assert_not_called()
