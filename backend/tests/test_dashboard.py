"""
Test the dashboard view-model: state machine, role gating, search, reload
consistency and session events.
"""

import asyncio
from datetime import date, timedelta

import pytest

from conftest import TODAY, make_dashboard
from vaxtracker.auth import AuthSession, SIGNED_IN, SIGNED_OUT
from vaxtracker.exceptions import TransientStoreError
from vaxtracker.services.dashboard import DashboardState
from vaxtracker.services.record_store import RecordStore

pytestmark = pytest.mark.anyio

COVID = {"vaccine_name": "COVID-19", "dose_number": 1, "date_given": "2024-01-01", "next_due": "2024-07-01"}
FLU = {"vaccine_name": "Influenza", "dose_number": 1, "date_given": "2023-10-01", "next_due": ""}


async def _ready_admin_dashboard(db, admin):
    dashboard = make_dashboard(db, admin)
    result = await dashboard.init()
    assert result.ok
    return dashboard


async def test_init_without_session_enters_error_state(db):
    dashboard = make_dashboard(db)

    result = await dashboard.init()

    assert not result.ok
    assert result.error_kind == "NotAuthenticated"
    assert dashboard.state is DashboardState.ERROR
    assert dashboard.role == "user"
    assert dashboard.records == []
    assert 'data-action="retry"' in dashboard.surfaces.records
    assert dashboard.notifier.active[0].type == "error"


async def test_init_loads_role_and_data(db, admin):
    await RecordStore(db, admin).insert_record(COVID, TODAY)

    dashboard = await _ready_admin_dashboard(db, admin)

    assert dashboard.state is DashboardState.READY
    assert dashboard.role == "admin"
    assert len(dashboard.records) == 1
    assert len(dashboard.reminders) == 1
    assert dashboard.stats.total == 1
    assert "COVID-19" in dashboard.surfaces.records
    assert 'id="total-vaccines">1<' in dashboard.surfaces.stats


async def test_init_provisions_missing_profile(db):
    from vaxtracker.auth import UserPrincipal

    newcomer = UserPrincipal(id="fresh-id", email="fresh@example.com")
    dashboard = make_dashboard(db, newcomer)

    result = await dashboard.init()

    assert result.ok
    assert dashboard.role == "user"


async def test_role_lookup_failure_degrades_to_user(db, admin, monkeypatch):
    async def broken_role(self):
        raise TransientStoreError("Could not load your profile")

    monkeypatch.setattr(RecordStore, "get_role", broken_role)
    dashboard = make_dashboard(db, admin)

    result = await dashboard.init()

    assert result.ok
    assert dashboard.role == "user"
    assert dashboard.permissions.can_add is False


async def test_data_failure_at_startup_offers_retry(db, user, monkeypatch):
    original = RecordStore.list_records
    calls = {"n": 0}

    async def flaky_list(self, owner_id=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise TransientStoreError("Could not load vaccination records, please try again")
        return await original(self, owner_id)

    monkeypatch.setattr(RecordStore, "list_records", flaky_list)
    dashboard = make_dashboard(db, user)

    first = await dashboard.init()
    assert not first.ok
    assert dashboard.state is DashboardState.ERROR

    second = await dashboard.retry()
    assert second.ok
    assert dashboard.state is DashboardState.READY


async def test_add_record_round_trip(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)

    result = await dashboard.add_record(COVID)

    assert result.ok
    assert len(dashboard.records) == 1
    record = dashboard.records[0]
    assert (record.vaccine_name, record.dose_number) == ("COVID-19", 1)
    assert record.date_given == date(2024, 1, 1)
    assert record.next_due == date(2024, 7, 1)
    assert len(dashboard.reminders) == 1
    assert dashboard.reminders[0].due_date == date(2024, 7, 1)
    assert dashboard.reminders[0].sent is False
    assert dashboard.stats.total == 1
    assert dashboard.notifier.active[-1].type == "success"
    assert dashboard.state is DashboardState.READY


async def test_add_record_validation_error_is_specific(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)

    result = await dashboard.add_record({**COVID, "dose_number": 0})

    assert not result.ok
    assert result.error_kind == "ValidationError"
    assert "at least 1" in result.message
    assert dashboard.notifier.active[-1].message == result.message
    assert dashboard.records == []


async def test_update_clearing_next_due_removes_reminder(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)
    await dashboard.add_record(COVID)
    record_id = dashboard.records[0].id

    result = await dashboard.update_record(record_id, {**COVID, "next_due": ""})

    assert result.ok
    assert dashboard.reminders == []
    assert dashboard.records[0].next_due is None
    assert dashboard.stats.up_to_date == 1


async def test_edit_record_populates_form(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)
    await dashboard.add_record({**COVID, "vaccine_name": "Other", "custom_vaccine_name": "Yellow Fever"})
    record_id = dashboard.records[0].id

    result = await dashboard.edit_record(record_id)

    assert result.ok
    form = result.data
    assert form.vaccine_name == "Other"
    assert form.custom_vaccine_name == "Yellow Fever"
    assert form.dose_number == 1
    assert dashboard.editing_id == record_id


async def test_delete_needs_confirmation(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)
    await dashboard.add_record(COVID)
    record_id = dashboard.records[0].id

    asked = await dashboard.delete_record(record_id)
    assert asked.ok
    assert dashboard.pending_delete_id == record_id
    assert len(dashboard.records) == 1

    dashboard.cancel_delete()
    assert dashboard.pending_delete_id is None

    await dashboard.delete_record(record_id)
    confirmed = await dashboard.confirm_delete()

    assert confirmed.ok
    assert dashboard.records == []
    assert dashboard.reminders == []
    assert dashboard.pending_delete_id is None


async def test_non_admin_mutations_are_denied(db, admin, user):
    await RecordStore(db, admin).insert_record({**COVID, "user_id": user.id}, TODAY)
    dashboard = make_dashboard(db, user)
    await dashboard.init()
    record_id = dashboard.records[0].id
    before = ([r.id for r in dashboard.records], [r.id for r in dashboard.reminders])

    results = [
        await dashboard.add_record(FLU),
        await dashboard.edit_record(record_id),
        await dashboard.update_record(record_id, {**COVID, "dose_number": 2}),
        await dashboard.delete_record(record_id),
        await dashboard.confirm_delete(),
    ]

    assert all(not r.ok for r in results)
    assert {r.error_kind for r in results} == {"AccessDenied"}
    assert ([r.id for r in dashboard.records], [r.id for r in dashboard.reminders]) == before
    assert len(await RecordStore(db, admin).list_records()) == 1
    assert (await RecordStore(db, admin).get_record(record_id)).dose_number == 1
    assert all(t.type == "error" for t in dashboard.notifier.active)


async def test_denied_mutation_makes_no_store_call(db, user, monkeypatch):
    dashboard = make_dashboard(db, user)
    await dashboard.init()

    async def fail(*args, **kwargs):
        raise AssertionError("store must not be called")

    monkeypatch.setattr(RecordStore, "insert_record", fail)
    result = await dashboard.add_record(COVID)

    assert result.error_kind == "AccessDenied"


async def test_mutation_before_ready_is_rejected(db, admin):
    dashboard = make_dashboard(db, admin)

    result = await dashboard.add_record(COVID)

    assert result.error_kind == "DashboardNotReady"


async def test_user_only_sees_own_records(db, admin, user, other_user):
    store = RecordStore(db, admin)
    await store.insert_record({**COVID, "user_id": user.id}, TODAY)
    await store.insert_record({**FLU, "user_id": other_user.id}, TODAY)

    dashboard = make_dashboard(db, user)
    await dashboard.init()

    assert [r.vaccine_name for r in dashboard.records] == ["COVID-19"]
    assert 'data-action="edit-record"' not in dashboard.surfaces.records


async def test_search_filters_in_memory(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)
    await dashboard.add_record(COVID)
    await dashboard.add_record(FLU)

    assert [r.vaccine_name for r in dashboard.search("covid")] == ["COVID-19"]
    assert "Influenza" not in dashboard.surfaces.records
    assert dashboard.stats.total == 2

    assert len(dashboard.search("")) == 2
    assert "Influenza" in dashboard.surfaces.records


async def test_admin_search_matches_owner(db, admin, user):
    store = RecordStore(db, admin)
    await store.insert_record({**COVID, "user_id": user.id}, TODAY)
    await store.insert_record(FLU, TODAY)
    dashboard = await _ready_admin_dashboard(db, admin)

    assert [r.vaccine_name for r in dashboard.search("jane")] == ["COVID-19"]
    assert [r.vaccine_name for r in dashboard.search("admin@example")] == ["Influenza"]


async def test_user_search_ignores_owner(db, admin, user):
    await RecordStore(db, admin).insert_record({**COVID, "user_id": user.id}, TODAY)
    dashboard = make_dashboard(db, user)
    await dashboard.init()

    assert dashboard.search("jane") == []
    assert "No records match" in dashboard.surfaces.records


async def test_search_input_is_debounced(db, admin, monkeypatch):
    dashboard = await _ready_admin_dashboard(db, admin)
    await dashboard.add_record(COVID)
    await dashboard.add_record(FLU)
    dashboard._search_debouncer._wait = 0.05

    dashboard.search_input("c")
    dashboard.search_input("co")
    dashboard.search_input("covid")
    assert dashboard.search_term == ""

    await asyncio.sleep(0.1)

    assert dashboard.search_term == "covid"
    assert [r.vaccine_name for r in dashboard.filtered_records] == ["COVID-19"]


async def test_stats_use_full_sets(db, admin):
    yesterday = TODAY - timedelta(days=1)
    store = RecordStore(db, admin)
    await store.insert_record({**FLU, "next_due": None}, TODAY)
    await store.insert_record({**COVID, "next_due": yesterday.isoformat()}, TODAY)
    await store.insert_record({**COVID, "dose_number": 2, "next_due": (TODAY + timedelta(days=10)).isoformat()}, TODAY)

    dashboard = await _ready_admin_dashboard(db, admin)
    dashboard.search("influenza")

    assert dashboard.stats.total == 3
    assert dashboard.stats.up_to_date == 2
    assert dashboard.stats.overdue == 1
    assert dashboard.stats.upcoming == 1


async def test_sign_out_clears_state(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)
    await dashboard.add_record(COVID)
    dashboard.search("covid")

    await dashboard.session.sign_out()

    assert dashboard.state is DashboardState.UNINITIALIZED
    assert dashboard.records == []
    assert dashboard.reminders == []
    assert dashboard.filtered_records == []
    assert dashboard.search_term == ""
    assert dashboard.role is None
    assert dashboard.stats.total == 0


async def test_sign_in_reinitializes(db, admin):
    dashboard = make_dashboard(db)
    await dashboard.init()
    assert dashboard.state is DashboardState.ERROR

    await dashboard.session.sign_in(AuthSession(access_token="t", user=admin))

    assert dashboard.state is DashboardState.READY
    assert dashboard.role == "admin"


async def test_session_events_are_dispatched(db, admin):
    dashboard = make_dashboard(db, admin)
    await dashboard.on_session_event(SIGNED_IN)
    assert dashboard.state is DashboardState.READY
    await dashboard.on_session_event(SIGNED_OUT)
    assert dashboard.state is DashboardState.UNINITIALIZED


async def test_busy_always_reenables_control(db, admin):
    dashboard = await _ready_admin_dashboard(db, admin)

    with pytest.raises(RuntimeError):
        async with dashboard.busy("add-record"):
            assert "add-record" in dashboard.disabled_controls
            raise RuntimeError("request failed")

    assert dashboard.disabled_controls == set()


async def test_snapshot_shape(db, admin, user):
    await RecordStore(db, admin).insert_record({**COVID, "user_id": user.id}, TODAY)
    dashboard = await _ready_admin_dashboard(db, admin)

    snapshot = dashboard.snapshot()

    assert snapshot.state == "ready"
    assert snapshot.permissions.can_delete is True
    assert snapshot.records[0].status == "Due Soon"
    assert snapshot.records[0].owner.email == "jane@example.com"
    assert snapshot.reminders[0].overdue is False
    assert snapshot.stats.upcoming == 1


async def test_admin_reminder_surface_shows_owner(db, admin, user):
    await RecordStore(db, admin).insert_record({**COVID, "user_id": user.id}, TODAY)

    dashboard = await _ready_admin_dashboard(db, admin)

    assert "Jane Doe (jane@example.com)" in dashboard.surfaces.reminders
