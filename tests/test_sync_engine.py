"""
Tests for SyncEngine reads: rolling reload, cached day views, access flow.
"""

import logging
from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from cal_sync.core.exceptions import AuthorizationError, StoreFailure
from cal_sync.core.models import AuthorizationStatus, CalendarItem, ClientConfig, EntityKind

from tests.conftest import TZ_NAME, local
from tests.fake_store import FakeStore


def _event(title, start, end, calendar_id="work", **kwargs):
    return CalendarItem(title, start, end, calendar_id, **kwargs)


@pytest.mark.unit
class TestReload:
    """Rolling window reload and its throttle."""

    def test_queries_rolling_window(self, engine, store):
        assert engine.reload() is True
        start, end, calendar_ids = store.query_calls[0]
        assert start == local(2024, 5, 12, 10)
        assert end == local(2024, 8, 12, 10)
        assert sorted(calendar_ids) == ["holidays", "home", "work"]
        assert engine.loaded_range == (start, end)

    def test_first_run_selects_every_calendar(self, engine, config, saved_configs):
        engine.reload()
        assert config.selection_initialized is True
        assert sorted(config.selected_calendar_ids) == ["holidays", "home", "work"]
        assert saved_configs[-1]["selection_initialized"] is True

    def test_working_set_is_sorted(self, engine, store):
        late = store.add_event(_event("Late", local(2024, 6, 12, 15), local(2024, 6, 12, 16)))
        early = store.add_event(_event("Early", local(2024, 6, 12, 8), local(2024, 6, 12, 9)))
        engine.reload()
        assert [item.identifier for item in engine.items] == [early.identifier, late.identifier]

    def test_throttled_within_half_second(self, engine, store, clock):
        assert engine.reload() is True
        clock.advance(seconds=0.3)
        assert engine.reload() is False
        assert len(store.query_calls) == 1
        clock.advance(seconds=0.2)
        assert engine.reload() is True
        assert len(store.query_calls) == 2

    def test_force_bypasses_throttle(self, engine, store):
        engine.reload()
        assert engine.reload(force=True) is True
        assert len(store.query_calls) == 2

    def test_requires_access(self, engine, store):
        store.status[EntityKind.EVENT] = AuthorizationStatus.DENIED
        with pytest.raises(AuthorizationError):
            engine.reload()
        assert store.query_calls == []

    def test_store_errors_are_wrapped(self, engine, store):
        error = RuntimeError("The operation couldn't be completed")
        store.fail_queries = error
        with pytest.raises(StoreFailure) as exc_info:
            engine.reload()
        assert exc_info.value.original is error
        assert str(exc_info.value) == "The operation couldn't be completed"

    def test_notifies_listeners(self, engine):
        reasons = []
        engine.subscribe(reasons.append)
        engine.reload()
        assert "events" in reasons

    def test_failing_listener_does_not_break_reload(self, engine, caplog):
        engine.subscribe(Mock(side_effect=RuntimeError("listener bug")))
        with caplog.at_level(logging.ERROR):
            assert engine.reload() is True
        assert "Change listener failed" in caplog.text

    def test_unsubscribe(self, engine):
        reasons = []
        unsubscribe = engine.subscribe(reasons.append)
        unsubscribe()
        engine.reload()
        assert reasons == []


@pytest.mark.unit
class TestEventsOn:
    """Day views served from month buckets."""

    def test_multi_day_item_appears_on_each_day(self, engine, store):
        store.add_event(_event("Offsite", local(2024, 6, 12, 9), local(2024, 6, 14, 17)))
        for day in (12, 13, 14):
            assert [e.title for e in engine.events_on(date(2024, 6, day))] == ["Offsite"]
        assert engine.events_on(date(2024, 6, 15)) == []

    def test_item_ending_at_midnight_is_not_on_next_day(self, engine, store):
        store.add_event(_event("Late shift", local(2024, 6, 12, 20), local(2024, 6, 13)))
        assert [e.title for e in engine.events_on(date(2024, 6, 12))] == ["Late shift"]
        assert engine.events_on(date(2024, 6, 13)) == []

    def test_all_day_item(self, engine, store):
        store.add_event(_event("Holiday", local(2024, 7, 4), local(2024, 7, 5), "holidays", is_all_day=True))
        assert [e.title for e in engine.events_on(date(2024, 7, 4))] == ["Holiday"]
        assert engine.events_on(date(2024, 7, 3)) == []

    def test_ordered_by_start_then_identifier(self, engine, store):
        store.add_event(_event("B", local(2024, 6, 12, 9), local(2024, 6, 12, 10), identifier="id-b"))
        store.add_event(_event("A", local(2024, 6, 12, 9), local(2024, 6, 12, 10), identifier="id-a"))
        store.add_event(_event("C", local(2024, 6, 12, 8), local(2024, 6, 12, 9), identifier="id-c"))
        assert [e.identifier for e in engine.events_on(date(2024, 6, 12))] == ["id-c", "id-a", "id-b"]

    def test_cache_hit_within_ttl(self, engine, store, clock):
        engine.events_on(date(2024, 6, 12))
        engine.events_on(date(2024, 6, 20))
        assert len(store.query_calls) == 1
        start, end, _ = store.query_calls[0]
        assert (start, end) == (local(2024, 6, 1), local(2024, 7, 1))

    def test_requery_after_ttl(self, engine, store, clock):
        engine.events_on(date(2024, 6, 12))
        clock.advance(seconds=2)
        engine.events_on(date(2024, 6, 12))
        assert len(store.query_calls) == 2

    def test_month_behind_retention_is_cached_within_ttl(self, engine, store):
        store.add_event(_event("Kickoff", local(2024, 1, 10, 9), local(2024, 1, 10, 10)))
        assert [e.title for e in engine.events_on(date(2024, 1, 10))] == ["Kickoff"]
        assert [e.title for e in engine.events_on(date(2024, 1, 10))] == ["Kickoff"]
        assert len(store.query_calls) == 1
        assert engine.cache.months == [local(2024, 1, 1)]

    def test_agenda_in_old_month_queries_once(self, engine, store):
        engine.agenda(date(2024, 1, 8), 7)
        assert len(store.query_calls) == 1

    def test_cached_copy_may_be_stale(self, engine, store, clock):
        created = store.add_event(_event("Sync", local(2024, 6, 12, 9), local(2024, 6, 12, 10)))
        engine.events_on(date(2024, 6, 12))
        store.edit_elsewhere(created.identifier, title="Sync (moved)")
        assert engine.events_on(date(2024, 6, 12))[0].title == "Sync"
        clock.advance(seconds=2)
        assert engine.events_on(date(2024, 6, 12))[0].title == "Sync (moved)"

    def test_dst_day(self, engine, store):
        store.add_event(_event("Early", local(2024, 3, 10, 1), local(2024, 3, 10, 1, 30)))
        store.add_event(_event("After jump", local(2024, 3, 10, 23), local(2024, 3, 10, 23, 30)))
        store.add_event(_event("Next day", local(2024, 3, 11, 0), local(2024, 3, 11, 0, 30)))
        assert [e.title for e in engine.events_on(date(2024, 3, 10))] == ["Early", "After jump"]

    def test_empty_selection_means_nothing_shown(self, store, make_engine):
        config = ClientConfig(time_zone=TZ_NAME, selection_initialized=True, selected_calendar_ids=[])
        engine = make_engine(config=config)
        store.add_event(_event("Hidden", local(2024, 6, 12, 9), local(2024, 6, 12, 10)))
        assert engine.events_on(date(2024, 6, 12)) == []
        assert store.query_calls == []

    def test_existing_selection_is_used(self, store, make_engine):
        config = ClientConfig(time_zone=TZ_NAME, selection_initialized=True, selected_calendar_ids=["home"])
        engine = make_engine(config=config)
        store.add_event(_event("Work thing", local(2024, 6, 12, 9), local(2024, 6, 12, 10), "work"))
        store.add_event(_event("Home thing", local(2024, 6, 12, 9), local(2024, 6, 12, 10), "home"))
        assert [e.title for e in engine.events_on(date(2024, 6, 12))] == ["Home thing"]
        assert store.query_calls[0][2] == ["home"]


@pytest.mark.unit
class TestRangesAndSearch:
    """Week, agenda, arbitrary ranges and search."""

    def test_events_between_spans_months_without_duplicates(self, engine, store):
        store.add_event(_event("Conference", local(2024, 5, 31, 9), local(2024, 6, 2, 17)))
        store.add_event(_event("Dinner", local(2024, 6, 1, 19), local(2024, 6, 1, 21)))
        items = engine.events_between(local(2024, 5, 30), local(2024, 6, 3))
        assert [e.title for e in items] == ["Conference", "Dinner"]
        assert len(store.query_calls) == 2

    def test_events_in_week(self, engine, store):
        store.add_event(_event("Sunday brunch", local(2024, 6, 9, 11), local(2024, 6, 9, 12), "home"))
        store.add_event(_event("Next Sunday", local(2024, 6, 16, 11), local(2024, 6, 16, 12), "home"))
        assert [e.title for e in engine.events_in_week(date(2024, 6, 12))] == ["Sunday brunch"]

    def test_events_between_keeps_identical_detached_items(self, engine, store):
        for _ in range(2):
            store.add_event(_event("Standup", local(2024, 6, 12, 9), local(2024, 6, 12, 9, 15)), detached=True)
        week = engine.events_in_week(date(2024, 6, 12))
        assert [e.title for e in week] == ["Standup", "Standup"]
        assert len(engine.events_on(date(2024, 6, 12))) == 2

    def test_detached_item_spanning_months_is_listed_once(self, engine, store):
        store.add_event(_event("Offsite", local(2024, 5, 31, 9), local(2024, 6, 1, 17)), detached=True)
        items = engine.events_between(local(2024, 5, 30), local(2024, 6, 3))
        assert [e.title for e in items] == ["Offsite"]

    def test_agenda(self, engine, store):
        store.add_event(_event("Gym", local(2024, 6, 13, 7), local(2024, 6, 13, 8), "home"))
        agenda = engine.agenda(date(2024, 6, 12), 3)
        assert [day for day, _ in agenda] == [date(2024, 6, 12), date(2024, 6, 13), date(2024, 6, 14)]
        assert [[e.title for e in events] for _, events in agenda] == [[], ["Gym"], []]

    def test_search_matches_title_location_and_notes(self, engine, store):
        store.add_event(_event("Dentist", local(2024, 6, 12, 9), local(2024, 6, 12, 10), "home"))
        store.add_event(_event("Lunch", local(2024, 6, 13, 12), local(2024, 6, 13, 13), "home",
                               location="Dental school cafe"))
        store.add_event(_event("Planning", local(2024, 6, 14, 9), local(2024, 6, 14, 10),
                               notes="bring DENTAL forms"))
        store.add_event(_event("Unrelated", local(2024, 6, 15, 9), local(2024, 6, 15, 10)))
        engine.reload()
        assert [e.title for e in engine.search("dent")] == ["Dentist", "Lunch", "Planning"]
        assert engine.search("   ") == []


@pytest.mark.integration
class TestAccessFlow:
    """Access requests chain events, calendars and reminders."""

    def test_grant_loads_everything(self, make_engine, store):
        store.status = {
            EntityKind.EVENT: AuthorizationStatus.UNDETERMINED,
            EntityKind.REMINDER: AuthorizationStatus.UNDETERMINED,
        }
        store.add_event(_event("Standup", local(2024, 6, 12, 9), local(2024, 6, 12, 9, 15)))
        from cal_sync.core.models import ReminderItem
        store.add_reminder(ReminderItem("rem-x", "Pay rent", "inbox"))
        engine = make_engine()
        results = []

        engine.request_access(results.append)
        assert engine.queue.run_until_idle(timeout=5) is True

        assert results == [True]
        assert store.access_requests == [EntityKind.EVENT, EntityKind.REMINDER]
        assert [c.identifier for c in engine.calendars] == ["home", "work", "holidays"]
        assert [e.title for e in engine.items] == ["Standup"]
        assert [r.title for r in engine.reminders] == ["Pay rent"]

    def test_denied_stops_the_chain(self, make_engine, store):
        store.status[EntityKind.EVENT] = AuthorizationStatus.UNDETERMINED
        store.grant_on_request[EntityKind.EVENT] = False
        engine = make_engine()
        results = []

        engine.request_access(results.append)
        engine.queue.run_until_idle(timeout=5)

        assert results == [False]
        assert store.access_requests == [EntityKind.EVENT]
        assert store.query_calls == []

    def test_callbacks_from_background_thread(self, clock, window):
        from cal_sync.sync.engine import SyncEngine
        store = FakeStore(threaded_callbacks=True)
        store.status[EntityKind.EVENT] = AuthorizationStatus.UNDETERMINED
        engine = SyncEngine(store, ClientConfig(time_zone=TZ_NAME), window=window, clock=clock)
        results = []
        engine.request_access(results.append)
        assert engine.queue.run_until_idle(timeout=5) is True
        store.join()
        assert results == [True]
        assert engine.has_access(EntityKind.REMINDER)
