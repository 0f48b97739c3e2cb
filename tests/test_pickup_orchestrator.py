import asyncio
import threading
import time
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from pickups.core.errors import BOOKING_NOT_FOUND, CAPACITY_EXCEEDED, UpstreamApiError
from pickups.schemas.pickup import Guide
from pickups.services.override_store import OverrideStore
from pickups.services.pickup_orchestrator import BookingNotFound, LoadStatus, PickupOrchestrator

from conftest import make_booking

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()
OTHER = date(2026, 10, 20)
KEY = "2026-10-18"
G1, G2 = Guide(id="g1", name="Siggi"), Guide(id="g2", name="Gunna")


class FakeFetcher:
    def __init__(self, results=None):
        self.results = dict(results or {})
        self.calls = []

    def fetch(self, target):
        self.calls.append(target)
        result = self.results.get(target, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


def _orch(fetcher, store, **kwargs):
    kwargs.setdefault("clock", lambda: NOW)
    kwargs.setdefault("max_passengers", 19)
    return PickupOrchestrator(fetcher, store, **kwargs)


def _day():
    return [make_booking("b1", "Hotel Saga", guests=2), make_booking("b2", "Apotek", guests=3)]


def test_load_applies_overrides_and_sorts(store):
    store.save_pickup_assignment("b1", KEY, "g1", "Siggi")
    store.update_booking_status("b2", KEY, is_no_show=True)
    orch = _orch(FakeFetcher({TODAY: _day()}), store, current_user_id="g1")

    seen = []
    orch.subscribe(lambda s: seen.append(s.status))
    state = asyncio.run(orch.load_bookings_for_date(TODAY))

    assert state.status is LoadStatus.LOADED
    assert not state.is_loading
    assert [b.id for b in state.bookings] == ["b2", "b1"]
    assert state.bookings[0].is_no_show is True
    assert [gl.guide_id for gl in state.guide_lists] == ["g1"]
    assert [b.id for b in state.current_user_bookings] == ["b1"]
    assert state.stats.total_passengers == 5
    assert state.stats.assigned_bookings == 1
    assert seen[0] is LoadStatus.LOADING and seen[-1] is LoadStatus.LOADED


def test_unsubscribe_stops_notifications(store):
    orch = _orch(FakeFetcher({TODAY: _day()}), store)
    seen = []
    unsubscribe = orch.subscribe(seen.append)
    unsubscribe()
    asyncio.run(orch.load_bookings_for_date(TODAY))
    assert seen == []


def test_failing_listener_does_not_break_load(store):
    orch = _orch(FakeFetcher({TODAY: _day()}), store)

    def boom(state):
        raise ValueError("listener bug")

    orch.subscribe(boom)
    assert asyncio.run(orch.load_bookings_for_date(TODAY)).status is LoadStatus.LOADED


def test_fetch_failure_ends_in_error_state(store):
    orch = _orch(FakeFetcher({TODAY: UpstreamApiError(500, "down")}), store, current_user_id="g1")
    state = asyncio.run(orch.load_bookings_for_date(TODAY))

    assert state.status is LoadStatus.ERROR
    assert not state.is_loading
    assert "down" in state.error
    assert state.current_user_bookings == ()


def test_unexpected_error_ends_in_error_state(store):
    orch = _orch(FakeFetcher({TODAY: ValueError("bug")}), store)
    state = asyncio.run(orch.load_bookings_for_date(TODAY))
    assert state.status is LoadStatus.ERROR
    assert "bug" in state.error
    assert not state.is_loading


def test_unexpected_error_keeps_previous_data_for_same_date(store):
    fetcher = FakeFetcher({TODAY: _day()})
    orch = _orch(fetcher, store)
    asyncio.run(orch.load_bookings_for_date(TODAY))

    fetcher.results[TODAY] = KeyError("items")
    state = asyncio.run(orch.load_bookings_for_date(TODAY, force_refresh=True))
    assert state.status is LoadStatus.ERROR
    assert {b.id for b in state.bookings} == {"b1", "b2"}


def test_empty_result_keeps_existing_data(store):
    fetcher = FakeFetcher({TODAY: _day()})
    orch = _orch(fetcher, store)
    asyncio.run(orch.load_bookings_for_date(TODAY))

    fetcher.results[TODAY] = []
    state = asyncio.run(orch.load_bookings_for_date(TODAY))
    assert state.status is LoadStatus.LOADED
    assert len(state.bookings) == 2

    state = asyncio.run(orch.refresh_bookings())
    assert state.bookings == ()


def test_empty_upstream_keeps_existing_data_with_manual_booking(store):
    fetcher = FakeFetcher({TODAY: _day()})
    orch = _orch(fetcher, store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        created = await orch.create_manual_booking("Walk In", "Harpa")
        fetcher.results[TODAY] = []
        state = await orch.load_bookings_for_date(TODAY)
        return created, state

    created, state = asyncio.run(scenario())
    assert state.status is LoadStatus.LOADED
    assert {b.id for b in state.bookings} == {"b1", "b2", created.id}


def test_failure_keeps_previous_data_for_same_date(store):
    fetcher = FakeFetcher({TODAY: _day()})
    orch = _orch(fetcher, store)
    asyncio.run(orch.load_bookings_for_date(TODAY))

    fetcher.results[TODAY] = UpstreamApiError(503, "busy")
    state = asyncio.run(orch.load_bookings_for_date(TODAY))
    assert state.status is LoadStatus.ERROR
    assert len(state.bookings) == 2


def test_failure_restores_from_memory_cache(store):
    fetcher = FakeFetcher({TODAY: _day(), OTHER: [make_booking("o1")]})
    orch = _orch(fetcher, store)
    asyncio.run(orch.load_bookings_for_date(TODAY))
    asyncio.run(orch.load_bookings_for_date(OTHER))

    fetcher.results[TODAY] = UpstreamApiError(503, "busy")
    state = asyncio.run(orch.load_bookings_for_date(TODAY))
    assert state.status is LoadStatus.ERROR
    assert state.selected_date == TODAY
    assert {b.id for b in state.bookings} == {"b1", "b2"}


def test_stale_response_is_discarded(store):
    release = threading.Event()

    class SlowFirstFetcher:
        def fetch(self, target):
            if target == TODAY:
                release.wait(timeout=5)
                return _day()
            return [make_booking("o1")]

    orch = _orch(SlowFirstFetcher(), store)

    async def scenario():
        first = asyncio.create_task(orch.load_bookings_for_date(TODAY))
        await asyncio.sleep(0)
        await orch.load_bookings_for_date(OTHER)
        release.set()
        await first

    asyncio.run(scenario())
    assert orch.state.selected_date == OTHER
    assert [b.id for b in orch.state.bookings] == ["o1"]
    assert orch.state.status is LoadStatus.LOADED


def test_slow_secondary_load_falls_back_to_default(session_factory):
    class SlowStore(OverrideStore):
        def get_booking_statuses(self, date_key):
            time.sleep(0.5)
            return super().get_booking_statuses(date_key)

    store = SlowStore(session_factory)
    store.update_booking_status("b1", KEY, is_arrived=True)
    orch = _orch(FakeFetcher({TODAY: _day()}), store, secondary_timeout=0.05)

    state = asyncio.run(orch.load_bookings_for_date(TODAY))
    assert state.status is LoadStatus.LOADED
    assert not any(b.is_arrived for b in state.bookings)


def test_failing_secondary_load_falls_back_to_default(session_factory):
    class BrokenPlaces(OverrideStore):
        def get_updated_pickup_places(self, date_key):
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

    store = BrokenPlaces(session_factory)
    store.save_pickup_assignment("b1", KEY, "g1", "Siggi")
    state = asyncio.run(_orch(FakeFetcher({TODAY: _day()}), store).load_bookings_for_date(TODAY))

    assert state.status is LoadStatus.LOADED
    assert state.guide_lists[0].guide_id == "g1"


def test_failing_cache_write_keeps_fetched_bookings(session_factory):
    class BrokenCache(OverrideStore):
        def cache_bookings(self, date_key, bookings):
            raise ValueError("unserializable")

    state = asyncio.run(_orch(FakeFetcher({TODAY: _day()}), BrokenCache(session_factory)).load_bookings_for_date(TODAY))
    assert state.status is LoadStatus.LOADED
    assert {b.id for b in state.bookings} == {"b1", "b2"}


def test_recent_dates_are_written_to_booking_cache(store):
    asyncio.run(_orch(FakeFetcher({TODAY: _day()}), store).load_bookings_for_date(TODAY))
    assert {b.id for b in store.get_cached_bookings(KEY)} == {"b1", "b2"}

    future = date(2026, 11, 1)
    asyncio.run(_orch(FakeFetcher({future: [make_booking("f1")]}), store).load_bookings_for_date(future))
    assert store.get_cached_bookings("2026-11-01") == []


def test_assign_checks_capacity(store):
    bookings = [make_booking("full", guests=18), make_booking("two", guests=2), make_booking("one", guests=1)]
    orch = _orch(FakeFetcher({TODAY: bookings}), store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        assert (await orch.assign_booking_to_guide("full", G1)).ok
        rejected = await orch.assign_booking_to_guide("two", G1)
        accepted = await orch.assign_booking_to_guide("one", G1)
        missing = await orch.assign_booking_to_guide("nope", G1)
        return rejected, accepted, missing

    rejected, accepted, missing = asyncio.run(scenario())
    assert rejected.reason == CAPACITY_EXCEEDED
    assert accepted.ok
    assert missing.reason == BOOKING_NOT_FOUND
    assert orch.get_guide_list("g1").total_passengers == 19
    assert not orch.validate_passenger_count("g1", 1)
    assert set(store.get_individual_pickup_assignments(KEY)) == {"full", "one"}


def test_move_rejected_at_capacity_leaves_lists_unchanged(store):
    store.save_pickup_assignment("full", KEY, "g1", "Siggi")
    store.save_pickup_assignment("mover", KEY, "g2", "Gunna")
    bookings = [make_booking("full", guests=18), make_booking("mover", guests=2)]
    orch = _orch(FakeFetcher({TODAY: bookings}), store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        before = orch.state.guide_lists
        result = await orch.move_booking_between_guides("mover", G1)
        return before, result

    before, result = asyncio.run(scenario())
    assert result.reason == CAPACITY_EXCEEDED
    assert orch.state.guide_lists == before
    assert store.get_individual_pickup_assignments(KEY)["mover"].guide_id == "g2"


def test_distribute_and_unassign(store):
    bookings = [make_booking(str(i), f"Hotel {i}", guests=4) for i in range(4)]
    orch = _orch(FakeFetcher({TODAY: bookings}), store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        result = await orch.distribute_bookings([G1, G2])
        await orch.unassign_booking("0")
        return result

    result = asyncio.run(scenario())
    assert len(result.placed) == 4
    assert set(store.get_individual_pickup_assignments(KEY)) == {"1", "2", "3"}
    assert orch.state.stats.unassigned_bookings == 1


def test_status_commands_update_state_and_store(store):
    orch = _orch(FakeFetcher({TODAY: _day()}), store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        await orch.mark_as_arrived("b1")
        await orch.mark_as_no_show("b2")
        await orch.mark_as_paid_on_arrival("b1")
        with pytest.raises(BookingNotFound):
            await orch.mark_as_arrived("nope")

    asyncio.run(scenario())
    by_id = {b.id: b for b in orch.state.bookings}
    assert by_id["b1"].is_arrived and by_id["b1"].paid_on_arrival
    assert by_id["b2"].is_no_show
    assert orch.state.stats.no_shows == 1
    assert store.get_booking_statuses(KEY)["b1"].paid_on_arrival is True


def test_pickup_place_change_resorts(store):
    orch = _orch(FakeFetcher({TODAY: _day()}), store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        await orch.update_pickup_place("b1", "Aalto Bistro")

    asyncio.run(scenario())
    assert [b.id for b in orch.state.bookings] == ["b1", "b2"]
    assert store.get_updated_pickup_places(KEY)["b1"].pickup_place == "Aalto Bistro"


def test_reorder_and_reset_current_user_bookings(store):
    for booking_id in ("b1", "b2"):
        store.save_pickup_assignment(booking_id, KEY, "g1", "Siggi")
    orch = _orch(FakeFetcher({TODAY: _day()}), store, current_user_id="g1")

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        await orch.reorder_current_user_bookings(["b1", "b2"])
        reordered = [b.id for b in orch.state.current_user_bookings]
        await orch.reset_to_alphabetical_order()
        return reordered

    reordered = asyncio.run(scenario())
    assert reordered == ["b1", "b2"]
    assert [b.id for b in orch.state.current_user_bookings] == ["b2", "b1"]
    assert store.get_reordered_bookings("g1", KEY) == []


def test_saved_order_is_applied_on_load(store):
    for booking_id in ("b1", "b2"):
        store.save_pickup_assignment(booking_id, KEY, "g1", "Siggi")
    store.save_reordered_bookings("g1", KEY, ["b1", "gone"])
    state = asyncio.run(_orch(FakeFetcher({TODAY: _day()}), store).load_bookings_for_date(TODAY))
    assert [b.id for b in state.guide_lists[0].bookings] == ["b1", "b2"]


def test_manual_booking_lifecycle(store):
    fetcher = FakeFetcher({TODAY: _day()})
    orch = _orch(fetcher, store)

    async def scenario():
        await orch.load_bookings_for_date(TODAY)
        created = await orch.create_manual_booking("Walk In", "Harpa", guest_count=2)
        await orch.load_bookings_for_date(TODAY, force_refresh=True)
        reloaded = {b.id for b in orch.state.bookings}
        await orch.delete_booking(created.id)
        return created, reloaded

    created, reloaded = asyncio.run(scenario())
    assert created.id.startswith("manual_")
    assert created.pickup_time == datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)
    assert created.id in reloaded
    assert store.get_manual_bookings(KEY) == []
    assert created.id not in {b.id for b in orch.state.bookings}


def test_commands_need_a_loaded_date(store):
    orch = _orch(FakeFetcher(), store)
    with pytest.raises(ValueError):
        asyncio.run(orch.mark_as_arrived("b1"))
