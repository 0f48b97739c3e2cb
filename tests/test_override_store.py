import json

from pickups.models.audit_log import AuditLog

from conftest import make_booking

KEY = "2026-10-18"


def test_status_updates_merge_flags(store):
    store.update_booking_status("b1", KEY, is_arrived=True)
    store.update_booking_status("b1", KEY, paid_on_arrival=True)

    status = store.get_booking_statuses(KEY)["b1"]
    assert status.is_arrived is True
    assert status.paid_on_arrival is True
    assert status.is_no_show is False
    assert store.get_booking_statuses("2026-10-19") == {}


def test_assignment_save_overwrite_and_remove(store):
    store.save_pickup_assignment("b1", KEY, "g1", "Siggi")
    store.save_pickup_assignment("b1", KEY, "g2", "Gunna")
    assert store.get_individual_pickup_assignments(KEY)["b1"].guide_id == "g2"

    assert store.remove_pickup_assignment("b1", KEY) is True
    assert store.remove_pickup_assignment("b1", KEY) is False
    assert store.get_individual_pickup_assignments(KEY) == {}


def test_pickup_place_override(store):
    store.save_updated_pickup_place("b1", KEY, "Hotel Borg")
    store.save_updated_pickup_place("b1", KEY, "Hotel Holt")
    assert store.get_updated_pickup_places(KEY)["b1"].pickup_place == "Hotel Holt"


def test_reordered_bookings_round_trip(store):
    assert store.get_reordered_bookings("g1", KEY) == []
    store.save_reordered_bookings("g1", KEY, ["b2", "b1"])
    assert store.get_reordered_bookings("g1", KEY) == ["b2", "b1"]
    assert store.remove_reordered_bookings("g1", KEY) is True
    assert store.get_reordered_bookings("g1", KEY) == []


def test_booking_cache_replaces_previous_entry(store):
    store.cache_bookings(KEY, [make_booking("b1"), make_booking("b2", guests=3)])
    store.cache_bookings(KEY, [make_booking("b3")])

    cached = store.get_cached_bookings(KEY)
    assert [b.id for b in cached] == ["b3"]
    assert store.get_cached_bookings("2026-01-01") == []


def test_cached_bookings_keep_their_fields(store):
    original = make_booking("b1", place="Hotel Saga", guests=4, is_unpaid=True, balance_due=15000.0)
    store.cache_bookings(KEY, [original])
    assert store.get_cached_bookings(KEY) == [original]


def test_manual_bookings(store):
    booking = make_booking("manual_1", place="Harpa")
    store.save_manual_booking(KEY, booking)
    assert store.get_manual_bookings(KEY) == [booking]

    assert store.delete_manual_booking(KEY, "manual_1") is True
    assert store.get_manual_bookings(KEY) == []


def test_writes_leave_an_audit_trail(store, session_factory):
    store.save_pickup_assignment("b1", KEY, "g1", "Siggi", actor="g1")
    store.update_booking_status("b1", KEY, is_no_show=True, actor="g1")

    db = session_factory()
    try:
        rows = {r.action: r for r in db.query(AuditLog).all()}
    finally:
        db.close()
    assert set(rows) == {"pickup.assign", "pickup.status"}
    assert rows["pickup.assign"].actor == "g1"
    assert json.loads(rows["pickup.status"].details_json) == {"isNoShow": True}
