from datetime import date

from pickups.core.errors import BOOKING_NOT_FOUND, CAPACITY_EXCEEDED
from pickups.schemas.pickup import Guide, GuideAssignmentList
from pickups.services.assignment_service import distribute_bookings, fits, move_booking_to_guide

from conftest import make_booking

TOUR_DATE = date(2026, 10, 18)
G1, G2 = Guide(id="g1", name="Siggi"), Guide(id="g2", name="Gunna")


def _list(guide, *bookings):
    assigned = tuple(b.model_copy(update={"assigned_guide_id": guide.id, "assigned_guide_name": guide.name}) for b in bookings)
    return GuideAssignmentList(guide_id=guide.id, guide_name=guide.name, tour_date=TOUR_DATE, bookings=assigned)


def test_fits_is_inclusive():
    assert fits(17, 2, 19)
    assert not fits(18, 2, 19)


def test_round_robin_in_guide_order():
    bookings = [make_booking(str(i), guests=2) for i in range(4)]
    result = distribute_bookings(bookings, [G1, G2], TOUR_DATE, 19)

    lists = {gl.guide_id: [b.id for b in gl.bookings] for gl in result.guide_lists}
    assert lists == {"g1": ["0", "2"], "g2": ["1", "3"]}
    assert all(b.assigned_guide_id for b, _ in result.placed)


def test_booking_that_does_not_fit_is_skipped_without_spill_over():
    bookings = [make_booking("big", guests=15), make_booking("small", guests=1), make_booking("huge", guests=10)]
    result = distribute_bookings(bookings, [G1, G2], TOUR_DATE, 19)

    placed = {b.id: g.id for b, g in result.placed}
    # cursor: big->g1, small->g2, huge->g1 (15+10 > 19, skipped; not tried on g2)
    assert placed == {"big": "g1", "small": "g2"}
    assert all(gl.total_passengers <= 19 for gl in result.guide_lists)


def test_assigned_bookings_are_left_alone():
    already = make_booking("a", guests=4, assigned_guide_id="g2", assigned_guide_name="Gunna")
    result = distribute_bookings([already, make_booking("n")], [G1, G2], TOUR_DATE, 19)
    assert [(b.id, g.id) for b, g in result.placed] == [("n", "g1")]


def test_existing_lists_seed_capacity():
    existing = [_list(G1, make_booking("a", guests=18))]
    result = distribute_bookings([make_booking("n", guests=2)], [G1], TOUR_DATE, 19, existing=existing)

    assert result.placed == []
    assert result.guide_lists[0].total_passengers == 18


def test_rerun_is_idempotent():
    bookings = [make_booking(str(i), guests=3) for i in range(5)]
    first = distribute_bookings(bookings, [G1, G2], TOUR_DATE, 19)
    assigned = [b for gl in first.guide_lists for b in gl.bookings]
    second = distribute_bookings(assigned, [G1, G2], TOUR_DATE, 19, existing=first.guide_lists)

    assert second.placed == []
    assert second.guide_lists == first.guide_lists


def test_no_guides_places_nothing():
    result = distribute_bookings([make_booking("x")], [], TOUR_DATE, 19)
    assert result.ok and result.placed == []


def test_repeated_guide_gets_one_list():
    bookings = [make_booking(str(i), guests=2) for i in range(3)]
    result = distribute_bookings(bookings, [G1, G1, G2], TOUR_DATE, 19)

    assert [gl.guide_id for gl in result.guide_lists] == ["g1", "g2"]
    lists = {gl.guide_id: [b.id for b in gl.bookings] for gl in result.guide_lists}
    assert lists == {"g1": ["0", "2"], "g2": ["1"]}


def test_move_rejected_when_target_is_full():
    lists = [_list(G1, make_booking("full", guests=18)), _list(G2, make_booking("mover", guests=2))]
    result = move_booking_to_guide(lists, "mover", G1, TOUR_DATE, 19)

    assert not result.ok
    assert result.reason == CAPACITY_EXCEEDED
    assert result.guide_lists == lists


def test_move_between_guides():
    lists = [_list(G1, make_booking("a", guests=5)), _list(G2, make_booking("b", guests=2))]
    result = move_booking_to_guide(lists, "b", G1, TOUR_DATE, 19)

    assert result.ok
    assert [gl.guide_id for gl in result.guide_lists] == ["g1"]
    assert [b.id for b in result.guide_lists[0].bookings] == ["a", "b"]
    assert result.guide_lists[0].bookings[1].assigned_guide_id == "g1"


def test_move_unknown_booking():
    result = move_booking_to_guide([_list(G1, make_booking("a"))], "nope", G2, TOUR_DATE, 19)
    assert result.reason == BOOKING_NOT_FOUND
