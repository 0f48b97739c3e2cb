from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from pickups.api.deps import get_orchestrator
from pickups.core.errors import BOOKING_NOT_FOUND, CAPACITY_EXCEEDED
from pickups.schemas.pickup import Booking, Guide, GuideAssignmentList
from pickups.schemas.requests import AssignIn, DistributeIn, ManualBookingIn, MoveIn, OrderIn, PickupPlaceIn, StatusIn
from pickups.services.assignment_service import AssignmentResult
from pickups.services.pickup_orchestrator import BookingNotFound, LoadStatus, PickupOrchestrator, PickupState

router = APIRouter(tags=["pickups"])


def _booking_out(b: Booking) -> dict:
    return {
        "id": b.id,
        "customerFullName": b.customer_full_name,
        "pickupPlaceName": b.pickup_place_name,
        "pickupTime": b.pickup_time.isoformat(),
        "numberOfGuests": b.guest_count,
        "phoneNumber": b.phone,
        "email": b.email,
        "bookingReference": b.booking_reference,
        "confirmationCode": b.confirmation_code,
        "isUnpaid": b.is_unpaid,
        "amountToPayOnArrival": b.balance_due,
        "assignedGuideId": b.assigned_guide_id,
        "assignedGuideName": b.assigned_guide_name,
        "isArrived": b.is_arrived,
        "isNoShow": b.is_no_show,
        "paidOnArrival": b.paid_on_arrival,
        "isManual": b.is_manual,
    }


def _guide_list_out(gl: GuideAssignmentList) -> dict:
    return {
        "guideId": gl.guide_id,
        "guideName": gl.guide_name,
        "date": gl.tour_date.isoformat(),
        "totalPassengers": gl.total_passengers,
        "bookings": [_booking_out(b) for b in gl.bookings],
    }


def _state_out(s: PickupState) -> dict:
    return {
        "date": s.selected_date.isoformat() if s.selected_date else None,
        "status": s.status.value,
        "error": s.error,
        "bookings": [_booking_out(b) for b in s.bookings],
        "currentUserBookings": [_booking_out(b) for b in s.current_user_bookings],
        "guideLists": [_guide_list_out(gl) for gl in s.guide_lists],
        "stats": {
            "totalBookings": s.stats.total_bookings,
            "totalPassengers": s.stats.total_passengers,
            "assignedBookings": s.stats.assigned_bookings,
            "unassignedBookings": s.stats.unassigned_bookings,
            "noShows": s.stats.no_shows,
        },
    }


def _result_out(result: AssignmentResult) -> dict:
    if not result.ok:
        if result.reason == BOOKING_NOT_FOUND:
            raise HTTPException(status_code=404, detail="Booking not found")
        if result.reason == CAPACITY_EXCEEDED:
            raise HTTPException(status_code=409, detail="Guide is at passenger capacity")
        raise HTTPException(status_code=400, detail=result.reason or "Assignment failed")
    return {
        "ok": True,
        "assigned": [{"bookingId": b.id, "guideId": g.id} for b, g in result.placed],
        "guideLists": [_guide_list_out(gl) for gl in result.guide_lists],
    }


async def _loaded(orch: PickupOrchestrator, tour_date: date) -> PickupState:
    state = await orch.load_bookings_for_date(tour_date)
    if state.status is LoadStatus.ERROR and not state.bookings:
        raise HTTPException(status_code=502, detail=state.error or "Could not load bookings")
    return state


@router.get("/pickups/{tour_date}")
async def get_pickups(tour_date: date, orch: PickupOrchestrator = Depends(get_orchestrator)):
    state = await orch.load_bookings_for_date(tour_date)
    return _state_out(state)


@router.post("/pickups/{tour_date}/assign")
async def assign_booking(tour_date: date, body: AssignIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    result = await orch.assign_booking_to_guide(body.bookingId, Guide(id=body.guideId, name=body.guideName))
    return _result_out(result)


@router.delete("/pickups/{tour_date}/bookings/{booking_id}/assignment")
async def unassign_booking(tour_date: date, booking_id: str, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    try:
        booking = await orch.unassign_booking(booking_id)
    except BookingNotFound:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_out(booking)


@router.post("/pickups/{tour_date}/status")
async def update_status(tour_date: date, body: StatusIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    if body.isArrived is None and body.isNoShow is None and body.paidOnArrival is None:
        raise HTTPException(status_code=422, detail="No status flag given")
    await _loaded(orch, tour_date)
    try:
        booking = None
        if body.isArrived is not None:
            booking = await orch.mark_as_arrived(body.bookingId, body.isArrived)
        if body.isNoShow is not None:
            booking = await orch.mark_as_no_show(body.bookingId, body.isNoShow)
        if body.paidOnArrival is not None:
            booking = await orch.mark_as_paid_on_arrival(body.bookingId, body.paidOnArrival)
    except BookingNotFound:
        raise HTTPException(status_code=404, detail="Booking not found")
    return _booking_out(booking)


@router.post("/pickups/{tour_date}/move")
async def move_booking(tour_date: date, body: MoveIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    result = await orch.move_booking_between_guides(body.bookingId, Guide(id=body.guideId, name=body.guideName))
    return _result_out(result)


@router.post("/pickups/{tour_date}/pickup-place")
async def update_pickup_place(tour_date: date, body: PickupPlaceIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    try:
        booking = await orch.update_pickup_place(body.bookingId, body.pickupPlace)
    except BookingNotFound:
        raise HTTPException(status_code=404, detail="Booking not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _booking_out(booking)


@router.put("/pickups/{tour_date}/guides/{guide_id}/order")
async def save_order(tour_date: date, guide_id: str, body: OrderIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    gl = await orch.reorder_guide_bookings(guide_id, body.bookingIds)
    return {"guideId": guide_id, "bookings": [_booking_out(b) for b in gl.bookings] if gl else []}


@router.delete("/pickups/{tour_date}/guides/{guide_id}/order")
async def reset_order(tour_date: date, guide_id: str, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    gl = await orch.reset_to_alphabetical_order(guide_id)
    return {"guideId": guide_id, "bookings": [_booking_out(b) for b in gl.bookings] if gl else []}


@router.post("/pickups/{tour_date}/distribute")
async def distribute(tour_date: date, body: DistributeIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    guides = [Guide(id=g.guideId, name=g.guideName) for g in body.guides]
    result = await orch.distribute_bookings(guides)
    out = _result_out(result)
    out["unassigned"] = [b.id for b in orch.state.bookings if not b.assigned_guide_id]
    return out


@router.post("/pickups/{tour_date}/manual-bookings", status_code=201)
async def create_manual_booking(tour_date: date, body: ManualBookingIn, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    booking = await orch.create_manual_booking(
        body.customerName,
        body.pickupPlace,
        pickup_time=body.pickupTime,
        guest_count=body.guests,
        phone=body.phone,
        email=body.email,
    )
    return _booking_out(booking)


@router.delete("/pickups/{tour_date}/bookings/{booking_id}")
async def delete_booking(tour_date: date, booking_id: str, orch: PickupOrchestrator = Depends(get_orchestrator)):
    await _loaded(orch, tour_date)
    try:
        await orch.delete_booking(booking_id)
    except BookingNotFound:
        raise HTTPException(status_code=404, detail="Booking not found")
    return {"ok": True, "bookingId": booking_id}
