"""Capacity-bounded guide assignment.

No operation here ever produces a guide list whose passenger total exceeds
``max_passengers``. A booking that does not fit is left unassigned (distribute)
or rejected with ``capacity_exceeded`` (move).
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pickups.core.errors import BOOKING_NOT_FOUND, CAPACITY_EXCEEDED
from pickups.schemas.pickup import Booking, Guide, GuideAssignmentList

logger = logging.getLogger(__name__)


@dataclass
class AssignmentResult:
    ok: bool
    guide_lists: List[GuideAssignmentList] = field(default_factory=list)
    reason: Optional[str] = None
    # (booking, guide) pairs newly placed by this run
    placed: List[Tuple[Booking, Guide]] = field(default_factory=list)


def fits(current_total: int, guest_count: int, max_passengers: int) -> bool:
    return current_total + guest_count <= max_passengers


def distribute_bookings(
    bookings: Iterable[Booking],
    guides: Sequence[Guide],
    tour_date: date,
    max_passengers: int,
    existing: Iterable[GuideAssignmentList] = (),
) -> AssignmentResult:
    """Round-robin unassigned bookings over ``guides``.

    The cursor advances once per booking whether or not it was placed; a
    booking that does not fit its candidate guide is skipped for this run.
    Already-assigned bookings are left where they are, and ``existing`` lists
    seed the running totals so repeated runs stay within capacity. A guide id
    given more than once counts once, at its first position.
    """
    unique: Dict[str, Guide] = {}
    for g in guides:
        unique.setdefault(g.id, g)
    guides = list(unique.values())
    if not guides:
        return AssignmentResult(ok=True, guide_lists=list(existing))

    lists: Dict[str, List[Booking]] = {g.id: [] for g in guides}
    names: Dict[str, str] = {g.id: g.name for g in guides}
    extra: List[GuideAssignmentList] = []
    for gl in existing:
        if gl.guide_id in lists:
            lists[gl.guide_id].extend(gl.bookings)
        else:
            extra.append(gl)
    totals = {gid: sum(b.guest_count for b in items) for gid, items in lists.items()}

    placed: List[Tuple[Booking, Guide]] = []
    cursor = 0
    for b in bookings:
        if b.assigned_guide_id:
            continue
        guide = guides[cursor % len(guides)]
        cursor += 1
        if not fits(totals[guide.id], b.guest_count, max_passengers):
            logger.info("Booking %s (%s pax) does not fit guide %s (%s/%s); left unassigned",
                        b.id, b.guest_count, guide.id, totals[guide.id], max_passengers)
            continue
        assigned = b.model_copy(update={"assigned_guide_id": guide.id, "assigned_guide_name": guide.name})
        lists[guide.id].append(assigned)
        totals[guide.id] += b.guest_count
        placed.append((assigned, guide))

    guide_lists = [
        GuideAssignmentList(guide_id=g.id, guide_name=names[g.id], tour_date=tour_date, bookings=tuple(lists[g.id]))
        for g in guides
        if lists[g.id]
    ]
    return AssignmentResult(ok=True, guide_lists=guide_lists + extra, placed=placed)


def move_booking_to_guide(
    guide_lists: Sequence[GuideAssignmentList],
    booking_id: str,
    target_guide: Guide,
    tour_date: date,
    max_passengers: int,
) -> AssignmentResult:
    """Move one booking into ``target_guide``'s list, or fail leaving lists unchanged."""
    source = None
    booking = None
    for gl in guide_lists:
        for b in gl.bookings:
            if b.id == booking_id:
                source, booking = gl, b
                break
        if booking is not None:
            break
    if booking is None:
        return AssignmentResult(ok=False, guide_lists=list(guide_lists), reason=BOOKING_NOT_FOUND)
    if source.guide_id == target_guide.id:
        return AssignmentResult(ok=True, guide_lists=list(guide_lists))

    target = next((gl for gl in guide_lists if gl.guide_id == target_guide.id), None)
    target_total = target.total_passengers if target else 0
    if not fits(target_total, booking.guest_count, max_passengers):
        return AssignmentResult(ok=False, guide_lists=list(guide_lists), reason=CAPACITY_EXCEEDED)

    moved = booking.model_copy(update={"assigned_guide_id": target_guide.id, "assigned_guide_name": target_guide.name})
    out: List[GuideAssignmentList] = []
    for gl in guide_lists:
        if gl.guide_id == source.guide_id:
            out.append(gl.model_copy(update={"bookings": tuple(b for b in gl.bookings if b.id != booking_id)}))
        elif gl.guide_id == target_guide.id:
            out.append(gl.model_copy(update={"bookings": gl.bookings + (moved,)}))
        else:
            out.append(gl)
    if target is None:
        out.append(GuideAssignmentList(guide_id=target_guide.id, guide_name=target_guide.name, tour_date=tour_date, bookings=(moved,)))
    return AssignmentResult(ok=True, guide_lists=[gl for gl in out if gl.bookings], placed=[(moved, target_guide)])
