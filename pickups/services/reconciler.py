"""Merge fetched bookings with the persisted override layers.

Everything here except ``Reconciler`` is a pure function over immutable
Bookings. Overrides are applied status -> assignment -> pickup place, then the
list is sorted by pickup place and, per guide, reordered by any saved order.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Sequence

from pickups.core.errors import OverrideLoadFailure
from pickups.schemas.pickup import (
    AssignmentOverride,
    Booking,
    GuideAssignmentList,
    PickupPlaceOverride,
    StatusOverride,
)

logger = logging.getLogger(__name__)


@dataclass
class OverrideSet:
    statuses: Dict[str, StatusOverride] = field(default_factory=dict)
    assignments: Dict[str, AssignmentOverride] = field(default_factory=dict)
    pickup_places: Dict[str, PickupPlaceOverride] = field(default_factory=dict)


def apply_overrides(bookings: Iterable[Booking], overrides: OverrideSet) -> List[Booking]:
    out = []
    for b in bookings:
        changes = {}
        status = overrides.statuses.get(b.id)
        if status is not None:
            changes.update(is_arrived=status.is_arrived, is_no_show=status.is_no_show, paid_on_arrival=status.paid_on_arrival)
        assignment = overrides.assignments.get(b.id)
        if assignment is not None:
            changes.update(assigned_guide_id=assignment.guide_id, assigned_guide_name=assignment.guide_name)
        place = overrides.pickup_places.get(b.id)
        if place is not None and place.pickup_place.strip():
            changes["pickup_place_name"] = place.pickup_place.strip()
        out.append(b.model_copy(update=changes) if changes else b)
    return out


def sort_by_pickup_place(bookings: Iterable[Booking]) -> List[Booking]:
    # Stable on ties so upstream order survives within one hotel.
    return sorted(bookings, key=lambda b: b.pickup_place_name.casefold())


def bookings_for_guide(bookings: Iterable[Booking], guide_id: str) -> List[Booking]:
    return [b for b in bookings if b.assigned_guide_id == guide_id]


def apply_saved_order(bookings: Sequence[Booking], saved_ids: Sequence[str]) -> List[Booking]:
    """Saved ids first (unknown ids dropped), then the rest in their given order."""
    if not saved_ids:
        return list(bookings)
    by_id = {b.id: b for b in bookings}
    ordered, seen = [], set()
    for booking_id in saved_ids:
        b = by_id.get(booking_id)
        if b is not None and booking_id not in seen:
            ordered.append(b)
            seen.add(booking_id)
    ordered.extend(b for b in bookings if b.id not in seen)
    return ordered


def build_guide_lists(bookings: Iterable[Booking], tour_date: date, orders: Dict[str, Sequence[str]] | None = None) -> List[GuideAssignmentList]:
    """One list per assigned guide, in first-seen order."""
    orders = orders or {}
    grouped: Dict[str, List[Booking]] = {}
    names: Dict[str, str] = {}
    for b in bookings:
        if not b.assigned_guide_id:
            continue
        grouped.setdefault(b.assigned_guide_id, []).append(b)
        names.setdefault(b.assigned_guide_id, b.assigned_guide_name or "")
    return [
        GuideAssignmentList(
            guide_id=guide_id,
            guide_name=names[guide_id],
            tour_date=tour_date,
            bookings=tuple(apply_saved_order(items, orders.get(guide_id, ()))),
        )
        for guide_id, items in grouped.items()
    ]


def merge_manual_bookings(fetched: Iterable[Booking], manual: Iterable[Booking]) -> List[Booking]:
    """Upstream wins when a manual booking reuses an upstream id."""
    merged = list(fetched)
    known = {b.id for b in merged}
    for b in manual:
        if b.id in known:
            logger.warning("Manual booking %s shadowed by upstream booking with the same id", b.id)
            continue
        merged.append(b)
        known.add(b.id)
    return merged


class Reconciler:
    """Loads override layers from the store. Each loader raises OverrideLoadFailure."""

    def __init__(self, store):
        self.store = store

    def _load(self, kind: str, fn, *args):
        try:
            return fn(*args)
        except Exception as e:
            raise OverrideLoadFailure(kind, e) from e

    def load_statuses(self, date_key: str) -> Dict[str, StatusOverride]:
        return self._load("status", self.store.get_booking_statuses, date_key)

    def load_assignments(self, date_key: str) -> Dict[str, AssignmentOverride]:
        return self._load("assignment", self.store.get_individual_pickup_assignments, date_key)

    def load_pickup_places(self, date_key: str) -> Dict[str, PickupPlaceOverride]:
        return self._load("pickup place", self.store.get_updated_pickup_places, date_key)

    def load_order(self, guide_id: str, date_key: str) -> List[str]:
        return self._load("order", self.store.get_reordered_bookings, guide_id, date_key)

    def load_manual(self, date_key: str) -> List[Booking]:
        return self._load("manual booking", self.store.get_manual_bookings, date_key)
