"""Durable operator overrides and the per-date booking cache.

Each override kind has its own table and repository; ``OverrideStore`` is the
single façade the fetcher, reconciler and orchestrator talk to. Every method
opens and closes its own session so calls are safe from worker threads.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from pickups.db.session import SessionLocal
from pickups.models.booking_status import BookingStatus
from pickups.models.cached_booking import CachedBookings
from pickups.models.manual_booking import ManualBooking
from pickups.models.pickup_assignment import PickupAssignment
from pickups.models.pickup_place_update import PickupPlaceUpdate
from pickups.models.reordered_booking import ReorderedBookings
from pickups.schemas.pickup import AssignmentOverride, Booking, OrderOverride, PickupPlaceOverride, StatusOverride
from pickups.services.audit_service import log_audit

logger = logging.getLogger(__name__)


class _Repository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self._session_factory()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class StatusRepository(_Repository):
    def for_date(self, date_key: str) -> Dict[str, StatusOverride]:
        with self._session() as db:
            rows = db.query(BookingStatus).filter(BookingStatus.date_key == date_key).all()
            return {
                r.booking_id: StatusOverride(is_arrived=bool(r.is_arrived), is_no_show=bool(r.is_no_show), paid_on_arrival=bool(r.paid_on_arrival))
                for r in rows
            }

    def upsert(self, booking_id: str, date_key: str, *, is_arrived: Optional[bool] = None, is_no_show: Optional[bool] = None,
               paid_on_arrival: Optional[bool] = None, actor: str = "ops") -> StatusOverride:
        """Merge-update: only the flags passed are changed."""
        with self._session() as db:
            row = db.query(BookingStatus).filter_by(date_key=date_key, booking_id=booking_id).first()
            if not row:
                row = BookingStatus(id=str(uuid.uuid4()), date_key=date_key, booking_id=booking_id,
                                    is_arrived=False, is_no_show=False, paid_on_arrival=False)
                db.add(row)
            changes = {}
            if is_arrived is not None:
                row.is_arrived = changes["isArrived"] = bool(is_arrived)
            if is_no_show is not None:
                row.is_no_show = changes["isNoShow"] = bool(is_no_show)
            if paid_on_arrival is not None:
                row.paid_on_arrival = changes["paidOnArrival"] = bool(paid_on_arrival)
            row.updated_by = actor
            row.updated_at = datetime.now(timezone.utc)
            log_audit(db, actor, "pickup.status", date_key, booking_id, changes)
            db.commit()
            return StatusOverride(is_arrived=row.is_arrived, is_no_show=row.is_no_show, paid_on_arrival=row.paid_on_arrival)


class AssignmentRepository(_Repository):
    def for_date(self, date_key: str) -> Dict[str, AssignmentOverride]:
        with self._session() as db:
            rows = db.query(PickupAssignment).filter(PickupAssignment.date_key == date_key).all()
            return {r.booking_id: AssignmentOverride(guide_id=r.guide_id, guide_name=r.guide_name or "") for r in rows}

    def save(self, booking_id: str, date_key: str, guide_id: str, guide_name: str, actor: str = "ops") -> AssignmentOverride:
        with self._session() as db:
            row = db.query(PickupAssignment).filter_by(date_key=date_key, booking_id=booking_id).first()
            previous = row.guide_id if row else None
            if not row:
                row = PickupAssignment(id=str(uuid.uuid4()), date_key=date_key, booking_id=booking_id)
                db.add(row)
            row.guide_id = guide_id
            row.guide_name = guide_name or ""
            log_audit(db, actor, "pickup.assign", date_key, booking_id, {"guideId": guide_id, "guideName": guide_name, "previousGuideId": previous})
            db.commit()
            return AssignmentOverride(guide_id=guide_id, guide_name=guide_name or "")

    def remove(self, booking_id: str, date_key: str, actor: str = "ops") -> bool:
        with self._session() as db:
            n = db.query(PickupAssignment).filter_by(date_key=date_key, booking_id=booking_id).delete()
            if n:
                log_audit(db, actor, "pickup.unassign", date_key, booking_id, {})
            db.commit()
            return bool(n)


class PickupPlaceRepository(_Repository):
    def for_date(self, date_key: str) -> Dict[str, PickupPlaceOverride]:
        with self._session() as db:
            rows = db.query(PickupPlaceUpdate).filter(PickupPlaceUpdate.date_key == date_key).all()
            return {r.booking_id: PickupPlaceOverride(pickup_place=r.pickup_place) for r in rows}

    def save(self, booking_id: str, date_key: str, pickup_place: str, actor: str = "ops") -> PickupPlaceOverride:
        with self._session() as db:
            row = db.query(PickupPlaceUpdate).filter_by(date_key=date_key, booking_id=booking_id).first()
            if not row:
                row = PickupPlaceUpdate(id=str(uuid.uuid4()), date_key=date_key, booking_id=booking_id)
                db.add(row)
            row.pickup_place = pickup_place
            row.updated_at = datetime.now(timezone.utc)
            log_audit(db, actor, "pickup.place", date_key, booking_id, {"pickupPlace": pickup_place})
            db.commit()
            return PickupPlaceOverride(pickup_place=pickup_place)


class OrderRepository(_Repository):
    def get(self, guide_id: str, date_key: str) -> Optional[OrderOverride]:
        with self._session() as db:
            row = db.query(ReorderedBookings).filter_by(guide_id=guide_id, date_key=date_key).first()
            if not row:
                return None
            try:
                ids = json.loads(row.booking_ids_json or "[]")
            except (json.JSONDecodeError, TypeError):
                logger.warning("Corrupt saved order for guide %s on %s; ignoring", guide_id, date_key)
                return None
            return OrderOverride(guide_id=guide_id, date_key=date_key, booking_ids=tuple(str(i) for i in ids))

    def save(self, guide_id: str, date_key: str, booking_ids: Iterable[str], actor: str = "ops") -> OrderOverride:
        ids = [str(i) for i in booking_ids]
        with self._session() as db:
            row = db.query(ReorderedBookings).filter_by(guide_id=guide_id, date_key=date_key).first()
            if not row:
                row = ReorderedBookings(id=str(uuid.uuid4()), guide_id=guide_id, date_key=date_key)
                db.add(row)
            row.booking_ids_json = json.dumps(ids)
            row.updated_at = datetime.now(timezone.utc)
            log_audit(db, actor, "pickup.reorder", date_key, guide_id, {"bookingIds": ids})
            db.commit()
        return OrderOverride(guide_id=guide_id, date_key=date_key, booking_ids=tuple(ids))

    def remove(self, guide_id: str, date_key: str, actor: str = "ops") -> bool:
        with self._session() as db:
            n = db.query(ReorderedBookings).filter_by(guide_id=guide_id, date_key=date_key).delete()
            if n:
                log_audit(db, actor, "pickup.reset_order", date_key, guide_id, {})
            db.commit()
            return bool(n)


class BookingCacheRepository(_Repository):
    def put(self, date_key: str, bookings: Iterable[Booking]) -> int:
        payload = [b.model_dump(mode="json") for b in bookings]
        with self._session() as db:
            row = db.get(CachedBookings, date_key)
            if not row:
                row = CachedBookings(date_key=date_key)
                db.add(row)
            row.bookings_json = json.dumps(payload, ensure_ascii=False)
            row.booking_count = len(payload)
            row.cached_at = datetime.now(timezone.utc)
            db.commit()
        return len(payload)

    def get(self, date_key: str) -> List[Booking]:
        with self._session() as db:
            row = db.get(CachedBookings, date_key)
            raw = row.bookings_json if row else "[]"
        return _bookings_from_json(raw, f"cache {date_key}")


class ManualBookingRepository(_Repository):
    def for_date(self, date_key: str) -> List[Booking]:
        with self._session() as db:
            rows = db.query(ManualBooking).filter(ManualBooking.date_key == date_key).order_by(ManualBooking.created_at.asc()).all()
            raw = "[" + ",".join(r.booking_json for r in rows) + "]"
        return _bookings_from_json(raw, f"manual bookings {date_key}")

    def save(self, date_key: str, booking: Booking, actor: str = "ops") -> Booking:
        with self._session() as db:
            row = db.get(ManualBooking, booking.id)
            if not row:
                row = ManualBooking(id=booking.id, date_key=date_key)
                db.add(row)
            row.booking_json = booking.model_dump_json()
            log_audit(db, actor, "pickup.manual_create", date_key, booking.id, {"customer": booking.customer_full_name})
            db.commit()
        return booking

    def delete(self, date_key: str, booking_id: str, actor: str = "ops") -> bool:
        with self._session() as db:
            n = db.query(ManualBooking).filter_by(id=booking_id, date_key=date_key).delete()
            if n:
                log_audit(db, actor, "pickup.manual_delete", date_key, booking_id, {})
            db.commit()
            return bool(n)


def _bookings_from_json(raw: str, what: str) -> List[Booking]:
    try:
        items = json.loads(raw or "[]")
    except (json.JSONDecodeError, TypeError):
        logger.warning("Unreadable %s; treating as empty", what)
        return []
    out = []
    for item in items:
        try:
            out.append(Booking.model_validate(item))
        except ValueError as e:
            logger.warning("Skipping unreadable booking in %s: %s", what, e)
    return out


class OverrideStore:
    """Façade over the override repositories, cache and manual bookings."""

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.statuses = StatusRepository(session_factory)
        self.assignments = AssignmentRepository(session_factory)
        self.pickup_places = PickupPlaceRepository(session_factory)
        self.orders = OrderRepository(session_factory)
        self.cache = BookingCacheRepository(session_factory)
        self.manual = ManualBookingRepository(session_factory)

    # status
    def get_booking_statuses(self, date_key: str) -> Dict[str, StatusOverride]:
        return self.statuses.for_date(date_key)

    def update_booking_status(self, booking_id: str, date_key: str, **flags) -> StatusOverride:
        return self.statuses.upsert(booking_id, date_key, **flags)

    # assignment
    def get_individual_pickup_assignments(self, date_key: str) -> Dict[str, AssignmentOverride]:
        return self.assignments.for_date(date_key)

    def save_pickup_assignment(self, booking_id: str, date_key: str, guide_id: str, guide_name: str, actor: str = "ops") -> AssignmentOverride:
        return self.assignments.save(booking_id, date_key, guide_id, guide_name, actor=actor)

    def remove_pickup_assignment(self, booking_id: str, date_key: str, actor: str = "ops") -> bool:
        return self.assignments.remove(booking_id, date_key, actor=actor)

    # pickup place
    def get_updated_pickup_places(self, date_key: str) -> Dict[str, PickupPlaceOverride]:
        return self.pickup_places.for_date(date_key)

    def save_updated_pickup_place(self, booking_id: str, date_key: str, pickup_place: str, actor: str = "ops") -> PickupPlaceOverride:
        return self.pickup_places.save(booking_id, date_key, pickup_place, actor=actor)

    # manual order
    def save_reordered_bookings(self, guide_id: str, date_key: str, booking_ids: Iterable[str], actor: str = "ops") -> OrderOverride:
        return self.orders.save(guide_id, date_key, booking_ids, actor=actor)

    def get_reordered_bookings(self, guide_id: str, date_key: str) -> List[str]:
        order = self.orders.get(guide_id, date_key)
        return list(order.booking_ids) if order else []

    def remove_reordered_bookings(self, guide_id: str, date_key: str, actor: str = "ops") -> bool:
        return self.orders.remove(guide_id, date_key, actor=actor)

    # cache
    def cache_bookings(self, date_key: str, bookings: Iterable[Booking]) -> int:
        return self.cache.put(date_key, bookings)

    def get_cached_bookings(self, date_key: str) -> List[Booking]:
        return self.cache.get(date_key)

    # manual bookings
    def get_manual_bookings(self, date_key: str) -> List[Booking]:
        return self.manual.for_date(date_key)

    def save_manual_booking(self, date_key: str, booking: Booking, actor: str = "ops") -> Booking:
        return self.manual.save(date_key, booking, actor=actor)

    def delete_manual_booking(self, date_key: str, booking_id: str, actor: str = "ops") -> bool:
        return self.manual.delete(date_key, booking_id, actor=actor)
