"""Single entry point for the pickup views of one selected date.

The orchestrator owns an immutable ``PickupState`` snapshot that is replaced
whole on every transition and pushed to subscribers. Loads pass through
LOADING and always end in LOADED or ERROR; a newer load makes older in-flight
loads stale, and their results are dropped.
"""
import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time as dtime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from pickups.core.config import settings
from pickups.core.errors import BOOKING_NOT_FOUND, CAPACITY_EXCEEDED, PickupError
from pickups.schemas.pickup import Booking, Guide, GuideAssignmentList, PickupListStats
from pickups.services import assignment_service
from pickups.services.assignment_service import AssignmentResult
from pickups.services.booking_fetcher import date_key
from pickups.services.reconciler import (
    OverrideSet,
    Reconciler,
    apply_overrides,
    build_guide_lists,
    merge_manual_bookings,
    sort_by_pickup_place,
)

logger = logging.getLogger(__name__)


class BookingNotFound(PickupError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"booking {booking_id} not found")


class LoadStatus(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


@dataclass(frozen=True)
class PickupState:
    status: LoadStatus = LoadStatus.IDLE
    selected_date: Optional[date] = None
    bookings: Tuple[Booking, ...] = ()
    current_user_bookings: Tuple[Booking, ...] = ()
    guide_lists: Tuple[GuideAssignmentList, ...] = ()
    stats: PickupListStats = field(default_factory=PickupListStats)
    error: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.status is LoadStatus.LOADING


Listener = Callable[[PickupState], None]


class PickupOrchestrator:
    def __init__(
        self,
        fetcher,
        store,
        *,
        max_passengers: Optional[int] = None,
        secondary_timeout: Optional[float] = None,
        auto_cache_days: Optional[int] = None,
        current_user_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.fetcher = fetcher
        self.store = store
        self.reconciler = Reconciler(store)
        self.max_passengers = max_passengers or settings.MAX_PASSENGERS_PER_BUS
        self.secondary_timeout = secondary_timeout if secondary_timeout is not None else settings.SECONDARY_LOAD_TIMEOUT
        self.auto_cache_days = auto_cache_days if auto_cache_days is not None else settings.AUTO_CACHE_DAYS
        self.current_user_id = current_user_id
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self._state = PickupState()
        self._listeners: List[Listener] = []
        self._token = 0
        self._orders: Dict[str, List[str]] = {}
        self._memory: Dict[str, PickupState] = {}

    # ---------- observation ----------

    @property
    def state(self) -> PickupState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **changes) -> PickupState:
        self._state = replace(self._state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("Pickup state listener failed")
        return self._state

    def clear_error(self) -> None:
        if self._state.error is not None:
            self._set_state(error=None)

    def set_current_user(self, user_id: Optional[str]) -> None:
        self.current_user_id = user_id
        if self._state.selected_date is not None:
            self._publish(self._state.bookings)

    # ---------- loading ----------

    async def _secondary(self, kind: str, fn, *args, default=None):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self.secondary_timeout)
        except asyncio.TimeoutError:
            logger.warning("%s load timed out after %ss; using default", kind, self.secondary_timeout)
        except Exception:
            logger.exception("%s load failed; using default", kind)
        return default

    def _should_auto_cache(self, target: date) -> bool:
        age = (self.clock().astimezone(timezone.utc).date() - target).days
        return 0 <= age <= self.auto_cache_days

    async def load_bookings_for_date(self, target: date, force_refresh: bool = False) -> PickupState:
        self._token += 1
        token = self._token
        key = date_key(target)
        previous = self._state
        same_date = previous.selected_date == target
        if same_date:
            self._set_state(status=LoadStatus.LOADING, error=None)
        else:
            self._orders = {}
            self._set_state(status=LoadStatus.LOADING, selected_date=target, error=None, bookings=(),
                            current_user_bookings=(), guide_lists=(), stats=PickupListStats())
        try:
            fetched = await asyncio.to_thread(self.fetcher.fetch, target)
            if token != self._token:
                logger.info("Discarding stale load for %s", target)
                return self._state

            statuses, assignments, places, manual = await asyncio.gather(
                self._secondary("status", self.reconciler.load_statuses, key, default={}),
                self._secondary("assignment", self.reconciler.load_assignments, key, default={}),
                self._secondary("pickup place", self.reconciler.load_pickup_places, key, default={}),
                self._secondary("manual booking", self.reconciler.load_manual, key, default=[]),
            )
            if token != self._token:
                logger.info("Discarding stale load for %s", target)
                return self._state

            merged = merge_manual_bookings(fetched, manual)
            if not fetched and not force_refresh and same_date and previous.bookings:
                logger.info("Empty upstream result for %s; keeping %s existing bookings", target, len(previous.bookings))
                return self._set_state(status=LoadStatus.LOADED)

            overrides = OverrideSet(statuses=statuses, assignments=assignments, pickup_places=places)
            bookings = sort_by_pickup_place(apply_overrides(merged, overrides))

            guide_ids = list(dict.fromkeys(b.assigned_guide_id for b in bookings if b.assigned_guide_id))
            saved = await asyncio.gather(*(
                self._secondary("order", self.reconciler.load_order, gid, key, default=[]) for gid in guide_ids
            ))
            if fetched and self._should_auto_cache(target):
                await self._secondary("cache write", self.store.cache_bookings, key, fetched, default=0)
            if token != self._token:
                logger.info("Discarding stale load for %s", target)
                return self._state

            self._orders = {gid: ids for gid, ids in zip(guide_ids, saved) if ids}
            self._publish(bookings, status=LoadStatus.LOADED)
            logger.info("Loaded %s bookings for %s (%s guides)", len(bookings), target, len(self._state.guide_lists))
        except Exception as e:
            if token != self._token:
                return self._state
            if isinstance(e, PickupError):
                logger.error("Failed to load bookings for %s: %s", target, e)
            else:
                logger.exception("Unexpected error loading bookings for %s", target)
            restored = self._memory.get(key)
            if restored is not None:
                self._state = replace(restored, status=LoadStatus.ERROR, error=str(e))
                self._set_state()
            elif same_date and previous.bookings:
                self._set_state(status=LoadStatus.ERROR, error=str(e))
            else:
                self._set_state(status=LoadStatus.ERROR, error=str(e), current_user_bookings=())
        finally:
            if token == self._token and self._state.status is LoadStatus.LOADING:
                self._set_state(status=LoadStatus.ERROR, error=self._state.error or "Loading did not complete")
        return self._state

    async def refresh_bookings(self) -> PickupState:
        if self._state.selected_date is None:
            raise ValueError("No date selected")
        return await self.load_bookings_for_date(self._state.selected_date, force_refresh=True)

    # ---------- views ----------

    def _publish(self, bookings: Iterable[Booking], **changes) -> PickupState:
        bookings = tuple(bookings)
        target = self._state.selected_date
        guide_lists = tuple(build_guide_lists(bookings, target, self._orders))
        current: Tuple[Booking, ...] = ()
        if self.current_user_id:
            mine = next((gl for gl in guide_lists if gl.guide_id == self.current_user_id), None)
            current = mine.bookings if mine else ()
        state = self._set_state(
            bookings=bookings,
            guide_lists=guide_lists,
            current_user_bookings=current,
            stats=PickupListStats.from_bookings(bookings, guide_lists),
            **changes,
        )
        self._memory[date_key(target)] = state
        return state

    def _key(self) -> str:
        if self._state.selected_date is None:
            raise ValueError("No date selected")
        return date_key(self._state.selected_date)

    def _find(self, booking_id: str) -> Booking:
        for b in self._state.bookings:
            if b.id == booking_id:
                return b
        raise BookingNotFound(booking_id)

    def _replace_booking(self, updated: Booking) -> PickupState:
        return self._publish(updated if b.id == updated.id else b for b in self._state.bookings)

    def get_guide_list(self, guide_id: str) -> Optional[GuideAssignmentList]:
        return next((gl for gl in self._state.guide_lists if gl.guide_id == guide_id), None)

    def validate_passenger_count(self, guide_id: str, additional_passengers: int) -> bool:
        gl = self.get_guide_list(guide_id)
        current = gl.total_passengers if gl else 0
        return assignment_service.fits(current, additional_passengers, self.max_passengers)

    # ---------- assignment ----------

    async def assign_booking_to_guide(self, booking_id: str, guide: Guide) -> AssignmentResult:
        key = self._key()
        try:
            booking = self._find(booking_id)
        except BookingNotFound:
            return AssignmentResult(ok=False, guide_lists=list(self._state.guide_lists), reason=BOOKING_NOT_FOUND)
        if booking.assigned_guide_id != guide.id and not self.validate_passenger_count(guide.id, booking.guest_count):
            return AssignmentResult(ok=False, guide_lists=list(self._state.guide_lists), reason=CAPACITY_EXCEEDED)

        await asyncio.to_thread(self.store.save_pickup_assignment, booking_id, key, guide.id, guide.name, self.current_user_id or "ops")
        assigned = booking.model_copy(update={"assigned_guide_id": guide.id, "assigned_guide_name": guide.name})
        state = self._replace_booking(assigned)
        return AssignmentResult(ok=True, guide_lists=list(state.guide_lists), placed=[(assigned, guide)])

    async def unassign_booking(self, booking_id: str) -> Booking:
        key = self._key()
        booking = self._find(booking_id)
        await asyncio.to_thread(self.store.remove_pickup_assignment, booking_id, key, self.current_user_id or "ops")
        updated = booking.model_copy(update={"assigned_guide_id": None, "assigned_guide_name": None})
        self._replace_booking(updated)
        return updated

    async def move_booking_between_guides(self, booking_id: str, target_guide: Guide) -> AssignmentResult:
        key = self._key()
        try:
            if not self._find(booking_id).assigned_guide_id:
                return await self.assign_booking_to_guide(booking_id, target_guide)
        except BookingNotFound:
            return AssignmentResult(ok=False, guide_lists=list(self._state.guide_lists), reason=BOOKING_NOT_FOUND)
        result = assignment_service.move_booking_to_guide(
            self._state.guide_lists, booking_id, target_guide, self._state.selected_date, self.max_passengers
        )
        if not result.ok or not result.placed:
            return result
        moved, guide = result.placed[0]
        await asyncio.to_thread(self.store.save_pickup_assignment, moved.id, key, guide.id, guide.name, self.current_user_id or "ops")
        state = self._replace_booking(moved)
        return replace(result, guide_lists=list(state.guide_lists))

    async def distribute_bookings(self, guides: Sequence[Guide]) -> AssignmentResult:
        key = self._key()
        result = assignment_service.distribute_bookings(
            self._state.bookings, guides, self._state.selected_date, self.max_passengers, existing=self._state.guide_lists
        )
        actor = self.current_user_id or "ops"
        for booking, guide in result.placed:
            await asyncio.to_thread(self.store.save_pickup_assignment, booking.id, key, guide.id, guide.name, actor)
        if result.placed:
            placed = {b.id: b for b, _ in result.placed}
            self._publish(placed.get(b.id, b) for b in self._state.bookings)
        skipped = sum(1 for b in self._state.bookings if not b.assigned_guide_id)
        logger.info("Distributed %s bookings over %s guides; %s left unassigned", len(result.placed), len(guides), skipped)
        return replace(result, guide_lists=list(self._state.guide_lists))

    # ---------- status ----------

    async def _update_status(self, booking_id: str, **flags) -> Booking:
        key = self._key()
        booking = self._find(booking_id)
        await asyncio.to_thread(
            lambda: self.store.update_booking_status(booking_id, key, actor=self.current_user_id or "ops", **flags)
        )
        updated = booking.model_copy(update=flags)
        self._replace_booking(updated)
        return updated

    async def mark_as_no_show(self, booking_id: str, no_show: bool = True) -> Booking:
        return await self._update_status(booking_id, is_no_show=no_show)

    async def mark_as_arrived(self, booking_id: str, arrived: bool = True) -> Booking:
        return await self._update_status(booking_id, is_arrived=arrived)

    async def mark_as_paid_on_arrival(self, booking_id: str, paid: bool = True) -> Booking:
        return await self._update_status(booking_id, paid_on_arrival=paid)

    # ---------- pickup place & order ----------

    async def update_pickup_place(self, booking_id: str, pickup_place: str) -> Booking:
        place = (pickup_place or "").strip()
        if not place:
            raise ValueError("pickup place must not be empty")
        key = self._key()
        booking = self._find(booking_id)
        await asyncio.to_thread(self.store.save_updated_pickup_place, booking_id, key, place, self.current_user_id or "ops")
        updated = booking.model_copy(update={"pickup_place_name": place})
        self._publish(sort_by_pickup_place(updated if b.id == booking_id else b for b in self._state.bookings))
        return updated

    async def reorder_guide_bookings(self, guide_id: str, booking_ids: Sequence[str]) -> Optional[GuideAssignmentList]:
        key = self._key()
        await asyncio.to_thread(self.store.save_reordered_bookings, guide_id, key, list(booking_ids), self.current_user_id or "ops")
        self._orders[guide_id] = list(booking_ids)
        self._publish(self._state.bookings)
        return self.get_guide_list(guide_id)

    async def reorder_current_user_bookings(self, booking_ids: Sequence[str]) -> Optional[GuideAssignmentList]:
        if not self.current_user_id:
            raise ValueError("No current user")
        return await self.reorder_guide_bookings(self.current_user_id, booking_ids)

    async def reset_to_alphabetical_order(self, guide_id: Optional[str] = None) -> Optional[GuideAssignmentList]:
        guide_id = guide_id or self.current_user_id
        if not guide_id:
            raise ValueError("No guide selected")
        key = self._key()
        await asyncio.to_thread(self.store.remove_reordered_bookings, guide_id, key, self.current_user_id or "ops")
        self._orders.pop(guide_id, None)
        self._publish(self._state.bookings)
        return self.get_guide_list(guide_id)

    # ---------- manual bookings ----------

    async def create_manual_booking(
        self,
        customer_full_name: str,
        pickup_place_name: str,
        *,
        pickup_time: Optional[datetime] = None,
        guest_count: int = 1,
        phone: str = "",
        email: str = "",
    ) -> Booking:
        key = self._key()
        target = self._state.selected_date
        booking = Booking(
            id=f"manual_{int(time.time() * 1000)}",
            customer_full_name=customer_full_name.strip() or "Unknown Customer",
            pickup_place_name=pickup_place_name.strip() or "Pickup pending",
            pickup_time=pickup_time or datetime.combine(target, dtime(9, 0), tzinfo=timezone.utc),
            guest_count=guest_count,
            phone=phone,
            email=email,
        )
        await asyncio.to_thread(self.store.save_manual_booking, key, booking, self.current_user_id or "ops")
        self._publish(sort_by_pickup_place(self._state.bookings + (booking,)))
        return booking

    async def delete_booking(self, booking_id: str) -> bool:
        """Drop a booking from the view; manual bookings are also deleted for good."""
        key = self._key()
        booking = self._find(booking_id)
        actor = self.current_user_id or "ops"
        await asyncio.to_thread(self.store.remove_pickup_assignment, booking_id, key, actor)
        if booking.is_manual:
            await asyncio.to_thread(self.store.delete_manual_booking, key, booking_id, actor)
        self._publish(b for b in self._state.bookings if b.id != booking_id)
        return True
