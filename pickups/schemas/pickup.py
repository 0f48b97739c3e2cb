from datetime import date, datetime
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Booking(BaseModel):
    """One customer's pickup for one tour date (canonical, ephemeral)."""
    model_config = ConfigDict(frozen=True)

    id: str
    customer_full_name: str = "Unknown Customer"
    pickup_place_name: str
    pickup_time: datetime
    guest_count: int = Field(default=1, ge=1)
    phone: str = ""
    email: str = ""
    booking_reference: Optional[str] = None
    confirmation_code: Optional[str] = None
    is_unpaid: bool = False
    balance_due: Optional[float] = None
    assigned_guide_id: Optional[str] = None
    assigned_guide_name: Optional[str] = None
    is_arrived: bool = False
    is_no_show: bool = False
    paid_on_arrival: bool = False

    @property
    def tour_date(self) -> date:
        return self.pickup_time.date()

    @property
    def is_manual(self) -> bool:
        return self.id.startswith("manual_")


class Guide(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class GuideAssignmentList(BaseModel):
    model_config = ConfigDict(frozen=True)

    guide_id: str
    guide_name: str
    tour_date: date
    bookings: Tuple[Booking, ...] = ()

    @computed_field
    @property
    def total_passengers(self) -> int:
        return sum(b.guest_count for b in self.bookings)


class PickupListStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_bookings: int = 0
    total_passengers: int = 0
    assigned_bookings: int = 0
    unassigned_bookings: int = 0
    no_shows: int = 0
    guide_lists: Tuple[GuideAssignmentList, ...] = ()

    @classmethod
    def from_bookings(cls, bookings, guide_lists=()) -> "PickupListStats":
        bookings = list(bookings)
        assigned = sum(1 for b in bookings if b.assigned_guide_id)
        return cls(
            total_bookings=len(bookings),
            total_passengers=sum(b.guest_count for b in bookings),
            assigned_bookings=assigned,
            unassigned_bookings=len(bookings) - assigned,
            no_shows=sum(1 for b in bookings if b.is_no_show),
            guide_lists=tuple(guide_lists),
        )


# Override records. Keyed by (booking_id, date_key) except OrderOverride.

class StatusOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_arrived: bool = False
    is_no_show: bool = False
    paid_on_arrival: bool = False


class AssignmentOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    guide_id: str
    guide_name: str = ""


class PickupPlaceOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    pickup_place: str


class OrderOverride(BaseModel):
    model_config = ConfigDict(frozen=True)

    guide_id: str
    date_key: str
    booking_ids: Tuple[str, ...] = ()
