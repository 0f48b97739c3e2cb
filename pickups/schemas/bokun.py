"""Typed view of a Bókun booking-search item.

Upstream records are inconsistent: the same concept shows up under different
keys, as a string or an object, as a number or a numeric string. Every field
here is optional and coerced leniently so that one odd value does not reject
the whole record; the pickup/payment extractors work on these models only.
"""
import math
from typing import Annotated, Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field


def _loose_number(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float, str)):
        try:
            n = float(v.strip().replace(",", "") if isinstance(v, str) else v)
        except (ValueError, OverflowError):
            return None
        # "inf", "nan" and "1e400" parse but are not amounts
        return n if math.isfinite(n) else None
    if isinstance(v, dict):
        # Money-like objects: {"amount": 12.5, "currency": "ISK"}
        return _loose_number(v.get("amount"))
    return None


def _loose_text(v: Any) -> Optional[str]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, str):
        return v
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, list):
        parts = [_loose_text(x) for x in v]
        joined = ", ".join(p for p in parts if p)
        return joined or None
    return None


def _loose_int(v: Any) -> Optional[int]:
    n = _loose_number(v)
    return int(n) if n is not None else None


def _loose_bool(v: Any) -> Optional[bool]:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().lower() in ("true", "false"):
        return v.strip().lower() == "true"
    return None


def _list_or_empty(v: Any) -> list:
    if v is None:
        return []
    if isinstance(v, list):
        return v
    return [v]


def _dict_or_empty(v: Any) -> dict:
    return v if isinstance(v, dict) else {}


LooseNumber = Annotated[Optional[float], BeforeValidator(_loose_number)]
LooseText = Annotated[Optional[str], BeforeValidator(_loose_text)]
LooseInt = Annotated[Optional[int], BeforeValidator(_loose_int)]
LooseBool = Annotated[Optional[bool], BeforeValidator(_loose_bool)]
# Epoch millis or an ISO string; interpreted by the normalizer.
DateValue = Optional[Union[int, float, str]]


class _Raw(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class PickupPlace(_Raw):
    title: LooseText = Field(default=None, validation_alias=AliasChoices("title", "name"))
    address: LooseText = None

    @classmethod
    def coerce(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"title": v}
        if isinstance(v, dict):
            return v
        return None


PlaceValue = Annotated[Optional[PickupPlace], BeforeValidator(PickupPlace.coerce)]


class Answer(_Raw):
    question: LooseText = Field(default=None, validation_alias=AliasChoices("question", "label", "title", "type"))
    answer: LooseText = Field(default=None, validation_alias=AliasChoices("answer", "value", "answerText"))


class Note(_Raw):
    body: LooseText = Field(default=None, validation_alias=AliasChoices("body", "text", "note", "content"))

    @classmethod
    def coerce(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"body": v}
        return v


Answers = Annotated[List[Answer], BeforeValidator(_list_or_empty)]
Notes = Annotated[
    List[Annotated[Note, BeforeValidator(Note.coerce)]],
    BeforeValidator(_list_or_empty),
]


class Customer(_Raw):
    first_name: LooseText = Field(default=None, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: LooseText = Field(default=None, validation_alias=AliasChoices("lastName", "last_name"))
    email: LooseText = None
    phone: LooseText = Field(default=None, validation_alias=AliasChoices("phoneNumber", "phone"))


class BookingFields(_Raw):
    """The free-form ``fields`` object attached to a product booking."""
    start_hour: LooseInt = Field(default=None, validation_alias=AliasChoices("startHour", "start_hour"))
    start_minute: LooseInt = Field(default=None, validation_alias=AliasChoices("startMinute", "start_minute"))
    pickup: LooseBool = None
    pickup_place: PlaceValue = Field(default=None, validation_alias=AliasChoices("pickupPlace", "pickup_place"))
    pickup_place_description: LooseText = Field(default=None, validation_alias=AliasChoices("pickupPlaceDescription", "pickupDescription"))
    pickup_place_room_number: LooseText = Field(default=None, validation_alias=AliasChoices("pickupPlaceRoomNumber", "roomNumber"))
    special_requests: LooseText = Field(default=None, validation_alias=AliasChoices("specialRequests", "special_requests"))
    answers: Answers = Field(default_factory=list)


class ProductBooking(_Raw):
    """One sub-booking inside a reservation."""
    id: LooseText = None
    status: LooseText = None
    product_confirmation_code: LooseText = Field(default=None, validation_alias=AliasChoices("productConfirmationCode", "confirmationCode"))
    start_date: DateValue = Field(default=None, validation_alias=AliasChoices("startDate", "date"))
    start_date_time: DateValue = Field(default=None, validation_alias=AliasChoices("startDateTime", "startTime"))
    guest_count: LooseInt = Field(default=None, validation_alias=AliasChoices("totalParticipants", "totalPax", "pax", "guestCount"))
    fields: Annotated[BookingFields, BeforeValidator(_dict_or_empty)] = Field(default_factory=BookingFields)
    pickup: LooseBool = None
    pickup_place: PlaceValue = Field(default=None, validation_alias=AliasChoices("pickupPlace", "pickup_place"))
    pickup_place_description: LooseText = Field(default=None, validation_alias=AliasChoices("pickupPlaceDescription", "pickupDescription"))
    pickup_place_room_number: LooseText = Field(default=None, validation_alias=AliasChoices("pickupPlaceRoomNumber", "roomNumber"))
    special_requests: LooseText = Field(default=None, validation_alias=AliasChoices("specialRequests", "special_requests"))
    answers: Answers = Field(default_factory=list)
    booking_answers: Answers = Field(default_factory=list, validation_alias=AliasChoices("bookingAnswers", "questionAnswers"))
    pickup_answers: Answers = Field(default_factory=list, validation_alias=AliasChoices("pickupAnswers", "pickupQuestions"))
    notes: Notes = Field(default_factory=list)


class Invoice(_Raw):
    total_amount: LooseNumber = Field(default=None, validation_alias=AliasChoices("totalAmount", "totalPrice", "total"))
    paid_amount: LooseNumber = Field(default=None, validation_alias=AliasChoices("paidAmount", "paid"))
    amount_due: LooseNumber = Field(default=None, validation_alias=AliasChoices("amountDue", "dueAmount", "balance"))


class Reservation(_Raw):
    """A top-level Bókun booking (parent record)."""
    id: LooseText = None
    confirmation_code: LooseText = Field(default=None, validation_alias=AliasChoices("confirmationCode", "confirmation_code"))
    external_booking_reference: LooseText = Field(default=None, validation_alias=AliasChoices("externalBookingReference", "bookingReference"))
    status: LooseText = None
    payment_status: LooseText = Field(default=None, validation_alias=AliasChoices("paymentStatus", "payment_status"))
    customer: Optional[Customer] = Field(default=None, validation_alias=AliasChoices("customer", "leadCustomer"))
    pickup_place: PlaceValue = Field(default=None, validation_alias=AliasChoices("pickupPlace", "pickup_place"))
    pickup_place_description: LooseText = Field(default=None, validation_alias=AliasChoices("pickupPlaceDescription", "pickupDescription"))
    special_requests: LooseText = Field(default=None, validation_alias=AliasChoices("specialRequests", "special_requests"))
    answers: Answers = Field(default_factory=list)
    notes: Notes = Field(default_factory=list)
    guest_count: LooseInt = Field(default=None, validation_alias=AliasChoices("totalParticipants", "totalPax", "pax", "guestCount"))
    product_bookings: Annotated[List[ProductBooking], BeforeValidator(_list_or_empty)] = Field(default_factory=list, validation_alias=AliasChoices("productBookings", "activityBookings"))

    amount_due: LooseNumber = Field(default=None, validation_alias=AliasChoices("amountDue", "totalDue", "dueAmount", "balance", "outstandingAmount"))
    total_price: LooseNumber = Field(default=None, validation_alias=AliasChoices("totalPrice", "totalAmount"))
    paid_amount: LooseNumber = Field(default=None, validation_alias=AliasChoices("paidAmount", "totalPaid"))
    invoice: Optional[Invoice] = Field(default=None, validation_alias=AliasChoices("invoice", "customerInvoice"))
    total_price_as_money: LooseNumber = Field(default=None, validation_alias=AliasChoices("totalPriceAsMoney", "totalPriceMoney"))
    paid_amount_as_money: LooseNumber = Field(default=None, validation_alias=AliasChoices("paidAmountAsMoney", "paidAmountMoney"))
