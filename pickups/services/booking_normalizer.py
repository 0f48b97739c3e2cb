"""Bókun reservation record -> canonical Booking.

A reservation may carry several product bookings under one parent id: a
reschedule leaves the cancelled original next to the new confirmed one. Only
sub-bookings in VALID_STATUSES are considered, and the first of those is the
source of truth for tour time and guest count.
"""
import logging
import re
from datetime import date, datetime, time, timezone
from typing import Iterable, List, Optional

from pydantic import ValidationError

from pickups.core.errors import MalformedRecord
from pickups.schemas.bokun import Answer, PickupPlace, ProductBooking, Reservation
from pickups.schemas.pickup import Booking

logger = logging.getLogger(__name__)

VALID_STATUSES = frozenset({"CONFIRMED", "INVOICED", "PAID_IN_FULL"})

PICKUP_PENDING = "Pickup pending"
MEET_ON_LOCATION = "Meet on location"

# Customer-facing defaults that look like answers but are not locations.
PLACEHOLDER_PHRASES = (
    "i will select my pickup location later",
    "i will select my pickup place later",
    "select pickup location later",
    "i will decide later",
)
PLACEHOLDER_VALUES = frozenset({"", "-", "n/a", "na", "none", "tbd", "tba", "later", "unknown"})

PICKUP_KEYWORDS = ("pickup", "pick up", "pick-up", "hotel", "accommodation", "staying", "guesthouse", "airbnb")

# "Pickup point changed from Hotel Saga to **Hotel Borg**" (written by back office)
_CHANGED_PICKUP_RE = re.compile(r"pick\s*-?\s*up.*?changed\s+from\s+.+?\s+to\s+\*\*(.+?)\*\*", re.IGNORECASE | re.DOTALL)

# Unpaid values are checked first: "NOT_PAID" must never match as paid.
UNPAID_PREFIXES = ("NOT_PAID", "UNPAID", "PARTIALLY_PAID")
PAID_PREFIXES = ("PAID",)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = " ".join(value.split())
    return text or None


def is_placeholder(value: Optional[str]) -> bool:
    text = _clean(value)
    if text is None:
        return True
    lowered = text.lower().strip(" .!")
    if lowered in PLACEHOLDER_VALUES:
        return True
    return any(phrase in lowered for phrase in PLACEHOLDER_PHRASES)


def _usable(value: Optional[str]) -> Optional[str]:
    text = _clean(value)
    return None if is_placeholder(text) else text


def _mentions_pickup(text: Optional[str]) -> bool:
    lowered = (text or "").lower()
    return any(k in lowered for k in PICKUP_KEYWORDS)


# ---------- sub-booking selection ----------

def valid_product_bookings(res: Reservation) -> List[ProductBooking]:
    """Sub-bookings that are still live. A missing sub-status inherits the parent's."""
    out = []
    for pb in res.product_bookings:
        status = (pb.status or res.status or "").strip().upper()
        if status in VALID_STATUSES:
            out.append(pb)
    return out


# ---------- tour time ----------

def parse_datetime_value(value) -> Optional[datetime]:
    """Epoch millis (int or digit string) or ISO-8601; naive values are taken as UTC."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return parse_datetime_value(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def pickup_time(pb: ProductBooking, now: datetime) -> datetime:
    f = pb.fields
    if f.start_hour is not None and f.start_minute is not None:
        base = parse_datetime_value(pb.start_date) or parse_datetime_value(pb.start_date_time)
        if base is not None:
            try:
                return datetime.combine(base.date(), time(f.start_hour, f.start_minute), tzinfo=timezone.utc)
            except ValueError:
                logger.warning("Invalid start time %s:%s on sub-booking %s", f.start_hour, f.start_minute, pb.id)
    for value in (pb.start_date_time, pb.start_date):
        parsed = parse_datetime_value(value)
        if parsed is not None:
            return parsed
    logger.warning("No usable tour time on sub-booking %s; defaulting to now", pb.id)
    return now


def guest_count(pb: ProductBooking, res: Optional[Reservation] = None) -> int:
    # Parent-level count only when the sub-booking carries none.
    count = pb.guest_count or (res.guest_count if res is not None else None)
    return max(1, count or 1)


# ---------- pickup location chain ----------

def _place_text(place: Optional[PickupPlace]) -> Optional[str]:
    if place is None:
        return None
    title = _usable(place.title)
    if title is None:
        return None
    address = _usable(place.address)
    if address and address.lower() not in title.lower():
        return f"{title}, {address}"
    return title


def pickup_from_structured_place(res: Reservation, pb: ProductBooking) -> Optional[str]:
    return _place_text(pb.pickup_place) or _place_text(pb.fields.pickup_place)


def pickup_from_parent_place(res: Reservation, pb: ProductBooking) -> Optional[str]:
    return _place_text(res.pickup_place)


def pickup_from_description(res: Reservation, pb: ProductBooking) -> Optional[str]:
    for value in (pb.pickup_place_description, pb.fields.pickup_place_description, res.pickup_place_description):
        text = _usable(value)
        if text:
            return text
    return None


def pickup_from_staff_note(res: Reservation, pb: ProductBooking) -> Optional[str]:
    for note in list(pb.notes) + list(res.notes):
        match = _CHANGED_PICKUP_RE.search(note.body or "")
        if match:
            text = _usable(match.group(1))
            if text:
                return text
    return None


def _answer_collections(res: Reservation, pb: ProductBooking) -> Iterable[List[Answer]]:
    return (pb.pickup_answers, pb.answers, pb.booking_answers, pb.fields.answers, res.answers)


def pickup_from_answers(res: Reservation, pb: ProductBooking) -> Optional[str]:
    for answers in _answer_collections(res, pb):
        for a in answers:
            if not _mentions_pickup(a.question):
                continue
            text = _usable(a.answer)
            if text:
                return text
    return None


def pickup_from_special_requests(res: Reservation, pb: ProductBooking) -> Optional[str]:
    for value in (pb.special_requests, pb.fields.special_requests, res.special_requests):
        text = _usable(value)
        if text and _mentions_pickup(text):
            return text
    return None


def pickup_from_room_number(res: Reservation, pb: ProductBooking) -> Optional[str]:
    for value in (pb.pickup_place_room_number, pb.fields.pickup_place_room_number):
        text = _usable(value)
        if text:
            text = re.sub(r"^room\s*", "", text, flags=re.IGNORECASE)
            if text:
                return f"Room {text}"
    return None


PICKUP_CHAIN = (
    pickup_from_structured_place,
    pickup_from_parent_place,
    pickup_from_description,
    pickup_from_staff_note,
    pickup_from_answers,
    pickup_from_special_requests,
    pickup_from_room_number,
)


def pickup_not_requested(pb: ProductBooking) -> bool:
    return pb.fields.pickup is False or pb.pickup is False


def extract_pickup_place(res: Reservation, pb: ProductBooking) -> str:
    if pickup_not_requested(pb):
        return MEET_ON_LOCATION
    for extractor in PICKUP_CHAIN:
        place = extractor(res, pb)
        if place:
            return place
    return PICKUP_PENDING


# ---------- payment ----------

def is_unpaid_status(payment_status: Optional[str]) -> Optional[bool]:
    """True = unpaid, False = paid, None = unknown."""
    value = (payment_status or "").strip().upper()
    if not value:
        return None
    if value.startswith(UNPAID_PREFIXES):
        return True
    if value.startswith(PAID_PREFIXES):
        return False
    return None


def _price_locations(res: Reservation):
    yield res.total_price, res.paid_amount
    if res.invoice is not None:
        yield res.invoice.total_amount, res.invoice.paid_amount
    yield res.total_price_as_money, res.paid_amount_as_money


def outstanding_balance(res: Reservation) -> Optional[float]:
    """Amount owed, or None. Non-positive amounts mean nothing is owed."""
    explicit = res.amount_due
    if explicit is None and res.invoice is not None:
        explicit = res.invoice.amount_due
    if explicit is not None:
        return round(explicit, 2) if explicit > 0 else None
    for total, paid in _price_locations(res):
        if total is None:
            continue
        balance = round(total - (paid or 0.0), 2)
        return balance if balance > 0 else None
    return None


def _has_amounts(res: Reservation) -> bool:
    if res.amount_due is not None or (res.invoice is not None and res.invoice.amount_due is not None):
        return True
    return any(total is not None for total, _ in _price_locations(res))


def payment_state(res: Reservation):
    """(is_unpaid, balance_due). A settled balance clears the unpaid flag."""
    if is_unpaid_status(res.payment_status) is not True:
        return False, None
    balance = outstanding_balance(res)
    if balance is None and _has_amounts(res):
        return False, None
    return True, balance


# ---------- entry points ----------

def parse_reservation(raw) -> Reservation:
    if not isinstance(raw, dict):
        raise MalformedRecord(None, f"expected object, got {type(raw).__name__}")
    try:
        return Reservation.model_validate(raw)
    except ValidationError as e:
        raise MalformedRecord(str(raw.get("id") or "") or None, str(e)) from e


def normalize_reservation(raw, now: Optional[datetime] = None) -> Optional[Booking]:
    """One raw record -> Booking, or None when it has no live sub-booking."""
    now = now or _utcnow()
    res = parse_reservation(raw)
    valid = valid_product_bookings(res)
    if not valid:
        logger.debug("Reservation %s has no valid sub-booking; skipped", res.id)
        return None
    pb = valid[0]

    customer = res.customer
    name = ""
    if customer is not None:
        name = f"{(customer.first_name or '').strip()} {(customer.last_name or '').strip()}".strip()
    is_unpaid, balance = payment_state(res)

    return Booking(
        id=res.id or str(int(now.timestamp() * 1000)),
        customer_full_name=name or "Unknown Customer",
        pickup_place_name=extract_pickup_place(res, pb),
        pickup_time=pickup_time(pb, now),
        guest_count=guest_count(pb, res),
        phone=(customer.phone or "") if customer else "",
        email=(customer.email or "") if customer else "",
        booking_reference=res.external_booking_reference or pb.id,
        confirmation_code=res.confirmation_code or pb.product_confirmation_code,
        is_unpaid=is_unpaid,
        balance_due=balance,
    )


def normalize_batch(items, now: Optional[datetime] = None) -> List[Booking]:
    """Normalize a search page; malformed records are logged and skipped."""
    now = now or _utcnow()
    out: List[Booking] = []
    for raw in items or []:
        try:
            booking = normalize_reservation(raw, now=now)
        except MalformedRecord as e:
            logger.warning("Skipping record: %s", e)
            continue
        except Exception:
            record_id = raw.get("id") if isinstance(raw, dict) else None
            logger.exception("Skipping record %s: unexpected error while normalizing", record_id)
            continue
        if booking is not None:
            out.append(booking)
    return out


def on_tour_date(bookings: Iterable[Booking], target: date) -> List[Booking]:
    return [b for b in bookings if b.tour_date == target]
