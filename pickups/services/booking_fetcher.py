"""Bookings for one tour date, from Bokun or the booking cache.

Bokun refuses ``startDateRange`` queries that begin in the past for some
accounts, so past dates go through an ordered list of fallback strategies.
Dates older than the retention window never touch the network.
"""
import enum
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Protocol

from pickups.core.config import settings
from pickups.core.errors import PickupError
from pickups.schemas.pickup import Booking
from pickups.services.bokun_client import BokunClient, BokunConfig
from pickups.services.booking_normalizer import normalize_batch, on_tour_date

logger = logging.getLogger(__name__)


class DateClass(str, enum.Enum):
    TOO_OLD = "too_old"
    PAST_RECENT = "past_recent"
    CURRENT_OR_FUTURE = "current_or_future"


def date_key(d: date) -> str:
    return d.isoformat()


def classify_date(target: date, now: datetime, retention_days: int = 30) -> DateClass:
    today = now.astimezone(timezone.utc).date()
    if target < today - timedelta(days=retention_days):
        return DateClass.TOO_OLD
    if target < today:
        return DateClass.PAST_RECENT
    return DateClass.CURRENT_OR_FUTURE


def day_window(d: date):
    """[00:00:00.000, 23:59:59.999] UTC of ``d``."""
    start = datetime.combine(d, time.min, tzinfo=timezone.utc)
    end = datetime.combine(d, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return start, end


class Strategy(Protocol):
    name: str

    def attempt(self, target: date) -> Optional[List[Booking]]:
        """Bookings for ``target``, or None to let the next strategy try."""


def first_success(strategies: Iterable[Strategy], target: date) -> List[Booking]:
    for strategy in strategies:
        result = strategy.attempt(target)
        if result:
            logger.info("Strategy %s returned %s bookings for %s", strategy.name, len(result), target)
            return result
        logger.info("Strategy %s returned nothing for %s", strategy.name, target)
    return []


class _SearchStrategy:
    """Shared body of the network strategies: search, normalize, filter, cache."""
    name = "search"

    def __init__(self, client: BokunClient, cache, clock: Callable[[], datetime], normalize=normalize_batch):
        self.client = client
        self.cache = cache
        self.clock = clock
        self.normalize = normalize

    def search(self, target: date, now: datetime) -> list:
        raise NotImplementedError

    def attempt(self, target: date) -> Optional[List[Booking]]:
        now = self.clock()
        try:
            items = self.search(target, now)
            bookings = on_tour_date(self.normalize(items, now=now), target)
        except PickupError as e:
            logger.warning("Strategy %s failed for %s: %s", self.name, target, e)
            return None
        except Exception:
            logger.exception("Strategy %s failed for %s", self.name, target)
            return None
        if not bookings:
            return None
        try:
            self.cache.cache_bookings(date_key(target), bookings)
        except Exception:
            logger.exception("Could not cache %s bookings for %s", len(bookings), target)
        return bookings


class WideWindowStrategy(_SearchStrategy):
    """Search from the target day up to the end of today."""
    name = "wide_window"

    def search(self, target: date, now: datetime) -> list:
        start, _ = day_window(target)
        _, end = day_window(now.astimezone(timezone.utc).date())
        return self.client.search_by_start_date(start, end)


class CreationDateStrategy(_SearchStrategy):
    """Search bookings created in the lookback window, whatever their tour date."""
    name = "creation_date"

    def __init__(self, client, cache, clock, normalize=normalize_batch, lookback_days: int = 60):
        super().__init__(client, cache, clock, normalize)
        self.lookback_days = lookback_days

    def search(self, target: date, now: datetime) -> list:
        return self.client.search_by_creation_date(now - timedelta(days=self.lookback_days), now)


class CacheFallbackStrategy:
    name = "cache"

    def __init__(self, cache):
        self.cache = cache

    def attempt(self, target: date) -> Optional[List[Booking]]:
        try:
            return self.cache.get_cached_bookings(date_key(target)) or None
        except Exception:
            logger.exception("Booking cache read failed for %s", target)
            return None


class BookingFetcher:
    def __init__(self, client: BokunClient, cache, retention_days: int = 30, creation_lookback_days: int = 60,
                 clock: Optional[Callable[[], datetime]] = None, normalize=normalize_batch):
        self.client = client
        self.cache = cache
        self.retention_days = retention_days
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.normalize = normalize
        self.past_strategies: List[Strategy] = [
            WideWindowStrategy(client, cache, self.clock, normalize),
            CreationDateStrategy(client, cache, self.clock, normalize, lookback_days=creation_lookback_days),
            CacheFallbackStrategy(cache),
        ]

    def fetch(self, target: date) -> List[Booking]:
        """Bookings for ``target``.

        Only current/future dates raise: past dates end in the cache or in an
        empty list.
        """
        now = self.clock()
        kind = classify_date(target, now, self.retention_days)
        if kind is DateClass.TOO_OLD:
            logger.info("%s is outside the %s-day retention window; cache only", target, self.retention_days)
            return CacheFallbackStrategy(self.cache).attempt(target) or []
        if kind is DateClass.PAST_RECENT:
            return first_success(self.past_strategies, target)

        start, end = day_window(target)
        items = self.client.search_by_start_date(start, end)
        bookings = self.normalize(items, now=now)
        logger.info("Fetched %s bookings for %s", len(bookings), target)
        return bookings


def build_default_fetcher(store) -> BookingFetcher:
    return BookingFetcher(
        BokunClient(BokunConfig.from_settings()),
        store,
        retention_days=settings.RETENTION_DAYS,
        creation_lookback_days=settings.CREATION_LOOKBACK_DAYS,
    )
