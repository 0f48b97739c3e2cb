import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import ProgrammingError

from pickups.core.errors import PickupError
from pickups.services.booking_fetcher import build_default_fetcher, date_key
from pickups.services.override_store import OverrideStore

logger = logging.getLogger(__name__)


def cache_recent_bookings(days_back: int = 0, store: OverrideStore | None = None, fetcher=None, now: datetime | None = None) -> dict:
    """Fetch today (and optionally the previous ``days_back`` days) and write each to the booking cache."""
    store = store or OverrideStore()
    fetcher = fetcher or build_default_fetcher(store)
    if not fetcher.client.has_credentials:
        return {"skipped": True, "reason": "missing_credentials"}
    today = (now or datetime.now(timezone.utc)).date()
    cached = {}
    for offset in range(days_back + 1):
        d = today - timedelta(days=offset)
        try:
            bookings = fetcher.fetch(d)
        except PickupError as e:
            logger.error("Could not fetch bookings for %s: %s", d, e)
            cached[date_key(d)] = None
            continue
        if not bookings:
            cached[date_key(d)] = 0
            continue
        try:
            cached[date_key(d)] = store.cache_bookings(date_key(d), bookings)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            return {"skipped": True, "reason": "missing_tables"}
    return {"cached": cached}
