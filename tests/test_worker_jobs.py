from datetime import datetime, timezone

from pickups.core.errors import UpstreamApiError
from pickups.tasks.worker_jobs import cache_recent_bookings

from conftest import make_booking

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class FakeClient:
    def __init__(self, has_credentials=True):
        self.has_credentials = has_credentials


class FakeFetcher:
    def __init__(self, results, has_credentials=True):
        self.client = FakeClient(has_credentials)
        self.results = results

    def fetch(self, target):
        result = self.results.get(target.isoformat(), [])
        if isinstance(result, Exception):
            raise result
        return result


def test_skips_without_credentials(store):
    result = cache_recent_bookings(store=store, fetcher=FakeFetcher({}, has_credentials=False), now=NOW)
    assert result == {"skipped": True, "reason": "missing_credentials"}


def test_caches_today_and_reports_failures(store):
    fetcher = FakeFetcher({
        "2026-10-18": [make_booking("b1"), make_booking("b2")],
        "2026-10-17": UpstreamApiError(500, "down"),
    })
    result = cache_recent_bookings(days_back=2, store=store, fetcher=fetcher, now=NOW)

    assert result == {"cached": {"2026-10-18": 2, "2026-10-17": None, "2026-10-16": 0}}
    assert [b.id for b in store.get_cached_bookings("2026-10-18")] == ["b1", "b2"]
