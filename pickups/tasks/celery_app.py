from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import after_setup_logger
from pickups.core.config import settings
from pickups.core.logging import configure_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        return urlunparse(parsed._replace(query=urlencode(qs, doseq=True)))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "pickups",
    broker=_redis_url,
    backend=_redis_url,
    include=["pickups.tasks.jobs"],
)

celery.conf.timezone = "UTC"


@after_setup_logger.connect
def on_setup_logger(logger, **kwargs):
    configure_logging()


celery.conf.beat_schedule = {
    # Keep today's list in the booking cache so it is still readable once
    # the date is too old for Bokun to serve.
    "cache-recent-bookings-hourly": {
        "task": "pickups.tasks.jobs.cache_recent_bookings",
        "schedule": 3600.0,
    },
}
