from pickups.tasks.celery_app import celery
from pickups.tasks import worker_jobs


@celery.task(name="pickups.tasks.jobs.cache_recent_bookings")
def cache_recent_bookings(days_back: int = 0):
    return worker_jobs.cache_recent_bookings(days_back=days_back)
