from functools import lru_cache

from fastapi import Depends

from pickups.services.booking_fetcher import BookingFetcher, build_default_fetcher
from pickups.services.override_store import OverrideStore
from pickups.services.pickup_orchestrator import PickupOrchestrator


@lru_cache
def get_store() -> OverrideStore:
    return OverrideStore()


def get_fetcher(store: OverrideStore = Depends(get_store)) -> BookingFetcher:
    return build_default_fetcher(store)


def get_orchestrator(
    guide_id: str | None = None,
    store: OverrideStore = Depends(get_store),
    fetcher: BookingFetcher = Depends(get_fetcher),
) -> PickupOrchestrator:
    # One orchestrator per request; guide_id selects the current-user view.
    return PickupOrchestrator(fetcher, store, current_user_id=guide_id)
