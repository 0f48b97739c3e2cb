import os

# Settings are read at import time; point them at a throwaway database first.
os.environ.setdefault("DATABASE_URL", "sqlite:///./pickups-test.db")
os.environ.setdefault("BOKUN_ACCESS_KEY", "")
os.environ.setdefault("BOKUN_SECRET_KEY", "")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from pickups.db.session import Base, make_engine  # noqa: E402
from pickups.models import (  # noqa: E402,F401
    audit_log,
    booking_status,
    cached_booking,
    manual_booking,
    pickup_assignment,
    pickup_place_update,
    reordered_booking,
)
from pickups.schemas.pickup import Booking  # noqa: E402
from pickups.services.override_store import OverrideStore  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'pickups.db'}")
    Base.metadata.create_all(engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return OverrideStore(session_factory)


def make_booking(booking_id: str, place: str = "Hotel Saga", guests: int = 1, **kwargs) -> Booking:
    kwargs.setdefault("pickup_time", datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc))
    return Booking(id=booking_id, customer_full_name=f"Guest {booking_id}", pickup_place_name=place, guest_count=guests, **kwargs)
