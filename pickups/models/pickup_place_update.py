from sqlalchemy import String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from pickups.db.session import Base

class PickupPlaceUpdate(Base):
    __tablename__ = "pickup_place_updates"
    __table_args__ = (UniqueConstraint("date_key", "booking_id", name="uq_pickup_place_updates_date_booking"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    date_key: Mapped[str] = mapped_column(String(10), index=True)
    booking_id: Mapped[str] = mapped_column(String(64), index=True)
    pickup_place: Mapped[str] = mapped_column(String(500))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
