from sqlalchemy import String, Integer, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from pickups.db.session import Base

class CachedBookings(Base):
    __tablename__ = "cached_bookings"

    date_key: Mapped[str] = mapped_column(String(10), primary_key=True)
    bookings_json: Mapped[str] = mapped_column(Text, default="[]")
    booking_count: Mapped[int] = mapped_column(Integer, default=0)
    cached_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
