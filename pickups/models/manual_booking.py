from sqlalchemy import String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from pickups.db.session import Base

class ManualBooking(Base):
    """Operator-entered booking that does not exist upstream."""
    __tablename__ = "manual_bookings"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # manual_<ms>
    date_key: Mapped[str] = mapped_column(String(10), index=True)
    booking_json: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
