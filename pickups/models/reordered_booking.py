from sqlalchemy import String, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from pickups.db.session import Base

class ReorderedBookings(Base):
    """A guide's manually chosen visiting order for one day."""
    __tablename__ = "reordered_bookings"
    __table_args__ = (UniqueConstraint("guide_id", "date_key", name="uq_reordered_bookings_guide_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    guide_id: Mapped[str] = mapped_column(String(64), index=True)
    date_key: Mapped[str] = mapped_column(String(10), index=True)
    booking_ids_json: Mapped[str] = mapped_column(Text, default="[]")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
