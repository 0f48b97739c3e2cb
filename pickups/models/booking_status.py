from sqlalchemy import String, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from pickups.db.session import Base

class BookingStatus(Base):
    __tablename__ = "booking_statuses"
    __table_args__ = (UniqueConstraint("date_key", "booking_id", name="uq_booking_statuses_date_booking"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    date_key: Mapped[str] = mapped_column(String(10), index=True)  # YYYY-MM-DD
    booking_id: Mapped[str] = mapped_column(String(64), index=True)

    is_arrived: Mapped[bool] = mapped_column(Boolean, default=False)
    is_no_show: Mapped[bool] = mapped_column(Boolean, default=False)
    paid_on_arrival: Mapped[bool] = mapped_column(Boolean, default=False)

    updated_by: Mapped[str] = mapped_column(String(64), default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
