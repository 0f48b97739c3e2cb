from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class GuideIn(BaseModel):
    guideId: str
    guideName: str = ""


class AssignIn(GuideIn):
    bookingId: str


class MoveIn(GuideIn):
    bookingId: str


class StatusIn(BaseModel):
    bookingId: str
    isArrived: Optional[bool] = None
    isNoShow: Optional[bool] = None
    paidOnArrival: Optional[bool] = None


class PickupPlaceIn(BaseModel):
    bookingId: str
    pickupPlace: str = Field(min_length=1, max_length=500)


class OrderIn(BaseModel):
    bookingIds: List[str]


class DistributeIn(BaseModel):
    guides: List[GuideIn] = Field(min_length=1)


class ManualBookingIn(BaseModel):
    customerName: str
    pickupPlace: str
    pickupTime: Optional[datetime] = None
    guests: int = Field(default=1, ge=1)
    phone: str = ""
    email: str = ""
