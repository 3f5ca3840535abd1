from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from bookingcore.models.mod_booking import ActorType, Booking, NotifyChannels, TrackingLocation
from bookingcore.models.mod_notification import NotificationResult
from bookingcore.models.mod_schedule import WeeklySchedule

class BookingCreate(BaseModel):
    client_id: str
    business_id: str
    service_id: Optional[str] = None
    # Resolved from the service record when omitted
    service_title: Optional[str] = None
    service_price: Optional[float] = Field(default=None, ge=0)
    service_duration: Optional[str] = None
    scheduled_at: datetime = Field(
        description="Requested time in ISO 8601 format; matched against business hours on its own wall clock"
    )
    contact_name: str
    contact_phone: str
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

class BookingConfirm(BaseModel):
    actor_id: Optional[str] = None

class BookingReject(BaseModel):
    reason: Optional[str] = None
    actor_id: Optional[str] = None

class BookingCancel(BaseModel):
    client_id: str

class TrackingUpdate(BaseModel):
    status: str = Field(description='Progress label, e.g. "On the way" or "Completed"')
    message: Optional[str] = None
    actor_id: Optional[str] = None
    actor_type: Optional[ActorType] = None
    actor_name: Optional[str] = None
    location: Optional[TrackingLocation] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    notify: NotifyChannels = Field(default_factory=NotifyChannels)
    photos: List[str] = Field(default_factory=list)
    external_id: Optional[str] = None

class BookingActionResult(BaseModel):
    success: bool = True
    message: str
    booking: Booking
    notification: Optional[Dict[str, NotificationResult]] = None

class BusinessSummary(BaseModel):
    id: str
    business_name: Optional[str] = None
    schedule: Optional[WeeklySchedule] = None

class BookingListResponse(BaseModel):
    total: int
    page: int
    limit: int
    business: BusinessSummary
    bookings: List[Booking]

class ClientBookingListResponse(BaseModel):
    total: int
    page: int
    limit: int
    bookings: List[Booking]

class QuickBookItem(BaseModel):
    service_id: Optional[str] = None
    service_title: str
    count: int
    last_booked: Optional[datetime] = None
    business_count: int
    sample_business_id: Optional[str] = None

class QuickBookResponse(BaseModel):
    items: List[QuickBookItem]
    count: int
