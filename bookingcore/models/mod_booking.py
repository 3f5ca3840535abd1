from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from enum import Enum

class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    REJECTED = "rejected"

TERMINAL_STATUSES = {BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.REJECTED}

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class ActorType(str, Enum):
    CLIENT = "client"
    BUSINESS = "business"
    SYSTEM = "system"

class BookingLocation(BaseModel):
    address: str
    latitude: float
    longitude: float
    floor: Optional[str] = None  # "3", "3rd", "B1", etc.
    note: Optional[str] = None   # extra directions

class TrackingLocation(BaseModel):
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

class NotifyChannels(BaseModel):
    push: bool = True
    sms: bool = False
    email: bool = False

class TrackingHistoryEntry(BaseModel):
    status: str
    message: str = ""
    actor_id: Optional[str] = None
    actor_type: Optional[ActorType] = None
    actor_name: Optional[str] = None
    location: Optional[TrackingLocation] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    notify: NotifyChannels = Field(default_factory=NotifyChannels)
    photos: List[str] = Field(default_factory=list)
    external_id: Optional[str] = None
    timestamp: datetime

class Booking(BaseModel):
    id: Optional[str] = None
    client_id: str
    business_id: str
    service_id: Optional[str] = None
    # Service terms are copied at creation and never re-derived
    service_title: str
    service_price: Optional[float] = None
    service_duration: Optional[str] = None
    scheduled_at: datetime
    contact_name: str
    contact_phone: str
    notes: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    metadata: Optional[Dict[str, Any]] = None
    location: Optional[BookingLocation] = None
    rejection_reason: Optional[str] = None
    tracking: Optional[str] = None
    tracking_message: Optional[str] = None
    tracking_history: List[TrackingHistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
