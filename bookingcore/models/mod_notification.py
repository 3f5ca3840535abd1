from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum

# Provider error codes meaning the device token will never work again
TOKEN_NOT_REGISTERED = "messaging/registration-token-not-registered"
INVALID_TOKEN = "messaging/invalid-registration-token"
PERMANENT_ERROR_CODES = {TOKEN_NOT_REGISTERED, INVALID_TOKEN}

class PushMessage(BaseModel):
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)
    android_channel_id: str = "bookings"
    apns_category: str = "BOOKING_UPDATE"

class DeliveryOutcome(BaseModel):
    token: str
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def is_permanent_failure(self) -> bool:
        return not self.success and self.error_code in PERMANENT_ERROR_CODES

class DispatchResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    outcomes: List[DeliveryOutcome] = Field(default_factory=list)
    dead_tokens: List[str] = Field(default_factory=list)

class DispatchUnavailable(BaseModel):
    """Returned when no push provider is configured."""
    note: str = "Push messaging not available on server."

UNAVAILABLE = DispatchUnavailable()

class NotificationStatus(str, Enum):
    SENT = "sent"
    NO_TOKENS = "no_tokens"
    UNAVAILABLE = "unavailable"
    ERROR = "error"

class NotificationResult(BaseModel):
    """Best-effort outcome of notifying one party, attached to lifecycle responses."""
    status: NotificationStatus
    note: Optional[str] = None
    summary: Optional[DispatchResult] = None
    removed_tokens: List[str] = Field(default_factory=list)
    remove_error: Optional[str] = None
    error: Optional[str] = None
