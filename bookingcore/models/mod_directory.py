from pydantic import BaseModel, Field
from typing import List, Optional
from bookingcore.models.mod_schedule import WeeklySchedule

class BusinessProfile(BaseModel):
    id: str
    business_name: Optional[str] = None
    owner_id: Optional[str] = None
    schedule: Optional[WeeklySchedule] = None
    # Set when the stored schedule could not be read
    schedule_error: Optional[str] = None
    tokens: List[str] = Field(default_factory=list)

class AddressSnapshot(BaseModel):
    address: str
    latitude: float
    longitude: float
    floor: Optional[str] = None
    note: Optional[str] = None

class ServiceSnapshot(BaseModel):
    title: Optional[str] = None
    price: Optional[float] = None
    duration: Optional[str] = None
