import math
from datetime import datetime
from typing import Optional
from fastapi import HTTPException
from bookingcore.models.mod_booking import Booking, BookingStatus
from bookingcore.models.mod_schedule import ScheduleDecision

class BookingValidationError(HTTPException):
    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(status_code=400, detail={
            "code": "validation_error",
            "message": detail,
            "field": field
        })
        self.field = field

class ScheduleDeniedError(HTTPException):
    def __init__(self, decision: ScheduleDecision, requested: datetime):
        super().__init__(status_code=400, detail={
            "code": "schedule_denied",
            "message": _SCHEDULE_MESSAGES.get(decision.reason, "Requested time is not available."),
            "reason": decision.reason,
            "day": decision.day.value,
            "allowed": decision.allowed_range,
            "requested": requested.isoformat()
        })
        self.decision = decision

class BookingNotFoundError(HTTPException):
    def __init__(self, resource: str, resource_id: str):
        super().__init__(status_code=404, detail={
            "code": "not_found",
            "message": f"{resource.capitalize()} not found",
            "resource": resource,
            "id": resource_id
        })

class BookingConflictError(HTTPException):
    def __init__(self, detail: str, current_status: Optional[str] = None):
        super().__init__(status_code=409, detail={
            "code": "conflict",
            "message": detail,
            "current_status": current_status
        })

class BookingForbiddenError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=403, detail={
            "code": "forbidden",
            "message": detail
        })

_SCHEDULE_MESSAGES = {
    "closed on requested day": "Business is closed on the requested day.",
    "outside operating hours": "Requested time falls outside business operating hours.",
    "hours not available (treated as closed)":
        "Business operating hours not available for the requested day (treated as closed)."
}

def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())

def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)

class BookingValidator:
    @staticmethod
    def validate_required(value, field: str):
        """Raise a validation error naming the field when it is missing or blank"""
        if _blank(value):
            raise BookingValidationError(f"{field} is required", field=field)

    @staticmethod
    def validate_location(booking: Booking):
        """A location snapshot must carry an address and numeric coordinates"""
        location = booking.location
        if location is None:
            return
        if _blank(location.address):
            raise BookingValidationError("location.address is required", field="location.address")
        if not _is_number(location.latitude):
            raise BookingValidationError(
                "location.latitude is required and must be a number", field="location.latitude"
            )
        if not _is_number(location.longitude):
            raise BookingValidationError(
                "location.longitude is required and must be a number", field="location.longitude"
            )

    @staticmethod
    def validate_rejection_reason(booking: Booking):
        if booking.rejection_reason is not None and booking.status != BookingStatus.REJECTED:
            raise BookingValidationError(
                "rejection_reason may only be set when status is 'rejected'",
                field="rejection_reason"
            )

    @staticmethod
    def validate_tracking_history(booking: Booking):
        for index, entry in enumerate(booking.tracking_history):
            if _blank(entry.status):
                raise BookingValidationError(
                    "tracking entry status is required", field=f"tracking_history[{index}].status"
                )
            if not isinstance(entry.timestamp, datetime):
                raise BookingValidationError(
                    "tracking entry timestamp is required", field=f"tracking_history[{index}].timestamp"
                )

    @staticmethod
    def validate_booking(booking: Booking):
        """Validate all structural rules; called before every write"""
        BookingValidator.validate_required(booking.client_id, "client_id")
        BookingValidator.validate_required(booking.business_id, "business_id")
        BookingValidator.validate_required(booking.service_title, "service_title")
        if booking.scheduled_at is None:
            raise BookingValidationError("scheduled_at is required", field="scheduled_at")
        BookingValidator.validate_required(booking.contact_name, "contact_name")
        BookingValidator.validate_required(booking.contact_phone, "contact_phone")
        if booking.service_price is not None and booking.service_price < 0:
            raise BookingValidationError("service_price must not be negative", field="service_price")
        BookingValidator.validate_location(booking)
        BookingValidator.validate_rejection_reason(booking)
        BookingValidator.validate_tracking_history(booking)
