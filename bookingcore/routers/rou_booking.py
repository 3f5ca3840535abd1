from fastapi import APIRouter, Depends, Query
from bookingcore.schemas.sch_booking import (
    BookingActionResult, BookingCancel, BookingConfirm, BookingCreate, BookingListResponse, ClientBookingListResponse,
    BookingReject, QuickBookResponse, TrackingUpdate
)
from bookingcore.models.mod_booking import Booking
from bookingcore.services.svc_booking import BookingService
from bookingcore.dependencies.dep_services import get_booking_service
from typing import Optional
from datetime import datetime

router = APIRouter(
    prefix="/bookings",
    tags=["Bookings"],
    responses={404: {"description": "Not found"}},
)

@router.post('/', response_model=BookingActionResult, status_code=201)
def create_booking(
    booking: BookingCreate,
    service: BookingService = Depends(get_booking_service)
):
    """
    Request a booking with a business.

    - Checks the requested time against the business's weekly hours
    - Copies the service terms and the client's selected address onto the booking
    - Notifies the business; notification problems are reported, never fatal
    """
    return service.create_booking(booking)

@router.get('/quickbook', response_model=QuickBookResponse)
def get_quick_book(
    client_id: str = Query(..., description="Client whose completed bookings are ranked"),
    limit: int = Query(5),
    since: Optional[datetime] = Query(None),
    service: BookingService = Depends(get_booking_service)
):
    """Most frequently completed services of a client"""
    return service.get_quick_book(client_id, limit=limit, since=since)

@router.get('/by-business/{business_id}', response_model=BookingListResponse)
def list_business_bookings(
    business_id: str,
    page: int = Query(1),
    limit: int = Query(20),
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    service: BookingService = Depends(get_booking_service)
):
    """
    Bookings of one business, newest appointment first.

    - Optional status filter (comma-separated) and scheduled date range
    - Limit is capped at 200
    """
    statuses = status.split(",") if status else None
    return service.list_business_bookings(
        business_id, page=page, limit=limit, statuses=statuses, date_from=date_from, date_to=date_to
    )

@router.get('/by-client/{client_id}', response_model=ClientBookingListResponse)
def list_client_bookings(
    client_id: str,
    page: int = Query(1),
    limit: int = Query(20),
    status: Optional[str] = Query(None, description="One of pending, confirmed, cancelled, completed, rejected"),
    service: BookingService = Depends(get_booking_service)
):
    """
    Bookings of one client, most recently requested first.

    - Limit is capped at 100
    - An unknown status is rejected
    """
    return service.list_client_bookings(client_id, page=page, limit=limit, status=status)

@router.get('/{booking_id}', response_model=Booking)
def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service)
):
    return service.get_booking(booking_id)

@router.post('/{booking_id}/accept', response_model=BookingActionResult)
def confirm_booking(
    booking_id: str,
    body: Optional[BookingConfirm] = None,
    service: BookingService = Depends(get_booking_service)
):
    """
    Confirm a booking.

    - Accepting an already confirmed booking succeeds without changes
    - Cancelled, completed or rejected bookings cannot be accepted
    """
    return service.confirm_booking(booking_id, actor_id=body.actor_id if body else None)

@router.post('/{booking_id}/reject', response_model=BookingActionResult)
def reject_booking(
    booking_id: str,
    body: Optional[BookingReject] = None,
    service: BookingService = Depends(get_booking_service)
):
    """Reject a booking, optionally with a reason shown to the client"""
    body = body or BookingReject()
    return service.reject_booking(booking_id, reason=body.reason, actor_id=body.actor_id)

@router.post('/{booking_id}/cancel', response_model=BookingActionResult)
def cancel_booking(
    booking_id: str,
    body: BookingCancel,
    service: BookingService = Depends(get_booking_service)
):
    """
    Cancel a booking.

    - Only the client who made the booking can cancel it
    - Both the business and the client are notified
    """
    return service.cancel_booking(booking_id, body.client_id)

@router.post('/{booking_id}/track', response_model=BookingActionResult)
def update_tracking(
    booking_id: str,
    body: TrackingUpdate,
    service: BookingService = Depends(get_booking_service)
):
    """
    Append a progress update.

    - A "Completed" label completes the booking
    - Any other label keeps or moves the booking to confirmed
    """
    return service.update_tracking(booking_id, body)
