from azure.core import MatchConditions
from azure.cosmos import ContainerProxy, exceptions
from bookingcore.models.mod_booking import (
    ActorType, Booking, BookingLocation, BookingStatus, PaymentStatus, TrackingHistoryEntry
)
from bookingcore.schemas.sch_booking import (
    BookingActionResult, BookingCreate, BookingListResponse, BusinessSummary, ClientBookingListResponse,
    QuickBookItem, QuickBookResponse, TrackingUpdate
)
from bookingcore.validators.val_booking import (
    BookingConflictError, BookingForbiddenError, BookingNotFoundError, BookingValidationError, BookingValidator,
    ScheduleDeniedError
)
from bookingcore.services.svc_availability import AvailabilityMatcher
from bookingcore.services.svc_directory import DirectoryService
from bookingcore.services.svc_notification import BookingEvent, BookingEventType, NotificationHooks
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from bookingcore.configuration.monitor import log_event, log_exception, start_span

MAX_PAGE_SIZE = 200
MAX_CLIENT_PAGE_SIZE = 100
MAX_QUICK_BOOK_ITEMS = 50

def _parse_stored_time(value) -> Optional[datetime]:
    """Parse a stored ISO timestamp; values without an offset are taken as UTC"""
    if not value:
        return None
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BookingService:
    def __init__(self, db: ContainerProxy, directory: DirectoryService, hooks: NotificationHooks):
        self.db = db
        self.directory = directory
        self.hooks = hooks

    @staticmethod
    def _get_current_time():
        """Get current time as UTC timezone-aware datetime"""
        return datetime.now(timezone.utc)

    # --- storage ----------------------------------------------------------

    @staticmethod
    def _to_document(booking: Booking) -> dict:
        """Convert a booking to its stored form (ISO dates, plain enum values)"""
        booking_dict = booking.dict()
        booking_dict["status"] = booking.status.value
        booking_dict["payment_status"] = booking.payment_status.value
        booking_dict["scheduled_at"] = booking.scheduled_at.isoformat()
        booking_dict["created_at"] = booking.created_at.isoformat()
        booking_dict["updated_at"] = booking.updated_at.isoformat()
        for entry_dict, entry in zip(booking_dict["tracking_history"], booking.tracking_history):
            entry_dict["timestamp"] = entry.timestamp.isoformat()
            entry_dict["actor_type"] = entry.actor_type.value if entry.actor_type else None
        return booking_dict

    def _find(self, booking_id: str) -> Optional[dict]:
        items = list(self.db.query_items(
            query="SELECT * FROM c WHERE c.id = @id",
            parameters=[{"name": "@id", "value": booking_id}],
            enable_cross_partition_query=True
        ))
        return items[0] if items else None

    def _load_for_update(self, booking_id: str) -> Tuple[Booking, Optional[str]]:
        item = self._find(booking_id)
        if item is None:
            log_event("Booking not found", {"booking_id": booking_id})
            raise BookingNotFoundError("booking", booking_id)
        return Booking(**item), item.get("_etag")

    def _commit(self, booking: Booking, etag: Optional[str]):
        """
        Validate and write a changed booking.
        The write only succeeds if nobody else changed the document since it
        was read; the later writer gets a conflict instead of overwriting.
        """
        booking.updated_at = self._get_current_time()
        BookingValidator.validate_booking(booking)
        try:
            self.db.replace_item(
                item=booking.id,
                body=self._to_document(booking),
                etag=etag,
                match_condition=MatchConditions.IfNotModified
            )
        except exceptions.CosmosAccessConditionFailedError:
            latest = self._find(booking.id) or {}
            raise BookingConflictError(
                "Booking was modified concurrently; reload and retry",
                current_status=latest.get("status")
            )

    # --- creation ---------------------------------------------------------

    def _resolve_service(self, booking: BookingCreate):
        title = booking.service_title.strip() if booking.service_title else None
        price = booking.service_price
        duration = booking.service_duration.strip() if booking.service_duration else None
        if booking.service_id:
            service = self.directory.get_service_snapshot(booking.service_id)
            if service is None:
                raise BookingNotFoundError("service", booking.service_id)
            title = title or (service.title.strip() if service.title else None)
            price = price if price is not None else service.price
            duration = duration or service.duration
        return title, price, duration

    def _snapshot_location(self, client_id: str) -> Optional[BookingLocation]:
        """Copy the client's selected address; a missing address is not an error"""
        try:
            address = self.directory.get_selected_address(client_id)
        except Exception as e:
            log_exception(e, {"operation": "snapshot_location", "client_id": client_id})
            return None
        if address is None:
            return None
        return BookingLocation(**address.dict())

    def create_booking(self, booking: BookingCreate) -> BookingActionResult:
        try:
            with start_span("create_booking", attributes={
                "client_id": booking.client_id,
                "business_id": booking.business_id
            }):
                log_event("Create booking started", {
                    "client_id": booking.client_id,
                    "business_id": booking.business_id,
                    "service_id": booking.service_id,
                    "scheduled_at": booking.scheduled_at.isoformat()
                })

                BookingValidator.validate_required(booking.client_id, "client_id")
                BookingValidator.validate_required(booking.business_id, "business_id")
                BookingValidator.validate_required(booking.contact_name, "contact_name")
                BookingValidator.validate_required(booking.contact_phone, "contact_phone")

                if not self.directory.client_exists(booking.client_id):
                    raise BookingNotFoundError("client", booking.client_id)
                business = self.directory.get_business(booking.business_id)
                if business is None:
                    raise BookingNotFoundError("business", booking.business_id)

                title, price, duration = self._resolve_service(booking)
                BookingValidator.validate_required(title, "service_title")

                if business.schedule_error:
                    raise BookingValidationError(
                        f"Business operating schedule is invalid: {business.schedule_error}",
                        field="operating_schedule"
                    )
                # No configured schedule means no time constraint
                if business.schedule is not None:
                    decision = AvailabilityMatcher.is_request_allowed(business.schedule, booking.scheduled_at)
                    if not decision.allowed:
                        log_event("Booking request outside business hours", {
                            "business_id": booking.business_id,
                            "day": decision.day.value,
                            "reason": decision.reason,
                            "allowed": decision.allowed_range
                        })
                        raise ScheduleDeniedError(decision, booking.scheduled_at)

                current_time = self._get_current_time()
                new_booking = Booking(
                    id=str(uuid.uuid4()),
                    client_id=booking.client_id,
                    business_id=booking.business_id,
                    service_id=booking.service_id,
                    service_title=title,
                    service_price=price,
                    service_duration=duration,
                    scheduled_at=booking.scheduled_at,
                    contact_name=booking.contact_name.strip(),
                    contact_phone=booking.contact_phone.strip(),
                    notes=booking.notes.strip() if booking.notes and booking.notes.strip() else None,
                    status=BookingStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    metadata=booking.metadata,
                    location=self._snapshot_location(booking.client_id),
                    created_at=current_time,
                    updated_at=current_time
                )

                BookingValidator.validate_booking(new_booking)
                self.db.create_item(body=self._to_document(new_booking))

                log_event("Booking created successfully", {
                    "booking_id": new_booking.id,
                    "client_id": new_booking.client_id,
                    "business_id": new_booking.business_id
                })

                notification = self.hooks.run(BookingEvent(type=BookingEventType.CREATED, booking=new_booking))
                return BookingActionResult(message="Booking created.", booking=new_booking, notification=notification)
        except Exception as e:
            log_exception(e, {
                "operation": "create_booking",
                "client_id": booking.client_id,
                "business_id": booking.business_id
            })
            raise

    # --- transitions ------------------------------------------------------

    def confirm_booking(self, booking_id: str, actor_id: Optional[str] = None) -> BookingActionResult:
        try:
            with start_span("confirm_booking", attributes={"booking_id": booking_id}):
                log_event("Confirm booking started", {"booking_id": booking_id, "actor_id": actor_id})

                booking, etag = self._load_for_update(booking_id)
                if booking.is_terminal:
                    raise BookingConflictError(
                        f"Cannot accept booking with status '{booking.status.value}'",
                        current_status=booking.status.value
                    )
                if booking.status == BookingStatus.CONFIRMED:
                    log_event("Booking already confirmed", {"booking_id": booking_id})
                    return BookingActionResult(message="Booking already confirmed", booking=booking)

                booking.status = BookingStatus.CONFIRMED
                booking.rejection_reason = None
                self._commit(booking, etag)

                log_event("Booking confirmed successfully", {
                    "booking_id": booking_id,
                    "client_id": booking.client_id,
                    "business_id": booking.business_id
                })

                notification = self.hooks.run(BookingEvent(type=BookingEventType.CONFIRMED, booking=booking))
                return BookingActionResult(message="Booking confirmed.", booking=booking, notification=notification)
        except Exception as e:
            log_exception(e, {"operation": "confirm_booking", "booking_id": booking_id})
            raise

    def reject_booking(self, booking_id: str, reason: Optional[str] = None,
                       actor_id: Optional[str] = None) -> BookingActionResult:
        try:
            with start_span("reject_booking", attributes={"booking_id": booking_id}):
                log_event("Reject booking started", {"booking_id": booking_id, "actor_id": actor_id})

                booking, etag = self._load_for_update(booking_id)
                if booking.is_terminal:
                    raise BookingConflictError(
                        f"Cannot reject booking with status '{booking.status.value}'",
                        current_status=booking.status.value
                    )

                booking.status = BookingStatus.REJECTED
                booking.rejection_reason = reason.strip() if reason and reason.strip() else None
                self._commit(booking, etag)

                log_event("Booking rejected successfully", {
                    "booking_id": booking_id,
                    "has_reason": booking.rejection_reason is not None
                })

                notification = self.hooks.run(BookingEvent(
                    type=BookingEventType.REJECTED,
                    booking=booking,
                    reason=booking.rejection_reason
                ))
                return BookingActionResult(message="Booking rejected.", booking=booking, notification=notification)
        except Exception as e:
            log_exception(e, {"operation": "reject_booking", "booking_id": booking_id})
            raise

    def cancel_booking(self, booking_id: str, client_id: str) -> BookingActionResult:
        """Cancel a booking on behalf of the client who made it"""
        try:
            with start_span("cancel_booking", attributes={"booking_id": booking_id}):
                log_event("Cancel booking started", {"booking_id": booking_id, "client_id": client_id})

                BookingValidator.validate_required(client_id, "client_id")
                booking, etag = self._load_for_update(booking_id)
                if booking.client_id != client_id:
                    raise BookingForbiddenError("Not authorized to cancel this booking")
                if booking.is_terminal:
                    raise BookingConflictError(
                        f"Cannot cancel booking with status '{booking.status.value}'",
                        current_status=booking.status.value
                    )

                booking.status = BookingStatus.CANCELLED
                booking.tracking_history.append(TrackingHistoryEntry(
                    status="Cancelled",
                    message="Booking cancelled by client",
                    actor_id=client_id,
                    actor_type=ActorType.CLIENT,
                    timestamp=self._get_current_time()
                ))
                self._commit(booking, etag)

                log_event("Booking cancelled successfully", {
                    "booking_id": booking_id,
                    "client_id": booking.client_id,
                    "business_id": booking.business_id
                })

                notification = self.hooks.run(BookingEvent(type=BookingEventType.CANCELLED, booking=booking))
                return BookingActionResult(message="Booking cancelled", booking=booking, notification=notification)
        except Exception as e:
            log_exception(e, {"operation": "cancel_booking", "booking_id": booking_id})
            raise

    def update_tracking(self, booking_id: str, update: TrackingUpdate) -> BookingActionResult:
        """
        Record a progress step for a booking.

        Every call appends to the tracking history, even when the label
        repeats. A "completed" label (any case) completes the booking; any
        other label moves it to confirmed.
        """
        try:
            with start_span("update_tracking", attributes={"booking_id": booking_id}):
                label = (update.status or "").strip()
                BookingValidator.validate_required(label, "status")
                log_event("Tracking update started", {"booking_id": booking_id, "label": label})

                booking, etag = self._load_for_update(booking_id)
                if booking.status in (BookingStatus.CANCELLED, BookingStatus.REJECTED):
                    raise BookingConflictError(
                        f"Cannot update tracking for booking with status '{booking.status.value}'",
                        current_status=booking.status.value
                    )
                if booking.status == BookingStatus.COMPLETED:
                    raise BookingConflictError(
                        "Booking already completed; tracking cannot be updated.",
                        current_status=booking.status.value
                    )

                message = (update.message or "").strip()
                booking.tracking_history.append(TrackingHistoryEntry(
                    status=label,
                    message=message,
                    actor_id=update.actor_id,
                    actor_type=update.actor_type,
                    actor_name=update.actor_name,
                    location=update.location,
                    metadata=update.metadata,
                    notify=update.notify,
                    photos=update.photos,
                    external_id=update.external_id,
                    timestamp=self._get_current_time()
                ))
                booking.tracking = label
                booking.tracking_message = message
                if label.lower() == BookingStatus.COMPLETED.value:
                    booking.status = BookingStatus.COMPLETED
                else:
                    booking.status = BookingStatus.CONFIRMED
                self._commit(booking, etag)

                log_event("Tracking updated successfully", {
                    "booking_id": booking_id,
                    "label": label,
                    "status": booking.status.value,
                    "history_length": len(booking.tracking_history)
                })

                notification = {}
                if update.notify.push:
                    notification = self.hooks.run(BookingEvent(
                        type=BookingEventType.TRACKING,
                        booking=booking,
                        label=label,
                        message=message or None
                    ))
                return BookingActionResult(message="Tracking updated.", booking=booking, notification=notification)
        except Exception as e:
            log_exception(e, {"operation": "update_tracking", "booking_id": booking_id})
            raise

    # --- reads ------------------------------------------------------------

    def get_booking(self, booking_id: str) -> Booking:
        try:
            with start_span("get_booking", attributes={"booking_id": booking_id}):
                log_event("Retrieving booking", {"booking_id": booking_id})
                booking, _ = self._load_for_update(booking_id)
                log_event("Booking retrieved successfully", {
                    "booking_id": booking_id,
                    "status": booking.status.value
                })
                return booking
        except Exception as e:
            log_exception(e, {"operation": "get_booking", "booking_id": booking_id})
            raise

    def list_business_bookings(self, business_id: str, page: int = 1, limit: int = 20,
                               statuses: Optional[List[str]] = None,
                               date_from: Optional[datetime] = None,
                               date_to: Optional[datetime] = None) -> BookingListResponse:
        """Page through a business's bookings, newest appointment first"""
        try:
            with start_span("list_business_bookings", attributes={"business_id": business_id}):
                log_event("Listing business bookings", {"business_id": business_id, "page": page, "limit": limit})

                business = self.directory.get_business(business_id)
                if business is None:
                    raise BookingNotFoundError("business", business_id)

                page = max(page or 1, 1)
                limit = min(max(limit or 20, 1), MAX_PAGE_SIZE)

                conditions = ["c.business_id = @business_id"]
                parameters = [{"name": "@business_id", "value": business_id}]
                statuses = [s.strip() for s in (statuses or []) if s and s.strip()]
                if statuses:
                    conditions.append("ARRAY_CONTAINS(@statuses, c.status)")
                    parameters.append({"name": "@statuses", "value": statuses})
                if date_from:
                    conditions.append("c.scheduled_at >= @date_from")
                    parameters.append({"name": "@date_from", "value": date_from.isoformat()})
                if date_to:
                    conditions.append("c.scheduled_at <= @date_to")
                    parameters.append({"name": "@date_to", "value": date_to.isoformat()})
                where = " AND ".join(conditions)

                total = list(self.db.query_items(
                    query=f"SELECT VALUE COUNT(1) FROM c WHERE {where}",
                    parameters=parameters,
                    enable_cross_partition_query=True
                ))
                items = list(self.db.query_items(
                    query=(f"SELECT * FROM c WHERE {where} "
                           "ORDER BY c.scheduled_at DESC, c.created_at DESC "
                           "OFFSET @offset LIMIT @limit"),
                    parameters=parameters + [
                        {"name": "@offset", "value": (page - 1) * limit},
                        {"name": "@limit", "value": limit}
                    ],
                    enable_cross_partition_query=True
                ))
                bookings = [Booking(**item) for item in items]

                log_event("Business bookings retrieved", {"business_id": business_id, "count": len(bookings)})

                return BookingListResponse(
                    total=total[0] if total else 0,
                    page=page,
                    limit=limit,
                    business=BusinessSummary(
                        id=business.id,
                        business_name=business.business_name,
                        schedule=business.schedule
                    ),
                    bookings=bookings
                )
        except Exception as e:
            log_exception(e, {"operation": "list_business_bookings", "business_id": business_id})
            raise

    def list_client_bookings(self, client_id: str, page: int = 1, limit: int = 20,
                             status: Optional[str] = None) -> ClientBookingListResponse:
        """A client's bookings, most recently requested first"""
        try:
            with start_span("list_client_bookings", attributes={"client_id": client_id}):
                log_event("Listing client bookings", {"client_id": client_id, "page": page, "limit": limit})

                BookingValidator.validate_required(client_id, "client_id")
                page = max(page or 1, 1)
                limit = min(max(limit or 20, 1), MAX_CLIENT_PAGE_SIZE)

                conditions = ["c.client_id = @client_id"]
                parameters = [{"name": "@client_id", "value": client_id}]
                if status:
                    allowed = [s.value for s in BookingStatus]
                    if status not in allowed:
                        raise BookingValidationError(
                            f"Invalid status. Allowed: {', '.join(allowed)}", field="status"
                        )
                    conditions.append("c.status = @status")
                    parameters.append({"name": "@status", "value": status})
                where = " AND ".join(conditions)

                total = list(self.db.query_items(
                    query=f"SELECT VALUE COUNT(1) FROM c WHERE {where}",
                    parameters=parameters,
                    enable_cross_partition_query=True
                ))
                items = list(self.db.query_items(
                    query=f"SELECT * FROM c WHERE {where} ORDER BY c.created_at DESC OFFSET @offset LIMIT @limit",
                    parameters=parameters + [
                        {"name": "@offset", "value": (page - 1) * limit},
                        {"name": "@limit", "value": limit}
                    ],
                    enable_cross_partition_query=True
                ))
                bookings = [Booking(**item) for item in items]

                log_event("Client bookings retrieved", {"client_id": client_id, "count": len(bookings)})
                return ClientBookingListResponse(
                    total=total[0] if total else 0,
                    page=page,
                    limit=limit,
                    bookings=bookings
                )
        except Exception as e:
            log_exception(e, {"operation": "list_client_bookings", "client_id": client_id})
            raise

    def get_quick_book(self, client_id: str, limit: int = 5,
                       since: Optional[datetime] = None) -> QuickBookResponse:
        """The services a client has completed most often, for one-tap rebooking"""
        try:
            with start_span("get_quick_book", attributes={"client_id": client_id}):
                log_event("Retrieving quick-book items", {"client_id": client_id, "limit": limit})

                BookingValidator.validate_required(client_id, "client_id")
                limit = min(max(limit or 5, 1), MAX_QUICK_BOOK_ITEMS)

                query = ("SELECT c.service_id, c.service_title, c.business_id, c.scheduled_at FROM c "
                         "WHERE c.client_id = @client_id AND c.status = @status")
                parameters = [
                    {"name": "@client_id", "value": client_id},
                    {"name": "@status", "value": BookingStatus.COMPLETED.value}
                ]
                if since:
                    query += " AND c.scheduled_at >= @since"
                    parameters.append({"name": "@since", "value": since.isoformat()})

                groups = {}
                for item in self.db.query_items(query=query, parameters=parameters,
                                                enable_cross_partition_query=True):
                    # Group by service id when present, otherwise by title
                    key = (item.get("service_id"), None if item.get("service_id") else item.get("service_title") or "")
                    group = groups.setdefault(key, {
                        "service_id": item.get("service_id"),
                        "service_title": item.get("service_title") or "",
                        "count": 0,
                        "last_booked": None,
                        "business_ids": []
                    })
                    group["count"] += 1
                    scheduled_at = _parse_stored_time(item.get("scheduled_at"))
                    if scheduled_at and (group["last_booked"] is None or scheduled_at > group["last_booked"]):
                        group["last_booked"] = scheduled_at
                    if item.get("business_id") and item["business_id"] not in group["business_ids"]:
                        group["business_ids"].append(item["business_id"])

                ranked = sorted(
                    groups.values(),
                    key=lambda g: (g["count"], g["last_booked"].timestamp() if g["last_booked"] else float("-inf")),
                    reverse=True
                )[:limit]

                items = [
                    QuickBookItem(
                        service_id=g["service_id"],
                        service_title=g["service_title"],
                        count=g["count"],
                        last_booked=g["last_booked"],
                        business_count=len(g["business_ids"]),
                        sample_business_id=g["business_ids"][0] if g["business_ids"] else None
                    )
                    for g in ranked
                ]

                log_event("Quick-book items retrieved", {"client_id": client_id, "count": len(items)})
                return QuickBookResponse(items=items, count=len(items))
        except Exception as e:
            log_exception(e, {"operation": "get_quick_book", "client_id": client_id})
            raise
