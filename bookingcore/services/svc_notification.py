from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union
from pydantic import BaseModel
from bookingcore.configuration.config import Config
from bookingcore.configuration.monitor import log_event, log_exception, log_metric, start_span
from bookingcore.models.mod_booking import Booking
from bookingcore.models.mod_notification import (
    DispatchResult, DispatchUnavailable, NotificationResult, NotificationStatus, PushMessage, UNAVAILABLE
)
from bookingcore.services.svc_directory import DirectoryService, normalize_tokens
from bookingcore.services.svc_push import PushProvider, select_push_provider


class NotificationDispatcher:
    def __init__(self, provider: Optional[PushProvider]):
        self.provider = provider

    @classmethod
    def from_messaging(cls, messaging) -> "NotificationDispatcher":
        return cls(select_push_provider(messaging))

    def dispatch(self, tokens: List[str], message: PushMessage) -> Union[DispatchResult, DispatchUnavailable]:
        """
        Send a message to every token and report per-token outcomes.

        Returns UNAVAILABLE when no provider is configured and an empty result
        without calling the provider when there is nobody to send to. Tokens
        the provider reports as unregistered or invalid end up in dead_tokens;
        every other failure is only counted.
        """
        if self.provider is None:
            return UNAVAILABLE
        tokens = normalize_tokens(tokens)
        if not tokens:
            return DispatchResult()

        with start_span("dispatch_push", attributes={
            "token_count": len(tokens),
            "shape": self.provider.shape
        }):
            outcomes = self.provider.send_batch(tokens, message)
            result = DispatchResult(
                success_count=sum(1 for o in outcomes if o.success),
                failure_count=sum(1 for o in outcomes if not o.success),
                outcomes=outcomes,
                dead_tokens=[o.token for o in outcomes if o.is_permanent_failure]
            )
            log_metric("push_success_count", result.success_count, {"shape": self.provider.shape})
            log_metric("push_failure_count", result.failure_count, {"shape": self.provider.shape})
            return result


class BookingEventType(str, Enum):
    CREATED = "created"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    TRACKING = "tracking"

class Party(str, Enum):
    BUSINESS = "business"
    CLIENT = "client"

class BookingEvent(BaseModel):
    """Emitted after a booking change has been persisted."""
    type: BookingEventType
    booking: Booking
    reason: Optional[str] = None
    label: Optional[str] = None
    message: Optional[str] = None

RECIPIENTS = {
    BookingEventType.CREATED: [Party.BUSINESS],
    BookingEventType.CONFIRMED: [Party.CLIENT],
    BookingEventType.REJECTED: [Party.CLIENT],
    BookingEventType.TRACKING: [Party.CLIENT],
    BookingEventType.CANCELLED: [Party.BUSINESS, Party.CLIENT],
}


def format_when(moment: datetime) -> str:
    """e.g. "October 17, 2026, 3:00 PM" using the stored wall-clock fields"""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{moment.strftime('%B')} {moment.day}, {moment.year}, {hour}:{moment.minute:02d} {meridiem}"


def compose_message(event: BookingEvent, party: Party, client_name: Optional[str] = None,
                    android_channel_id: str = "bookings") -> PushMessage:
    booking = event.booking
    service = booking.service_title or "your booking"
    when = format_when(booking.scheduled_at)
    data = {"bookingId": str(booking.id)}

    if event.type == BookingEventType.CREATED:
        title = "New booking request"
        body = f"{booking.contact_name} requested {booking.service_title} on {when}"
        data.update({
            "businessId": booking.business_id,
            "type": "new_booking",
            "scheduledAt": booking.scheduled_at.isoformat()
        })
        category = "NEW_BOOKING"
    elif event.type == BookingEventType.CONFIRMED:
        title = "Booking confirmed"
        body = f"{service} scheduled on {when} has been confirmed."
        data["type"] = "booking_confirmed"
        category = "BOOKING_CONFIRMED"
    elif event.type == BookingEventType.REJECTED:
        title = "Booking rejected"
        body = f"{service} scheduled on {when} was rejected."
        if event.reason:
            body += f" Reason: {event.reason}"
            data["reason"] = event.reason
        data["type"] = "booking_rejected"
        category = "BOOKING_REJECTED"
    elif event.type == BookingEventType.CANCELLED:
        title = "Booking cancelled"
        if party == Party.BUSINESS:
            body = f"{service} scheduled on {when} was cancelled by {client_name or 'the client'}."
        else:
            body = f"{service} scheduled on {when} has been cancelled."
        data["type"] = "booking_cancelled"
        category = "BOOKING_CANCELLED"
    else:
        title = f"Booking update: {event.label}"
        if event.message:
            body = event.message
        else:
            body = f"{booking.service_title or 'Your booking'} status updated to {event.label}."
        data.update({"type": "booking_tracking", "trackingStatus": event.label or ""})
        category = "BOOKING_TRACKING"

    return PushMessage(
        title=title,
        body=body,
        data=data,
        android_channel_id=android_channel_id,
        apns_category=category
    )


class BookingNotifier:
    """Post-commit hook: notify the parties affected by a booking event and prune dead tokens."""
    name = "push"

    def __init__(self, dispatcher: NotificationDispatcher, directory: DirectoryService,
                 android_channel_id: str = Config.PUSH_ANDROID_CHANNEL_ID):
        self.dispatcher = dispatcher
        self.directory = directory
        self.android_channel_id = android_channel_id

    def __call__(self, event: BookingEvent) -> Dict[str, NotificationResult]:
        parties = RECIPIENTS[event.type]
        if len(parties) == 1:
            return {parties[0].value: self.notify_party(event, parties[0])}
        # Parties are independent, so they are notified side by side
        with ThreadPoolExecutor(max_workers=len(parties)) as pool:
            futures = {party: pool.submit(self.notify_party, event, party) for party in parties}
            return {party.value: future.result() for party, future in futures.items()}

    def _client_name(self, booking: Booking) -> str:
        client = self.directory.get_client(booking.client_id) or {}
        first = str(client.get("first_name") or "").strip()
        last = str(client.get("last_name") or "").strip()
        full_name = f"{first} {last}".strip()
        return full_name or (booking.contact_name or "").strip() or "the client"

    def _tokens_for(self, booking: Booking, party: Party) -> Tuple[List[str], Optional[str]]:
        """Tokens to notify plus the client id owning them, or None for the business's own set"""
        if party == Party.BUSINESS:
            return self.directory.resolve_business_tokens(booking.business_id)
        return self.directory.get_client_tokens(booking.client_id), booking.client_id

    def _prune(self, booking: Booking, token_owner: Optional[str], dead_tokens: List[str]) -> List[str]:
        if token_owner is None:
            return self.directory.remove_business_tokens(booking.business_id, dead_tokens)
        return self.directory.remove_client_tokens(token_owner, dead_tokens)

    def notify_party(self, event: BookingEvent, party: Party) -> NotificationResult:
        booking = event.booking
        properties = {"booking_id": booking.id, "event": event.type.value, "party": party.value}
        try:
            with start_span("notify_party", attributes=properties):
                tokens, token_owner = self._tokens_for(booking, party)
                if not tokens:
                    return NotificationResult(
                        status=NotificationStatus.NO_TOKENS,
                        note=f"No push tokens found for {party.value}."
                    )

                client_name = None
                if event.type == BookingEventType.CANCELLED and party == Party.BUSINESS:
                    client_name = self._client_name(booking)
                message = compose_message(event, party, client_name, self.android_channel_id)

                result = self.dispatcher.dispatch(tokens, message)
                if isinstance(result, DispatchUnavailable):
                    return NotificationResult(status=NotificationStatus.UNAVAILABLE, note=result.note)

                notification = NotificationResult(status=NotificationStatus.SENT, summary=result)
                if result.dead_tokens:
                    try:
                        notification.removed_tokens = self._prune(booking, token_owner, result.dead_tokens)
                        log_event("Pruned dead push tokens", {**properties, "count": len(notification.removed_tokens)})
                    except Exception as e:
                        log_exception(e, {**properties, "operation": "prune_tokens"})
                        notification.remove_error = str(e)
                return notification
        except Exception as e:
            log_exception(e, {**properties, "operation": "notify_party"})
            return NotificationResult(status=NotificationStatus.ERROR, error=str(e))


class NotificationHooks:
    """Hooks run after a booking write has been committed. They can never fail the write."""

    def __init__(self, hooks: Optional[List[Callable[[BookingEvent], Dict[str, NotificationResult]]]] = None):
        self.hooks = list(hooks or [])

    def register(self, hook):
        self.hooks.append(hook)
        return hook

    def run(self, event: BookingEvent) -> Dict[str, NotificationResult]:
        results = {}
        for hook in self.hooks:
            try:
                results.update(hook(event) or {})
            except Exception as e:
                log_exception(e, {"booking_id": event.booking.id, "event": event.type.value})
                results[getattr(hook, "name", "hook")] = NotificationResult(
                    status=NotificationStatus.ERROR, error=str(e)
                )
        return results
