from functools import lru_cache
from fastapi import Depends
from bookingcore.configuration.database import get_container
from bookingcore.configuration.push import get_messaging
from bookingcore.services.svc_booking import BookingService
from bookingcore.services.svc_directory import DirectoryService
from bookingcore.services.svc_notification import BookingNotifier, NotificationDispatcher, NotificationHooks

@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    """The push adapter is chosen once per process"""
    return NotificationDispatcher.from_messaging(get_messaging())

def get_directory() -> DirectoryService:
    return DirectoryService.from_containers(get_container)

def get_booking_service(
    directory: DirectoryService = Depends(get_directory),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
) -> BookingService:
    hooks = NotificationHooks([BookingNotifier(dispatcher, directory)])
    return BookingService(get_container("bookings"), directory, hooks)
