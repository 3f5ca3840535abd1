"""
Push provider adapters.

firebase-admin has shipped several batch APIs over time. Each adapter wraps
one of them behind ``PushProvider.send_batch`` and normalises the result to a
``DeliveryOutcome`` per token, in the same order as the input tokens. The
adapter is picked once, when the provider is built.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
from bookingcore.models.mod_notification import (
    DeliveryOutcome, PushMessage, TOKEN_NOT_REGISTERED, INVALID_TOKEN
)
from bookingcore.configuration.monitor import logger

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"


def error_code_for(exception) -> str:
    """Map a provider exception to a "messaging/..." error code"""
    if exception is None:
        return "messaging/unknown-error"
    code = getattr(exception, "code", None)
    if isinstance(code, str) and code.startswith("messaging/"):
        return code
    name = type(exception).__name__
    if name == "UnregisteredError":
        return TOKEN_NOT_REGISTERED
    if code == "INVALID_ARGUMENT" and "registration token" in str(exception).lower():
        return INVALID_TOKEN
    if isinstance(code, str) and code:
        return "messaging/" + code.lower().replace("_", "-")
    return "messaging/unknown-error"


class PushProvider(ABC):
    shape = "abstract"

    def __init__(self, messaging):
        self.messaging = messaging

    @abstractmethod
    def send_batch(self, tokens: List[str], message: PushMessage) -> List[DeliveryOutcome]:
        """Send one message to every token and return one outcome per token"""

    def _notification(self, message: PushMessage):
        return self.messaging.Notification(title=message.title, body=message.body)

    def _android(self, message: PushMessage):
        return self.messaging.AndroidConfig(
            priority="high",
            notification=self.messaging.AndroidNotification(
                channel_id=message.android_channel_id,
                click_action=CLICK_ACTION,
                sound="default"
            )
        )

    def _apns(self, message: PushMessage):
        return self.messaging.APNSConfig(
            headers={"apns-priority": "10"},
            payload=self.messaging.APNSPayload(
                aps=self.messaging.Aps(
                    alert=self.messaging.ApsAlert(title=message.title, body=message.body),
                    sound="default",
                    category=message.apns_category
                )
            )
        )

    def _multicast(self, tokens: List[str], message: PushMessage):
        return self.messaging.MulticastMessage(
            tokens=tokens,
            notification=self._notification(message),
            data=dict(message.data),
            android=self._android(message),
            apns=self._apns(message)
        )

    @staticmethod
    def _outcomes_from_batch(tokens: List[str], batch_response) -> List[DeliveryOutcome]:
        outcomes = []
        for token, response in zip(tokens, batch_response.responses or []):
            if response.success:
                outcomes.append(DeliveryOutcome(token=token, success=True))
            else:
                outcomes.append(DeliveryOutcome(
                    token=token,
                    success=False,
                    error_code=error_code_for(response.exception),
                    error_message=str(response.exception) if response.exception else None
                ))
        return outcomes


class EachForMulticastProvider(PushProvider):
    shape = "send_each_for_multicast"

    def send_batch(self, tokens, message):
        batch = self.messaging.send_each_for_multicast(self._multicast(tokens, message))
        return self._outcomes_from_batch(tokens, batch)


class MulticastProvider(PushProvider):
    """Older SDKs expose send_multicast with the same per-token response list."""
    shape = "send_multicast"

    def send_batch(self, tokens, message):
        batch = self.messaging.send_multicast(self._multicast(tokens, message))
        return self._outcomes_from_batch(tokens, batch)


class PerDeviceProvider(PushProvider):
    shape = "send"

    def send_batch(self, tokens, message):
        outcomes = []
        for token in tokens:
            single = self.messaging.Message(
                token=token,
                notification=self._notification(message),
                data=dict(message.data),
                android=self._android(message),
                apns=self._apns(message)
            )
            try:
                self.messaging.send(single)
                outcomes.append(DeliveryOutcome(token=token, success=True))
            except Exception as e:
                outcomes.append(DeliveryOutcome(
                    token=token,
                    success=False,
                    error_code=error_code_for(e),
                    error_message=str(e)
                ))
        return outcomes


# Fixed priority order, richest API first
PROVIDER_SHAPES = [EachForMulticastProvider, MulticastProvider, PerDeviceProvider]


def select_push_provider(messaging) -> Optional[PushProvider]:
    """Build the adapter for the first delivery shape the messaging module supports"""
    if messaging is None:
        return None
    for provider_class in PROVIDER_SHAPES:
        if callable(getattr(messaging, provider_class.shape, None)):
            logger.info(f"Using push delivery shape '{provider_class.shape}'")
            return provider_class(messaging)
    logger.warning("No supported send method on messaging module")
    return None
