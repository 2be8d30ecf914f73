"""Alert notification channels.

Every handler exposes the same contract:

    send(alert, recipients, notification_id=None) -> dict of delivery metadata

and raises ChannelError (or ChannelAuthError for rejected credentials) on
failure. The dispatcher isolates each call, so a handler never needs to
protect the other channels.
"""
import logging
from typing import Optional, Protocol, runtime_checkable

from models.alerts import InAppNotification, new_id
from models.enums import Channel
from notifications.email_sender import notification_title

logger = logging.getLogger("stockalert.alerts.channels")


@runtime_checkable
class AlertChannel(Protocol):
    name: str
    recipient_key: Optional[str]

    def is_configured(self) -> bool: ...

    def send(self, alert, recipients, notification_id=None) -> dict: ...


class InAppChannel:
    """Stores alerts as in-app notifications in a bounded, newest-first list."""

    name = Channel.IN_APP.value
    recipient_key = None

    def __init__(self, store, on_created=None):
        self.store = store
        self.on_created = on_created

    def is_configured(self):
        return True

    def send(self, alert, recipients=None, notification_id=None):
        notif = InAppNotification(
            id=notification_id or new_id("notif"),
            alert_id=alert.id,
            priority=alert.priority,
            title=notification_title(alert),
            message=alert.message,
            data=alert.data,
        )
        self.store.push(notif)
        logger.debug(f"In-app notification stored: {notif.title}")
        if self.on_created is not None:
            self.on_created(notif)
        return {"id": notif.id}


class EmailChannel:
    """Email delivery through an EmailSender."""

    name = Channel.EMAIL.value
    recipient_key = "email"

    def __init__(self, sender):
        self.sender = sender

    def is_configured(self):
        return self.sender.is_configured()

    def send(self, alert, recipients, notification_id=None):
        return self.sender.send_alert(alert, list(recipients or []))


class SMSChannel:
    """SMS delivery through an SMSSender."""

    name = Channel.SMS.value
    recipient_key = "phone"

    def __init__(self, sender):
        self.sender = sender

    def is_configured(self):
        return self.sender.is_configured()

    def send(self, alert, recipients, notification_id=None):
        return self.sender.send_alert(alert, list(recipients or []))
