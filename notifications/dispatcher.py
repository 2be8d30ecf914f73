"""Multi-channel notification dispatch with per-channel isolation."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone

from alerts.channels import InAppChannel
from models.alerts import Notification
from models.enums import Channel
from notifications.errors import ChannelAuthError, ChannelNotConfigured
from utils.history import BoundedHistory

logger = logging.getLogger("stockalert.notifications.dispatcher")

IN_APP_LIMIT = 50
HISTORY_LIMIT = 200
NOT_CONFIGURED = "channel not configured"


def _recipients_for(recipients, key):
    if key is None or recipients is None:
        return []
    if isinstance(recipients, dict):
        return list(recipients.get(key) or [])
    return list(getattr(recipients, key, None) or [])


def _recipients_dict(recipients):
    if recipients is None:
        return {}
    if isinstance(recipients, dict):
        return {k: list(v or []) for k, v in recipients.items()}
    return recipients.to_dict()


class NotificationDispatcher:
    """Sends an alert on each of its requested channels and records per-channel outcomes.

    Channels are attempted in parallel, each bounded by `channel_timeout`.
    A failure, timeout or missing configuration on one channel never prevents
    the others from being attempted. A channel that rejects its credentials is
    disabled for the rest of the dispatcher's lifetime.
    """

    def __init__(self, channels=None, in_app_limit=IN_APP_LIMIT, history_limit=HISTORY_LIMIT,
                 channel_timeout=20):
        self.channel_timeout = channel_timeout
        self._in_app = BoundedHistory(in_app_limit)
        self._history = BoundedHistory(history_limit)
        self._flags_lock = threading.Lock()
        self._disabled = set()
        self._in_app_callbacks = []
        self._sent_callbacks = []

        self._handlers = {Channel.IN_APP.value: InAppChannel(self._in_app, self._emit_in_app)}
        for handler in channels or []:
            self.register_channel(handler)

    def register_channel(self, handler):
        """Install (or replace) the handler for `handler.name`."""
        self._handlers[handler.name] = handler
        with self._flags_lock:
            self._disabled.discard(handler.name)

    # ── subscriptions ────────────────────────────────

    def on_in_app(self, callback):
        """Register callback called with each new InAppNotification."""
        self._in_app_callbacks.append(callback)

    def on_sent(self, callback):
        """Register callback called with each completed Notification."""
        self._sent_callbacks.append(callback)

    def _emit(self, callbacks, payload):
        for callback in list(callbacks):
            try:
                callback(payload)
            except Exception as e:
                logger.warning(f"Notification subscriber error: {e}")

    def _emit_in_app(self, notif):
        self._emit(self._in_app_callbacks, notif)

    # ── dispatch ─────────────────────────────────────

    def is_disabled(self, channel):
        with self._flags_lock:
            return channel in self._disabled

    def send_notification(self, alert, recipients=None):
        channels = list(dict.fromkeys(alert.channels or [Channel.IN_APP.value]))
        notification = Notification(
            alert_id=alert.id,
            channels=channels,
            recipients=_recipients_dict(recipients),
        )
        logger.info(f"Sending notification for alert: {alert.message}")

        attempts = {}
        for channel in channels:
            outcome = self._precheck(channel)
            if outcome is not None:
                notification.status[channel] = outcome
            else:
                attempts[channel] = self._handlers[channel]

        if attempts:
            notification.attempts = len(attempts)
            notification.status.update(self._run_attempts(alert, recipients, notification.id, attempts))

        self._history.push(notification)
        self._emit(self._sent_callbacks, notification)
        return notification

    def _precheck(self, channel):
        """Outcome for a channel that must not be attempted, or None if it may be."""
        handler = self._handlers.get(channel)
        if handler is None:
            if channel in (Channel.EMAIL.value, Channel.SMS.value):
                return {"success": False, "error": NOT_CONFIGURED}
            logger.warning(f"Unknown notification channel: {channel}")
            return {"success": False, "error": f"unknown channel: {channel}"}
        if self.is_disabled(channel) or not handler.is_configured():
            logger.debug(f"{channel} channel not configured - skipping")
            return {"success": False, "error": NOT_CONFIGURED}
        return None

    def _run_attempts(self, alert, recipients, notification_id, handlers):
        executor = ThreadPoolExecutor(max_workers=len(handlers), thread_name_prefix="stockalert-notify")
        try:
            futures = {
                executor.submit(self._attempt, channel, handler, alert,
                                _recipients_for(recipients, handler.recipient_key), notification_id): channel
                for channel, handler in handlers.items()
            }
            done, not_done = wait(futures, timeout=self.channel_timeout)
            results = {}
            for future in done:
                results[futures[future]] = future.result()
            for future in not_done:
                channel = futures[future]
                logger.error(f"{channel} notification timed out after {self.channel_timeout}s")
                results[channel] = {"success": False, "error": f"timed out after {self.channel_timeout}s"}
            return results
        finally:
            executor.shutdown(wait=False)

    def _attempt(self, channel, handler, alert, recipients, notification_id):
        """Run one handler inside its own error boundary; always returns a status dict."""
        try:
            metadata = handler.send(alert, recipients, notification_id=notification_id) or {}
            return {"success": True, **metadata}
        except ChannelAuthError as e:
            self._disable(channel, e)
            return {"success": False, "error": str(e)}
        except ChannelNotConfigured:
            return {"success": False, "error": NOT_CONFIGURED}
        except Exception as e:
            logger.warning(f"{channel} notification failed (continuing with other channels): {e}")
            return {"success": False, "error": str(e)}

    def _disable(self, channel, error):
        with self._flags_lock:
            if channel in self._disabled:
                return
            self._disabled.add(channel)
        logger.error(f"{channel} channel disabled after authentication failure: {error}")

    # ── in-app notifications ─────────────────────────

    def get_in_app_notifications(self, limit=20, unread_only=False):
        notifications = self._in_app.items()
        if unread_only:
            notifications = [n for n in notifications if not n.read]
        return notifications[:max(0, limit)]

    def get_in_app_notification(self, notification_id):
        return self._in_app.find(lambda n: n.id == notification_id)

    def mark_as_read(self, notification_id):
        notif = self.get_in_app_notification(notification_id)
        if notif is None:
            return None
        with self._flags_lock:
            if not notif.read:
                notif.read = True
                notif.read_at = datetime.now(timezone.utc)
        return notif

    def dismiss_notification(self, notification_id):
        notif = self.get_in_app_notification(notification_id)
        if notif is None:
            return None
        with self._flags_lock:
            if not notif.dismissed:
                notif.dismissed = True
                notif.dismissed_at = datetime.now(timezone.utc)
        return notif

    # ── stats ────────────────────────────────────────

    def get_history(self, limit=50):
        return self._history.items(limit)

    def get_stats(self):
        history = self._history.items()
        channel_names = list(dict.fromkeys([c.value for c in Channel] + list(self._handlers)))
        with self._flags_lock:
            disabled = sorted(self._disabled)
        return {
            "total": len(history),
            "in_app": len(self._in_app),
            "unread": self._in_app.count(lambda n: not n.read),
            "channels": {name: sum(1 for n in history if n.succeeded(name)) for name in channel_names},
            "disabled_channels": disabled,
        }
