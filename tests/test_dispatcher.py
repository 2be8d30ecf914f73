"""Tests for the notification dispatcher."""
import threading
import pytest
from unittest.mock import MagicMock

from notifications.dispatcher import NotificationDispatcher, NOT_CONFIGURED
from notifications.errors import ChannelError, ChannelAuthError


class StubChannel:
    """Channel handler double with a configurable send behaviour."""

    def __init__(self, name, recipient_key=None, configured=True, side_effect=None, result=None):
        self.name = name
        self.recipient_key = recipient_key
        self.configured = configured
        self.side_effect = side_effect
        self.result = result or {"ok": True}
        self.calls = []

    def is_configured(self):
        return self.configured

    def send(self, alert, recipients, notification_id=None):
        self.calls.append((alert, recipients))
        if self.side_effect is not None:
            raise self.side_effect
        return self.result


def _alert(sample_alert, *channels):
    sample_alert.channels = list(channels)
    return sample_alert


class TestSendNotification:
    def test_in_app_delivery(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(_alert(sample_alert, "in-app"))

        assert notification.status["in-app"]["success"] is True
        notifs = dispatcher.get_in_app_notifications()
        assert len(notifs) == 1
        assert notifs[0].id == notification.id
        assert notifs[0].alert_id == sample_alert.id
        assert notifs[0].title == "Alert: Low Stock Alert"
        assert notifs[0].read is False

    def test_every_requested_channel_gets_an_outcome(self, sample_alert):
        email = StubChannel("email", "email", side_effect=RuntimeError("smtp exploded"))
        sms = StubChannel("sms", "phone", result={"results": []})
        dispatcher = NotificationDispatcher([email, sms])

        notification = dispatcher.send_notification(
            _alert(sample_alert, "in-app", "email", "sms"),
            {"email": ["a@example.com"], "phone": ["+15550001"]},
        )

        assert set(notification.status) == {"in-app", "email", "sms"}
        assert notification.status["in-app"]["success"] is True
        assert notification.status["email"] == {"success": False, "error": "smtp exploded"}
        assert notification.status["sms"]["success"] is True
        assert sms.calls[0][1] == ["+15550001"]
        assert email.calls[0][1] == ["a@example.com"]

    def test_channel_error_recorded(self, sample_alert):
        email = StubChannel("email", "email", side_effect=ChannelError("No recipients configured"))
        dispatcher = NotificationDispatcher([email])
        notification = dispatcher.send_notification(_alert(sample_alert, "email"), {"email": []})
        assert notification.status["email"] == {"success": False, "error": "No recipients configured"}
        assert not dispatcher.is_disabled("email")

    def test_unconfigured_channel_short_circuits(self, sample_alert):
        email = StubChannel("email", "email", configured=False)
        dispatcher = NotificationDispatcher([email])
        notification = dispatcher.send_notification(_alert(sample_alert, "email"))
        assert notification.status["email"] == {"success": False, "error": NOT_CONFIGURED}
        assert email.calls == []
        assert notification.attempts == 0

    def test_missing_handler_is_not_configured(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(_alert(sample_alert, "in-app", "sms"))
        assert notification.status["sms"] == {"success": False, "error": NOT_CONFIGURED}
        assert notification.status["in-app"]["success"] is True

    def test_unknown_channel(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(_alert(sample_alert, "pager"))
        assert notification.status["pager"] == {"success": False, "error": "unknown channel: pager"}

    def test_duplicate_channels_attempted_once(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(_alert(sample_alert, "in-app", "in-app"))
        assert notification.channels == ["in-app"]
        assert len(dispatcher.get_in_app_notifications()) == 1

    def test_recipients_recorded(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(
            _alert(sample_alert, "in-app"), {"email": ["a@example.com"], "phone": []})
        assert notification.recipients == {"email": ["a@example.com"], "phone": []}

    def test_timeout_recorded_as_failure(self, sample_alert):
        release = threading.Event()

        class SlowChannel(StubChannel):
            def send(self, alert, recipients, notification_id=None):
                release.wait(5)
                return {}

        dispatcher = NotificationDispatcher([SlowChannel("email", "email")], channel_timeout=0.1)
        try:
            notification = dispatcher.send_notification(_alert(sample_alert, "in-app", "email"))
        finally:
            release.set()
        assert notification.status["email"]["success"] is False
        assert "timed out" in notification.status["email"]["error"]
        assert notification.status["in-app"]["success"] is True


class TestAuthFailure:
    def test_auth_failure_disables_channel(self, sample_alert):
        email = StubChannel("email", "email", side_effect=ChannelAuthError("Authentication failed"))
        dispatcher = NotificationDispatcher([email])

        first = dispatcher.send_notification(_alert(sample_alert, "email"), {"email": ["a@example.com"]})
        assert first.status["email"]["success"] is False
        assert dispatcher.is_disabled("email")

        second = dispatcher.send_notification(_alert(sample_alert, "email"), {"email": ["a@example.com"]})
        assert second.status["email"] == {"success": False, "error": NOT_CONFIGURED}
        assert len(email.calls) == 1
        assert dispatcher.get_stats()["disabled_channels"] == ["email"]

    def test_register_channel_reenables(self, sample_alert):
        email = StubChannel("email", "email", side_effect=ChannelAuthError("bad creds"))
        dispatcher = NotificationDispatcher([email])
        dispatcher.send_notification(_alert(sample_alert, "email"))

        dispatcher.register_channel(StubChannel("email", "email"))
        assert not dispatcher.is_disabled("email")
        notification = dispatcher.send_notification(_alert(sample_alert, "email"))
        assert notification.status["email"]["success"] is True


class TestInAppNotifications:
    def test_capped_at_limit(self, sample_alert):
        dispatcher = NotificationDispatcher()
        first = dispatcher.send_notification(_alert(sample_alert, "in-app"))
        for _ in range(50):
            dispatcher.send_notification(sample_alert)

        notifs = dispatcher.get_in_app_notifications(limit=100)
        assert len(notifs) == 50
        assert dispatcher.get_in_app_notification(first.id) is None

    def test_negative_limit_returns_nothing(self, sample_alert):
        dispatcher = NotificationDispatcher()
        for _ in range(3):
            dispatcher.send_notification(_alert(sample_alert, "in-app"))
        assert dispatcher.get_in_app_notifications(limit=-1) == []
        assert len(dispatcher.get_in_app_notifications(limit=2)) == 2

    def test_mark_as_read_idempotent(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(_alert(sample_alert, "in-app"))

        notif = dispatcher.mark_as_read(notification.id)
        read_at = notif.read_at
        again = dispatcher.mark_as_read(notification.id)

        assert again is notif
        assert notif.read is True
        assert notif.read_at == read_at
        assert dispatcher.get_stats()["unread"] == 0

    def test_dismiss_idempotent(self, sample_alert):
        dispatcher = NotificationDispatcher()
        notification = dispatcher.send_notification(_alert(sample_alert, "in-app"))
        notif = dispatcher.dismiss_notification(notification.id)
        dismissed_at = notif.dismissed_at
        dispatcher.dismiss_notification(notification.id)
        assert notif.dismissed is True
        assert notif.dismissed_at == dismissed_at

    def test_unknown_id(self):
        dispatcher = NotificationDispatcher()
        assert dispatcher.mark_as_read("notif_missing") is None
        assert dispatcher.dismiss_notification("notif_missing") is None

    def test_unread_only(self, sample_alert):
        dispatcher = NotificationDispatcher()
        n1 = dispatcher.send_notification(_alert(sample_alert, "in-app"))
        dispatcher.send_notification(sample_alert)
        dispatcher.mark_as_read(n1.id)
        unread = dispatcher.get_in_app_notifications(unread_only=True)
        assert len(unread) == 1
        assert unread[0].id != n1.id

    def test_limit(self, sample_alert):
        dispatcher = NotificationDispatcher()
        for _ in range(5):
            dispatcher.send_notification(_alert(sample_alert, "in-app"))
        assert len(dispatcher.get_in_app_notifications(limit=3)) == 3


class TestCallbacksAndStats:
    def test_on_in_app_callback(self, sample_alert):
        dispatcher = NotificationDispatcher()
        created = []
        dispatcher.on_in_app(created.append)
        dispatcher.send_notification(_alert(sample_alert, "in-app"))
        assert len(created) == 1
        assert created[0].message == sample_alert.message

    def test_failing_callback_does_not_break_dispatch(self, sample_alert):
        dispatcher = NotificationDispatcher()
        dispatcher.on_in_app(MagicMock(side_effect=RuntimeError("ws down")))
        sent = []
        dispatcher.on_sent(sent.append)
        notification = dispatcher.send_notification(_alert(sample_alert, "in-app"))
        assert notification.status["in-app"]["success"] is True
        assert sent == [notification]

    def test_stats(self, sample_alert):
        email = StubChannel("email", "email", side_effect=ChannelError("down"))
        dispatcher = NotificationDispatcher([email])
        dispatcher.send_notification(_alert(sample_alert, "in-app", "email"))
        dispatcher.send_notification(sample_alert)

        stats = dispatcher.get_stats()
        assert stats["total"] == 2
        assert stats["in_app"] == 2
        assert stats["unread"] == 2
        assert stats["channels"]["in-app"] == 2
        assert stats["channels"]["email"] == 0
        assert stats["channels"]["sms"] == 0

    def test_history_capped(self, sample_alert):
        dispatcher = NotificationDispatcher(history_limit=3)
        for _ in range(5):
            dispatcher.send_notification(_alert(sample_alert, "in-app"))
        assert len(dispatcher.get_history(limit=10)) == 3

    def test_invalid_limits(self):
        with pytest.raises(ValueError):
            NotificationDispatcher(in_app_limit=0)
