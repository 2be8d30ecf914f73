"""Tests for the email and SMS senders and their channel adapters."""
import smtplib
import pytest
import requests
from unittest.mock import patch, MagicMock

from notifications.email_sender import EmailSender, notification_title
from notifications.sms_sender import SMSSender, SMS_MAX_LENGTH
from notifications.errors import ChannelError, ChannelAuthError, ChannelNotConfigured
from notifications.dispatcher import NotificationDispatcher, NOT_CONFIGURED
from alerts.channels import EmailChannel, SMSChannel, InAppChannel
from utils.history import BoundedHistory


EMAIL_CONFIG = {"email": {
    "smtp_host": "smtp.test.com",
    "smtp_port": 587,
    "from_address": "alerts@test.com",
    "smtp_username": "user",
    "smtp_password": "pass",
}}

SMS_CONFIG = {"sms": {
    "account_sid": "AC123",
    "auth_token": "token",
    "from_number": "+15550000",
}}


@pytest.fixture(autouse=True)
def clear_credential_env(monkeypatch):
    for key in ("STOCKALERT_SMTP_USER", "STOCKALERT_SMTP_PASS", "STOCKALERT_TWILIO_SID",
                "STOCKALERT_TWILIO_TOKEN", "STOCKALERT_TWILIO_FROM"):
        monkeypatch.delenv(key, raising=False)


def _response(status_code, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = str(payload)
    return resp


class TestEmailSender:
    def test_not_configured_missing_fields(self):
        assert EmailSender({"email": {}}).is_configured() is False

    def test_configured_with_all_fields(self):
        assert EmailSender(EMAIL_CONFIG).is_configured() is True

    def test_disabled_is_not_configured(self):
        config = {"email": {**EMAIL_CONFIG["email"], "enabled": False}}
        assert EmailSender(config).is_configured() is False

    def test_env_vars_override_config(self, monkeypatch):
        monkeypatch.setenv("STOCKALERT_SMTP_USER", "env_user")
        monkeypatch.setenv("STOCKALERT_SMTP_PASS", "env_pass")
        sender = EmailSender({"email": {"smtp_username": "config_user", "smtp_password": "config_pass"}})
        assert sender.username == "env_user"
        assert sender.password == "env_pass"
        assert sender.from_address == "env_user"

    def test_config_used_without_env_vars(self):
        sender = EmailSender({"email": {"smtp_username": "config_user", "smtp_password": "config_pass"}})
        assert sender.username == "config_user"
        assert sender.password == "config_pass"

    def test_send_alert_not_configured(self, sample_alert):
        with pytest.raises(ChannelNotConfigured):
            EmailSender({"email": {}}).send_alert(sample_alert, ["a@test.com"])

    def test_send_alert_no_recipients(self, sample_alert):
        with pytest.raises(ChannelError, match="No recipients"):
            EmailSender(EMAIL_CONFIG).send_alert(sample_alert, [])

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_send_alert_success(self, mock_smtp_class, sample_alert):
        server = mock_smtp_class.return_value
        sender = EmailSender(EMAIL_CONFIG)

        result = sender.send_alert(sample_alert, ["a@test.com", "b@test.com"])

        mock_smtp_class.assert_called_once_with("smtp.test.com", 587, timeout=30)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")
        sent = server.__enter__.return_value.send_message
        sent.assert_called_once()
        msg = sent.call_args[0][0]
        assert msg["Subject"] == "Stock Alert: Alert: Low Stock Alert"
        assert msg["To"] == "a@test.com, b@test.com"
        assert sent.call_args[1]["to_addrs"] == ["a@test.com", "b@test.com"]
        assert result["recipients"] == ["a@test.com", "b@test.com"]
        assert result["messageId"] == msg["Message-ID"]

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_auth_failure_raises_auth_error(self, mock_smtp_class, sample_alert):
        mock_smtp_class.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad")
        with pytest.raises(ChannelAuthError):
            EmailSender(EMAIL_CONFIG).send_alert(sample_alert, ["a@test.com"])
        mock_smtp_class.return_value.close.assert_called_once()

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_connection_error_raises_channel_error(self, mock_smtp_class, sample_alert):
        mock_smtp_class.side_effect = OSError("connection refused")
        with pytest.raises(ChannelError, match="connection refused"):
            EmailSender(EMAIL_CONFIG).send_alert(sample_alert, ["a@test.com"])

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_connection_test(self, mock_smtp_class):
        result = EmailSender(EMAIL_CONFIG).test_connection()
        assert result["status"] == "ok"

    def test_plaintext_lists_products(self, sample_alert):
        text = EmailSender(EMAIL_CONFIG).format_plaintext(sample_alert)
        assert "Priority: MEDIUM" in text
        assert "#1 Widget: 5 in stock" in text

    def test_html_includes_recommendations(self, sample_alert):
        html = EmailSender(EMAIL_CONFIG).format_html(sample_alert)
        assert "Review supplier lead times" in html
        assert "Widget" in html

    def test_html_value_alert(self, value_alert):
        html = EmailSender(EMAIL_CONFIG).format_html(value_alert)
        assert "$60,000.00" in html
        assert "$10,000.00" in html

    def test_notification_title(self, sample_alert):
        sample_alert.priority = "high"
        assert notification_title(sample_alert) == "Critical Alert: Low Stock Alert"
        sample_alert.priority = "low"
        assert notification_title(sample_alert) == "Notice: Low Stock Alert"


class TestSMSSender:
    def test_not_configured(self):
        assert SMSSender({"sms": {}}).is_configured() is False

    def test_configured(self):
        assert SMSSender(SMS_CONFIG).is_configured() is True

    def test_env_vars_override_config(self, monkeypatch):
        monkeypatch.setenv("STOCKALERT_TWILIO_SID", "ACenv")
        sender = SMSSender(SMS_CONFIG)
        assert sender.account_sid == "ACenv"
        assert "ACenv" in sender.url

    def test_format_message_truncates(self, sample_alert):
        sample_alert.message = "x" * 300
        body = SMSSender.format_message(sample_alert)
        assert len(body) == SMS_MAX_LENGTH
        assert body.startswith("Stock Alert: ")
        assert body.endswith("...")

    @patch("notifications.sms_sender.requests.post")
    def test_send_alert_success(self, mock_post, sample_alert):
        mock_post.return_value = _response(201, {"sid": "SM1"})
        result = SMSSender(SMS_CONFIG).send_alert(sample_alert, ["+15551111", "+15552222"])

        assert mock_post.call_count == 2
        kwargs = mock_post.call_args[1]
        assert kwargs["auth"] == ("AC123", "token")
        assert kwargs["data"]["From"] == "+15550000"
        assert kwargs["data"]["Body"] == "Stock Alert: 2 product(s) have stock below 20 units"
        assert result == {
            "results": [{"phone": "+15551111", "success": True, "sid": "SM1"},
                        {"phone": "+15552222", "success": True, "sid": "SM1"}],
            "sent": 2,
            "failed": 0,
        }

    @patch("notifications.sms_sender.requests.post")
    def test_one_bad_number_keeps_other_results(self, mock_post, sample_alert):
        mock_post.side_effect = [
            _response(201, {"sid": "SM1"}),
            _response(400, {"message": "Invalid To number"}),
            _response(201, {"sid": "SM3"}),
        ]
        result = SMSSender(SMS_CONFIG).send_alert(sample_alert, ["+15551111", "bogus", "+15553333"])

        assert mock_post.call_count == 3
        assert result["sent"] == 2
        assert result["failed"] == 1
        assert [r["sid"] for r in result["results"] if r["success"]] == ["SM1", "SM3"]
        assert result["results"][1]["phone"] == "bogus"
        assert "Invalid To number" in result["results"][1]["error"]

    @patch("notifications.sms_sender.requests.post")
    def test_auth_error_stops_remaining_numbers(self, mock_post, sample_alert):
        mock_post.return_value = _response(401, {"message": "Authenticate"})
        with pytest.raises(ChannelAuthError):
            SMSSender(SMS_CONFIG).send_alert(sample_alert, ["+15551111", "+15552222"])
        assert mock_post.call_count == 1

    @patch("notifications.sms_sender.requests.post")
    def test_unauthorized_raises_auth_error(self, mock_post, sample_alert):
        mock_post.return_value = _response(401, {"message": "Authenticate"})
        with pytest.raises(ChannelAuthError) as exc:
            SMSSender(SMS_CONFIG).send_alert(sample_alert, ["+15551111"])
        assert exc.value.status_code == 401

    @patch("notifications.sms_sender.requests.post")
    def test_http_error_raises_channel_error(self, mock_post, sample_alert):
        mock_post.return_value = _response(400, {"message": "Invalid To number"})
        with pytest.raises(ChannelError, match="Invalid To number"):
            SMSSender(SMS_CONFIG).send_alert(sample_alert, ["bogus"])

    @patch("notifications.sms_sender.requests.post")
    def test_network_error_raises_channel_error(self, mock_post, sample_alert):
        mock_post.side_effect = requests.ConnectionError("no route")
        with pytest.raises(ChannelError, match="no route"):
            SMSSender(SMS_CONFIG).send_alert(sample_alert, ["+15551111"])

    def test_send_alert_no_recipients(self, sample_alert):
        with pytest.raises(ChannelError, match="No recipients"):
            SMSSender(SMS_CONFIG).send_alert(sample_alert, [])


class TestChannels:
    def test_in_app_channel_stores_notification(self, sample_alert):
        store = BoundedHistory(5)
        created = []
        channel = InAppChannel(store, created.append)
        result = channel.send(sample_alert, None, notification_id="notif_abc")
        assert result == {"id": "notif_abc"}
        assert store.items()[0].alert_id == sample_alert.id
        assert created[0].id == "notif_abc"

    def test_email_channel_delegates(self, sample_alert):
        sender = MagicMock()
        sender.send_alert.return_value = {"messageId": "<1@x>"}
        channel = EmailChannel(sender)
        assert channel.send(sample_alert, ("a@test.com",)) == {"messageId": "<1@x>"}
        sender.send_alert.assert_called_once_with(sample_alert, ["a@test.com"])

    def test_sms_channel_configured_follows_sender(self):
        sender = MagicMock()
        sender.is_configured.return_value = False
        assert SMSChannel(sender).is_configured() is False
        assert SMSChannel(sender).recipient_key == "phone"


class TestInvalidCredentialsScenario:
    @patch("notifications.email_sender.smtplib.SMTP")
    def test_second_send_does_not_touch_network(self, mock_smtp_class, sample_alert, value_alert):
        mock_smtp_class.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad")
        dispatcher = NotificationDispatcher([EmailChannel(EmailSender(EMAIL_CONFIG))])
        recipients = {"email": ["a@test.com"], "phone": []}

        sample_alert.channels = ["email"]
        first = dispatcher.send_notification(sample_alert, recipients)
        assert first.status["email"]["success"] is False
        assert mock_smtp_class.call_count == 1

        value_alert.channels = ["email"]
        second = dispatcher.send_notification(value_alert, recipients)
        assert second.status["email"] == {"success": False, "error": NOT_CONFIGURED}
        assert mock_smtp_class.call_count == 1
