"""Twilio SMS client for stock alerts.

Uses raw HTTP POST via requests, no Twilio SDK needed.
"""
import os
import logging
import requests

from notifications.errors import ChannelError, ChannelAuthError, ChannelNotConfigured

logger = logging.getLogger("stockalert.notifications.sms")

TWILIO_API = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
SMS_MAX_LENGTH = 160


class SMSSender:
    """Thin wrapper around the Twilio Messages API.

    Credential resolution order:
      1. Environment variables: STOCKALERT_TWILIO_SID, STOCKALERT_TWILIO_TOKEN, STOCKALERT_TWILIO_FROM
      2. Config file: config.sms.account_sid, config.sms.auth_token, config.sms.from_number
    """

    def __init__(self, config: dict, timeout: float = 30):
        sms_config = config.get("sms", {})
        self.enabled = sms_config.get("enabled", True)
        self.account_sid = os.environ.get("STOCKALERT_TWILIO_SID", sms_config.get("account_sid", ""))
        self.auth_token = os.environ.get("STOCKALERT_TWILIO_TOKEN", sms_config.get("auth_token", ""))
        self.from_number = os.environ.get("STOCKALERT_TWILIO_FROM", sms_config.get("from_number", ""))
        self.timeout = timeout
        self.url = TWILIO_API.format(sid=self.account_sid)

    def is_configured(self) -> bool:
        return bool(self.enabled) and all([self.account_sid, self.auth_token, self.from_number])

    @staticmethod
    def format_message(alert) -> str:
        text = f"Stock Alert: {alert.message}"
        if len(text) > SMS_MAX_LENGTH:
            text = text[:SMS_MAX_LENGTH - 3] + "..."
        return text

    def send_message(self, to: str, body: str) -> dict:
        """Send one SMS. Returns the Twilio message resource dict."""
        try:
            resp = requests.post(
                self.url,
                data={"To": to, "From": self.from_number, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("SMS send to %s failed: %s", to, e)
            raise ChannelError(f"SMS request failed: {e}", channel="sms") from e

        if resp.status_code in (401, 403):
            raise ChannelAuthError(f"Twilio rejected credentials (HTTP {resp.status_code})",
                                   channel="sms", status_code=resp.status_code)
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("message", resp.text)
            except ValueError:
                detail = resp.text
            raise ChannelError(f"Twilio error HTTP {resp.status_code}: {detail}",
                               channel="sms", status_code=resp.status_code)
        return resp.json()

    def send_alert(self, alert, recipients: list) -> dict:
        """Send the alert to every phone number and return per-phone results.

        One bad number does not stop the rest. Raises ChannelError only when
        every number failed, and ChannelAuthError as soon as Twilio rejects
        the credentials.
        """
        if not self.is_configured():
            raise ChannelNotConfigured("channel not configured", channel="sms")
        if not recipients:
            raise ChannelError("No recipients configured", channel="sms")

        body = self.format_message(alert)
        results = []
        last_error = None
        for phone in recipients:
            try:
                data = self.send_message(phone, body)
            except ChannelAuthError:
                raise
            except ChannelError as e:
                last_error = e
                results.append({"phone": phone, "success": False, "error": str(e)})
                continue
            results.append({"phone": phone, "success": True, "sid": data.get("sid")})

        sent = [r["phone"] for r in results if r["success"]]
        if not sent:
            raise last_error
        if len(sent) < len(results):
            logger.warning(f"SMS sent to {len(sent)} of {len(results)} recipients")
        logger.info(f"SMS sent to: {', '.join(sent)}")
        return {"results": results, "sent": len(sent), "failed": len(results) - len(sent)}
