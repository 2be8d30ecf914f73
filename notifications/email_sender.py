"""
SMTP email sender for stock alerts.

Handles:
  - SMTP connection with TLS
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)

Errors are raised as ChannelError / ChannelAuthError so the dispatcher can
record them per channel and disable the channel on bad credentials.
"""
import os
import ssl
import smtplib
import logging
from html import escape
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid

from notifications.errors import ChannelError, ChannelAuthError, ChannelNotConfigured
from utils.formatters import format_timestamp, format_usd

logger = logging.getLogger("stockalert.notifications.email_sender")

PRIORITY_COLORS = {"high": "#dc3545", "medium": "#fd7e14", "low": "#17a2b8"}
MAX_PRODUCT_ROWS = 10

RECOMMENDATIONS = {
    "low-stock": [
        "Review supplier lead times and reorder points",
        "Consider increasing safety stock levels",
        "Contact suppliers to expedite orders if needed",
    ],
    "out-of-stock": [
        "Immediate action required: contact suppliers urgently",
        "Check for alternative suppliers or substitute products",
        "Notify the sales team to manage customer expectations",
    ],
    "low-inventory-value": [
        "Review inventory turnover rates",
        "Analyze market demand and adjust purchasing strategy",
    ],
}
DEFAULT_RECOMMENDATIONS = [
    "Review the alert details and take appropriate action",
    "Update alert thresholds if necessary",
]


def notification_title(alert):
    """Title derived from alert priority, shared by email subjects and in-app notifications."""
    prefix = {"high": "Critical Alert", "medium": "Alert", "low": "Notice"}.get(alert.priority)
    return f"{prefix}: {alert.rule_name}" if prefix else alert.rule_name


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: STOCKALERT_SMTP_USER, STOCKALERT_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict, timeout: float = 30):
        email_config = config.get("email", {})
        self.enabled = email_config.get("enabled", True)
        self.smtp_host = email_config.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_name = email_config.get("from_name", "Stock Alerts")
        self.timeout = timeout

        # Credential resolution: env vars take priority
        self.username = os.environ.get(
            "STOCKALERT_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "STOCKALERT_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )
        self.from_address = email_config.get("from_address") or self.username

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return bool(self.enabled) and all([self.smtp_host, self.from_address,
                                           self.username, self.password])

    def send_alert(self, alert, recipients: list) -> dict:
        """Send one alert email to all recipients. Returns delivery metadata."""
        if not self.is_configured():
            raise ChannelNotConfigured("channel not configured", channel="email")
        if not recipients:
            raise ChannelError("No recipients configured", channel="email")

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"Stock Alert: {notification_title(alert)}"
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.smtp_host)
        msg.attach(MIMEText(self.format_plaintext(alert), "plain", "utf-8"))
        msg.attach(MIMEText(self.format_html(alert), "html", "utf-8"))

        self._send(msg, recipients)
        return {"messageId": msg["Message-ID"], "recipients": list(recipients)}

    def test_connection(self) -> dict:
        """Test SMTP connectivity without sending an email."""
        try:
            with self._connect() as server:
                return {"status": "ok", "message": "SMTP connection successful",
                        "server_response": str(server.noop())}
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except (smtplib.SMTPException, OSError) as e:
            return {"status": "error", "message": str(e)}

    def _connect(self):
        context = ssl.create_default_context()
        server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)
        try:
            server.ehlo()
            if self.use_tls:
                server.starttls(context=context)
                server.ehlo()
            server.login(self.username, self.password)
        except BaseException:
            server.close()
            raise
        return server

    def _send(self, msg: MIMEMultipart, recipients: list):
        """Internal: send a constructed MIME message via SMTP."""
        try:
            with self._connect() as server:
                server.send_message(msg, to_addrs=recipients)
            logger.info(f"Email sent to {', '.join(recipients)}: {msg['Subject']}")
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed. Check username/password (Gmail needs an App Password).")
            raise ChannelAuthError(f"Authentication failed: {e}", channel="email") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise ChannelError(f"Recipients refused: {', '.join(e.recipients)}", channel="email") from e
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelError(f"Email send failed: {e}", channel="email") from e

    # ── formatting ───────────────────────────────────

    def format_plaintext(self, alert) -> str:
        lines = [
            notification_title(alert),
            alert.message,
            f"Priority: {alert.priority.upper()}",
            f"Triggered: {format_timestamp(alert.timestamp)}",
        ]
        for p in (alert.data or {}).get("products", [])[:MAX_PRODUCT_ROWS]:
            lines.append(f"  - #{p['id']} {p['name']}: {p['units_in_stock']} in stock")
        return "\n".join(lines)

    def format_html(self, alert) -> str:
        color = PRIORITY_COLORS.get(alert.priority, "#007bff")
        recommendations = RECOMMENDATIONS.get(alert.rule_id, DEFAULT_RECOMMENDATIONS)
        items = "".join(f"<li>{escape(r)}</li>" for r in recommendations)

        return f"""
        <div style="font-family: system-ui, sans-serif; max-width: 600px; margin: 0 auto;
                    padding: 20px; background: #FFFFFF; color: #1E272E; border-radius: 12px;">
            <h2 style="color: {color}; margin-top: 0;">{escape(notification_title(alert))}</h2>
            <div style="background: #F0F1F6; padding: 16px; border-radius: 8px;
                        border-left: 4px solid {color};">
                <p><strong>Message:</strong> {escape(alert.message)}</p>
                <p><strong>Priority:</strong> {escape(alert.priority.upper())}</p>
                <p><strong>Triggered:</strong> {format_timestamp(alert.timestamp)}</p>
                <p><strong>Rule:</strong> {escape(alert.rule_name)}</p>
            </div>
            {self._format_data_html(alert.data or {})}
            <h4>Recommended Actions</h4>
            <ul>{items}</ul>
            <p style="color: #636E72; font-size: 12px; margin-top: 16px;">
                Stock alert monitor &mdash; automated alert
            </p>
        </div>
        """

    def _format_data_html(self, data: dict) -> str:
        parts = []
        products = data.get("products") or []
        if products:
            rows = "".join(
                f"<tr><td>{p['id']}</td><td>{escape(str(p['name']))}</td>"
                f"<td>{p['units_in_stock']}</td><td>{format_usd(p['unit_price'])}</td></tr>"
                for p in products[:MAX_PRODUCT_ROWS]
            )
            parts.append(
                "<table style=\"width: 100%; border-collapse: collapse;\">"
                "<tr><th>Product ID</th><th>Product Name</th><th>Current Stock</th><th>Unit Price</th></tr>"
                f"{rows}</table>"
            )
            if len(products) > MAX_PRODUCT_ROWS:
                parts.append(f"<p><em>... and {len(products) - MAX_PRODUCT_ROWS} more products</em></p>")
        if "currentValue" in data:
            parts.append(
                f"<p><strong>Current Value:</strong> {format_usd(data['currentValue'])}</p>"
                f"<p><strong>Threshold:</strong> {format_usd(data['threshold'])}</p>"
                f"<p><strong>Difference:</strong> {format_usd(data['difference'])}</p>"
            )
        return "".join(parts)
