"""Alert manager: wires the rule engine to the notification dispatcher and the event sink."""
import logging
from dataclasses import dataclass, field

from alerts.compiler import RuleCompiler, SUGGESTIONS
from alerts.sinks import NullSink
from models.enums import AlertType, EventName, Priority

logger = logging.getLogger("stockalert.alerts.manager")


@dataclass
class Recipients:
    email: list = field(default_factory=list)
    phone: list = field(default_factory=list)

    def to_dict(self):
        return {"email": list(self.email), "phone": list(self.phone)}

    @classmethod
    def from_config(cls, config):
        r = config.get("recipients", {})
        return cls(email=list(r.get("email") or []), phone=list(r.get("phone") or []))


def _has_out_of_stock(alert):
    products = (alert.data or {}).get("products") or []
    return any(p.get("units_in_stock") == 0 for p in products)


class AlertManager:
    """Orchestrates alerts and notifications.

    Holds no alert state of its own: rules and alerts live in the engine,
    notifications in the dispatcher. The sink receives "alert-triggered" and
    "in-app-notification" events for forwarding to connected clients.
    """

    def __init__(self, engine, dispatcher, recipients=None, sink=None, compiler=None,
                 interval_minutes=5):
        self.engine = engine
        self.dispatcher = dispatcher
        self.default_recipients = recipients or Recipients()
        self.sink = sink or NullSink()
        self.compiler = compiler or RuleCompiler()
        self.interval_minutes = interval_minutes
        self.is_initialized = False

        self.engine.on_alert(self.handle_triggered_alert)
        self.dispatcher.on_in_app(self._publish_in_app)

    # ── lifecycle ────────────────────────────────────

    def initialize(self):
        """Start monitoring at the configured interval. A second call is a no-op."""
        if self.is_initialized:
            logger.warning("Alert Manager already initialized")
            return
        self.engine.start_monitoring(self.interval_minutes)
        self.is_initialized = True
        logger.info(f"Alert Manager initialized, monitoring every {self.interval_minutes} min")

    def shutdown(self):
        logger.info("Shutting down Alert Manager")
        self.engine.stop_monitoring()
        self.is_initialized = False

    # ── event handling ───────────────────────────────

    def handle_triggered_alert(self, alert):
        recipients = self.get_recipients_for_alert(alert)
        try:
            self.dispatcher.send_notification(alert, recipients)
        except Exception as e:
            logger.error(f"Error dispatching alert {alert.id}: {e}")
        self._publish(EventName.ALERT_TRIGGERED.value, alert.to_dict())

    def _publish_in_app(self, notification):
        self._publish(EventName.IN_APP_NOTIFICATION.value, notification.to_dict())

    def _publish(self, event, payload):
        try:
            self.sink.publish(event, payload)
        except Exception as e:
            logger.warning(f"Failed to publish {event}: {e}")

    def get_recipients_for_alert(self, alert):
        """High priority keeps every recipient; medium drops phones unless an inventory
        alert includes an out-of-stock product; low always drops phones."""
        recipients = Recipients(email=list(self.default_recipients.email),
                                phone=list(self.default_recipients.phone))
        if alert.priority == Priority.MEDIUM.value:
            if alert.type != AlertType.INVENTORY.value or not _has_out_of_stock(alert):
                recipients.phone = []
        elif alert.priority == Priority.LOW.value:
            recipients.phone = []
        return recipients

    # ── commands ─────────────────────────────────────

    def create_alert_from_natural_language(self, text):
        logger.info(f"Creating alert rule from: {text!r}")
        result = self.compiler.compile(text)
        if not result.success:
            return {
                "success": False,
                "message": result.error or "Could not understand the alert request",
                "suggestions": result.suggestions or list(SUGGESTIONS),
            }
        try:
            rule = self.engine.add_rule(result.rule)
        except ValueError as e:
            return {"success": False, "message": f"Error creating alert: {e}",
                    "suggestions": list(SUGGESTIONS)}
        return {
            "success": True,
            "message": f'Alert rule created: "{rule.name}"',
            "rule": rule,
            "description": f"Will monitor {result.description}",
        }

    def get_system_status(self):
        engine_status = self.engine.get_status()
        return {
            "initialized": self.is_initialized,
            "monitoring": engine_status["is_monitoring"],
            "alert_engine": engine_status,
            "notifications": self.dispatcher.get_stats(),
            "recipients": {
                "email": len(self.default_recipients.email),
                "phone": len(self.default_recipients.phone),
            },
        }

    def get_recent_activity(self, limit=10):
        alerts = self.engine.get_alert_history(limit)
        notifications = self.dispatcher.get_in_app_notifications(limit)
        return {
            "alerts": alerts,
            "notifications": notifications,
            "summary": {
                "total_alerts": len(alerts),
                "unacknowledged_alerts": sum(1 for a in alerts if not a.acknowledged),
                "unread_notifications": sum(1 for n in notifications if not n.read),
            },
        }

    def check_alerts_now(self):
        logger.info("Manual alert check triggered")
        triggered = self.engine.check_all_alerts()
        return {"success": True, "message": "Alert check completed", "triggered": triggered}

    def get_all_alert_rules(self):
        return self.engine.list_rules()

    def toggle_alert_rule(self, rule_id, enabled):
        return self.engine.toggle_rule(rule_id, enabled)

    def remove_alert_rule(self, rule_id):
        return self.engine.remove_rule(rule_id)

    def get_alert_history(self, limit=50):
        return self.engine.get_alert_history(limit)

    def acknowledge_alert(self, alert_id):
        return self.engine.acknowledge_alert(alert_id)

    def resolve_alert(self, alert_id):
        return self.engine.resolve_alert(alert_id)

    def get_in_app_notifications(self, limit=20, unread_only=False):
        return self.dispatcher.get_in_app_notifications(limit, unread_only)

    def mark_notification_as_read(self, notification_id):
        return self.dispatcher.mark_as_read(notification_id)

    def dismiss_notification(self, notification_id):
        return self.dispatcher.dismiss_notification(notification_id)
