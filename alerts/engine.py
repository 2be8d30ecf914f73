"""Alert evaluation engine."""
import logging
import threading
from datetime import datetime, timezone

from alerts.rules_manager import build_rule
from models.alerts import Alert
from models.enums import Condition
from monitor.scheduler import MonitorScheduler
from utils.formatters import format_number, format_usd
from utils.history import BoundedHistory

logger = logging.getLogger("stockalert.alerts.engine")

ALERT_HISTORY_LIMIT = 100


def _product_dicts(products):
    return [p.to_dict() if hasattr(p, "to_dict") else dict(p) for p in products]


def _stock(product):
    if hasattr(product, "units_in_stock"):
        return product.units_in_stock
    return product["units_in_stock"]


def _product_id(product):
    return product.id if hasattr(product, "id") else product["id"]


class AlertEngine:
    """Owns the alert rules and the alert history, and evaluates rules against a data source.

    Rules are evaluated sequentially. A rule whose condition holds produces one
    Alert per pass; persistent conditions re-trigger on every pass.
    """

    def __init__(self, data_source, rules=None, history_limit=ALERT_HISTORY_LIMIT):
        self.data_source = data_source
        self._rules = {}
        self._rules_lock = threading.RLock()
        self._pass_lock = threading.Lock()
        self._history = BoundedHistory(history_limit)
        self._subscribers = []
        self._scheduler = None
        self.last_check = None

        self._evaluators = {
            Condition.STOCK_BELOW.value: self._check_stock_below,
            Condition.STOCK_EQUALS.value: self._check_out_of_stock,
            Condition.INVENTORY_VALUE_ABOVE.value: self._check_inventory_value,
            Condition.INVENTORY_VALUE_BELOW.value: self._check_inventory_value,
        }

        for rule in rules or []:
            self.add_rule(rule)

    # ── rules ────────────────────────────────────────

    def add_rule(self, definition):
        rule = build_rule(definition)
        with self._rules_lock:
            if rule.id in self._rules:
                logger.warning(f"Replacing existing alert rule: {rule.id}")
            self._rules[rule.id] = rule
        logger.info(f"Added alert rule: {rule.name}")
        return rule

    def remove_rule(self, rule_id):
        with self._rules_lock:
            rule = self._rules.pop(rule_id, None)
        if rule is None:
            return False
        logger.info(f"Removed alert rule: {rule.name}")
        return True

    def toggle_rule(self, rule_id, enabled):
        with self._rules_lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                return None
            rule.enabled = bool(enabled)
        logger.info(f"{'Enabled' if rule.enabled else 'Disabled'} alert rule: {rule.name}")
        return rule

    def get_rule(self, rule_id):
        with self._rules_lock:
            return self._rules.get(rule_id)

    def list_rules(self):
        with self._rules_lock:
            return list(self._rules.values())

    def get_enabled_rules(self):
        return [r for r in self.list_rules() if r.enabled]

    # ── subscriptions ────────────────────────────────

    def on_alert(self, callback):
        """Register callback called with each triggered Alert."""
        self._subscribers.append(callback)

    # ── monitoring ───────────────────────────────────

    @property
    def is_monitoring(self):
        return self._scheduler is not None

    def start_monitoring(self, interval_minutes=5):
        """Run one pass immediately, then every `interval_minutes`."""
        if self._scheduler is not None:
            logger.warning("Alert monitoring is already running")
            return
        logger.info(f"Starting alert monitoring (checking every {interval_minutes} minutes)")
        self._scheduler = MonitorScheduler(
            lambda: self.check_all_alerts(skip_if_busy=True), interval_minutes
        )
        self._scheduler.start()

    def stop_monitoring(self):
        """Cancel the recurring schedule. Safe to call when not running."""
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            logger.debug("Alert monitoring is not running")
            return
        scheduler.stop()
        logger.info("Alert monitoring stopped")

    def check_all_alerts(self, skip_if_busy=False):
        """Evaluate every enabled rule once.

        Returns the triggered alerts, or None when `skip_if_busy` is set and
        another pass is still in flight.
        """
        if not self._pass_lock.acquire(blocking=not skip_if_busy):
            logger.debug("Previous evaluation pass still running, skipping this tick")
            return None
        try:
            rules = self.get_enabled_rules()
            logger.debug(f"Checking {len(rules)} alert rules...")
            triggered = []
            for rule in rules:
                alert = self.check_rule(rule)
                if alert is not None:
                    triggered.append(alert)
            self.last_check = datetime.now(timezone.utc)
            logger.info(f"Completed checking {len(rules)} alert rules ({len(triggered)} triggered)")
            return triggered
        finally:
            self._pass_lock.release()

    def check_rule(self, rule):
        """Evaluate a single rule; trigger and return an Alert if its condition holds."""
        try:
            data = self._evaluate(rule)
        except Exception as e:
            logger.error(f"Error checking rule {rule.id}: {e}")
            return None
        if data is None:
            return None
        return self._trigger(rule, data)

    def preview_rules(self):
        """Evaluate ALL rules without recording or emitting anything."""
        results = []
        for rule in self.list_rules():
            error = None
            try:
                data = self._evaluate(rule)
            except Exception as e:
                data, error = None, str(e)
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "condition": rule.condition,
                "threshold": rule.threshold,
                "enabled": rule.enabled,
                "would_fire": data is not None,
                "message": self.generate_message(rule, data) if data is not None else "",
                "error": error,
            })
        return results

    # ── evaluation ───────────────────────────────────

    def _evaluate(self, rule):
        """Return the trigger payload if the rule's condition holds, else None."""
        evaluator = self._evaluators.get(rule.condition)
        if evaluator is None:
            logger.warning(f"No evaluator for condition {rule.condition} (rule {rule.id})")
            return None
        return evaluator(rule)

    def _scoped(self, rule, products):
        if rule.product_id is None:
            return list(products)
        return [p for p in products if _product_id(p) == rule.product_id]

    def _check_stock_below(self, rule):
        products = self.data_source.query_low_stock(rule.threshold)
        products = [p for p in self._scoped(rule, products) if 0 < _stock(p) < rule.threshold]
        if not products:
            return None
        return {
            "products": _product_dicts(products),
            "count": len(products),
            "threshold": rule.threshold,
        }

    def _check_out_of_stock(self, rule):
        products = self.data_source.query_out_of_stock()
        products = [p for p in self._scoped(rule, products) if _stock(p) == 0]
        if not products:
            return None
        return {
            "products": _product_dicts(products),
            "count": len(products),
        }

    def _check_inventory_value(self, rule):
        value = float(self.data_source.compute_inventory_value())
        if rule.condition == Condition.INVENTORY_VALUE_ABOVE.value:
            holds = value > rule.threshold
        else:
            holds = value < rule.threshold
        if not holds:
            return None
        return {
            "currentValue": value,
            "threshold": rule.threshold,
            "difference": abs(value - rule.threshold),
        }

    # ── triggering ───────────────────────────────────

    def _trigger(self, rule, data):
        alert = Alert(
            rule_id=rule.id,
            rule_name=rule.name,
            type=rule.type,
            priority=rule.priority,
            message=self.generate_message(rule, data),
            data=data,
            channels=list(rule.channels),
        )
        with self._rules_lock:
            rule.last_triggered = alert.timestamp
            rule.trigger_count += 1

        self._history.push(alert)
        logger.warning(f"ALERT TRIGGERED: {alert.message}")

        for callback in list(self._subscribers):
            try:
                callback(alert)
            except Exception as e:
                logger.warning(f"Alert subscriber error: {e}")
        return alert

    @staticmethod
    def generate_message(rule, data):
        if rule.condition == Condition.STOCK_BELOW.value:
            return f"{data['count']} product(s) have stock below {format_number(data['threshold'])} units"
        if rule.condition == Condition.STOCK_EQUALS.value:
            return f"{data['count']} product(s) are out of stock"
        if rule.condition == Condition.INVENTORY_VALUE_ABOVE.value:
            return (f"Inventory value ({format_usd(data['currentValue'])}) "
                    f"exceeds threshold ({format_usd(data['threshold'])})")
        if rule.condition == Condition.INVENTORY_VALUE_BELOW.value:
            return (f"Inventory value ({format_usd(data['currentValue'])}) "
                    f"below threshold ({format_usd(data['threshold'])})")
        return f"Alert triggered for rule: {rule.name}"

    # ── history ──────────────────────────────────────

    def get_alert_history(self, limit=50):
        return self._history.items(limit)

    def get_alert(self, alert_id):
        return self._history.find(lambda a: a.id == alert_id)

    def acknowledge_alert(self, alert_id):
        alert = self.get_alert(alert_id)
        if alert is None:
            return None
        if not alert.acknowledged:
            alert.acknowledged = True
            alert.acknowledged_at = datetime.now(timezone.utc)
            logger.info(f"Alert acknowledged: {alert.message}")
        return alert

    def resolve_alert(self, alert_id):
        alert = self.get_alert(alert_id)
        if alert is None:
            return None
        if alert.resolved_at is None:
            alert.resolved_at = datetime.now(timezone.utc)
            logger.info(f"Alert resolved: {alert.message}")
        return alert

    def get_status(self):
        rules = self.list_rules()
        return {
            "is_monitoring": self.is_monitoring,
            "total_rules": len(rules),
            "enabled_rules": sum(1 for r in rules if r.enabled),
            "total_alerts": len(self._history),
            "unacknowledged_alerts": self._history.count(lambda a: not a.acknowledged),
            "last_check": self.last_check.isoformat() if self.last_check else None,
        }

    def format_alert_summary(self, alerts):
        """Format alerts for display."""
        if not alerts:
            return "All clear - no alerts triggered."
        lines = []
        for a in alerts:
            icon = {"high": "!!!", "medium": "!!", "low": "i"}.get(a.priority, "?")
            lines.append(f"[{icon}] [{a.priority.upper()}] {a.rule_name}: {a.message}")
        return "\n".join(lines)
