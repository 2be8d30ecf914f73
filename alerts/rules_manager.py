"""Alert rule definitions: validation and YAML loading."""
import logging
import yaml
from pathlib import Path

from models.alerts import AlertRule
from models.enums import AlertType, Condition, Priority

logger = logging.getLogger("stockalert.alerts.rules")

VALID_CONDITIONS = {c.value for c in Condition}
VALID_TYPES = {t.value for t in AlertType}
VALID_PRIORITIES = {p.value for p in Priority}

# Condition → rule type when a definition leaves it out
_DEFAULT_TYPES = {
    Condition.STOCK_BELOW.value: AlertType.INVENTORY.value,
    Condition.STOCK_EQUALS.value: AlertType.INVENTORY.value,
    Condition.INVENTORY_VALUE_ABOVE.value: AlertType.BUSINESS.value,
    Condition.INVENTORY_VALUE_BELOW.value: AlertType.BUSINESS.value,
}


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


def build_rule(definition):
    """Turn a rule definition (dict or AlertRule) into a validated AlertRule with defaults applied.

    Defaults: enabled=True, priority="medium", channels=["in-app"].
    Raises ValueError on a missing id or an unknown condition, type or priority.
    """
    if isinstance(definition, AlertRule):
        definition = definition.to_dict()
    d = dict(definition)

    rule_id = d.get("id")
    if not rule_id:
        raise ValueError("Alert rule requires an id")

    condition = _enum_value(d.get("condition"))
    if condition not in VALID_CONDITIONS:
        raise ValueError(f"Unknown condition for rule {rule_id}: {condition}")

    rule_type = _enum_value(d.get("type")) or _DEFAULT_TYPES[condition]
    if rule_type not in VALID_TYPES:
        raise ValueError(f"Unknown type for rule {rule_id}: {rule_type}")

    priority = _enum_value(d.get("priority")) or Priority.MEDIUM.value
    if priority not in VALID_PRIORITIES:
        raise ValueError(f"Unknown priority for rule {rule_id}: {priority}")

    channels = [_enum_value(c) for c in (d.get("channels") or ["in-app"])]
    channels = list(dict.fromkeys(channels))

    try:
        threshold = float(d.get("threshold", 0) or 0)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid threshold for rule {rule_id}: {d.get('threshold')}")

    product_id = d.get("product_id")
    rule = AlertRule(
        id=str(rule_id),
        name=d.get("name") or str(rule_id),
        description=d.get("description", ""),
        type=rule_type,
        condition=condition,
        threshold=threshold,
        enabled=d.get("enabled") is not False,
        priority=priority,
        channels=channels,
        product_id=int(product_id) if product_id is not None else None,
    )
    return rule


class RulesManager:
    """Loads rule definitions from a YAML file; invalid entries are logged and skipped."""

    def __init__(self, rules_path):
        self.rules_path = Path(rules_path)
        self.rules = []
        self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Alert rules file not found: {self.rules_path}")
            return
        with open(self.rules_path) as f:
            data = yaml.safe_load(f) or {}
        self.rules = self._parse_rules(data.get("rules", []))
        logger.info(f"Loaded {len(self.rules)} rules from {self.rules_path}")

    def _parse_rules(self, raw_rules):
        rules = []
        seen = set()
        for r in raw_rules:
            try:
                rule = build_rule(r)
            except ValueError as e:
                logger.warning(f"Skipping rule: {e}")
                continue
            if rule.id in seen:
                logger.warning(f"Duplicate rule id {rule.id}, keeping the first definition")
                continue
            seen.add(rule.id)
            rules.append(rule)
        return rules

    def get_all_rules(self):
        return list(self.rules)

    def save_rule(self, rule):
        """Append (or replace) a rule definition in the YAML file."""
        rule = build_rule(rule)
        data = {}
        if self.rules_path.exists():
            with open(self.rules_path) as f:
                data = yaml.safe_load(f) or {}
        raw = [r for r in data.get("rules", []) if r.get("id") != rule.id]
        definition = {k: v for k, v in rule.to_dict().items()
                      if k not in ("created_at", "last_triggered", "trigger_count")}
        raw.append(definition)
        data["rules"] = raw

        self.rules_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.rules_path, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        self.rules = [r for r in self.rules if r.id != rule.id] + [rule]
        logger.info(f"Saved rule {rule.id} to {self.rules_path}")
        return rule
