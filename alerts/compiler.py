"""Heuristic compiler from free-text instructions to alert rule definitions.

Not a grammar: a fixed sequence of extraction steps plus an ordered keyword
table. Conditions are matched top to bottom and the first row whose keyword
groups all appear in the text wins:

    1. below-words + "stock"               → stock_below
    2. below-words + "value"/"inventory"   → inventory_value_below
    3. above-words + "value"/"inventory"   → inventory_value_above
    4. "equals" / "is 0" / "out of stock"  → stock_equals (threshold forced to 0)

Keywords match case-insensitively on word boundaries, so "under" does not
match "understand". The threshold is the first number in the text, even when
that number is a "product <N>" reference.
"""
import re
import uuid
import logging
from dataclasses import dataclass, field
from typing import Optional

from models.enums import AlertType, Channel, Condition, Priority
from utils.formatters import format_number

logger = logging.getLogger("stockalert.alerts.compiler")

SUGGESTIONS = [
    "Notify when product stock below 10",
    "Alert if inventory value exceeds 50000",
    "Notify manager if product 5 stock less than 20",
]

_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")
_PRODUCT = re.compile(r"\bproduct\s+(\d+)\b", re.IGNORECASE)

BELOW_WORDS = ("below", "less than", "under")
ABOVE_WORDS = ("above", "exceeds", "over")
VALUE_WORDS = ("value", "inventory")
EQUALS_WORDS = ("equals", "is 0", "out of stock")


@dataclass(frozen=True)
class ConditionRow:
    condition: Condition
    type: AlertType
    keyword_groups: tuple
    name: str
    description: str
    forced_threshold: Optional[float] = None


CONDITION_TABLE = (
    ConditionRow(Condition.STOCK_BELOW, AlertType.INVENTORY, (BELOW_WORDS, ("stock",)),
                 "Low Stock Alert", "stock levels below {threshold} units"),
    ConditionRow(Condition.INVENTORY_VALUE_BELOW, AlertType.BUSINESS, (BELOW_WORDS, VALUE_WORDS),
                 "Low Inventory Value Alert", "inventory value below ${threshold}"),
    ConditionRow(Condition.INVENTORY_VALUE_ABOVE, AlertType.BUSINESS, (ABOVE_WORDS, VALUE_WORDS),
                 "High Inventory Value Alert", "inventory value above ${threshold}"),
    ConditionRow(Condition.STOCK_EQUALS, AlertType.INVENTORY, (EQUALS_WORDS,),
                 "Out of Stock Alert", "products that are out of stock", forced_threshold=0.0),
)


def contains_any(text, words):
    """True if any of `words` appears in `text` as whole words."""
    return any(re.search(rf"\b{re.escape(w)}\b", text) for w in words)


@dataclass
class CompileResult:
    success: bool
    rule: Optional[dict] = None
    description: str = ""
    error: Optional[str] = None
    suggestions: list = field(default_factory=list)


class RuleCompiler:
    """Converts a free-text instruction into a rule definition dict for AlertEngine.add_rule."""

    def __init__(self, table=CONDITION_TABLE):
        self.table = table

    def compile(self, text):
        text = (text or "").strip()
        lower = text.lower()

        numbers = list(_NUMBER.finditer(text))
        if not numbers:
            return self._fail("No threshold number found")

        product = _PRODUCT.search(text)
        product_id = int(product.group(1)) if product else None
        threshold = float(numbers[0].group(1))

        row = self.classify(lower)
        if row is None:
            return self._fail("Could not determine the alert condition")
        if row.forced_threshold is not None:
            threshold = row.forced_threshold

        priority = self.infer_priority(lower, threshold)
        channels = self.infer_channels(lower, priority)

        name = row.name
        if product_id is not None and row.condition in (Condition.STOCK_BELOW, Condition.STOCK_EQUALS):
            name = f"Product {product_id} {row.name}"
        description = row.description.format(threshold=format_number(threshold))

        rule = {
            "id": f"custom_{uuid.uuid4().hex[:12]}",
            "name": name,
            "description": f"Custom alert: {description}",
            "type": row.type.value,
            "condition": row.condition.value,
            "threshold": threshold,
            "enabled": True,
            "priority": priority.value,
            "channels": [c.value for c in channels],
            "product_id": product_id,
        }
        logger.debug(f"Compiled {text!r} → {row.condition.value} {threshold} [{priority.value}]")
        return CompileResult(success=True, rule=rule, description=description)

    def classify(self, lower_text):
        """Return the first table row whose keyword groups all match."""
        for row in self.table:
            if all(contains_any(lower_text, group) for group in row.keyword_groups):
                return row
        return None

    @staticmethod
    def infer_priority(lower_text, threshold):
        if contains_any(lower_text, ("critical", "urgent")) or threshold <= 5:
            return Priority.HIGH
        if contains_any(lower_text, ("low priority",)) or threshold >= 100:
            return Priority.LOW
        return Priority.MEDIUM

    @staticmethod
    def infer_channels(lower_text, priority):
        channels = [Channel.IN_APP]
        if contains_any(lower_text, ("email", "notify manager")):
            channels.append(Channel.EMAIL)
        if contains_any(lower_text, ("sms", "text")) or priority == Priority.HIGH:
            channels.append(Channel.SMS)
        return channels

    @staticmethod
    def _fail(error):
        return CompileResult(success=False, error=error, suggestions=list(SUGGESTIONS))
