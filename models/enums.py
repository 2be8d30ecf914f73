"""Enums for rule conditions, alert types, priorities and delivery channels."""
from enum import Enum


class AlertType(str, Enum):
    INVENTORY = "inventory"
    BUSINESS = "business"


class Condition(str, Enum):
    STOCK_BELOW = "stock_below"
    STOCK_EQUALS = "stock_equals"
    INVENTORY_VALUE_ABOVE = "inventory_value_above"
    INVENTORY_VALUE_BELOW = "inventory_value_below"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Channel(str, Enum):
    IN_APP = "in-app"
    EMAIL = "email"
    SMS = "sms"


class EventName(str, Enum):
    """Events published toward the real-time transport."""
    IN_APP_NOTIFICATION = "in-app-notification"
    ALERT_TRIGGERED = "alert-triggered"
