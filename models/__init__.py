"""Data models."""
from models.enums import AlertType, Condition, Priority, Channel, EventName
from models.products import ProductRecord
from models.alerts import AlertRule, Alert, Notification, InAppNotification
