"""Dataclasses for alert rules, alerts and delivery records."""
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Optional


def _now():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def new_id(prefix):
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


@dataclass
class AlertRule:
    id: str = ""
    name: str = ""
    description: str = ""
    type: str = "inventory"
    condition: str = "stock_below"
    threshold: float = 0.0
    enabled: bool = True
    priority: str = "medium"
    channels: list = field(default_factory=lambda: ["in-app"])
    product_id: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    last_triggered: Optional[datetime] = None
    trigger_count: int = 0

    def to_dict(self):
        d = asdict(self)
        d["created_at"] = _iso(self.created_at)
        d["last_triggered"] = _iso(self.last_triggered)
        return d


@dataclass
class Alert:
    id: str = field(default_factory=lambda: new_id("alert"))
    rule_id: str = ""
    rule_name: str = ""
    type: str = "inventory"
    priority: str = "medium"
    message: str = ""
    data: dict = field(default_factory=dict)
    channels: list = field(default_factory=lambda: ["in-app"])
    timestamp: datetime = field(default_factory=_now)
    acknowledged: bool = False
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def to_dict(self):
        d = asdict(self)
        for key in ("timestamp", "acknowledged_at", "resolved_at"):
            d[key] = _iso(getattr(self, key))
        return d


@dataclass
class Notification:
    """One dispatch of an alert across its requested channels."""
    id: str = field(default_factory=lambda: new_id("notif"))
    alert_id: str = ""
    channels: list = field(default_factory=list)
    recipients: dict = field(default_factory=dict)
    sent_at: datetime = field(default_factory=_now)
    attempts: int = 0
    status: dict = field(default_factory=dict)

    def succeeded(self, channel):
        return bool(self.status.get(channel, {}).get("success"))

    def to_dict(self):
        d = asdict(self)
        d["sent_at"] = _iso(self.sent_at)
        return d


@dataclass
class InAppNotification:
    id: str = ""
    alert_id: str = ""
    type: str = "alert"
    priority: str = "medium"
    title: str = ""
    message: str = ""
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)
    read: bool = False
    dismissed: bool = False
    read_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None

    def to_dict(self):
        d = asdict(self)
        for key in ("timestamp", "read_at", "dismissed_at"):
            d[key] = _iso(getattr(self, key))
        return d
