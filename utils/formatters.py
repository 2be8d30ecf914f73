"""Formatting helpers for alert messages and CLI output."""
from datetime import datetime, timezone


def format_usd(value):
    """Dollar amount with thousands separators: 8000 → '$8,000.00'."""
    if value is None:
        return "N/A"
    return f"${float(value):,.2f}"


def format_number(value):
    """Render thresholds without a trailing '.0' when they are whole: 20.0 → '20'."""
    if value is None:
        return "N/A"
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:g}"


def format_timestamp(ts):
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def time_ago(dt):
    """Return human-readable time since dt ('3h ago'). Accepts datetimes or ISO strings."""
    if dt is None:
        return "never"
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = max(int((datetime.now(timezone.utc) - dt).total_seconds()), 0)

    for unit, size in (("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit} ago"
    return f"{seconds}s ago"
