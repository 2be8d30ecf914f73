"""Event sinks: where the alert manager publishes events for connected clients."""
import json
import logging
from typing import Protocol, runtime_checkable

from models.enums import EventName

logger = logging.getLogger("stockalert.alerts.sinks")


@runtime_checkable
class EventSink(Protocol):
    def publish(self, event: str, payload: dict) -> None: ...


class NullSink:
    """Discards every event."""

    def publish(self, event, payload):
        pass


class ConsoleSink:
    """Print events to the terminal with rich formatting."""

    priority_styles = {
        "high": "bold white on red",
        "medium": "bold yellow",
        "low": "bold blue",
    }

    def __init__(self, console=None):
        if console is None:
            from rich.console import Console
            console = Console()
        self.console = console

    def publish(self, event, payload):
        if event == EventName.ALERT_TRIGGERED.value:
            priority = str(payload.get("priority", "?"))
            text = f"[{priority.upper()}] {payload.get('rule_name')}: {payload.get('message')}"
            style = self.priority_styles.get(priority, "")
        elif event == EventName.IN_APP_NOTIFICATION.value:
            text, style = f"notification: {payload.get('title')}", "dim"
        else:
            text, style = f"{event}: {payload}", "dim"
        self.console.print(text, style=style, markup=False, highlight=False)


class FileSink:
    """Append events to a JSON lines log file."""

    def __init__(self, log_path="data/events.jsonl"):
        self.log_path = log_path

    def publish(self, event, payload):
        entry = {"event": event, "payload": payload}
        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write event to file: {e}")


class MultiSink:
    """Fan one publish out to several sinks; a failing sink does not affect the rest."""

    def __init__(self, sinks):
        self.sinks = list(sinks)

    def publish(self, event, payload):
        for sink in self.sinks:
            try:
                sink.publish(event, payload)
            except Exception as e:
                logger.warning(f"Sink {type(sink).__name__} failed for {event}: {e}")
