import json
import logging
import os

from panotour.db import now_iso

logger = logging.getLogger(__name__)


class AnalyticsLog:
    """Append-only JSON Lines event log. Write failures are logged, never raised."""

    def __init__(self, path):
        self.path = path

    def record(self, event, payload=None):
        record = {"event": event, "timestamp": now_iso(), "payload": dict(payload or {})}
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record) + "\n")
        except OSError as e:
            logger.warning(f"Failed to record analytics event {event}: {e}")
            return None
        return record

    def read(self, limit=100):
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                lines = [line.strip() for line in f if line.strip()]
        except FileNotFoundError:
            return []
        events = []
        for line in (lines[-limit:] if limit > 0 else lines):
            try:
                events.append(json.loads(line))
            except ValueError:
                continue
        return events
