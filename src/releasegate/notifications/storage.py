"""Alert channel that persists recent alerts to a JSON-lines file."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from releasegate.exceptions import ChannelSendFailed
from releasegate.logging_config import get_logger

from .base import Alert, AlertChannel, utc_now_iso

logger = get_logger(__name__)

DEFAULT_ALERT_FILE = Path.home() / ".releasegate" / "alerts.jsonl"


class StorageAlertChannel(AlertChannel):
    """Keep the most recent alerts in a JSON-lines file."""

    name = "storage"

    def __init__(self, path: Path | None = None, max_entries: int = 100):
        self.path = path or DEFAULT_ALERT_FILE
        self.max_entries = max_entries
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        return self.path.parent.is_dir()

    def send(self, alert: Alert) -> None:
        entry = alert.to_dict()
        entry["stored_at"] = utc_now_iso()
        with self._lock:
            try:
                stored = self.load()
                stored.append(entry)
                stored = stored[-self.max_entries:]
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "w", encoding="utf-8") as f:
                    for item in stored:
                        f.write(json.dumps(item, default=str) + "\n")
            except OSError as e:
                raise ChannelSendFailed(self.name, f"failed to store alert: {e}") from e

    def load(self) -> list[dict[str, Any]]:
        """Return stored alerts, oldest first. Unparseable lines are skipped."""
        if not self.path.exists():
            return []
        alerts: list[dict[str, Any]] = []
        with open(self.path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    alerts.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping corrupt alert line in {self.path}")
        return alerts
