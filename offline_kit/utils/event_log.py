"""
An append-only JSON Lines audit trail for queue and cache activity.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from offline_kit.exceptions import StorageError
from offline_kit.sync.events import SyncEvent, SyncEventType
from offline_kit.utils.duration import now_ms


class EventLog:
    """
    Writes one JSON object per event and mirrors a short form to ``logging``.

    Every record carries ``timestamp`` (epoch ms), ``level``, ``event`` and the
    fixed ``context`` given at construction, followed by the event's own fields.
    """

    def __init__(
        self,
        path: Path | str,
        context: dict[str, Any] | None = None,
        logger_name: str = "offline_kit.events",
    ):
        self.path = Path(path)
        self.context = dict(context or {})
        self._logger = logging.getLogger(logger_name)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "a", encoding="utf-8")  # noqa: SIM115
        except OSError as e:
            raise StorageError(f"Cannot open event log '{self.path}': {e}") from e

    @classmethod
    def in_directory(cls, log_dir: Path | str, **context: Any) -> "EventLog":
        """Opens a new timestamped ``offline_kit_<stamp>.jsonl`` file in log_dir."""
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return cls(Path(log_dir) / f"offline_kit_{stamp}.jsonl", context=context)

    def record(self, level: int, event: str, **fields: Any) -> None:
        summary = " ".join([f"[{event}]", *(f"{k}={v}" for k, v in fields.items())])
        self._logger.log(level, summary)
        if self._file.closed:
            return

        entry = {
            "timestamp": now_ms(),
            "level": logging.getLevelName(level),
            "event": event,
            **self.context,
            **fields,
        }
        try:
            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except OSError as e:
            raise StorageError(f"Failed to write event log '{self.path}': {e}") from e

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class QueueEventLogger:
    """
    A SyncQueue listener that records every event it receives in an EventLog.

    Usage:
        unsubscribe = queue.on(QueueEventLogger(EventLog.in_directory("logs")))
    """

    LEVELS = {
        SyncEventType.ENQUEUED: logging.DEBUG,
        SyncEventType.SYNCING: logging.DEBUG,
        SyncEventType.SYNCED: logging.INFO,
        SyncEventType.FAILED: logging.ERROR,
        SyncEventType.ONLINE: logging.INFO,
        SyncEventType.OFFLINE: logging.WARNING,
    }

    def __init__(self, event_log: EventLog):
        self.event_log = event_log

    def __call__(self, event: SyncEvent) -> None:
        fields: dict[str, Any] = {}
        op = event.operation
        if op is not None:
            fields = {
                "operation_id": op.id,
                "operation_type": op.type,
                "status": op.status.value,
                "attempts": op.attempts,
            }
            if op.last_error:
                fields["error"] = op.last_error
        level = self.LEVELS[event.type]
        self.event_log.record(level, f"queue_{event.type.value}", **fields)
