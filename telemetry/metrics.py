"""Process-wide counters for the location movement pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Optional


class PipelineMetrics:
    """Thread-safe counters, updated once per processed batch."""

    def __init__(self):
        self._lock = Lock()
        self.start_time = datetime.now(timezone.utc)
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self.batches_processed = 0
            self.batches_failed = 0
            self.records_processed = 0
            self.new_users = 0
            self.moved = 0
            self.unchanged = 0
            self.skipped = 0
            self.forward_failures = 0
            self.last_batch_time: Optional[datetime] = None

    def record_batch(self, result: Any) -> None:
        """Accumulate the counts of a successfully processed BatchResult."""
        with self._lock:
            self.batches_processed += 1
            self.records_processed += result.total
            self.new_users += result.new
            self.moved += result.moved
            self.unchanged += result.unchanged
            self.skipped += result.skipped
            self.forward_failures += result.forward_failures
            self.last_batch_time = datetime.now(timezone.utc)

    def record_batch_failure(self) -> None:
        with self._lock:
            self.batches_failed += 1

    def snapshot(self) -> dict:
        with self._lock:
            uptime = (datetime.now(timezone.utc) - self.start_time).total_seconds()
            return {
                "batches_processed": self.batches_processed,
                "batches_failed": self.batches_failed,
                "records_processed": self.records_processed,
                "new_users": self.new_users,
                "moved": self.moved,
                "unchanged": self.unchanged,
                "skipped": self.skipped,
                "forward_failures": self.forward_failures,
                "events_forwarded": self.new_users + self.moved - self.forward_failures,
                "last_batch_time": self.last_batch_time.isoformat() if self.last_batch_time else None,
                "uptime_seconds": uptime,
                "records_per_sec": self.records_processed / max(uptime, 1),
            }


# Shared by the HTTP host and the stream worker of one process
metrics = PipelineMetrics()
