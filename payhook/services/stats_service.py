"""Stats service — rolling payment statistics and retention cleanup.

Windows are rolling (counted back from "now" at query time), not
calendar buckets. The snapshot is always computed before the retention
sweep runs, so the payment that triggered it is included.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

logger = logging.getLogger(__name__)

# (label, seconds). Labels double as placeholder suffixes: payments24h, sumamounts7d, ...
STATS_WINDOWS = [
    ("24h", 86400),
    ("7d", 604800),
    ("28d", 2419200),
]


@dataclass(frozen=True)
class StatsSnapshot:
    """WindowTotals per window label. Derived only, never persisted."""

    windows: dict = field(default_factory=dict)

    def __getitem__(self, label):
        return self.windows[label]

    def as_placeholders(self):
        """Flatten into template values: payments24h, sumamounts24h, ..."""
        values = {}
        for label, totals in self.windows.items():
            values[f"payments{label}"] = str(totals.count)
            values[f"sumamounts{label}"] = f"{totals.total:.2f}"
        return values


class StatsEngine:
    def __init__(self, store, cleanup_days):
        self.store = store
        self.cleanup_days = cleanup_days

    def compute(self, now=None):
        """Query every window. Read-only."""
        now = now or datetime.now(timezone.utc)
        windows = {}
        for label, seconds in STATS_WINDOWS:
            windows[label] = self.store.query_window(now - timedelta(seconds=seconds))
        return StatsSnapshot(windows=windows)

    def cleanup(self, now=None):
        """Delete payments older than the retention horizon. Returns rows removed."""
        now = now or datetime.now(timezone.utc)
        horizon = now - timedelta(seconds=self.cleanup_days * 86400)
        return self.store.delete_older_than(horizon)

    def compute_and_cleanup(self, now=None):
        """Snapshot all windows, then run the retention sweep.

        Runs on every accepted payment, so retention is enforced as
        traffic arrives.
        """
        now = now or datetime.now(timezone.utc)
        snapshot = self.compute(now)
        self.cleanup(now)
        logger.debug(f"Stats snapshot at {now.isoformat()}: {snapshot.as_placeholders()}")
        return snapshot
