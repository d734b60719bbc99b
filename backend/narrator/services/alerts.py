"""
Telemetry policy: which events a sample should be narrated as.

Each metric has its own warning cooldown so a machine pinned at 100% CPU
is warned about every WARNING_COOLDOWN_S seconds, not on every sample. A
full system_status report is due every STATUS_INTERVAL_S seconds. Windows
start only when the caller reports the event as spoken via mark_spoken,
so a warning dropped while muted is raised again on the next sample.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Dict, List, Mapping, Optional

from ..core.config import NETWORK_CAPACITY_BPS, STATUS_INTERVAL_S, WARNING_COOLDOWN_S, WARNING_THRESHOLDS
from ..core.constants import METRICS, SYSTEM_STATUS, WARNING_EVENTS
from .message_builder import Telemetry, metric_percent


class AlertMonitor:
    def __init__(
        self,
        thresholds: Mapping[str, float] = WARNING_THRESHOLDS,
        cooldown_s: float = WARNING_COOLDOWN_S,
        network_capacity_bps: float = NETWORK_CAPACITY_BPS,
        status_interval_s: float = STATUS_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.thresholds = dict(thresholds)
        self.cooldown_s = cooldown_s
        self.network_capacity_bps = network_capacity_bps
        self.status_interval_s = status_interval_s
        self._clock = clock
        self._last_warned: Dict[str, float] = {}
        # The first report comes one interval after startup.
        self._last_status = clock()

    def check(self, telemetry: Telemetry) -> List[str]:
        """Warning event types due for this sample, in metric order."""
        now = self._clock()
        due: List[str] = []
        for metric in METRICS:
            threshold: Optional[float] = self.thresholds.get(metric)
            if threshold is None or telemetry.get(metric) is None:
                continue
            value = metric_percent(metric, telemetry, self.network_capacity_bps)
            if not math.isfinite(value) or value <= threshold:
                continue
            last = self._last_warned.get(metric)
            if last is not None and now - last < self.cooldown_s:
                continue
            due.append(f"{metric}_warning")
        return due

    def status_due(self, telemetry: Telemetry) -> bool:
        if self.status_interval_s <= 0:
            return False
        if not any(telemetry.get(metric) is not None for metric in METRICS):
            return False
        return self._clock() - self._last_status >= self.status_interval_s

    def events_due(self, telemetry: Telemetry) -> List[str]:
        """Warnings first, then system_status if a report is due."""
        due = self.check(telemetry)
        if self.status_due(telemetry):
            due.append(SYSTEM_STATUS)
        return due

    def mark_spoken(self, event_type: str) -> None:
        """Start the cooldown or interval for an event that was narrated."""
        now = self._clock()
        if event_type == SYSTEM_STATUS:
            self._last_status = now
        elif event_type in WARNING_EVENTS:
            self._last_warned[WARNING_EVENTS[event_type]] = now
        else:
            raise ValueError(f"Not a telemetry event: {event_type!r}")

    def reset(self) -> None:
        self._last_warned.clear()
        self._last_status = self._clock()
