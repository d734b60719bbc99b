"""
Continuous metric -> qualitative label plus a coarse numeric bucket.

The bucket is what goes into warning text and cache keys, so two readings
a few tenths apart still share the same spoken audio.
"""

from __future__ import annotations

import math
from typing import Dict, Tuple

from .constants import BUCKET_WIDTH, QUALITATIVE_TABLES
from .errors import TelemetryError


def _validate_table(metric: str, table: Tuple[Tuple[float, str], ...]) -> None:
    if not table:
        raise ValueError(f"Qualitative table for {metric!r} is empty")
    previous = 0.0
    for upper, label in table:
        if upper <= previous:
            raise ValueError(f"Qualitative table for {metric!r} is not ascending at {upper}")
        if upper < 100.0 and upper % BUCKET_WIDTH:
            # Warning text embeds the label next to the bucket, so a bucket
            # must never straddle two bands.
            raise ValueError(f"Band edge {upper} for {metric!r} is not a multiple of {BUCKET_WIDTH}")
        if not label:
            raise ValueError(f"Qualitative table for {metric!r} has an empty label")
        previous = upper
    if previous < 100.0:
        raise ValueError(f"Qualitative table for {metric!r} stops short of 100")


for _metric, _table in QUALITATIVE_TABLES.items():
    _validate_table(_metric, _table)


def qualitative_label(metric: str, value: float) -> str:
    """Label for an already clamped percentage."""
    table = _table_for(metric)
    for upper, label in table[:-1]:
        if value < upper:
            return label
    return table[-1][1]


def bucket_for(value: float) -> str:
    """Floor a clamped percentage to its bucket, e.g. 91.4 -> "90"."""
    return str(int(value // BUCKET_WIDTH) * BUCKET_WIDTH)


def discretize(metric: str, value: float) -> Tuple[str, str]:
    """
    Map a metric reading to (label, bucket).

    Values outside [0, 100] clamp to the nearest band. Non-finite values
    and unknown metrics raise TelemetryError.
    """
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise TelemetryError(f"{metric} value is not a number: {value!r}") from e
    if not math.isfinite(value):
        raise TelemetryError(f"{metric} value must be finite, got {value!r}")
    clamped = min(max(value, 0.0), 100.0)
    return qualitative_label(metric, clamped), bucket_for(clamped)


def _table_for(metric: str) -> Tuple[Tuple[float, str], ...]:
    table = QUALITATIVE_TABLES.get(metric.lower())
    if table is None:
        raise TelemetryError(f"Unknown metric: {metric!r}")
    return table


def known_metrics() -> Dict[str, Tuple[str, ...]]:
    """Labels per metric, in band order."""
    return {metric: tuple(label for _, label in table) for metric, table in QUALITATIVE_TABLES.items()}
