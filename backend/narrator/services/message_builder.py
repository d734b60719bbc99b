import random
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

from ..core.config import NETWORK_CAPACITY_BPS, PERSONALITY_BINS
from ..core.constants import (
    EXIT_EVENT,
    EXIT_LEAD_IN,
    EXIT_MESSAGES,
    METRICS,
    STATUS_EVENTS,
    STATUS_LEAD_INS,
    SYSTEM_STATUS,
    UI_FULL_MESSAGES,
    UI_STATIC_MESSAGES,
    WARNING_EVENTS,
    WARNING_TEMPLATES,
)
from ..core.discretizer import discretize
from ..core.errors import InvalidEventType, TelemetryError
from ..core.personality import PersonalitySettings
from ..models.fragments import (
    CacheKey,
    Dynamic,
    DynamicKey,
    Full,
    FullKey,
    MessageFragment,
    Static,
    StaticKey,
    key_digest,
)
from .personality_transform import transform

Telemetry = Mapping[str, float]
RngFactory = Callable[[CacheKey], random.Random]

EVENT_TYPES = frozenset(
    set(STATUS_EVENTS)
    | set(WARNING_EVENTS)
    | {SYSTEM_STATUS, EXIT_EVENT}
    | set(UI_STATIC_MESSAGES)
    | set(UI_FULL_MESSAGES)
)


@dataclass(frozen=True)
class RenderedFragment:
    """A fragment with its cache key and the exact text to synthesize."""

    fragment: MessageFragment
    key: CacheKey
    text: str


def is_warning(event_type: str) -> bool:
    return event_type in WARNING_EVENTS


def metric_percent(
    metric: str,
    telemetry: Telemetry,
    network_capacity_bps: float = NETWORK_CAPACITY_BPS,
) -> float:
    """
    Percentage reading for a metric.

    cpu/memory/disk arrive as percentages; network arrives as bytes per
    second and is reported as a share of the link capacity.
    """
    if metric not in telemetry or telemetry[metric] is None:
        raise TelemetryError(f"Telemetry is missing {metric!r}")
    try:
        value = float(telemetry[metric])
    except (TypeError, ValueError) as e:
        raise TelemetryError(f"{metric} value is not a number: {telemetry[metric]!r}") from e
    if metric == "network":
        return value / network_capacity_bps * 100.0
    return value


def _status_pair(metric: str, telemetry: Telemetry, network_capacity_bps: float) -> List[MessageFragment]:
    label, _ = discretize(metric, metric_percent(metric, telemetry, network_capacity_bps))
    return [Static(STATUS_LEAD_INS[metric]), Dynamic(label)]


def compose(
    event_type: str,
    telemetry: Optional[Telemetry] = None,
    network_capacity_bps: float = NETWORK_CAPACITY_BPS,
    rng: Optional[random.Random] = None,
) -> List[MessageFragment]:
    """
    Build the ordered fragments for an event.

    Status events give a Static lead-in plus a Dynamic label. Warnings give
    one Full fragment that quotes the coarse bucket, never the raw reading.
    UI events give one canned fragment; exit adds a sign-off drawn from rng
    (the first one when no rng is given). Unknown events raise InvalidEventType.
    """
    telemetry = telemetry or {}

    if event_type in STATUS_EVENTS:
        return _status_pair(STATUS_EVENTS[event_type], telemetry, network_capacity_bps)

    if event_type == SYSTEM_STATUS:
        parts: List[MessageFragment] = []
        for metric in METRICS:
            if telemetry.get(metric) is not None:
                parts.extend(_status_pair(metric, telemetry, network_capacity_bps))
        if not parts:
            raise TelemetryError("System status needs at least one known metric")
        return parts

    if event_type in WARNING_EVENTS:
        metric = WARNING_EVENTS[event_type]
        label, bucket = discretize(metric, metric_percent(metric, telemetry, network_capacity_bps))
        text = WARNING_TEMPLATES[metric].format(bucket=bucket, label=label)
        return [Full(text, value=bucket)]

    if event_type in UI_STATIC_MESSAGES:
        return [Static(UI_STATIC_MESSAGES[event_type])]

    if event_type == EXIT_EVENT:
        sign_off = rng.choice(EXIT_MESSAGES) if rng is not None else EXIT_MESSAGES[0]
        return [Static(EXIT_LEAD_IN), Static(sign_off)]

    if event_type in UI_FULL_MESSAGES:
        return [Full(UI_FULL_MESSAGES[event_type])]

    raise InvalidEventType(event_type)


def seeded_rng_factory(seed: int) -> RngFactory:
    """
    RNG per cache key, derived from a base seed and the key's digest.

    A key therefore always renders to the same text, which is what lets a
    cached synthesis stand in for a fresh one.
    """

    def factory(key: CacheKey) -> random.Random:
        return random.Random(f"{seed}:{key_digest(key)}")

    return factory


def render(
    fragment: MessageFragment,
    event_type: str,
    settings: PersonalitySettings,
    rng_factory: RngFactory,
    bins: int = PERSONALITY_BINS,
) -> RenderedFragment:
    """Derive the cache key and spoken text for one fragment."""
    fingerprint = settings.fingerprint(bins)

    if isinstance(fragment, Static):
        key: CacheKey = StaticKey(fragment.text, fingerprint)
        text = transform(fragment.text, settings.quantized(bins), rng_factory(key))
    elif isinstance(fragment, Dynamic):
        key = DynamicKey(fragment.text, settings.voice)
        text = fragment.text
    elif isinstance(fragment, Full):
        warning = is_warning(event_type)
        key = FullKey(event_type, fragment.value, fingerprint.for_warning() if warning else fingerprint)
        text = transform(fragment.text, settings.quantized(bins), rng_factory(key), warning=warning)
    else:
        raise TypeError(f"Unhandled fragment: {fragment!r}")

    return RenderedFragment(fragment=fragment, key=key, text=text)
