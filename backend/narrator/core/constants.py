"""
Constants for event vocabulary and narration phrasing.

Qualitative tables map a metric percentage to a spoken label. Bands are
half-open [previous, upper) except the last, which is closed at 100.
Changing a bound silently orphans cached warning audio for that metric.
"""

from __future__ import annotations

from typing import Dict, Final, Tuple

METRICS: Final[Tuple[str, ...]] = ("cpu", "memory", "disk", "network")

QUALITATIVE_TABLES: Final[Dict[str, Tuple[Tuple[float, str], ...]]] = {
    "cpu": (
        (20.0, "running cool"),
        (50.0, "running steady"),
        (80.0, "working hard"),
        (100.0, "running hot"),
    ),
    "memory": (
        (30.0, "plenty of space"),
        (60.0, "comfortable"),
        (80.0, "getting tight"),
        (100.0, "very tight"),
    ),
    "disk": (
        (50.0, "lots of room"),
        (70.0, "decent space"),
        (90.0, "filling up"),
        (100.0, "nearly full"),
    ),
    "network": (
        (10.0, "quiet"),
        (40.0, "light traffic"),
        (80.0, "busy"),
        (100.0, "saturated"),
    ),
}

# Width of the coarse numeric bucket embedded in warnings.
BUCKET_WIDTH: Final[int] = 10

# Event vocabulary.
STATUS_EVENTS: Final[Dict[str, str]] = {f"{m}_status": m for m in METRICS}
WARNING_EVENTS: Final[Dict[str, str]] = {f"{m}_warning": m for m in METRICS}
SYSTEM_STATUS: Final[str] = "system_status"

STATUS_LEAD_INS: Final[Dict[str, str]] = {
    "cpu": "CPU usage is",
    "memory": "Memory is looking",
    "disk": "Disk space is",
    "network": "Network traffic is",
}

WARNING_TEMPLATES: Final[Dict[str, str]] = {
    "cpu": "Warning. CPU usage has hit {bucket} percent. The processor is {label}.",
    "memory": "Warning. Memory usage has reached {bucket} percent. Things are {label}.",
    "disk": "Warning. Disk usage is at {bucket} percent. Storage is {label}.",
    "network": "Warning. Network load is at {bucket} percent of capacity. The link is {label}.",
}

# UI events: spoken once, no telemetry. Static phrases get the full personality.
UI_STATIC_MESSAGES: Final[Dict[str, str]] = {
    "startup": "CyberNinja Monitor initialized.",
    "test_audio": "Testing personality and voice settings.",
}

# Exit: a fixed lead-in plus one sign-off picked per notification.
EXIT_EVENT: Final[str] = "exit"
EXIT_LEAD_IN: Final[str] = "Shutting down."
EXIT_MESSAGES: Final[Tuple[str, ...]] = (
    "A ninja's work is never done, but even ninjas need their rest.",
    "Off to the digital pub!",
    "Grand Pappi would be proud.",
    "Time to power down these quantum circuits!",
    "Catch you on the flip side of the motherboard!",
)

# Mode toggles: complete canned messages, transformed as a whole.
UI_FULL_MESSAGES: Final[Dict[str, str]] = {
    "audio_enabled": "Audio enabled. Time to make some noise.",
    "warp_engaged": "Warp drive engaged. All systems running at maximum efficiency.",
    "warp_disengaged": "Disengaging warp drive. Returning to normal space-time parameters.",
}

DEFAULT_CATCHPHRASES: Final[Tuple[str, ...]] = (
    "Aye, yer CPU's running hotter than a haggis in a microwave!",
    "By Grand Pappi's quantum abacus!",
    "Looks like yer RAM's been hitting the digital pub again.",
    "Time to monitor ALL the things!",
)

DEFAULT_QUOTES: Final[Tuple[str, ...]] = (
    "Grand Pappi would be proud!",
    "Just like Grand Pappi's old quantum bike.",
    "Grand Pappi always said this was the way.",
    "Reminds me of Grand Pappi's workshop.",
)

TECH_QUALIFIERS: Final[Tuple[str, ...]] = (
    "Technical analysis: quantum fluctuations nominal.",
    "Scheduler latency within tolerance.",
    "Cache coherency holding across all cores.",
    "Interrupt storm probability negligible.",
)

STAGE_DIRECTIONS: Final[Tuple[str, ...]] = (
    "*fidgets*",
    "*nervously*",
    "um... er...",
    "*checks the fans again*",
)

EXCLAMATIONS: Final[Tuple[str, ...]] = (
    "Woohoo!",
    "Amazing!",
    "Let's go!",
    "Yes!",
)

URGENT_INTERJECTIONS: Final[Tuple[str, ...]] = (
    "Heads up!",
    "Act fast!",
    "This needs attention!",
)

DRUNK_SUBSTITUTIONS: Final[Dict[str, str]] = {"s": "sh", "r": "rr"}
DRUNK_HICCUP: Final[str] = "*hic*"

# Enthusiasm at or above this turns full stops into exclamation marks.
ENTHUSIASM_PUNCTUATION_THRESHOLD: Final[float] = 0.5
