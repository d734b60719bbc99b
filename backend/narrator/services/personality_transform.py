"""
Personality overlay for spoken text.

Six rewrite steps run in a fixed order, each gated by its own slider. A
slider at 0.0 makes its step a no-op that draws nothing from the RNG.
Randomness always comes from the caller's RNG; there is no module-level
generator here.
"""

from __future__ import annotations

import random
import re
from typing import Callable, List, Tuple

from ..core.constants import (
    DRUNK_HICCUP,
    DRUNK_SUBSTITUTIONS,
    ENTHUSIASM_PUNCTUATION_THRESHOLD,
    EXCLAMATIONS,
    STAGE_DIRECTIONS,
    TECH_QUALIFIERS,
    URGENT_INTERJECTIONS,
)
from ..core.personality import PersonalitySettings

Step = Callable[[str, PersonalitySettings, random.Random], str]

# A lone full stop ending a word: not part of "..." and not inside "2.0".
_FULL_STOP = re.compile(r"(?<!\.)\.(?!\.)(?=\s|$)")


def _slur(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    level = settings.drunkenness
    if level <= 0.0:
        return text
    out: List[str] = []
    for ch in text:
        sub = DRUNK_SUBSTITUTIONS.get(ch.lower())
        if sub is not None and rng.random() < level:
            # Keep the original character so case survives: "S" -> "Sh".
            out.append(ch + sub[1:])
        else:
            out.append(ch)
    slurred = "".join(out)
    if rng.random() < level / 2:
        slurred = f"{slurred} {DRUNK_HICCUP}"
    return slurred


def _add_catchphrase(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    if settings.sass <= 0.0 or not settings.catchphrases:
        return text
    if rng.random() >= settings.sass:
        return text
    phrase = rng.choice(settings.catchphrases)
    if rng.random() < 0.5:
        return f"{phrase} {text}"
    return f"{text} {phrase}"


def _add_jargon(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    if settings.tech_level <= 0.0 or rng.random() >= settings.tech_level:
        return text
    return f"{text} {rng.choice(TECH_QUALIFIERS)}"


def _add_reference(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    if settings.reference_affinity <= 0.0 or not settings.quotes:
        return text
    if rng.random() >= settings.reference_affinity:
        return text
    quote = rng.choice(settings.quotes)
    if rng.random() < 0.5:
        return f"{quote} {text}"
    return f"{text} {quote}"


def escalate_punctuation(text: str, enthusiasm: float) -> str:
    """Deterministic part of the enthusiasm step."""
    if enthusiasm < ENTHUSIASM_PUNCTUATION_THRESHOLD:
        return text
    return _FULL_STOP.sub("!", text)


def _shape_enthusiasm(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    level = settings.enthusiasm
    if level <= 0.0:
        return text
    text = escalate_punctuation(text, level)
    if rng.random() < level:
        text = f"{text} {rng.choice(EXCLAMATIONS)}"
    return text


def _shape_urgency(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    """Warning flavour of the enthusiasm step: tone only, content untouched."""
    level = settings.enthusiasm
    if level <= 0.0:
        return text
    text = escalate_punctuation(text, level)
    if rng.random() < level:
        text = f"{text} {rng.choice(URGENT_INTERJECTIONS)}"
    return text


def _add_nerves(text: str, settings: PersonalitySettings, rng: random.Random) -> str:
    if settings.anxiety <= 0.0 or rng.random() >= settings.anxiety:
        return text
    return f"{text} {rng.choice(STAGE_DIRECTIONS)}"


PIPELINE: Tuple[Step, ...] = (
    _slur,
    _add_catchphrase,
    _add_jargon,
    _add_reference,
    _shape_enthusiasm,
    _add_nerves,
)

WARNING_PIPELINE: Tuple[Step, ...] = (_shape_urgency,)


def transform(
    text: str,
    settings: PersonalitySettings,
    rng: random.Random,
    warning: bool = False,
) -> str:
    """
    Apply the personality overlay to one fragment's text.

    Same text, settings and RNG state always give the same result.
    Warnings skip everything except urgency shaping so the facts in them
    are spoken exactly as composed.
    """
    for step in WARNING_PIPELINE if warning else PIPELINE:
        text = step(text, settings, rng)
    return text
