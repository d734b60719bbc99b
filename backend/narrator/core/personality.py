from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass, field, fields, replace
from typing import Tuple

from .config import DEFAULT_VOICE, PERSONALITY_BINS
from .constants import DEFAULT_CATCHPHRASES, DEFAULT_QUOTES

SLIDERS: Tuple[str, ...] = (
    "drunkenness",
    "sass",
    "tech_level",
    "enthusiasm",
    "anxiety",
    "reference_affinity",
)

_RANGES = {name: (0.0, 1.0) for name in SLIDERS}
_RANGES["volume"] = (0.0, 1.0)
_RANGES["speech_rate"] = (0.5, 2.0)


def _clamp(name: str, value: float) -> float:
    value = float(value)
    if math.isnan(value):
        raise ValueError(f"{name} must not be NaN")
    low, high = _RANGES[name]
    return min(max(value, low), high)


@dataclass(frozen=True)
class PersonalityFingerprint:
    """
    Personality reduced to coarse bins for cache-key purposes.

    Two settings that land in the same bins speak identically, so they
    share cached audio.
    """

    bins: int
    drunkenness: int
    sass: int
    tech_level: int
    enthusiasm: int
    anxiety: int
    reference_affinity: int
    voice: str
    phrasebook: str

    def for_warning(self) -> "PersonalityFingerprint":
        """Keep only what shapes a warning: enthusiasm and voice."""
        return replace(
            self,
            drunkenness=0,
            sass=0,
            tech_level=0,
            anxiety=0,
            reference_affinity=0,
            phrasebook="",
        )


@dataclass
class PersonalitySettings:
    """
    How the narrator talks.

    Sliders are clamped on every assignment, including in __init__.
    """

    drunkenness: float = 0.0
    sass: float = 0.5
    tech_level: float = 0.7
    enthusiasm: float = 0.8
    anxiety: float = 0.2
    reference_affinity: float = 0.3
    voice: str = DEFAULT_VOICE
    speech_rate: float = 1.0
    volume: float = 0.8
    catchphrases: Tuple[str, ...] = field(default=DEFAULT_CATCHPHRASES)
    quotes: Tuple[str, ...] = field(default=DEFAULT_QUOTES)

    def __setattr__(self, name: str, value) -> None:
        if name in _RANGES:
            value = _clamp(name, value)
        elif name in ("catchphrases", "quotes"):
            value = tuple(value)
        super().__setattr__(name, value)

    def reset_audio(self) -> None:
        """Restore audio-related settings to their defaults."""
        defaults = {f.name: f.default for f in fields(self)}
        for name in ("volume", "speech_rate", "enthusiasm", "anxiety"):
            setattr(self, name, defaults[name])

    def quantized(self, bins: int = PERSONALITY_BINS) -> "PersonalitySettings":
        """Copy with every slider snapped to its bin value."""
        snapped = {name: _bin(getattr(self, name), bins) / (bins - 1) for name in SLIDERS}
        return replace(self, **snapped)

    def fingerprint(self, bins: int = PERSONALITY_BINS) -> PersonalityFingerprint:
        return PersonalityFingerprint(
            bins=bins,
            voice=self.voice,
            phrasebook=_phrasebook_digest(self.catchphrases, self.quotes),
            **{name: _bin(getattr(self, name), bins) for name in SLIDERS},
        )


def _bin(value: float, bins: int) -> int:
    if bins < 2:
        raise ValueError("Personality needs at least two bins per slider")
    # Half-up, not banker's rounding.
    return int(math.floor(value * (bins - 1) + 0.5))


def _phrasebook_digest(catchphrases: Tuple[str, ...], quotes: Tuple[str, ...]) -> str:
    h = hashlib.sha256()
    for phrase in catchphrases + ("\x00",) + quotes:
        h.update(phrase.encode("utf-8"))
        h.update(b"\x1f")
    return h.hexdigest()[:12]


def neutral_personality(voice: str = DEFAULT_VOICE) -> PersonalitySettings:
    """All sliders at zero: every transform step is a no-op."""
    return PersonalitySettings(voice=voice, **{name: 0.0 for name in SLIDERS})
