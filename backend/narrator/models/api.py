from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class NotifyRequest(BaseModel):
    """An event to narrate, with point-in-time telemetry."""

    event_type: str
    telemetry: Dict[str, float] = Field(default_factory=dict)


class FragmentOut(BaseModel):
    """One rendered fragment: its kind, what was spoken, and its cache identity."""

    kind: str
    text: str
    spoken: str
    cache_key: str
    skipped: bool = False


class NotifyResponse(BaseModel):
    """Outcome of one notification."""

    event_type: str
    state: str
    played: bool
    rate: float
    fragments: List[FragmentOut] = Field(default_factory=list)
    error: str | None = None


class TelemetryRequest(BaseModel):
    """A telemetry sample. Percentages for cpu/memory/disk, bytes per second for network."""

    cpu: float | None = None
    memory: float | None = None
    disk: float | None = None
    network: float | None = None


class TelemetryResponse(BaseModel):
    """Warnings and any periodic status report triggered by a sample, each already narrated."""

    warnings: List[NotifyResponse] = Field(default_factory=list)
    status: NotifyResponse | None = None


class SettingsModel(BaseModel):
    """Personality settings as exposed to the settings panel."""

    drunkenness: float
    sass: float
    tech_level: float
    enthusiasm: float
    anxiety: float
    reference_affinity: float
    voice: str
    speech_rate: float
    volume: float
    catchphrases: List[str]
    quotes: List[str]
    audio_enabled: bool
    warp: bool


class SettingsUpdate(BaseModel):
    """Partial settings update; omitted fields are left alone. Values are clamped, not rejected."""

    drunkenness: Optional[float] = None
    sass: Optional[float] = None
    tech_level: Optional[float] = None
    enthusiasm: Optional[float] = None
    anxiety: Optional[float] = None
    reference_affinity: Optional[float] = None
    voice: Optional[str] = None
    speech_rate: Optional[float] = None
    volume: Optional[float] = None
    catchphrases: Optional[List[str]] = None
    quotes: Optional[List[str]] = None


class ToggleResponse(BaseModel):
    """New state of a toggle plus the announcement, if one was spoken."""

    enabled: bool
    announcement: NotifyResponse | None = None


class PlaybackOut(BaseModel):
    """Clip the web client should be playing right now, if any."""

    playing: bool
    url: str | None = None
    rate: float | None = None
    volume: float | None = None
    duration_s: float | None = None
