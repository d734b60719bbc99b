"""
Error kinds raised by the narration pipeline.

Synthesis errors carry a `retryable` flag so the coordinator can decide
whether another attempt is worth making. Nothing here should ever escape
to the point of stopping the hosting process.
"""

from __future__ import annotations


class NarratorError(Exception):
    """Base class for all narration pipeline errors."""


class InvalidEventType(NarratorError, ValueError):
    """The composer was asked for an event it does not know."""

    def __init__(self, event_type: str) -> None:
        super().__init__(f"Unknown event type: {event_type!r}")
        self.event_type = event_type


class TelemetryError(NarratorError, ValueError):
    """Telemetry was missing, non-finite, or named an unknown metric."""


class SynthesisError(NarratorError):
    """The speech provider could not produce audio."""

    retryable: bool = False


class SynthesisTimeout(SynthesisError):
    retryable = True


class SynthesisAuthFailure(SynthesisError):
    """Bad or missing credentials. Never retried."""


class SynthesisRateLimited(SynthesisError):
    retryable = True


class SynthesisNetworkError(SynthesisError):
    retryable = True


class SynthesisMalformedResponse(SynthesisError):
    retryable = True


class CacheStoreUnavailable(NarratorError):
    """Persistent cache storage could not be read or written."""


class PlaybackDeviceError(NarratorError):
    """The playback sink failed while playing a notification."""


class AudioFormatError(NarratorError, ValueError):
    """Audio clips could not be joined into one stream."""
