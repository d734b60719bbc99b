"""
Top-level notification pipeline.

Composing -> ResolvingFragments -> Assembling -> Playing -> Done, with
Failed reachable when every fragment fails or the sink fails. Fragments
of one notification resolve concurrently but are always played in the
order they were composed. Only one notification plays at a time.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from ..core.config import PERSONALITY_BINS, RNG_SEED, WARP_MULTIPLIER
from ..core.errors import (
    AudioFormatError,
    InvalidEventType,
    PlaybackDeviceError,
    SynthesisError,
    TelemetryError,
)
from ..core.personality import PersonalitySettings
from ..models.fragments import CacheKey, describe_key, fragment_kind
from .coordinator import SynthesisCoordinator
from .message_builder import RenderedFragment, RngFactory, Telemetry, compose, render, seeded_rng_factory
from .playback import PlaybackSink, assemble_wav

logger = logging.getLogger(__name__)


class NotificationState(str, Enum):
    COMPOSING = "composing"
    RESOLVING = "resolving_fragments"
    ASSEMBLING = "assembling"
    PLAYING = "playing"
    DONE = "done"
    FAILED = "failed"
    DROPPED = "dropped"
    INTERRUPTED = "interrupted"


@dataclass
class NotificationResult:
    event_type: str
    state: NotificationState = NotificationState.COMPOSING
    fragments: List[RenderedFragment] = field(default_factory=list)
    skipped: List[CacheKey] = field(default_factory=list)
    rate: float = 1.0
    error: Optional[str] = None

    @property
    def played(self) -> bool:
        return self.state == NotificationState.DONE


class NotificationOrchestrator:
    """
    Entry point for spoken notifications.

    Holds the live personality settings plus the mute and warp flags; the
    settings surface mutates them, the pipeline only reads them.
    """

    def __init__(
        self,
        coordinator: SynthesisCoordinator,
        sink: PlaybackSink,
        settings: Optional[PersonalitySettings] = None,
        rng_factory: Optional[RngFactory] = None,
        compose_rng: Optional[random.Random] = None,
        warp_multiplier: float = WARP_MULTIPLIER,
        bins: int = PERSONALITY_BINS,
    ) -> None:
        self.coordinator = coordinator
        self.sink = sink
        self.settings = settings or PersonalitySettings()
        self.rng_factory = rng_factory or seeded_rng_factory(RNG_SEED)
        # Picks among alternative phrasings, e.g. exit sign-offs.
        self.compose_rng = compose_rng or random.Random(RNG_SEED)
        self.warp_multiplier = warp_multiplier
        self.bins = bins
        self.audio_enabled = True
        self.warp = False
        self._playback_lock = asyncio.Lock()
        # Bumped by interrupt(); notifications started earlier are discarded.
        self._generation = 0

    @property
    def playback_rate(self) -> float:
        rate = self.settings.speech_rate
        return rate * self.warp_multiplier if self.warp else rate

    async def notify(self, event_type: str, telemetry: Optional[Telemetry] = None) -> NotificationResult:
        """
        Speak one event.

        A muted pipeline drops the event and still returns normally.
        Unknown events and bad telemetry raise from the composer.
        """
        result = NotificationResult(event_type=event_type)
        if not self.audio_enabled:
            logger.debug("Audio disabled; dropping %s", event_type)
            result.state = NotificationState.DROPPED
            return result

        generation = self._generation
        settings = replace(self.settings)
        try:
            fragments = compose(event_type, telemetry, rng=self.compose_rng)
        except (InvalidEventType, TelemetryError) as e:
            logger.warning("Cannot compose %s: %s", event_type, e)
            raise
        result.fragments = [render(f, event_type, settings, self.rng_factory, self.bins) for f in fragments]

        result.state = NotificationState.RESOLVING
        outcomes = await asyncio.gather(
            *(self.coordinator.resolve(r.key, r.text, settings.voice) for r in result.fragments),
            return_exceptions=True,
        )

        clips: List[bytes] = []
        for rendered, outcome in zip(result.fragments, outcomes):
            if isinstance(outcome, SynthesisError):
                logger.warning(
                    "Skipping %s fragment %s: %s",
                    fragment_kind(rendered.fragment),
                    describe_key(rendered.key),
                    outcome,
                )
                result.skipped.append(rendered.key)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                clips.append(outcome)

        if not clips:
            result.state = NotificationState.FAILED
            result.error = "All fragments failed to synthesize"
            logger.error("Notification %s failed: no fragment could be synthesized", event_type)
            return result
        if generation != self._generation:
            result.state = NotificationState.INTERRUPTED
            return result

        keys = [r.key for r in result.fragments if r.key not in result.skipped]
        with self.coordinator.cache.pinned(keys):
            result.state = NotificationState.ASSEMBLING
            try:
                audio = assemble_wav(clips)
            except AudioFormatError as e:
                logger.error("Cannot assemble %s: %s", event_type, e)
                result.state = NotificationState.FAILED
                result.error = str(e)
                return result

            async with self._playback_lock:
                if generation != self._generation or not self.audio_enabled:
                    result.state = NotificationState.INTERRUPTED
                    return result
                result.state = NotificationState.PLAYING
                result.rate = self.playback_rate
                try:
                    finished = await self.sink.play(audio, result.rate, settings.volume)
                except PlaybackDeviceError as e:
                    logger.error("Playback of %s failed: %s", event_type, e)
                    result.state = NotificationState.FAILED
                    result.error = str(e)
                    return result

        result.state = NotificationState.DONE if finished else NotificationState.INTERRUPTED
        return result

    async def interrupt(self) -> None:
        """Stop current playback and discard notifications not yet playing."""
        self._generation += 1
        await self.sink.interrupt()

    async def set_audio_enabled(self, enabled: bool) -> Optional[NotificationResult]:
        self.audio_enabled = enabled
        if not enabled:
            await self.interrupt()
            return None
        return await self.notify("audio_enabled")

    async def toggle_audio(self) -> Optional[NotificationResult]:
        return await self.set_audio_enabled(not self.audio_enabled)

    async def set_warp(self, engaged: bool) -> NotificationResult:
        self.warp = engaged
        return await self.notify("warp_engaged" if engaged else "warp_disengaged")

    async def toggle_warp(self) -> NotificationResult:
        return await self.set_warp(not self.warp)

    async def aclose(self) -> None:
        await self.interrupt()
        await self.coordinator.aclose()
