"""
Audio assembly and playback sinks.

The narrator plays through the browser: the sink writes the assembled
clip under static/audio and publishes it as the current clip, then holds
the stream for the clip's duration at the requested rate. Rate and volume
are playback parameters; cached audio is never resampled.
"""

from __future__ import annotations

import asyncio
import io
import itertools
import logging
import time
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Final, List, Optional, Protocol, Sequence

from ..core.errors import AudioFormatError, PlaybackDeviceError

logger = logging.getLogger(__name__)

AUDIO_BASE_URL: Final[str] = "/static/audio"
STATIC_AUDIO_DIR: Final[Path] = Path(__file__).resolve().parents[1] / "static" / "audio"


class PlaybackSink(Protocol):
    async def play(self, audio: bytes, rate: float, volume: float) -> bool:
        """Play to completion. Returns False if interrupted."""
        ...

    async def interrupt(self) -> None:
        ...


def assemble_wav(clips: Sequence[bytes]) -> bytes:
    """Join WAV clips, in order, into one WAV stream."""
    if not clips:
        raise AudioFormatError("Nothing to assemble")
    params = None
    frames: List[bytes] = []
    for index, clip in enumerate(clips):
        try:
            with wave.open(io.BytesIO(clip), "rb") as w:
                clip_params = (w.getnchannels(), w.getsampwidth(), w.getframerate())
                frames.append(w.readframes(w.getnframes()))
        except (wave.Error, EOFError) as e:
            raise AudioFormatError(f"Clip {index} is not readable WAV: {e}") from e
        if params is None:
            params = clip_params
        elif clip_params != params:
            raise AudioFormatError(f"Clip {index} format {clip_params} differs from {params}")

    out = io.BytesIO()
    with wave.open(out, "wb") as w:
        w.setnchannels(params[0])
        w.setsampwidth(params[1])
        w.setframerate(params[2])
        for chunk in frames:
            w.writeframes(chunk)
    return out.getvalue()


def wav_duration(audio: bytes) -> float:
    with wave.open(io.BytesIO(audio), "rb") as w:
        rate = w.getframerate()
        return w.getnframes() / rate if rate else 0.0


@dataclass(frozen=True)
class NowPlaying:
    url: str
    rate: float
    volume: float
    duration_s: float
    started_at: float


class StaticAudioSink:
    """
    One active stream at a time, served to the web client as a static file.

    interrupt() releases the current stream immediately.
    """

    def __init__(self, audio_dir: Path = STATIC_AUDIO_DIR, base_url: str = AUDIO_BASE_URL, keep: int = 8) -> None:
        self.audio_dir = Path(audio_dir)
        self.base_url = base_url
        self.keep = keep
        self.current: Optional[NowPlaying] = None
        self._counter = itertools.count()
        self._stop = asyncio.Event()
        self._written: List[Path] = []

    async def play(self, audio: bytes, rate: float, volume: float) -> bool:
        if rate <= 0:
            raise PlaybackDeviceError(f"Invalid playback rate {rate}")
        try:
            duration = wav_duration(audio) / rate
            path = self._write(audio)
        except (OSError, wave.Error, EOFError) as e:
            raise PlaybackDeviceError(f"Cannot stage audio for playback: {e}") from e

        self._stop.clear()
        self.current = NowPlaying(
            url=f"{self.base_url}/{path.name}",
            rate=rate,
            volume=volume,
            duration_s=duration,
            started_at=time.time(),
        )
        logger.debug("Playing %s (%.2fs at x%.2f)", path.name, duration, rate)
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=duration)
        except asyncio.TimeoutError:
            return True
        finally:
            self.current = None
        logger.info("Playback of %s interrupted", path.name)
        return False

    async def interrupt(self) -> None:
        self._stop.set()

    def _write(self, audio: bytes) -> Path:
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        path = self.audio_dir / f"narration-{next(self._counter)}.wav"
        path.write_bytes(audio)
        self._written.append(path)
        while len(self._written) > self.keep:
            self._written.pop(0).unlink(missing_ok=True)
        return path
