"""
Speech synthesis providers for narrator voice output.

Coqui TTS runs locally; the model is loaded lazily on first use and
synthesis runs in a worker thread so the event loop never blocks. The
OpenAI provider calls the hosted speech endpoint over HTTP. Both return
WAV bytes and raise typed SynthesisError subclasses on failure.
"""

from __future__ import annotations

import asyncio
import logging
import os
import struct
import tempfile
import threading
import wave
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Final, Optional, Protocol, Tuple

import aiohttp

from ..core.config import OPENAI_API_KEY, OPENAI_TTS_MODEL, TTS_PROVIDER
from ..core.errors import (
    SynthesisAuthFailure,
    SynthesisError,
    SynthesisMalformedResponse,
    SynthesisNetworkError,
    SynthesisRateLimited,
    SynthesisTimeout,
)

logger = logging.getLogger(__name__)

# Store Coqui models in project; avoids global cache dir.
_BACKEND_DIR = Path(__file__).resolve().parents[2]
os.environ.setdefault("XDG_DATA_HOME", str(_BACKEND_DIR / ".tts_cache"))
# XTTS requires ToS agreement; set for non-interactive use (CPML non-commercial).
os.environ.setdefault("COQUI_TOS_AGREED", "1")

COQUI_MODEL: Final[str] = "tts_models/multilingual/multi-dataset/xtts_v2"
COQUI_LANGUAGE: Final[str] = "en"
COQUI_FALLBACK_MODEL: Final[str] = "tts_models/en/vctk/vits"
COQUI_FALLBACK_SPEAKER: Final[str] = "p225"
COQUI_LAST_RESORT_MODEL: Final[str] = "tts_models/en/ljspeech/tacotron2-DDC"

OPENAI_SPEECH_URL: Final[str] = "https://api.openai.com/v1/audio/speech"


class SpeechProvider(Protocol):
    async def synthesize(self, text: str, voice: str) -> bytes:
        """Return WAV audio for text spoken in voice."""
        ...


def is_wav(audio: bytes) -> bool:
    return len(audio) > 12 and audio[:4] == b"RIFF" and audio[8:12] == b"WAVE"


def _apply_fade_in(wav_path: Path, fade_ms: int = 25) -> None:
    """
    Apply short fade-in to soften start click. No extra delay.
    Ramps first N ms from 0 to 1. In-place.
    """
    with wave.open(str(wav_path), "rb") as w:
        params = w.getparams()
        frames = w.readframes(w.getnframes())

    samp_width = params.sampwidth
    total_samples = len(frames) // samp_width
    n_fade_samples = min(int(params.framerate * fade_ms / 1000) * params.nchannels, total_samples)
    if n_fade_samples <= 0:
        return

    fmt = {1: "b", 2: "h", 4: "i"}.get(samp_width, "h")
    samples = struct.iter_unpack(f"<{fmt}", frames[: n_fade_samples * samp_width])
    faded = [int(s[0] * (i + 1) / n_fade_samples) for i, s in enumerate(samples)]
    new_frames = struct.pack(f"<{len(faded)}{fmt}", *faded) + frames[n_fade_samples * samp_width :]

    with wave.open(str(wav_path), "wb") as w:
        w.setparams(params)
        w.writeframes(new_frames)


class CoquiSpeechProvider:
    """
    Local Coqui TTS. Prefers XTTS, falls back to VCTK then tacotron2.

    The model is not thread-safe, so every synthesis runs on one dedicated
    worker thread. A thread cannot be stopped once started: when a caller
    gives up on a job (e.g. on timeout), the job keeps running and the next
    request for the same text and voice joins it instead of queueing a
    second model call.
    """

    def __init__(self) -> None:
        self._tts = None
        self._load_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="coqui")
        self._jobs: Dict[Tuple[str, str], "asyncio.Future[bytes]"] = {}

    def _get_tts(self):
        """Lazy-load the Coqui TTS model. Blocking; call from thread pool."""
        with self._load_lock:
            if self._tts is not None:
                return self._tts
            import torch
            from TTS.api import TTS

            device = "cuda" if torch.cuda.is_available() else "cpu"
            for model, is_xtts, fixed_speaker in [
                (COQUI_MODEL, True, None),
                (COQUI_FALLBACK_MODEL, False, COQUI_FALLBACK_SPEAKER),
                (COQUI_LAST_RESORT_MODEL, False, None),
            ]:
                try:
                    tts = TTS(model).to(device)
                except (FileNotFoundError, OSError) as e:
                    if model == COQUI_LAST_RESORT_MODEL:
                        raise
                    logger.warning("Coqui model %s unavailable (%s); trying next", model, e)
                    continue
                tts._is_xtts = is_xtts
                tts._fixed_speaker = fixed_speaker
                self._tts = tts
                logger.info("Loaded Coqui model %s on %s", model, device)
                break
            return self._tts

    def _synthesize_blocking(self, text: str, voice: str) -> bytes:
        tts = self._get_tts()
        with tempfile.TemporaryDirectory() as tmp:
            out_path = Path(tmp) / "fragment.wav"
            if tts._is_xtts:
                tts.tts_to_file(
                    text=text,
                    speaker=voice,
                    language=COQUI_LANGUAGE,
                    file_path=str(out_path),
                    split_sentences=False,
                )
            elif tts._fixed_speaker:
                tts.tts_to_file(text=text, speaker=tts._fixed_speaker, file_path=str(out_path))
            else:
                tts.tts_to_file(text=text, file_path=str(out_path))
            _apply_fade_in(out_path)
            return out_path.read_bytes()

    def _job_for(self, text: str, voice: str) -> "asyncio.Future[bytes]":
        job = self._jobs.get((text, voice))
        if job is None:
            job = asyncio.get_running_loop().run_in_executor(self._executor, self._synthesize_blocking, text, voice)
            job.add_done_callback(_retrieve_exception)
            self._jobs[(text, voice)] = job
        else:
            logger.debug("Joining running Coqui job for %r", text)
        return job

    def _forget(self, text: str, voice: str, job: "asyncio.Future[bytes]") -> None:
        if self._jobs.get((text, voice)) is job:
            del self._jobs[(text, voice)]

    async def synthesize(self, text: str, voice: str) -> bytes:
        job = self._job_for(text, voice)
        try:
            # Shielded: a cancelled caller leaves the job for the next one.
            audio = await asyncio.shield(job)
        except asyncio.CancelledError:
            raise
        except ImportError as e:
            self._forget(text, voice, job)
            raise SynthesisError(f"Coqui TTS is not installed: {e}") from e
        except (OSError, RuntimeError, ValueError, KeyError, wave.Error) as e:
            self._forget(text, voice, job)
            raise SynthesisError(f"Coqui synthesis failed: {e}") from e
        except Exception:
            self._forget(text, voice, job)
            raise
        self._forget(text, voice, job)
        if not is_wav(audio):
            raise SynthesisMalformedResponse("Coqui produced no WAV audio")
        return audio

    async def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._jobs.clear()


def _retrieve_exception(job: "asyncio.Future[bytes]") -> None:
    # An abandoned job may fail with nobody awaiting it.
    if not job.cancelled():
        job.exception()


class OpenAISpeechProvider:
    """Hosted speech endpoint. Credentials come from OPENAI_API_KEY."""

    def __init__(
        self,
        api_key: str = OPENAI_API_KEY,
        model: str = OPENAI_TTS_MODEL,
        url: str = OPENAI_SPEECH_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = url
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()

    async def synthesize(self, text: str, voice: str) -> bytes:
        if not self.api_key:
            raise SynthesisAuthFailure("OPENAI_API_KEY is not set")
        payload = {"model": self.model, "input": text, "voice": voice, "response_format": "wav"}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        session = await self._get_session()
        try:
            async with session.post(self.url, json=payload, headers=headers) as resp:
                if resp.status in (401, 403):
                    raise SynthesisAuthFailure(f"Speech API rejected credentials ({resp.status})")
                if resp.status == 429:
                    raise SynthesisRateLimited("Speech API rate limit hit")
                if resp.status >= 400:
                    detail = (await resp.text())[:200]
                    raise SynthesisNetworkError(f"Speech API error {resp.status}: {detail}")
                audio = await resp.read()
        except asyncio.TimeoutError as e:
            raise SynthesisTimeout("Speech API request timed out") from e
        except aiohttp.ClientError as e:
            raise SynthesisNetworkError(f"Speech API request failed: {e}") from e
        if not is_wav(audio):
            raise SynthesisMalformedResponse(f"Speech API returned {len(audio)} bytes of non-WAV data")
        return audio


def build_provider(name: str = TTS_PROVIDER) -> SpeechProvider:
    if name == "openai":
        return OpenAISpeechProvider()
    if name == "coqui":
        return CoquiSpeechProvider()
    raise ValueError(f"Unknown TTS provider: {name!r}")
