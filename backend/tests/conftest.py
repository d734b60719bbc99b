"""
Pytest configuration and shared fixtures for narrator backend tests.
Replaces the speech provider and playback sink with in-memory fakes so tests
run without Coqui, network access, or a browser.
"""

import asyncio
import io
import wave
from typing import Dict, List, Tuple
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from narrator.core.fragment_cache import FragmentCache
from narrator.core.personality import neutral_personality
from narrator.services.coordinator import SynthesisCoordinator
from narrator.services.orchestrator import NotificationOrchestrator

TEST_VOICE = "test-voice"


def make_wav(frames: bytes, framerate: int = 8000) -> bytes:
    """8-bit mono WAV whose frames are exactly `frames`."""
    out = io.BytesIO()
    with wave.open(out, "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(1)
        w.setframerate(framerate)
        w.writeframes(frames)
    return out.getvalue()


def frames_of(audio: bytes) -> bytes:
    with wave.open(io.BytesIO(audio), "rb") as w:
        return w.readframes(w.getnframes())


class FakeProvider:
    """
    Speech provider whose audio frames are the UTF-8 bytes of the text, so
    assembled output shows which fragments were played and in what order.
    """

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str]] = []
        self.delays: Dict[str, float] = {}  # substring of text -> seconds
        self.errors: List[Exception] = []  # raised by the next calls, in order
        self.fail_on: Dict[str, Exception] = {}  # substring of text -> raised every call

    @property
    def texts(self) -> List[str]:
        return [text for text, _ in self.calls]

    async def synthesize(self, text: str, voice: str) -> bytes:
        self.calls.append((text, voice))
        for needle, delay in self.delays.items():
            if needle in text:
                await asyncio.sleep(delay)
        if self.errors:
            raise self.errors.pop(0)
        for needle, error in self.fail_on.items():
            if needle in text:
                raise error
        return make_wav(text.encode("utf-8"))


class RecordingSink:
    """Playback sink that records what it was asked to play and finishes instantly."""

    def __init__(self) -> None:
        self.played: List[Tuple[bytes, float, float]] = []
        self.interrupts = 0

    async def play(self, audio: bytes, rate: float, volume: float) -> bool:
        self.played.append((audio, rate, volume))
        return True

    async def interrupt(self) -> None:
        self.interrupts += 1


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def cache():
    return FragmentCache(max_bytes=1_000_000)


@pytest.fixture
def sleeps():
    """Backoff delays requested by the coordinator, recorded instead of slept."""
    return []


@pytest.fixture
def coordinator(cache, provider, sleeps):
    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    return SynthesisCoordinator(cache, provider, timeout_s=1.0, max_retries=3, backoff_s=0.5, sleep=fake_sleep)


@pytest.fixture
def orchestrator(coordinator, sink):
    """Orchestrator with every personality slider at zero, so spoken text equals composed text."""
    return NotificationOrchestrator(coordinator, sink, settings=neutral_personality(TEST_VOICE))


@pytest.fixture
def client(provider, sink):
    """FastAPI test client with fake provider and sink, and no cache persistence."""
    from narrator.main import app

    with (
        patch("narrator.main.build_provider", return_value=provider),
        patch("narrator.main.build_sink", return_value=sink),
        patch("narrator.main.CACHE_PERSIST", False),
    ):
        with TestClient(app) as test_client:
            yield test_client
