"""
Arbitration of calls to the speech provider.

A cache hit never reaches the provider. On a miss, the first caller for a
key starts one synthesis task and registers it; later callers for the
same key await that task instead of starting their own. The task runs to
completion even if every waiter goes away, so its audio still lands in
the cache, and it retires itself from the in-flight table when done.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict

from ..core.config import SYNTH_BACKOFF_S, SYNTH_MAX_RETRIES, SYNTH_TIMEOUT_S
from ..core.errors import SynthesisAuthFailure, SynthesisError, SynthesisTimeout
from ..core.fragment_cache import FragmentCache
from ..models.fragments import AudioCacheEntry, CacheKey, describe_key
from .tts import SpeechProvider

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _mark_retrieved(task: "asyncio.Task[bytes]") -> None:
    # Waiters may all have gone; the failure is already logged.
    if not task.cancelled():
        task.exception()


class SynthesisCoordinator:
    def __init__(
        self,
        cache: FragmentCache,
        provider: SpeechProvider,
        timeout_s: float = SYNTH_TIMEOUT_S,
        max_retries: int = SYNTH_MAX_RETRIES,
        backoff_s: float = SYNTH_BACKOFF_S,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_s = backoff_s
        self._sleep = sleep
        self._inflight: Dict[CacheKey, "asyncio.Task[bytes]"] = {}
        self._lock = asyncio.Lock()
        self.provider_calls = 0
        # Set by an auth failure; misses fail fast until cleared.
        self.auth_failed = False

    @property
    def degraded(self) -> bool:
        return self.auth_failed

    def clear_degraded(self) -> None:
        """Allow synthesis again, e.g. after credentials were fixed."""
        self.auth_failed = False

    def inflight_count(self) -> int:
        return len(self._inflight)

    async def resolve(self, key: CacheKey, text: str, voice: str) -> bytes:
        """
        Audio for key: from the cache, from an in-flight synthesis of the
        same key, or from a new synthesis.

        Raises the provider's SynthesisError once retries are exhausted.
        """
        entry = self.cache.get(key)
        if entry is not None:
            return entry.audio

        async with self._lock:
            entry = self.cache.peek(key)
            if entry is not None:
                return entry.audio
            task = self._inflight.get(key)
            if task is None:
                if self.auth_failed:
                    raise SynthesisAuthFailure(f"Synthesis disabled after auth failure ({describe_key(key)})")
                task = asyncio.get_running_loop().create_task(self._synthesize(key, text, voice))
                task.add_done_callback(_mark_retrieved)
                self._inflight[key] = task
            else:
                logger.debug("Joining in-flight synthesis for %s", describe_key(key))

        # Shielded: a cancelled waiter must not cancel work other waiters share.
        return await asyncio.shield(task)

    async def _synthesize(self, key: CacheKey, text: str, voice: str) -> bytes:
        try:
            audio = await self._call_with_retries(key, text, voice)
            self.cache.put(key, AudioCacheEntry(key=key, audio=audio))
            return audio
        finally:
            async with self._lock:
                self._inflight.pop(key, None)

    async def _call_with_retries(self, key: CacheKey, text: str, voice: str) -> bytes:
        attempt = 0
        while True:
            try:
                self.provider_calls += 1
                return await asyncio.wait_for(self.provider.synthesize(text, voice), self.timeout_s)
            except asyncio.TimeoutError:
                error: SynthesisError = SynthesisTimeout(f"Synthesis exceeded {self.timeout_s}s")
            except SynthesisAuthFailure as e:
                self.auth_failed = True
                logger.error("Auth failure synthesizing %s: %s; entering degraded mode", describe_key(key), e)
                raise
            except SynthesisError as e:
                error = e
            except Exception as e:
                logger.exception("Provider raised unexpectedly for %s", describe_key(key))
                error = SynthesisError(f"Provider failure: {e!r}")
                error.__cause__ = e

            if not error.retryable or attempt >= self.max_retries:
                logger.error(
                    "Synthesis failed for %s after %d attempt(s): %s",
                    describe_key(key),
                    attempt + 1,
                    error,
                )
                raise error

            delay = self.backoff_s * (2**attempt)
            attempt += 1
            logger.warning(
                "Synthesis attempt %d for %s failed (%s); retrying in %.2fs",
                attempt,
                describe_key(key),
                error,
                delay,
            )
            await self._sleep(delay)

    async def aclose(self) -> None:
        """Cancel any synthesis still running, e.g. at shutdown."""
        async with self._lock:
            tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
