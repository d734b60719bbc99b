"""
Tests for synthesis coordination: cache hits, coalescing, retries, and auth failures.
"""

import asyncio

import pytest

from conftest import make_wav
from narrator.core.errors import (
    SynthesisAuthFailure,
    SynthesisError,
    SynthesisNetworkError,
    SynthesisTimeout,
)
from narrator.core.fragment_cache import FragmentCache
from narrator.models.fragments import AudioCacheEntry, DynamicKey
from narrator.services.coordinator import SynthesisCoordinator

KEY = DynamicKey("running hot", "v")
OTHER = DynamicKey("running cool", "v")


async def test_cache_hit_never_calls_provider(coordinator, cache, provider):
    cache.put(KEY, AudioCacheEntry(key=KEY, audio=b"cached"))
    assert await coordinator.resolve(KEY, "running hot", "v") == b"cached"
    assert provider.calls == []


async def test_miss_synthesizes_once_and_caches(coordinator, cache, provider):
    audio = await coordinator.resolve(KEY, "running hot", "v")
    assert audio == make_wav(b"running hot")
    assert cache.peek(KEY).audio == audio
    await coordinator.resolve(KEY, "running hot", "v")
    assert provider.calls == [("running hot", "v")]
    assert coordinator.inflight_count() == 0


async def test_concurrent_misses_share_one_synthesis(coordinator, provider):
    provider.delays["running hot"] = 0.05
    results = await asyncio.gather(*(coordinator.resolve(KEY, "running hot", "v") for _ in range(10)))
    assert len(provider.calls) == 1
    assert len(set(results)) == 1


async def test_shared_failure_reaches_every_waiter(coordinator, provider):
    provider.delays["running hot"] = 0.02
    provider.fail_on["running hot"] = SynthesisError("model crashed")
    results = await asyncio.gather(
        *(coordinator.resolve(KEY, "running hot", "v") for _ in range(3)),
        return_exceptions=True,
    )
    assert all(isinstance(r, SynthesisError) for r in results)
    assert len(provider.calls) == 1
    assert coordinator.inflight_count() == 0


async def test_transient_errors_retry_with_backoff(coordinator, provider, sleeps):
    provider.errors = [SynthesisNetworkError("reset"), SynthesisTimeout("slow")]
    audio = await coordinator.resolve(KEY, "running hot", "v")
    assert audio == make_wav(b"running hot")
    assert len(provider.calls) == 3
    assert sleeps == [0.5, 1.0]


async def test_retries_exhausted_raises_and_caches_nothing(coordinator, cache, provider, sleeps):
    provider.errors = [SynthesisNetworkError("down") for _ in range(4)]
    with pytest.raises(SynthesisNetworkError):
        await coordinator.resolve(KEY, "running hot", "v")
    assert len(provider.calls) == 4
    assert sleeps == [0.5, 1.0, 2.0]
    assert KEY not in cache
    assert coordinator.inflight_count() == 0


async def test_non_retryable_error_is_not_retried(coordinator, provider, sleeps):
    provider.errors = [SynthesisError("bad voice")]
    with pytest.raises(SynthesisError):
        await coordinator.resolve(KEY, "running hot", "v")
    assert len(provider.calls) == 1
    assert sleeps == []


async def test_unexpected_provider_error_becomes_synthesis_error(coordinator, cache, provider, sleeps):
    provider.errors = [TypeError("speaker lookup broke")]
    with pytest.raises(SynthesisError) as excinfo:
        await coordinator.resolve(KEY, "running hot", "v")
    assert isinstance(excinfo.value.__cause__, TypeError)
    assert not excinfo.value.retryable
    assert len(provider.calls) == 1
    assert sleeps == []
    assert KEY not in cache
    assert coordinator.inflight_count() == 0


async def test_auth_failure_enters_degraded_mode(coordinator, cache, provider):
    cache.put(OTHER, AudioCacheEntry(key=OTHER, audio=b"cached"))
    provider.errors = [SynthesisAuthFailure("bad key")]
    with pytest.raises(SynthesisAuthFailure):
        await coordinator.resolve(KEY, "running hot", "v")
    assert coordinator.degraded

    # Misses fail fast without touching the provider; hits are still served.
    with pytest.raises(SynthesisAuthFailure):
        await coordinator.resolve(DynamicKey("busy", "v"), "busy", "v")
    assert len(provider.calls) == 1
    assert await coordinator.resolve(OTHER, "running cool", "v") == b"cached"

    coordinator.clear_degraded()
    assert not coordinator.degraded
    assert await coordinator.resolve(KEY, "running hot", "v") == make_wav(b"running hot")


async def test_slow_provider_times_out(provider):
    provider.delays["running hot"] = 1.0
    coordinator = SynthesisCoordinator(FragmentCache(), provider, timeout_s=0.01, max_retries=0)
    with pytest.raises(SynthesisTimeout):
        await coordinator.resolve(KEY, "running hot", "v")


async def test_cancelled_waiter_does_not_cancel_shared_synthesis(coordinator, cache, provider):
    provider.delays["running hot"] = 0.05
    first = asyncio.create_task(coordinator.resolve(KEY, "running hot", "v"))
    second = asyncio.create_task(coordinator.resolve(KEY, "running hot", "v"))
    await asyncio.sleep(0.01)
    first.cancel()
    assert await second == make_wav(b"running hot")
    assert KEY in cache
    assert len(provider.calls) == 1


async def test_aclose_cancels_inflight_work(coordinator, provider):
    provider.delays["running hot"] = 1.0
    waiter = asyncio.create_task(coordinator.resolve(KEY, "running hot", "v"))
    await asyncio.sleep(0.01)
    await coordinator.aclose()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert coordinator.inflight_count() == 0
