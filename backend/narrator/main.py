import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Set

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .core.cache_store import CacheStore
from .core.config import CACHE_PERSIST, LOG_LEVEL
from .core.constants import SYSTEM_STATUS
from .core.errors import InvalidEventType, NarratorError, TelemetryError
from .core.fragment_cache import FragmentCache
from .models.api import (
    FragmentOut,
    NotifyRequest,
    NotifyResponse,
    PlaybackOut,
    SettingsModel,
    SettingsUpdate,
    TelemetryRequest,
    TelemetryResponse,
    ToggleResponse,
)
from .models.fragments import describe_key, fragment_kind
from .services.alerts import AlertMonitor
from .services.coordinator import SynthesisCoordinator
from .services.orchestrator import NotificationOrchestrator, NotificationResult, NotificationState
from .services.playback import PlaybackSink, StaticAudioSink
from .services.tts import build_provider

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    cache: FragmentCache
    store: Optional[CacheStore]
    coordinator: SynthesisCoordinator
    orchestrator: NotificationOrchestrator
    alerts: AlertMonitor


_pipeline: Optional[Pipeline] = None
_background: Set[asyncio.Task] = set()


def build_sink() -> PlaybackSink:
    return StaticAudioSink()


def get_pipeline() -> Pipeline:
    if _pipeline is None:
        raise HTTPException(status_code=503, detail="Narrator is not running")
    return _pipeline


def _spawn(coro) -> None:
    task = asyncio.create_task(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)


async def _speak_quietly(event_type: str) -> None:
    """Speak a UI event; failures are logged, never raised."""
    try:
        await get_pipeline().orchestrator.notify(event_type)
    except NarratorError as e:
        logger.warning("Could not speak %s: %s", event_type, e)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global _pipeline
    cache = FragmentCache()
    store = CacheStore() if CACHE_PERSIST else None
    if store is not None:
        cache.load(store.load())
    provider = build_provider()
    coordinator = SynthesisCoordinator(cache, provider)
    orchestrator = NotificationOrchestrator(coordinator, build_sink())
    _pipeline = Pipeline(
        cache=cache,
        store=store,
        coordinator=coordinator,
        orchestrator=orchestrator,
        alerts=AlertMonitor(),
    )
    _spawn(_speak_quietly("startup"))
    try:
        yield
    finally:
        for task in list(_background):
            task.cancel()
        await asyncio.gather(*_background, return_exceptions=True)
        await orchestrator.aclose()
        close = getattr(provider, "close", None)
        if close is not None:
            await close()
        if store is not None:
            store.save(cache.snapshot())
        _pipeline = None


app = FastAPI(title="CyberNinja Narrator", lifespan=lifespan)

STATIC_DIR = Path(__file__).resolve().parent / "static"
STATIC_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _to_response(result: NotificationResult) -> NotifyResponse:
    skipped = set(result.skipped)
    return NotifyResponse(
        event_type=result.event_type,
        state=result.state.value,
        played=result.played,
        rate=result.rate,
        fragments=[
            FragmentOut(
                kind=fragment_kind(r.fragment),
                text=r.fragment.text,
                spoken=r.text,
                cache_key=describe_key(r.key),
                skipped=r.key in skipped,
            )
            for r in result.fragments
        ],
        error=result.error,
    )


def _settings_out(orchestrator: NotificationOrchestrator) -> SettingsModel:
    s = orchestrator.settings
    return SettingsModel(
        drunkenness=s.drunkenness,
        sass=s.sass,
        tech_level=s.tech_level,
        enthusiasm=s.enthusiasm,
        anxiety=s.anxiety,
        reference_affinity=s.reference_affinity,
        voice=s.voice,
        speech_rate=s.speech_rate,
        volume=s.volume,
        catchphrases=list(s.catchphrases),
        quotes=list(s.quotes),
        audio_enabled=orchestrator.audio_enabled,
        warp=orchestrator.warp,
    )


@app.post("/notify", response_model=NotifyResponse)
async def notify(payload: NotifyRequest) -> NotifyResponse:
    """
    Narrate one event. Unknown events and unusable telemetry are a 400;
    synthesis and playback failures come back as state "failed".
    """
    orchestrator = get_pipeline().orchestrator
    try:
        result = await orchestrator.notify(payload.event_type, payload.telemetry)
    except (InvalidEventType, TelemetryError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _to_response(result)


@app.post("/telemetry", response_model=TelemetryResponse)
async def telemetry(payload: TelemetryRequest) -> TelemetryResponse:
    """
    Narrate whatever a telemetry sample calls for: warnings past their
    thresholds, then the periodic status report. A dropped event (audio
    muted) does not start its cooldown.
    """
    pipeline = get_pipeline()
    sample = {k: v for k, v in payload.model_dump().items() if v is not None}
    response = TelemetryResponse()
    try:
        for event in pipeline.alerts.events_due(sample):
            result = await pipeline.orchestrator.notify(event, sample)
            if result.state != NotificationState.DROPPED:
                pipeline.alerts.mark_spoken(event)
            if event == SYSTEM_STATUS:
                response.status = _to_response(result)
            else:
                response.warnings.append(_to_response(result))
    except TelemetryError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return response


@app.get("/settings", response_model=SettingsModel)
async def read_settings() -> SettingsModel:
    return _settings_out(get_pipeline().orchestrator)


@app.put("/settings", response_model=SettingsModel)
async def update_settings(payload: SettingsUpdate) -> SettingsModel:
    """Apply a partial update. Out-of-range values are clamped; NaN is rejected."""
    orchestrator = get_pipeline().orchestrator
    updated = replace(orchestrator.settings)
    try:
        for name, value in payload.model_dump(exclude_none=True).items():
            setattr(updated, name, value)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    orchestrator.settings = updated
    return _settings_out(orchestrator)


@app.post("/settings/reset-audio", response_model=SettingsModel)
async def reset_audio() -> SettingsModel:
    orchestrator = get_pipeline().orchestrator
    orchestrator.settings.reset_audio()
    return _settings_out(orchestrator)


@app.post("/audio/toggle", response_model=ToggleResponse)
async def toggle_audio() -> ToggleResponse:
    """Mute or unmute. Muting stops the current clip; unmuting announces itself."""
    orchestrator = get_pipeline().orchestrator
    result = await orchestrator.toggle_audio()
    return ToggleResponse(
        enabled=orchestrator.audio_enabled,
        announcement=_to_response(result) if result is not None else None,
    )


@app.post("/warp/toggle", response_model=ToggleResponse)
async def toggle_warp() -> ToggleResponse:
    orchestrator = get_pipeline().orchestrator
    result = await orchestrator.toggle_warp()
    return ToggleResponse(enabled=orchestrator.warp, announcement=_to_response(result))


@app.post("/playback/interrupt")
async def interrupt_playback() -> dict:
    await get_pipeline().orchestrator.interrupt()
    return {"ok": True}


@app.get("/playback", response_model=PlaybackOut)
async def current_playback() -> PlaybackOut:
    """What the web client should be playing right now."""
    sink = get_pipeline().orchestrator.sink
    current = getattr(sink, "current", None)
    if current is None:
        return PlaybackOut(playing=False)
    return PlaybackOut(
        playing=True,
        url=current.url,
        rate=current.rate,
        volume=current.volume,
        duration_s=current.duration_s,
    )


@app.get("/cache/stats")
async def cache_stats() -> dict:
    pipeline = get_pipeline()
    stats = pipeline.cache.describe()
    stats["inflight"] = pipeline.coordinator.inflight_count()
    stats["degraded"] = pipeline.coordinator.degraded
    return stats


@app.delete("/cache")
async def clear_cache() -> dict:
    get_pipeline().cache.clear()
    return {"ok": True}


@app.post("/synthesis/resume")
async def resume_synthesis() -> dict:
    """Leave degraded mode after an auth failure, e.g. once the API key is fixed."""
    get_pipeline().coordinator.clear_degraded()
    return {"ok": True}
