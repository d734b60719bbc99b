"""
API tests for notify, telemetry warnings, settings, toggles, and cache control.
Uses the fake provider and recording sink from conftest.
"""

from narrator.core.errors import SynthesisAuthFailure
from narrator.services.alerts import AlertMonitor


def test_notify_cpu_status_plays_two_fragments(client, sink):
    """POST /notify narrates a status event as lead-in plus label."""
    r = client.post("/notify", json={"event_type": "cpu_status", "telemetry": {"cpu": 55.0}})
    assert r.status_code == 200
    data = r.json()
    assert data["state"] == "done"
    assert data["played"] is True
    assert [f["kind"] for f in data["fragments"]] == ["static", "dynamic"]
    assert data["fragments"][1]["text"] == "working hard"
    assert data["fragments"][1]["spoken"] == "working hard"
    assert data["fragments"][1]["cache_key"].startswith("dynamic:")
    assert len(sink.played) >= 1


def test_notify_reuses_cached_fragments(client, provider):
    body = {"event_type": "cpu_status", "telemetry": {"cpu": 55.0}}
    client.post("/notify", json=body)
    calls = provider.texts.count("working hard")
    client.post("/notify", json=body)
    assert calls == 1
    assert provider.texts.count("working hard") == 1


def test_notify_unknown_event_is_400(client):
    r = client.post("/notify", json={"event_type": "coffee_status"})
    assert r.status_code == 400


def test_notify_missing_telemetry_is_400(client):
    r = client.post("/notify", json={"event_type": "cpu_status", "telemetry": {}})
    assert r.status_code == 400


def test_telemetry_warns_once_per_cooldown(client):
    """POST /telemetry narrates a warning above threshold, then holds off."""
    r = client.post("/telemetry", json={"cpu": 95.0, "memory": 20.0})
    assert r.status_code == 200
    warnings = r.json()["warnings"]
    assert [w["event_type"] for w in warnings] == ["cpu_warning"]
    assert warnings[0]["fragments"][0]["kind"] == "full"
    assert "90 percent" in warnings[0]["fragments"][0]["text"]

    again = client.post("/telemetry", json={"cpu": 97.0})
    assert again.json()["warnings"] == []


def test_muted_telemetry_warning_does_not_start_cooldown(client, provider):
    client.post("/audio/toggle")
    muted = client.post("/telemetry", json={"cpu": 95.0}).json()
    assert [w["state"] for w in muted["warnings"]] == ["dropped"]
    assert "Warning." not in " ".join(provider.texts)

    client.post("/audio/toggle")
    spoken = client.post("/telemetry", json={"cpu": 95.0}).json()
    assert [w["state"] for w in spoken["warnings"]] == ["done"]
    assert client.post("/telemetry", json={"cpu": 95.0}).json()["warnings"] == []


def test_telemetry_narrates_status_once_per_interval(client):
    import narrator.main

    now = [0.0]
    narrator.main.get_pipeline().alerts = AlertMonitor(status_interval_s=300.0, clock=lambda: now[0])

    assert client.post("/telemetry", json={"cpu": 10.0}).json()["status"] is None
    now[0] = 300.0
    status = client.post("/telemetry", json={"cpu": 10.0, "memory": 45.0}).json()["status"]
    assert status["event_type"] == "system_status"
    assert status["state"] == "done"
    texts = [f["text"] for f in status["fragments"]]
    assert texts == ["CPU usage is", "running cool", "Memory is looking", "comfortable"]
    now[0] = 450.0
    assert client.post("/telemetry", json={"cpu": 10.0}).json()["status"] is None


def test_settings_defaults(client):
    r = client.get("/settings")
    assert r.status_code == 200
    data = r.json()
    assert data["audio_enabled"] is True
    assert data["warp"] is False
    assert data["speech_rate"] == 1.0
    assert 0.0 <= data["sass"] <= 1.0


def test_settings_update_clamps_values(client):
    r = client.put("/settings", json={"sass": 5.0, "speech_rate": 0.1, "catchphrases": ["Yo!"]})
    assert r.status_code == 200
    data = r.json()
    assert data["sass"] == 1.0
    assert data["speech_rate"] == 0.5
    assert data["catchphrases"] == ["Yo!"]
    assert client.get("/settings").json()["sass"] == 1.0


def test_reset_audio_restores_defaults(client):
    client.put("/settings", json={"volume": 0.1, "sass": 0.0})
    data = client.post("/settings/reset-audio").json()
    assert data["volume"] == 0.8
    assert data["sass"] == 0.0


def test_audio_toggle_mutes_and_announces(client):
    off = client.post("/audio/toggle").json()
    assert off["enabled"] is False
    assert off["announcement"] is None

    dropped = client.post("/notify", json={"event_type": "startup"}).json()
    assert dropped["state"] == "dropped"
    assert dropped["played"] is False

    on = client.post("/audio/toggle").json()
    assert on["enabled"] is True
    assert on["announcement"]["event_type"] == "audio_enabled"
    assert on["announcement"]["state"] == "done"


def test_warp_toggle_raises_rate(client):
    data = client.post("/warp/toggle").json()
    assert data["enabled"] is True
    assert data["announcement"]["rate"] == 2.0
    assert client.get("/settings").json()["warp"] is True


def test_playback_idle_with_recording_sink(client):
    assert client.get("/playback").json()["playing"] is False
    assert client.post("/playback/interrupt").json() == {"ok": True}


def test_cache_stats_and_clear(client):
    client.post("/notify", json={"event_type": "cpu_status", "telemetry": {"cpu": 55.0}})
    stats = client.get("/cache/stats").json()
    assert stats["entries"] >= 2
    assert stats["degraded"] is False
    assert stats["inflight"] == 0

    assert client.delete("/cache").json() == {"ok": True}
    assert client.get("/cache/stats").json()["entries"] == 0


def test_auth_failure_degrades_until_resumed(client, provider):
    provider.fail_on[""] = SynthesisAuthFailure("bad key")
    r = client.post("/notify", json={"event_type": "disk_status", "telemetry": {"disk": 10.0}})
    assert r.json()["state"] == "failed"
    assert client.get("/cache/stats").json()["degraded"] is True

    provider.fail_on.clear()
    client.post("/synthesis/resume")
    assert client.get("/cache/stats").json()["degraded"] is False
    r = client.post("/notify", json={"event_type": "disk_status", "telemetry": {"disk": 10.0}})
    assert r.json()["state"] == "done"
