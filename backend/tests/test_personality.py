"""
Tests for personality settings, fingerprints, and the text transform.
"""

import math
import random

import pytest

from narrator.core.constants import DEFAULT_CATCHPHRASES, DEFAULT_QUOTES, DRUNK_HICCUP
from narrator.core.personality import PersonalitySettings, neutral_personality
from narrator.services.personality_transform import escalate_punctuation, transform


def _only(**sliders) -> PersonalitySettings:
    settings = neutral_personality("v")
    for name, value in sliders.items():
        setattr(settings, name, value)
    return settings


def test_sliders_clamp_on_construction_and_assignment():
    s = PersonalitySettings(sass=1.5, anxiety=-0.2, speech_rate=3.0)
    assert s.sass == 1.0
    assert s.anxiety == 0.0
    assert s.speech_rate == 2.0
    s.speech_rate = 0.1
    s.volume = 7
    assert s.speech_rate == 0.5
    assert s.volume == 1.0


def test_nan_slider_rejected():
    with pytest.raises(ValueError):
        PersonalitySettings(sass=math.nan)


def test_phrase_lists_stored_as_tuples():
    s = PersonalitySettings(catchphrases=["Yo!"])
    assert s.catchphrases == ("Yo!",)


def test_reset_audio_restores_audio_settings_only():
    s = PersonalitySettings(volume=0.1, speech_rate=1.8, enthusiasm=0.0, anxiety=1.0, sass=0.9)
    s.reset_audio()
    assert s.volume == 0.8
    assert s.speech_rate == 1.0
    assert s.enthusiasm == 0.8
    assert s.anxiety == 0.2
    assert s.sass == 0.9


def test_nearby_settings_share_a_fingerprint():
    assert PersonalitySettings(sass=0.49).fingerprint(5) == PersonalitySettings(sass=0.51).fingerprint(5)
    assert PersonalitySettings(sass=0.2).fingerprint(5) != PersonalitySettings(sass=0.8).fingerprint(5)


def test_binning_rounds_half_up():
    assert PersonalitySettings(sass=0.375).fingerprint(5).sass == 2
    assert PersonalitySettings(sass=0.3).fingerprint(5).sass == 1


def test_fingerprint_tracks_voice_and_phrasebook():
    base = PersonalitySettings()
    assert PersonalitySettings(voice="other").fingerprint() != base.fingerprint()
    assert PersonalitySettings(quotes=("New quote.",)).fingerprint() != base.fingerprint()


def test_warning_fingerprint_keeps_enthusiasm_and_voice():
    a = PersonalitySettings(sass=0.0, drunkenness=1.0, enthusiasm=1.0).fingerprint().for_warning()
    b = PersonalitySettings(sass=1.0, drunkenness=0.0, enthusiasm=1.0).fingerprint().for_warning()
    c = PersonalitySettings(sass=1.0, drunkenness=0.0, enthusiasm=0.0).fingerprint().for_warning()
    assert a == b
    assert a != c


def test_quantized_snaps_sliders_to_bin_values():
    q = PersonalitySettings(sass=0.51, tech_level=0.93).quantized(5)
    assert q.sass == 0.5
    assert q.tech_level == 1.0


def test_neutral_personality_leaves_text_and_rng_untouched():
    rng = random.Random(7)
    state = rng.getstate()
    text = "Disk space is. lots of room"
    assert transform(text, neutral_personality(), rng) == text
    assert rng.getstate() == state


def test_transform_is_deterministic_for_same_rng_seed():
    settings = PersonalitySettings(drunkenness=0.5, sass=0.5, tech_level=0.5, anxiety=0.5)
    first = transform("CPU usage is running steady.", settings, random.Random(42))
    second = transform("CPU usage is running steady.", settings, random.Random(42))
    assert first == second


def test_punctuation_escalation_does_not_depend_on_seed():
    settings = _only(enthusiasm=1.0)
    for seed in (1, 2, 3):
        out = transform("Disk space is low. Act now.", settings, random.Random(seed))
        assert out.startswith("Disk space is low! Act now!")


def test_full_drunkenness_slurs_every_s_and_r():
    out = transform("Servers rest", _only(drunkenness=1.0), random.Random(1))
    assert out.startswith("Sherrverrsh rresht")


def test_full_sass_adds_a_catchphrase():
    settings = _only(sass=1.0)
    settings.catchphrases = ("Yo!",)
    assert "Yo!" in transform("Memory is looking", settings, random.Random(3))


def test_enthusiasm_escalates_full_stops():
    assert escalate_punctuation("Hello. Version 2.0 ready...", 0.8) == "Hello! Version 2.0 ready..."
    assert escalate_punctuation("Hello. Calm.", 0.4) == "Hello. Calm."


def test_warning_transform_only_shapes_urgency():
    settings = PersonalitySettings(
        drunkenness=1.0, sass=1.0, tech_level=1.0, enthusiasm=1.0, anxiety=1.0, reference_affinity=1.0
    )
    text = "Warning. Memory usage has reached 90 percent. Things are very tight."
    out = transform(text, settings, random.Random(5), warning=True)
    assert out.startswith("Warning! Memory usage has reached 90 percent! Things are very tight!")
    assert DRUNK_HICCUP not in out
    for phrase in DEFAULT_CATCHPHRASES + DEFAULT_QUOTES:
        assert phrase not in out
