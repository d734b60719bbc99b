"""
Typed message fragments and the cache keys derived from them.

Fragments and keys are closed sets: every consumer dispatches over all
variants and raises TypeError on anything else.
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Union

from ..core.personality import PersonalityFingerprint


@dataclass(frozen=True)
class Static:
    """Fixed phrasing; gets the personality transform."""

    text: str


@dataclass(frozen=True)
class Dynamic:
    """Data-derived phrasing; always spoken neutrally."""

    text: str


@dataclass(frozen=True)
class Full:
    """A complete message such as a warning, transformed as a whole.

    `value` is the discretized reading the text was built from, if any.
    """

    text: str
    value: str = ""


MessageFragment = Union[Static, Dynamic, Full]


@dataclass(frozen=True)
class StaticKey:
    phrase: str
    fingerprint: PersonalityFingerprint


@dataclass(frozen=True)
class DynamicKey:
    text: str
    voice: str


@dataclass(frozen=True)
class FullKey:
    event_type: str
    value: str
    fingerprint: PersonalityFingerprint


CacheKey = Union[StaticKey, DynamicKey, FullKey]


def fragment_kind(fragment: MessageFragment) -> str:
    if isinstance(fragment, Static):
        return "static"
    if isinstance(fragment, Dynamic):
        return "dynamic"
    if isinstance(fragment, Full):
        return "full"
    raise TypeError(f"Unhandled fragment: {fragment!r}")


def cache_key_to_dict(key: CacheKey) -> Dict[str, Any]:
    """Plain-JSON form of a key; round-trips through cache_key_from_dict."""
    if isinstance(key, StaticKey):
        return {"kind": "static", "phrase": key.phrase, "fingerprint": asdict(key.fingerprint)}
    if isinstance(key, DynamicKey):
        return {"kind": "dynamic", "text": key.text, "voice": key.voice}
    if isinstance(key, FullKey):
        return {
            "kind": "full",
            "event_type": key.event_type,
            "value": key.value,
            "fingerprint": asdict(key.fingerprint),
        }
    raise TypeError(f"Unhandled cache key: {key!r}")


def cache_key_from_dict(data: Dict[str, Any]) -> CacheKey:
    kind = data.get("kind")
    if kind == "static":
        return StaticKey(phrase=data["phrase"], fingerprint=PersonalityFingerprint(**data["fingerprint"]))
    if kind == "dynamic":
        return DynamicKey(text=data["text"], voice=data["voice"])
    if kind == "full":
        return FullKey(
            event_type=data["event_type"],
            value=data["value"],
            fingerprint=PersonalityFingerprint(**data["fingerprint"]),
        )
    raise ValueError(f"Unknown cache key kind: {kind!r}")


def key_digest(key: CacheKey) -> str:
    """Stable across processes, unlike hash()."""
    canonical = json.dumps(cache_key_to_dict(key), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def describe_key(key: CacheKey) -> str:
    """Short human-readable form for logs."""
    if isinstance(key, StaticKey):
        return f"static:{key.phrase!r}@{key.fingerprint.voice}"
    if isinstance(key, DynamicKey):
        return f"dynamic:{key.text!r}@{key.voice}"
    if isinstance(key, FullKey):
        return f"full:{key.event_type}:{key.value}@{key.fingerprint.voice}"
    raise TypeError(f"Unhandled cache key: {key!r}")


@dataclass(frozen=True)
class AudioCacheEntry:
    """Synthesized audio for one key. Replaced, never mutated."""

    key: CacheKey
    audio: bytes
    created_at: float = field(default_factory=time.time)
    last_accessed: float = field(default_factory=time.time)

    @property
    def size_bytes(self) -> int:
        return len(self.audio)
