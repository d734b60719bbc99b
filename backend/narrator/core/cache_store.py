"""
SQLite persistence for the fragment cache.

Entries are written on shutdown and reloaded on startup. A missing,
truncated, or unreadable database is treated as an empty cache.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import List

from ..models.fragments import AudioCacheEntry, cache_key_from_dict, cache_key_to_dict, key_digest
from .config import CACHE_DB_PATH, CACHE_MAX_AGE_HOURS
from .errors import CacheStoreUnavailable

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS audio_cache (
    key_digest TEXT PRIMARY KEY,
    key_json TEXT NOT NULL,
    audio BLOB NOT NULL,
    created_at REAL NOT NULL
)
"""


class CacheStore:
    """Durable {key, audio} pairs keyed by a stable digest of the cache key."""

    def __init__(self, path: Path = CACHE_DB_PATH, max_age_hours: float = CACHE_MAX_AGE_HOURS) -> None:
        self.path = Path(path)
        self.max_age_s = max_age_hours * 3600

    def _connect(self) -> sqlite3.Connection:
        conn = None
        try:
            conn = sqlite3.connect(str(self.path))
            conn.execute(_SCHEMA)
            conn.commit()
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise CacheStoreUnavailable(f"Cannot open cache store at {self.path}: {e}") from e
        return conn

    def load(self) -> List[AudioCacheEntry]:
        """Read every fresh, decodable entry. Never raises."""
        if not self.path.exists():
            logger.info("No cache store at %s; starting empty", self.path)
            return []
        try:
            return self._load()
        except CacheStoreUnavailable as e:
            logger.warning("%s; continuing with an in-memory cache", e)
            return []

    def _load(self) -> List[AudioCacheEntry]:
        conn = self._connect()
        cutoff = time.time() - self.max_age_s
        entries: List[AudioCacheEntry] = []
        try:
            rows = conn.execute(
                "SELECT key_digest, key_json, audio, created_at FROM audio_cache ORDER BY created_at"
            ).fetchall()
        except sqlite3.Error as e:
            raise CacheStoreUnavailable(f"Cannot read cache store at {self.path}: {e}") from e
        finally:
            conn.close()

        for digest, key_json, audio, created_at in rows:
            if created_at < cutoff:
                continue
            try:
                key = cache_key_from_dict(json.loads(key_json))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping unreadable cache row %s: %s", digest[:12], e)
                continue
            if key_digest(key) != digest:
                logger.warning("Skipping cache row %s: digest mismatch", digest[:12])
                continue
            entries.append(AudioCacheEntry(key=key, audio=bytes(audio), created_at=created_at))
        logger.info("Loaded %d cached fragments from %s", len(entries), self.path)
        return entries

    def save(self, entries: List[AudioCacheEntry]) -> bool:
        """Replace stored entries with the given ones. Returns False on failure."""
        try:
            conn = self._connect()
        except CacheStoreUnavailable as e:
            logger.warning("%s; cache not persisted", e)
            return False
        try:
            with conn:
                conn.execute("DELETE FROM audio_cache")
                conn.executemany(
                    "INSERT OR REPLACE INTO audio_cache (key_digest, key_json, audio, created_at) VALUES (?, ?, ?, ?)",
                    [
                        (
                            key_digest(entry.key),
                            json.dumps(cache_key_to_dict(entry.key), sort_keys=True),
                            entry.audio,
                            entry.created_at,
                        )
                        for entry in entries
                    ],
                )
        except sqlite3.Error as e:
            logger.warning("Cannot write cache store at %s: %s", self.path, e)
            return False
        finally:
            conn.close()
        logger.info("Persisted %d cached fragments to %s", len(entries), self.path)
        return True
