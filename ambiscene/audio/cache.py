"""Soundscape reuse cache keyed by scene fingerprint.

Responsibilities:
- Map normalized `(setting, mood, intensity)` fingerprints to stored soundscapes.
- Serialize lookup-then-insert per fingerprint across concurrent scenes and books.
- Track hit/miss telemetry and persist entries as a JSON artifact.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
import threading
from typing import Any, Iterator
from uuid import uuid4

from ..io.storage import ArtifactStore
from ..models.datatypes import Fingerprint, Scene, Soundscape, SoundscapeSource


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """One stored soundscape reachable by fingerprint."""

    fingerprint: Fingerprint
    book_id: str
    soundscape: Soundscape

    def as_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""

        return {
            "fingerprint": {
                "setting": self.fingerprint.setting,
                "mood": self.fingerprint.mood,
                "intensity": self.fingerprint.intensity,
            },
            "book_id": self.book_id,
            "soundscape": self.soundscape.as_payload(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CacheEntry:
        """Rebuild a cache entry from `as_payload` output."""

        raw = payload["fingerprint"]
        return cls(
            fingerprint=Fingerprint.of(
                setting=raw["setting"], mood=raw["mood"], intensity=raw["intensity"]
            ),
            book_id=str(payload["book_id"]),
            soundscape=Soundscape.from_payload(payload["soundscape"]),
        )


@dataclass(slots=True)
class _Reservation:
    """A fingerprint lock and the number of callers holding or awaiting it."""

    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class SoundscapeCache:
    """Thread-safe fingerprint index of previously generated soundscapes."""

    def __init__(self) -> None:
        """Initialize an empty index."""

        self._index: dict[Fingerprint, list[CacheEntry]] = {}
        self._index_lock = threading.Lock()
        self._fingerprint_locks: dict[Fingerprint, _Reservation] = {}
        self.hits = 0
        self.misses = 0

    @contextmanager
    def reserve(self, fingerprint: Fingerprint) -> Iterator[None]:
        """Hold the fingerprint's lock across a lookup and a possible insert.

        A fingerprint's lock lives only while some caller holds or waits on it.
        """

        with self._index_lock:
            reservation = self._fingerprint_locks.setdefault(fingerprint, _Reservation())
            reservation.holders += 1
        try:
            with reservation.lock:
                yield
        finally:
            with self._index_lock:
                reservation.holders -= 1
                if reservation.holders == 0:
                    del self._fingerprint_locks[fingerprint]

    @property
    def active_reservations(self) -> int:
        """Return how many fingerprints are currently held or awaited."""

        with self._index_lock:
            return len(self._fingerprint_locks)

    def lookup(
        self, fingerprint: Fingerprint, exclude_book_id: str | None = None
    ) -> Soundscape | None:
        """Return the first stored soundscape for `fingerprint` outside `exclude_book_id`."""

        with self._index_lock:
            for entry in self._index.get(fingerprint, ()):
                if exclude_book_id is not None and entry.book_id == exclude_book_id:
                    continue
                self.hits += 1
                return entry.soundscape
            self.misses += 1
            return None

    def insert(self, fingerprint: Fingerprint, scene: Scene, soundscape: Soundscape) -> bool:
        """Store a soundscape; a second entry for the same book and fingerprint is discarded."""

        with self._index_lock:
            entries = self._index.setdefault(fingerprint, [])
            if any(entry.book_id == scene.book_id for entry in entries):
                return False
            entries.append(
                CacheEntry(fingerprint=fingerprint, book_id=scene.book_id, soundscape=soundscape)
            )
            return True

    @staticmethod
    def reuse(original: Soundscape, scene: Scene, tags: tuple[str, ...] = ()) -> Soundscape:
        """Build the record attached to a scene served from the cache."""

        return Soundscape(
            soundscape_id=uuid4().hex,
            book_id=scene.book_id,
            scene_number=scene.scene_number,
            audio_url=original.audio_url,
            prompt=original.prompt,
            duration_seconds=original.duration_seconds,
            source=SoundscapeSource.REUSED,
            parameters=dict(original.parameters),
            tags=tags or original.tags,
            reused_from=original.soundscape_id,
        )

    def evict_book(self, book_id: str) -> int:
        """Remove every entry owned by `book_id` and return how many were removed."""

        removed = 0
        with self._index_lock:
            for fingerprint in list(self._index):
                kept = [entry for entry in self._index[fingerprint] if entry.book_id != book_id]
                removed += len(self._index[fingerprint]) - len(kept)
                if kept:
                    self._index[fingerprint] = kept
                else:
                    del self._index[fingerprint]
        return removed

    def entries(self) -> list[CacheEntry]:
        """Return a snapshot of all entries in insertion order per fingerprint."""

        with self._index_lock:
            return [entry for bucket in self._index.values() for entry in bucket]

    def hit_rate(self) -> float:
        """Return cache hit rate for the current cache lifecycle."""

        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / float(total)

    def stats(self) -> dict[str, str]:
        """Return report-friendly counters."""

        return {
            "cache_hits": str(self.hits),
            "cache_misses": str(self.misses),
            "cache_hit_rate": f"{self.hit_rate():.4f}",
            "cache_entries": str(len(self.entries())),
        }

    def save(self, store: ArtifactStore, relative_path: Path) -> Path:
        """Persist entries as a JSON artifact."""

        payload = {"entries": [entry.as_payload() for entry in self.entries()]}
        return store.save_json(relative_path, payload)

    @classmethod
    def load(cls, store: ArtifactStore, relative_path: Path) -> SoundscapeCache:
        """Load a cache from a JSON artifact; a missing artifact yields an empty cache."""

        cache = cls()
        if not store.exists(relative_path):
            return cache
        payload = store.load_json(relative_path)
        raw_entries = payload.get("entries", [])
        if not isinstance(raw_entries, list):
            raise ValueError("Cache artifact `entries` must be a list.")
        for raw in raw_entries:
            entry = CacheEntry.from_payload(raw)
            cache._index.setdefault(entry.fingerprint, []).append(entry)
        return cache
