"""Unit tests for the soundscape cache index, locking, and persistence."""

from __future__ import annotations

from pathlib import Path
import threading
import time

import pytest

from ambiscene.audio.cache import SoundscapeCache
from ambiscene.io.storage import ArtifactStore
from ambiscene.models.datatypes import Fingerprint, Scene, Soundscape, SoundscapeSource
from tests.fakes import FOREST_STORM

FINGERPRINT = Fingerprint.from_descriptors(FOREST_STORM)


def _scene(book_id: str, scene_number: int = 1) -> Scene:
    return Scene(
        book_id=book_id,
        scene_number=scene_number,
        start_page=1,
        end_page=1,
        page_numbers=(1,),
        descriptors=FOREST_STORM,
    )


def _soundscape(book_id: str, soundscape_id: str = "s-1") -> Soundscape:
    return Soundscape(
        soundscape_id=soundscape_id,
        book_id=book_id,
        scene_number=1,
        audio_url=f"memory://{book_id}/{soundscape_id}.mp3",
        prompt="tense and suspenseful forest soundscape at night",
        duration_seconds=10.0,
        source=SoundscapeSource.SYNTHESIZED,
        parameters={"temperature": 1.0},
        tags=("tense", "forest"),
    )


def test_lookup_excludes_entries_from_the_current_book() -> None:
    """A book should not match its own entries when exclusion is requested."""

    cache = SoundscapeCache()
    cache.insert(FINGERPRINT, _scene("book-a"), _soundscape("book-a"))

    assert cache.lookup(FINGERPRINT, exclude_book_id="book-a") is None
    assert cache.lookup(FINGERPRINT, exclude_book_id="book-b") is not None
    assert cache.lookup(FINGERPRINT) is not None
    assert (cache.hits, cache.misses) == (2, 1)


def test_lookup_matches_normalized_fingerprints() -> None:
    """Case and whitespace differences should not defeat a lookup."""

    cache = SoundscapeCache()
    cache.insert(FINGERPRINT, _scene("book-a"), _soundscape("book-a"))

    raw = Fingerprint.of(setting=" FOREST", mood="Tense ", intensity="HIGH")
    assert cache.lookup(raw, exclude_book_id="book-b") is not None


def test_duplicate_insert_from_same_book_is_discarded() -> None:
    """First writer wins for one book and fingerprint."""

    cache = SoundscapeCache()

    assert cache.insert(FINGERPRINT, _scene("book-a"), _soundscape("book-a", "first")) is True
    assert cache.insert(FINGERPRINT, _scene("book-a", 2), _soundscape("book-a", "second")) is False
    assert [entry.soundscape.soundscape_id for entry in cache.entries()] == ["first"]


def test_entries_from_different_books_coexist() -> None:
    """Each book may contribute its own entry for a fingerprint."""

    cache = SoundscapeCache()
    cache.insert(FINGERPRINT, _scene("book-a"), _soundscape("book-a", "a"))
    cache.insert(FINGERPRINT, _scene("book-b"), _soundscape("book-b", "b"))

    assert cache.lookup(FINGERPRINT, exclude_book_id="book-a").soundscape_id == "b"
    assert cache.lookup(FINGERPRINT, exclude_book_id="book-b").soundscape_id == "a"


def test_reuse_copies_asset_fields_into_a_new_record() -> None:
    """Reused records should point at the original asset without sharing identity."""

    original = _soundscape("book-a", "orig")
    reused = SoundscapeCache.reuse(original, _scene("book-b", 3))

    assert reused.soundscape_id != original.soundscape_id
    assert reused.book_id == "book-b"
    assert reused.scene_number == 3
    assert reused.audio_url == original.audio_url
    assert reused.prompt == original.prompt
    assert reused.duration_seconds == original.duration_seconds
    assert dict(reused.parameters) == {"temperature": 1.0}
    assert reused.source == SoundscapeSource.REUSED
    assert reused.reused_from == "orig"


def test_evict_book_removes_only_that_books_entries() -> None:
    """Evicting a book should leave other books' entries in place."""

    cache = SoundscapeCache()
    cache.insert(FINGERPRINT, _scene("book-a"), _soundscape("book-a", "a"))
    cache.insert(FINGERPRINT, _scene("book-b"), _soundscape("book-b", "b"))

    assert cache.evict_book("book-a") == 1
    assert cache.evict_book("book-a") == 0
    assert [entry.book_id for entry in cache.entries()] == ["book-b"]


def test_cache_save_and_load_restores_entries(tmp_path: Path) -> None:
    """Persisted caches should reload with identical entries."""

    store = ArtifactStore(tmp_path)
    cache = SoundscapeCache()
    cache.insert(FINGERPRINT, _scene("book-a"), _soundscape("book-a", "a"))
    cache.save(store, Path("cache.json"))

    loaded = SoundscapeCache.load(store, Path("cache.json"))

    assert loaded.entries() == cache.entries()
    assert SoundscapeCache.load(store, Path("missing.json")).entries() == []


def test_reserve_serializes_work_for_the_same_fingerprint() -> None:
    """Concurrent holders of one fingerprint should never overlap."""

    cache = SoundscapeCache()
    active = 0
    peak = 0
    lock = threading.Lock()

    def _worker() -> None:
        nonlocal active, peak
        with cache.reserve(FINGERPRINT):
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.01)
            with lock:
                active -= 1

    threads = [threading.Thread(target=_worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert peak == 1
    assert cache.active_reservations == 0


def test_reservations_are_released_after_use_and_on_error() -> None:
    """Fingerprint locks should not accumulate once their holders are gone."""

    cache = SoundscapeCache()
    other = Fingerprint.of(setting="village", mood="joyful", intensity="low")

    with cache.reserve(FINGERPRINT):
        with cache.reserve(other):
            assert cache.active_reservations == 2
    with pytest.raises(RuntimeError, match="synthesis crashed"):
        with cache.reserve(other):
            raise RuntimeError("synthesis crashed")

    assert cache.active_reservations == 0
    with cache.reserve(FINGERPRINT):
        assert cache.active_reservations == 1


def test_hit_rate_is_zero_without_lookups() -> None:
    """Hit rate should not divide by zero."""

    assert SoundscapeCache().hit_rate() == 0.0
