"""Core datatypes shared across Ambiscene modules.

Responsibilities:
- Represent immutable records exchanged between pipeline stages.
- Hold the one mutable record (`Book`) behind a per-book lock.
- Encode the book status state machine and the closed descriptor schema.

Key types:
- `Book`, `BookStatus`, `Page`, `DescriptorSet`, `Scene`, `Soundscape`,
  `Fingerprint`, `ErrorRecord`, `PageOutcome`, `SceneOutcome`, and `BookReport`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from hashlib import sha256
import threading
from typing import Any, Mapping

from ..errors import ClassificationError, ClassificationFailure, ErrorKind, InvalidStatusTransition


class BookStatus(str, Enum):
    """Processing states of a book."""

    PENDING = "pending"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    MAPPING = "mapping"
    READY_FOR_REVIEW = "ready_for_review"
    FAILED = "failed"


_ALLOWED_TRANSITIONS: dict[BookStatus, frozenset[BookStatus]] = {
    BookStatus.PENDING: frozenset({BookStatus.EXTRACTING, BookStatus.FAILED}),
    BookStatus.EXTRACTING: frozenset({BookStatus.ANALYZING, BookStatus.FAILED}),
    BookStatus.ANALYZING: frozenset({BookStatus.MAPPING, BookStatus.FAILED}),
    BookStatus.MAPPING: frozenset({BookStatus.READY_FOR_REVIEW, BookStatus.FAILED}),
    BookStatus.READY_FOR_REVIEW: frozenset(),
    BookStatus.FAILED: frozenset({BookStatus.ANALYZING}),
}

TERMINAL_STATUSES = frozenset({BookStatus.READY_FOR_REVIEW, BookStatus.FAILED})


class SoundscapeSource(str, Enum):
    """Origin of a soundscape attached to a scene."""

    SYNTHESIZED = "synthesized"
    REUSED = "reused"


class OutcomeStatus(str, Enum):
    """Per-item result of a page or scene unit of work."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class ErrorRecord:
    """One recorded failure on a book.

    Attributes:
        stage: Pipeline stage that observed the failure.
        kind: Failure taxonomy value.
        message: Short, redacted diagnostic message.
        page_number: Page the failure belongs to, when page-scoped.
        scene_number: Scene the failure belongs to, when scene-scoped.
    """

    stage: str
    kind: ErrorKind
    message: str
    page_number: int | None = None
    scene_number: int | None = None

    def as_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""

        return {
            "stage": self.stage,
            "kind": self.kind.value,
            "message": self.message,
            "page_number": self.page_number,
            "scene_number": self.scene_number,
        }


@dataclass(slots=True)
class Book:
    """A unit of work moving through the soundscape pipeline.

    Attributes:
        book_id: Stable identifier.
        page_count: Number of extracted pages.
        processing_status: Current state machine state.
        errors: Accumulated error records.
        processing_cost: Accumulated spend, only ever incremented.
        has_warnings: Whether the book finished with recorded item failures.
    """

    book_id: str
    page_count: int = 0
    processing_status: BookStatus = BookStatus.PENDING
    errors: list[ErrorRecord] = field(default_factory=list)
    processing_cost: float = 0.0
    has_warnings: bool = False
    _lock: threading.RLock = field(
        default_factory=threading.RLock, repr=False, compare=False
    )

    def transition(self, status: BookStatus) -> None:
        """Move to `status`, raising when the state machine forbids the edge."""

        with self._lock:
            if status not in _ALLOWED_TRANSITIONS[self.processing_status]:
                raise InvalidStatusTransition(
                    self.book_id, self.processing_status.value, status.value
                )
            self.processing_status = status

    def record_error(self, record: ErrorRecord) -> None:
        """Append one error record."""

        with self._lock:
            self.errors.append(record)

    def add_cost(self, amount: float) -> None:
        """Increment the running cost total."""

        with self._lock:
            self.processing_cost += max(0.0, amount)

    def reset_for_rerun(self) -> None:
        """Clear errors and warnings before a full re-run; cost keeps accumulating."""

        with self._lock:
            self.errors.clear()
            self.has_warnings = False

    def is_terminal(self) -> bool:
        """Return whether the book reached a terminal state for this pipeline."""

        return self.processing_status in TERMINAL_STATUSES

    def snapshot_errors(self) -> tuple[ErrorRecord, ...]:
        """Return a consistent copy of the error list."""

        with self._lock:
            return tuple(self.errors)


@dataclass(frozen=True, slots=True)
class Page:
    """One page of extracted narrative text.

    Attributes:
        page_number: 1-based stable position within the book.
        text: Extracted page text.
    """

    page_number: int
    text: str


DESCRIPTOR_KEYS: tuple[str, ...] = (
    "mood",
    "setting",
    "time_of_day",
    "weather",
    "activity_level",
    "atmosphere",
)

_LOW_ACTIVITY = frozenset({"calm", "low", "quiet", "still", "peaceful", "slow"})
_HIGH_ACTIVITY = frozenset({"high", "intense", "frantic", "chaotic", "extreme"})


@dataclass(frozen=True, slots=True)
class DescriptorSet:
    """Closed-schema classification output for one page or scene."""

    mood: str
    setting: str
    time_of_day: str
    weather: str
    activity_level: str
    atmosphere: str

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> DescriptorSet:
        """Build a descriptor set, rejecting payloads that miss schema keys."""

        missing = tuple(key for key in DESCRIPTOR_KEYS if key not in payload)
        if missing:
            raise ClassificationError(
                f"Classification output is missing required key(s): {', '.join(missing)}.",
                reason=ClassificationFailure.MISSING_KEYS,
                missing_keys=missing,
            )
        values = {}
        for key in DESCRIPTOR_KEYS:
            raw = payload[key]
            values[key] = "unknown" if raw is None else " ".join(str(raw).split())
        return cls(**values)

    @classmethod
    def neutral(cls) -> DescriptorSet:
        """Return the fixed default used when no classification is available."""

        return cls(
            mood="neutral",
            setting="unknown",
            time_of_day="unknown",
            weather="unknown",
            activity_level="moderate",
            atmosphere="neutral",
        )

    @property
    def intensity(self) -> str:
        """Return the `low`/`medium`/`high` level implied by `activity_level`."""

        level = self.activity_level.strip().lower()
        if level in _LOW_ACTIVITY:
            return "low"
        if level in _HIGH_ACTIVITY:
            return "high"
        return "medium"

    def as_dict(self) -> dict[str, str]:
        """Return schema values keyed by descriptor name, in schema order."""

        return {item.name: getattr(self, item.name) for item in fields(self)}


def _normalize_fingerprint_part(value: str) -> str:
    """Lowercase, trim, and collapse whitespace inside one fingerprint field."""

    return " ".join(value.split()).lower()


@dataclass(frozen=True, slots=True)
class Fingerprint:
    """Normalized `(setting, mood, intensity)` cache key."""

    setting: str
    mood: str
    intensity: str

    @classmethod
    def of(cls, *, setting: str, mood: str, intensity: str) -> Fingerprint:
        """Build a normalized fingerprint from raw field values."""

        return cls(
            setting=_normalize_fingerprint_part(setting),
            mood=_normalize_fingerprint_part(mood),
            intensity=_normalize_fingerprint_part(intensity),
        )

    @classmethod
    def from_descriptors(cls, descriptors: DescriptorSet) -> Fingerprint:
        """Derive the fingerprint of a descriptor set."""

        return cls.of(
            setting=descriptors.setting,
            mood=descriptors.mood,
            intensity=descriptors.intensity,
        )

    @property
    def key(self) -> str:
        """Return the `setting|mood|intensity` textual key."""

        return f"{self.setting}|{self.mood}|{self.intensity}"

    def digest(self, length: int = 12) -> str:
        """Return a short stable hash usable in storage keys."""

        return sha256(self.key.encode("utf-8")).hexdigest()[:length]


@dataclass(frozen=True, slots=True)
class Scene:
    """A contiguous run of pages sharing one aggregated descriptor set.

    Attributes:
        book_id: Owning book identifier.
        scene_number: 1-based order within the book.
        start_page: First member page number (inclusive).
        end_page: Last member page number (inclusive).
        page_numbers: Ordered member page numbers.
        descriptors: Aggregated descriptors, fixed once the scene is built.
    """

    book_id: str
    scene_number: int
    start_page: int
    end_page: int
    page_numbers: tuple[int, ...]
    descriptors: DescriptorSet

    def as_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""

        return {
            "book_id": self.book_id,
            "scene_number": self.scene_number,
            "start_page": self.start_page,
            "end_page": self.end_page,
            "page_numbers": list(self.page_numbers),
            "descriptors": self.descriptors.as_dict(),
        }


@dataclass(frozen=True, slots=True)
class Soundscape:
    """One synthesized or reused audio asset attached to a scene."""

    soundscape_id: str
    book_id: str
    scene_number: int
    audio_url: str
    prompt: str
    duration_seconds: float
    source: SoundscapeSource
    parameters: Mapping[str, Any] = field(default_factory=dict)
    tags: tuple[str, ...] = field(default_factory=tuple)
    reused_from: str | None = None

    def as_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""

        payload = asdict(self)
        payload["source"] = self.source.value
        payload["parameters"] = dict(self.parameters)
        payload["tags"] = list(self.tags)
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Soundscape:
        """Rebuild a soundscape from `as_payload` output."""

        return cls(
            soundscape_id=str(payload["soundscape_id"]),
            book_id=str(payload["book_id"]),
            scene_number=int(payload["scene_number"]),
            audio_url=str(payload["audio_url"]),
            prompt=str(payload["prompt"]),
            duration_seconds=float(payload["duration_seconds"]),
            source=SoundscapeSource(payload["source"]),
            parameters=dict(payload.get("parameters") or {}),
            tags=tuple(payload.get("tags") or ()),
            reused_from=payload.get("reused_from"),
        )


@dataclass(frozen=True, slots=True)
class PageOutcome:
    """Result of classifying one page."""

    page_number: int
    status: OutcomeStatus
    descriptors: DescriptorSet
    error: ErrorRecord | None = None


@dataclass(frozen=True, slots=True)
class SceneOutcome:
    """Result of mapping one scene to a soundscape."""

    scene_number: int
    status: OutcomeStatus
    soundscape: Soundscape | None = None
    error: ErrorRecord | None = None


@dataclass(slots=True)
class BookReport:
    """Serializable record of one pipeline run for a book."""

    book: Book
    scenes: list[Scene] = field(default_factory=list)
    soundscapes: list[Soundscape] = field(default_factory=list)
    page_outcomes: list[PageOutcome] = field(default_factory=list)
    scene_outcomes: list[SceneOutcome] = field(default_factory=list)
    page_scene_index: dict[int, int] = field(default_factory=dict)
    extra: dict[str, str] = field(default_factory=dict)

    def scene_for_page(self, page_number: int) -> Scene | None:
        """Return the scene a page belongs to, when scenes were built."""

        scene_number = self.page_scene_index.get(page_number)
        if scene_number is None:
            return None
        return self.scenes[scene_number - 1]

    def as_payload(self) -> dict[str, Any]:
        """Return a JSON-serializable representation."""

        book = self.book
        return {
            "book_id": book.book_id,
            "page_count": book.page_count,
            "processing_status": book.processing_status.value,
            "processing_cost": round(book.processing_cost, 6),
            "has_warnings": book.has_warnings,
            "errors": [record.as_payload() for record in book.snapshot_errors()],
            "scenes": [scene.as_payload() for scene in self.scenes],
            "soundscapes": [item.as_payload() for item in self.soundscapes],
            "page_scene_index": {
                str(page): scene for page, scene in sorted(self.page_scene_index.items())
            },
            "extra": dict(self.extra),
        }
