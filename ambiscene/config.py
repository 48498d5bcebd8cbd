"""Configuration model and loaders for Ambiscene.

Responsibilities:
- Define pipeline runtime configuration as a typed dataclass.
- Validate limits, pool sizes, thresholds, and cost rates before a run.
- Provide loader entry points for file- and environment-based configuration.

Key types:
- `PipelineConfig`: normalized runtime settings for pipeline runs.
- `ConfigLoader`: static construction helpers for `PipelineConfig`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from .parsing import normalize_optional_string, parse_permissive_boolean


_DEFAULT_CLASSIFIER_MODEL = "gpt-4.1-mini"
_DEFAULT_SYNTHESIS_MODEL = "audiogen-medium"
_SUPPORTED_CLASSIFIER_PROVIDERS = frozenset({"openai_compatible"})
_SUPPORTED_SYNTHESIS_PROVIDERS = frozenset({"prediction_api"})
_SUPPORTED_ANALYSIS_UNITS = frozenset({"page", "spread"})
_ENV_PREFIX = "AMBISCENE_"


@dataclass(slots=True)
class PipelineConfig:
    """Runtime configuration for soundscape pipeline runs.

    Attributes:
        output_dir: Root directory for reports and stored audio assets.
        cache_path: Optional JSON file persisting the soundscape cache index.
        public_base_url: Optional URL prefix for stored assets.
        classifier_provider: Classification service adapter identifier.
        classifier_model: Classification model identifier.
        classifier_base_url: Classification service base URL.
        synthesis_provider: Audio synthesis service adapter identifier.
        synthesis_model: Audio synthesis model identifier.
        synthesis_base_url: Audio synthesis service base URL.
        api_key: Optional API key shared by both services.
        request_timeout_seconds: Per-request HTTP timeout.
        analysis_unit: `page` or `spread` (two pages per classification call).
        classification_text_limit: Character cap for classified text.
        boundary_threshold: Similarity below which a new scene starts.
        max_retries: Retries after the first attempt for transient failures.
        retry_backoff_base_seconds: First retry delay, doubled per attempt.
        retry_backoff_max_seconds: Retry delay cap.
        classification_concurrency: Classification calls in flight per book.
        synthesis_concurrency: Scenes mapped concurrently per book.
        max_concurrent_books: Books in flight system-wide.
        soundscape_duration_seconds: Requested soundscape length.
        max_synthesis_duration_seconds: Service-imposed duration ceiling.
        synthesis_max_attempts: Total submissions per scene for failed jobs.
        poll_initial_delay_seconds: First poll delay, doubled per poll.
        poll_max_delay_seconds: Poll delay cap.
        poll_budget_seconds: Wall-clock budget for one synthesis job.
        book_timeout_seconds: Optional wall-clock budget for one book.
        max_classification_failure_rate: Optional ratio of failed units that fails the book.
        cache_exclude_current_book: Skip the current book's own cache entries on lookup.
        cost_per_classification_call: Cost of one classification attempt.
        cost_per_synthesis_second: Cost of one requested second of audio.
        extra: Additional metadata carried into reports.
    """

    output_dir: Path = Path("out")
    cache_path: Path | None = None
    public_base_url: str | None = None
    classifier_provider: str = "openai_compatible"
    classifier_model: str = _DEFAULT_CLASSIFIER_MODEL
    classifier_base_url: str = "https://api.openai.com/v1"
    synthesis_provider: str = "prediction_api"
    synthesis_model: str = _DEFAULT_SYNTHESIS_MODEL
    synthesis_base_url: str = "https://api.replicate.com/v1"
    api_key: str | None = None
    request_timeout_seconds: float = 60.0
    analysis_unit: str = "page"
    classification_text_limit: int = 2000
    boundary_threshold: float = 0.6
    max_retries: int = 3
    retry_backoff_base_seconds: float = 1.0
    retry_backoff_max_seconds: float = 8.0
    classification_concurrency: int = 5
    synthesis_concurrency: int = 3
    max_concurrent_books: int = 2
    soundscape_duration_seconds: float = 10.0
    max_synthesis_duration_seconds: float = 30.0
    synthesis_max_attempts: int = 2
    poll_initial_delay_seconds: float = 2.0
    poll_max_delay_seconds: float = 10.0
    poll_budget_seconds: float = 240.0
    book_timeout_seconds: float | None = None
    max_classification_failure_rate: float | None = None
    cache_exclude_current_book: bool = True
    cost_per_classification_call: float = 0.00006
    cost_per_synthesis_second: float = 0.0023
    extra: dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate runtime configuration values before pipeline execution."""

        self._validate_choice(
            self.classifier_provider, "classifier_provider", _SUPPORTED_CLASSIFIER_PROVIDERS
        )
        self._validate_choice(
            self.synthesis_provider, "synthesis_provider", _SUPPORTED_SYNTHESIS_PROVIDERS
        )
        self._validate_choice(self.analysis_unit, "analysis_unit", _SUPPORTED_ANALYSIS_UNITS)
        self._require_non_empty(self.classifier_model, "classifier_model")
        self._require_non_empty(self.synthesis_model, "synthesis_model")
        self._require_non_empty(self.classifier_base_url, "classifier_base_url")
        self._require_non_empty(self.synthesis_base_url, "synthesis_base_url")
        if not 0.0 <= self.boundary_threshold <= 1.0:
            raise ValueError("`boundary_threshold` must be between 0 and 1.")
        if self.max_retries < 0:
            raise ValueError("`max_retries` must be zero or a positive integer.")
        for name in (
            "classification_text_limit",
            "classification_concurrency",
            "synthesis_concurrency",
            "max_concurrent_books",
            "synthesis_max_attempts",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be a positive integer.")
        for name in (
            "request_timeout_seconds",
            "soundscape_duration_seconds",
            "max_synthesis_duration_seconds",
            "poll_budget_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"`{name}` must be a positive number.")
        for name in (
            "retry_backoff_base_seconds",
            "retry_backoff_max_seconds",
            "poll_initial_delay_seconds",
            "poll_max_delay_seconds",
            "cost_per_classification_call",
            "cost_per_synthesis_second",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"`{name}` must not be negative.")
        if self.book_timeout_seconds is not None and self.book_timeout_seconds <= 0:
            raise ValueError("`book_timeout_seconds` must be a positive number when set.")
        rate = self.max_classification_failure_rate
        if rate is not None and not 0.0 <= rate <= 1.0:
            raise ValueError("`max_classification_failure_rate` must be between 0 and 1.")

    def with_overrides(self, **overrides: Any) -> PipelineConfig:
        """Return a validated copy with non-`None` overrides applied."""

        applied = {key: value for key, value in overrides.items() if value is not None}
        updated = replace(self, **applied)
        updated.validate()
        return updated

    def as_report_metadata(self) -> dict[str, str]:
        """Return non-secret settings safe to persist in run reports."""

        return {
            "classifier_provider": self.classifier_provider,
            "classifier_model": self.classifier_model,
            "synthesis_provider": self.synthesis_provider,
            "synthesis_model": self.synthesis_model,
            "analysis_unit": self.analysis_unit,
            "boundary_threshold": f"{self.boundary_threshold:.2f}",
            "cache_exclude_current_book": "true" if self.cache_exclude_current_book else "false",
        }

    @staticmethod
    def _validate_choice(value: str, field_name: str, supported: frozenset[str]) -> None:
        """Validate an identifier against its supported set."""

        normalized = value.strip()
        if normalized not in supported:
            supported_values = ", ".join(sorted(supported))
            raise ValueError(
                f"Unsupported `{field_name}` value `{value}`. "
                f"Supported values: {supported_values}."
            )

    @staticmethod
    def _require_non_empty(value: str, field_name: str) -> None:
        """Validate that a string field is not empty after trimming."""

        if not value.strip():
            raise ValueError(f"`{field_name}` must be a non-empty string.")


_PATH_KEYS = frozenset({"output_dir", "cache_path"})
_STRING_KEYS = frozenset(
    {
        "public_base_url",
        "classifier_provider",
        "classifier_model",
        "classifier_base_url",
        "synthesis_provider",
        "synthesis_model",
        "synthesis_base_url",
        "api_key",
        "analysis_unit",
    }
)
_INT_KEYS = frozenset(
    {
        "classification_text_limit",
        "max_retries",
        "classification_concurrency",
        "synthesis_concurrency",
        "max_concurrent_books",
        "synthesis_max_attempts",
    }
)
_FLOAT_KEYS = frozenset(
    {
        "request_timeout_seconds",
        "boundary_threshold",
        "retry_backoff_base_seconds",
        "retry_backoff_max_seconds",
        "soundscape_duration_seconds",
        "max_synthesis_duration_seconds",
        "poll_initial_delay_seconds",
        "poll_max_delay_seconds",
        "poll_budget_seconds",
        "book_timeout_seconds",
        "max_classification_failure_rate",
        "cost_per_classification_call",
        "cost_per_synthesis_second",
    }
)
_BOOL_KEYS = frozenset({"cache_exclude_current_book"})


class ConfigLoader:
    """Factory methods for creating `PipelineConfig` from external sources."""

    _SUPPORTED_KEYS = frozenset(item.name for item in fields(PipelineConfig))

    @staticmethod
    def from_yaml(path: Path) -> PipelineConfig:
        """Create a validated config from a YAML file."""

        path_text = path.read_text(encoding="utf-8")
        payload = ConfigLoader._parse_yaml_payload(path_text, path)
        return ConfigLoader.from_mapping(payload, source_label=f"YAML `{path}`")

    @staticmethod
    def from_env(
        env: Mapping[str, str] | None = None,
        base: PipelineConfig | None = None,
    ) -> PipelineConfig:
        """Create a validated config from `AMBISCENE_*` environment variables.

        Values found in the environment override `base` (or defaults).
        """

        env_map: Mapping[str, str] = os.environ if env is None else env
        payload: dict[str, Any] = {}
        for key in ConfigLoader._SUPPORTED_KEYS - {"extra"}:
            env_key = f"{_ENV_PREFIX}{key.upper()}"
            value = normalize_optional_string(env_map.get(env_key))
            if value is not None:
                payload[key] = value
        parsed = ConfigLoader._parse_fields(payload, source_label="Environment")
        config = replace(base, **parsed) if base is not None else PipelineConfig(**parsed)
        config.validate()
        return config

    @staticmethod
    def from_mapping(payload: Mapping[str, Any], source_label: str) -> PipelineConfig:
        """Build a validated config from a mapping payload."""

        ConfigLoader._validate_keys(payload, source_label)
        parsed = ConfigLoader._parse_fields(payload, source_label)
        if "extra" in payload:
            parsed["extra"] = ConfigLoader._optional_string_map(payload, "extra", source_label)
        config = PipelineConfig(**parsed)
        config.validate()
        return config

    @staticmethod
    def _parse_yaml_payload(raw_text: str, path: Path) -> Mapping[str, Any]:
        """Parse YAML text and enforce a mapping root payload."""

        try:
            payload = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ValueError(f"YAML config `{path}` is not valid YAML: {exc}") from exc

        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise ValueError(f"YAML config `{path}` must contain a top-level mapping/object.")
        return payload

    @staticmethod
    def _validate_keys(payload: Mapping[str, Any], source_label: str) -> None:
        """Reject keys the config model does not define."""

        unknown = sorted(set(map(str, payload)).difference(ConfigLoader._SUPPORTED_KEYS))
        if unknown:
            key_list = ", ".join(unknown)
            raise ValueError(f"{source_label} includes unsupported key(s): {key_list}.")

    @staticmethod
    def _parse_fields(payload: Mapping[str, Any], source_label: str) -> dict[str, Any]:
        """Coerce every known scalar field present in `payload` to its typed value."""

        parsed: dict[str, Any] = {}
        for key, raw_value in payload.items():
            if key in _PATH_KEYS:
                value = normalize_optional_string(raw_value)
                if value is not None:
                    parsed[key] = Path(value)
            elif key in _STRING_KEYS:
                value = normalize_optional_string(raw_value)
                if value is not None:
                    parsed[key] = value
            elif key in _INT_KEYS:
                parsed_int = ConfigLoader._optional_int(raw_value, key, source_label)
                if parsed_int is not None:
                    parsed[key] = parsed_int
            elif key in _FLOAT_KEYS:
                parsed_float = ConfigLoader._optional_float(raw_value, key, source_label)
                if parsed_float is not None:
                    parsed[key] = parsed_float
            elif key in _BOOL_KEYS:
                parsed_bool = parse_permissive_boolean(raw_value)
                if parsed_bool is None:
                    raise ValueError(
                        f"{source_label} field `{key}` must be a boolean value "
                        "(`true`/`false`, `1`/`0`, `yes`/`no`)."
                    )
                parsed[key] = parsed_bool
        return parsed

    @staticmethod
    def _optional_int(raw_value: Any, key: str, source_label: str) -> int | None:
        """Parse an integer field, treating blank values as absent."""

        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be an integer.")
        if isinstance(raw_value, int):
            return raw_value
        normalized = normalize_optional_string(raw_value)
        if normalized is None:
            return None
        try:
            return int(normalized)
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be an integer.") from exc

    @staticmethod
    def _optional_float(raw_value: Any, key: str, source_label: str) -> float | None:
        """Parse a numeric field, treating blank values as absent."""

        if isinstance(raw_value, bool):
            raise ValueError(f"{source_label} field `{key}` must be a number.")
        if isinstance(raw_value, int | float):
            return float(raw_value)
        normalized = normalize_optional_string(raw_value)
        if normalized is None:
            return None
        try:
            return float(normalized)
        except ValueError as exc:
            raise ValueError(f"{source_label} field `{key}` must be a number.") from exc

    @staticmethod
    def _optional_string_map(
        payload: Mapping[str, Any], key: str, source_label: str
    ) -> dict[str, str]:
        """Read an optional mapping with non-empty string keys and values."""

        raw = payload[key]
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{source_label} field `{key}` must be a mapping/object.")

        normalized: dict[str, str] = {}
        for raw_key, raw_value in raw.items():
            key_value = normalize_optional_string(raw_key)
            value_value = normalize_optional_string(raw_value)
            if key_value is None:
                raise ValueError(f"{source_label} field `{key}` contains a blank key.")
            if value_value is None:
                raise ValueError(
                    f"{source_label} field `{key}` contains blank value for `{key_value}`."
                )
            normalized[key_value] = value_value
        return normalized
