"""Provider factory helpers for classification and synthesis services.

Responsibilities:
- Resolve provider identifiers to concrete client implementations.
- Keep orchestration independent from concrete client construction.
"""

from __future__ import annotations

from .audio.synthesizer import AudioSynthesisClient, PredictionApiSynthesizer
from .config import PipelineConfig
from .llm.classifier import ClassificationClient, OpenAICompatibleClassifier
from .llm.rate_limiter import RateLimiter


class ProviderFactory:
    """Factory for provider-backed clients used by the pipeline."""

    @staticmethod
    def create_classifier(
        config: PipelineConfig,
        rate_limiter: RateLimiter | None = None,
    ) -> ClassificationClient:
        """Create a classification client for the configured provider identifier."""

        if config.classifier_provider == "openai_compatible":
            return OpenAICompatibleClassifier(
                model=config.classifier_model,
                base_url=config.classifier_base_url,
                api_key=config.api_key,
                text_limit=config.classification_text_limit,
                timeout_seconds=config.request_timeout_seconds,
                rate_limiter=rate_limiter,
            )
        raise ValueError(f"Unsupported classifier provider `{config.classifier_provider}`.")

    @staticmethod
    def create_synthesizer(
        config: PipelineConfig,
        rate_limiter: RateLimiter | None = None,
    ) -> AudioSynthesisClient:
        """Create an audio synthesis client for the configured provider identifier."""

        if config.synthesis_provider == "prediction_api":
            return PredictionApiSynthesizer(
                model=config.synthesis_model,
                base_url=config.synthesis_base_url,
                api_key=config.api_key,
                max_duration_seconds=config.max_synthesis_duration_seconds,
                timeout_seconds=config.request_timeout_seconds,
                rate_limiter=rate_limiter,
            )
        raise ValueError(f"Unsupported synthesis provider `{config.synthesis_provider}`.")
