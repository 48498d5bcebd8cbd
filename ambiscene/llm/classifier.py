"""Page classification client.

Responsibilities:
- Define the `classify(text) -> DescriptorSet` contract.
- Call an OpenAI-compatible chat-completions endpoint with a fixed prompt.
- Parse free-form model output into a validated `DescriptorSet`.

Retries are not performed here; callers wrap `classify` in a `RetryPolicy`.
"""

from __future__ import annotations

from typing import Any, Protocol

from ..errors import ClassificationError, ClassificationFailure, ErrorKind, ProviderError
from ..models.datatypes import DescriptorSet
from ..parsing import decode_first_json_object
from .http_client import ServiceHttpClient
from .prompts import CLASSIFICATION_SYSTEM_PROMPT, build_classification_prompt
from .rate_limiter import RateLimiter


class ClassificationClient(Protocol):
    """Protocol for page classification services."""

    def classify(self, text: str) -> DescriptorSet:
        """Classify narrative text into a descriptor set."""


def parse_classification_output(output: Any) -> DescriptorSet:
    """Turn raw model output into a validated descriptor set.

    Accepts a string or a list of string fragments. The first balanced JSON
    object in the text is used; surrounding prose and code fences are ignored.

    Raises:
        ClassificationError: `UNPARSEABLE` when no JSON object is found,
            `MISSING_KEYS` when required schema keys are absent.
    """

    if isinstance(output, list):
        output = "".join(str(item) for item in output)
    if not isinstance(output, str):
        raise ClassificationError(
            "Classification output is not text.",
            reason=ClassificationFailure.UNPARSEABLE,
        )
    payload = decode_first_json_object(output)
    if payload is None:
        raise ClassificationError(
            "Classification output contains no JSON object.",
            reason=ClassificationFailure.UNPARSEABLE,
        )
    return DescriptorSet.from_mapping(payload)


class OpenAICompatibleClassifier:
    """Classifier backed by an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        *,
        model: str,
        base_url: str,
        api_key: str | None = None,
        text_limit: int = 2000,
        temperature: float = 0.3,
        max_tokens: int = 500,
        timeout_seconds: float = 60.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize classifier model settings and HTTP transport."""

        self.model = model
        self.text_limit = text_limit
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.http = ServiceHttpClient(
            service_name="classification",
            base_url=base_url,
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            rate_limiter=rate_limiter,
        )

    def classify(self, text: str) -> DescriptorSet:
        """Classify one page or spread of text."""

        if not text or not text.strip():
            raise ClassificationError(
                "Page has no text content to classify.",
                reason=ClassificationFailure.EMPTY_INPUT,
            )
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": CLASSIFICATION_SYSTEM_PROMPT},
                {"role": "user", "content": build_classification_prompt(text, self.text_limit)},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        try:
            response = self.http.post_json("/chat/completions", payload)
        except ProviderError as exc:
            if exc.kind == ErrorKind.PARSE_FAILURE:
                raise ClassificationError(
                    str(exc), reason=ClassificationFailure.UNPARSEABLE
                ) from exc
            raise ClassificationError.from_provider_error(exc) from exc
        return parse_classification_output(self._extract_message_content(response))

    @staticmethod
    def _extract_message_content(response: dict[str, Any]) -> Any:
        """Return the first choice's message content, or raise as unparseable."""

        choices = response.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, list):
                    return [
                        item.get("text", "")
                        for item in content
                        if isinstance(item, dict) and item.get("type") == "text"
                    ]
                if isinstance(content, str):
                    return content
        raise ClassificationError(
            "Classification response is missing `choices[0].message.content`.",
            reason=ClassificationFailure.UNPARSEABLE,
        )
