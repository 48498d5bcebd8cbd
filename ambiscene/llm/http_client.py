"""HTTP transport shared by the classification and synthesis service adapters.

Responsibilities:
- Send JSON and binary requests with `requests`.
- Map transport and HTTP failures onto the transient/permanent taxonomy.
- Keep provider messages short and free of credentials.
"""

from __future__ import annotations

import json
import re
import socket
from typing import Any

import requests

from ..errors import ErrorKind, ProviderError
from .rate_limiter import RateLimiter


_TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


class ServiceHttpClient:
    """Minimal requests-based HTTP client with consistent error mapping."""

    _MAX_PROVIDER_MESSAGE_CHARS = 180

    def __init__(
        self,
        *,
        service_name: str,
        base_url: str,
        api_key: str | None = None,
        timeout_seconds: float = 60.0,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        """Initialize HTTP settings for one external service."""

        self.service_name = service_name
        self.api_key = api_key.strip() if isinstance(api_key, str) else ""
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.rate_limiter = rate_limiter or RateLimiter(min_interval_seconds=0.0)

    def _headers(self) -> dict[str, str]:
        """Return request headers, including bearer auth when a key is configured."""

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def post_json(self, endpoint_path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON payload and decode a JSON object response."""

        response_bytes = self._request(
            "POST",
            f"{self.base_url}{endpoint_path}",
            json_payload=payload,
        )
        return self._decode_json_object(response_bytes)

    def get_json(self, endpoint_path: str) -> dict[str, Any]:
        """GET an endpoint and decode a JSON object response."""

        response_bytes = self._request("GET", f"{self.base_url}{endpoint_path}")
        return self._decode_json_object(response_bytes)

    def get_bytes(self, url: str) -> bytes:
        """GET an absolute URL and return the non-empty response body."""

        response_bytes = self._request("GET", url, authorize=False)
        if not response_bytes:
            raise ProviderError(
                f"{self.service_name} returned an empty asset body.",
                kind=ErrorKind.PERMANENT_REQUEST,
            )
        return response_bytes

    def _request(
        self,
        method: str,
        url: str,
        *,
        json_payload: dict[str, Any] | None = None,
        authorize: bool = True,
    ) -> bytes:
        """Execute one HTTP request and map failures consistently."""

        self.rate_limiter.acquire(f"{self.service_name}:{method.lower()}")
        headers = self._headers() if authorize else {}
        try:
            response = requests.request(
                method,
                url,
                headers=headers,
                json=json_payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            return bytes(response.content)
        except requests.HTTPError as exc:
            raise self._http_error_to_provider_error(exc) from exc
        except (
            requests.exceptions.MissingSchema,
            requests.exceptions.InvalidSchema,
            requests.exceptions.InvalidURL,
        ) as exc:
            raise ProviderError(
                f"{self.service_name} request URL is invalid: {self._short_message(str(exc))}",
                kind=ErrorKind.PERMANENT_REQUEST,
            ) from exc
        except requests.RequestException as exc:
            if self._is_timeout(exc):
                detail = f"{self.service_name} request timed out."
            else:
                detail = (
                    f"{self.service_name} request transport error: "
                    f"{self._short_message(str(exc))}"
                )
            raise ProviderError(detail, kind=ErrorKind.TRANSIENT_TRANSPORT) from exc
        except (TimeoutError, socket.timeout) as exc:
            raise ProviderError(
                f"{self.service_name} request timed out.",
                kind=ErrorKind.TRANSIENT_TRANSPORT,
            ) from exc

    def _decode_json_object(self, response_bytes: bytes) -> dict[str, Any]:
        """Decode a JSON object body or raise a parse failure."""

        try:
            payload = json.loads(response_bytes.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProviderError(
                f"{self.service_name} returned an invalid JSON payload.",
                kind=ErrorKind.PARSE_FAILURE,
            ) from exc
        if not isinstance(payload, dict):
            raise ProviderError(
                f"{self.service_name} returned a non-object JSON payload.",
                kind=ErrorKind.PARSE_FAILURE,
            )
        return payload

    @staticmethod
    def _is_timeout(reason: object) -> bool:
        """Return whether a transport failure is a timeout."""

        return isinstance(reason, TimeoutError | socket.timeout | requests.Timeout)

    @staticmethod
    def classify_status(status_code: int) -> ErrorKind:
        """Map an HTTP status onto the transient/permanent taxonomy."""

        if status_code >= 500 or status_code in _TRANSIENT_STATUS_CODES:
            return ErrorKind.TRANSIENT_TRANSPORT
        return ErrorKind.PERMANENT_REQUEST

    @staticmethod
    def _decode_error_body(exc: requests.HTTPError) -> str:
        """Decode an HTTP error body into a best-effort UTF-8 payload string."""

        response = exc.response
        if response is None:
            return ""
        content = getattr(response, "content", b"") or b""
        return bytes(content).decode("utf-8", errors="replace").strip()

    @classmethod
    def _redact_sensitive_tokens(cls, text: str) -> str:
        """Redact API-key-like tokens from provider error content."""

        redacted = re.sub(r"\b(?:sk|r8)[-_][A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
        redacted = re.sub(
            r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
            "Bearer [redacted-token]",
            redacted,
        )
        return redacted

    @classmethod
    def _short_message(cls, text: str) -> str:
        """Normalize and cap provider message length."""

        compact = " ".join(cls._redact_sensitive_tokens(text).split())
        if len(compact) <= cls._MAX_PROVIDER_MESSAGE_CHARS:
            return compact
        return f"{compact[: cls._MAX_PROVIDER_MESSAGE_CHARS - 1]}..."

    @classmethod
    def _extract_provider_message(cls, body: str) -> str:
        """Extract a concise provider-facing message from an error body."""

        if not body:
            return ""
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return cls._short_message(body)

        message: str | None = None
        if isinstance(payload, dict):
            error_payload = payload.get("error")
            if isinstance(error_payload, dict):
                message_value = error_payload.get("message")
                if isinstance(message_value, str) and message_value.strip():
                    message = message_value
            elif isinstance(error_payload, str) and error_payload.strip():
                message = error_payload
            detail_value = payload.get("detail")
            if message is None and isinstance(detail_value, str) and detail_value.strip():
                message = detail_value
        return cls._short_message(message if message is not None else body)

    def _http_error_to_provider_error(self, exc: requests.HTTPError) -> ProviderError:
        """Convert HTTP errors into normalized provider exceptions with metadata."""

        status_code = exc.response.status_code if exc.response is not None else 0
        provider_message = self._extract_provider_message(self._decode_error_body(exc))
        kind = self.classify_status(status_code)
        headline = f"{self.service_name} request failed"
        if provider_message:
            detail = f"{headline} (HTTP {status_code}): {provider_message}"
        else:
            detail = f"{headline} (HTTP {status_code})."
        return ProviderError(detail, kind=kind, status_code=status_code)
