"""Classification-facing abstractions and shared HTTP plumbing.

This package defines the classification prompt, the classification client
contract, the HTTP transport, rate limiting, and the retry policy.
"""

from .classifier import ClassificationClient, OpenAICompatibleClassifier, parse_classification_output
from .http_client import ServiceHttpClient
from .rate_limiter import RateLimiter
from .retry import DeadlineExceeded, RetryPolicy

__all__ = [
    "ClassificationClient",
    "OpenAICompatibleClassifier",
    "parse_classification_output",
    "ServiceHttpClient",
    "RateLimiter",
    "RetryPolicy",
    "DeadlineExceeded",
]
