"""
Error taxonomy for the place cache.

Store failures never reach callers; the orchestrator treats them as a missing
tier. Origin and configuration failures are surfaced with enough information
for the caller to decide whether to retry.
"""

from typing import Any, List, Optional


class PlaceCacheError(Exception):
    """Base class for every error raised by placecache"""


class StoreUnavailable(PlaceCacheError):
    """A backing key-value store call failed"""

    def __init__(self, operation: str, key: Optional[str] = None, cause: Optional[BaseException] = None):
        self.operation = operation
        self.key = key
        self.cause = cause
        target = f" {key}" if key else ""
        super().__init__(f"Store {operation}{target} failed: {cause}")


class OriginError(PlaceCacheError):
    """Non rate-limit failure reported by the upstream search API"""

    retryable = False

    def __init__(self, status_code: int, message: str, details: Optional[List[Any]] = None):
        self.status_code = status_code
        self.message = message
        self.details = details or []
        super().__init__(f"Origin returned {status_code}: {message}")


class OriginRateLimited(OriginError):
    """Upstream API signalled a rate limit (HTTP 429)"""

    retryable = True

    def __init__(self, message: str = "Origin rate limit exceeded", details: Optional[List[Any]] = None,
                 retry_after: Optional[float] = None):
        super().__init__(429, message, details)
        self.retry_after = retry_after


class ConfigurationError(PlaceCacheError):
    """A required setting (e.g. the API credential) is missing"""

    def __init__(self, setting: str, message: Optional[str] = None):
        self.setting = setting
        super().__init__(message or f"Required setting '{setting}' is not configured")
