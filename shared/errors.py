"""
Shared error handling for the tiered document cache.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class CacheLayerException(Exception):
    """Base exception for the cache layer."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class CacheBackendError(CacheLayerException):
    """Transient failure talking to the remote cache tier.

    Never escapes the cache layer; raised internally so the tier can log
    and count it in one place.
    """

    def __init__(self, operation: str, message: str = "Cache backend error", details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("CACHE_BACKEND_ERROR", f"{operation}: {message}", details)


class CacheConfigurationError(CacheLayerException):
    """Remote cache tier could not be initialized."""

    def __init__(self, message: str = "Cache configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CACHE_CONFIGURATION_ERROR", message, details)


class SourceFetchError(CacheLayerException):
    """The source of truth failed to answer a query."""

    status_code = 503

    def __init__(self, collection: str, message: str = "Source fetch failed", details: Optional[Dict[str, Any]] = None):
        self.collection = collection
        super().__init__("SOURCE_FETCH_ERROR", f"{collection}: {message}", details)


class SubscriptionError(CacheLayerException):
    """Registering a mutation subscription failed."""

    def __init__(self, collection: str, message: str = "Subscription failed", details: Optional[Dict[str, Any]] = None):
        self.collection = collection
        super().__init__("SUBSCRIPTION_ERROR", f"{collection}: {message}", details)


class UnknownCollectionError(CacheLayerException):
    """A manual invalidation named a collection with no route."""

    status_code = 404

    def __init__(self, collection: str, details: Optional[Dict[str, Any]] = None):
        self.collection = collection
        super().__init__("UNKNOWN_COLLECTION", f"No invalidation route for collection '{collection}'", details)
