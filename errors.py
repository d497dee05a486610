"""
Analytics Exception Classes

Errors raised by the store and the analytics services. The HTTP layer maps
each class to its ``status_code``; anything else becomes a generic 500.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base exception for all analytics errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(AnalyticsError):
    """A required field is missing or malformed."""

    status_code = 400


class NotFoundError(AnalyticsError):
    """The requested entity does not exist."""

    status_code = 404


class StoreError(AnalyticsError):
    """I/O failure against the backing store."""

    status_code = 500
