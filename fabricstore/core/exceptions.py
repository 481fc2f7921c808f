"""
Service-layer errors.

Services raise these instead of HTTPException; the application maps each
class to an HTTP status in ``fabricstore.main``.
"""

from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base class for order engine errors."""
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationFailed(StorefrontError):
    """Input was invalid, ineligible, or conflicts with the current state."""
    status_code = 400


class ResourceNotFound(StorefrontError):
    status_code = 404


class CommitFailed(StorefrontError):
    """Storage failed while committing; the transaction was rolled back."""
    status_code = 500
