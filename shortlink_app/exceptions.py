"""
Domain errors.

Services raise these; the API layer turns them into
``{"status": "error", "message": ...}`` responses (see ``main.py``).
"""

from typing import Dict, List, Optional

from fastapi import status


class ShortlinkError(Exception):
    """Base class for errors that map onto a client-facing response"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(ShortlinkError):
    """
    Link or user absent, or not owned by the caller.

    Both cases produce the same response.
    """
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "URL not found"


class ConflictError(ShortlinkError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class AliasConflictError(ConflictError):
    default_message = "Custom alias already in use"


class ForbiddenError(ShortlinkError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Premium plan required to access this resource."


class ValidationFailedError(ShortlinkError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation Error"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.errors = errors or {}


class UnauthenticatedError(ShortlinkError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized. Please log in again."


class QuotaExhaustedError(ShortlinkError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = "You have no credits left."


class InternalError(ShortlinkError):
    pass
