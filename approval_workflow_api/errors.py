"""Error taxonomy shared by the lifecycle manager and the HTTP layer."""

from __future__ import annotations


class ApprovalError(Exception):
    """Base class for failures reported to API callers."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ApprovalError):
    """Raised when required input is missing or invalid."""

    status_code = 400
    default_message = "Please provide all required fields (title, description, category)"


class InvalidIdError(ApprovalError):
    """Raised when a request identifier is malformed."""

    status_code = 400
    default_message = "Invalid request ID"


class NotFoundError(ApprovalError):
    status_code = 404
    default_message = "Request not found"


class AlreadyProcessedError(ApprovalError):
    """Raised when a request has already left the PENDING state."""

    status_code = 400

    def __init__(self, current_status: str):
        self.current_status = current_status
        super().__init__(f"Request has already been {current_status.lower()}")


class ForbiddenError(ApprovalError):
    """Raised on self-resolution attempts and role mismatches."""

    status_code = 403
    default_message = "You are not authorized to perform this action"


class AuthenticationError(ApprovalError):
    status_code = 401
    default_message = "Not authorized, identity could not be verified"


class StoreError(ApprovalError):
    """Raised when the persistence store fails; detail stays server-side."""

    status_code = 500
    default_message = "A storage error occurred. Please try again later."
