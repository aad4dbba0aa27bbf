"""Error taxonomy shared by the server actions.

Every error carries the user-facing ``message`` that ends up in the failure
envelope. None of these ever escape an action boundary.
"""

from typing import Optional


NOT_AUTHENTICATED = "Not authenticated"
UNAUTHORIZED = "Unauthorized"
UNEXPECTED = "An unexpected error occurred"


class ActionError(Exception):
    default_message = UNEXPECTED

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(ActionError):
    default_message = NOT_AUTHENTICATED


class AuthorizationError(ActionError):
    default_message = UNAUTHORIZED


class ValidationError(ActionError):
    default_message = "Invalid input"


class RemoteOperationError(ActionError):
    default_message = "The operation could not be completed"

    @classmethod
    def wrap(cls, exc: Exception, fallback: str) -> "RemoteOperationError":
        detail = str(exc).strip()
        return cls(f"{fallback}: {detail}" if detail else fallback)
