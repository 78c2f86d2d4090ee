"""
Error taxonomy for the todo service.

Every error carries the HTTP status it maps to; the application's exception
handler renders them as ``{"error": <class name>, "message": <message>}``.
Messages are written for callers and never include backend details.
"""

from typing import Optional


class TodoServiceError(Exception):
    """Base exception for all todo service errors."""

    status_code = 500
    # Name rendered to callers; defaults to the class name
    error_name: Optional[str] = None

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def name(self) -> str:
        return self.error_name or type(self).__name__


# Authentication / authorization. Never retried.


class Unauthenticated(TodoServiceError):
    """No credential, or no usable credential, was presented."""

    status_code = 401

    def __init__(self, message: str = "Access token required"):
        super().__init__(message)


class InvalidToken(TodoServiceError):
    """A bearer token was presented but rejected."""

    status_code = 403
    # Expired and forged tokens both render as InvalidToken
    error_name = "InvalidToken"

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class InvalidSignature(InvalidToken):
    """Token is malformed or not signed with the configured secret."""


class TokenExpired(InvalidToken):
    """Token signature is valid but its expiry has passed."""


class InvalidCredentials(TodoServiceError):
    """Username/password pair could not be decoded or did not match."""

    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AccessDenied(TodoServiceError):
    """Authenticated caller addressed a resource owned by someone else."""

    status_code = 403

    def __init__(self, identity: str, owner: str):
        super().__init__("Access denied", details={"identity": identity, "owner": owner})


# Request and resource errors.


class ValidationError(TodoServiceError):
    """A required field is missing or malformed."""

    status_code = 400

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Validation failed for {field}: {reason}",
            details={"field": field, "reason": reason},
        )


class NotFound(TodoServiceError):
    """No matching resource owned by the caller."""

    status_code = 404

    def __init__(self, message: str = "Todo not found", details: Optional[dict] = None):
        super().__init__(message, details)


class DuplicateKey(TodoServiceError):
    """A backend unique-key constraint rejected an insert."""

    status_code = 409

    def __init__(self, collection: str, key: dict):
        super().__init__(
            f"Duplicate key in {collection}",
            details={"collection": collection, "key": key},
        )


class DuplicateId(DuplicateKey):
    """The (username, id) pair of a new todo is already taken."""

    def __init__(self, username: str, todo_id: int):
        super().__init__("todos", {"username": username, "id": todo_id})


class Conflict(TodoServiceError):
    """A todo id could not be allocated within the retry budget."""

    status_code = 409

    def __init__(self, message: str = "Could not allocate a todo id, please retry"):
        super().__init__(message)


class AlreadyExists(TodoServiceError):
    """Signup collided with an existing username."""

    status_code = 409

    def __init__(self, username: str):
        super().__init__("Username already exists", details={"username": username})


# Backend errors. Details are for logs only.


class BackendUnavailable(TodoServiceError):
    """The persistence backend could not be reached in time."""

    status_code = 503

    def __init__(self, reason: Optional[str] = None):
        super().__init__("Storage backend unavailable", details={"reason": reason})


class BackendError(TodoServiceError):
    """The persistence backend answered with an unexpected failure."""

    status_code = 500

    def __init__(self, reason: Optional[str] = None):
        super().__init__("Internal server error", details={"reason": reason})


class InsecureConfigurationError(RuntimeError):
    """Raised at startup when production runs with an unsafe configuration."""
