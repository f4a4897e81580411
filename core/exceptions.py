"""
Domain error taxonomy.

Every error raised by the access layer derives from ``DomainError`` and carries
the HTTP status it maps to. The mapping is fixed:

- ValidationError and its subclasses  -> 400
- AuthenticationError                 -> 401
- ForbiddenError, InactiveAccountError -> 403
- NotFoundError                       -> 404
- ConflictError                       -> 409
- StoreError                          -> 500 (message is never exposed)
"""

from typing import Optional


class DomainError(Exception):
    """Base class for all access-layer errors"""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(DomainError):
    """Malformed or missing input. Never retried."""

    status_code = 400
    code = "validation_error"


class InvalidValueError(ValidationError):
    code = "invalid_value"


class InvalidRoleError(ValidationError):
    code = "invalid_role"


class InvalidTargetError(ValidationError):
    code = "invalid_target"


class SelfModificationError(ValidationError):
    code = "self_modification"


class InactiveManagerError(ValidationError):
    """Target manager exists but is deactivated"""

    code = "inactive_manager"


class AuthenticationError(DomainError):
    status_code = 401
    code = "unauthenticated"


class InactiveAccountError(DomainError):
    status_code = 403
    code = "inactive_account"

    def __init__(self, message: str = "Account is deactivated"):
        super().__init__(message)


class ForbiddenError(DomainError):
    status_code = 403
    code = "forbidden"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(DomainError):
    status_code = 404
    code = "not_found"


class ConflictError(DomainError):
    status_code = 409
    code = "conflict"


class StoreError(DomainError):
    """Persistence failure. Logged with its operation tag, opaque to callers."""

    status_code = 500
    code = "store_error"

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__("Internal server error")
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        return f"store failure during '{self.operation}': {self.cause!r}"
