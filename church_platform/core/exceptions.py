"""Custom exception classes for the church platform."""

from fastapi import HTTPException, status


class ChurchPlatformError(Exception):
    """Base exception for the church platform.

    Rendered by the application exception handler as
    ``{"success": false, "message": ..., **extra}``.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred", status_code: int = None, **extra):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra
        super().__init__(self.message)


class AuthenticationError(ChurchPlatformError):
    """Raised when no principal could be resolved for the request."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(ChurchPlatformError):
    """Raised when the principal lacks access."""
    status_code = status.HTTP_403_FORBIDDEN


class NoRoleAssignedError(AuthorizationError):
    """Raised when the principal has no role reference."""

    def __init__(self, required_permissions=()):
        super().__init__(
            "User has no role assigned",
            requiredPermissions=list(required_permissions),
            userPermissions=[],
        )


class PermissionDeniedError(AuthorizationError):
    """Raised when none of the required permissions are held."""

    def __init__(self, required_permissions, user_permissions, role_name: str):
        super().__init__(
            "Insufficient permissions",
            requiredPermissions=list(required_permissions),
            userPermissions=list(user_permissions),
            userRole=role_name,
        )


class PermissionCheckError(ChurchPlatformError):
    """Raised when the role store could not be consulted."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ResourceNotFoundError(ChurchPlatformError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND


class ResourceConflictError(ChurchPlatformError):
    """Raised when a resource already exists or is still referenced."""
    status_code = status.HTTP_409_CONFLICT


class ValidationError(ChurchPlatformError):
    """Raised when input validation fails."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuditImmutabilityError(RuntimeError):
    """Raised by the storage layer on any attempt to mutate an audit record.

    This is a programmer error, not a client-facing condition.
    """


# HTTP exception shortcuts
def not_found(detail: str = "Resource not found") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


def bad_request(detail: str = "Bad request") -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
