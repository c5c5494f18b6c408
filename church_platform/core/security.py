"""JWT authentication and permission-based authorization helpers."""

import logging
import bcrypt
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from church_platform.core.audit_events import ACCESS_DENIED
from church_platform.core.config import settings
from church_platform.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    NoRoleAssignedError,
    PermissionCheckError,
    PermissionDeniedError,
)
from church_platform.core.permissions import (
    AccessDecision,
    Principal,
    RoleGrant,
    check_admin,
    check_permissions,
    expand_permissions,
)
from church_platform.db.session import get_db
from church_platform.models.user import User

logger = logging.getLogger("church_platform")

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    pwd_bytes = plain_password.encode("utf-8")
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Optional[int]:
    """Resolve the bearer token to a user id, or ``None`` when absent."""
    if credentials is None:
        return None
    payload = decode_token(credentials.credentials)
    user_id = payload.get("sub")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return int(user_id)


async def get_current_user_id(user_id: Optional[int] = Depends(get_optional_user_id)) -> int:
    """Extract user_id from the JWT Bearer token."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def build_principal(user: User) -> Principal:
    """Snapshot a user row and its role into a ``Principal``."""
    role = None
    if user.role is not None:
        role = RoleGrant.from_role(user.role.name, user.role.permissions)
    return Principal(
        user_id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=role,
    )


def load_principal(db: Session, user_id: int) -> Optional[Principal]:
    """Fetch the user and its current role row. Never cached across requests.

    A deactivated account is rejected here, so tokens issued before the
    deactivation stop working on the next request.
    """
    try:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            return None
        if not user.is_active:
            logger.info("Rejected token for deactivated account %s", user.email)
            raise AuthenticationError("Account is deactivated")
        return build_principal(user)
    except SQLAlchemyError as e:
        logger.exception("Role lookup failed for user %s", user_id)
        detail = {"error": str(e)} if settings.is_development else {}
        raise PermissionCheckError("Permission check failed", **detail)


def _mark_denied(request: Request, reason: str) -> None:
    request.state.audit_override = {
        "action": ACCESS_DENIED,
        "resource_type": "system",
        "reason": reason,
    }


async def get_current_principal(
    request: Request,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
) -> Principal:
    """Authentication only: resolve the principal without a permission check."""
    if user_id is None:
        raise AuthenticationError("User not authenticated")
    principal = load_principal(db, user_id)
    if principal is None:
        raise AuthenticationError("User not found")
    request.state.principal = principal
    return principal


class RequirePermission:
    """Dependency that allows the request if any one of the tokens is held.

    The admin role passes unconditionally. Broad grants are expanded via
    ``church_platform.core.permissions.PERMISSION_EXPANSIONS``.
    """

    def __init__(self, *permissions: str):
        self.permissions = tuple(permissions)

    async def __call__(
        self,
        request: Request,
        user_id: Optional[int] = Depends(get_optional_user_id),
        db: Session = Depends(get_db),
    ) -> Principal:
        if user_id is None:
            raise AuthenticationError("User not authenticated")

        principal = load_principal(db, user_id)
        if principal is None:
            raise AuthenticationError("User not found")
        request.state.principal = principal

        logger.debug(
            "Checking %s for user %s", ", ".join(self.permissions), principal.email,
        )
        decision = check_permissions(principal, self.permissions)

        if decision is AccessDecision.no_role:
            logger.info("Access denied for %s: no role assigned", principal.email)
            _mark_denied(request, "User has no role assigned")
            raise NoRoleAssignedError(self.permissions)

        if decision is AccessDecision.insufficient:
            logger.info(
                "Access denied for %s (role %s): requires one of %s",
                principal.email, principal.role_name, ", ".join(self.permissions),
            )
            _mark_denied(request, "Insufficient permissions")
            raise PermissionDeniedError(
                self.permissions,
                expand_permissions(principal.role.permissions),
                principal.role_name,
            )

        return principal


async def require_admin(
    request: Request,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: Session = Depends(get_db),
) -> Principal:
    """Dependency that only lets the ``admin`` role through."""
    if user_id is None:
        raise AuthenticationError("User not authenticated")
    principal = load_principal(db, user_id)
    if principal is None:
        raise AuthenticationError("User not found")
    request.state.principal = principal
    if not check_admin(principal):
        logger.info("Admin access denied for %s", principal.email)
        _mark_denied(request, "Admin access required")
        raise AuthorizationError("Admin access required")
    return principal


def effective_permissions(principal: Principal) -> list[str]:
    """Expanded permission list for display (``/auth/me``)."""
    if principal.role is None:
        return []
    return expand_permissions(principal.role.permissions)
