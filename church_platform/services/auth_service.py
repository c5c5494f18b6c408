"""Auth service: JWT login, signup, user management."""

from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from church_platform.models.user import User
from church_platform.models.role import Role
from church_platform.core.security import (
    hash_password, verify_password, create_access_token, build_principal,
    effective_permissions,
)
from church_platform.core.exceptions import (
    AuthenticationError, ResourceConflictError, ResourceNotFoundError,
)
from church_platform.db.base import utcnow

DEFAULT_ROLE = "member"


def user_summary(user: User) -> Dict[str, Any]:
    """Public view of a user including its effective permissions."""
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role.name if user.role else None,
        "permissions": effective_permissions(build_principal(user)),
        "is_active": user.is_active,
    }


class AuthService:
    """Handles authentication and user management."""

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> Dict[str, Any]:
        """Authenticate user and return a JWT access token.

        Raises:
            AuthenticationError: If credentials are invalid.
        """
        user = db.query(User).filter(User.email == email).first()
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        # Role is deliberately left out of the token; it is re-read per request.
        access_token = create_access_token({"sub": str(user.id), "email": user.email})

        user.last_login_at = utcnow()
        db.commit()

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": user_summary(user),
        }

    @staticmethod
    def create_user(
        db: Session,
        email: str,
        password: str,
        full_name: str,
        role_name: Optional[str] = DEFAULT_ROLE,
    ) -> User:
        """Create a new user. ``role_name=None`` leaves the user without a role."""
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            raise ResourceConflictError(f"User with email {email} already exists")

        role_id = None
        if role_name is not None:
            role = db.query(Role).filter(Role.name == role_name).first()
            if not role:
                raise ResourceNotFoundError(f"Role '{role_name}' not found")
            role_id = role.id

        user = User(
            email=email,
            hashed_password=hash_password(password),
            full_name=full_name,
            role_id=role_id,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        """Get a user by id."""
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError(f"User {user_id} not found")
        return user

    @staticmethod
    def list_users(
        db: Session,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        role_id: Optional[int] = None,
    ):
        """List users with pagination."""
        query = db.query(User)
        if search:
            pattern = f"%{search}%"
            query = query.filter(User.email.ilike(pattern) | User.full_name.ilike(pattern))
        if role_id is not None:
            query = query.filter(User.role_id == role_id)
        total = query.count()
        users = (
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {"users": users, "total": total, "page": page, "page_size": page_size}

    @staticmethod
    def update_user(db: Session, user_id: int, full_name: Optional[str] = None) -> User:
        user = AuthService.get_user(db, user_id)
        if full_name is not None:
            user.full_name = full_name
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def set_status(db: Session, user_id: int, is_active: bool) -> User:
        """Activate or deactivate an account."""
        user = AuthService.get_user(db, user_id)
        user.is_active = is_active
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def delete_user(db: Session, user_id: int) -> None:
        user = AuthService.get_user(db, user_id)
        db.delete(user)
        db.commit()


auth_service = AuthService()
