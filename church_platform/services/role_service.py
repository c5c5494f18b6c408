"""Role service: role CRUD and role assignment."""

import logging
from typing import Optional, List

from sqlalchemy.orm import Session

from church_platform.core.exceptions import (
    AuthorizationError,
    ResourceConflictError,
    ResourceNotFoundError,
    ValidationError,
)
from church_platform.models.role import Role
from church_platform.models.user import User

logger = logging.getLogger("church_platform")


class RoleService:
    """Manages roles and which users hold them."""

    @staticmethod
    def list_roles(db: Session) -> List[Role]:
        return db.query(Role).order_by(Role.created_at.desc(), Role.id.desc()).all()

    @staticmethod
    def get_role(db: Session, role_id: int) -> Role:
        role = db.query(Role).filter(Role.id == role_id).first()
        if not role:
            raise ResourceNotFoundError("Role not found")
        return role

    @staticmethod
    def get_role_by_name(db: Session, name: str) -> Optional[Role]:
        return db.query(Role).filter(Role.name == name.strip().lower()).first()

    @staticmethod
    def create_role(
        db: Session,
        name: str,
        description: Optional[str] = None,
        permissions: Optional[List[str]] = None,
    ) -> Role:
        """Create a non-system role.

        Raises:
            ValidationError: On a malformed name or unknown permission token.
            ResourceConflictError: If the name is taken.
        """
        if not name or not name.strip():
            raise ValidationError("Role name is required")
        if RoleService.get_role_by_name(db, name):
            raise ResourceConflictError("Role already exists")

        role = Role(name=name, description=description, is_system_role=False)
        role.permissions = permissions or []
        db.add(role)
        db.commit()
        db.refresh(role)
        logger.info("Created role %s with %d permissions", role.name, len(role.permissions))
        return role

    @staticmethod
    def update_role(
        db: Session,
        role_id: int,
        description: Optional[str] = None,
        permissions: Optional[List[str]] = None,
        name: Optional[str] = None,
    ) -> Role:
        """Replace permissions and/or description.

        A system role keeps its name; its permissions may still change.
        """
        role = RoleService.get_role(db, role_id)
        if name is not None and name.strip().lower() != role.name:
            if role.is_system_role:
                raise ValidationError("Cannot modify system role name")
            if RoleService.get_role_by_name(db, name):
                raise ResourceConflictError("Role already exists")
            role.name = name
        if permissions is not None:
            role.permissions = permissions
        if description is not None:
            role.description = description
        db.commit()
        db.refresh(role)
        logger.info("Updated role %s", role.name)
        return role

    @staticmethod
    def delete_role(db: Session, role_id: int) -> None:
        role = RoleService.get_role(db, role_id)
        if role.is_system_role:
            raise AuthorizationError("Cannot delete system roles")
        assigned = db.query(User).filter(User.role_id == role.id).count()
        if assigned:
            raise ResourceConflictError(
                f"Cannot delete role: {assigned} user(s) still assigned to this role"
            )
        db.delete(role)
        db.commit()
        logger.info("Deleted role %s", role.name)

    @staticmethod
    def assign_role(db: Session, user_id: int, role_id: int):
        """Point a user at a role. Returns ``(user, previous_role_name)``.

        Takes effect on the user's next request; nothing is cached.
        """
        role = RoleService.get_role(db, role_id)
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise ResourceNotFoundError("User not found")
        previous = user.role.name if user.role else None
        user.role_id = role.id
        db.commit()
        db.refresh(user)
        logger.info("Assigned role %s to %s (was %s)", role.name, user.email, previous)
        return user, previous

    @staticmethod
    def bulk_assign(db: Session, user_ids: List[int], role_id: int) -> int:
        """Assign one role to many users; returns how many rows changed."""
        if not user_ids:
            raise ValidationError("User IDs array is required")
        role = RoleService.get_role(db, role_id)
        users = (
            db.query(User)
            .filter(User.id.in_(user_ids), (User.role_id != role.id) | User.role_id.is_(None))
            .all()
        )
        for user in users:
            user.role_id = role.id
        db.commit()
        logger.info("Bulk assigned role %s to %d user(s)", role.name, len(users))
        return len(users)

    @staticmethod
    def users_by_role(db: Session, role_id: int) -> List[User]:
        role = RoleService.get_role(db, role_id)
        return db.query(User).filter(User.role_id == role.id).order_by(User.id).all()


role_service = RoleService()
