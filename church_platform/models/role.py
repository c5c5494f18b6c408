"""Role model for RBAC."""

import json
import re

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.orm import validates

from church_platform.core.exceptions import ValidationError
from church_platform.core.permissions import invalid_permissions
from church_platform.db.base import Base, utcnow

ROLE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class Role(Base):
    """Named role holding a flat set of permission tokens."""
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    permissions_json = Column(Text, nullable=False, default="[]")  # JSON list of permission strings
    is_system_role = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @validates("name")
    def _normalize_name(self, key, value):
        value = (value or "").strip().lower()
        if not ROLE_NAME_PATTERN.match(value):
            raise ValidationError(f"Invalid role name '{value}'")
        return value

    @property
    def permissions(self) -> list[str]:
        return json.loads(self.permissions_json or "[]")

    @permissions.setter
    def permissions(self, value) -> None:
        perms = list(dict.fromkeys(value or []))
        invalid = invalid_permissions(perms)
        if invalid:
            raise ValidationError(f"Invalid permissions: {', '.join(invalid)}")
        self.permissions_json = json.dumps(perms)
