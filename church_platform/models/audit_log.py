"""Audit log model: append-only."""

import json

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Index
from sqlalchemy.orm import validates

from church_platform.core.audit_events import AUDIT_ACTIONS, RESOURCE_TYPES, HTTP_METHODS
from church_platform.core.exceptions import ValidationError
from church_platform.db.base import Base, utcnow


class AuditLog(Base):
    """Immutable record of one classified HTTP request.

    This table is APPEND-ONLY: updates and deletes are rejected by the
    guards in ``church_platform.db.guards``. Only the retention sweep may
    bulk-delete old rows.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Actor snapshot, captured at log time
    actor_id = Column(Integer, nullable=True, index=True)  # users.id, no FK so users stay deletable
    actor_email = Column(String(255), nullable=True, index=True)
    actor_name = Column(String(255), nullable=True)
    actor_role = Column(String(50), nullable=True)

    action = Column(String(100), nullable=False)  # e.g. "sermon.create"
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(100), nullable=True)
    resource_name = Column(String(255), nullable=True)

    method = Column(String(10), nullable=False)
    endpoint = Column(String(500), nullable=False)
    status_code = Column(Integer, nullable=False)
    success = Column(Boolean, nullable=False)

    ip_address = Column(String(45), nullable=False, default="unknown")
    user_agent = Column(String(500), nullable=True)
    metadata_json = Column(Text, nullable=True)
    old_value_json = Column(Text, nullable=True)
    new_value_json = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    error_code = Column(String(100), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_audit_logs_actor_created", "actor_id", "created_at"),
        Index("ix_audit_logs_action_created", "action", "created_at"),
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        Index("ix_audit_logs_ip_created", "ip_address", "created_at"),
        Index("ix_audit_logs_success_created", "success", "created_at"),
    )

    @validates("action")
    def _check_action(self, key, value):
        if value not in AUDIT_ACTIONS:
            raise ValidationError(f"Unknown audit action '{value}'")
        return value

    @validates("resource_type")
    def _check_resource_type(self, key, value):
        if value not in RESOURCE_TYPES:
            raise ValidationError(f"Unknown resource type '{value}'")
        return value

    @validates("method")
    def _check_method(self, key, value):
        value = value.upper()
        if value not in HTTP_METHODS:
            raise ValidationError(f"Unsupported HTTP method '{value}'")
        return value

    @staticmethod
    def _load(raw):
        return json.loads(raw) if raw else None

    @property
    def request_metadata(self) -> dict:
        return self._load(self.metadata_json) or {}

    @property
    def changes(self) -> dict:
        return {
            "old_value": self._load(self.old_value_json),
            "new_value": self._load(self.new_value_json),
        }
