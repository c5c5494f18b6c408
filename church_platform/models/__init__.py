"""Models package: import all models so metadata.create_all can discover them."""

from church_platform.models.role import Role
from church_platform.models.user import User
from church_platform.models.audit_log import AuditLog
from church_platform.models.transaction_audit_log import TransactionAuditLog

# Storage-level immutability guards attach to the models above.
from church_platform.db import guards  # noqa: F401

__all__ = ["Role", "User", "AuditLog", "TransactionAuditLog"]
