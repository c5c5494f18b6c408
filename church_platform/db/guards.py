"""Storage-layer guards for append-only tables and system roles.

Audit rows may never be updated or deleted through the ORM. The only
exception is a bulk DELETE statement carrying the ``audit_retention``
execution option, which the retention sweeps set.
"""

from sqlalchemy import event
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import get_history

from church_platform.core.exceptions import AuditImmutabilityError, ValidationError
from church_platform.models.audit_log import AuditLog
from church_platform.models.role import Role
from church_platform.models.transaction_audit_log import TransactionAuditLog

RETENTION_OPTION = "audit_retention"

IMMUTABLE_MODELS = (AuditLog, TransactionAuditLog)
IMMUTABLE_TABLES = frozenset(m.__tablename__ for m in IMMUTABLE_MODELS)


def _reject_update(mapper, connection, target):
    raise AuditImmutabilityError(f"{type(target).__name__} records cannot be modified")


def _reject_delete(mapper, connection, target):
    raise AuditImmutabilityError(f"{type(target).__name__} records cannot be deleted")


for _model in IMMUTABLE_MODELS:
    event.listen(_model, "before_update", _reject_update)
    event.listen(_model, "before_delete", _reject_delete)


@event.listens_for(Session, "do_orm_execute")
def _guard_bulk_statements(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    table = getattr(orm_execute_state.statement, "table", None)
    if getattr(table, "name", None) not in IMMUTABLE_TABLES:
        return
    if orm_execute_state.is_delete and orm_execute_state.execution_options.get(RETENTION_OPTION):
        return
    verb = "updated" if orm_execute_state.is_update else "deleted"
    raise AuditImmutabilityError(f"Audit table '{table.name}' rows cannot be {verb}")


@event.listens_for(Role, "before_update")
def _protect_system_role_name(mapper, connection, target):
    if not target.is_system_role:
        return
    history = get_history(target, "name")
    if history.deleted and history.deleted[0] != target.name:
        raise ValidationError("Cannot modify system role name")
