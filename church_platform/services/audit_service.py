"""Audit service: append-only audit trail plus its read side."""

import csv
import io
import json
import logging
from datetime import datetime, timedelta
from typing import Optional, Any, Callable

from fastapi import Request
from sqlalchemy import delete, func, or_
from sqlalchemy.orm import Session

from church_platform.core.audit_events import ACCESS_DENIED, SYSTEM_ERROR
from church_platform.core.config import settings
from church_platform.core.exceptions import ValidationError
from church_platform.core.permissions import Principal
from church_platform.db.base import as_utc, utcnow
from church_platform.db.guards import RETENTION_OPTION
from church_platform.models.audit_log import AuditLog

logger = logging.getLogger("church_platform")

# Never removed by the retention sweep.
PROTECTED_AUDIT_ACTIONS = (
    "user.role.change",
    "user.status.change",
    "user.delete",
    "user.bulk.update",
    "auth.password.reset.success",
)

EXPORT_HEADERS = [
    "Timestamp", "User", "Email", "Role", "Action", "Resource Type",
    "Resource ID", "Method", "Endpoint", "Status", "IP Address", "Success",
]

SORT_ALIASES = {"timestamp": "created_at"}


def _dumps(value: Any) -> Optional[str]:
    return json.dumps(value, default=str) if value else None


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class AuditService:
    """Records immutable audit log entries and answers dashboard queries."""

    @staticmethod
    def log(
        db: Session,
        action: str,
        resource_type: str,
        method: str,
        endpoint: str,
        status_code: int,
        actor_id: Optional[int] = None,
        actor_email: Optional[str] = None,
        actor_name: Optional[str] = None,
        actor_role: Optional[str] = None,
        resource_id: Optional[Any] = None,
        resource_name: Optional[str] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[dict] = None,
        error: Optional[dict] = None,
        duration_ms: Optional[int] = None,
    ) -> AuditLog:
        """Write a single audit log record.

        ``success`` is derived from the status code (2xx/3xx). Commits
        immediately; callers on the HTTP path use ``log_safely`` instead.
        """
        error = error or {}
        entry = AuditLog(
            actor_id=actor_id,
            actor_email=actor_email,
            actor_name=actor_name,
            actor_role=actor_role,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            resource_name=resource_name,
            method=method,
            endpoint=endpoint[:500],
            status_code=status_code,
            success=200 <= status_code < 400,
            ip_address=ip_address or "unknown",
            user_agent=(user_agent or "")[:500] or None,
            metadata_json=_dumps(metadata),
            old_value_json=_dumps(old_value),
            new_value_json=_dumps(new_value),
            error_message=error.get("message"),
            error_code=error.get("code"),
            duration_ms=duration_ms,
        )
        db.add(entry)
        db.commit()
        return entry

    @staticmethod
    def log_safely(session_factory: Callable[[], Session], **fields) -> Optional[AuditLog]:
        """Best-effort write used after a response was sent.

        Failures are logged and swallowed; there is no retry.
        """
        db = None
        try:
            db = session_factory()
            return AuditService.log(db, **fields)
        except Exception:
            if db is not None:
                db.rollback()
            logger.exception("Audit logging failed for %s", fields.get("action"))
            return None
        finally:
            if db is not None:
                db.close()

    @staticmethod
    def log_from_request(
        db: Session,
        request: Request,
        principal: Optional[Principal],
        action: str,
        resource_type: str,
        resource_id: Optional[Any] = None,
        resource_name: Optional[str] = None,
        old_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        status_code: int = 200,
        metadata: Optional[dict] = None,
    ) -> AuditLog:
        """Write an audit log taking method, endpoint, IP and user-agent from the request."""
        return AuditService.log(
            db,
            action=action,
            resource_type=resource_type,
            method=request.method,
            endpoint=request.url.path,
            status_code=status_code,
            actor_id=principal.user_id if principal else None,
            actor_email=principal.email if principal else None,
            actor_name=principal.full_name if principal else None,
            actor_role=principal.role_name if principal else None,
            resource_id=resource_id,
            resource_name=resource_name,
            old_value=old_value,
            new_value=new_value,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            metadata=metadata,
        )

    @staticmethod
    def log_access_denied(
        db: Session,
        request: Request,
        principal: Optional[Principal],
        reason: str,
        status_code: int = 403,
    ) -> AuditLog:
        """Record a rejected authorization decision outside the HTTP recorder."""
        return AuditService.log_from_request(
            db, request, principal,
            action=ACCESS_DENIED,
            resource_type="system",
            status_code=status_code,
            metadata={"reason": reason, "query": dict(request.query_params)},
        )

    @staticmethod
    def _filtered(
        db: Session,
        actor_id: Optional[int] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        success: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        search: Optional[str] = None,
    ):
        query = db.query(AuditLog)

        if actor_id is not None:
            query = query.filter(AuditLog.actor_id == actor_id)
        if action:
            query = query.filter(AuditLog.action == action)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if success is not None:
            query = query.filter(AuditLog.success == success)
        if start_date:
            query = query.filter(AuditLog.created_at >= as_utc(start_date))
        if end_date:
            query = query.filter(AuditLog.created_at <= as_utc(end_date))
        if ip_address:
            query = query.filter(AuditLog.ip_address == ip_address)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                AuditLog.actor_email.ilike(pattern),
                AuditLog.actor_name.ilike(pattern),
                AuditLog.endpoint.ilike(pattern),
                AuditLog.resource_name.ilike(pattern),
            ))
        return query

    @staticmethod
    def _order_by(sort_by: str, sort_order: str):
        column_name = SORT_ALIASES.get(sort_by, sort_by)
        if column_name not in AuditLog.__table__.columns:
            raise ValidationError(f"Cannot sort by '{sort_by}'")
        column = AuditLog.__table__.columns[column_name]
        return column.asc() if sort_order == "asc" else column.desc()

    @staticmethod
    def query_logs(
        db: Session,
        page: int = 1,
        page_size: int = 50,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        **filters,
    ):
        """Query audit logs with filters and pagination."""
        query = AuditService._filtered(db, **filters)
        order = AuditService._order_by(sort_by, sort_order)

        total = query.count()
        logs = (
            query.order_by(order, AuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": (total + page_size - 1) // page_size,
        }

    @staticmethod
    def get_log(db: Session, log_id: int) -> Optional[AuditLog]:
        return db.query(AuditLog).filter(AuditLog.id == log_id).first()

    @staticmethod
    def get_user_activity(db: Session, actor_id: int, limit: int = 50):
        return (
            db.query(AuditLog)
            .filter(AuditLog.actor_id == actor_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_recent(db: Session, limit: int = 100):
        return (
            db.query(AuditLog)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_resource_timeline(db: Session, resource_type: str, resource_id: str):
        """All entries for one resource in chronological order."""
        return (
            db.query(AuditLog)
            .filter(AuditLog.resource_type == resource_type, AuditLog.resource_id == resource_id)
            .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
            .all()
        )

    @staticmethod
    def get_stats(
        db: Session,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        actor_id: Optional[int] = None,
    ) -> dict:
        """Aggregate counts for the audit dashboard."""
        base = AuditService._filtered(db, actor_id=actor_id, start_date=start_date, end_date=end_date)

        def grouped(*columns):
            return base.with_entities(*columns).group_by(*columns[:1])

        success_counts = dict(grouped(AuditLog.success, func.count(AuditLog.id)).all())
        success_count = success_counts.get(True, 0)
        failed_count = success_counts.get(False, 0)
        total = success_count + failed_count

        count = func.count(AuditLog.id)
        top_actions = (
            grouped(AuditLog.action, count).order_by(count.desc()).limit(10).all()
        )
        by_resource_type = (
            grouped(AuditLog.resource_type, count).order_by(count.desc()).all()
        )
        top_users = (
            grouped(
                AuditLog.actor_id, count,
                func.min(AuditLog.actor_email), func.min(AuditLog.actor_name),
            )
            .order_by(count.desc())
            .limit(10)
            .all()
        )
        failed_logins = (
            base.filter(AuditLog.action == "auth.login.failed")
            .with_entities(AuditLog.ip_address, count, func.max(AuditLog.created_at))
            .group_by(AuditLog.ip_address)
            .order_by(count.desc())
            .limit(10)
            .all()
        )
        recent_errors = (
            base.filter(AuditLog.success.is_(False))
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(20)
            .all()
        )

        return {
            "total_actions": total,
            "success_count": success_count,
            "failed_count": failed_count,
            "success_rate": round(success_count / total * 100, 2) if total else 0,
            "top_actions": [{"action": a, "count": c} for a, c in top_actions],
            "by_resource_type": [{"resource_type": r, "count": c} for r, c in by_resource_type],
            "top_users": [
                {"actor_id": uid, "count": c, "email": email, "name": name}
                for uid, c, email, name in top_users
            ],
            "failed_login_attempts": [
                {"ip_address": ip, "count": c, "last_attempt": last}
                for ip, c, last in failed_logins
            ],
            "recent_errors": recent_errors,
        }

    @staticmethod
    def get_failed_login_attempts(db: Session, ip_address: str, hours: int = 24) -> int:
        since = utcnow() - timedelta(hours=hours)
        return (
            db.query(func.count(AuditLog.id))
            .filter(
                AuditLog.action == "auth.login.failed",
                AuditLog.ip_address == ip_address,
                AuditLog.created_at >= since,
            )
            .scalar()
        )

    @staticmethod
    def get_security_alerts(
        db: Session, hours: Optional[int] = None, limit: Optional[int] = None,
    ) -> dict:
        """Failed logins by IP, access denials by (user, endpoint), recent errors.

        Every group is capped at ``limit`` rows.
        """
        if hours is None:
            hours = settings.SECURITY_ALERT_HOURS
        if limit is None:
            limit = settings.SECURITY_ALERT_LIMIT
        since = utcnow() - timedelta(hours=hours)
        count = func.count(AuditLog.id)
        last = func.max(AuditLog.created_at)

        failed = (
            db.query(AuditLog.ip_address, count, last)
            .filter(AuditLog.action == "auth.login.failed", AuditLog.created_at >= since)
            .group_by(AuditLog.ip_address)
            .order_by(count.desc())
            .limit(limit)
            .all()
        )
        emails: dict[str, list[str]] = {ip: [] for ip, _, _ in failed}
        if emails:
            pairs = (
                db.query(AuditLog.ip_address, AuditLog.actor_email)
                .filter(
                    AuditLog.action == "auth.login.failed",
                    AuditLog.created_at >= since,
                    AuditLog.ip_address.in_(list(emails)),
                    AuditLog.actor_email.isnot(None),
                )
                .distinct()
                .all()
            )
            for ip, email in pairs:
                emails[ip].append(email)

        denied = (
            db.query(AuditLog.actor_id, AuditLog.endpoint, count, func.min(AuditLog.actor_email), last)
            .filter(AuditLog.action == ACCESS_DENIED, AuditLog.created_at >= since)
            .group_by(AuditLog.actor_id, AuditLog.endpoint)
            .order_by(count.desc())
            .limit(limit)
            .all()
        )

        errors = (
            db.query(AuditLog)
            .filter(AuditLog.action == SYSTEM_ERROR, AuditLog.created_at >= since)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
            .all()
        )

        failed_details = [
            {"ip_address": ip, "count": c, "emails": sorted(emails[ip]), "last_attempt": ts}
            for ip, c, ts in failed
        ]
        denied_details = [
            {"actor_id": uid, "endpoint": endpoint, "count": c, "email": email, "last_attempt": ts}
            for uid, endpoint, c, email, ts in denied
        ]
        return {
            "failed_logins": {"count": len(failed_details), "details": failed_details},
            "access_denied": {"count": len(denied_details), "details": denied_details},
            "errors": {"count": len(errors), "details": errors},
        }

    @staticmethod
    def export_csv(db: Session, **filters) -> str:
        """Render matching logs as CSV, built fully in memory.

        At most ``AUDIT_EXPORT_LIMIT`` rows, newest first.
        """
        logs = (
            AuditService._filtered(db, **filters)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(settings.AUDIT_EXPORT_LIMIT)
            .all()
        )
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for log in logs:
            writer.writerow([
                log.created_at.isoformat(),
                log.actor_name or "N/A",
                log.actor_email or "N/A",
                log.actor_role or "N/A",
                log.action,
                log.resource_type,
                log.resource_id or "N/A",
                log.method,
                log.endpoint,
                log.status_code,
                log.ip_address,
                "Yes" if log.success else "No",
            ])
        return buffer.getvalue()

    @staticmethod
    def clean_old_logs(db: Session, days: Optional[int] = None) -> int:
        """Retention sweep: delete entries older than ``days``.

        Protected actions are kept regardless of age. Transaction audit rows
        live in another table and are never touched here.
        """
        days = days if days is not None else settings.AUDIT_RETENTION_DAYS
        cutoff = utcnow() - timedelta(days=days)
        stmt = (
            delete(AuditLog)
            .where(
                AuditLog.created_at < cutoff,
                AuditLog.action.not_in(PROTECTED_AUDIT_ACTIONS),
            )
            .execution_options(synchronize_session=False, **{RETENTION_OPTION: True})
        )
        result = db.execute(stmt)
        db.commit()
        logger.info("Audit retention removed %s entries older than %s days", result.rowcount, days)
        return result.rowcount


audit_service = AuditService()
