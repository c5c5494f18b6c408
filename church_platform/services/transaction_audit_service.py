"""Transaction audit service: durable trail for monetary operations.

Unlike ``AuditService.log_safely`` this write path is synchronous and
raises: if the audit row cannot be written, the calling payment, pledge or
contribution operation must see the failure.
"""

import csv
import io
import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, func, or_
from sqlalchemy.orm import Session

from church_platform.core.config import settings
from church_platform.db.base import as_utc, utcnow
from church_platform.db.guards import RETENTION_OPTION
from church_platform.models.transaction_audit_log import TransactionAuditLog

logger = logging.getLogger("church_platform")

# The only transaction actions the retention sweep may remove.
NON_CRITICAL_TRANSACTION_ACTIONS = (
    "payment_initiated",
    "payment_status_checked",
    "stk_push_sent",
    "contribution_timeout",
)

EXPORT_HEADERS = [
    "ID", "Transaction ID", "Type", "User ID", "Action", "Status", "Amount",
    "Currency", "Payment Method", "M-Pesa Receipt", "Error", "Created At",
]


class TransactionAuditService:
    """Records and queries immutable financial audit entries."""

    @staticmethod
    def log_transaction(
        db: Session,
        transaction_type: str,
        action: str,
        user_id: str,
        amount: float,
        payment_method: str,
        status: str = "pending",
        transaction_id: Optional[str] = None,
        user_email: Optional[str] = None,
        user_ip_address: Optional[str] = None,
        campaign_id: Optional[str] = None,
        pledge_id: Optional[str] = None,
        payment_id: Optional[str] = None,
        currency: Optional[str] = None,
        mpesa_checkout_request_id: Optional[str] = None,
        mpesa_receipt_number: Optional[str] = None,
        mpesa_phone_number: Optional[str] = None,
        before_state: Optional[dict] = None,
        after_state: Optional[dict] = None,
        status_reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        request_id: Optional[str] = None,
        details: Optional[dict] = None,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
        stack_trace: Optional[str] = None,
        verified_by: Optional[str] = None,
        verified_at: Optional[datetime] = None,
    ) -> TransactionAuditLog:
        """Write one transaction audit entry and commit.

        Raises whatever the store raises, after rolling the session back.
        """
        entry = TransactionAuditLog(
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            user_id=str(user_id),
            user_email=user_email,
            user_ip_address=user_ip_address,
            campaign_id=campaign_id,
            pledge_id=pledge_id,
            payment_id=payment_id,
            amount=amount,
            currency=currency or settings.DEFAULT_CURRENCY,
            payment_method=payment_method,
            mpesa_checkout_request_id=mpesa_checkout_request_id,
            mpesa_receipt_number=mpesa_receipt_number,
            mpesa_phone_number=mpesa_phone_number,
            before_state_json=json.dumps(before_state or {}, default=str),
            after_state_json=json.dumps(after_state or {}, default=str),
            status=status,
            status_reason=status_reason,
            idempotency_key=idempotency_key,
            request_id=request_id,
            action=action,
            details_json=json.dumps(details or {}, default=str),
            error=error,
            error_code=error_code,
            stack_trace=stack_trace,
            verified_by=verified_by,
            verified_at=verified_at,
        )
        try:
            db.add(entry)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to log transaction %s (%s)", transaction_id, action)
            raise
        return entry

    @staticmethod
    def _filtered(
        db: Session,
        transaction_type: Optional[str] = None,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
    ):
        query = db.query(TransactionAuditLog)
        if transaction_type:
            query = query.filter(TransactionAuditLog.transaction_type == transaction_type)
        if status:
            query = query.filter(TransactionAuditLog.status == status)
        if user_id:
            query = query.filter(TransactionAuditLog.user_id == user_id)
        if start_date:
            query = query.filter(TransactionAuditLog.created_at >= as_utc(start_date))
        if end_date:
            query = query.filter(TransactionAuditLog.created_at <= as_utc(end_date))
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                TransactionAuditLog.transaction_id.ilike(pattern),
                TransactionAuditLog.action.ilike(pattern),
                TransactionAuditLog.mpesa_receipt_number.ilike(pattern),
            ))
        return query

    @staticmethod
    def query_logs(db: Session, page: int = 1, page_size: int = 50, **filters):
        """Query transaction audit logs with filters and pagination."""
        query = TransactionAuditService._filtered(db, **filters)
        total = query.count()
        logs = (
            query.order_by(TransactionAuditLog.created_at.desc(), TransactionAuditLog.id.desc())
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
    def get_log(db: Session, log_id: int) -> Optional[TransactionAuditLog]:
        return db.query(TransactionAuditLog).filter(TransactionAuditLog.id == log_id).first()

    @staticmethod
    def get_by_transaction(db: Session, transaction_id: str):
        return (
            db.query(TransactionAuditLog)
            .filter(TransactionAuditLog.transaction_id == transaction_id)
            .order_by(TransactionAuditLog.created_at.desc(), TransactionAuditLog.id.desc())
            .all()
        )

    @staticmethod
    def get_by_user(db: Session, user_id: str, limit: int = 100):
        return (
            db.query(TransactionAuditLog)
            .filter(TransactionAuditLog.user_id == str(user_id))
            .order_by(TransactionAuditLog.created_at.desc(), TransactionAuditLog.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_stats(db: Session) -> dict:
        count = func.count(TransactionAuditLog.id)

        def by(column):
            rows = db.query(column, count).group_by(column).all()
            return [{"key": key, "count": c} for key, c in rows]

        recent_errors = (
            db.query(TransactionAuditLog)
            .filter(TransactionAuditLog.status == "failed")
            .order_by(TransactionAuditLog.created_at.desc(), TransactionAuditLog.id.desc())
            .limit(10)
            .all()
        )
        return {
            "by_type": by(TransactionAuditLog.transaction_type),
            "by_status": by(TransactionAuditLog.status),
            "by_action": by(TransactionAuditLog.action),
            "total": db.query(count).scalar(),
            "recent_errors": recent_errors,
        }

    @staticmethod
    def export_csv(db: Session, **filters) -> str:
        logs = (
            TransactionAuditService._filtered(db, **filters)
            .order_by(TransactionAuditLog.created_at.desc(), TransactionAuditLog.id.desc())
            .limit(settings.AUDIT_EXPORT_LIMIT)
            .all()
        )
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(EXPORT_HEADERS)
        for log in logs:
            writer.writerow([
                log.id,
                log.transaction_id or "",
                log.transaction_type,
                log.user_id,
                log.action,
                log.status,
                log.amount,
                log.currency,
                log.payment_method,
                log.mpesa_receipt_number or "",
                log.error or "",
                log.created_at.isoformat(),
            ])
        return buffer.getvalue()

    @staticmethod
    def clean_old_logs(db: Session, days: Optional[int] = None) -> int:
        """Delete old entries, limited to the non-critical action allow-list."""
        days = days if days is not None else settings.TRANSACTION_AUDIT_RETENTION_DAYS
        cutoff = utcnow() - timedelta(days=days)
        stmt = (
            delete(TransactionAuditLog)
            .where(
                TransactionAuditLog.created_at < cutoff,
                TransactionAuditLog.action.in_(NON_CRITICAL_TRANSACTION_ACTIONS),
            )
            .execution_options(synchronize_session=False, **{RETENTION_OPTION: True})
        )
        result = db.execute(stmt)
        db.commit()
        logger.info("Transaction audit retention removed %s entries", result.rowcount)
        return result.rowcount


transaction_audit_service = TransactionAuditService()
