"""Celery app and scheduled audit retention tasks."""

import logging

from celery import Celery
from celery.schedules import crontab

from church_platform.core.config import settings

logger = logging.getLogger("church_platform")

celery_app = Celery(
    "church_platform",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_soft_time_limit=600,  # 10 min soft limit
    task_time_limit=900,  # 15 min hard limit
    beat_schedule={
        "audit-retention-daily": {
            "task": "audit_retention_sweep",
            "schedule": crontab(hour=3, minute=0),
        },
        "transaction-audit-retention-daily": {
            "task": "transaction_audit_retention_sweep",
            "schedule": crontab(hour=3, minute=0),
        },
    },
)


@celery_app.task(name="audit_retention_sweep")
def audit_retention_sweep(days: int = None) -> dict:
    """Delete request audit logs past retention, keeping protected actions."""
    from church_platform.db.session import SessionLocal
    from church_platform.services.audit_service import audit_service

    db = SessionLocal()
    try:
        deleted = audit_service.clean_old_logs(db, days)
        return {"deleted": deleted}
    except Exception:
        db.rollback()
        logger.exception("Audit retention sweep failed")
        raise
    finally:
        db.close()


@celery_app.task(name="transaction_audit_retention_sweep")
def transaction_audit_retention_sweep(days: int = None) -> dict:
    """Delete non-critical transaction audit entries past retention."""
    from church_platform.db.session import SessionLocal
    from church_platform.services.transaction_audit_service import transaction_audit_service

    db = SessionLocal()
    try:
        deleted = transaction_audit_service.clean_old_logs(db, days)
        return {"deleted": deleted}
    except Exception:
        db.rollback()
        logger.exception("Transaction audit retention sweep failed")
        raise
    finally:
        db.close()
