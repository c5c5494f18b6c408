"""Audit API router: query, stats, alerts, export, retention."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from church_platform.core.config import settings
from church_platform.core.exceptions import ResourceNotFoundError
from church_platform.core.permissions import Principal
from church_platform.core.security import RequirePermission, require_admin
from church_platform.db.base import utcnow
from church_platform.db.session import get_db
from church_platform.schemas.schemas import AuditLogOut, AuditLogPage
from church_platform.services.audit_service import audit_service

router = APIRouter(prefix="/audit", tags=["audit"])

view_audit_logs = RequirePermission("view:audit_logs")


def _out(logs) -> list:
    return [AuditLogOut.model_validate(log) for log in logs]


class AuditFilters:
    """Query-string filters shared by the list and export endpoints."""

    def __init__(
        self,
        actor_id: Optional[int] = Query(None),
        action: Optional[str] = Query(None),
        resource_type: Optional[str] = Query(None),
        success: Optional[bool] = Query(None),
        start_date: Optional[datetime] = Query(None),
        end_date: Optional[datetime] = Query(None),
        ip_address: Optional[str] = Query(None),
        search: Optional[str] = Query(None),
    ):
        self.values = {
            "actor_id": actor_id,
            "action": action,
            "resource_type": resource_type,
            "success": success,
            "start_date": start_date,
            "end_date": end_date,
            "ip_address": ip_address,
            "search": search,
        }


@router.get("/logs", response_model=AuditLogPage)
async def get_logs(
    filters: AuditFilters = Depends(),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    sort_by: str = Query("timestamp"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    """Query audit logs with filters and pagination."""
    result = audit_service.query_logs(
        db, page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order,
        **filters.values,
    )
    result["logs"] = _out(result["logs"])
    return result


@router.get("/stats")
async def get_stats(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    actor_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    stats = audit_service.get_stats(db, start_date=start_date, end_date=end_date, actor_id=actor_id)
    stats["recent_errors"] = _out(stats["recent_errors"])
    return {"success": True, "stats": stats}


@router.get("/recent")
async def get_recent(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    logs = audit_service.get_recent(db, limit)
    return {"success": True, "count": len(logs), "logs": _out(logs)}


@router.get("/export")
async def export_logs(
    filters: AuditFilters = Depends(),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    """Download matching logs as CSV."""
    content = audit_service.export_csv(db, **filters.values)
    filename = f"audit-logs-{utcnow():%Y%m%d%H%M%S}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/security-alerts")
async def get_security_alerts(
    hours: int = Query(settings.SECURITY_ALERT_HOURS, ge=1, le=24 * 30),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    alerts = audit_service.get_security_alerts(db, hours=hours)
    alerts["errors"]["details"] = _out(alerts["errors"]["details"])
    return {"success": True, "timeframe": f"Last {hours} hours", "alerts": alerts}


@router.get("/user/{user_id}")
async def get_user_activity(
    user_id: int,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    logs = audit_service.get_user_activity(db, user_id, limit)
    return {"success": True, "count": len(logs), "logs": _out(logs)}


@router.get("/timeline/{resource_type}/{resource_id}")
async def get_resource_timeline(
    resource_type: str,
    resource_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    logs = audit_service.get_resource_timeline(db, resource_type, resource_id)
    return {"success": True, "count": len(logs), "timeline": _out(logs)}


@router.delete("/clean")
async def clean_old_logs(
    days: int = Query(settings.AUDIT_RETENTION_DAYS, ge=1),
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Run the retention sweep now (admin only)."""
    deleted = audit_service.clean_old_logs(db, days)
    return {
        "success": True,
        "message": f"Deleted {deleted} logs older than {days} days",
        "deletedCount": deleted,
    }


@router.get("/{log_id}")
async def get_log(
    log_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_audit_logs),
):
    log = audit_service.get_log(db, log_id)
    if log is None:
        raise ResourceNotFoundError("Audit log not found")
    return {"success": True, "log": AuditLogOut.model_validate(log)}
