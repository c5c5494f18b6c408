"""Transaction audit API router: financial audit trail for the finance team."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from church_platform.core.exceptions import ResourceNotFoundError
from church_platform.core.permissions import Principal
from church_platform.core.security import RequirePermission
from church_platform.db.base import utcnow
from church_platform.db.session import get_db
from church_platform.schemas.schemas import TransactionAuditLogOut, TransactionAuditLogPage
from church_platform.services.transaction_audit_service import transaction_audit_service

router = APIRouter(prefix="/transaction-audit", tags=["transaction-audit"])

view_donation_reports = RequirePermission("view:donation:reports", "manage:donations")


def _out(logs) -> list:
    return [TransactionAuditLogOut.model_validate(log) for log in logs]


@router.get("", response_model=TransactionAuditLogPage)
async def list_transaction_logs(
    transaction_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_donation_reports),
):
    result = transaction_audit_service.query_logs(
        db, page=page, page_size=page_size,
        transaction_type=transaction_type, status=status, user_id=user_id,
        start_date=start_date, end_date=end_date, search=search,
    )
    result["logs"] = _out(result["logs"])
    return result


@router.get("/stats")
async def get_transaction_stats(
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_donation_reports),
):
    stats = transaction_audit_service.get_stats(db)
    stats["recent_errors"] = _out(stats["recent_errors"])
    return {"success": True, "stats": stats}


@router.get("/export")
async def export_transaction_logs(
    transaction_type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_donation_reports),
):
    content = transaction_audit_service.export_csv(
        db, transaction_type=transaction_type, status=status,
        start_date=start_date, end_date=end_date,
    )
    filename = f"transaction-audit-{utcnow():%Y%m%d%H%M%S}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/transaction/{transaction_id}")
async def get_by_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_donation_reports),
):
    logs = transaction_audit_service.get_by_transaction(db, transaction_id)
    return {"success": True, "count": len(logs), "logs": _out(logs)}


@router.get("/user/{user_id}")
async def get_by_user(
    user_id: str,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_donation_reports),
):
    logs = transaction_audit_service.get_by_user(db, user_id, limit)
    return {"success": True, "count": len(logs), "logs": _out(logs)}


@router.get("/{log_id}")
async def get_transaction_log(
    log_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(view_donation_reports),
):
    log = transaction_audit_service.get_log(db, log_id)
    if log is None:
        raise ResourceNotFoundError("Transaction audit log not found")
    return {"success": True, "log": TransactionAuditLogOut.model_validate(log)}
