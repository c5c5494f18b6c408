"""Users API router."""

from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from church_platform.db.session import get_db
from church_platform.schemas.schemas import UserUpdateRequest, UserStatusRequest, MessageResponse
from church_platform.services.auth_service import auth_service, user_summary
from church_platform.core.exceptions import ValidationError
from church_platform.core.permissions import Principal
from church_platform.core.security import RequirePermission, require_admin

router = APIRouter(prefix="/users", tags=["users"])

manage_users = RequirePermission("manage:users")


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    role_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_users),
):
    result = auth_service.list_users(db, page, page_size, search=search, role_id=role_id)
    return {
        "success": True,
        "users": [user_summary(u) for u in result["users"]],
        "total": result["total"],
        "page": result["page"],
        "page_size": result["page_size"],
    }


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_users),
):
    return {"success": True, "user": user_summary(auth_service.get_user(db, user_id))}


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    body: UserUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_users),
):
    user = auth_service.update_user(db, user_id, full_name=body.full_name)
    return {"success": True, "user": user_summary(user)}


@router.patch("/{user_id}/status")
async def set_user_status(
    user_id: int,
    body: UserStatusRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Activate or deactivate an account (admin only)."""
    if user_id == principal.user_id and not body.is_active:
        raise ValidationError("You cannot deactivate your own account")
    user = auth_service.set_status(db, user_id, body.is_active)
    return {"success": True, "user": user_summary(user)}


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    if user_id == principal.user_id:
        raise ValidationError("You cannot delete your own account")
    auth_service.delete_user(db, user_id)
    return MessageResponse(message="User deleted")
