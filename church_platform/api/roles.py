"""Roles API router: role CRUD and assignment."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from church_platform.db.session import get_db
from church_platform.schemas.schemas import (
    RoleCreate, RoleUpdate, RoleOut, AssignRoleRequest, BulkAssignRequest, MessageResponse,
)
from church_platform.services.role_service import role_service
from church_platform.services.auth_service import auth_service, user_summary
from church_platform.services.audit_service import audit_service
from church_platform.core.permissions import PERMISSION_VOCABULARY, Principal, group_permissions
from church_platform.core.security import RequirePermission, require_admin

router = APIRouter(prefix="/roles", tags=["roles"])

manage_roles = RequirePermission("manage:roles")
manage_roles_or_users = RequirePermission("manage:roles", "manage:users")


def _role_out(role) -> dict:
    return RoleOut.model_validate(role).model_dump()


@router.get("/permissions/list")
async def list_permissions(principal: Principal = Depends(manage_roles)):
    """Permission vocabulary for role-editing screens."""
    return {
        "success": True,
        "permissions": {"all": list(PERMISSION_VOCABULARY), "grouped": group_permissions()},
    }


@router.get("")
async def list_roles(
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_roles),
):
    roles = role_service.list_roles(db)
    return {"success": True, "count": len(roles), "roles": [_role_out(r) for r in roles]}


@router.get("/user/{user_id}")
async def get_user_with_role(
    user_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_roles_or_users),
):
    return {"success": True, "user": user_summary(auth_service.get_user(db, user_id))}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    role = role_service.create_role(db, body.name, body.description, body.permissions)
    return {"success": True, "message": "Role created successfully", "role": _role_out(role)}


@router.patch("/assign-user")
async def assign_role(
    body: AssignRoleRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    """Assign a role to one user; effective on that user's next request."""
    user, previous = role_service.assign_role(db, body.user_id, body.role_id)
    audit_service.log_from_request(
        db, request, principal,
        action="user.role.change",
        resource_type="user",
        resource_id=user.id,
        resource_name=user.full_name,
        old_value={"role": previous},
        new_value={"role": user.role.name},
    )
    return {"success": True, "message": "Role assigned successfully", "user": user_summary(user)}


@router.post("/bulk-assign")
async def bulk_assign_role(
    body: BulkAssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    modified = role_service.bulk_assign(db, body.user_ids, body.role_id)
    role = role_service.get_role(db, body.role_id)
    audit_service.log_from_request(
        db, request, principal,
        action="user.bulk.update",
        resource_type="user",
        new_value={"role": role.name, "user_ids": body.user_ids},
        metadata={"modified_count": modified},
    )
    return {
        "success": True,
        "message": f"Role assigned to {modified} user(s)",
        "modifiedCount": modified,
    }


@router.get("/{role_id}/members")
async def list_role_members(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_roles_or_users),
):
    users = role_service.users_by_role(db, role_id)
    return {"success": True, "count": len(users), "users": [user_summary(u) for u in users]}


@router.get("/{role_id}")
async def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(manage_roles),
):
    return {"success": True, "role": _role_out(role_service.get_role(db, role_id))}


@router.patch("/{role_id}")
async def update_role(
    role_id: int,
    body: RoleUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    role = role_service.update_role(
        db, role_id,
        description=body.description,
        permissions=body.permissions,
        name=body.name,
    )
    return {"success": True, "message": "Role updated successfully", "role": _role_out(role)}


@router.delete("/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_admin),
):
    role_service.delete_role(db, role_id)
    return MessageResponse(message="Role deleted successfully")
