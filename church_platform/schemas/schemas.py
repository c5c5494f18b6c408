"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Auth ----
class LoginRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=4)

class SignupRequest(BaseModel):
    email: str = Field(..., min_length=4)
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=1)

class TokenResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None


# ---- User ----
class UserUpdateRequest(BaseModel):
    full_name: Optional[str] = None

class UserStatusRequest(BaseModel):
    is_active: bool


# ---- Role ----
class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    permissions: List[str] = []

class RoleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[List[str]] = None

class RoleOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    permissions: List[str] = []
    is_system_role: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AssignRoleRequest(BaseModel):
    user_id: int
    role_id: int

class BulkAssignRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    role_id: int


# ---- Audit ----
class AuditLogOut(BaseModel):
    id: int
    actor_id: Optional[int] = None
    actor_email: Optional[str] = None
    actor_name: Optional[str] = None
    actor_role: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    method: str
    endpoint: str
    status_code: int
    success: bool
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_metadata: Dict[str, Any] = {}
    changes: Dict[str, Any] = {}
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    duration_ms: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class AuditLogPage(BaseModel):
    success: bool = True
    logs: List[AuditLogOut]
    total: int
    page: int
    page_size: int
    pages: int


# ---- Transaction audit ----
class TransactionAuditLogOut(BaseModel):
    id: int
    transaction_id: Optional[str] = None
    transaction_type: str
    user_id: str
    user_email: Optional[str] = None
    campaign_id: Optional[str] = None
    pledge_id: Optional[str] = None
    payment_id: Optional[str] = None
    amount: float
    currency: str
    payment_method: str
    mpesa_receipt_number: Optional[str] = None
    status: str
    status_reason: Optional[str] = None
    action: str
    error: Optional[str] = None
    error_code: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TransactionAuditLogPage(BaseModel):
    success: bool = True
    logs: List[TransactionAuditLogOut]
    total: int
    page: int
    page_size: int
    pages: int


# ---- Generic ----
class MessageResponse(BaseModel):
    success: bool = True
    message: str
    detail: Optional[Any] = None
