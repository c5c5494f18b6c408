"""Auth API router: login, signup, logout, me."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from church_platform.db.session import get_db
from church_platform.schemas.schemas import (
    LoginRequest, SignupRequest, TokenResponse, MessageResponse,
)
from church_platform.services.auth_service import auth_service, user_summary
from church_platform.core.permissions import Principal
from church_platform.core.security import get_current_principal, load_principal
from church_platform.core.rate_limiter import login_limit, signup_limit

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
@login_limit
async def login(body: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Authenticate and return a JWT access token.

    The audit recorder writes the single login entry; the submitted email
    is left on ``request.state`` so failed attempts still name the account.
    """
    request.state.audit_actor_email = body.email
    result = auth_service.authenticate(db, body.email, body.password)
    request.state.principal = load_principal(db, result["user"]["id"])
    return result


@router.post("/signup", status_code=status.HTTP_201_CREATED)
@signup_limit
async def signup(body: SignupRequest, request: Request, db: Session = Depends(get_db)):
    """Register a new user with the default ``member`` role."""
    request.state.audit_actor_email = body.email
    user = auth_service.create_user(db, body.email, body.password, body.full_name)
    request.state.principal = load_principal(db, user.id)
    return {
        "success": True,
        "message": "Account created",
        "user": user_summary(user),
    }


@router.post("/logout", response_model=MessageResponse)
async def logout(principal: Principal = Depends(get_current_principal)):
    """Tokens are stateless; the client discards its copy."""
    return MessageResponse(message="Logged out successfully")


@router.get("/me")
async def get_me(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Get current user profile with effective permissions."""
    user = auth_service.get_user(db, principal.user_id)
    return {"success": True, "user": user_summary(user)}
