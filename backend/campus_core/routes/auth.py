from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import RateLimiter, get_current_claims
from ..responses import APIResponse, ok
from ..schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginOut,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenOut,
    UserOut,
)
from ..security import AccessClaims, TokenManager
from ..services import auth as auth_service
from ..services import users as user_service
from ..services.common import Actor
from .deps import get_admin_actor, get_tokens

router = APIRouter(prefix="/api/v1/auth", tags=["Auth"])

auth_rate_limit = RateLimiter("auth")

FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent"


@router.post("/login", response_model=APIResponse[LoginOut], dependencies=[Depends(auth_rate_limit)])
def login(payload: LoginRequest, db: Session = Depends(get_db_session), tokens: TokenManager = Depends(get_tokens)):
    result = auth_service.login(db, tokens, email=payload.email, phone=payload.phone, password=payload.password)
    return ok(result, "Login successful")


@router.post("/refresh-token", response_model=APIResponse[TokenOut])
def refresh_token(
    payload: RefreshTokenRequest,
    db: Session = Depends(get_db_session),
    tokens: TokenManager = Depends(get_tokens),
):
    return ok(auth_service.refresh(db, tokens, payload.refresh_token), "Token refreshed")


@router.post("/forgot-password", response_model=APIResponse[None], dependencies=[Depends(auth_rate_limit)])
def forgot_password(
    payload: ForgotPasswordRequest,
    db: Session = Depends(get_db_session),
    tokens: TokenManager = Depends(get_tokens),
):
    auth_service.forgot_password(db, tokens, payload.email)
    return ok(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=APIResponse[None], dependencies=[Depends(auth_rate_limit)])
def reset_password(
    payload: ResetPasswordRequest,
    db: Session = Depends(get_db_session),
    tokens: TokenManager = Depends(get_tokens),
):
    auth_service.reset_password(db, tokens, payload.token, payload.new_password)
    return ok(message="Password reset successfully")


@router.post("/register", response_model=APIResponse[UserOut], status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    created = user_service.create_user(db, actor=actor, payload=payload, role=payload.role)
    user = getattr(created, "user", created)
    return ok(UserOut.model_validate(user), "User registered successfully")


@router.post("/logout", response_model=APIResponse[None])
def logout(claims: AccessClaims = Depends(get_current_claims), db: Session = Depends(get_db_session)):
    auth_service.logout(db, claims.user_id)
    return ok(message="Logged out successfully")


@router.post("/change-password", response_model=APIResponse[None])
def change_password(
    payload: ChangePasswordRequest,
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db_session),
):
    auth_service.change_password(db, claims.user_id, payload.old_password, payload.new_password)
    return ok(message="Password changed successfully")


@router.get("/me", response_model=APIResponse[UserOut])
def me(claims: AccessClaims = Depends(get_current_claims), db: Session = Depends(get_db_session)):
    return ok(UserOut.model_validate(auth_service.current_user(db, claims.user_id)))
