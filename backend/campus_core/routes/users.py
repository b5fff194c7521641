import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import get_current_claims
from ..models import Role
from ..responses import APIResponse, PaginatedResponse, PaginationParams, ok, page_of
from ..schemas import ProfileUpdate, UserOut, UserStatusUpdate, UserUpdate
from ..security import AccessClaims
from ..services import auth as auth_service
from ..services import users as user_service
from ..services.common import Actor
from .deps import get_admin_actor

router = APIRouter(prefix="/api/v1/users", tags=["Users"])
profile_router = APIRouter(prefix="/api/v1/profile", tags=["Profile"])


@router.get("", response_model=PaginatedResponse[UserOut])
def list_users(
    params: PaginationParams = Depends(),
    role: Role | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    users, pagination = user_service.list_users(db, actor, params, role=role, is_active=is_active, search=search)
    return page_of([UserOut.model_validate(user) for user in users], pagination)


@router.get("/{user_id}", response_model=APIResponse[UserOut])
def get_user(user_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_admin_actor)):
    return ok(UserOut.model_validate(user_service.get_user(db, actor, user_id)))


@router.put("/{user_id}", response_model=APIResponse[UserOut])
def update_user(
    user_id: uuid.UUID,
    payload: UserUpdate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    user = user_service.update_user(db, actor, user_id, payload)
    return ok(UserOut.model_validate(user), "User updated successfully")


@router.patch("/{user_id}/status", response_model=APIResponse[UserOut])
def set_user_status(
    user_id: uuid.UUID,
    payload: UserStatusUpdate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    user = user_service.set_user_status(db, actor, user_id, payload.is_active)
    state = "activated" if user.is_active else "deactivated"
    return ok(UserOut.model_validate(user), f"User {state} successfully")


@router.delete("/{user_id}", response_model=APIResponse[None])
def delete_user(user_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_admin_actor)):
    user_service.delete_user(db, actor, user_id)
    return ok(message="User deleted successfully")


@profile_router.get("", response_model=APIResponse[UserOut])
def get_profile(claims: AccessClaims = Depends(get_current_claims), db: Session = Depends(get_db_session)):
    return ok(UserOut.model_validate(auth_service.current_user(db, claims.user_id)))


@profile_router.put("", response_model=APIResponse[UserOut])
def update_profile(
    payload: ProfileUpdate,
    claims: AccessClaims = Depends(get_current_claims),
    db: Session = Depends(get_db_session),
):
    user = user_service.update_profile(db, claims.user_id, payload)
    return ok(UserOut.model_validate(user), "Profile updated successfully")
