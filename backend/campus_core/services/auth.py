import logging
import uuid
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    ACCOUNT_DISABLED,
    INVALID_CREDENTIALS,
    REFRESH_TOKEN_INVALID,
    RESET_TOKEN_EXPIRED,
    RESET_TOKEN_INVALID,
    USER_NOT_FOUND,
    AppError,
)
from ..models import User, not_deleted, utcnow
from ..permissions import permissions_for
from ..schemas import LoginOut, TokenOut, UserOut
from ..security import TokenManager, hash_password, verify_password

logger = logging.getLogger(__name__)


def _get_live_user(db: Session, user_id: uuid.UUID) -> User | None:
    return not_deleted(db.query(User), User).filter(User.id == user_id).first()


def _issue_pair(tokens: TokenManager, user: User) -> tuple[str, str, datetime]:
    access_token, expires_at = tokens.issue_access(user, permissions_for(user.role))
    refresh_token, _ = tokens.issue_refresh(user)
    return access_token, refresh_token, expires_at


def login(db: Session, tokens: TokenManager, *, email: str | None = None, phone: str | None = None, password: str) -> LoginOut:
    query = not_deleted(db.query(User), User)
    if email:
        user = query.filter(User.email == email).first()
    else:
        user = query.filter(User.phone == phone).first()

    if not user:
        logger.warning(f"Login failed for {email or phone}: user not found")
        raise AppError(INVALID_CREDENTIALS)
    if not user.is_active:
        logger.warning(f"Login refused for disabled user {user.id}")
        raise AppError(ACCOUNT_DISABLED)
    if not verify_password(password, user.password_hash):
        logger.warning(f"Login failed for user {user.id}: invalid password")
        raise AppError(INVALID_CREDENTIALS)

    access_token, refresh_token, expires_at = _issue_pair(tokens, user)

    user.refresh_token = refresh_token
    user.last_login_at = utcnow()
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Failed to save login state for user {user.id}: {exc}")

    logger.info(f"Login successful for user {user.id}")
    return LoginOut(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        user=UserOut.model_validate(user),
    )


def refresh(db: Session, tokens: TokenManager, refresh_token: str) -> TokenOut:
    user_id = tokens.validate_refresh(refresh_token)
    user = _get_live_user(db, user_id)
    if not user:
        raise AppError(INVALID_CREDENTIALS)
    if user.refresh_token != refresh_token:
        raise AppError(REFRESH_TOKEN_INVALID)
    if not user.is_active:
        raise AppError(ACCOUNT_DISABLED)

    access_token, new_refresh_token, expires_at = _issue_pair(tokens, user)
    user.refresh_token = new_refresh_token
    db.commit()
    return TokenOut(access_token=access_token, refresh_token=new_refresh_token, expires_at=expires_at)


def logout(db: Session, user_id: uuid.UUID) -> None:
    user = _get_live_user(db, user_id)
    if not user:
        return
    user.refresh_token = None
    db.commit()
    logger.info(f"User {user_id} logged out")


def forgot_password(db: Session, tokens: TokenManager, email: str) -> None:
    user = not_deleted(db.query(User), User).filter(User.email == email).first()
    if not user:
        # Unknown addresses get the same answer as known ones.
        return

    reset_token, expires_at = tokens.issue_reset(user)
    user.reset_token = reset_token
    user.reset_token_expires_at = expires_at.replace(tzinfo=None)
    db.commit()
    logger.info(f"Password reset token issued for user {user.id}")
    logger.debug(f"Reset token for {user.email}: {reset_token}")


def reset_password(db: Session, tokens: TokenManager, token: str, new_password: str) -> None:
    user_id = tokens.validate_reset(token)
    user = not_deleted(db.query(User), User).filter(User.reset_token == token).first()
    if not user or user.id != user_id:
        raise AppError(RESET_TOKEN_INVALID)
    if user.reset_token_expires_at and user.reset_token_expires_at < utcnow():
        raise AppError(RESET_TOKEN_EXPIRED)

    user.password_hash = hash_password(new_password)
    user.reset_token = None
    user.reset_token_expires_at = None
    user.refresh_token = None
    db.commit()
    logger.info(f"Password reset completed for user {user.id}")


def change_password(db: Session, user_id: uuid.UUID, old_password: str, new_password: str) -> None:
    user = _get_live_user(db, user_id)
    if not user:
        raise AppError(USER_NOT_FOUND)
    if not verify_password(old_password, user.password_hash):
        raise AppError(INVALID_CREDENTIALS, "Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info(f"Password changed for user {user.id}")


def current_user(db: Session, user_id: uuid.UUID) -> User:
    user = _get_live_user(db, user_id)
    if not user:
        raise AppError(USER_NOT_FOUND)
    return user
