import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
import jwt

from .config import Settings
from .errors import (
    REFRESH_TOKEN_EXPIRED,
    REFRESH_TOKEN_INVALID,
    RESET_TOKEN_EXPIRED,
    RESET_TOKEN_INVALID,
    TOKEN_EXPIRED,
    TOKEN_INVALID,
    AppError,
)

ACCESS = "access"
REFRESH = "refresh"
RESET = "reset"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


@dataclass(frozen=True)
class AccessClaims:
    user_id: uuid.UUID
    email: str | None
    role: str
    institution_id: uuid.UUID | None
    permissions: frozenset[str] = field(default_factory=frozenset)
    expires_at: datetime | None = None


class TokenManager:
    """Signs and verifies the three token kinds.

    Access and refresh tokens share the service issuer and are told apart by
    their ``typ`` claim. Reset tokens use a separate issuer so that no reset
    token can ever pass as a session token, and the other way round.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        issuer: str = "campus-core",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        reset_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self.secret = secret
        self.algorithm = algorithm
        self.issuer = issuer
        self.reset_issuer = f"{issuer}-reset"
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.reset_ttl = reset_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenManager":
        return cls(
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            issuer=settings.jwt_issuer,
            access_ttl=timedelta(minutes=settings.jwt_access_exp_minutes),
            refresh_ttl=timedelta(minutes=settings.jwt_refresh_exp_minutes),
            reset_ttl=timedelta(minutes=settings.jwt_reset_exp_minutes),
        )

    def _encode(self, payload: dict[str, Any], ttl: timedelta) -> tuple[str, datetime]:
        now = datetime.now(timezone.utc)
        expires_at = now + ttl
        payload = {**payload, "iat": int(now.timestamp()), "exp": int(expires_at.timestamp())}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm), expires_at

    def _decode(self, token: str, issuer: str) -> dict[str, Any]:
        return jwt.decode(
            token,
            self.secret,
            algorithms=[self.algorithm],
            issuer=issuer,
            options={"require": ["sub", "exp", "iss"]},
        )

    def issue_access(self, user, permissions) -> tuple[str, datetime]:
        institution_id = user.institution_id
        return self._encode(
            {
                "sub": str(user.id),
                "user_id": str(user.id),
                "email": user.email,
                "role": user.role.value,
                "institution_id": str(institution_id) if institution_id else None,
                "permissions": sorted(permissions),
                "iss": self.issuer,
                "typ": ACCESS,
            },
            self.access_ttl,
        )

    def issue_refresh(self, user) -> tuple[str, datetime]:
        return self._encode(
            {"sub": str(user.id), "jti": str(uuid.uuid4()), "iss": self.issuer, "typ": REFRESH},
            self.refresh_ttl,
        )

    def issue_reset(self, user) -> tuple[str, datetime]:
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "jti": str(uuid.uuid4()),
                "iss": self.reset_issuer,
                "typ": RESET,
            },
            self.reset_ttl,
        )

    def validate_access(self, token: str) -> AccessClaims:
        try:
            payload = self._decode(token, self.issuer)
            if payload.get("typ") != ACCESS or "role" not in payload:
                raise AppError(TOKEN_INVALID)
            institution_id = payload.get("institution_id")
            return AccessClaims(
                user_id=uuid.UUID(payload["user_id"]),
                email=payload.get("email"),
                role=payload["role"],
                institution_id=uuid.UUID(institution_id) if institution_id else None,
                permissions=frozenset(payload.get("permissions") or ()),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except jwt.ExpiredSignatureError as exc:
            raise AppError(TOKEN_EXPIRED) from exc
        except (jwt.InvalidTokenError, KeyError, ValueError) as exc:
            raise AppError(TOKEN_INVALID) from exc

    def validate_refresh(self, token: str) -> uuid.UUID:
        try:
            payload = self._decode(token, self.issuer)
            if payload.get("typ") != REFRESH:
                raise AppError(REFRESH_TOKEN_INVALID)
            return uuid.UUID(payload["sub"])
        except jwt.ExpiredSignatureError as exc:
            raise AppError(REFRESH_TOKEN_EXPIRED) from exc
        except (jwt.InvalidTokenError, ValueError) as exc:
            raise AppError(REFRESH_TOKEN_INVALID) from exc

    def validate_reset(self, token: str) -> uuid.UUID:
        try:
            payload = self._decode(token, self.reset_issuer)
            return uuid.UUID(payload["sub"])
        except jwt.ExpiredSignatureError as exc:
            raise AppError(RESET_TOKEN_EXPIRED) from exc
        except (jwt.InvalidTokenError, ValueError) as exc:
            raise AppError(RESET_TOKEN_INVALID) from exc
