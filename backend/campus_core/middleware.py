import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

import redis
from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session

from .cache import Cache, tenant_exists_key
from .database import get_db_session
from .errors import (
    CROSS_TENANT_ACCESS,
    INSTITUTION_ID_REQUIRED,
    INSTITUTION_NOT_FOUND,
    INSUFFICIENT_PERMISSIONS,
    INVALID_UUID,
    RATE_LIMIT_EXCEEDED,
    ROLE_NOT_ALLOWED,
    TOKEN_INVALID,
    TOKEN_MISSING,
    AppError,
)
from .models import Institution, Role, not_deleted
from .permissions import has_all, has_any
from .security import AccessClaims

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Institution-ID"


def _parse_token(auth_header: str | None) -> str:
    if not auth_header:
        raise AppError(TOKEN_MISSING)
    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise AppError(TOKEN_INVALID, "Invalid authorization header format")
    return parts[1].strip()


def get_current_claims(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> AccessClaims:
    token = _parse_token(authorization)
    return request.app.state.tokens.validate_access(token)


# ---------------------------------------------------------------------------
# Tenant resolution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TenantContext:
    claims: AccessClaims | None
    institution_id: uuid.UUID | None


def _parse_institution_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise AppError(INVALID_UUID, "Invalid X-Institution-ID header") from exc


def ensure_institution_exists(db: Session, cache: Cache, institution_id: uuid.UUID, ttl: int) -> None:
    """Confirm the institution is live, consulting the cache before storage.

    Cache failures never fail the request; the lookup falls through to the
    database and the positive answer is cached again when possible.
    """
    key = tenant_exists_key(institution_id)
    try:
        if cache.exists(key):
            return
    except redis.RedisError as exc:
        logger.warning(f"Tenant cache lookup failed for {institution_id}: {exc}")

    found = (
        not_deleted(db.query(Institution.id), Institution)
        .filter(Institution.id == institution_id, Institution.is_active.is_(True))
        .first()
    )
    if not found:
        raise AppError(INSTITUTION_NOT_FOUND)

    try:
        cache.set(key, "1", ttl)
    except redis.RedisError as exc:
        logger.warning(f"Tenant cache write failed for {institution_id}: {exc}")


def resolve_tenant(
    claims: AccessClaims | None,
    header_value: str | None,
    db: Session,
    cache: Cache,
    ttl: int,
) -> TenantContext:
    header_value = (header_value or "").strip()
    token_tenant = claims.institution_id if claims else None

    if token_tenant is not None:
        if not header_value:
            return TenantContext(claims, token_tenant)
        if claims.role != Role.SUPER_ADMIN.value:
            try:
                same = uuid.UUID(header_value) == token_tenant
            except ValueError:
                same = False
            if not same:
                raise AppError(CROSS_TENANT_ACCESS)
            return TenantContext(claims, token_tenant)

        target = _parse_institution_id(header_value)
        if target != token_tenant:
            ensure_institution_exists(db, cache, target, ttl)
            logger.info(f"Super admin {claims.user_id} switching tenant context from {token_tenant} to {target}")
        return TenantContext(claims, target)

    if not header_value:
        return TenantContext(claims, None)

    target = _parse_institution_id(header_value)
    ensure_institution_exists(db, cache, target, ttl)
    return TenantContext(claims, target)


def get_tenant_context(
    request: Request,
    claims: AccessClaims = Depends(get_current_claims),
    x_institution_id: str | None = Header(default=None, alias=TENANT_HEADER),
    db: Session = Depends(get_db_session),
) -> TenantContext:
    state = request.app.state
    return resolve_tenant(claims, x_institution_id, db, state.cache, state.settings.tenant_cache_ttl_seconds)


def require_tenant(ctx: TenantContext = Depends(get_tenant_context)) -> uuid.UUID:
    if ctx.institution_id is None:
        raise AppError(INSTITUTION_ID_REQUIRED)
    return ctx.institution_id


# ---------------------------------------------------------------------------
# Role and permission gates
# ---------------------------------------------------------------------------


def require_roles(*allowed_roles: Role) -> Callable:
    allowed = {role.value for role in allowed_roles}

    def dependency(claims: AccessClaims = Depends(get_current_claims)) -> AccessClaims:
        if not claims.role:
            raise AppError(TOKEN_MISSING)
        if claims.role == Role.SUPER_ADMIN.value:
            return claims
        if claims.role not in allowed:
            raise AppError(ROLE_NOT_ALLOWED)
        return claims

    return dependency


def require_permissions(*required: str) -> Callable:
    def dependency(claims: AccessClaims = Depends(get_current_claims)) -> AccessClaims:
        if not has_all(claims.permissions, required):
            raise AppError(INSUFFICIENT_PERMISSIONS)
        return claims

    return dependency


def require_any_permission(*required: str) -> Callable:
    def dependency(claims: AccessClaims = Depends(get_current_claims)) -> AccessClaims:
        if not has_any(claims.permissions, required):
            raise AppError(INSUFFICIENT_PERMISSIONS)
        return claims

    return dependency


require_admin = require_roles(Role.ADMIN)
require_super_admin = require_roles(Role.SUPER_ADMIN)


# ---------------------------------------------------------------------------
# Rate limiting and request logging
# ---------------------------------------------------------------------------


class RateLimiter:
    """Fixed-window request counter keyed by client IP.

    ``scope="auth"`` uses the tighter login/reset budget from settings; any
    other scope uses the global one. A limit of zero disables the check.
    """

    def __init__(self, scope: str = "global") -> None:
        self.scope = scope

    def _budget(self, request: Request) -> tuple[int, int]:
        settings = request.app.state.settings
        if self.scope == "auth":
            return settings.auth_rate_limit_requests, settings.auth_rate_limit_window_seconds
        return settings.rate_limit_requests, settings.rate_limit_window_seconds

    def __call__(self, request: Request, response: Response) -> None:
        limit, window = self._budget(request)
        if limit <= 0:
            return

        client_ip = request.client.host if request.client else "unknown"
        key = f"ratelimit:{self.scope}:{client_ip}"
        try:
            count = request.app.state.cache.incr(key, window)
        except redis.RedisError as exc:
            logger.error(f"Rate limit check failed: {exc}")
            return

        if count > limit:
            raise AppError(
                RATE_LIMIT_EXCEEDED,
                headers={
                    "Retry-After": str(window),
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                },
            )
        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(max(limit - count, 0))


async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request_id
    log = logger.warning if response.status_code >= 400 else logger.info
    log(f"{request.method} {request.url.path} {response.status_code} {latency_ms:.1f}ms request_id={request_id}")
    return response
