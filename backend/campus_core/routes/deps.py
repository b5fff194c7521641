from fastapi import Depends, Request

from ..cache import Cache
from ..middleware import TenantContext, get_tenant_context, require_admin
from ..security import AccessClaims, TokenManager
from ..services.common import Actor


def get_tokens(request: Request) -> TokenManager:
    return request.app.state.tokens


def get_cache(request: Request) -> Cache:
    return request.app.state.cache


def get_actor(ctx: TenantContext = Depends(get_tenant_context)) -> Actor:
    return Actor.from_context(ctx)


def get_admin_actor(
    _: AccessClaims = Depends(require_admin),
    ctx: TenantContext = Depends(get_tenant_context),
) -> Actor:
    return Actor.from_context(ctx)
