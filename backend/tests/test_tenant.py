"""Tenant resolution from token claims and the X-Institution-ID header."""
import uuid

import pytest
import redis

from campus_core.cache import MemoryCache, tenant_exists_key
from campus_core.errors import AppError
from campus_core.middleware import ensure_institution_exists, resolve_tenant
from campus_core.models import Role
from campus_core.security import AccessClaims


def _claims(role: Role, institution_id=None) -> AccessClaims:
    return AccessClaims(user_id=uuid.uuid4(), email=None, role=role.value, institution_id=institution_id)


class BrokenCache(MemoryCache):
    def exists(self, key):
        raise redis.ConnectionError("cache down")

    def set(self, key, value, ttl=None):
        raise redis.ConnectionError("cache down")


def test_token_tenant_used_when_header_absent(db, school):
    ctx = resolve_tenant(_claims(Role.TEACHER, school), None, db, MemoryCache(), 60)
    assert ctx.institution_id == school


def test_matching_header_is_accepted(db, school):
    ctx = resolve_tenant(_claims(Role.ADMIN, school), str(school), db, MemoryCache(), 60)
    assert ctx.institution_id == school


def test_mismatched_header_rejected_for_regular_user(db, school, other_school):
    with pytest.raises(AppError) as exc:
        resolve_tenant(_claims(Role.ADMIN, school), str(other_school), db, MemoryCache(), 60)
    assert exc.value.code == "AUTHZ_005"


def test_malformed_header_rejected_for_regular_user(db, school):
    with pytest.raises(AppError) as exc:
        resolve_tenant(_claims(Role.TEACHER, school), "not-a-uuid", db, MemoryCache(), 60)
    assert exc.value.code == "AUTHZ_005"


def test_super_admin_may_switch_tenant(db, school, other_school):
    ctx = resolve_tenant(_claims(Role.SUPER_ADMIN, school), str(other_school), db, MemoryCache(), 60)
    assert ctx.institution_id == other_school


def test_super_admin_switch_to_unknown_tenant_fails(db, school):
    with pytest.raises(AppError) as exc:
        resolve_tenant(_claims(Role.SUPER_ADMIN, school), str(uuid.uuid4()), db, MemoryCache(), 60)
    assert exc.value.code == "INST_001"


def test_header_only_tenant_is_validated_and_cached(db, school):
    cache = MemoryCache()
    ctx = resolve_tenant(_claims(Role.SUPER_ADMIN), str(school), db, cache, 60)

    assert ctx.institution_id == school
    assert cache.exists(tenant_exists_key(school))


def test_header_only_tenant_must_be_a_uuid(db):
    with pytest.raises(AppError) as exc:
        resolve_tenant(_claims(Role.SUPER_ADMIN), "abc", db, MemoryCache(), 60)
    assert exc.value.code == "VAL_009"


def test_no_token_tenant_and_no_header_gives_no_tenant(db):
    ctx = resolve_tenant(_claims(Role.SUPER_ADMIN), None, db, MemoryCache(), 60)
    assert ctx.institution_id is None


def test_inactive_institution_is_not_found(db, factory):
    closed = factory.institution(is_active=False)
    with pytest.raises(AppError) as exc:
        ensure_institution_exists(db, MemoryCache(), closed, 60)
    assert exc.value.code == "INST_001"


def test_cached_tenant_skips_storage(db):
    cache = MemoryCache()
    phantom = uuid.uuid4()
    cache.set(tenant_exists_key(phantom), "1", 60)

    ensure_institution_exists(db, cache, phantom, 60)


def test_cache_failure_falls_through_to_storage(db, school):
    ensure_institution_exists(db, BrokenCache(), school, 60)

    with pytest.raises(AppError) as exc:
        ensure_institution_exists(db, BrokenCache(), uuid.uuid4(), 60)
    assert exc.value.code == "INST_001"


def test_tenant_scoped_route_requires_a_tenant(client, super_admin):
    response = client.get("/api/v1/classes", headers=super_admin.headers)

    assert response.status_code == 400
    assert response.json()["code"] == "INST_004"


def test_cross_tenant_header_rejected_over_http(client, admin, other_school):
    headers = {**admin.headers, "X-Institution-ID": str(other_school)}
    response = client.get("/api/v1/classes", headers=headers)

    assert response.status_code == 403
    assert response.json() == {"success": False, "error": "Cross-tenant access denied", "code": "AUTHZ_005"}


def test_super_admin_reads_any_tenant_via_header(client, factory, super_admin, other_school):
    other_admin = factory.account(Role.ADMIN, other_school)
    client.post("/api/v1/classes", json={"name": "Grade 1"}, headers=other_admin.headers)

    headers = {**super_admin.headers, "X-Institution-ID": str(other_school)}
    response = client.get("/api/v1/classes", headers=headers)

    assert response.status_code == 200
    assert [item["name"] for item in response.json()["data"]] == ["Grade 1"]


def test_missing_token_is_rejected(client):
    response = client.get("/api/v1/classes")

    assert response.status_code == 401
    assert response.json()["code"] == "AUTH_004"
