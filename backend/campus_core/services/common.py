import uuid
from dataclasses import dataclass

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..errors import CROSS_TENANT_ACCESS, INSTITUTION_ID_REQUIRED, AppError, not_found
from ..models import Role, not_deleted


@dataclass(frozen=True)
class Actor:
    """Who is calling, and on behalf of which tenant."""

    user_id: uuid.UUID
    role: Role
    institution_id: uuid.UUID | None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @classmethod
    def from_context(cls, ctx) -> "Actor":
        return cls(user_id=ctx.claims.user_id, role=Role(ctx.claims.role), institution_id=ctx.institution_id)

    def require_tenant(self) -> uuid.UUID:
        if self.institution_id is None:
            raise AppError(INSTITUTION_ID_REQUIRED)
        return self.institution_id


def ensure_same_tenant(actor: Actor, institution_id: uuid.UUID | None) -> None:
    """Reject records outside the active tenant.

    Only a super admin without an active tenant sees across institutions.
    """
    if actor.is_super_admin and actor.institution_id is None:
        return
    if institution_id is None or institution_id != actor.institution_id:
        raise AppError(CROSS_TENANT_ACCESS)


def get_in_tenant(db: Session, model, record_id: uuid.UUID, institution_id: uuid.UUID, label: str):
    """Fetch a live tenant-owned row; rows of other tenants look missing."""
    record = (
        not_deleted(db.query(model), model)
        .filter(model.id == record_id, model.institution_id == institution_id)
        .first()
    )
    if not record:
        raise not_found(label)
    return record


def patch_fields(payload: BaseModel, *, exclude: set[str] | None = None) -> dict:
    return payload.model_dump(exclude_unset=True, exclude=exclude or set())


def apply(record, values: dict) -> None:
    for name, value in values.items():
        setattr(record, name, value)
