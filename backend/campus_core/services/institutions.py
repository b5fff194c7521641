import logging
import uuid

import redis
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..cache import Cache, tenant_exists_key
from ..errors import INSTITUTION_CODE_EXISTS, INSTITUTION_NOT_FOUND, AppError
from ..models import Institution, Parent, SchoolClass, Student, Teacher, User, UserProfile, not_deleted
from ..responses import PaginationParams, paginate
from ..schemas import InstitutionCreate, InstitutionStats, InstitutionUpdate
from .common import apply, patch_fields

logger = logging.getLogger(__name__)


def _evict(cache: Cache, institution_id: uuid.UUID) -> None:
    try:
        cache.delete(tenant_exists_key(institution_id))
    except redis.RedisError as exc:
        logger.warning(f"Failed to evict tenant cache for {institution_id}: {exc}")


def _code_taken(db: Session, code: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = db.query(Institution.id).filter(func.upper(Institution.code) == code.upper())
    if exclude_id:
        query = query.filter(Institution.id != exclude_id)
    return query.first() is not None


def create_institution(db: Session, payload: InstitutionCreate) -> Institution:
    code = payload.code.strip().upper()
    if _code_taken(db, code):
        raise AppError(INSTITUTION_CODE_EXISTS)

    institution = Institution(**{**payload.model_dump(), "name": payload.name.strip(), "code": code})
    db.add(institution)
    db.commit()
    db.refresh(institution)
    logger.info(f"Institution {institution.id} ({institution.code}) created")
    return institution


def get_institution(db: Session, institution_id: uuid.UUID) -> Institution:
    institution = not_deleted(db.query(Institution), Institution).filter(Institution.id == institution_id).first()
    if not institution:
        raise AppError(INSTITUTION_NOT_FOUND)
    return institution


def list_institutions(db: Session, params: PaginationParams, *, search: str | None = None, is_active: bool | None = None):
    query = not_deleted(db.query(Institution), Institution)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Institution.name.ilike(pattern), Institution.code.ilike(pattern)))
    if is_active is not None:
        query = query.filter(Institution.is_active.is_(is_active))
    return paginate(query.order_by(Institution.name), params)


def update_institution(db: Session, cache: Cache, institution_id: uuid.UUID, payload: InstitutionUpdate) -> Institution:
    institution = get_institution(db, institution_id)
    values = {name: value for name, value in patch_fields(payload).items() if value is not None}

    if "code" in values:
        values["code"] = values["code"].strip().upper()
        if _code_taken(db, values["code"], exclude_id=institution.id):
            raise AppError(INSTITUTION_CODE_EXISTS)

    apply(institution, values)
    db.commit()
    db.refresh(institution)
    if not institution.is_active:
        _evict(cache, institution.id)
    return institution


def delete_institution(db: Session, cache: Cache, institution_id: uuid.UUID) -> None:
    institution = get_institution(db, institution_id)
    institution.soft_delete()
    institution.is_active = False
    db.commit()
    _evict(cache, institution.id)
    logger.info(f"Institution {institution_id} deleted")


def institution_stats(db: Session, institution_id: uuid.UUID) -> InstitutionStats:
    get_institution(db, institution_id)

    def count(model) -> int:
        return not_deleted(db.query(model), model).filter(model.institution_id == institution_id).count()

    active_users = (
        not_deleted(db.query(User), User)
        .join(UserProfile, UserProfile.user_id == User.id)
        .filter(UserProfile.institution_id == institution_id, User.is_active.is_(True))
        .count()
    )
    return InstitutionStats(
        total_students=count(Student),
        total_teachers=count(Teacher),
        total_parents=count(Parent),
        total_classes=count(SchoolClass),
        active_users=active_users,
    )
