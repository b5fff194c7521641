"""Account lifecycle: users, their profiles and per-role records.

A user always has exactly one profile; TEACHER, STUDENT, PARENT and
ACCOUNTANT users also own one role record in the same tenant. All three are
written in a single transaction.
"""
import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    ACTION_NOT_PERMITTED,
    CANNOT_DELETE_SELF,
    DATABASE_ERROR,
    EMAIL_ALREADY_EXISTS,
    INSTITUTION_ID_REQUIRED,
    INSTITUTION_NOT_FOUND,
    INVALID_FIELD_FORMAT,
    INVALID_PARENT_STUDENT_LINK,
    PHONE_ALREADY_EXISTS,
    USER_NOT_FOUND,
    AppError,
    already_exists,
    not_found,
)
from ..models import (
    Accountant,
    Department,
    Institution,
    Parent,
    ParentStudentRelation,
    Role,
    SchoolClass,
    Section,
    Student,
    Teacher,
    User,
    UserProfile,
    not_deleted,
)
from ..responses import PaginationParams, paginate
from ..schemas import ProfileUpdate, UserCreateBase, UserUpdate
from ..security import hash_password
from .common import Actor, apply, ensure_same_tenant, get_in_tenant, patch_fields

logger = logging.getLogger(__name__)

ROLE_MODELS = {
    Role.TEACHER: Teacher,
    Role.STUDENT: Student,
    Role.PARENT: Parent,
    Role.ACCOUNTANT: Accountant,
}

USER_FIELDS = {"email", "phone", "is_active"}
PROFILE_FIELDS = {"first_name", "last_name"}


def _ensure_unique_contact(db: Session, *, email: str | None, phone: str | None, exclude_id: uuid.UUID | None = None) -> None:
    # Deleted accounts keep their address reserved.
    if email:
        query = db.query(User.id).filter(User.email == email)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise AppError(EMAIL_ALREADY_EXISTS)
    if phone:
        query = not_deleted(db.query(User.id), User).filter(User.phone == phone)
        if exclude_id:
            query = query.filter(User.id != exclude_id)
        if query.first():
            raise AppError(PHONE_ALREADY_EXISTS)


def _resolve_target_institution(db: Session, actor: Actor, requested: uuid.UUID | None, role: Role) -> uuid.UUID | None:
    if not actor.is_super_admin:
        if role == Role.SUPER_ADMIN:
            raise AppError(ACTION_NOT_PERMITTED, "Only a super admin can create super admin accounts")
        if requested is not None and requested != actor.institution_id:
            raise AppError(ACTION_NOT_PERMITTED, "Cannot create users in another institution")

    if role == Role.SUPER_ADMIN:
        target = requested
    else:
        target = requested or actor.institution_id
        if target is None:
            raise AppError(INSTITUTION_ID_REQUIRED, "institution_id is required")

    if target is not None:
        exists = (
            not_deleted(db.query(Institution.id), Institution).filter(Institution.id == target).first()
        )
        if not exists:
            raise AppError(INSTITUTION_NOT_FOUND)
    return target


def _check_role_references(db: Session, institution_id: uuid.UUID, values: dict) -> None:
    department_id = values.get("department_id")
    if department_id:
        get_in_tenant(db, Department, department_id, institution_id, "Department")

    class_id = values.get("class_id")
    if class_id:
        get_in_tenant(db, SchoolClass, class_id, institution_id, "Class")

    section_id = values.get("section_id")
    if section_id:
        section = not_deleted(db.query(Section), Section).filter(Section.id == section_id).first()
        if not section or section.school_class.institution_id != institution_id:
            raise not_found("Section")
        if class_id and section.class_id != class_id:
            raise AppError(INVALID_FIELD_FORMAT, "Section does not belong to the given class")


def _build_role_record(role: Role, user: User, institution_id: uuid.UUID, payload: UserCreateBase):
    if role == Role.TEACHER:
        return Teacher(
            institution_id=institution_id,
            user_id=user.id,
            qualifications=list(getattr(payload, "qualifications", None) or []),
            joining_date=getattr(payload, "joining_date", None),
            department_id=getattr(payload, "department_id", None),
        )
    if role == Role.STUDENT:
        return Student(
            institution_id=institution_id,
            user_id=user.id,
            class_id=getattr(payload, "class_id", None),
            section_id=getattr(payload, "section_id", None),
            roll_number=getattr(payload, "roll_number", None),
            admission_date=getattr(payload, "admission_date", None),
            blood_group=getattr(payload, "blood_group", None),
            medical_info=getattr(payload, "medical_info", None),
        )
    if role == Role.PARENT:
        return Parent(
            institution_id=institution_id,
            user_id=user.id,
            occupation=getattr(payload, "occupation", None),
            office_address=getattr(payload, "office_address", None),
            emergency_contact=getattr(payload, "emergency_contact", None),
        )
    if role == Role.ACCOUNTANT:
        return Accountant(
            institution_id=institution_id,
            user_id=user.id,
            qualification=getattr(payload, "qualification", None),
            joining_date=getattr(payload, "joining_date", None),
        )
    return None


def create_user(db: Session, *, actor: Actor, payload: UserCreateBase, role: Role):
    """Create a user, its profile and its role record atomically.

    Returns the role record for role-specific roles, otherwise the user.
    """
    institution_id = _resolve_target_institution(db, actor, payload.institution_id, role)
    _ensure_unique_contact(db, email=payload.email, phone=payload.phone)
    if institution_id is not None:
        _check_role_references(db, institution_id, payload.model_dump())

    user = User(
        email=payload.email,
        phone=payload.phone,
        password_hash=hash_password(payload.password),
        role=role,
        is_active=True,
    )
    profile = UserProfile(
        user=user,
        institution_id=institution_id,
        first_name=payload.first_name.strip(),
        last_name=payload.last_name.strip(),
        admission_number=getattr(payload, "admission_number", None),
        occupation=getattr(payload, "occupation", None),
    )
    try:
        db.add_all([user, profile])
        db.flush()
        record = _build_role_record(role, user, institution_id, payload)
        if record is not None:
            db.add(record)
            db.flush()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise AppError.wrap(DATABASE_ERROR, exc) from exc

    logger.info(f"User {user.id} created with role {role.value} by {actor.user_id}")
    if record is not None:
        db.refresh(record)
        return record
    db.refresh(user)
    return user


# ---------------------------------------------------------------------------
# Generic user operations
# ---------------------------------------------------------------------------


def get_user(db: Session, actor: Actor, user_id: uuid.UUID) -> User:
    user = not_deleted(db.query(User), User).filter(User.id == user_id).first()
    if not user:
        raise AppError(USER_NOT_FOUND)
    ensure_same_tenant(actor, user.institution_id)
    return user


def list_users(
    db: Session,
    actor: Actor,
    params: PaginationParams,
    *,
    role: Role | None = None,
    is_active: bool | None = None,
    search: str | None = None,
):
    query = not_deleted(db.query(User), User).join(UserProfile, UserProfile.user_id == User.id)
    if not actor.is_super_admin or actor.institution_id is not None:
        query = query.filter(UserProfile.institution_id == actor.require_tenant())
    if role is not None:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                User.email.ilike(pattern),
                UserProfile.first_name.ilike(pattern),
                UserProfile.last_name.ilike(pattern),
            )
        )
    return paginate(query.order_by(User.created_at.desc()), params)


def _apply_user_patch(db: Session, user: User, values: dict) -> None:
    _ensure_unique_contact(db, email=values.get("email"), phone=values.get("phone"), exclude_id=user.id)
    for name in USER_FIELDS & values.keys():
        if values[name] is not None:
            setattr(user, name, values[name])
    if values.get("is_active") is False:
        user.refresh_token = None
    for name in PROFILE_FIELDS & values.keys():
        if values[name] is not None:
            setattr(user.profile, name, values[name].strip())


def update_user(db: Session, actor: Actor, user_id: uuid.UUID, payload: UserUpdate) -> User:
    user = get_user(db, actor, user_id)
    _apply_user_patch(db, user, patch_fields(payload))
    db.commit()
    db.refresh(user)
    return user


def set_user_status(db: Session, actor: Actor, user_id: uuid.UUID, is_active: bool) -> User:
    user = get_user(db, actor, user_id)
    user.is_active = is_active
    if not is_active:
        user.refresh_token = None
    db.commit()
    db.refresh(user)
    logger.info(f"User {user_id} {'activated' if is_active else 'deactivated'} by {actor.user_id}")
    return user


def delete_user(db: Session, actor: Actor, user_id: uuid.UUID) -> None:
    if user_id == actor.user_id:
        raise AppError(CANNOT_DELETE_SELF)
    user = get_user(db, actor, user_id)

    user.soft_delete()
    user.refresh_token = None
    if user.profile:
        user.profile.soft_delete()
    model = ROLE_MODELS.get(user.role)
    if model is not None:
        record = not_deleted(db.query(model), model).filter(model.user_id == user.id).first()
        if record:
            record.soft_delete()
    db.commit()
    logger.info(f"User {user_id} deleted by {actor.user_id}")


def update_profile(db: Session, user_id: uuid.UUID, payload: ProfileUpdate) -> User:
    user = not_deleted(db.query(User), User).filter(User.id == user_id).first()
    if not user:
        raise AppError(USER_NOT_FOUND)
    values = patch_fields(payload)
    for name in PROFILE_FIELDS & values.keys():
        if values[name] is not None:
            values[name] = values[name].strip()
        else:
            values.pop(name)
    apply(user.profile, values)
    db.commit()
    db.refresh(user)
    return user


# ---------------------------------------------------------------------------
# Role records (teachers, students, parents, accountants)
# ---------------------------------------------------------------------------


def get_member(db: Session, actor: Actor, model, member_id: uuid.UUID):
    record = not_deleted(db.query(model), model).filter(model.id == member_id).first()
    if not record:
        raise not_found(model.__name__)
    ensure_same_tenant(actor, record.institution_id)
    return record


def list_members(db: Session, actor: Actor, model, params: PaginationParams, *, search: str | None = None, **filters):
    institution_id = actor.require_tenant()
    query = (
        not_deleted(db.query(model), model)
        .join(User, User.id == model.user_id)
        .join(UserProfile, UserProfile.user_id == User.id)
        .filter(model.institution_id == institution_id, User.deleted_at.is_(None))
    )
    for name, value in filters.items():
        if value is not None:
            query = query.filter(getattr(model, name) == value)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                User.email.ilike(pattern),
                UserProfile.first_name.ilike(pattern),
                UserProfile.last_name.ilike(pattern),
            )
        )
    return paginate(query.order_by(UserProfile.first_name, UserProfile.last_name), params)


def update_member(db: Session, actor: Actor, model, member_id: uuid.UUID, payload: UserUpdate):
    record = get_member(db, actor, model, member_id)
    values = patch_fields(payload)

    user_values = {name: values.pop(name) for name in list(values) if name in USER_FIELDS | PROFILE_FIELDS}
    _apply_user_patch(db, record.user, user_values)

    if values:
        refs = dict(values)
        if "section_id" in refs and "class_id" not in refs and getattr(record, "class_id", None):
            refs["class_id"] = record.class_id
        if "class_id" in refs and "section_id" not in refs and getattr(record, "section_id", None):
            refs["section_id"] = record.section_id
        _check_role_references(db, record.institution_id, refs)
        apply(record, values)

    db.commit()
    db.refresh(record)
    return record


# ---------------------------------------------------------------------------
# Parent / student links
# ---------------------------------------------------------------------------


def link_parent(db: Session, actor: Actor, student_id: uuid.UUID, *, parent_id: uuid.UUID, relationship, is_primary: bool) -> ParentStudentRelation:
    student = get_member(db, actor, Student, student_id)
    parent = get_member(db, actor, Parent, parent_id)
    if parent.institution_id != student.institution_id:
        raise AppError(INVALID_PARENT_STUDENT_LINK, "Parent and student belong to different institutions")

    existing = (
        db.query(ParentStudentRelation)
        .filter(ParentStudentRelation.parent_id == parent.id, ParentStudentRelation.student_id == student.id)
        .first()
    )
    if existing:
        raise already_exists("Parent is already linked to this student")

    if is_primary:
        db.query(ParentStudentRelation).filter(ParentStudentRelation.student_id == student.id).update(
            {ParentStudentRelation.is_primary: False}, synchronize_session=False
        )
    link = ParentStudentRelation(
        parent_id=parent.id,
        student_id=student.id,
        relationship_type=relationship,
        is_primary=is_primary,
    )
    db.add(link)
    db.commit()
    db.refresh(link)
    return link


def unlink_parent(db: Session, actor: Actor, student_id: uuid.UUID, parent_id: uuid.UUID) -> None:
    student = get_member(db, actor, Student, student_id)
    link = (
        db.query(ParentStudentRelation)
        .filter(ParentStudentRelation.parent_id == parent_id, ParentStudentRelation.student_id == student.id)
        .first()
    )
    if not link:
        raise not_found("Parent link")
    db.delete(link)
    db.commit()


def list_student_parents(db: Session, actor: Actor, student_id: uuid.UUID) -> list[ParentStudentRelation]:
    student = get_member(db, actor, Student, student_id)
    return (
        db.query(ParentStudentRelation)
        .join(Parent, Parent.id == ParentStudentRelation.parent_id)
        .filter(ParentStudentRelation.student_id == student.id, Parent.deleted_at.is_(None))
        .order_by(ParentStudentRelation.is_primary.desc(), ParentStudentRelation.created_at)
        .all()
    )


def list_parent_children(db: Session, actor: Actor, parent_id: uuid.UUID) -> list[ParentStudentRelation]:
    parent = get_member(db, actor, Parent, parent_id)
    return (
        db.query(ParentStudentRelation)
        .join(Student, Student.id == ParentStudentRelation.student_id)
        .filter(ParentStudentRelation.parent_id == parent.id, Student.deleted_at.is_(None))
        .order_by(ParentStudentRelation.created_at)
        .all()
    )
