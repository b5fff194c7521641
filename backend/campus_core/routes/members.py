"""Role-specific user records: teachers, students, parents and accountants."""
import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import require_tenant
from ..models import Accountant, Parent, Role, Student, Teacher
from ..responses import APIResponse, PaginatedResponse, PaginationParams, ok, page_of
from ..schemas import (
    AccountantCreate,
    AccountantOut,
    AccountantUpdate,
    LinkParentRequest,
    ParentCreate,
    ParentLinkOut,
    ParentOut,
    ParentUpdate,
    StudentCreate,
    StudentOut,
    StudentUpdate,
    TeacherCreate,
    TeacherOut,
    TeacherUpdate,
)
from ..services import users as user_service
from ..services.common import Actor
from .deps import get_actor, get_admin_actor

teachers_router = APIRouter(prefix="/api/v1/teachers", tags=["Teachers"])
students_router = APIRouter(prefix="/api/v1/students", tags=["Students"])
parents_router = APIRouter(prefix="/api/v1/parents", tags=["Parents"])
accountants_router = APIRouter(prefix="/api/v1/accountants", tags=["Accountants"])


# ---------------------------------------------------------------------------
# Teachers
# ---------------------------------------------------------------------------


@teachers_router.post("", response_model=APIResponse[TeacherOut], status_code=status.HTTP_201_CREATED)
def create_teacher(payload: TeacherCreate, db: Session = Depends(get_db_session), actor: Actor = Depends(get_admin_actor)):
    teacher = user_service.create_user(db, actor=actor, payload=payload, role=Role.TEACHER)
    return ok(TeacherOut.model_validate(teacher), "Teacher created successfully")


@teachers_router.get("", response_model=PaginatedResponse[TeacherOut], dependencies=[Depends(require_tenant)])
def list_teachers(
    params: PaginationParams = Depends(),
    department_id: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_actor),
):
    teachers, pagination = user_service.list_members(
        db, actor, Teacher, params, search=search, department_id=department_id
    )
    return page_of([TeacherOut.model_validate(item) for item in teachers], pagination)


@teachers_router.get("/{teacher_id}", response_model=APIResponse[TeacherOut], dependencies=[Depends(require_tenant)])
def get_teacher(teacher_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_actor)):
    return ok(TeacherOut.model_validate(user_service.get_member(db, actor, Teacher, teacher_id)))


@teachers_router.put("/{teacher_id}", response_model=APIResponse[TeacherOut])
def update_teacher(
    teacher_id: uuid.UUID,
    payload: TeacherUpdate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    teacher = user_service.update_member(db, actor, Teacher, teacher_id, payload)
    return ok(TeacherOut.model_validate(teacher), "Teacher updated successfully")


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------


@students_router.post("", response_model=APIResponse[StudentOut], status_code=status.HTTP_201_CREATED)
def create_student(payload: StudentCreate, db: Session = Depends(get_db_session), actor: Actor = Depends(get_admin_actor)):
    student = user_service.create_user(db, actor=actor, payload=payload, role=Role.STUDENT)
    return ok(StudentOut.model_validate(student), "Student created successfully")


@students_router.get("", response_model=PaginatedResponse[StudentOut], dependencies=[Depends(require_tenant)])
def list_students(
    params: PaginationParams = Depends(),
    class_id: uuid.UUID | None = Query(default=None),
    section_id: uuid.UUID | None = Query(default=None),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_actor),
):
    students, pagination = user_service.list_members(
        db, actor, Student, params, search=search, class_id=class_id, section_id=section_id
    )
    return page_of([StudentOut.model_validate(item) for item in students], pagination)


@students_router.get("/{student_id}", response_model=APIResponse[StudentOut], dependencies=[Depends(require_tenant)])
def get_student(student_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_actor)):
    return ok(StudentOut.model_validate(user_service.get_member(db, actor, Student, student_id)))


@students_router.put("/{student_id}", response_model=APIResponse[StudentOut])
def update_student(
    student_id: uuid.UUID,
    payload: StudentUpdate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    student = user_service.update_member(db, actor, Student, student_id, payload)
    return ok(StudentOut.model_validate(student), "Student updated successfully")


@students_router.get(
    "/{student_id}/parents", response_model=APIResponse[list[ParentLinkOut]], dependencies=[Depends(require_tenant)]
)
def list_student_parents(student_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_actor)):
    links = user_service.list_student_parents(db, actor, student_id)
    return ok([ParentLinkOut.model_validate(link) for link in links])


@students_router.post(
    "/{student_id}/parents", response_model=APIResponse[ParentLinkOut], status_code=status.HTTP_201_CREATED
)
def link_parent(
    student_id: uuid.UUID,
    payload: LinkParentRequest,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    link = user_service.link_parent(
        db,
        actor,
        student_id,
        parent_id=payload.parent_id,
        relationship=payload.relationship,
        is_primary=payload.is_primary,
    )
    return ok(ParentLinkOut.model_validate(link), "Parent linked successfully")


@students_router.delete("/{student_id}/parents/{parent_id}", response_model=APIResponse[None])
def unlink_parent(
    student_id: uuid.UUID,
    parent_id: uuid.UUID,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    user_service.unlink_parent(db, actor, student_id, parent_id)
    return ok(message="Parent unlinked successfully")


# ---------------------------------------------------------------------------
# Parents
# ---------------------------------------------------------------------------


@parents_router.post("", response_model=APIResponse[ParentOut], status_code=status.HTTP_201_CREATED)
def create_parent(payload: ParentCreate, db: Session = Depends(get_db_session), actor: Actor = Depends(get_admin_actor)):
    parent = user_service.create_user(db, actor=actor, payload=payload, role=Role.PARENT)
    return ok(ParentOut.model_validate(parent), "Parent created successfully")


@parents_router.get("", response_model=PaginatedResponse[ParentOut], dependencies=[Depends(require_tenant)])
def list_parents(
    params: PaginationParams = Depends(),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_actor),
):
    parents, pagination = user_service.list_members(db, actor, Parent, params, search=search)
    return page_of([ParentOut.model_validate(item) for item in parents], pagination)


@parents_router.get("/{parent_id}", response_model=APIResponse[ParentOut], dependencies=[Depends(require_tenant)])
def get_parent(parent_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_actor)):
    return ok(ParentOut.model_validate(user_service.get_member(db, actor, Parent, parent_id)))


@parents_router.put("/{parent_id}", response_model=APIResponse[ParentOut])
def update_parent(
    parent_id: uuid.UUID,
    payload: ParentUpdate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    parent = user_service.update_member(db, actor, Parent, parent_id, payload)
    return ok(ParentOut.model_validate(parent), "Parent updated successfully")


@parents_router.get(
    "/{parent_id}/children", response_model=APIResponse[list[ParentLinkOut]], dependencies=[Depends(require_tenant)]
)
def list_parent_children(parent_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_actor)):
    links = user_service.list_parent_children(db, actor, parent_id)
    return ok([ParentLinkOut.model_validate(link) for link in links])


# ---------------------------------------------------------------------------
# Accountants
# ---------------------------------------------------------------------------


@accountants_router.post("", response_model=APIResponse[AccountantOut], status_code=status.HTTP_201_CREATED)
def create_accountant(
    payload: AccountantCreate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    accountant = user_service.create_user(db, actor=actor, payload=payload, role=Role.ACCOUNTANT)
    return ok(AccountantOut.model_validate(accountant), "Accountant created successfully")


@accountants_router.get("", response_model=PaginatedResponse[AccountantOut], dependencies=[Depends(require_tenant)])
def list_accountants(
    params: PaginationParams = Depends(),
    search: str | None = Query(default=None),
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_actor),
):
    accountants, pagination = user_service.list_members(db, actor, Accountant, params, search=search)
    return page_of([AccountantOut.model_validate(item) for item in accountants], pagination)


@accountants_router.get(
    "/{accountant_id}", response_model=APIResponse[AccountantOut], dependencies=[Depends(require_tenant)]
)
def get_accountant(accountant_id: uuid.UUID, db: Session = Depends(get_db_session), actor: Actor = Depends(get_actor)):
    return ok(AccountantOut.model_validate(user_service.get_member(db, actor, Accountant, accountant_id)))


@accountants_router.put("/{accountant_id}", response_model=APIResponse[AccountantOut])
def update_accountant(
    accountant_id: uuid.UUID,
    payload: AccountantUpdate,
    db: Session = Depends(get_db_session),
    actor: Actor = Depends(get_admin_actor),
):
    accountant = user_service.update_member(db, actor, Accountant, accountant_id, payload)
    return ok(AccountantOut.model_validate(accountant), "Accountant updated successfully")
