import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import require_admin, require_tenant
from ..models import Department
from ..responses import APIResponse, PaginatedResponse, PaginationParams, ok, page_of
from ..schemas import (
    AcademicYearCreate,
    AcademicYearOut,
    AcademicYearUpdate,
    AssignTeacherRequest,
    ClassCreate,
    ClassOut,
    ClassUpdate,
    DepartmentCreate,
    DepartmentOut,
    DepartmentUpdate,
    SectionCreate,
    SectionOut,
    SectionUpdate,
    StudentOut,
    SubjectCreate,
    SubjectOut,
    SubjectUpdate,
    TeacherOut,
)
from ..services import academic as academic_service

years_router = APIRouter(prefix="/api/v1/academic-years", tags=["Academic Years"])
classes_router = APIRouter(prefix="/api/v1/classes", tags=["Classes"])
sections_router = APIRouter(prefix="/api/v1/sections", tags=["Sections"])
subjects_router = APIRouter(prefix="/api/v1/subjects", tags=["Subjects"])
departments_router = APIRouter(prefix="/api/v1/departments", tags=["Departments"])

admin_only = [Depends(require_admin)]


# ---------------------------------------------------------------------------
# Academic years
# ---------------------------------------------------------------------------


@years_router.post(
    "", response_model=APIResponse[AcademicYearOut], status_code=status.HTTP_201_CREATED, dependencies=admin_only
)
def create_academic_year(
    payload: AcademicYearCreate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    year = academic_service.create_academic_year(db, institution_id, payload)
    return ok(AcademicYearOut.model_validate(year), "Academic year created successfully")


@years_router.get("", response_model=PaginatedResponse[AcademicYearOut])
def list_academic_years(
    params: PaginationParams = Depends(),
    is_current: bool | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    years, pagination = academic_service.list_academic_years(db, institution_id, params, is_current=is_current)
    return page_of([AcademicYearOut.model_validate(year) for year in years], pagination)


@years_router.get("/current", response_model=APIResponse[AcademicYearOut])
def get_current_academic_year(institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    return ok(AcademicYearOut.model_validate(academic_service.get_current_academic_year(db, institution_id)))


@years_router.get("/{year_id}", response_model=APIResponse[AcademicYearOut])
def get_academic_year(
    year_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    return ok(AcademicYearOut.model_validate(academic_service.get_academic_year(db, institution_id, year_id)))


@years_router.put("/{year_id}", response_model=APIResponse[AcademicYearOut], dependencies=admin_only)
def update_academic_year(
    year_id: uuid.UUID,
    payload: AcademicYearUpdate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    year = academic_service.update_academic_year(db, institution_id, year_id, payload)
    return ok(AcademicYearOut.model_validate(year), "Academic year updated successfully")


@years_router.patch("/{year_id}/activate", response_model=APIResponse[AcademicYearOut], dependencies=admin_only)
def activate_academic_year(
    year_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    year = academic_service.set_current_academic_year(db, institution_id, year_id)
    return ok(AcademicYearOut.model_validate(year), "Academic year set as current")


@years_router.delete("/{year_id}", response_model=APIResponse[None], dependencies=admin_only)
def delete_academic_year(
    year_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    academic_service.delete_academic_year(db, institution_id, year_id)
    return ok(message="Academic year deleted successfully")


# ---------------------------------------------------------------------------
# Classes and sections
# ---------------------------------------------------------------------------


@classes_router.post("", response_model=APIResponse[ClassOut], status_code=status.HTTP_201_CREATED, dependencies=admin_only)
def create_class(
    payload: ClassCreate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    school_class = academic_service.create_class(db, institution_id, payload)
    return ok(ClassOut.model_validate(school_class), "Class created successfully")


@classes_router.get("", response_model=PaginatedResponse[ClassOut])
def list_classes(
    params: PaginationParams = Depends(),
    search: str | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    classes, pagination = academic_service.list_classes(db, institution_id, params, search=search)
    return page_of([ClassOut.model_validate(item) for item in classes], pagination)


@classes_router.get("/{class_id}", response_model=APIResponse[ClassOut])
def get_class(class_id: uuid.UUID, institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    return ok(ClassOut.model_validate(academic_service.get_class(db, institution_id, class_id)))


@classes_router.put("/{class_id}", response_model=APIResponse[ClassOut], dependencies=admin_only)
def update_class(
    class_id: uuid.UUID,
    payload: ClassUpdate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    school_class = academic_service.update_class(db, institution_id, class_id, payload)
    return ok(ClassOut.model_validate(school_class), "Class updated successfully")


@classes_router.delete("/{class_id}", response_model=APIResponse[None], dependencies=admin_only)
def delete_class(class_id: uuid.UUID, institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    academic_service.delete_class(db, institution_id, class_id)
    return ok(message="Class deleted successfully")


@classes_router.get("/{class_id}/students", response_model=APIResponse[list[StudentOut]])
def list_class_students(
    class_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    students = academic_service.list_class_students(db, institution_id, class_id)
    return ok([StudentOut.model_validate(student) for student in students])


@classes_router.get("/{class_id}/teachers", response_model=APIResponse[list[TeacherOut]])
def list_class_teachers(
    class_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    teachers = academic_service.list_class_teachers(db, institution_id, class_id)
    return ok([TeacherOut.model_validate(teacher) for teacher in teachers])


@classes_router.post(
    "/{class_id}/sections",
    response_model=APIResponse[SectionOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=admin_only,
)
def create_section(
    class_id: uuid.UUID,
    payload: SectionCreate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    section = academic_service.create_section(db, institution_id, class_id, payload)
    return ok(SectionOut.model_validate(section), "Section created successfully")


@classes_router.get("/{class_id}/sections", response_model=APIResponse[list[SectionOut]])
def list_sections(class_id: uuid.UUID, institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    sections = academic_service.list_sections(db, institution_id, class_id)
    return ok([SectionOut.model_validate(section) for section in sections])


@sections_router.put("/{section_id}", response_model=APIResponse[SectionOut], dependencies=admin_only)
def update_section(
    section_id: uuid.UUID,
    payload: SectionUpdate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    section = academic_service.update_section(db, institution_id, section_id, payload)
    return ok(SectionOut.model_validate(section), "Section updated successfully")


@sections_router.delete("/{section_id}", response_model=APIResponse[None], dependencies=admin_only)
def delete_section(
    section_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    academic_service.delete_section(db, institution_id, section_id)
    return ok(message="Section deleted successfully")


@sections_router.get("/{section_id}/students", response_model=APIResponse[list[StudentOut]])
def list_section_students(
    section_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    students = academic_service.list_section_students(db, institution_id, section_id)
    return ok([StudentOut.model_validate(student) for student in students])


# ---------------------------------------------------------------------------
# Subjects
# ---------------------------------------------------------------------------


@subjects_router.post(
    "", response_model=APIResponse[SubjectOut], status_code=status.HTTP_201_CREATED, dependencies=admin_only
)
def create_subject(
    payload: SubjectCreate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    subject = academic_service.create_subject(db, institution_id, payload)
    return ok(SubjectOut.model_validate(subject), "Subject created successfully")


@subjects_router.get("", response_model=PaginatedResponse[SubjectOut])
def list_subjects(
    params: PaginationParams = Depends(),
    class_id: uuid.UUID | None = Query(default=None),
    teacher_id: uuid.UUID | None = Query(default=None),
    is_elective: bool | None = Query(default=None),
    search: str | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    subjects, pagination = academic_service.list_subjects(
        db,
        institution_id,
        params,
        class_id=class_id,
        teacher_id=teacher_id,
        is_elective=is_elective,
        search=search,
    )
    return page_of([SubjectOut.model_validate(subject) for subject in subjects], pagination)


@subjects_router.get("/class/{class_id}", response_model=APIResponse[list[SubjectOut]])
def list_class_subjects(
    class_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    subjects = academic_service.list_class_subjects(db, institution_id, class_id)
    return ok([SubjectOut.model_validate(subject) for subject in subjects])


@subjects_router.get("/{subject_id}", response_model=APIResponse[SubjectOut])
def get_subject(subject_id: uuid.UUID, institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    return ok(SubjectOut.model_validate(academic_service.get_subject(db, institution_id, subject_id)))


@subjects_router.put("/{subject_id}", response_model=APIResponse[SubjectOut], dependencies=admin_only)
def update_subject(
    subject_id: uuid.UUID,
    payload: SubjectUpdate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    subject = academic_service.update_subject(db, institution_id, subject_id, payload)
    return ok(SubjectOut.model_validate(subject), "Subject updated successfully")


@subjects_router.patch("/{subject_id}/assign-teacher", response_model=APIResponse[SubjectOut], dependencies=admin_only)
def assign_subject_teacher(
    subject_id: uuid.UUID,
    payload: AssignTeacherRequest,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    subject = academic_service.assign_subject_teacher(db, institution_id, subject_id, payload.teacher_id)
    return ok(SubjectOut.model_validate(subject), "Teacher assigned successfully")


@subjects_router.delete("/{subject_id}", response_model=APIResponse[None], dependencies=admin_only)
def delete_subject(
    subject_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    academic_service.delete_subject(db, institution_id, subject_id)
    return ok(message="Subject deleted successfully")


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


def _department_out(db: Session, department: Department) -> DepartmentOut:
    out = DepartmentOut.model_validate(department)
    return out.model_copy(update={"staff_count": academic_service.department_staff_count(db, department.id)})


@departments_router.post(
    "", response_model=APIResponse[DepartmentOut], status_code=status.HTTP_201_CREATED, dependencies=admin_only
)
def create_department(
    payload: DepartmentCreate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    department = academic_service.create_department(db, institution_id, payload)
    return ok(_department_out(db, department), "Department created successfully")


@departments_router.get("", response_model=PaginatedResponse[DepartmentOut])
def list_departments(
    params: PaginationParams = Depends(),
    search: str | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    departments, pagination = academic_service.list_departments(db, institution_id, params, search=search)
    return page_of([_department_out(db, department) for department in departments], pagination)


@departments_router.get("/{department_id}", response_model=APIResponse[DepartmentOut])
def get_department(
    department_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    return ok(_department_out(db, academic_service.get_department(db, institution_id, department_id)))


@departments_router.put("/{department_id}", response_model=APIResponse[DepartmentOut], dependencies=admin_only)
def update_department(
    department_id: uuid.UUID,
    payload: DepartmentUpdate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    department = academic_service.update_department(db, institution_id, department_id, payload)
    return ok(_department_out(db, department), "Department updated successfully")


@departments_router.delete("/{department_id}", response_model=APIResponse[None], dependencies=admin_only)
def delete_department(
    department_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    academic_service.delete_department(db, institution_id, department_id)
    return ok(message="Department deleted successfully")


@departments_router.get("/{department_id}/staff", response_model=APIResponse[list[TeacherOut]])
def list_department_staff(
    department_id: uuid.UUID,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    staff = academic_service.list_department_staff(db, institution_id, department_id)
    return ok([TeacherOut.model_validate(teacher) for teacher in staff])
