"""Academic structure: years, classes, sections, subjects and departments.

Every entity here is tenant-owned. Lookups take the resolved tenant id and
treat rows of other tenants as missing.
"""
import logging
import uuid

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ..errors import FIELD_OUT_OF_RANGE, RESOURCE_IN_USE, AppError, already_exists, not_found
from ..models import (
    AcademicYear,
    Department,
    SchoolClass,
    Section,
    Student,
    Subject,
    Teacher,
    TimetableEntry,
    not_deleted,
)
from ..responses import PaginationParams, paginate
from ..schemas import (
    AcademicYearCreate,
    AcademicYearUpdate,
    ClassCreate,
    ClassUpdate,
    DepartmentCreate,
    DepartmentUpdate,
    SectionCreate,
    SectionUpdate,
    SubjectCreate,
    SubjectUpdate,
)
from .common import apply, get_in_tenant, patch_fields

logger = logging.getLogger(__name__)


def _name_taken(query, model, name: str, exclude_id: uuid.UUID | None) -> bool:
    query = not_deleted(query, model).filter(func.lower(model.name) == name.strip().lower())
    if exclude_id:
        query = query.filter(model.id != exclude_id)
    return query.first() is not None


def _teacher_in_tenant(db: Session, teacher_id: uuid.UUID | None, institution_id: uuid.UUID) -> None:
    if teacher_id:
        get_in_tenant(db, Teacher, teacher_id, institution_id, "Teacher")


# ---------------------------------------------------------------------------
# Academic years
# ---------------------------------------------------------------------------


def _check_date_range(year: AcademicYear) -> None:
    if year.end_date <= year.start_date:
        raise AppError(FIELD_OUT_OF_RANGE, "End date must be after start date")


def _year_name_taken(db: Session, institution_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = db.query(AcademicYear.id).filter(AcademicYear.institution_id == institution_id)
    return _name_taken(query, AcademicYear, name, exclude_id)


def _mark_current(db: Session, institution_id: uuid.UUID, year: AcademicYear) -> None:
    # Both statements run in the caller's transaction.
    db.execute(
        update(AcademicYear)
        .where(AcademicYear.institution_id == institution_id, AcademicYear.id != year.id)
        .values(is_current=False)
    )
    year.is_current = True


def create_academic_year(db: Session, institution_id: uuid.UUID, payload: AcademicYearCreate) -> AcademicYear:
    year = AcademicYear(
        institution_id=institution_id,
        name=payload.name.strip(),
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_current=False,
        description=payload.description,
    )
    _check_date_range(year)
    if _year_name_taken(db, institution_id, year.name):
        raise already_exists("Academic year with this name already exists")

    db.add(year)
    db.flush()
    if payload.is_current:
        _mark_current(db, institution_id, year)
    db.commit()
    db.refresh(year)
    return year


def get_academic_year(db: Session, institution_id: uuid.UUID, year_id: uuid.UUID) -> AcademicYear:
    return get_in_tenant(db, AcademicYear, year_id, institution_id, "Academic year")


def list_academic_years(db: Session, institution_id: uuid.UUID, params: PaginationParams, *, is_current: bool | None = None):
    query = not_deleted(db.query(AcademicYear), AcademicYear).filter(AcademicYear.institution_id == institution_id)
    if is_current is not None:
        query = query.filter(AcademicYear.is_current.is_(is_current))
    return paginate(query.order_by(AcademicYear.start_date.desc()), params)


def get_current_academic_year(db: Session, institution_id: uuid.UUID) -> AcademicYear:
    year = (
        not_deleted(db.query(AcademicYear), AcademicYear)
        .filter(AcademicYear.institution_id == institution_id, AcademicYear.is_current.is_(True))
        .first()
    )
    if not year:
        raise not_found("Current academic year")
    return year


def update_academic_year(db: Session, institution_id: uuid.UUID, year_id: uuid.UUID, payload: AcademicYearUpdate) -> AcademicYear:
    year = get_academic_year(db, institution_id, year_id)
    values = {name: value for name, value in patch_fields(payload).items() if value is not None}
    make_current = values.pop("is_current", None)

    if "name" in values:
        values["name"] = values["name"].strip()
        if _year_name_taken(db, institution_id, values["name"], exclude_id=year.id):
            raise already_exists("Academic year with this name already exists")

    apply(year, values)
    _check_date_range(year)
    if make_current:
        _mark_current(db, institution_id, year)
    db.commit()
    db.refresh(year)
    return year


def set_current_academic_year(db: Session, institution_id: uuid.UUID, year_id: uuid.UUID) -> AcademicYear:
    year = get_academic_year(db, institution_id, year_id)
    _mark_current(db, institution_id, year)
    db.commit()
    db.refresh(year)
    logger.info(f"Academic year {year.id} set as current for institution {institution_id}")
    return year


def delete_academic_year(db: Session, institution_id: uuid.UUID, year_id: uuid.UUID) -> None:
    year = get_academic_year(db, institution_id, year_id)
    year.soft_delete()
    year.is_current = False
    db.commit()


# ---------------------------------------------------------------------------
# Classes and sections
# ---------------------------------------------------------------------------


def _class_name_taken(db: Session, institution_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = db.query(SchoolClass.id).filter(SchoolClass.institution_id == institution_id)
    return _name_taken(query, SchoolClass, name, exclude_id)


def create_class(db: Session, institution_id: uuid.UUID, payload: ClassCreate) -> SchoolClass:
    name = payload.name.strip()
    if _class_name_taken(db, institution_id, name):
        raise already_exists("Class with this name already exists")
    _teacher_in_tenant(db, payload.class_teacher_id, institution_id)

    school_class = SchoolClass(
        institution_id=institution_id,
        name=name,
        class_teacher_id=payload.class_teacher_id,
        capacity=payload.capacity,
        section_count=0,
    )
    db.add(school_class)
    db.commit()
    db.refresh(school_class)
    return school_class


def get_class(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID) -> SchoolClass:
    return get_in_tenant(db, SchoolClass, class_id, institution_id, "Class")


def list_classes(db: Session, institution_id: uuid.UUID, params: PaginationParams, *, search: str | None = None):
    query = not_deleted(db.query(SchoolClass), SchoolClass).filter(SchoolClass.institution_id == institution_id)
    if search:
        query = query.filter(SchoolClass.name.ilike(f"%{search.strip()}%"))
    return paginate(query.order_by(SchoolClass.name), params)


def update_class(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID, payload: ClassUpdate) -> SchoolClass:
    school_class = get_class(db, institution_id, class_id)
    values = {name: value for name, value in patch_fields(payload).items() if value is not None}

    if "name" in values:
        values["name"] = values["name"].strip()
        if _class_name_taken(db, institution_id, values["name"], exclude_id=school_class.id):
            raise already_exists("Class with this name already exists")
    _teacher_in_tenant(db, values.get("class_teacher_id"), institution_id)

    apply(school_class, values)
    db.commit()
    db.refresh(school_class)
    return school_class


def _live_students(db: Session):
    return not_deleted(db.query(Student), Student)


def delete_class(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID) -> None:
    school_class = get_class(db, institution_id, class_id)
    if _live_students(db).filter(Student.class_id == school_class.id).first():
        raise AppError(RESOURCE_IN_USE, "Cannot delete class with enrolled students")
    school_class.soft_delete()
    db.commit()


def list_class_students(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID) -> list[Student]:
    school_class = get_class(db, institution_id, class_id)
    return _live_students(db).filter(Student.class_id == school_class.id).order_by(Student.roll_number).all()


def list_class_teachers(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID) -> list[Teacher]:
    """Class teacher plus everyone teaching a subject or a timetabled period in the class."""
    school_class = get_class(db, institution_id, class_id)
    subject_teachers = select(Subject.teacher_id).where(Subject.class_id == school_class.id, Subject.deleted_at.is_(None))
    timetable_teachers = select(TimetableEntry.teacher_id).where(
        TimetableEntry.class_id == school_class.id, TimetableEntry.deleted_at.is_(None)
    )
    conditions = [Teacher.id.in_(subject_teachers), Teacher.id.in_(timetable_teachers)]
    if school_class.class_teacher_id:
        conditions.append(Teacher.id == school_class.class_teacher_id)
    return (
        not_deleted(db.query(Teacher), Teacher)
        .filter(Teacher.institution_id == institution_id, or_(*conditions))
        .all()
    )


def get_section(db: Session, institution_id: uuid.UUID, section_id: uuid.UUID) -> Section:
    section = (
        not_deleted(db.query(Section), Section)
        .join(SchoolClass, SchoolClass.id == Section.class_id)
        .filter(Section.id == section_id, SchoolClass.institution_id == institution_id)
        .first()
    )
    if not section:
        raise not_found("Section")
    return section


def _section_name_taken(db: Session, class_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = db.query(Section.id).filter(Section.class_id == class_id)
    return _name_taken(query, Section, name, exclude_id)


def create_section(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID, payload: SectionCreate) -> Section:
    school_class = get_class(db, institution_id, class_id)
    name = payload.name.strip()
    if _section_name_taken(db, school_class.id, name):
        raise already_exists("Section with this name already exists in the class")

    section = Section(class_id=school_class.id, name=name, room_number=payload.room_number, capacity=payload.capacity)
    db.add(section)
    school_class.section_count = SchoolClass.section_count + 1
    db.commit()
    db.refresh(section)
    return section


def list_sections(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID) -> list[Section]:
    school_class = get_class(db, institution_id, class_id)
    return not_deleted(db.query(Section), Section).filter(Section.class_id == school_class.id).order_by(Section.name).all()


def update_section(db: Session, institution_id: uuid.UUID, section_id: uuid.UUID, payload: SectionUpdate) -> Section:
    section = get_section(db, institution_id, section_id)
    values = {name: value for name, value in patch_fields(payload).items() if value is not None}
    if "name" in values:
        values["name"] = values["name"].strip()
        if _section_name_taken(db, section.class_id, values["name"], exclude_id=section.id):
            raise already_exists("Section with this name already exists in the class")
    apply(section, values)
    db.commit()
    db.refresh(section)
    return section


def delete_section(db: Session, institution_id: uuid.UUID, section_id: uuid.UUID) -> None:
    section = get_section(db, institution_id, section_id)
    if _live_students(db).filter(Student.section_id == section.id).first():
        raise AppError(RESOURCE_IN_USE, "Cannot delete section with enrolled students")
    section.soft_delete()
    db.execute(
        update(SchoolClass)
        .where(SchoolClass.id == section.class_id, SchoolClass.section_count > 0)
        .values(section_count=SchoolClass.section_count - 1)
    )
    db.commit()


def list_section_students(db: Session, institution_id: uuid.UUID, section_id: uuid.UUID) -> list[Student]:
    section = get_section(db, institution_id, section_id)
    return _live_students(db).filter(Student.section_id == section.id).order_by(Student.roll_number).all()


# ---------------------------------------------------------------------------
# Subjects
# ---------------------------------------------------------------------------


def _subject_conflicts(db: Session, institution_id: uuid.UUID, *, name: str, code: str | None, class_id, exclude_id=None) -> None:
    query = db.query(Subject.id).filter(Subject.institution_id == institution_id)
    if class_id is None:
        query = query.filter(Subject.class_id.is_(None))
    else:
        query = query.filter(Subject.class_id == class_id)
    if _name_taken(query, Subject, name, exclude_id):
        raise already_exists("Subject with this name already exists for the class")

    if code:
        query = not_deleted(db.query(Subject.id), Subject).filter(
            Subject.institution_id == institution_id, func.upper(Subject.code) == code.upper()
        )
        if exclude_id:
            query = query.filter(Subject.id != exclude_id)
        if query.first():
            raise already_exists("Subject with this code already exists")


def create_subject(db: Session, institution_id: uuid.UUID, payload: SubjectCreate) -> Subject:
    if payload.class_id:
        get_class(db, institution_id, payload.class_id)
    _teacher_in_tenant(db, payload.teacher_id, institution_id)
    name = payload.name.strip()
    _subject_conflicts(db, institution_id, name=name, code=payload.code, class_id=payload.class_id)

    subject = Subject(
        institution_id=institution_id,
        class_id=payload.class_id,
        teacher_id=payload.teacher_id,
        name=name,
        code=payload.code,
        is_elective=payload.is_elective,
        credit_hours=payload.credit_hours,
    )
    db.add(subject)
    db.commit()
    db.refresh(subject)
    return subject


def get_subject(db: Session, institution_id: uuid.UUID, subject_id: uuid.UUID) -> Subject:
    return get_in_tenant(db, Subject, subject_id, institution_id, "Subject")


def list_subjects(
    db: Session,
    institution_id: uuid.UUID,
    params: PaginationParams,
    *,
    class_id: uuid.UUID | None = None,
    teacher_id: uuid.UUID | None = None,
    is_elective: bool | None = None,
    search: str | None = None,
):
    query = not_deleted(db.query(Subject), Subject).filter(Subject.institution_id == institution_id)
    if class_id:
        query = query.filter(Subject.class_id == class_id)
    if teacher_id:
        query = query.filter(Subject.teacher_id == teacher_id)
    if is_elective is not None:
        query = query.filter(Subject.is_elective.is_(is_elective))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Subject.name.ilike(pattern), Subject.code.ilike(pattern)))
    return paginate(query.order_by(Subject.name), params)


def list_class_subjects(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID) -> list[Subject]:
    school_class = get_class(db, institution_id, class_id)
    return not_deleted(db.query(Subject), Subject).filter(Subject.class_id == school_class.id).order_by(Subject.name).all()


def update_subject(db: Session, institution_id: uuid.UUID, subject_id: uuid.UUID, payload: SubjectUpdate) -> Subject:
    subject = get_subject(db, institution_id, subject_id)
    values = {name: value for name, value in patch_fields(payload).items() if value is not None}

    if values.get("class_id"):
        get_class(db, institution_id, values["class_id"])
    _teacher_in_tenant(db, values.get("teacher_id"), institution_id)
    if "name" in values:
        values["name"] = values["name"].strip()
    if values.get("code") == "":
        values.pop("code")

    _subject_conflicts(
        db,
        institution_id,
        name=values.get("name", subject.name),
        code=values.get("code") if "code" in values else None,
        class_id=values.get("class_id", subject.class_id),
        exclude_id=subject.id,
    )
    apply(subject, values)
    db.commit()
    db.refresh(subject)
    return subject


def assign_subject_teacher(db: Session, institution_id: uuid.UUID, subject_id: uuid.UUID, teacher_id: uuid.UUID) -> Subject:
    subject = get_subject(db, institution_id, subject_id)
    _teacher_in_tenant(db, teacher_id, institution_id)
    subject.teacher_id = teacher_id
    db.commit()
    db.refresh(subject)
    return subject


def delete_subject(db: Session, institution_id: uuid.UUID, subject_id: uuid.UUID) -> None:
    subject = get_subject(db, institution_id, subject_id)
    subject.soft_delete()
    db.commit()


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


def _department_name_taken(db: Session, institution_id: uuid.UUID, name: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = db.query(Department.id).filter(Department.institution_id == institution_id)
    return _name_taken(query, Department, name, exclude_id)


def department_staff_count(db: Session, department_id: uuid.UUID) -> int:
    return not_deleted(db.query(Teacher), Teacher).filter(Teacher.department_id == department_id).count()


def create_department(db: Session, institution_id: uuid.UUID, payload: DepartmentCreate) -> Department:
    name = payload.name.strip()
    if _department_name_taken(db, institution_id, name):
        raise already_exists("Department with this name already exists")
    _teacher_in_tenant(db, payload.head_of_department_id, institution_id)

    department = Department(
        institution_id=institution_id,
        name=name,
        head_of_department_id=payload.head_of_department_id,
        description=payload.description,
    )
    db.add(department)
    db.commit()
    db.refresh(department)
    return department


def get_department(db: Session, institution_id: uuid.UUID, department_id: uuid.UUID) -> Department:
    return get_in_tenant(db, Department, department_id, institution_id, "Department")


def list_departments(db: Session, institution_id: uuid.UUID, params: PaginationParams, *, search: str | None = None):
    query = not_deleted(db.query(Department), Department).filter(Department.institution_id == institution_id)
    if search:
        query = query.filter(Department.name.ilike(f"%{search.strip()}%"))
    return paginate(query.order_by(Department.name), params)


def update_department(db: Session, institution_id: uuid.UUID, department_id: uuid.UUID, payload: DepartmentUpdate) -> Department:
    department = get_department(db, institution_id, department_id)
    values = {name: value for name, value in patch_fields(payload).items() if value is not None}
    if "name" in values:
        values["name"] = values["name"].strip()
        if _department_name_taken(db, institution_id, values["name"], exclude_id=department.id):
            raise already_exists("Department with this name already exists")
    _teacher_in_tenant(db, values.get("head_of_department_id"), institution_id)

    apply(department, values)
    db.commit()
    db.refresh(department)
    return department


def delete_department(db: Session, institution_id: uuid.UUID, department_id: uuid.UUID) -> None:
    department = get_department(db, institution_id, department_id)
    if department_staff_count(db, department.id):
        raise AppError(RESOURCE_IN_USE, "Cannot delete department with assigned staff")
    department.soft_delete()
    db.commit()


def list_department_staff(db: Session, institution_id: uuid.UUID, department_id: uuid.UUID) -> list[Teacher]:
    department = get_department(db, institution_id, department_id)
    return not_deleted(db.query(Teacher), Teacher).filter(Teacher.department_id == department.id).all()
