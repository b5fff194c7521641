"""Weekly timetable with double-booking protection.

Two active entries on the same day clash when their half-open intervals
``[start, end)`` overlap and they share a teacher, a section, or a non-empty
room. Periods that merely touch (09:00-09:45 then 09:45-10:30) do not clash.

Writers lock the tenant's institution row before checking, so the check and
the write are serialised per tenant on backends that honour ``FOR UPDATE``.
"""
import enum
import logging
import uuid
from datetime import time

from sqlalchemy import case
from sqlalchemy.orm import Session

from ..errors import FIELD_OUT_OF_RANGE, INSTITUTION_NOT_FOUND, INVALID_FIELD_FORMAT, SCHEDULING_CONFLICT, AppError
from ..models import AcademicYear, DayOfWeek, Institution, SchoolClass, Subject, Teacher, TimetableEntry, not_deleted
from ..responses import PaginationParams, paginate
from ..schemas import TimetableCreate, TimetableUpdate
from .academic import get_class, get_section
from .common import apply, get_in_tenant, patch_fields

logger = logging.getLogger(__name__)

DAY_ORDER = case({day.value: day.order for day in DayOfWeek}, value=TimetableEntry.day_of_week)

REFERENCE_FIELDS = ("academic_year_id", "class_id", "section_id", "subject_id", "teacher_id")


class ConflictAxis(str, enum.Enum):
    TEACHER = "teacher"
    SECTION = "section"
    ROOM = "room"


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


def find_conflict(db: Session, entry: TimetableEntry, exclude_id: uuid.UUID | None = None):
    """Return ``(axis, clashing_entry)`` for the first clash found, else None.

    Axes are checked in order teacher, section, room.
    """
    base = not_deleted(db.query(TimetableEntry), TimetableEntry).filter(
        TimetableEntry.institution_id == entry.institution_id,
        TimetableEntry.day_of_week == entry.day_of_week,
        TimetableEntry.is_active.is_(True),
        TimetableEntry.start_time < entry.end_time,
        TimetableEntry.end_time > entry.start_time,
    )
    if exclude_id is not None:
        base = base.filter(TimetableEntry.id != exclude_id)

    axes = [
        (ConflictAxis.TEACHER, TimetableEntry.teacher_id == entry.teacher_id),
        (ConflictAxis.SECTION, TimetableEntry.section_id == entry.section_id),
    ]
    if entry.room_number:
        axes.append((ConflictAxis.ROOM, TimetableEntry.room_number == entry.room_number))

    for axis, condition in axes:
        clash = base.filter(condition).first()
        if clash is not None:
            return axis, clash
    return None


def _assert_no_conflict(db: Session, entry: TimetableEntry, exclude_id: uuid.UUID | None = None) -> None:
    found = find_conflict(db, entry, exclude_id)
    if found is None:
        return
    axis, clash = found
    logger.info(f"Timetable {axis.value} conflict on {entry.day_of_week.value} with entry {clash.id}")
    raise AppError(SCHEDULING_CONFLICT, details={"conflict": axis.value, "entry_id": str(clash.id)})


def _check_times(entry: TimetableEntry) -> None:
    if entry.start_time >= entry.end_time:
        raise AppError(FIELD_OUT_OF_RANGE, "start_time must be before end_time")


def _lock_tenant(db: Session, institution_id: uuid.UUID) -> None:
    locked = (
        db.query(Institution.id)
        .filter(Institution.id == institution_id, Institution.deleted_at.is_(None))
        .with_for_update()
        .first()
    )
    if locked is None:
        raise AppError(INSTITUTION_NOT_FOUND)


def _resolve_references(db: Session, institution_id: uuid.UUID, entry: TimetableEntry, changed: set[str]) -> None:
    if "academic_year_id" in changed:
        get_in_tenant(db, AcademicYear, entry.academic_year_id, institution_id, "Academic year")
    if "class_id" in changed:
        get_class(db, institution_id, entry.class_id)
    if changed & {"class_id", "section_id"}:
        section = get_section(db, institution_id, entry.section_id)
        if section.class_id != entry.class_id:
            raise AppError(INVALID_FIELD_FORMAT, "Section does not belong to the given class")
    if "subject_id" in changed:
        get_in_tenant(db, Subject, entry.subject_id, institution_id, "Subject")
    if "teacher_id" in changed:
        get_in_tenant(db, Teacher, entry.teacher_id, institution_id, "Teacher")


def create_entry(db: Session, institution_id: uuid.UUID, payload: TimetableCreate) -> TimetableEntry:
    try:
        _lock_tenant(db, institution_id)
        entry = TimetableEntry(institution_id=institution_id, is_active=True, **payload.model_dump())
        _resolve_references(db, institution_id, entry, set(REFERENCE_FIELDS))
        _check_times(entry)
        _assert_no_conflict(db, entry)
        db.add(entry)
        db.commit()
    except AppError:
        db.rollback()
        raise

    db.refresh(entry)
    logger.info(f"Timetable entry {entry.id} created for section {entry.section_id}")
    return entry


def get_entry(db: Session, institution_id: uuid.UUID, entry_id: uuid.UUID) -> TimetableEntry:
    return get_in_tenant(db, TimetableEntry, entry_id, institution_id, "Timetable entry")


def update_entry(db: Session, institution_id: uuid.UUID, entry_id: uuid.UUID, payload: TimetableUpdate) -> TimetableEntry:
    values = patch_fields(payload)
    # A null room clears it; any other null leaves the field alone.
    values = {name: value for name, value in values.items() if value is not None or name == "room_number"}

    try:
        _lock_tenant(db, institution_id)
        entry = get_entry(db, institution_id, entry_id)
        apply(entry, values)
        _resolve_references(db, institution_id, entry, set(values) & set(REFERENCE_FIELDS))
        _check_times(entry)
        if entry.is_active:
            _assert_no_conflict(db, entry, exclude_id=entry.id)
        db.commit()
    except AppError:
        db.rollback()
        raise

    db.refresh(entry)
    return entry


def delete_entry(db: Session, institution_id: uuid.UUID, entry_id: uuid.UUID) -> None:
    entry = get_entry(db, institution_id, entry_id)
    entry.soft_delete()
    db.commit()


def list_entries(
    db: Session,
    institution_id: uuid.UUID,
    params: PaginationParams,
    *,
    academic_year_id: uuid.UUID | None = None,
    class_id: uuid.UUID | None = None,
    section_id: uuid.UUID | None = None,
    teacher_id: uuid.UUID | None = None,
    day_of_week: DayOfWeek | None = None,
    is_active: bool | None = None,
):
    query = not_deleted(db.query(TimetableEntry), TimetableEntry).filter(TimetableEntry.institution_id == institution_id)
    filters = [
        (TimetableEntry.academic_year_id, academic_year_id),
        (TimetableEntry.class_id, class_id),
        (TimetableEntry.section_id, section_id),
        (TimetableEntry.teacher_id, teacher_id),
        (TimetableEntry.day_of_week, day_of_week),
    ]
    for column, value in filters:
        if value is not None:
            query = query.filter(column == value)
    if is_active is not None:
        query = query.filter(TimetableEntry.is_active.is_(is_active))
    return paginate(query.order_by(DAY_ORDER, TimetableEntry.start_time), params)


def _week(db: Session, institution_id: uuid.UUID, condition, academic_year_id: uuid.UUID | None):
    query = not_deleted(db.query(TimetableEntry), TimetableEntry).filter(
        TimetableEntry.institution_id == institution_id,
        TimetableEntry.is_active.is_(True),
        condition,
    )
    if academic_year_id is not None:
        query = query.filter(TimetableEntry.academic_year_id == academic_year_id)

    grouped: dict[DayOfWeek, list[TimetableEntry]] = {}
    for entry in query.order_by(TimetableEntry.start_time).all():
        grouped.setdefault(entry.day_of_week, []).append(entry)
    return [(day, grouped[day]) for day in DayOfWeek if day in grouped]


def class_week(db: Session, institution_id: uuid.UUID, class_id: uuid.UUID, academic_year_id: uuid.UUID | None = None):
    school_class: SchoolClass = get_class(db, institution_id, class_id)
    return _week(db, institution_id, TimetableEntry.class_id == school_class.id, academic_year_id)


def section_week(db: Session, institution_id: uuid.UUID, section_id: uuid.UUID, academic_year_id: uuid.UUID | None = None):
    section = get_section(db, institution_id, section_id)
    return _week(db, institution_id, TimetableEntry.section_id == section.id, academic_year_id)


def teacher_week(db: Session, institution_id: uuid.UUID, teacher_id: uuid.UUID, academic_year_id: uuid.UUID | None = None):
    teacher = get_in_tenant(db, Teacher, teacher_id, institution_id, "Teacher")
    return _week(db, institution_id, TimetableEntry.teacher_id == teacher.id, academic_year_id)
