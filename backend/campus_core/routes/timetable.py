import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db_session
from ..middleware import require_admin, require_tenant
from ..models import DayOfWeek
from ..responses import APIResponse, PaginatedResponse, PaginationParams, ok, page_of
from ..schemas import DayTimetable, TimetableCreate, TimetableOut, TimetableUpdate, WeekTimetable
from ..services import timetable as timetable_service

router = APIRouter(prefix="/api/v1/timetable", tags=["Timetable"])


def _week_out(grouped) -> WeekTimetable:
    return WeekTimetable(
        days=[
            DayTimetable(day=day, entries=[TimetableOut.model_validate(entry) for entry in entries])
            for day, entries in grouped
        ]
    )


@router.post(
    "",
    response_model=APIResponse[TimetableOut],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_entry(
    payload: TimetableCreate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    entry = timetable_service.create_entry(db, institution_id, payload)
    return ok(TimetableOut.model_validate(entry), "Timetable entry created successfully")


@router.get("", response_model=PaginatedResponse[TimetableOut])
def list_entries(
    params: PaginationParams = Depends(),
    academic_year_id: uuid.UUID | None = Query(default=None),
    class_id: uuid.UUID | None = Query(default=None),
    section_id: uuid.UUID | None = Query(default=None),
    teacher_id: uuid.UUID | None = Query(default=None),
    day_of_week: DayOfWeek | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    entries, pagination = timetable_service.list_entries(
        db,
        institution_id,
        params,
        academic_year_id=academic_year_id,
        class_id=class_id,
        section_id=section_id,
        teacher_id=teacher_id,
        day_of_week=day_of_week,
        is_active=is_active,
    )
    return page_of([TimetableOut.model_validate(entry) for entry in entries], pagination)


@router.get("/class/{class_id}", response_model=APIResponse[WeekTimetable])
def class_timetable(
    class_id: uuid.UUID,
    academic_year_id: uuid.UUID | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    return ok(_week_out(timetable_service.class_week(db, institution_id, class_id, academic_year_id)))


@router.get("/section/{section_id}", response_model=APIResponse[WeekTimetable])
def section_timetable(
    section_id: uuid.UUID,
    academic_year_id: uuid.UUID | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    return ok(_week_out(timetable_service.section_week(db, institution_id, section_id, academic_year_id)))


@router.get("/teacher/{teacher_id}", response_model=APIResponse[WeekTimetable])
def teacher_timetable(
    teacher_id: uuid.UUID,
    academic_year_id: uuid.UUID | None = Query(default=None),
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    return ok(_week_out(timetable_service.teacher_week(db, institution_id, teacher_id, academic_year_id)))


@router.get("/{entry_id}", response_model=APIResponse[TimetableOut])
def get_entry(entry_id: uuid.UUID, institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    return ok(TimetableOut.model_validate(timetable_service.get_entry(db, institution_id, entry_id)))


@router.put("/{entry_id}", response_model=APIResponse[TimetableOut], dependencies=[Depends(require_admin)])
def update_entry(
    entry_id: uuid.UUID,
    payload: TimetableUpdate,
    institution_id: uuid.UUID = Depends(require_tenant),
    db: Session = Depends(get_db_session),
):
    entry = timetable_service.update_entry(db, institution_id, entry_id, payload)
    return ok(TimetableOut.model_validate(entry), "Timetable entry updated successfully")


@router.delete("/{entry_id}", response_model=APIResponse[None], dependencies=[Depends(require_admin)])
def delete_entry(entry_id: uuid.UUID, institution_id: uuid.UUID = Depends(require_tenant), db: Session = Depends(get_db_session)):
    timetable_service.delete_entry(db, institution_id, entry_id)
    return ok(message="Timetable entry deleted successfully")
