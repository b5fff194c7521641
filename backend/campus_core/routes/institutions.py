import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..cache import Cache
from ..database import get_db_session
from ..middleware import require_super_admin
from ..responses import APIResponse, PaginatedResponse, PaginationParams, ok, page_of
from ..schemas import InstitutionCreate, InstitutionOut, InstitutionStats, InstitutionUpdate
from ..services import institutions as institution_service
from .deps import get_cache

router = APIRouter(
    prefix="/api/v1/institutions",
    tags=["Institutions"],
    dependencies=[Depends(require_super_admin)],
)


@router.post("", response_model=APIResponse[InstitutionOut], status_code=status.HTTP_201_CREATED)
def create_institution(payload: InstitutionCreate, db: Session = Depends(get_db_session)):
    institution = institution_service.create_institution(db, payload)
    return ok(InstitutionOut.model_validate(institution), "Institution created successfully")


@router.get("", response_model=PaginatedResponse[InstitutionOut])
def list_institutions(
    params: PaginationParams = Depends(),
    search: str | None = Query(default=None),
    is_active: bool | None = Query(default=None),
    db: Session = Depends(get_db_session),
):
    institutions, pagination = institution_service.list_institutions(db, params, search=search, is_active=is_active)
    return page_of([InstitutionOut.model_validate(item) for item in institutions], pagination)


@router.get("/{institution_id}", response_model=APIResponse[InstitutionOut])
def get_institution(institution_id: uuid.UUID, db: Session = Depends(get_db_session)):
    return ok(InstitutionOut.model_validate(institution_service.get_institution(db, institution_id)))


@router.put("/{institution_id}", response_model=APIResponse[InstitutionOut])
def update_institution(
    institution_id: uuid.UUID,
    payload: InstitutionUpdate,
    db: Session = Depends(get_db_session),
    cache: Cache = Depends(get_cache),
):
    institution = institution_service.update_institution(db, cache, institution_id, payload)
    return ok(InstitutionOut.model_validate(institution), "Institution updated successfully")


@router.delete("/{institution_id}", response_model=APIResponse[None])
def delete_institution(
    institution_id: uuid.UUID,
    db: Session = Depends(get_db_session),
    cache: Cache = Depends(get_cache),
):
    institution_service.delete_institution(db, cache, institution_id)
    return ok(message="Institution deleted successfully")


@router.get("/{institution_id}/stats", response_model=APIResponse[InstitutionStats])
def institution_stats(institution_id: uuid.UUID, db: Session = Depends(get_db_session)):
    return ok(institution_service.institution_stats(db, institution_id))
