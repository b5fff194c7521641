from fastapi import APIRouter, Request

from ..errors import SERVICE_UNAVAILABLE, AppError
from ..responses import APIResponse, ok

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get("/health", response_model=APIResponse[dict])
def health(request: Request):
    if not request.app.state.database.ping():
        raise AppError(SERVICE_UNAVAILABLE, "Database is unreachable")
    return ok({"status": "healthy", "database": "connected"}, "Service is healthy")
