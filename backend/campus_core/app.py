import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .cache import Cache, build_cache
from .config import Settings
from .database import Database
from .errors import DATABASE_ERROR, INTERNAL_SERVER_ERROR, VALIDATION_FAILED, AppError
from .middleware import RateLimiter, log_requests
from .models import Role, User, UserProfile
from .routes import ROUTERS, health_router
from .security import TokenManager, hash_password

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )


def init_database(database: Database, settings: Settings) -> None:
    """Create tables and make sure the bootstrap super admin exists."""
    logger.info("Initializing Database...")
    database.create_all()

    if settings.super_admin_email and settings.super_admin_password:
        email = settings.super_admin_email.strip().lower()
        with database.session() as db:
            exists = db.query(User.id).filter(User.email == email).first()
            if not exists:
                user = User(
                    email=email,
                    password_hash=hash_password(settings.super_admin_password),
                    role=Role.SUPER_ADMIN,
                    is_active=True,
                )
                db.add_all([user, UserProfile(user=user, first_name="Super", last_name="Admin")])
                db.commit()
                logger.info(f"Seeded super admin {email}")
    logger.info("Database Initialized.")


def _error_response(error: AppError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=error.headers)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = {}
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
            fields[".".join(loc) or "request"] = error.get("msg", "Invalid value")
        return _error_response(AppError(VALIDATION_FAILED, details=fields))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        content = {"success": False, "error": str(exc.detail), "code": f"HTTP_{exc.status_code}"}
        return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error on {request.method} {request.url.path}: {exc!r}")
        return _error_response(AppError(DATABASE_ERROR))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(AppError(INTERNAL_SERVER_ERROR))


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    cache: Cache | None = None,
) -> FastAPI:
    settings = settings or Settings()
    setup_logging(settings.log_level)
    database = database or Database(settings.database_url, echo=settings.db_echo)
    cache = cache or build_cache(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_database(database, settings)
        yield
        database.engine.dispose()

    app = FastAPI(title="Campus Core API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.cache = cache
    app.state.tokens = TokenManager.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)
    _register_exception_handlers(app)

    global_rate_limit = RateLimiter()
    for router in ROUTERS:
        app.include_router(router, dependencies=[Depends(global_rate_limit)])
    app.include_router(health_router)
    return app
