"""Typed application errors.

Every failure a client can see carries a stable machine-readable code
(``AUTH_001``, ``RES_002``...) next to the human message, so callers branch on
the code instead of matching strings.
"""
import logging
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)


class ErrorSpec(NamedTuple):
    code: str
    message: str
    status_code: int


class AppError(Exception):
    def __init__(
        self,
        spec: ErrorSpec,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.spec = spec
        self.code = spec.code
        self.message = message or spec.message
        self.status_code = spec.status_code
        self.details = details
        self.headers = headers
        super().__init__(self.message)

    @classmethod
    def wrap(cls, spec: "ErrorSpec", exc: BaseException) -> "AppError":
        # The cause is logged, never shown to the client.
        logger.error(f"{spec.code} {spec.message}: {exc!r}")
        error = cls(spec)
        error.__cause__ = exc
        return error

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


# Authentication
INVALID_CREDENTIALS = ErrorSpec("AUTH_001", "Invalid credentials", 401)
TOKEN_EXPIRED = ErrorSpec("AUTH_002", "Token has expired", 401)
TOKEN_INVALID = ErrorSpec("AUTH_003", "Token is invalid", 401)
TOKEN_MISSING = ErrorSpec("AUTH_004", "Authorization token is required", 401)
REFRESH_TOKEN_EXPIRED = ErrorSpec("AUTH_005", "Refresh token has expired", 401)
REFRESH_TOKEN_INVALID = ErrorSpec("AUTH_006", "Refresh token is invalid", 401)
ACCOUNT_DISABLED = ErrorSpec("AUTH_007", "Account is disabled", 403)
ACCOUNT_LOCKED = ErrorSpec("AUTH_008", "Account is locked", 403)
PASSWORD_REQUIREMENTS = ErrorSpec("AUTH_009", "Password does not meet requirements", 400)
RESET_TOKEN_INVALID = ErrorSpec("AUTH_010", "Password reset token is invalid", 400)
RESET_TOKEN_EXPIRED = ErrorSpec("AUTH_011", "Password reset token has expired", 400)
TOO_MANY_LOGIN_ATTEMPTS = ErrorSpec("AUTH_012", "Too many login attempts, please try again later", 429)

# Authorization
INSUFFICIENT_PERMISSIONS = ErrorSpec("AUTHZ_001", "Insufficient permissions", 403)
ROLE_NOT_ALLOWED = ErrorSpec("AUTHZ_002", "Role not allowed for this action", 403)
RESOURCE_ACCESS_DENIED = ErrorSpec("AUTHZ_003", "Access to resource denied", 403)
ACTION_NOT_PERMITTED = ErrorSpec("AUTHZ_004", "Action not permitted for your role", 403)
CROSS_TENANT_ACCESS = ErrorSpec("AUTHZ_005", "Cross-tenant access denied", 403)

# Validation
REQUIRED_FIELD_MISSING = ErrorSpec("VAL_001", "Required field missing", 400)
INVALID_FIELD_FORMAT = ErrorSpec("VAL_002", "Invalid field format", 400)
FIELD_OUT_OF_RANGE = ErrorSpec("VAL_003", "Field value out of range", 400)
INVALID_DATE_FORMAT = ErrorSpec("VAL_004", "Invalid date format", 400)
INVALID_EMAIL_FORMAT = ErrorSpec("VAL_005", "Invalid email format", 400)
INVALID_PHONE_FORMAT = ErrorSpec("VAL_006", "Invalid phone format", 400)
INVALID_UUID = ErrorSpec("VAL_009", "Invalid UUID format", 400)
INVALID_ENUM_VALUE = ErrorSpec("VAL_010", "Invalid enum value", 400)
VALIDATION_FAILED = ErrorSpec("VAL_001", "Validation failed", 400)

# Resources
RESOURCE_NOT_FOUND = ErrorSpec("RES_001", "Resource not found", 404)
RESOURCE_EXISTS = ErrorSpec("RES_002", "Resource already exists", 409)
DUPLICATE_ENTRY = ErrorSpec("RES_003", "Duplicate entry", 409)
RESOURCE_IN_USE = ErrorSpec("RES_004", "Resource is in use and cannot be deleted", 400)
INVALID_RESOURCE_STATE = ErrorSpec("RES_006", "Invalid resource state", 400)

# Users
USER_NOT_FOUND = ErrorSpec("USER_001", "User not found", 404)
EMAIL_ALREADY_EXISTS = ErrorSpec("USER_002", "Email already registered", 409)
PHONE_ALREADY_EXISTS = ErrorSpec("USER_003", "Phone already registered", 409)
INVALID_ROLE_ASSIGNMENT = ErrorSpec("USER_004", "Invalid role assignment", 400)
CANNOT_DELETE_SELF = ErrorSpec("USER_005", "Cannot delete your own account", 400)
INVALID_PARENT_STUDENT_LINK = ErrorSpec("USER_007", "Invalid parent-student link", 400)

# Institutions
INSTITUTION_NOT_FOUND = ErrorSpec("INST_001", "Institution not found", 404)
INSTITUTION_CODE_EXISTS = ErrorSpec("INST_002", "Institution code already exists", 409)
INSTITUTION_DISABLED = ErrorSpec("INST_003", "Institution is disabled", 400)
INSTITUTION_ID_REQUIRED = ErrorSpec("INST_004", "X-Institution-ID header is required", 400)
USER_NOT_IN_INSTITUTION = ErrorSpec("INST_005", "User does not belong to this institution", 403)

# Scheduling
SCHEDULING_CONFLICT = ErrorSpec(
    "TT_001",
    "Scheduling conflict detected: teacher, section, or room is already occupied at this time",
    409,
)

# System
INTERNAL_SERVER_ERROR = ErrorSpec("SYS_001", "Internal server error", 500)
SERVICE_UNAVAILABLE = ErrorSpec("SYS_002", "Service temporarily unavailable", 503)
DATABASE_ERROR = ErrorSpec("SYS_003", "Database error", 500)
CACHE_ERROR = ErrorSpec("SYS_004", "Cache error", 500)
RATE_LIMIT_EXCEEDED = ErrorSpec("SYS_005", "Rate limit exceeded. Please try again later.", 429)


def not_found(entity: str) -> AppError:
    return AppError(RESOURCE_NOT_FOUND, f"{entity} not found")


def already_exists(message: str) -> AppError:
    return AppError(RESOURCE_EXISTS, message)
