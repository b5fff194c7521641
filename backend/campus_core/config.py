import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./campus_core.db")
    db_echo: bool = _env_bool("DB_ECHO")

    jwt_secret: str = os.getenv("JWT_SECRET", "change-me-in-production")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_issuer: str = os.getenv("JWT_ISSUER", "campus-core")
    jwt_access_exp_minutes: int = int(os.getenv("JWT_ACCESS_EXP_MINUTES", "15"))
    jwt_refresh_exp_minutes: int = int(os.getenv("JWT_REFRESH_EXP_MINUTES", str(7 * 24 * 60)))
    jwt_reset_exp_minutes: int = int(os.getenv("JWT_RESET_EXP_MINUTES", "60"))

    redis_url: str = os.getenv("REDIS_URL", "")
    tenant_cache_ttl_seconds: int = int(os.getenv("TENANT_CACHE_TTL_SECONDS", "3600"))

    rate_limit_requests: int = int(os.getenv("RATE_LIMIT_REQUESTS", "100"))
    rate_limit_window_seconds: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    auth_rate_limit_requests: int = int(os.getenv("AUTH_RATE_LIMIT_REQUESTS", "5"))
    auth_rate_limit_window_seconds: int = int(os.getenv("AUTH_RATE_LIMIT_WINDOW_SECONDS", "60"))

    cors_origins: str = os.getenv("CORS_ORIGINS", "*")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    super_admin_email: str = os.getenv("SUPER_ADMIN_EMAIL", "")
    super_admin_password: str = os.getenv("SUPER_ADMIN_PASSWORD", "")

    @property
    def reset_issuer(self) -> str:
        return f"{self.jwt_issuer}-reset"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
