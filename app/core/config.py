from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    auth_mode: str
    screening_require_admin: bool
    rate_limit: str
    rate_limit_enabled: bool
    upload_rate_limit: str
    trust_x_forwarded_for: bool
    log_level: str
    sentry_dsn: str | None
    cors_allowed_origins: tuple[str, ...]
    cors_allow_origin_regex: str | None
    cors_allow_credentials: bool
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int
    screening_batch_size: int
    screening_grace_period_s: float
    screening_log_limit: int
    screening_session_ttl_s: float
    screening_analysis_timeout_s: float
    screening_local_policy_check: bool
    report_product_name: str


settings = Settings(
    api_key=_get_env("API_KEY"),
    auth_mode=(_get_env("AUTH_MODE", "public") or "public").strip().lower(),
    screening_require_admin=_get_env_bool("SCREENING_REQUIRE_ADMIN", True),
    rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
    rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
    upload_rate_limit=_get_env("UPLOAD_RATE_LIMIT", "20/minute") or "20/minute",
    trust_x_forwarded_for=_get_env_bool("TRUST_X_FORWARDED_FOR", False),
    log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
    sentry_dsn=_get_env("SENTRY_DSN"),
    cors_allowed_origins=_get_env_list(
        "CORS_ALLOWED_ORIGINS",
        [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
        ],
    ),
    cors_allow_origin_regex=_get_env("CORS_ALLOW_ORIGIN_REGEX"),
    cors_allow_credentials=_get_env_bool("CORS_ALLOW_CREDENTIALS", False),
    analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
    analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
    analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 180),
    screening_batch_size=max(1, _get_env_int("SCREENING_BATCH_SIZE", 5)),
    screening_grace_period_s=max(0.0, _get_env_float("SCREENING_GRACE_PERIOD_S", 0.8)),
    screening_log_limit=max(1, _get_env_int("SCREENING_LOG_LIMIT", 10)),
    screening_session_ttl_s=max(60.0, _get_env_float("SCREENING_SESSION_TTL_S", 3600.0)),
    screening_analysis_timeout_s=_get_env_float("SCREENING_ANALYSIS_TIMEOUT_S", 90.0),
    screening_local_policy_check=_get_env_bool("SCREENING_LOCAL_POLICY_CHECK", False),
    report_product_name=(_get_env("REPORT_PRODUCT_NAME", "quantum") or "quantum").strip().lower(),
)

if settings.auth_mode not in {"public", "protected"}:
    raise RuntimeError("AUTH_MODE must be either 'public' or 'protected'.")

if settings.auth_mode == "protected" and not settings.api_key:
    raise RuntimeError("AUTH_MODE=protected requires API_KEY to be set.")
