import os
import secrets
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]

DB_PATH = Path(os.getenv("ROLLCALL_DB_PATH", BASE_DIR / "database" / "rollcall.db"))
ADMIN_USERNAME = os.getenv("ROLLCALL_ADMIN_USERNAME", "admin").strip() or "admin"
ADMIN_PASSWORD = os.getenv("ROLLCALL_ADMIN_PASSWORD", "admin123").strip() or "admin123"
SIGNING_KEY = os.getenv("ROLLCALL_SIGNING_KEY", "").strip() or secrets.token_urlsafe(32)
AUTH_TOKEN_TTL_SECONDS = int(os.getenv("ROLLCALL_AUTH_TOKEN_TTL_SECONDS", "43200"))


def _parse_bool(value: str | None, fallback: bool) -> bool:
    if value is None:
        return fallback
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return fallback


def _parse_csv(value: str | None, fallback: list[str]) -> list[str]:
    if not value:
        return fallback
    parsed = [item.strip() for item in value.split(",") if item.strip()]
    return parsed or fallback


def _parse_float(value: str | None, fallback: float) -> float:
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


def _parse_log_level(value: str | None) -> str:
    normalized = (value or "").strip().upper()
    if normalized in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        return normalized
    return "INFO"


CORS_ALLOW_ORIGINS = _parse_csv(
    os.getenv("ROLLCALL_CORS_ALLOW_ORIGINS"),
    ["http://localhost:5173", "http://127.0.0.1:5173"],
)
CORS_ALLOW_METHODS = _parse_csv(
    os.getenv("ROLLCALL_CORS_ALLOW_METHODS"),
    ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
CORS_ALLOW_HEADERS = _parse_csv(
    os.getenv("ROLLCALL_CORS_ALLOW_HEADERS"),
    ["Authorization", "Content-Type", "Accept"],
)
CORS_ALLOW_CREDENTIALS = _parse_bool(os.getenv("ROLLCALL_CORS_ALLOW_CREDENTIALS"), True)

LOG_LEVEL = _parse_log_level(os.getenv("ROLLCALL_LOG_LEVEL"))

# Geofence / attendance policy
DEFAULT_RADIUS_METERS = max(0.0, _parse_float(os.getenv("ROLLCALL_DEFAULT_RADIUS_METERS"), 50.0))
LATE_CHECK_IN_MINUTES = max(
    0,
    int(os.getenv("ROLLCALL_LATE_CHECK_IN_MINUTES", "15")),
)
GPS_ENFORCEMENT_ENABLED = _parse_bool(os.getenv("ROLLCALL_GPS_ENFORCEMENT_ENABLED"), True)

# Activity log switches
ATTENDANCE_LOGS_ENABLED = _parse_bool(os.getenv("ROLLCALL_ATTENDANCE_LOGS_ENABLED"), True)
LOG_GPS_ATTEMPTS = _parse_bool(os.getenv("ROLLCALL_LOG_GPS_ATTEMPTS"), True)
LOG_FAILED_ATTEMPTS = _parse_bool(os.getenv("ROLLCALL_LOG_FAILED_ATTEMPTS"), True)
